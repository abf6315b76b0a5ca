# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> Any:
    """Parse Go-style durations ("15s", "1m30s", "500ms") into seconds.

    Plain numbers pass through unchanged.
    """
    if not isinstance(value, str):
        return value

    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"invalid duration: {value!r}")
    return sum(float(n) * _DURATION_UNITS[u] for n, u in parts)


class BuildpackerConfig(BaseSettings):
    """
    Configuration for staging and running applications in a sandbox.
    """

    runtime: Literal["docker"] = "docker"
    docker_image: str = "ubuntu:22.04"
    docker_network: str = "bridge"
    cpu_limit: float = 1.0
    mem_limit: str = "1g"

    # Locally built agent binaries
    build_agent_path: Path | None = None
    run_agent_path: Path | None = None

    # Application runtime contract
    app_port: int = 8080
    instance_index: int = 0

    # Liveness checks
    external_address: str = "127.0.0.1"
    health_path: str = "/"
    eventually_timeout: float = 15.0
    consistently_duration: float = 5.0
    poll_interval: float = 0.5

    model_config = SettingsConfigDict(
        env_prefix="COREASON_BUILDPACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("eventually_timeout", "consistently_duration", "poll_interval", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> Any:
        return parse_duration(value)
