# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_COMPOUND_SUFFIXES = (".tar.gz", ".tar.bz2", ".tar.xz")


def buildpack_id(archive_path: Path | str) -> str:
    """Returns the archive's base name with its extension stripped.

    Compound tar suffixes such as ``.tar.gz`` count as a single extension.
    """
    name = Path(archive_path).name
    for suffix in _COMPOUND_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return Path(name).stem


class StagingResult(BaseModel):
    """Structured output of the build step.

    Attributes:
        detected_start_command: The start command the buildpack detected. May be
            empty when the buildpack could not determine one.
        detected_buildpack: The name of the buildpack that staged the application.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    detected_start_command: str = Field(..., alias="DetectedStartCommand")
    detected_buildpack: str = Field("", alias="DetectedBuildpack")

    @field_validator("detected_start_command", "detected_buildpack", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # "DetectedStartCommand:" with no value loads as None
        return "" if value is None else value


class SandboxPaths(BaseModel):
    """Sandbox-side locations used by one staging/running cycle."""

    model_config = ConfigDict(frozen=True)

    buildpack_id: str
    build_agent: str = "/tmp/circus/tailor"
    run_agent: str = "/tmp/circus/soldier"
    app_dir: str = "/app"
    buildpacks_dir: str = "/tmp/buildpacks"
    output_droplet_dir: str = "/tmp/droplet"
    cache_dir: str = "/tmp/cache"
    home_dir: str = "/home/vcap"

    @classmethod
    def for_buildpack(cls, archive_path: Path | str) -> "SandboxPaths":
        return cls(buildpack_id=buildpack_id(archive_path))

    @property
    def buildpack_dir(self) -> str:
        return f"{self.buildpacks_dir}/{self.buildpack_id}"

    @property
    def result_file(self) -> str:
        return f"{self.output_droplet_dir}/staging_info.yml"

    @property
    def live_app_dir(self) -> str:
        return f"{self.home_dir}/app"


class ProcessSpec(BaseModel):
    """A process to execute inside the sandbox.

    Attributes:
        path: The executable to run.
        args: Arguments passed to the executable.
        env: Environment variables for the process.
        detach: When set, the caller does not wait for exit. The process may
            outlive the caller's output sinks, so its output is logged instead.
    """

    path: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    detach: bool = False
