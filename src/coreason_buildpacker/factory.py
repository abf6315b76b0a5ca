# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

from coreason_buildpacker.config import BuildpackerConfig
from coreason_buildpacker.runtime import SandboxRuntime
from coreason_buildpacker.runtimes.docker import DockerRuntime


class SandboxFactory:
    """
    Factory to create SandboxRuntime instances based on configuration.
    """

    @staticmethod
    def get_runtime(config: BuildpackerConfig) -> SandboxRuntime:
        """
        Returns an instance of the configured SandboxRuntime.
        """
        if config.runtime == "docker":
            return DockerRuntime(
                image=config.docker_image,
                cpu_limit=config.cpu_limit,
                mem_limit=config.mem_limit,
                network=config.docker_network,
                exposed_ports=[config.app_port],
            )
        else:
            # This should be unreachable due to Pydantic validation, but for safety:
            raise ValueError(f"Unknown runtime: {config.runtime}")  # pragma: no cover
