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

import anyio
import httpx

from coreason_buildpacker.config import BuildpackerConfig
from coreason_buildpacker.factory import SandboxFactory
from coreason_buildpacker.health import LivenessProbe
from coreason_buildpacker.models import StagingResult
from coreason_buildpacker.runtime import SandboxRuntime
from coreason_buildpacker.staging import StagingSession
from coreason_buildpacker.utils.logger import logger


class BuildpackerAsync:
    """Async-native Buildpacker Service (The Core).

    Owns the sandbox lifecycle: the runtime is started on entry and terminated
    on exit. Staging and running are delegated to a StagingSession that borrows
    the runtime.
    """

    def __init__(
        self,
        config: BuildpackerConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initializes the BuildpackerAsync service.

        Args:
            config: Configuration for the sandbox and the agents.
            client: Optional httpx.AsyncClient used for liveness probes.

        Raises:
            ValueError: If the build or run agent path is not configured.
        """
        self.config = config or BuildpackerConfig()
        if self.config.build_agent_path is None or self.config.run_agent_path is None:
            raise ValueError("build_agent_path and run_agent_path must be configured")

        self.runtime: SandboxRuntime = SandboxFactory.get_runtime(self.config)
        self.session = StagingSession(
            self.runtime,
            build_agent=self.config.build_agent_path,
            run_agent=self.config.run_agent_path,
            app_port=self.config.app_port,
            instance_index=self.config.instance_index,
        )
        self.probe = LivenessProbe(
            client,
            timeout=self.config.eventually_timeout,
            interval=self.config.poll_interval,
        )

    async def __aenter__(self) -> "BuildpackerAsync":
        """Starts the sandbox environment."""
        await self.runtime.start()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Terminates the sandbox environment."""
        await self.runtime.terminate()

    async def stage(self, buildpack_archive: Path, application: Path) -> StagingResult:
        """Stages an application with a buildpack.

        Args:
            buildpack_archive: Local buildpack archive.
            application: Local application directory.

        Returns:
            StagingResult: The decoded staging result.
        """
        return await self.session.stage(buildpack_archive, application)

    async def run(self, result: StagingResult | None = None) -> str:
        """Launches the staged application and maps its port.

        Args:
            result: Staging result to run; defaults to the last one staged.

        Returns:
            str: The externally reachable URL of the application.
        """
        await self.session.run(result)
        external_port = await self.runtime.net_in(self.config.app_port)
        url = f"http://{self.config.external_address}:{external_port}{self.config.health_path}"
        logger.info(f"Application launched at {url}")
        return url

    async def wait_until_healthy(self, url: str) -> None:
        """Waits for the application to answer 200 within the eventually timeout."""
        await self.probe.wait_until_healthy(url)

    async def stays_healthy(self, url: str) -> None:
        """Requires the application to answer 200 for the consistently duration."""
        await self.probe.stays_healthy(url, self.config.consistently_duration)


class Buildpacker:
    """Sync Facade for BuildpackerAsync (The Facade).

    Wraps BuildpackerAsync and executes methods via anyio.run.
    """

    def __init__(
        self,
        config: BuildpackerConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._async = BuildpackerAsync(config, client)

    def __enter__(self) -> "Buildpacker":
        anyio.run(self._async.__aenter__)
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        anyio.run(self._async.__aexit__, exc_type, exc_val, exc_tb)

    def stage(self, buildpack_archive: Path, application: Path) -> StagingResult:
        """Stages an application synchronously."""
        return anyio.run(self._async.stage, buildpack_archive, application)

    def run(self, result: StagingResult | None = None) -> str:
        """Launches the staged application synchronously and returns its URL."""
        return anyio.run(self._async.run, result)

    def wait_until_healthy(self, url: str) -> None:
        anyio.run(self._async.wait_until_healthy, url)

    def stays_healthy(self, url: str) -> None:
        anyio.run(self._async.stays_healthy, url)
