# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

"""Staging/running protocol layered on a borrowed sandbox runtime."""

import json
import shlex
from pathlib import Path
from typing import BinaryIO

import yaml
from loguru import logger
from pydantic import ValidationError

from coreason_buildpacker.exceptions import RelocationFailed, StagingFailed, StagingResultInvalid
from coreason_buildpacker.models import ProcessSpec, SandboxPaths, StagingResult
from coreason_buildpacker.runtime import SandboxProcess, SandboxRuntime
from coreason_buildpacker.transfer import copy_archive_in, copy_directory_in, copy_file_in, fetch_contents


def decode_staging_result(document: bytes) -> StagingResult:
    """Decode the build agent's result document (YAML or JSON).

    Raises:
        StagingResultInvalid: If the document cannot be parsed or lacks a start command.
    """
    try:
        data = yaml.safe_load(document)
    except yaml.YAMLError as e:
        raise StagingResultInvalid(f"staging result is not a valid document: {e}") from e

    if not isinstance(data, dict):
        raise StagingResultInvalid(f"staging result must be a mapping, got {type(data).__name__}")

    try:
        return StagingResult.model_validate(data)
    except ValidationError as e:
        raise StagingResultInvalid(f"staging result is invalid: {e}") from e


def split_start_command(command: str) -> list[str]:
    """Tokenize a start command on whitespace.

    Quoted arguments containing spaces are not supported: ``'echo "a b"'`` yields
    ``['echo', '"a', 'b"']``.
    """
    return command.split()


class StagingSession:
    """Context for one staging and running cycle against a sandbox.

    The session borrows ``runtime`` and never starts or terminates it. Call
    ``stage`` first; ``run`` must not follow a failed ``stage``.
    """

    def __init__(
        self,
        runtime: SandboxRuntime,
        build_agent: Path | str,
        run_agent: Path | str,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
        app_port: int = 8080,
        instance_index: int = 0,
    ):
        """Initializes the StagingSession.

        Args:
            runtime: The sandbox to stage and run in.
            build_agent: Local path of the build agent binary.
            run_agent: Local path of the run agent binary.
            stdout: Optional sink for remote processes' standard output.
            stderr: Optional sink for remote processes' standard error.
            app_port: The port the launched application listens on.
            instance_index: Index reported to the application in its metadata.
        """
        self.runtime = runtime
        self.build_agent = Path(build_agent)
        self.run_agent = Path(run_agent)
        self.stdout = stdout
        self.stderr = stderr
        self.app_port = app_port
        self.instance_index = instance_index
        self.paths: SandboxPaths | None = None
        self.staging_result: StagingResult | None = None

    async def _wait(self, spec: ProcessSpec) -> int:
        process = await self.runtime.run(spec, self.stdout, self.stderr)
        return await process.wait()

    async def stage(self, buildpack_archive: Path | str, application: Path | str) -> StagingResult:
        """Build an application with a buildpack inside the sandbox.

        Args:
            buildpack_archive: Local archive (zip or tar) holding the buildpack.
            application: Local directory holding the application source.

        Returns:
            StagingResult: The decoded result document. Its start command may be empty.

        Raises:
            TransferError: If an artifact could not be placed or the result fetched.
            ExtractionError: If the buildpack archive could not be extracted.
            StagingFailed: If the build agent exited non-zero.
            StagingResultInvalid: If the result document could not be decoded.
        """
        paths = SandboxPaths.for_buildpack(buildpack_archive)
        self.paths = paths
        self.staging_result = None
        logger.info(f"Staging {application} with buildpack {paths.buildpack_id}")

        await copy_file_in(self.runtime, self.build_agent, paths.build_agent)
        await copy_directory_in(self.runtime, application, paths.app_dir)
        await copy_archive_in(self.runtime, buildpack_archive, paths.buildpack_dir)

        exit_code = await self._wait(
            ProcessSpec(
                path=paths.build_agent,
                args=[
                    f"-appDir={paths.app_dir}",
                    f"-outputDropletDir={paths.output_droplet_dir}",
                    f"-buildpacksDir={paths.buildpacks_dir}",
                    f"-buildArtifactsCacheDir={paths.cache_dir}",
                    f"-buildpackOrder={paths.buildpack_id}",
                ],
            )
        )
        if exit_code != 0:
            logger.error(f"Build agent exited with status {exit_code}")
            raise StagingFailed(f"build agent exited with status {exit_code}", exit_code)

        document = await fetch_contents(self.runtime, paths.result_file)
        result = decode_staging_result(document)
        if not result.detected_start_command:
            logger.warning(f"Buildpack {paths.buildpack_id} detected no start command")

        self.staging_result = result
        return result

    async def run(self, result: StagingResult | None = None) -> SandboxProcess:
        """Relocate the droplet and launch the application.

        The launched process is expected to run indefinitely; this returns once
        the sandbox accepted it, without waiting for exit.

        Args:
            result: The staging result to run. Defaults to the one ``stage`` produced.

        Returns:
            SandboxProcess: Handle of the launched application.

        Raises:
            StagingResultInvalid: If no staging result is available.
            TransferError: If the run agent could not be placed.
            RelocationFailed: If moving the droplet into place failed.
        """
        if result is None:
            result = self.staging_result
        if result is None or self.paths is None:
            raise StagingResultInvalid("cannot run before a successful stage")
        paths = self.paths

        await copy_file_in(self.runtime, self.run_agent, paths.run_agent)

        droplet = shlex.quote(paths.output_droplet_dir)
        live_app = shlex.quote(paths.live_app_dir)
        home = shlex.quote(paths.home_dir)
        # nullglob: a droplet holding only app/ leaves nothing to move. dotglob: hidden entries move too.
        script = (
            "shopt -s nullglob dotglob"
            f" && rm -rf {live_app}"
            f" && mkdir -p {home}"
            f" && mv {droplet}/app {live_app}"
            f' && for entry in {droplet}/*; do mv "$entry" {home}/ || exit 1; done'
        )
        exit_code = await self._wait(ProcessSpec(path="/bin/bash", args=["-c", script]))
        if exit_code != 0:
            logger.error(f"Droplet relocation exited with status {exit_code}")
            raise RelocationFailed(f"droplet relocation exited with status {exit_code}", exit_code)

        logger.info(f"Launching application with start command {result.detected_start_command!r}")
        return await self.runtime.run(
            ProcessSpec(
                path=paths.run_agent,
                args=[paths.live_app_dir, *split_start_command(result.detected_start_command)],
                env={
                    "PORT": str(self.app_port),
                    "VCAP_APPLICATION": json.dumps({"instance_index": self.instance_index}),
                },
                detach=True,
            ),
            self.stdout,
            self.stderr,
        )
