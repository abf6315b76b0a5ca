# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

from abc import ABC, abstractmethod
from typing import BinaryIO

from coreason_buildpacker.models import ProcessSpec


class SandboxProcess(ABC):
    """Handle to a process started inside a sandbox."""

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit.

        Returns:
            int: The process exit code.
        """
        pass  # pragma: no cover


class SandboxRuntime(ABC):
    """
    Abstract base class for sandbox runtimes (e.g., Docker).
    Follows the Strategy Pattern.
    """

    @abstractmethod
    async def start(self) -> None:
        """Boot the environment.

        Raises:
            RuntimeError: If the sandbox fails to start.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def stream_in(self, destination: str, stream: BinaryIO) -> None:
        """Unpack a tar stream into the sandbox filesystem.

        Entries are unpacked relative to ``destination``. Implementations create
        ``destination`` if it does not exist.

        Args:
            destination: The directory inside the sandbox to unpack into.
            stream: A readable stream of a tar archive. It is read to its end.

        Raises:
            RuntimeError: If the sandbox is not running or rejects the archive.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def stream_out(self, path: str) -> BinaryIO:
        """Pack a sandbox path into a tar stream.

        Args:
            path: The file or directory inside the sandbox.

        Returns:
            BinaryIO: A readable tar stream. The caller must close it.

        Raises:
            FileNotFoundError: If ``path`` does not exist in the sandbox.
            RuntimeError: If the sandbox is not running.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def run(
        self,
        spec: ProcessSpec,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> SandboxProcess:
        """Start a process inside the sandbox.

        Returns once the sandbox has accepted the request; use
        ``SandboxProcess.wait`` to block until exit.

        Args:
            spec: The executable, arguments and environment of the process.
                A detached process's output is not forwarded to the sinks.
            stdout: Optional sink for the process's standard output.
            stderr: Optional sink for the process's standard error.

        Returns:
            SandboxProcess: A handle to the started process.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def net_in(self, port: int) -> int:
        """Expose an internal port.

        Args:
            port: The port the sandboxed process listens on.

        Returns:
            int: The externally reachable port.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def terminate(self) -> None:
        """Kill and cleanup the sandbox environment."""
        pass  # pragma: no cover
