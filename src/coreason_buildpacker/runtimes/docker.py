# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_buildpacker

import asyncio
import io
import threading
from collections.abc import Iterable, Iterator
from typing import Any, BinaryIO

import docker
from docker.errors import DockerException, NotFound
from docker.models.containers import Container
from loguru import logger

from coreason_buildpacker.models import ProcessSpec
from coreason_buildpacker.runtime import SandboxProcess, SandboxRuntime

CHUNK_SIZE = 64 * 1024
EXEC_POLL_INTERVAL = 0.1


def _chunks(stream: BinaryIO) -> Iterator[bytes]:
    while True:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


class ChunkReader(io.RawIOBase):
    """Readable stream over an iterator of byte chunks (e.g. ``get_archive`` bits)."""

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = iter(chunks)
        self._buffer = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        while not self._buffer:
            try:
                self._buffer = next(self._chunks)
            except StopIteration:
                return 0

        n = min(len(buffer), len(self._buffer))
        buffer[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return n

    def close(self) -> None:
        close = getattr(self._chunks, "close", None)
        if close is not None:
            close()
        super().close()


def _emit(chunk: bytes, sink: BinaryIO | None, label: str) -> None:
    if sink is not None:
        sink.write(chunk)
        sink.flush()
        return
    for line in chunk.decode("utf-8", errors="replace").splitlines():
        logger.debug(f"[{label}] {line}")


class DockerProcess(SandboxProcess):
    """A process started with ``docker exec``."""

    def __init__(self, api: Any, exec_id: str, pump: threading.Thread):
        self._api = api
        self.exec_id = exec_id
        self._pump = pump

    async def wait(self) -> int:
        await asyncio.to_thread(self._pump.join)
        # The exit code can lag behind the end of the output stream.
        while True:
            info = await asyncio.to_thread(self._api.exec_inspect, self.exec_id)
            exit_code = info.get("ExitCode")
            if exit_code is not None and not info.get("Running", False):
                return int(exit_code)
            await asyncio.sleep(EXEC_POLL_INTERVAL)


class DockerRuntime(SandboxRuntime):
    """
    Docker-based implementation of the SandboxRuntime.
    """

    def __init__(
        self,
        image: str = "ubuntu:22.04",
        cpu_limit: float = 1.0,
        mem_limit: str = "1g",
        network: str = "bridge",
        exposed_ports: list[int] | None = None,
    ):
        self.client = docker.from_env()
        self.image = image
        self.cpu_limit = cpu_limit
        self.mem_limit = mem_limit
        self.network = network
        self.exposed_ports = exposed_ports if exposed_ports is not None else [8080]
        self.container: Container | None = None

    def _require_container(self) -> Container:
        if not self.container:
            raise RuntimeError("Sandbox not started")
        return self.container

    async def start(self) -> None:
        """
        Boot the environment.
        """
        logger.info(f"Starting Docker sandbox with image {self.image}")
        try:
            self.container = await asyncio.to_thread(
                self.client.containers.run,
                self.image,
                command="tail -f /dev/null",
                detach=True,
                network_mode=self.network,
                mem_limit=self.mem_limit,
                nano_cpus=int(self.cpu_limit * 1e9),
                ports={f"{port}/tcp": None for port in self.exposed_ports},
                remove=True,
            )
            logger.info(f"Docker sandbox started: {self.container.short_id}")
        except DockerException as e:
            logger.error(f"Failed to start Docker sandbox: {e}")
            raise

    async def stream_in(self, destination: str, stream: BinaryIO) -> None:
        """
        Unpack a tar stream into the container.
        """
        container = self._require_container()
        logger.debug(f"Streaming archive into {destination} in sandbox {container.short_id}")

        try:
            exit_code, output = await asyncio.to_thread(container.exec_run, ["mkdir", "-p", destination])
            if exit_code != 0:
                raise RuntimeError(f"Failed to create {destination}: {output.decode('utf-8', errors='replace')}")

            accepted = await asyncio.to_thread(container.put_archive, destination, _chunks(stream))
            if not accepted:
                raise RuntimeError(f"Sandbox rejected archive for {destination}")
        except DockerException as e:
            logger.error(f"Stream in failed: {e}")
            raise

    async def stream_out(self, path: str) -> BinaryIO:
        """
        Pack a container path into a tar stream.
        """
        container = self._require_container()
        logger.debug(f"Streaming {path} out of sandbox {container.short_id}")

        try:
            bits, _stat = await asyncio.to_thread(container.get_archive, path)
        except NotFound as e:
            logger.error(f"Remote path not found: {path}")
            raise FileNotFoundError(f"Remote path not found: {path}") from e
        except DockerException as e:
            logger.error(f"Stream out failed: {e}")
            raise

        return ChunkReader(bits)  # type: ignore[return-value]

    async def run(
        self,
        spec: ProcessSpec,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> SandboxProcess:
        """
        Start a process with docker exec, pumping its output to the sinks.

        A detached process's output goes to the log rather than the sinks.
        """
        container = self._require_container()
        if spec.detach:
            stdout = stderr = None
        api = self.client.api
        logger.info(f"Running {spec.path} in sandbox {container.short_id}")

        try:
            exec_id = (
                await asyncio.to_thread(
                    api.exec_create,
                    container.id,
                    [spec.path, *spec.args],
                    stdout=True,
                    stderr=True,
                    environment=spec.env,
                )
            )["Id"]
            output = await asyncio.to_thread(api.exec_start, exec_id, stream=True, demux=True)
        except DockerException as e:
            logger.error(f"Failed to run {spec.path}: {e}")
            raise

        def pump() -> None:
            try:
                for out, err in output:
                    if out:
                        _emit(out, stdout, "stdout")
                    if err:
                        _emit(err, stderr, "stderr")
            except Exception as e:
                logger.warning(f"Output stream of {spec.path} ended abnormally: {e}")

        # Daemon thread: a detached process's output may never end.
        thread = threading.Thread(target=pump, name=f"exec-pump:{exec_id[:12]}", daemon=True)
        thread.start()
        return DockerProcess(api, exec_id, thread)

    async def net_in(self, port: int) -> int:
        """
        Return the host port the container's ``port`` is published on.
        """
        container = self._require_container()
        await asyncio.to_thread(container.reload)

        bindings = (container.ports or {}).get(f"{port}/tcp")
        if not bindings:
            raise RuntimeError(f"Port {port} is not published by sandbox {container.short_id}")
        return int(bindings[0]["HostPort"])

    async def terminate(self) -> None:
        """
        Kill and cleanup the sandbox environment.
        """
        if self.container:
            logger.info(f"Terminating Docker sandbox: {self.container.short_id}")
            try:
                await asyncio.to_thread(self.container.kill)
            except DockerException as e:
                logger.warning(f"Error terminating Docker sandbox: {e}")
            finally:
                self.container = None
        else:
            logger.warning("Attempted to terminate non-existent Docker sandbox")
