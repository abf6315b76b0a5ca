import io
import posixpath
import tarfile
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO

import pytest

from coreason_buildpacker.models import ProcessSpec
from coreason_buildpacker.runtime import SandboxProcess, SandboxRuntime

Handler = Callable[["FakeRuntime", ProcessSpec], int]


class FakeProcess(SandboxProcess):
    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        self.waited = False

    async def wait(self) -> int:
        self.waited = True
        return self.exit_code


class FakeRuntime(SandboxRuntime):
    """In-memory sandbox that really unpacks and packs tar streams."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.modes: dict[str, int] = {}
        self.dirs: set[str] = {"/"}
        self.stream_in_calls: list[str] = []
        self.stream_out_calls: list[str] = []
        self.runs: list[ProcessSpec] = []
        self.processes: list[FakeProcess] = []
        self.handlers: dict[str, Handler] = {}
        self.ports = {8080: 61001}
        self.started = False
        self.terminated = False

    async def start(self) -> None:
        self.started = True

    async def stream_in(self, destination: str, stream: BinaryIO) -> None:
        self.stream_in_calls.append(destination)
        data = stream.read()
        with tarfile.open(fileobj=io.BytesIO(data), mode="r") as tar:
            for member in tar:
                path = posixpath.normpath(posixpath.join(destination, member.name))
                if member.isdir():
                    self.dirs.add(path)
                elif member.isfile():
                    f = tar.extractfile(member)
                    assert f is not None
                    self.files[path] = f.read()
                    self.modes[path] = member.mode

    async def stream_out(self, path: str) -> BinaryIO:
        self.stream_out_calls.append(path)
        path = posixpath.normpath(path)
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w") as tar:
            if path in self.files:
                self._add(tar, posixpath.basename(path), self.files[path])
            else:
                children = sorted(p for p in self.files if p.startswith(path.rstrip("/") + "/"))
                if not children and path not in self.dirs:
                    raise FileNotFoundError(path)
                base = posixpath.basename(path)
                for child in children:
                    self._add(tar, posixpath.join(base, posixpath.relpath(child, path)), self.files[child])
        buffer.seek(0)
        return buffer

    @staticmethod
    def _add(tar: tarfile.TarFile, name: str, data: bytes) -> None:
        info = tarfile.TarInfo(name)
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))

    async def run(
        self,
        spec: ProcessSpec,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
    ) -> SandboxProcess:
        self.runs.append(spec)
        handler = self.handlers.get(spec.path)
        process = FakeProcess(handler(self, spec) if handler else 0)
        self.processes.append(process)
        return process

    async def net_in(self, port: int) -> int:
        return self.ports[port]

    async def terminate(self) -> None:
        self.terminated = True

    def move(self, source: str, destination: str) -> None:
        """Emulates ``mv`` of a file or directory subtree."""
        for path in sorted(self.files):
            if path == source or path.startswith(source + "/"):
                self.files[destination + path[len(source) :]] = self.files.pop(path)


def make_zip(path: Path, members: dict[str, bytes], mode: int = 0o755) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in members.items():
            info = zipfile.ZipInfo(name)
            info.external_attr = (0o100000 | mode) << 16
            archive.writestr(info, data)
    return path


@pytest.fixture
def zip_factory() -> Callable[..., Path]:
    return make_zip


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def app_dir(tmp_path: Path) -> Path:
    root = tmp_path / "app"
    (root / "lib" / "nested").mkdir(parents=True)
    (root / "run").write_bytes(b"#!/bin/sh\nexec python -m http.server $PORT\n")
    (root / "lib" / "util.txt").write_bytes(b"utility")
    (root / "lib" / "nested" / "deep.bin").write_bytes(bytes(range(256)) * 40)
    return root


@pytest.fixture
def buildpack_zip(tmp_path: Path) -> Path:
    return make_zip(
        tmp_path / "trivial-buildpack.zip",
        {
            "bin/detect": b"#!/bin/sh\necho trivial\n",
            "bin/compile": b"#!/bin/sh\nexit 0\n",
            "bin/release": b"#!/bin/sh\necho '--- {}'\n",
        },
    )


@pytest.fixture
def agents(tmp_path: Path) -> dict[str, Path]:
    build_agent = tmp_path / "tailor"
    build_agent.write_bytes(b"\x7fELF tailor")
    run_agent = tmp_path / "soldier"
    run_agent.write_bytes(b"\x7fELF soldier")
    return {"build": build_agent, "run": run_agent}


def trivial_build(runtime: "FakeRuntime", spec: ProcessSpec) -> int:
    """Build agent stand-in: copies the app into the droplet and writes a result."""
    for path, data in list(runtime.files.items()):
        if path.startswith("/app/"):
            runtime.files["/tmp/droplet/app/" + path[len("/app/") :]] = data
    runtime.files["/tmp/droplet/staging_info.yml"] = b'DetectedStartCommand: "./run"\n'
    return 0


def relocate(runtime: "FakeRuntime", spec: ProcessSpec) -> int:
    """Relocation stand-in for the ``bash -c`` droplet move."""
    runtime.move("/tmp/droplet/app", "/home/vcap/app")
    for path in [p for p in runtime.files if p.startswith("/tmp/droplet/")]:
        runtime.move(path, "/home/vcap/" + path[len("/tmp/droplet/") :])
    return 0


@pytest.fixture
def staged_runtime(fake_runtime: FakeRuntime) -> Any:
    fake_runtime.handlers["/tmp/circus/tailor"] = trivial_build
    fake_runtime.handlers["/bin/bash"] = relocate
    return fake_runtime
