from pathlib import Path
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from coreason_buildpacker.buildpacker import Buildpacker, BuildpackerAsync
from coreason_buildpacker.config import BuildpackerConfig
from coreason_buildpacker.exceptions import HealthCheckFailed, StagingFailed


@pytest.fixture
def config(agents: dict[str, Path]) -> BuildpackerConfig:
    return BuildpackerConfig(
        build_agent_path=agents["build"],
        run_agent_path=agents["run"],
        external_address="10.0.0.5",
        eventually_timeout=1.0,
        consistently_duration=0.05,
        poll_interval=0.01,
    )


def _app_client(runtime: Any) -> httpx.AsyncClient:
    """Answers 200 only once the run agent has been launched in ``runtime``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if any(spec.path == "/tmp/circus/soldier" for spec in runtime.runs):
            return httpx.Response(200, text="Hi, I'm a trivial app")
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_requires_agent_paths() -> None:
    with pytest.raises(ValueError, match="build_agent_path"):
        BuildpackerAsync(BuildpackerConfig(build_agent_path=None, run_agent_path=None))


@pytest.mark.asyncio
async def test_async_lifecycle(config: BuildpackerConfig, staged_runtime: Any) -> None:
    with patch("coreason_buildpacker.buildpacker.SandboxFactory.get_runtime", return_value=staged_runtime):
        async with BuildpackerAsync(config) as svc:
            assert svc.runtime is staged_runtime
            assert staged_runtime.started

    assert staged_runtime.terminated


@pytest.mark.asyncio
async def test_async_stage_run_and_probe(
    config: BuildpackerConfig, staged_runtime: Any, buildpack_zip: Path, app_dir: Path
) -> None:
    async with _app_client(staged_runtime) as client:
        with patch("coreason_buildpacker.buildpacker.SandboxFactory.get_runtime", return_value=staged_runtime):
            async with BuildpackerAsync(config, client) as svc:
                result = await svc.stage(buildpack_zip, app_dir)
                assert result.detected_start_command == "./run"

                url = await svc.run()
                assert url == "http://10.0.0.5:61001/"

                await svc.wait_until_healthy(url)
                await svc.stays_healthy(url)


@pytest.mark.asyncio
async def test_async_probe_fails_when_app_never_launches(config: BuildpackerConfig, staged_runtime: Any) -> None:
    config = config.model_copy(update={"eventually_timeout": 0.05})
    async with _app_client(staged_runtime) as client:
        with patch("coreason_buildpacker.buildpacker.SandboxFactory.get_runtime", return_value=staged_runtime):
            async with BuildpackerAsync(config, client) as svc:
                with pytest.raises(HealthCheckFailed):
                    await svc.wait_until_healthy("http://10.0.0.5:61001/")


@pytest.mark.asyncio
async def test_async_terminates_on_staging_failure(
    config: BuildpackerConfig, staged_runtime: Any, buildpack_zip: Path, app_dir: Path
) -> None:
    staged_runtime.handlers["/tmp/circus/tailor"] = lambda runtime, spec: 1

    with patch("coreason_buildpacker.buildpacker.SandboxFactory.get_runtime", return_value=staged_runtime):
        with pytest.raises(StagingFailed):
            async with BuildpackerAsync(config) as svc:
                await svc.stage(buildpack_zip, app_dir)

    assert staged_runtime.terminated


def test_sync_stage_and_run(config: BuildpackerConfig, staged_runtime: Any, buildpack_zip: Path, app_dir: Path) -> None:
    with patch("coreason_buildpacker.buildpacker.SandboxFactory.get_runtime", return_value=staged_runtime):
        # 'with' internally uses anyio.run
        with Buildpacker(config) as svc:
            result = svc.stage(buildpack_zip, app_dir)
            url = svc.run(result)

    assert result.detected_start_command == "./run"
    assert url == "http://10.0.0.5:61001/"
    assert staged_runtime.started
    assert staged_runtime.terminated
    launch = staged_runtime.runs[-1]
    assert launch.path == "/tmp/circus/soldier"
    assert launch.args == ["/home/vcap/app", "./run"]


def test_sync_probe(config: BuildpackerConfig, staged_runtime: Any) -> None:
    # The sync facade runs each call in its own event loop, so the probe opens its own client.
    transport = httpx.MockTransport(lambda request: httpx.Response(200))
    real_client = httpx.AsyncClient

    with (
        patch("coreason_buildpacker.buildpacker.SandboxFactory.get_runtime", return_value=staged_runtime),
        patch(
            "coreason_buildpacker.health.httpx.AsyncClient",
            side_effect=lambda **kwargs: real_client(transport=transport, **kwargs),
        ),
    ):
        with Buildpacker(config) as svc:
            svc.wait_until_healthy("http://10.0.0.5:61001/")
            svc.stays_healthy("http://10.0.0.5:61001/")
