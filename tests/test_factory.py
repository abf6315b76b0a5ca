from unittest.mock import patch

from coreason_buildpacker.config import BuildpackerConfig
from coreason_buildpacker.factory import SandboxFactory
from coreason_buildpacker.runtime import SandboxRuntime
from coreason_buildpacker.runtimes.docker import DockerRuntime


def test_factory_returns_docker_runtime() -> None:
    config = BuildpackerConfig(runtime="docker")
    with patch("coreason_buildpacker.runtimes.docker.docker.from_env"):
        runtime = SandboxFactory.get_runtime(config)
        assert isinstance(runtime, DockerRuntime)
        assert isinstance(runtime, SandboxRuntime)


def test_factory_wires_config_into_runtime() -> None:
    config = BuildpackerConfig(
        docker_image="cloudfoundry/cflinuxfs4",
        docker_network="staging",
        cpu_limit=2.0,
        mem_limit="2g",
        app_port=3000,
    )
    with patch("coreason_buildpacker.runtimes.docker.docker.from_env"):
        runtime = SandboxFactory.get_runtime(config)

    assert isinstance(runtime, DockerRuntime)
    assert runtime.image == "cloudfoundry/cflinuxfs4"
    assert runtime.network == "staging"
    assert runtime.cpu_limit == 2.0
    assert runtime.mem_limit == "2g"
    # The application port must be published for liveness checks.
    assert runtime.exposed_ports == [3000]
