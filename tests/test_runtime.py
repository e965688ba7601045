from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import allure
import pytest

from mission_hq.config import RuntimeSettings
from mission_hq.orchestrator import runtime as runtime_module
from mission_hq.orchestrator.errors import RuntimeProvisionError
from mission_hq.orchestrator.runtime import (
    DisabledRuntime,
    DockerCliRuntime,
    RuntimeConfig,
    RuntimeState,
    build_runtime,
)

pytestmark = [
    allure.epic("Orchestration Engine"),
    allure.feature("Agent Runtime Control"),
]


def _completed(returncode: int = 0, stdout: str = "", stderr: str = ""):
    return subprocess.CompletedProcess(
        args=["docker"],
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
    )


@pytest.fixture()
def docker(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    mock = MagicMock(return_value=_completed())
    monkeypatch.setattr(runtime_module.subprocess, "run", mock)
    return mock


@pytest.fixture()
def docker_runtime() -> DockerCliRuntime:
    return DockerCliRuntime(
        RuntimeSettings(backend="docker", workspace_path=Path("/srv/agents")),
    )


def test_build_runtime_picks_backend() -> None:
    assert isinstance(build_runtime(RuntimeSettings(backend="docker")), DockerCliRuntime)
    assert isinstance(build_runtime(RuntimeSettings()), DisabledRuntime)


def test_provision_runs_a_labelled_container(docker, docker_runtime) -> None:
    docker.return_value = _completed(stdout="abc123def456\n")

    runtime_id = docker_runtime.provision(
        "agent-1",
        RuntimeConfig(name="Scout", role="researcher", llm_model="glm-4", provider="zai"),
    )

    assert runtime_id == "abc123def456"
    command = docker.call_args.args[0]
    assert command[:3] == ["docker", "run", "--detach"]
    assert "hq-agent-agent-1" in command
    assert "/srv/agents/agent-1:/data:rw" in command
    assert "AGENT_ROLE=researcher" in command
    assert command[-1] == "hq-agent:latest"
    assert docker.call_args.kwargs["check"] is False


def test_provision_failure_raises(docker, docker_runtime) -> None:
    docker.return_value = _completed(returncode=125, stderr="image not found")

    with pytest.raises(RuntimeProvisionError, match="image not found"):
        docker_runtime.provision("agent-1", RuntimeConfig(name="x", role="writer"))


def test_status_maps_docker_states(docker, docker_runtime) -> None:
    docker.return_value = _completed(stdout="paused\n")
    assert docker_runtime.get_status("c1") == RuntimeState.PAUSED

    docker.return_value = _completed(stdout="running\n")
    assert docker_runtime.get_status("c1") == RuntimeState.RUNNING

    docker.return_value = _completed(returncode=1, stderr="Error: No such object: c1")
    assert docker_runtime.get_status("c1") is None


def test_stop_and_remove_tolerate_missing_containers(docker, docker_runtime) -> None:
    docker.return_value = _completed(returncode=1, stderr="Error: No such container: c1")

    docker_runtime.stop("c1")
    docker_runtime.remove("c1")

    docker.return_value = _completed(returncode=1, stderr="permission denied")
    with pytest.raises(RuntimeProvisionError, match="Failed to remove"):
        docker_runtime.remove("c1")


def test_missing_binary_and_timeout_become_runtime_errors(docker, docker_runtime) -> None:
    docker.side_effect = FileNotFoundError("docker")
    with pytest.raises(RuntimeProvisionError, match="Docker binary not found"):
        docker_runtime.start("c1")

    docker.side_effect = subprocess.TimeoutExpired(cmd="docker", timeout=60)
    with pytest.raises(RuntimeProvisionError, match="timed out"):
        docker_runtime.start("c1")


def test_disabled_runtime_refuses_to_provision() -> None:
    runtime = DisabledRuntime()

    with pytest.raises(RuntimeProvisionError, match="disabled"):
        runtime.provision("agent-1", RuntimeConfig(name="x", role="writer"))
    assert runtime.get_status("c1") is None
    runtime.stop("c1")
    runtime.remove("c1")
