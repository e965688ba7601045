from __future__ import annotations

import allure
import pytest

from mission_hq.orchestrator.errors import (
    NotFoundError,
    RuntimeProvisionError,
    StateConflictError,
    ValidationError,
)
from mission_hq.orchestrator.models import AgentCreate, AgentStatus
from mission_hq.orchestrator.runtime import RuntimeState

pytestmark = [
    allure.epic("Orchestration Engine"),
    allure.feature("Agent Runtime Control"),
]


def _create(service, **fields):
    payload = {"name": "Scout", "role": "researcher", "capabilities": ("web_search",)}
    payload.update(fields)
    return service.agents.create_agent(AgentCreate(**payload))


def test_create_agent_provisions_a_runtime(service, runtime) -> None:
    agent = _create(service, personality="curious")

    assert agent.status == AgentStatus.ACTIVE
    assert agent.runtime_id in runtime.states
    assert agent.provider == "zai"
    config = runtime.configs[agent.runtime_id]
    assert config.role == "researcher"
    assert config.personality == "curious"


def test_create_agent_goes_offline_when_runtime_fails(service, runtime) -> None:
    runtime.fail_provision = True

    agent = _create(service)

    assert agent.status == AgentStatus.OFFLINE
    assert agent.runtime_id is None
    assert service.agents.get(agent.id).status == AgentStatus.OFFLINE


def test_create_agent_without_provisioning(service, runtime) -> None:
    agent = service.agents.create_agent(
        AgentCreate(name="Pen", role="writer"),
        provision=False,
    )

    assert agent.status == AgentStatus.INACTIVE
    assert runtime.calls == []
    with pytest.raises(ValidationError):
        service.agents.create_agent(AgentCreate(name=" ", role="writer"))


def test_stop_start_and_status(service) -> None:
    agent = _create(service)

    stopped = service.agents.stop(agent.id)
    assert stopped.status == AgentStatus.OFFLINE
    assert service.agents.runtime_status(agent.id) == RuntimeState.EXITED

    started = service.agents.start(agent.id)
    assert started.status == AgentStatus.ACTIVE
    assert service.agents.runtime_status(agent.id) == RuntimeState.RUNNING


def test_deploy_replaces_the_runtime(service, runtime) -> None:
    agent = _create(service)
    old_runtime = agent.runtime_id

    deployed = service.agents.deploy(agent.id)

    assert deployed.runtime_id != old_runtime
    assert ("remove", old_runtime) in runtime.calls
    assert deployed.status == AgentStatus.ACTIVE


def test_deploy_failure_marks_agent_offline_and_raises(service, runtime) -> None:
    agent = _create(service)
    runtime.fail_provision = True

    with pytest.raises(RuntimeProvisionError):
        service.agents.deploy(agent.id)

    stored = service.agents.get(agent.id)
    assert stored.status == AgentStatus.OFFLINE
    assert stored.runtime_id is None


def test_destroy_runtime_requires_one(service, runtime) -> None:
    agent = _create(service)
    runtime_id = agent.runtime_id

    destroyed = service.agents.destroy_runtime(agent.id)

    assert destroyed.runtime_id is None
    assert destroyed.status == AgentStatus.OFFLINE
    assert runtime_id not in runtime.states
    assert service.agents.runtime_status(agent.id) is None
    with pytest.raises(StateConflictError, match="no runtime"):
        service.agents.stop(agent.id)


def test_release_makes_agent_available(service, make_agent) -> None:
    agent = make_agent("writer", status=AgentStatus.ACTIVE, current_mission_id="m-1")

    released = service.agents.release(agent.id)

    assert released.status == AgentStatus.IDLE
    assert released.current_mission_id is None


def test_delete_removes_record_and_runtime(service, runtime) -> None:
    agent = _create(service)

    service.agents.delete(agent.id)

    assert ("remove", agent.runtime_id) in runtime.calls
    with pytest.raises(NotFoundError, match="Agent not found"):
        service.agents.get(agent.id)
