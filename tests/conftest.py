"""Shared test fixtures."""

from __future__ import annotations

from uuid import uuid4

import pytest

from mission_hq.config import OrchestratorSettings
from mission_hq.orchestrator.errors import RuntimeProvisionError
from mission_hq.orchestrator.models import Agent, AgentStatus
from mission_hq.orchestrator.runtime import RuntimeConfig, RuntimeState
from mission_hq.orchestrator.services import OrchestratorService
from mission_hq.orchestrator.store import InMemoryRecordStore


class FakeRuntime:
    """Records runtime calls; provisioning can be switched to fail."""

    def __init__(self) -> None:
        self.fail_provision = False
        self.states: dict[str, RuntimeState] = {}
        self.calls: list[tuple[str, str]] = []
        self.configs: dict[str, RuntimeConfig] = {}
        self._provisioned = 0

    def provision(self, agent_id: str, config: RuntimeConfig) -> str:
        self.calls.append(("provision", agent_id))
        if self.fail_provision:
            raise RuntimeProvisionError("docker daemon unavailable")
        self._provisioned += 1
        runtime_id = f"rt-{agent_id[:8]}-{self._provisioned}"
        self.states[runtime_id] = RuntimeState.RUNNING
        self.configs[runtime_id] = config
        return runtime_id

    def get_status(self, runtime_id: str) -> RuntimeState | None:
        return self.states.get(runtime_id)

    def start(self, runtime_id: str) -> None:
        self.calls.append(("start", runtime_id))
        self.states[runtime_id] = RuntimeState.RUNNING

    def stop(self, runtime_id: str) -> None:
        self.calls.append(("stop", runtime_id))
        if runtime_id in self.states:
            self.states[runtime_id] = RuntimeState.EXITED

    def remove(self, runtime_id: str) -> None:
        self.calls.append(("remove", runtime_id))
        self.states.pop(runtime_id, None)


@pytest.fixture()
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture()
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture()
def service(store: InMemoryRecordStore, runtime: FakeRuntime) -> OrchestratorService:
    return OrchestratorService(
        store=store,
        runtime=runtime,
        settings=OrchestratorSettings(default_max_retries=3),
    )


@pytest.fixture()
def make_agent(store: InMemoryRecordStore):
    """Save an agent directly, bypassing provisioning."""

    def _make(
        role: str = "researcher",
        *,
        name: str | None = None,
        status: AgentStatus = AgentStatus.IDLE,
        **fields,
    ) -> Agent:
        agent_id = fields.pop("agent_id", None) or str(uuid4())
        return store.save_agent(
            Agent(
                id=agent_id,
                name=name or f"{role}-{agent_id[:4]}",
                role=role,
                status=status,
                **fields,
            ),
        )

    return _make
