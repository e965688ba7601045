"""Agent registry operations: creation, runtime control and metrics."""

from __future__ import annotations

import logging
from collections.abc import Collection
from uuid import uuid4

from mission_hq.orchestrator.errors import (
    NotFoundError,
    RuntimeProvisionError,
    StateConflictError,
    ValidationError,
)
from mission_hq.orchestrator.models import Agent, AgentCreate, AgentStatus
from mission_hq.orchestrator.runtime import RuntimeConfig, RuntimeState, WorkerRuntime
from mission_hq.orchestrator.scoring import update_agent_metrics
from mission_hq.orchestrator.store import RecordStore
from mission_hq.orchestrator.templates import DEFAULT_PROVIDER
from mission_hq.storage.common import utc_now

logger = logging.getLogger(__name__)


def provision_agent(runtime: WorkerRuntime, agent: Agent) -> Agent:
    """Start a runtime for ``agent``; on failure the agent goes offline instead of raising."""

    try:
        agent.runtime_id = runtime.provision(agent.id, _runtime_config(agent))
    except RuntimeProvisionError as error:
        logger.warning("Runtime provisioning failed for agent %s: %s", agent.id, error)
        agent.status = AgentStatus.OFFLINE
    else:
        agent.status = AgentStatus.ACTIVE
    agent.updated_at = utc_now()
    return agent


class AgentService:
    """Registers agents and drives their worker runtimes."""

    def __init__(self, *, store: RecordStore, runtime: WorkerRuntime) -> None:
        self.store = store
        self.runtime = runtime

    def get(self, agent_id: str) -> Agent:
        agent = self.store.get_agent(agent_id)
        if agent is None:
            raise NotFoundError("agent", agent_id)
        return agent

    def list_agents(
        self,
        *,
        roles: Collection[str] | None = None,
        statuses: Collection[AgentStatus] | None = None,
    ) -> list[Agent]:
        return self.store.find_agents(roles=roles, statuses=statuses)

    def create_agent(self, payload: AgentCreate, *, provision: bool = True) -> Agent:
        """Register an agent and, unless told otherwise, provision its runtime."""

        if not payload.name.strip():
            raise ValidationError("Agent name is required.")
        if not payload.role.strip():
            raise ValidationError("Agent role is required.")
        now = utc_now()
        agent = Agent(
            id=str(uuid4()),
            name=payload.name.strip(),
            role=payload.role.strip(),
            capabilities=list(payload.capabilities),
            status=AgentStatus.INACTIVE,
            personality=payload.personality,
            llm_model=payload.llm_model,
            provider=payload.provider or DEFAULT_PROVIDER,
            current_mission_id=payload.current_mission_id,
            is_reusable=payload.is_reusable,
            created_at=now,
            updated_at=now,
        )
        self.store.save_agent(agent)
        if provision:
            agent = self.store.save_agent(provision_agent(self.runtime, agent))
        logger.info("Agent %s (%s) created with status %s", agent.id, agent.role, agent.status.value)
        return agent

    def update_status(self, agent_id: str, status: AgentStatus) -> Agent:
        agent = self.get(agent_id)
        agent.status = status
        agent.updated_at = utc_now()
        return self.store.save_agent(agent)

    def deploy(self, agent_id: str) -> Agent:
        """Replace the agent's runtime with a fresh one."""

        agent = self.get(agent_id)
        if agent.runtime_id is not None:
            try:
                self.runtime.remove(agent.runtime_id)
            except RuntimeProvisionError as error:
                logger.warning("Could not remove old runtime %s: %s", agent.runtime_id, error)
            agent.runtime_id = None

        try:
            agent.runtime_id = self.runtime.provision(agent.id, _runtime_config(agent))
        except RuntimeProvisionError:
            agent.status = AgentStatus.OFFLINE
            agent.updated_at = utc_now()
            self.store.save_agent(agent)
            raise
        agent.status = AgentStatus.ACTIVE
        agent.updated_at = utc_now()
        return self.store.save_agent(agent)

    def stop(self, agent_id: str) -> Agent:
        agent = self._with_runtime(agent_id, action="stop")
        self.runtime.stop(agent.runtime_id or "")
        agent.status = AgentStatus.OFFLINE
        agent.updated_at = utc_now()
        return self.store.save_agent(agent)

    def start(self, agent_id: str) -> Agent:
        agent = self._with_runtime(agent_id, action="start")
        self.runtime.start(agent.runtime_id or "")
        agent.status = AgentStatus.ACTIVE
        agent.updated_at = utc_now()
        return self.store.save_agent(agent)

    def runtime_status(self, agent_id: str) -> RuntimeState | None:
        agent = self.get(agent_id)
        if agent.runtime_id is None:
            return None
        return self.runtime.get_status(agent.runtime_id)

    def destroy_runtime(self, agent_id: str) -> Agent:
        agent = self._with_runtime(agent_id, action="destroy")
        self.runtime.remove(agent.runtime_id or "")
        agent.runtime_id = None
        agent.status = AgentStatus.OFFLINE
        agent.updated_at = utc_now()
        return self.store.save_agent(agent)

    def release(self, agent_id: str) -> Agent:
        """Detach the agent from its mission and make it available again."""

        agent = self.get(agent_id)
        agent.current_mission_id = None
        agent.status = AgentStatus.IDLE
        agent.updated_at = utc_now()
        return self.store.save_agent(agent)

    def delete(self, agent_id: str) -> None:
        """Remove the agent record; a failing runtime removal does not block deletion."""

        agent = self.get(agent_id)
        if agent.runtime_id is not None:
            try:
                self.runtime.remove(agent.runtime_id)
            except RuntimeProvisionError as error:
                logger.warning("Failed to remove runtime for agent %s: %s", agent_id, error)
        self.store.delete_agent(agent_id)

    def record_task_outcome(
        self,
        agent_id: str,
        *,
        succeeded: bool,
        duration_ms: int,
    ) -> Agent | None:
        agent = self.store.get_agent(agent_id)
        if agent is None:
            logger.warning("Agent %s not found for metrics update", agent_id)
            return None
        return self.store.save_agent(
            update_agent_metrics(agent, succeeded=succeeded, duration_ms=duration_ms),
        )

    def _with_runtime(self, agent_id: str, *, action: str) -> Agent:
        agent = self.get(agent_id)
        if agent.runtime_id is None:
            raise StateConflictError(f"Agent {agent_id} has no runtime to {action}.")
        return agent


def _runtime_config(agent: Agent) -> RuntimeConfig:
    return RuntimeConfig(
        name=agent.name,
        role=agent.role,
        personality=agent.personality,
        llm_model=agent.llm_model,
        provider=agent.provider,
    )
