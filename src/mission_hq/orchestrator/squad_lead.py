"""Choose or create the coordinating agent for a mission."""

from __future__ import annotations

import logging
from uuid import uuid4

from mission_hq.orchestrator.agents import provision_agent
from mission_hq.orchestrator.models import (
    SQUAD_LEAD_ROLE,
    Agent,
    AgentStatus,
    MissionStatus,
)
from mission_hq.orchestrator.runtime import WorkerRuntime
from mission_hq.orchestrator.store import RecordStore
from mission_hq.orchestrator.templates import squad_lead_template
from mission_hq.storage.common import utc_now

logger = logging.getLogger(__name__)


class SquadLeadSelector:
    """First match wins: a free idle lead, a lead of a finished mission, else a new lead."""

    def __init__(self, *, store: RecordStore, runtime: WorkerRuntime) -> None:
        self.store = store
        self.runtime = runtime

    def select(self, mission_id: str) -> Agent:
        free = self.store.find_agents(
            roles=(SQUAD_LEAD_ROLE,),
            statuses=(AgentStatus.IDLE,),
            is_reusable=True,
            current_mission_ids=(None,),
        )
        if free:
            logger.info("Reusing free squad lead %s for mission %s", free[0].id, mission_id)
            return self._assign(free[0], mission_id)

        finished_leads = {
            mission.squad_lead_id
            for mission in self.store.find_missions(statuses=(MissionStatus.COMPLETED,))
            if mission.squad_lead_id is not None
        }
        for candidate in self.store.find_agents(
            roles=(SQUAD_LEAD_ROLE,),
            statuses=(AgentStatus.IDLE,),
            is_reusable=True,
        ):
            if candidate.id in finished_leads:
                logger.info(
                    "Reusing squad lead %s from a completed mission for mission %s",
                    candidate.id,
                    mission_id,
                )
                return self._assign(candidate, mission_id)

        return self._create(mission_id)

    def _assign(self, agent: Agent, mission_id: str) -> Agent:
        agent.current_mission_id = mission_id
        agent.status = AgentStatus.ACTIVE
        agent.updated_at = utc_now()
        return self.store.save_agent(agent)

    def _create(self, mission_id: str) -> Agent:
        template = squad_lead_template()
        now = utc_now()
        agent = Agent(
            id=str(uuid4()),
            name=f"{template.name} {int(now.timestamp() * 1000)}",
            role=template.role,
            capabilities=list(template.capabilities),
            status=AgentStatus.INACTIVE,
            personality=template.personality,
            llm_model=template.default_llm_model,
            provider=template.default_provider,
            current_mission_id=mission_id,
            is_reusable=template.is_reusable,
            created_at=now,
            updated_at=now,
        )
        self.store.save_agent(agent)
        agent = self.store.save_agent(provision_agent(self.runtime, agent))
        logger.info(
            "Created squad lead %s for mission %s (status=%s)",
            agent.id,
            mission_id,
            agent.status.value,
        )
        return agent
