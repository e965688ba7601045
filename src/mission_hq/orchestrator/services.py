"""Wiring of the orchestration components over one record store and runtime."""

from __future__ import annotations

from mission_hq.config import OrchestratorSettings
from mission_hq.orchestrator.agents import AgentService
from mission_hq.orchestrator.graph import DependencyGraph
from mission_hq.orchestrator.lifecycle import TaskLifecycle
from mission_hq.orchestrator.missions import MissionController
from mission_hq.orchestrator.plan import PlanIngestor
from mission_hq.orchestrator.runtime import WorkerRuntime
from mission_hq.orchestrator.scoring import AgentScorer
from mission_hq.orchestrator.squad_lead import SquadLeadSelector
from mission_hq.orchestrator.store import RecordStore


class OrchestratorService:
    """Single entry point exposing missions, tasks, agents, scoring and plans."""

    def __init__(
        self,
        *,
        store: RecordStore,
        runtime: WorkerRuntime,
        settings: OrchestratorSettings | None = None,
    ) -> None:
        self.settings = settings or OrchestratorSettings()
        self.store = store
        self.runtime = runtime
        self.scorer = AgentScorer(store)
        self.agents = AgentService(store=store, runtime=runtime)
        self.selector = SquadLeadSelector(store=store, runtime=runtime)
        self.missions = MissionController(
            store=store,
            selector=self.selector,
            default_max_retries=self.settings.default_max_retries,
        )
        self.tasks = TaskLifecycle(
            store=store,
            missions=self.missions,
            scorer=self.scorer,
            agents=self.agents,
            default_max_retries=self.settings.default_max_retries,
            claim_candidate_limit=self.settings.claim_candidate_limit,
            auditor_role=self.settings.auditor_role,
        )
        self.plans = PlanIngestor(store=store, runtime=runtime, missions=self.missions)

    def graph(self, mission_id: str) -> DependencyGraph:
        return self.tasks.graph(mission_id)
