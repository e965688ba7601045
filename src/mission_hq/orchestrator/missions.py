"""Mission lifecycle controller and append-only orchestration log."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from mission_hq.orchestrator.errors import NotFoundError, StateConflictError, ValidationError
from mission_hq.orchestrator.models import (
    FINAL_TASK_STATUSES,
    Agent,
    AgentStatus,
    Mission,
    MissionCreate,
    MissionStatus,
    OrchestrationLogEntry,
    Priority,
    Task,
    TaskStatus,
    TaskType,
)
from mission_hq.orchestrator.squad_lead import SquadLeadSelector
from mission_hq.orchestrator.store import RecordStore
from mission_hq.orchestrator.templates import worker_templates
from mission_hq.storage.common import utc_now

logger = logging.getLogger(__name__)

INITIAL_ANALYSIS_TITLE = "Analyze Mission and Create Execution Plan"


@dataclass(slots=True)
class MissionMetrics:
    """Task counts and wall-clock duration for one mission."""

    total_tasks: int
    completed: int
    failed: int
    in_progress: int
    pending: int
    awaiting_human: int
    agent_count: int
    duration_ms: int | None


class MissionController:
    """Drives mission status and the squad lead's tenure on a mission."""

    def __init__(
        self,
        *,
        store: RecordStore,
        selector: SquadLeadSelector,
        default_max_retries: int = 3,
    ) -> None:
        self.store = store
        self.selector = selector
        self.default_max_retries = default_max_retries

    def get(self, mission_id: str) -> Mission:
        mission = self.store.get_mission(mission_id)
        if mission is None:
            raise NotFoundError("mission", mission_id)
        return mission

    def list_missions(self, *, statuses: Collection[MissionStatus] | None = None) -> list[Mission]:
        return self.store.find_missions(statuses=statuses)

    def create(self, payload: MissionCreate) -> Mission:
        if not payload.title.strip():
            raise ValidationError("Mission title is required.")
        now = utc_now()
        mission = Mission(
            id=str(uuid4()),
            title=payload.title.strip(),
            description=payload.description,
            objective=payload.objective,
            priority=payload.priority,
            auto_orchestrate=payload.auto_orchestrate,
            created_at=now,
            updated_at=now,
        )
        _append_log(mission, "mission_created", {"title": mission.title})
        return self.store.save_mission(mission)

    def start(self, mission_id: str) -> Mission:
        """draft|paused -> active; orchestrates on first start when auto-orchestration is on."""

        mission = self.get(mission_id)
        if mission.status not in {MissionStatus.DRAFT, MissionStatus.PAUSED}:
            raise StateConflictError(
                "Mission can only be started from draft or paused status, "
                f"got {mission.status.value}.",
            )
        previous = mission.status
        mission.status = MissionStatus.ACTIVE
        mission.started_at = utc_now()
        mission.updated_at = mission.started_at
        _append_log(mission, "mission_started", {"previousStatus": previous.value})
        self.store.save_mission(mission)

        if mission.auto_orchestrate and mission.squad_lead_id is None:
            self.orchestrate(mission_id)
        return self.get(mission_id)

    def pause(self, mission_id: str) -> Mission:
        return self._transition(
            mission_id,
            allowed={MissionStatus.ACTIVE},
            target=MissionStatus.PAUSED,
            action="mission_paused",
        )

    def resume(self, mission_id: str) -> Mission:
        return self._transition(
            mission_id,
            allowed={MissionStatus.PAUSED},
            target=MissionStatus.ACTIVE,
            action="mission_resumed",
        )

    def cancel(self, mission_id: str, *, reason: str) -> Mission:
        """Close the mission; tasks in flight keep running and report on their own."""

        if not reason.strip():
            raise ValidationError("A cancellation reason is required.")
        mission = self.get(mission_id)
        if mission.status == MissionStatus.COMPLETED:
            raise StateConflictError("Mission is already completed.")
        previous = mission.status
        mission.status = MissionStatus.COMPLETED
        mission.completed_at = utc_now()
        mission.updated_at = mission.completed_at
        _append_log(
            mission,
            "mission_cancelled",
            {"previousStatus": previous.value, "reason": reason.strip()},
        )
        logger.info("Mission %s cancelled from %s: %s", mission_id, previous.value, reason)
        return self.store.save_mission(mission)

    def complete(self, mission_id: str) -> Mission:
        """Explicit completion by an operator; releases the squad lead."""

        mission = self.get(mission_id)
        if mission.status == MissionStatus.COMPLETED:
            raise StateConflictError("Mission is already completed.")
        previous = mission.status
        mission.status = MissionStatus.COMPLETED
        mission.completed_at = utc_now()
        mission.updated_at = mission.completed_at
        _append_log(mission, "mission_completed", {"previousStatus": previous.value})
        mission = self.store.save_mission(mission)
        if mission.squad_lead_id is not None:
            self.release_squad_lead(mission.squad_lead_id, mission_id)
        return mission

    def check_completion(self, mission_id: str) -> bool:
        """Complete the mission once every one of its tasks is completed or failed."""

        mission = self.store.get_mission(mission_id)
        if mission is None or mission.status == MissionStatus.COMPLETED:
            return False
        tasks = self.store.find_tasks(mission_id=mission_id)
        if not tasks or any(task.status not in FINAL_TASK_STATUSES for task in tasks):
            return False

        completed = sum(1 for task in tasks if task.status == TaskStatus.COMPLETED)
        mission.status = MissionStatus.COMPLETED
        mission.completed_at = utc_now()
        mission.updated_at = mission.completed_at
        _append_log(
            mission,
            "mission_completed",
            {
                "totalTasks": len(tasks),
                "completedTasks": completed,
                "failedTasks": len(tasks) - completed,
            },
        )
        self.store.save_mission(mission)
        if mission.squad_lead_id is not None:
            self.release_squad_lead(mission.squad_lead_id, mission_id)
        logger.info("Mission %s marked as completed", mission_id)
        return True

    def release_squad_lead(self, squad_lead_id: str, mission_id: str) -> Agent | None:
        squad_lead = self.store.get_agent(squad_lead_id)
        if squad_lead is None:
            logger.warning("Squad lead %s not found on release", squad_lead_id)
            return None
        if mission_id not in squad_lead.mission_history:
            squad_lead.mission_history.append(mission_id)
        squad_lead.total_missions_completed = len(squad_lead.mission_history)
        squad_lead.last_mission_completed_at = utc_now()
        squad_lead.current_mission_id = None
        squad_lead.status = AgentStatus.IDLE
        squad_lead.updated_at = squad_lead.last_mission_completed_at
        logger.info("Squad lead %s released after mission %s", squad_lead.name, mission_id)
        return self.store.save_agent(squad_lead)

    def log(self, mission_id: str, action: str, details: dict[str, Any] | None = None) -> None:
        """Append one entry to the mission's orchestration log."""

        mission = self.store.get_mission(mission_id)
        if mission is None:
            logger.warning("Mission %s not found for orchestration log entry %s", mission_id, action)
            return
        _append_log(mission, action, details or {})
        self.store.save_mission(mission)

    def attach_task(
        self,
        mission_id: str,
        task: Task,
        *,
        action: str = "task_created",
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record a newly created task on its mission, in creation order."""

        mission = self.get(mission_id)
        if task.id not in mission.task_ids:
            mission.task_ids.append(task.id)
        mission.updated_at = utc_now()
        _append_log(mission, action, {"taskId": task.id, "title": task.title, **(details or {})})
        self.store.save_mission(mission)

    def set_awaiting_human(self, mission_id: str, human_task_id: str | None) -> None:
        mission = self.get(mission_id)
        mission.awaiting_human_task_id = human_task_id
        mission.updated_at = utc_now()
        self.store.save_mission(mission)

    def orchestrate(self, mission_id: str) -> Task:
        """Staff the mission with a squad lead and queue its analysis task."""

        mission = self.get(mission_id)
        if mission.status == MissionStatus.COMPLETED:
            raise StateConflictError("Cannot orchestrate a completed mission.")
        if mission.initial_analysis_task_id is not None:
            raise StateConflictError(
                f"Mission already has an analysis task: {mission.initial_analysis_task_id}.",
            )

        squad_lead = self.selector.select(mission_id)
        templates = worker_templates()
        template_lines = "\n".join(
            f"- {template.template_id}: {template.name} ({', '.join(template.capabilities)})"
            for template in templates
        )
        now = utc_now()
        task = Task(
            id=str(uuid4()),
            mission_id=mission_id,
            title=INITIAL_ANALYSIS_TITLE,
            description=(
                "Analyze the following mission and create a detailed execution plan:\n\n"
                f"Mission: {mission.title}\n"
                f"Description: {mission.description}\n"
                f"Objective: {mission.objective}\n"
                f"Priority: {mission.priority.value}\n\n"
                f"Available Agent Templates:\n{template_lines}\n\n"
                "Respond with a valid JSON plan following the Squad Lead schema."
            ),
            task_type=TaskType.MISSION_ANALYSIS,
            priority=Priority.HIGH,
            assigned_to=squad_lead.id,
            max_retries=self.default_max_retries,
            input={
                "missionId": mission_id,
                "title": mission.title,
                "description": mission.description,
                "objective": mission.objective,
                "priority": mission.priority.value,
                "availableAgentTemplates": [template.to_dict() for template in templates],
            },
            created_at=now,
            updated_at=now,
        )
        self.store.save_task(task)

        mission = self.get(mission_id)
        mission.squad_lead_id = squad_lead.id
        mission.initial_analysis_task_id = task.id
        mission.task_ids.append(task.id)
        mission.updated_at = now
        _append_log(
            mission,
            "squad_lead_assigned",
            {"squadLeadId": squad_lead.id, "status": squad_lead.status.value},
        )
        _append_log(mission, "initial_task_created", {"taskId": task.id})
        self.store.save_mission(mission)
        return task

    def metrics(self, mission_id: str) -> MissionMetrics:
        mission = self.get(mission_id)
        tasks = self.store.find_tasks(mission_id=mission_id)
        counts = Counter(task.status for task in tasks)
        duration_ms = None
        if mission.started_at is not None and mission.completed_at is not None:
            duration_ms = int((mission.completed_at - mission.started_at).total_seconds() * 1000)
        return MissionMetrics(
            total_tasks=len(tasks),
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
            in_progress=counts[TaskStatus.IN_PROGRESS],
            pending=counts[TaskStatus.PENDING],
            awaiting_human=counts[TaskStatus.AWAITING_HUMAN_RESPONSE],
            agent_count=len({task.assigned_to for task in tasks if task.assigned_to}),
            duration_ms=duration_ms,
        )

    def _transition(
        self,
        mission_id: str,
        *,
        allowed: set[MissionStatus],
        target: MissionStatus,
        action: str,
    ) -> Mission:
        mission = self.get(mission_id)
        if mission.status not in allowed:
            expected = "/".join(sorted(status.value for status in allowed))
            raise StateConflictError(
                f"Mission must be {expected} to become {target.value}, got {mission.status.value}.",
            )
        previous = mission.status
        mission.status = target
        mission.updated_at = utc_now()
        _append_log(mission, action, {"previousStatus": previous.value})
        return self.store.save_mission(mission)


def _append_log(mission: Mission, action: str, details: dict[str, Any]) -> None:
    mission.orchestration_log.append(OrchestrationLogEntry(action=action, details=details))
