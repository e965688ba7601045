"""Task lifecycle, retry budget and audit escalation.

States::

    pending -> in_progress -> completed | failed
    failed -> pending                    (retry, or an audit decision)
    failed -> awaiting_human_response    (escalate_human audit decision)
    awaiting_human_response -> completed (human answered; a continuation task is queued)

A task whose retry budget is spent (``retry_count >= max_retries``) needs an
audit decision before it can run again. Claiming work is read-then-write: two
workers polling at the same moment may both receive the same task, and the
last assignment written wins.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from mission_hq.orchestrator.agents import AgentService
from mission_hq.orchestrator.decisions import (
    AuditDecision,
    EscalateHumanDecision,
    ReassignDecision,
    RefineDecision,
    RetryDecision,
    decision_to_payload,
)
from mission_hq.orchestrator.errors import NotFoundError, StateConflictError, ValidationError
from mission_hq.orchestrator.graph import DependencyGraph
from mission_hq.orchestrator.missions import MissionController
from mission_hq.orchestrator.models import (
    Agent,
    AgentStatus,
    MissionStatus,
    Priority,
    RetryAttempt,
    Task,
    TaskCreate,
    TaskStatus,
    TaskType,
)
from mission_hq.orchestrator.scoring import AgentScorer, ScoringCriteria
from mission_hq.orchestrator.store import RecordStore
from mission_hq.storage.common import utc_now

logger = logging.getLogger(__name__)

RESUME_TASK_TITLE = "Resume Mission Analysis with Human Input"
_FAILABLE_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})


@dataclass(slots=True)
class FailResult:
    """Outcome of recording a failure."""

    task: Task
    needs_audit: bool
    can_retry: bool


@dataclass(slots=True)
class AuditOutcome:
    """Target task after an audit decision, plus any records the decision created."""

    task: Task
    decision: AuditDecision
    audit_task: Task | None = None
    human_task: Task | None = None
    assigned_agent: Agent | None = None


@dataclass(slots=True)
class HumanResponseResult:
    human_task: Task
    parent_task: Task
    continuation_task: Task


class TaskLifecycle:
    """Applies task transitions against the record store."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: RecordStore,
        missions: MissionController,
        scorer: AgentScorer,
        agents: AgentService,
        default_max_retries: int = 3,
        claim_candidate_limit: int = 10,
        auditor_role: str = "auditor",
    ) -> None:
        self.store = store
        self.missions = missions
        self.scorer = scorer
        self.agents = agents
        self.default_max_retries = default_max_retries
        self.claim_candidate_limit = claim_candidate_limit
        self.auditor_role = auditor_role

    def get(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def list_tasks(
        self,
        *,
        mission_id: str | None = None,
        statuses: Collection[TaskStatus] | None = None,
        task_types: Collection[TaskType] | None = None,
    ) -> list[Task]:
        return self.store.find_tasks(mission_id=mission_id, statuses=statuses, task_types=task_types)

    def graph(self, mission_id: str) -> DependencyGraph:
        self.missions.get(mission_id)
        return DependencyGraph(self.store.find_tasks(mission_id=mission_id))

    def pending_human_tasks(self, *, mission_id: str | None = None) -> list[Task]:
        """Open questions for humans, newest first."""

        tasks = self.store.find_tasks(
            mission_id=mission_id,
            statuses=(TaskStatus.PENDING,),
            task_types=(TaskType.HUMAN_INPUT,),
        )
        return sorted(tasks, key=lambda task: task.created_at, reverse=True)

    def create_task(self, payload: TaskCreate) -> Task:
        """Create a pending task; dependencies must already exist in the same mission."""

        if not payload.title.strip():
            raise ValidationError("Task title is required.")
        mission = self.missions.get(payload.mission_id)
        if mission.status == MissionStatus.COMPLETED:
            raise StateConflictError(f"Mission {mission.id} is completed; cannot add tasks.")
        dependencies = list(dict.fromkeys(payload.dependencies))
        if dependencies:
            found = {
                task.id
                for task in self.store.find_tasks(mission_id=mission.id, task_ids=dependencies)
            }
            unknown = [dependency for dependency in dependencies if dependency not in found]
            if unknown:
                raise ValidationError(
                    f"Dependencies must reference tasks of mission {mission.id}: "
                    f"{', '.join(unknown)}",
                )
        if payload.assigned_to is not None and self.store.get_agent(payload.assigned_to) is None:
            raise NotFoundError("agent", payload.assigned_to)

        task = self._new_task(
            mission_id=mission.id,
            title=payload.title.strip(),
            description=payload.description,
            task_type=payload.task_type,
            priority=payload.priority,
            assigned_to=payload.assigned_to,
            dependencies=dependencies,
            input_payload=dict(payload.input),
            max_retries=payload.max_retries,
        )
        self.missions.attach_task(mission.id, task)
        logger.debug("Task %s created in mission %s", task.id, mission.id)
        return task

    def claim_next_task(self, agent_id: str, *, mission_id: str | None = None) -> Task | None:
        """Assign the first ready task to ``agent_id``; ``None`` when nothing is claimable."""

        if self.store.get_agent(agent_id) is None:
            raise NotFoundError("agent", agent_id)
        candidates = self.store.find_tasks(
            mission_id=mission_id,
            statuses=(TaskStatus.PENDING,),
            exclude_types=(TaskType.HUMAN_INPUT,),
            assignees=(agent_id, None),
            by_priority=True,
            limit=self.claim_candidate_limit,
        )
        for candidate in candidates:
            if not self._dependencies_completed(candidate):
                continue
            candidate.assigned_to = agent_id
            candidate.updated_at = utc_now()
            logger.debug("Task %s claimed by agent %s", candidate.id, agent_id)
            return self.store.save_task(candidate)
        return None

    def start(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task.status != TaskStatus.PENDING:
            raise StateConflictError(
                f"Task can only be started from pending status, got {task.status.value}.",
            )
        now = utc_now()
        task.status = TaskStatus.IN_PROGRESS
        task.started_at = now
        task.updated_at = now
        return self.store.save_task(task)

    def complete(
        self,
        task_id: str,
        *,
        output: dict[str, Any] | None = None,
        success: bool = True,
    ) -> Task:
        """Finish an in-progress task and run the mission completion check."""

        task = self.get(task_id)
        if task.status != TaskStatus.IN_PROGRESS:
            raise StateConflictError(
                f"Task can only be completed from in_progress status, got {task.status.value}.",
            )
        now = utc_now()
        task.status = TaskStatus.COMPLETED if success else TaskStatus.FAILED
        task.output = dict(output or {})
        task.completed_at = now
        task.updated_at = now
        if success:
            task.error = None
        task = self.store.save_task(task)
        self._record_agent_outcome(task, succeeded=success)
        self.missions.check_completion(task.mission_id)
        return task

    def fail(self, task_id: str, *, reason: str, agent_id: str | None = None) -> FailResult:
        """Record a failed attempt; the retry budget is only spent by ``retry``."""

        if not reason.strip():
            raise ValidationError("A failure reason is required.")
        task = self.get(task_id)
        if task.status not in _FAILABLE_STATUSES:
            raise StateConflictError(
                f"Task can only fail from pending or in_progress status, got {task.status.value}.",
            )
        now = utc_now()
        task.retry_history.append(
            RetryAttempt(
                attempt=task.retry_count + 1,
                error=reason,
                timestamp=now,
                agent_id=agent_id or task.assigned_to,
            ),
        )
        task.status = TaskStatus.FAILED
        task.error = reason
        task.completed_at = now
        task.updated_at = now
        task = self.store.save_task(task)
        self._record_agent_outcome(task, succeeded=False)
        if task.needs_audit:
            logger.warning(
                "Task %s exhausted its retry budget (%d/%d) and needs audit",
                task.id,
                task.retry_count,
                task.max_retries,
            )
        return FailResult(task=task, needs_audit=task.needs_audit, can_retry=task.can_retry)

    def retry(self, task_id: str, *, clear_assignment: bool = False) -> Task:
        task = self.get(task_id)
        if task.status != TaskStatus.FAILED:
            raise StateConflictError(
                f"Only failed tasks can be retried, got {task.status.value}.",
            )
        if task.auditor_review_id is not None:
            raise StateConflictError(
                f"Task {task.id} is under audit ({task.auditor_review_id}); "
                "apply an audit decision instead.",
            )
        if task.retry_count >= task.max_retries:
            raise StateConflictError(
                f"Task {task.id} reached max retries ({task.max_retries}); audit required.",
                needs_audit=True,
            )
        task.retry_count += 1
        _reset_to_pending(task)
        if clear_assignment:
            task.assigned_to = None
        logger.debug("Task %s retried (%d/%d)", task.id, task.retry_count, task.max_retries)
        return self.store.save_task(task)

    def request_audit(self, task_id: str) -> Task:
        """Open an auditor review for a task that exhausted its retries."""

        task = self.get(task_id)
        if task.status != TaskStatus.FAILED or not task.needs_audit:
            raise StateConflictError(
                f"Task {task.id} does not need audit "
                f"(status={task.status.value}, retries={task.retry_count}/{task.max_retries}, "
                f"auditor_review_id={task.auditor_review_id}).",
            )
        auditor = self._best_idle_agent(
            role=self.auditor_role,
            task_type=TaskType.AUDITOR_REVIEW,
            mission_id=task.mission_id,
            require_runtime=False,
        )
        audit_task = self._new_task(
            mission_id=task.mission_id,
            title=f"Audit failed task: {task.title}",
            description=(
                f"Task {task.id} failed {len(task.retry_history)} times. "
                "Decide whether to reassign, refine, retry or escalate to a human."
            ),
            task_type=TaskType.AUDITOR_REVIEW,
            priority=Priority.HIGH,
            assigned_to=auditor.id if auditor is not None else None,
            input_payload={
                "failedTaskId": task.id,
                "taskTitle": task.title,
                "taskDescription": task.description,
                "error": task.error,
                "retryCount": task.retry_count,
                "maxRetries": task.max_retries,
                "retryHistory": [attempt.to_dict() for attempt in task.retry_history],
            },
        )
        task.auditor_review_id = audit_task.id
        task.updated_at = utc_now()
        self.store.save_task(task)
        self.missions.attach_task(
            task.mission_id,
            audit_task,
            action="audit_requested",
            details={"failedTaskId": task.id},
        )
        return audit_task

    def apply_audit_decision(self, task_id: str, decision: AuditDecision) -> AuditOutcome:
        """Apply a decision to a failed task, addressed directly or through its audit task."""

        task = self.get(task_id)
        audit_task: Task | None = None
        if task.task_type == TaskType.AUDITOR_REVIEW:
            failed_task_id = task.input.get("failedTaskId")
            if not failed_task_id:
                raise ValidationError(f"Audit task {task.id} has no input.failedTaskId.")
            audit_task = task
            task = self.get(str(failed_task_id))
        elif task.auditor_review_id is not None:
            audit_task = self.store.get_task(task.auditor_review_id)

        if task.status != TaskStatus.FAILED:
            raise StateConflictError(
                f"Audit decisions apply to failed tasks, got {task.status.value}.",
            )

        outcome = AuditOutcome(task=task, decision=decision, audit_task=audit_task)
        if isinstance(decision, ReassignDecision):
            agent = self._best_idle_agent(
                role=decision.role,
                task_type=task.task_type,
                mission_id=task.mission_id,
                require_runtime=True,
            )
            if agent is None:
                raise NotFoundError("agent", f"idle {decision.role} with a runtime")
            task.assigned_to = agent.id
            task.auditor_review_id = None
            _reset_to_pending(task)
            outcome.assigned_agent = agent
        elif isinstance(decision, RefineDecision):
            task.description = decision.description
            task.auditor_review_id = None
            _reset_to_pending(task)
        elif isinstance(decision, EscalateHumanDecision):
            outcome.human_task = self._escalate(task, decision, audit_task)
        elif isinstance(decision, RetryDecision):
            task.retry_count = 0
            task.max_retries += 1
            task.auditor_review_id = None
            _reset_to_pending(task)

        outcome.task = self.store.save_task(task)
        if audit_task is not None and audit_task.status != TaskStatus.COMPLETED:
            now = utc_now()
            audit_task.status = TaskStatus.COMPLETED
            audit_task.output = decision_to_payload(decision)
            audit_task.completed_at = now
            audit_task.updated_at = now
            outcome.audit_task = self.store.save_task(audit_task)

        self.missions.log(
            task.mission_id,
            "audit_decision_applied",
            {"taskId": task.id, "decision": decision.kind.value, "reason": decision.reason},
        )
        logger.info("Audit decision %s applied to task %s", decision.kind.value, task.id)
        return outcome

    def submit_human_response(self, human_task_id: str, *, response: str) -> HumanResponseResult:
        """Close a human question and queue the continuation of the blocked analysis."""

        if not response.strip():
            raise ValidationError("Response is required.")
        human_task = self.get(human_task_id)
        if human_task.task_type != TaskType.HUMAN_INPUT:
            raise ValidationError(f"Task {human_task.id} is not a human_input task.")
        if human_task.status != TaskStatus.PENDING:
            raise StateConflictError(
                f"Human task {human_task.id} is already {human_task.status.value}.",
            )
        parent_id = human_task.input.get("parentTaskId")
        if not parent_id:
            raise ValidationError(f"Human task {human_task.id} has no parent task.")
        parent = self.get(str(parent_id))
        mission = self.missions.get(human_task.mission_id)

        now = utc_now()
        human_task.status = TaskStatus.COMPLETED
        human_task.output = {"humanResponse": response}
        human_task.completed_at = now
        human_task.updated_at = now
        human_task = self.store.save_task(human_task)
        self.missions.set_awaiting_human(mission.id, None)

        continuation = self._new_task(
            mission_id=parent.mission_id,
            title=RESUME_TASK_TITLE,
            description=(
                f"Continue '{parent.title}' using the human response below.\n\n"
                f"Question: {human_task.input.get('question', '')}\n"
                f"Response: {response}"
            ),
            task_type=TaskType.MISSION_ANALYSIS,
            priority=parent.priority,
            assigned_to=parent.assigned_to,
            input_payload={
                "originalTaskId": parent.id,
                "humanResponse": response,
                "originalMission": {
                    "title": mission.title,
                    "description": mission.description,
                },
            },
        )
        parent.status = TaskStatus.COMPLETED
        parent.completed_at = now
        parent.updated_at = now
        parent.output = {
            "success": True,
            "result": {"awaitingHumanInput": True, "resumedBy": continuation.id},
        }
        parent = self.store.save_task(parent)
        self.missions.attach_task(
            mission.id,
            continuation,
            action="human_response_received",
            details={"humanTaskId": human_task.id, "parentTaskId": parent.id},
        )
        return HumanResponseResult(
            human_task=human_task,
            parent_task=parent,
            continuation_task=continuation,
        )

    def _escalate(
        self,
        task: Task,
        decision: EscalateHumanDecision,
        audit_task: Task | None,
    ) -> Task:
        human_task = self._new_task(
            mission_id=task.mission_id,
            title=f"Human input needed: {task.title}",
            description=decision.question,
            task_type=TaskType.HUMAN_INPUT,
            priority=Priority.HIGH,
            assigned_to=None,
            input_payload={
                "parentTaskId": task.id,
                "auditorTaskId": audit_task.id if audit_task is not None else None,
                "originalTaskId": task.id,
                "question": decision.question,
                "reason": decision.reason,
            },
        )
        task.status = TaskStatus.AWAITING_HUMAN_RESPONSE
        task.human_task_id = human_task.id
        task.updated_at = utc_now()
        self.missions.attach_task(
            task.mission_id,
            human_task,
            action="human_input_requested",
            details={"parentTaskId": task.id},
        )
        self.missions.set_awaiting_human(task.mission_id, human_task.id)
        return human_task

    def _best_idle_agent(
        self,
        *,
        role: str,
        task_type: TaskType,
        mission_id: str,
        require_runtime: bool,
    ) -> Agent | None:
        candidates = [
            agent
            for agent in self.store.find_agents(roles=(role,), statuses=(AgentStatus.IDLE,))
            if not require_runtime or agent.runtime_id is not None
        ]
        if not candidates:
            return None
        ranked = self.scorer.rank(
            candidates,
            ScoringCriteria(task_type=task_type, mission_id=mission_id),
        )
        by_id = {agent.id: agent for agent in candidates}
        return by_id[ranked[0].agent_id]

    def _dependencies_completed(self, task: Task) -> bool:
        if not task.dependencies:
            return True
        found = self.store.find_tasks(task_ids=task.dependencies)
        return len(found) == len(set(task.dependencies)) and all(
            dependency.status == TaskStatus.COMPLETED for dependency in found
        )

    def _record_agent_outcome(self, task: Task, *, succeeded: bool) -> None:
        if task.assigned_to is None:
            return
        duration_ms = 0
        if task.started_at is not None and task.completed_at is not None:
            duration_ms = int((task.completed_at - task.started_at).total_seconds() * 1000)
        self.agents.record_task_outcome(
            task.assigned_to,
            succeeded=succeeded,
            duration_ms=duration_ms,
        )

    def _new_task(  # noqa: PLR0913
        self,
        *,
        mission_id: str,
        title: str,
        description: str,
        task_type: TaskType,
        priority: Priority,
        assigned_to: str | None,
        input_payload: dict[str, Any],
        dependencies: list[str] | None = None,
        max_retries: int | None = None,
    ) -> Task:
        now = utc_now()
        task = Task(
            id=str(uuid4()),
            mission_id=mission_id,
            title=title,
            description=description,
            task_type=task_type,
            priority=priority,
            assigned_to=assigned_to,
            dependencies=list(dependencies or []),
            max_retries=self.default_max_retries if max_retries is None else max_retries,
            input=input_payload,
            created_at=now,
            updated_at=now,
        )
        return self.store.save_task(task)


def _reset_to_pending(task: Task) -> None:
    task.status = TaskStatus.PENDING
    task.error = None
    task.started_at = None
    task.completed_at = None
    task.updated_at = utc_now()
