"""Multi-factor agent scoring for task assignment.

Score = role/capability (0..40) + availability (0..30) + track record (0..20)
+ workload penalty (-10..0), clamped to 0..100.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from mission_hq.orchestrator.models import (
    SQUAD_LEAD_ROLE,
    Agent,
    AgentStatus,
    TaskStatus,
    TaskType,
)
from mission_hq.orchestrator.store import RecordStore
from mission_hq.storage.common import utc_now

logger = logging.getLogger(__name__)

TASK_TYPE_ROLES: dict[TaskType, str] = {
    TaskType.WEB_SEARCH: "researcher",
    TaskType.DATA_ANALYSIS: "analyst",
    TaskType.CONTENT_GENERATION: "writer",
    TaskType.CODE_EXECUTION: "developer",
    TaskType.CODE_REVIEW: "developer",
    TaskType.MISSION_ANALYSIS: SQUAD_LEAD_ROLE,
    TaskType.AGENT_CREATION: SQUAD_LEAD_ROLE,
    TaskType.COORDINATION: SQUAD_LEAD_ROLE,
}
WORKLOAD_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
ROLE_BAND_MAX = 40
AVAILABILITY_BAND_MAX = 30
TRACK_RECORD_BAND_MAX = 20
WORKLOAD_PENALTY_MAX = 10


@dataclass(slots=True)
class ScoringCriteria:
    """What the caller is trying to staff."""

    task_type: TaskType | None = None
    required_capabilities: tuple[str, ...] = ()
    preferred_agent_id: str | None = None
    mission_id: str | None = None


@dataclass(slots=True)
class ScoreBreakdown:
    role_match: int
    availability: int
    track_record: int
    workload: int


@dataclass(slots=True)
class AgentScore:
    """Scored agent with per-band breakdown and human-readable reasons."""

    agent_id: str
    agent_name: str
    role: str
    total: int
    breakdown: ScoreBreakdown
    reasons: list[str] = field(default_factory=list)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def score_agent(agent: Agent, criteria: ScoringCriteria, *, workload: int) -> AgentScore:
    """Score one agent given the number of pending/in-progress tasks it holds."""

    reasons: list[str] = []
    role_match = _role_band(agent, criteria, reasons)
    availability = _availability_band(agent, criteria, reasons)
    track_record = _track_record_band(agent, reasons)
    workload_score = _workload_band(workload, reasons)
    total = role_match + availability + track_record + workload_score
    return AgentScore(
        agent_id=agent.id,
        agent_name=agent.name,
        role=agent.role,
        total=max(0, min(100, total)),
        breakdown=ScoreBreakdown(
            role_match=role_match,
            availability=availability,
            track_record=track_record,
            workload=workload_score,
        ),
        reasons=reasons,
    )


def _role_band(agent: Agent, criteria: ScoringCriteria, reasons: list[str]) -> int:
    if criteria.preferred_agent_id is not None and agent.id == criteria.preferred_agent_id:
        reasons.append("Preferred agent selected")
        return ROLE_BAND_MAX

    score = 0
    if criteria.task_type is not None:
        preferred_role = TASK_TYPE_ROLES.get(criteria.task_type)
        if preferred_role is not None and agent.role == preferred_role:
            score += 30
            reasons.append(f"Role {agent.role!r} fits task type {criteria.task_type.value!r}")
        elif agent.role == SQUAD_LEAD_ROLE:
            score += 10
            reasons.append("Squad lead can take the task")

    required = criteria.required_capabilities
    if required:
        owned = [capability.lower() for capability in agent.capabilities]
        matched = [
            capability
            for capability in required
            if any(capability.lower() in candidate for candidate in owned)
        ]
        score += round_half_up(10 * len(matched) / len(required))
        if matched:
            reasons.append(f"Has {len(matched)}/{len(required)} required capabilities")

    if agent.capabilities:
        score += min(10, 2 * len(agent.capabilities))
        reasons.append(f"Has {len(agent.capabilities)} general capabilities")

    return min(ROLE_BAND_MAX, score)


def _availability_band(agent: Agent, criteria: ScoringCriteria, reasons: list[str]) -> int:
    score = 0
    if agent.status == AgentStatus.IDLE:
        score += 20
        reasons.append("Agent is idle")
    elif agent.status == AgentStatus.ACTIVE:
        score += 10
        reasons.append("Agent is active but can take work")

    if agent.current_mission_id is None:
        score += 10
        reasons.append("No mission assigned")
    if criteria.mission_id is not None and agent.current_mission_id == criteria.mission_id:
        score -= 5
        reasons.append("Already working on this mission")

    return max(0, min(AVAILABILITY_BAND_MAX, score))


def _track_record_band(agent: Agent, reasons: list[str]) -> int:
    score = round_half_up(agent.success_rate / 10)
    if agent.success_rate >= 90:
        reasons.append(f"Excellent success rate: {agent.success_rate}%")
    elif agent.success_rate >= 70:
        reasons.append(f"Good success rate: {agent.success_rate}%")
    elif agent.success_rate < 50:
        reasons.append(f"Low success rate: {agent.success_rate}%")

    completed = agent.tasks_completed
    if completed >= 10:
        score += 10
        reasons.append(f"Very experienced: {completed} tasks completed")
    elif completed >= 5:
        score += 7
        reasons.append(f"Experienced: {completed} tasks completed")
    elif completed >= 1:
        score += 4
        reasons.append(f"Some experience: {completed} tasks completed")
    else:
        reasons.append("No previous experience")

    return min(TRACK_RECORD_BAND_MAX, score)


def _workload_band(open_tasks: int, reasons: list[str]) -> int:
    if open_tasks == 0:
        reasons.append("No current workload")
    elif open_tasks <= 2:
        reasons.append(f"{open_tasks} open task(s)")
    else:
        reasons.append(f"{open_tasks} open tasks, high load")
    return -min(WORKLOAD_PENALTY_MAX, 5 * open_tasks)


class AgentScorer:
    """Scores agents against criteria using live workload from the record store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def score(self, agent: Agent, criteria: ScoringCriteria) -> AgentScore:
        workload = self.store.count_tasks(assigned_to=agent.id, statuses=WORKLOAD_STATUSES)
        return score_agent(agent, criteria, workload=workload)

    def rank(self, agents: Iterable[Agent], criteria: ScoringCriteria) -> list[AgentScore]:
        """Descending by total; equal totals ordered by agent id."""

        scores = [self.score(agent, criteria) for agent in agents]
        scores.sort(key=lambda item: (-item.total, item.agent_id))
        return scores

    def score_agents(self, criteria: ScoringCriteria) -> list[AgentScore]:
        """Score every idle or active reusable agent."""

        candidates = self.store.find_agents(
            statuses=(AgentStatus.IDLE, AgentStatus.ACTIVE),
            is_reusable=True,
        )
        return self.rank(candidates, criteria)

    def best_agent(self, criteria: ScoringCriteria) -> AgentScore | None:
        ranked = self.score_agents(criteria)
        return ranked[0] if ranked else None


def update_agent_metrics(agent: Agent, *, succeeded: bool, duration_ms: int) -> Agent:
    """Fold one finished task into the agent's counters and success rate."""

    if succeeded:
        agent.tasks_completed += 1
        agent.last_task_completed_at = utc_now()
    else:
        agent.tasks_failed += 1
    agent.total_duration_ms += max(0, duration_ms)
    finished = agent.tasks_completed + agent.tasks_failed
    agent.average_duration_ms = round_half_up(agent.total_duration_ms / finished)
    agent.success_rate = round_half_up(agent.tasks_completed / finished * 100)
    agent.updated_at = utc_now()
    logger.debug(
        "Agent %s metrics updated: completed=%d failed=%d success_rate=%d",
        agent.id,
        agent.tasks_completed,
        agent.tasks_failed,
        agent.success_rate,
    )
    return agent
