"""Domain models for missions, tasks and agents."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from mission_hq.storage.common import from_iso, utc_now


class MissionStatus(str, Enum):
    """Mission lifecycle states; ``completed`` is terminal."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    AWAITING_HUMAN_RESPONSE = "awaiting_human_response"


class TaskType(str, Enum):
    """Kinds of work a task can carry."""

    WEB_SEARCH = "web_search"
    DATA_ANALYSIS = "data_analysis"
    CONTENT_GENERATION = "content_generation"
    CODE_EXECUTION = "code_execution"
    CODE_REVIEW = "code_review"
    CUSTOM = "custom"
    MISSION_ANALYSIS = "mission_analysis"
    AGENT_CREATION = "agent_creation"
    COORDINATION = "coordination"
    HUMAN_INPUT = "human_input"
    AUDITOR_REVIEW = "auditor_review"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class AgentStatus(str, Enum):
    """Agent availability states."""

    IDLE = "idle"
    ACTIVE = "active"
    INACTIVE = "inactive"
    OFFLINE = "offline"


class EdgeStatus(str, Enum):
    COMPLETED = "completed"
    BLOCKED = "blocked"
    VALID = "valid"


FINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})
SQUAD_LEAD_ROLE = "squad_lead"


@dataclass(slots=True)
class RetryAttempt:
    """One recorded failure of a task."""

    attempt: int
    error: str
    timestamp: datetime
    agent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt": self.attempt,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "agentId": self.agent_id,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RetryAttempt:
        return cls(
            attempt=int(payload["attempt"]),
            error=str(payload["error"]),
            timestamp=from_iso(str(payload["timestamp"])),
            agent_id=payload.get("agentId"),
        )


@dataclass(slots=True)
class OrchestrationLogEntry:
    """Append-only mission log entry."""

    action: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class Mission:
    """Top-level objective decomposed into tasks."""

    id: str
    title: str
    description: str = ""
    objective: str = ""
    priority: Priority = Priority.MEDIUM
    status: MissionStatus = MissionStatus.DRAFT
    squad_lead_id: str | None = None
    task_ids: list[str] = field(default_factory=list)
    orchestration_log: list[OrchestrationLogEntry] = field(default_factory=list)
    awaiting_human_task_id: str | None = None
    auto_orchestrate: bool = False
    initial_analysis_task_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class Task:
    """One unit of work within a mission."""

    id: str
    mission_id: str
    title: str
    description: str = ""
    task_type: TaskType = TaskType.CUSTOM
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM
    assigned_to: str | None = None
    dependencies: list[str] = field(default_factory=list)
    retry_count: int = 0
    max_retries: int = 3
    retry_history: list[RetryAttempt] = field(default_factory=list)
    auditor_review_id: str | None = None
    human_task_id: str | None = None
    input: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def needs_audit(self) -> bool:
        """Retry budget exhausted and no audit in flight."""

        return self.retry_count >= self.max_retries and self.auditor_review_id is None

    @property
    def can_retry(self) -> bool:
        return self.retry_count < self.max_retries and self.auditor_review_id is None


@dataclass(slots=True)
class Agent:
    """Autonomous worker that executes tasks."""

    id: str
    name: str
    role: str
    capabilities: list[str] = field(default_factory=list)
    status: AgentStatus = AgentStatus.INACTIVE
    personality: str = ""
    llm_model: str | None = None
    provider: str | None = None
    runtime_id: str | None = None
    current_mission_id: str | None = None
    is_reusable: bool = True
    mission_history: list[str] = field(default_factory=list)
    total_missions_completed: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    success_rate: int = 100
    total_duration_ms: int = 0
    average_duration_ms: int = 0
    last_task_completed_at: datetime | None = None
    last_mission_completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class MissionCreate:
    """Input payload for creating a mission."""

    title: str
    description: str = ""
    objective: str = ""
    priority: Priority = Priority.MEDIUM
    auto_orchestrate: bool = False


@dataclass(slots=True)
class TaskCreate:
    """Input payload for creating a task inside a mission."""

    mission_id: str
    title: str
    description: str = ""
    task_type: TaskType = TaskType.CUSTOM
    priority: Priority = Priority.MEDIUM
    dependencies: tuple[str, ...] = ()
    assigned_to: str | None = None
    max_retries: int | None = None
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AgentCreate:
    """Input payload for registering an agent."""

    name: str
    role: str
    capabilities: tuple[str, ...] = ()
    personality: str = ""
    llm_model: str | None = None
    provider: str | None = None
    is_reusable: bool = True
    current_mission_id: str | None = None
