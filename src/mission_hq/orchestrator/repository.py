"""SQLite record store for missions, tasks and agents."""

from __future__ import annotations

import json
import logging
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import case, func, or_
from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from mission_hq.orchestrator.errors import StoreError
from mission_hq.orchestrator.models import (
    PRIORITY_RANK,
    Agent,
    AgentStatus,
    Mission,
    MissionStatus,
    OrchestrationLogEntry,
    Priority,
    RetryAttempt,
    Task,
    TaskStatus,
    TaskType,
)
from mission_hq.storage.alembic_runner import upgrade_head
from mission_hq.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
)
from mission_hq.storage.sqlmodel_models import (
    AgentRecord,
    MissionLogEntryRecord,
    MissionRecord,
    TaskRecord,
)

logger = logging.getLogger(__name__)

_PRIORITY_ORDER = case(
    {priority.value: rank for priority, rank in PRIORITY_RANK.items()},
    value=col(TaskRecord.priority),
    else_=len(PRIORITY_RANK),
)


class SqlRecordStore:
    """``RecordStore`` backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        upgrade_head(self.db_path)

    def get_mission(self, mission_id: str) -> Mission | None:
        with self._session() as session:
            row = session.get(MissionRecord, mission_id)
            if row is None:
                return None
            return _to_mission(row, self._log_entries(session, mission_id))

    def save_mission(self, mission: Mission) -> Mission:
        with self._session() as session:
            row = session.get(MissionRecord, mission.id)
            if row is None:
                row = MissionRecord(mission_id=mission.id, created_at=to_db_datetime(mission.created_at))
            row.title = mission.title
            row.description = mission.description
            row.objective = mission.objective
            row.priority = mission.priority.value
            row.status = mission.status.value
            row.squad_lead_id = mission.squad_lead_id
            row.task_ids_json = _dump(mission.task_ids)
            row.awaiting_human_task_id = mission.awaiting_human_task_id
            row.auto_orchestrate = mission.auto_orchestrate
            row.initial_analysis_task_id = mission.initial_analysis_task_id
            row.started_at = _db_or_none(mission.started_at)
            row.completed_at = _db_or_none(mission.completed_at)
            row.updated_at = to_db_datetime(mission.updated_at)
            session.add(row)
            session.flush()

            stored = session.exec(
                select(func.count())
                .select_from(MissionLogEntryRecord)
                .where(MissionLogEntryRecord.mission_id == mission.id),
            ).one()
            for entry in mission.orchestration_log[stored:]:
                session.add(
                    MissionLogEntryRecord(
                        mission_id=mission.id,
                        action=entry.action,
                        details_json=_dump(entry.details) if entry.details else None,
                        created_at=to_db_datetime(entry.timestamp),
                    ),
                )
            session.commit()
        return self.get_mission(mission.id) or mission

    def delete_mission(self, mission_id: str) -> None:
        with self._session() as session:
            session.exec(
                sa_delete(MissionRecord).where(col(MissionRecord.mission_id) == mission_id),
            )
            session.commit()

    def find_missions(
        self,
        *,
        statuses: Collection[MissionStatus] | None = None,
        squad_lead_id: str | None = None,
    ) -> list[Mission]:
        statement = select(MissionRecord)
        if statuses is not None:
            statement = statement.where(
                col(MissionRecord.status).in_([status.value for status in statuses]),
            )
        if squad_lead_id is not None:
            statement = statement.where(MissionRecord.squad_lead_id == squad_lead_id)
        statement = statement.order_by(col(MissionRecord.created_at).asc())
        with self._session() as session:
            return [
                _to_mission(row, self._log_entries(session, row.mission_id))
                for row in session.exec(statement).all()
            ]

    def get_task(self, task_id: str) -> Task | None:
        with self._session() as session:
            row = session.exec(select(TaskRecord).where(TaskRecord.task_id == task_id)).one_or_none()
            return _to_task(row) if row is not None else None

    def save_task(self, task: Task) -> Task:
        with self._session() as session:
            row = session.exec(select(TaskRecord).where(TaskRecord.task_id == task.id)).one_or_none()
            if row is None:
                row = TaskRecord(
                    task_id=task.id,
                    mission_id=task.mission_id,
                    created_at=to_db_datetime(task.created_at),
                )
            row.mission_id = task.mission_id
            row.title = task.title
            row.description = task.description
            row.task_type = task.task_type.value
            row.status = task.status.value
            row.priority = task.priority.value
            row.assigned_to = task.assigned_to
            row.dependencies_json = _dump(task.dependencies)
            row.retry_count = task.retry_count
            row.max_retries = task.max_retries
            row.retry_history_json = _dump([attempt.to_dict() for attempt in task.retry_history])
            row.auditor_review_id = task.auditor_review_id
            row.human_task_id = task.human_task_id
            row.input_json = _dump(task.input)
            row.output_json = _dump(task.output) if task.output is not None else None
            row.error = task.error
            row.started_at = _db_or_none(task.started_at)
            row.completed_at = _db_or_none(task.completed_at)
            row.updated_at = to_db_datetime(task.updated_at)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_task(row)

    def find_tasks(  # noqa: PLR0913
        self,
        *,
        mission_id: str | None = None,
        statuses: Collection[TaskStatus] | None = None,
        task_types: Collection[TaskType] | None = None,
        exclude_types: Collection[TaskType] | None = None,
        assignees: Collection[str | None] | None = None,
        task_ids: Collection[str] | None = None,
        by_priority: bool = False,
        limit: int | None = None,
    ) -> list[Task]:
        statement = select(TaskRecord)
        if mission_id is not None:
            statement = statement.where(TaskRecord.mission_id == mission_id)
        if statuses is not None:
            statement = statement.where(
                col(TaskRecord.status).in_([status.value for status in statuses]),
            )
        if task_types is not None:
            statement = statement.where(
                col(TaskRecord.task_type).in_([task_type.value for task_type in task_types]),
            )
        if exclude_types is not None:
            statement = statement.where(
                col(TaskRecord.task_type).not_in([task_type.value for task_type in exclude_types]),
            )
        if assignees is not None:
            statement = statement.where(_membership(col(TaskRecord.assigned_to), assignees))
        if task_ids is not None:
            statement = statement.where(col(TaskRecord.task_id).in_(list(task_ids)))
        if by_priority:
            statement = statement.order_by(
                _PRIORITY_ORDER,
                col(TaskRecord.created_at).asc(),
                col(TaskRecord.id).asc(),
            )
        else:
            statement = statement.order_by(col(TaskRecord.id).asc())
        if limit is not None:
            statement = statement.limit(limit)
        with self._session() as session:
            return [_to_task(row) for row in session.exec(statement).all()]

    def count_tasks(self, *, assigned_to: str, statuses: Collection[TaskStatus]) -> int:
        with self._session() as session:
            return session.exec(
                select(func.count())
                .select_from(TaskRecord)
                .where(
                    TaskRecord.assigned_to == assigned_to,
                    col(TaskRecord.status).in_([status.value for status in statuses]),
                ),
            ).one()

    def get_agent(self, agent_id: str) -> Agent | None:
        with self._session() as session:
            row = session.get(AgentRecord, agent_id)
            return _to_agent(row) if row is not None else None

    def save_agent(self, agent: Agent) -> Agent:
        with self._session() as session:
            row = session.get(AgentRecord, agent.id)
            if row is None:
                row = AgentRecord(agent_id=agent.id, created_at=to_db_datetime(agent.created_at))
            row.name = agent.name
            row.role = agent.role
            row.capabilities_json = _dump(agent.capabilities)
            row.status = agent.status.value
            row.personality = agent.personality
            row.llm_model = agent.llm_model
            row.provider = agent.provider
            row.runtime_id = agent.runtime_id
            row.current_mission_id = agent.current_mission_id
            row.is_reusable = agent.is_reusable
            row.mission_history_json = _dump(agent.mission_history)
            row.total_missions_completed = agent.total_missions_completed
            row.tasks_completed = agent.tasks_completed
            row.tasks_failed = agent.tasks_failed
            row.success_rate = agent.success_rate
            row.total_duration_ms = agent.total_duration_ms
            row.average_duration_ms = agent.average_duration_ms
            row.last_task_completed_at = _db_or_none(agent.last_task_completed_at)
            row.last_mission_completed_at = _db_or_none(agent.last_mission_completed_at)
            row.updated_at = to_db_datetime(agent.updated_at)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_agent(row)

    def delete_agent(self, agent_id: str) -> None:
        with self._session() as session:
            session.exec(sa_delete(AgentRecord).where(col(AgentRecord.agent_id) == agent_id))
            session.commit()

    def find_agents(
        self,
        *,
        roles: Collection[str] | None = None,
        statuses: Collection[AgentStatus] | None = None,
        is_reusable: bool | None = None,
        current_mission_ids: Collection[str | None] | None = None,
    ) -> list[Agent]:
        statement = select(AgentRecord)
        if roles is not None:
            statement = statement.where(col(AgentRecord.role).in_(list(roles)))
        if statuses is not None:
            statement = statement.where(
                col(AgentRecord.status).in_([status.value for status in statuses]),
            )
        if is_reusable is not None:
            statement = statement.where(AgentRecord.is_reusable == is_reusable)
        if current_mission_ids is not None:
            statement = statement.where(
                _membership(col(AgentRecord.current_mission_id), current_mission_ids),
            )
        statement = statement.order_by(col(AgentRecord.created_at).asc())
        with self._session() as session:
            return [_to_agent(row) for row in session.exec(statement).all()]

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as error:
            logger.error("Record store operation failed on %s: %s", self.db_path, error)
            raise StoreError(f"Record store failure: {error}") from error

    @staticmethod
    def _log_entries(session: Session, mission_id: str) -> list[MissionLogEntryRecord]:
        return list(
            session.exec(
                select(MissionLogEntryRecord)
                .where(MissionLogEntryRecord.mission_id == mission_id)
                .order_by(col(MissionLogEntryRecord.id).asc()),
            ).all(),
        )


def _membership(column: Any, values: Collection[str | None]) -> Any:
    concrete = [value for value in values if value is not None]
    clauses = []
    if concrete:
        clauses.append(column.in_(concrete))
    if len(concrete) != len(values):
        clauses.append(column.is_(None))
    if not clauses:
        return column.in_([])
    return or_(*clauses)


def _dump(value: object) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _db_or_none(value: datetime | None) -> datetime | None:
    return to_db_datetime(value) if value is not None else None


def _aware_or_none(value: datetime | None) -> datetime | None:
    return to_utc_aware_datetime(value) if value is not None else None


def _to_mission(row: MissionRecord, entries: list[MissionLogEntryRecord]) -> Mission:
    return Mission(
        id=row.mission_id,
        title=row.title,
        description=row.description,
        objective=row.objective,
        priority=Priority(row.priority),
        status=MissionStatus(row.status),
        squad_lead_id=row.squad_lead_id,
        task_ids=json.loads(row.task_ids_json),
        orchestration_log=[
            OrchestrationLogEntry(
                action=entry.action,
                details=json.loads(entry.details_json) if entry.details_json else {},
                timestamp=to_utc_aware_datetime(entry.created_at),
            )
            for entry in entries
        ],
        awaiting_human_task_id=row.awaiting_human_task_id,
        auto_orchestrate=row.auto_orchestrate,
        initial_analysis_task_id=row.initial_analysis_task_id,
        started_at=_aware_or_none(row.started_at),
        completed_at=_aware_or_none(row.completed_at),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_task(row: TaskRecord) -> Task:
    return Task(
        id=row.task_id,
        mission_id=row.mission_id,
        title=row.title,
        description=row.description,
        task_type=TaskType(row.task_type),
        status=TaskStatus(row.status),
        priority=Priority(row.priority),
        assigned_to=row.assigned_to,
        dependencies=json.loads(row.dependencies_json),
        retry_count=row.retry_count,
        max_retries=row.max_retries,
        retry_history=[RetryAttempt.from_dict(item) for item in json.loads(row.retry_history_json)],
        auditor_review_id=row.auditor_review_id,
        human_task_id=row.human_task_id,
        input=json.loads(row.input_json),
        output=json.loads(row.output_json) if row.output_json is not None else None,
        error=row.error,
        started_at=_aware_or_none(row.started_at),
        completed_at=_aware_or_none(row.completed_at),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_agent(row: AgentRecord) -> Agent:
    return Agent(
        id=row.agent_id,
        name=row.name,
        role=row.role,
        capabilities=json.loads(row.capabilities_json),
        status=AgentStatus(row.status),
        personality=row.personality,
        llm_model=row.llm_model,
        provider=row.provider,
        runtime_id=row.runtime_id,
        current_mission_id=row.current_mission_id,
        is_reusable=row.is_reusable,
        mission_history=json.loads(row.mission_history_json),
        total_missions_completed=row.total_missions_completed,
        tasks_completed=row.tasks_completed,
        tasks_failed=row.tasks_failed,
        success_rate=row.success_rate,
        total_duration_ms=row.total_duration_ms,
        average_duration_ms=row.average_duration_ms,
        last_task_completed_at=_aware_or_none(row.last_task_completed_at),
        last_mission_completed_at=_aware_or_none(row.last_mission_completed_at),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
