"""SQLModel ORM tables for the mission store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text
from sqlmodel import Field, SQLModel


class MissionRecord(SQLModel, table=True):
    __tablename__ = "missions"  # type: ignore[bad-override]

    mission_id: str = Field(primary_key=True)
    title: str
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    objective: str = Field(default="", sa_column=Column(Text, nullable=False))
    priority: str = Field(index=True)
    status: str = Field(index=True)
    squad_lead_id: str | None = Field(default=None, index=True)
    task_ids_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    awaiting_human_task_id: str | None = None
    auto_orchestrate: bool = Field(default=False)
    initial_analysis_task_id: str | None = None
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class MissionLogEntryRecord(SQLModel, table=True):
    """Append-only orchestration log; rows are never updated."""

    __tablename__ = "mission_log_entries"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_mission_log_entries_mission", "mission_id", "id"),)

    id: int | None = Field(default=None, primary_key=True)
    mission_id: str = Field(
        sa_column=Column(
            ForeignKey("missions.mission_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    action: str = Field(index=True)
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskRecord(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_tasks_claim", "status", "priority", "created_at"),
        Index("idx_tasks_mission_status", "mission_id", "status"),
    )

    id: int | None = Field(default=None, primary_key=True)
    task_id: str = Field(unique=True, index=True)
    mission_id: str = Field(
        sa_column=Column(
            ForeignKey("missions.mission_id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    title: str
    description: str = Field(default="", sa_column=Column(Text, nullable=False))
    task_type: str = Field(index=True)
    status: str
    priority: str
    assigned_to: str | None = Field(default=None, index=True)
    dependencies_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)
    retry_history_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    auditor_review_id: str | None = None
    human_task_id: str | None = None
    input_json: str = Field(default="{}", sa_column=Column(Text, nullable=False))
    output_json: str | None = Field(default=None, sa_column=Column(Text))
    error: str | None = Field(default=None, sa_column=Column(Text))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AgentRecord(SQLModel, table=True):
    __tablename__ = "agents"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_agents_role_status", "role", "status"),)

    agent_id: str = Field(primary_key=True)
    name: str
    role: str
    capabilities_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    status: str
    personality: str = Field(default="", sa_column=Column(Text, nullable=False))
    llm_model: str | None = None
    provider: str | None = None
    runtime_id: str | None = None
    current_mission_id: str | None = Field(default=None, index=True)
    is_reusable: bool = Field(default=True)
    mission_history_json: str = Field(default="[]", sa_column=Column(Text, nullable=False))
    total_missions_completed: int = Field(default=0)
    tasks_completed: int = Field(default=0)
    tasks_failed: int = Field(default=0)
    success_rate: int = Field(default=100)
    total_duration_ms: int = Field(default=0)
    average_duration_ms: int = Field(default=0)
    last_task_completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    last_mission_completed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
