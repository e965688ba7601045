"""Initial mission store schema: missions, orchestration log, tasks, agents."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261016_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "missions",
        sa.Column("mission_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("objective", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("squad_lead_id", sa.String(), nullable=True),
        sa.Column("task_ids_json", sa.Text(), nullable=False),
        sa.Column("awaiting_human_task_id", sa.String(), nullable=True),
        sa.Column("auto_orchestrate", sa.Boolean(), nullable=False),
        sa.Column("initial_analysis_task_id", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("mission_id"),
    )
    op.create_index("ix_missions_priority", "missions", ["priority"])
    op.create_index("ix_missions_status", "missions", ["status"])
    op.create_index("ix_missions_squad_lead_id", "missions", ["squad_lead_id"])

    op.create_table(
        "mission_log_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("mission_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["mission_id"], ["missions.mission_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_mission_log_entries_mission",
        "mission_log_entries",
        ["mission_id", "id"],
    )
    op.create_index("ix_mission_log_entries_action", "mission_log_entries", ["action"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(), nullable=False),
        sa.Column("mission_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("task_type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("assigned_to", sa.String(), nullable=True),
        sa.Column("dependencies_json", sa.Text(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("retry_history_json", sa.Text(), nullable=False),
        sa.Column("auditor_review_id", sa.String(), nullable=True),
        sa.Column("human_task_id", sa.String(), nullable=True),
        sa.Column("input_json", sa.Text(), nullable=False),
        sa.Column("output_json", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["mission_id"], ["missions.mission_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tasks_task_id", "tasks", ["task_id"], unique=True)
    op.create_index("ix_tasks_task_type", "tasks", ["task_type"])
    op.create_index("ix_tasks_assigned_to", "tasks", ["assigned_to"])
    op.create_index("idx_tasks_claim", "tasks", ["status", "priority", "created_at"])
    op.create_index("idx_tasks_mission_status", "tasks", ["mission_id", "status"])

    op.create_table(
        "agents",
        sa.Column("agent_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("capabilities_json", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("personality", sa.Text(), nullable=False),
        sa.Column("llm_model", sa.String(), nullable=True),
        sa.Column("provider", sa.String(), nullable=True),
        sa.Column("runtime_id", sa.String(), nullable=True),
        sa.Column("current_mission_id", sa.String(), nullable=True),
        sa.Column("is_reusable", sa.Boolean(), nullable=False),
        sa.Column("mission_history_json", sa.Text(), nullable=False),
        sa.Column("total_missions_completed", sa.Integer(), nullable=False),
        sa.Column("tasks_completed", sa.Integer(), nullable=False),
        sa.Column("tasks_failed", sa.Integer(), nullable=False),
        sa.Column("success_rate", sa.Integer(), nullable=False),
        sa.Column("total_duration_ms", sa.Integer(), nullable=False),
        sa.Column("average_duration_ms", sa.Integer(), nullable=False),
        sa.Column("last_task_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_mission_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("agent_id"),
    )
    op.create_index("idx_agents_role_status", "agents", ["role", "status"])
    op.create_index("ix_agents_current_mission_id", "agents", ["current_mission_id"])


def downgrade() -> None:
    op.drop_index("ix_agents_current_mission_id", table_name="agents")
    op.drop_index("idx_agents_role_status", table_name="agents")
    op.drop_table("agents")

    op.drop_index("idx_tasks_mission_status", table_name="tasks")
    op.drop_index("idx_tasks_claim", table_name="tasks")
    op.drop_index("ix_tasks_assigned_to", table_name="tasks")
    op.drop_index("ix_tasks_task_type", table_name="tasks")
    op.drop_index("ix_tasks_task_id", table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_mission_log_entries_action", table_name="mission_log_entries")
    op.drop_index("idx_mission_log_entries_mission", table_name="mission_log_entries")
    op.drop_table("mission_log_entries")

    op.drop_index("ix_missions_squad_lead_id", table_name="missions")
    op.drop_index("ix_missions_status", table_name="missions")
    op.drop_index("ix_missions_priority", table_name="missions")
    op.drop_table("missions")
