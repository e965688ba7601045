from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import allure
import pytest

from mission_hq.orchestrator.models import (
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
from mission_hq.orchestrator.repository import SqlRecordStore
from mission_hq.storage.alembic_runner import current_revision
from mission_hq.storage.common import utc_now

pytestmark = [
    allure.epic("Orchestration Engine"),
    allure.feature("SQLite Record Store"),
]


@pytest.fixture()
def repo(tmp_path: Path):
    store = SqlRecordStore(tmp_path / "nested" / "hq.db")
    store.init_schema()
    yield store
    store.close()


def _mission(repo: SqlRecordStore, mission_id: str = "m-1") -> Mission:
    return repo.save_mission(Mission(id=mission_id, title=f"Mission {mission_id}"))


def _task(task_id: str, *, mission_id: str = "m-1", **fields) -> Task:
    return Task(id=task_id, mission_id=mission_id, title=f"Task {task_id}", **fields)


def test_schema_is_migrated_to_head(tmp_path: Path) -> None:
    store = SqlRecordStore(tmp_path / "nested" / "schema.db")
    assert not store.db_path.parent.exists()

    store.init_schema()
    store.init_schema()

    assert current_revision(store.db_path) == "20261016_0001"
    store.close()


def test_mission_round_trip_appends_log_entries(repo: SqlRecordStore) -> None:
    mission = Mission(
        id="m-1",
        title="Ship it",
        priority=Priority.HIGH,
        task_ids=["t-1", "t-2"],
        orchestration_log=[OrchestrationLogEntry(action="mission_created", details={"a": 1})],
        auto_orchestrate=True,
    )
    repo.save_mission(mission)

    stored = repo.get_mission("m-1")
    assert stored is not None
    assert stored.priority == Priority.HIGH
    assert stored.task_ids == ["t-1", "t-2"]
    assert stored.auto_orchestrate is True
    assert stored.created_at.tzinfo is not None

    stored.status = MissionStatus.ACTIVE
    stored.started_at = utc_now()
    stored.orchestration_log.append(OrchestrationLogEntry(action="mission_started"))
    repo.save_mission(stored)

    reloaded = repo.get_mission("m-1")
    assert reloaded is not None
    assert reloaded.status == MissionStatus.ACTIVE
    assert [entry.action for entry in reloaded.orchestration_log] == [
        "mission_created",
        "mission_started",
    ]
    assert reloaded.orchestration_log[0].details == {"a": 1}
    assert reloaded.orchestration_log[1].details == {}
    assert repo.get_mission("missing") is None


def test_task_round_trip_keeps_json_fields(repo: SqlRecordStore) -> None:
    _mission(repo)
    now = utc_now()
    repo.save_task(
        _task(
            "t-1",
            task_type=TaskType.WEB_SEARCH,
            status=TaskStatus.FAILED,
            dependencies=["t-0"],
            retry_count=2,
            retry_history=[RetryAttempt(attempt=1, error="boom", timestamp=now, agent_id="a-1")],
            input={"query": "żółw"},
            output={"error": "boom"},
            error="boom",
            started_at=now,
        ),
    )

    task = repo.get_task("t-1")

    assert task is not None
    assert task.task_type == TaskType.WEB_SEARCH
    assert task.dependencies == ["t-0"]
    assert task.retry_history[0].agent_id == "a-1"
    assert task.retry_history[0].timestamp == now
    assert task.input == {"query": "żółw"}
    assert task.output == {"error": "boom"}
    assert task.started_at is not None
    assert abs(task.started_at - now) < timedelta(milliseconds=1)
    assert repo.get_task("nope") is None


def test_find_tasks_filters_and_priority_order(repo: SqlRecordStore) -> None:
    _mission(repo)
    _mission(repo, "m-2")
    base = utc_now()
    repo.save_task(_task("low", priority=Priority.LOW, created_at=base))
    repo.save_task(_task("med-late", priority=Priority.MEDIUM, created_at=base + timedelta(1)))
    repo.save_task(_task("med-early", priority=Priority.MEDIUM, created_at=base))
    repo.save_task(_task("high", priority=Priority.HIGH, assigned_to="a-1", created_at=base))
    repo.save_task(_task("human", task_type=TaskType.HUMAN_INPUT, created_at=base))
    repo.save_task(_task("other", mission_id="m-2", status=TaskStatus.COMPLETED))

    ordered = repo.find_tasks(mission_id="m-1", by_priority=True)
    assert [task.id for task in ordered] == ["high", "med-early", "human", "med-late", "low"]

    claimable = repo.find_tasks(
        statuses=(TaskStatus.PENDING,),
        exclude_types=(TaskType.HUMAN_INPUT,),
        assignees=("a-2", None),
        by_priority=True,
        limit=2,
    )
    assert [task.id for task in claimable] == ["med-early", "med-late"]

    assert [task.id for task in repo.find_tasks(assignees=("a-1",))] == ["high"]
    assert [task.id for task in repo.find_tasks(task_types=(TaskType.HUMAN_INPUT,))] == ["human"]
    assert {task.id for task in repo.find_tasks(task_ids=["low", "other", "ghost"])} == {
        "low",
        "other",
    }
    assert repo.count_tasks(assigned_to="a-1", statuses=(TaskStatus.PENDING,)) == 1
    assert repo.count_tasks(assigned_to="a-1", statuses=(TaskStatus.COMPLETED,)) == 0


def test_agent_round_trip_and_filters(repo: SqlRecordStore) -> None:
    repo.save_agent(
        Agent(
            id="lead",
            name="Lead",
            role="squad_lead",
            capabilities=["mission_analysis"],
            status=AgentStatus.IDLE,
            mission_history=["m-0"],
        ),
    )
    repo.save_agent(
        Agent(
            id="busy",
            name="Busy",
            role="squad_lead",
            status=AgentStatus.IDLE,
            current_mission_id="m-9",
            is_reusable=False,
        ),
    )

    lead = repo.get_agent("lead")
    assert lead is not None
    assert lead.capabilities == ["mission_analysis"]
    assert lead.mission_history == ["m-0"]
    assert lead.success_rate == 100

    free = repo.find_agents(roles=("squad_lead",), current_mission_ids=(None,))
    assert [agent.id for agent in free] == ["lead"]
    assert [agent.id for agent in repo.find_agents(is_reusable=False)] == ["busy"]
    assert [agent.id for agent in repo.find_agents(current_mission_ids=("m-9",))] == ["busy"]
    assert repo.find_agents(statuses=(AgentStatus.OFFLINE,)) == []

    repo.delete_agent("busy")
    assert repo.get_agent("busy") is None


def test_deleting_a_mission_cascades_to_tasks_and_log(repo: SqlRecordStore) -> None:
    mission = _mission(repo)
    mission.orchestration_log.append(OrchestrationLogEntry(action="mission_created"))
    repo.save_mission(mission)
    repo.save_task(_task("t-1"))

    repo.delete_mission("m-1")

    assert repo.get_mission("m-1") is None
    assert repo.get_task("t-1") is None
    assert repo.find_missions() == []
