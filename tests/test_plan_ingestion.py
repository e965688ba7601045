from __future__ import annotations

import allure
import pytest

from mission_hq.orchestrator.errors import NotFoundError, StoreError, ValidationError
from mission_hq.orchestrator.models import (
    AgentStatus,
    MissionCreate,
    Priority,
    TaskCreate,
    TaskType,
)
from mission_hq.orchestrator.plan import FALLBACK_LLM_MODEL, parse_plan

pytestmark = [
    allure.epic("Orchestration Engine"),
    allure.feature("Plan Ingestion"),
]


def _plan(**overrides):
    plan = {
        "complexity": "medium",
        "summary": "Research then write",
        "agents": [
            {"id": "A1", "name": "Scout", "role": "researcher", "capabilities": ["web_search"]},
            {"id": "A2", "name": "Scribe", "role": "writer", "template": "writer"},
        ],
        "tasks": [
            {
                "id": "T1",
                "title": "Collect sources",
                "type": "web_search",
                "priority": "high",
                "assignedAgentRole": "researcher",
            },
            {"id": "T2", "title": "Draft report", "type": "content_generation"},
            {"id": "T3", "title": "Polish", "dependencies": ["T2", "T-unknown"]},
        ],
        "dependencies": [{"taskId": "T2", "dependsOn": ["T1", "T-ghost"]}],
    }
    plan.update(overrides)
    return plan


@pytest.fixture()
def analysis_task(service):
    mission = service.missions.create(MissionCreate(title="Write a market report"))
    return service.missions.orchestrate(mission.id)


def test_plan_maps_temp_ids_to_real_dependencies(service, analysis_task) -> None:
    result = service.plans.ingest_coordinator_output(analysis_task.id, _plan())

    assert result.agents_created == 2
    assert result.tasks_created == 3
    t1, t2, t3 = (service.tasks.get(result.task_ids[key]) for key in ("T1", "T2", "T3"))
    assert t2.dependencies == [t1.id]
    assert t3.dependencies == [t2.id]
    assert t1.dependencies == []
    assert t1.priority == Priority.HIGH
    assert t2.task_type == TaskType.CONTENT_GENERATION
    assert t3.task_type == TaskType.CUSTOM

    mission = service.missions.get(analysis_task.mission_id)
    assert set(result.task_ids.values()) <= set(mission.task_ids)
    actions = [entry.action for entry in mission.orchestration_log]
    assert "squad_lead_output_received" in actions
    assert actions.count("agent_created") == 2
    assert actions.count("task_created") == 3


def test_planned_role_assignment_uses_the_mission_agent(service, analysis_task) -> None:
    result = service.plans.ingest_coordinator_output(analysis_task.id, _plan())

    scout = service.agents.get(result.agent_ids["A1"])
    scribe = service.agents.get(result.agent_ids["A2"])
    assert scout.status == AgentStatus.ACTIVE
    assert scout.runtime_id is not None
    assert scout.current_mission_id == analysis_task.mission_id
    assert scout.llm_model == "glm-4"
    assert scribe.personality
    assert service.tasks.get(result.task_ids["T1"]).assigned_to == scout.id
    assert service.tasks.get(result.task_ids["T2"]).assigned_to is None


def test_agents_without_template_get_fallbacks(service, analysis_task) -> None:
    plan = _plan(agents=[{"id": "A9", "name": "Odd", "role": "cartographer"}])

    result = service.plans.ingest_coordinator_output(analysis_task.id, plan)

    agent = service.agents.get(result.agent_ids["A9"])
    assert agent.llm_model == FALLBACK_LLM_MODEL
    assert agent.personality == "You are a helpful AI assistant."


def test_provisioning_failure_keeps_agent_offline_and_unassigned(
    service,
    runtime,
    analysis_task,
) -> None:
    runtime.fail_provision = True

    result = service.plans.ingest_coordinator_output(analysis_task.id, _plan())

    scout = service.agents.get(result.agent_ids["A1"])
    assert scout.status == AgentStatus.OFFLINE
    assert scout.runtime_id is None
    assert service.tasks.get(result.task_ids["T1"]).assigned_to is None


def test_ingest_requires_a_mission_analysis_task(service, analysis_task) -> None:
    regular = service.tasks.create_task(
        TaskCreate(mission_id=analysis_task.mission_id, title="regular"),
    )

    with pytest.raises(ValidationError, match="mission_analysis"):
        service.plans.ingest_coordinator_output(regular.id, _plan())
    with pytest.raises(NotFoundError):
        service.plans.ingest_coordinator_output("missing", _plan())


def test_malformed_items_are_skipped_and_logged(service, analysis_task) -> None:
    plan = _plan(
        agents=[
            {"id": "A1", "name": "Scout", "role": "researcher"},
            {"id": "A2", "name": "Nameless role"},
        ],
        tasks=[
            {"id": "T1", "title": "good"},
            {"id": "T2"},
            {"id": "T3", "title": "also good", "dependencies": ["T1"]},
            {"id": "T4", "title": "bad input", "input": "text"},
        ],
        dependencies=[{"dependsOn": ["T1"]}, {"taskId": "T3", "dependsOn": ["T2"]}],
        complexity="extreme",
    )

    result = service.plans.ingest_coordinator_output(analysis_task.id, plan)

    assert result.agents_created == 1
    assert result.tasks_created == 2
    assert set(result.task_ids) == {"T1", "T3"}
    t3 = service.tasks.get(result.task_ids["T3"])
    assert t3.dependencies == [result.task_ids["T1"]]

    mission = service.missions.get(analysis_task.mission_id)
    failures = {
        entry.details["tempId"]: entry.action
        for entry in mission.orchestration_log
        if entry.action.endswith("_creation_failed")
    }
    assert failures == {
        "A2": "agent_creation_failed",
        "T2": "task_creation_failed",
        "T4": "task_creation_failed",
    }
    received = next(
        entry for entry in mission.orchestration_log if entry.action == "squad_lead_output_received"
    )
    assert received.details["complexity"] == "extreme"
    assert received.details["rejectedCount"] == 3


def test_store_failure_mid_batch_keeps_the_rest(
    service,
    store,
    monkeypatch: pytest.MonkeyPatch,
    analysis_task,
) -> None:
    save_agent = store.save_agent
    save_task = store.save_task

    def flaky_save_agent(agent):
        if agent.name == "Scout":
            raise StoreError("Record store failure: disk full")
        return save_agent(agent)

    def flaky_save_task(task):
        if task.title == "Draft report":
            raise StoreError("Record store failure: disk full")
        return save_task(task)

    monkeypatch.setattr(store, "save_agent", flaky_save_agent)
    monkeypatch.setattr(store, "save_task", flaky_save_task)

    result = service.plans.ingest_coordinator_output(analysis_task.id, _plan())

    assert result.agents_created == 1
    assert set(result.agent_ids) == {"A2"}
    assert result.tasks_created == 2
    assert set(result.task_ids) == {"T1", "T3"}
    assert service.agents.get(result.agent_ids["A2"]).name == "Scribe"
    assert service.tasks.get(result.task_ids["T3"]).dependencies == []

    mission = service.missions.get(analysis_task.mission_id)
    failed = [
        entry for entry in mission.orchestration_log if entry.action.endswith("_creation_failed")
    ]
    assert [(entry.action, entry.details["tempId"]) for entry in failed] == [
        ("agent_creation_failed", "A1"),
        ("task_creation_failed", "T2"),
    ]
    assert all("disk full" in entry.details["error"] for entry in failed)


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"tasks": []}, "tasks"),
        ({"tasks": "T1"}, "tasks"),
        ({"agents": None}, "agents"),
    ],
)
def test_parse_plan_rejects_invalid_shapes(overrides, message) -> None:
    with pytest.raises(ValidationError, match=message):
        parse_plan(_plan(**overrides))


def test_parse_plan_collects_rejected_items() -> None:
    plan = parse_plan(
        _plan(
            agents=[{"id": "A1", "name": "x"}, "not an object"],
            tasks=[{"id": "T1"}, {"id": "T2", "title": "ok", "dependencies": "T1"}],
        ),
    )

    assert plan.agents == []
    assert plan.tasks == []
    assert [(item.kind, item.temp_id) for item in plan.rejected] == [
        ("agent", "A1"),
        ("agent", None),
        ("task", "T1"),
        ("task", "T2"),
    ]
    assert "missing role" in plan.rejected[0].error
    assert "missing title" in plan.rejected[2].error


def test_parse_plan_defaults() -> None:
    plan = parse_plan(
        {
            "agents": [{"id": "A1", "name": "x", "role": "analyst"}],
            "tasks": [{"id": "T1", "title": "x", "type": "teleport", "priority": "urgent"}],
        },
    )

    assert plan.complexity == "medium"
    assert plan.summary == ""
    assert plan.tasks[0].task_type == TaskType.CUSTOM
    assert plan.tasks[0].priority == Priority.MEDIUM
    assert plan.dependencies == []
