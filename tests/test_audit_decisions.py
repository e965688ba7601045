from __future__ import annotations

import allure
import pytest

from mission_hq.orchestrator.decisions import (
    DecisionKind,
    EscalateHumanDecision,
    ReassignDecision,
    RefineDecision,
    RetryDecision,
    decision_to_payload,
    parse_audit_decision,
)
from mission_hq.orchestrator.errors import NotFoundError, StateConflictError, ValidationError
from mission_hq.orchestrator.lifecycle import RESUME_TASK_TITLE
from mission_hq.orchestrator.models import MissionCreate, TaskCreate, TaskStatus, TaskType

pytestmark = [
    allure.epic("Orchestration Engine"),
    allure.feature("Retry and Audit Escalation"),
]


@pytest.fixture()
def exhausted_task(service):
    """A failed task with max_retries=1 whose budget is spent."""

    mission = service.missions.create(MissionCreate(title="Audit mission"))
    task = service.tasks.create_task(
        TaskCreate(mission_id=mission.id, title="Scrape pricing", max_retries=1),
    )
    service.tasks.fail(task.id, reason="403 from site")
    service.tasks.retry(task.id)
    result = service.tasks.fail(task.id, reason="403 again")
    assert result.needs_audit is True
    return result.task


def test_parse_audit_decision_builds_each_variant() -> None:
    assert parse_audit_decision(
        {"decision": "reassign", "reason": "wrong skills", "suggestedAgentRole": "developer"},
    ) == ReassignDecision(reason="wrong skills", role="developer")
    assert parse_audit_decision(
        {"decision": "refine", "reason": "vague", "refinedDescription": "Use the API"},
    ) == RefineDecision(reason="vague", description="Use the API")
    assert parse_audit_decision(
        {"decision": "escalate_human", "reason": "needs creds", "questionForHuman": "Token?"},
    ) == EscalateHumanDecision(reason="needs creds", question="Token?")
    assert parse_audit_decision({"decision": "retry", "reason": "transient"}) == RetryDecision(
        reason="transient",
    )


@pytest.mark.parametrize(
    "payload",
    [
        {"decision": "shrug", "reason": "?"},
        {"decision": "retry"},
        {"decision": "reassign", "reason": "x"},
        {"decision": "refine", "reason": "x", "refinedDescription": "  "},
        {"decision": "escalate_human", "reason": "x"},
    ],
)
def test_parse_audit_decision_rejects_malformed_payloads(payload) -> None:
    with pytest.raises(ValidationError):
        parse_audit_decision(payload)


def test_decision_payload_uses_wire_keys() -> None:
    payload = decision_to_payload(ReassignDecision(reason="r", role="writer"))

    assert payload["decision"] == DecisionKind.REASSIGN.value
    assert payload["suggestedAgentRole"] == "writer"


def test_request_audit_creates_review_task(service, exhausted_task, make_agent) -> None:
    auditor = make_agent("auditor")

    audit_task = service.tasks.request_audit(exhausted_task.id)

    assert audit_task.task_type == TaskType.AUDITOR_REVIEW
    assert audit_task.assigned_to == auditor.id
    assert audit_task.input["failedTaskId"] == exhausted_task.id
    assert audit_task.input["error"] == "403 again"
    assert [item["attempt"] for item in audit_task.input["retryHistory"]] == [1, 2]

    target = service.tasks.get(exhausted_task.id)
    assert target.auditor_review_id == audit_task.id
    assert target.status == TaskStatus.FAILED
    assert target.needs_audit is False
    with pytest.raises(StateConflictError):
        service.tasks.retry(target.id)
    with pytest.raises(StateConflictError):
        service.tasks.request_audit(target.id)


def test_request_audit_requires_exhausted_budget(service) -> None:
    mission = service.missions.create(MissionCreate(title="m"))
    task = service.tasks.create_task(TaskCreate(mission_id=mission.id, title="fresh"))
    service.tasks.fail(task.id, reason="first failure")

    with pytest.raises(StateConflictError, match="does not need audit"):
        service.tasks.request_audit(task.id)


def test_retry_decision_resets_counter_and_extends_budget(service, exhausted_task) -> None:
    audit_task = service.tasks.request_audit(exhausted_task.id)

    outcome = service.tasks.apply_audit_decision(audit_task.id, RetryDecision(reason="transient"))

    task = outcome.task
    assert task.status == TaskStatus.PENDING
    assert task.retry_count == 0
    assert task.max_retries == 2
    assert task.auditor_review_id is None
    assert task.needs_audit is False
    closed = service.tasks.get(audit_task.id)
    assert closed.status == TaskStatus.COMPLETED
    assert closed.output == {"decision": "retry", "reason": "transient"}


def test_refine_decision_rewrites_description_and_keeps_retry_count(
    service,
    exhausted_task,
) -> None:
    outcome = service.tasks.apply_audit_decision(
        exhausted_task.id,
        RefineDecision(reason="too vague", description="Use the public pricing API instead"),
    )

    assert outcome.task.description == "Use the public pricing API instead"
    assert outcome.task.status == TaskStatus.PENDING
    assert outcome.task.retry_count == 1
    mission = service.missions.get(outcome.task.mission_id)
    assert mission.orchestration_log[-1].action == "audit_decision_applied"
    assert mission.orchestration_log[-1].details["decision"] == "refine"


def test_reassign_decision_picks_an_idle_agent_with_runtime(
    service,
    exhausted_task,
    make_agent,
) -> None:
    make_agent("developer", agent_id="dev-no-runtime")
    runner = make_agent("developer", agent_id="dev-runner", runtime_id="rt-1")

    outcome = service.tasks.apply_audit_decision(
        exhausted_task.id,
        ReassignDecision(reason="needs code", role="developer"),
    )

    assert outcome.assigned_agent is not None
    assert outcome.assigned_agent.id == runner.id
    assert outcome.task.assigned_to == runner.id
    assert outcome.task.status == TaskStatus.PENDING


def test_reassign_without_candidates_fails_and_leaves_task_failed(service, exhausted_task) -> None:
    with pytest.raises(NotFoundError):
        service.tasks.apply_audit_decision(
            exhausted_task.id,
            ReassignDecision(reason="needs code", role="developer"),
        )

    assert service.tasks.get(exhausted_task.id).status == TaskStatus.FAILED


def test_escalation_and_human_response_round_trip(service, exhausted_task) -> None:
    audit_task = service.tasks.request_audit(exhausted_task.id)

    outcome = service.tasks.apply_audit_decision(
        audit_task.id,
        EscalateHumanDecision(reason="blocked by login", question="Which account should we use?"),
    )

    human_task = outcome.human_task
    assert human_task is not None
    assert human_task.task_type == TaskType.HUMAN_INPUT
    assert human_task.input["parentTaskId"] == exhausted_task.id
    assert human_task.input["auditorTaskId"] == audit_task.id
    parked = service.tasks.get(exhausted_task.id)
    assert parked.status == TaskStatus.AWAITING_HUMAN_RESPONSE
    assert parked.human_task_id == human_task.id
    mission = service.missions.get(parked.mission_id)
    assert mission.awaiting_human_task_id == human_task.id
    assert [task.id for task in service.tasks.pending_human_tasks()] == [human_task.id]

    result = service.tasks.submit_human_response(human_task.id, response="Use the team account")

    assert result.human_task.status == TaskStatus.COMPLETED
    assert result.human_task.output == {"humanResponse": "Use the team account"}
    assert result.parent_task.status == TaskStatus.COMPLETED
    assert result.continuation_task.title == RESUME_TASK_TITLE
    assert result.continuation_task.task_type == TaskType.MISSION_ANALYSIS
    assert result.continuation_task.input["originalTaskId"] == exhausted_task.id
    mission = service.missions.get(parked.mission_id)
    assert mission.awaiting_human_task_id is None
    assert result.continuation_task.id in mission.task_ids

    with pytest.raises(StateConflictError):
        service.tasks.submit_human_response(human_task.id, response="again")


def test_human_response_validation(service, exhausted_task) -> None:
    with pytest.raises(ValidationError, match="Response is required"):
        service.tasks.submit_human_response(exhausted_task.id, response="")
    with pytest.raises(ValidationError, match="not a human_input task"):
        service.tasks.submit_human_response(exhausted_task.id, response="hello")


def test_decisions_require_a_failed_target(service) -> None:
    mission = service.missions.create(MissionCreate(title="m"))
    task = service.tasks.create_task(TaskCreate(mission_id=mission.id, title="pending"))

    with pytest.raises(StateConflictError):
        service.tasks.apply_audit_decision(task.id, RetryDecision(reason="why not"))
