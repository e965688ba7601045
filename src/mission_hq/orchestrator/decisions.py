"""Audit decisions applied to a task whose retry budget is exhausted."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from mission_hq.orchestrator.errors import ValidationError


class DecisionKind(str, Enum):
    REASSIGN = "reassign"
    REFINE = "refine"
    ESCALATE_HUMAN = "escalate_human"
    RETRY = "retry"


@dataclass(frozen=True, slots=True)
class ReassignDecision:
    """Hand the task to an idle agent of another role."""

    reason: str
    role: str

    kind: ClassVar[DecisionKind] = DecisionKind.REASSIGN


@dataclass(frozen=True, slots=True)
class RefineDecision:
    """Rewrite the task description and put it back in the queue."""

    reason: str
    description: str

    kind: ClassVar[DecisionKind] = DecisionKind.REFINE


@dataclass(frozen=True, slots=True)
class EscalateHumanDecision:
    """Ask a human and park the task until they answer."""

    reason: str
    question: str

    kind: ClassVar[DecisionKind] = DecisionKind.ESCALATE_HUMAN


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """Reset the retry counter and grant one more attempt."""

    reason: str

    kind: ClassVar[DecisionKind] = DecisionKind.RETRY


AuditDecision = ReassignDecision | RefineDecision | EscalateHumanDecision | RetryDecision


def parse_audit_decision(payload: Mapping[str, Any]) -> AuditDecision:
    """Build a decision from the auditor payload, rejecting missing fields."""

    raw_kind = payload.get("decision")
    try:
        kind = DecisionKind(raw_kind)
    except ValueError as error:
        allowed = ", ".join(item.value for item in DecisionKind)
        raise ValidationError(
            f"Unknown audit decision {raw_kind!r}; expected one of {allowed}.",
        ) from error

    reason = _required_text(payload, "reason", kind)
    if kind == DecisionKind.REASSIGN:
        return ReassignDecision(
            reason=reason,
            role=_required_text(payload, "suggestedAgentRole", kind),
        )
    if kind == DecisionKind.REFINE:
        return RefineDecision(
            reason=reason,
            description=_required_text(payload, "refinedDescription", kind),
        )
    if kind == DecisionKind.ESCALATE_HUMAN:
        return EscalateHumanDecision(
            reason=reason,
            question=_required_text(payload, "questionForHuman", kind),
        )
    return RetryDecision(reason=reason)


def decision_to_payload(decision: AuditDecision) -> dict[str, str]:
    payload = {"decision": decision.kind.value, "reason": decision.reason}
    if isinstance(decision, ReassignDecision):
        payload["suggestedAgentRole"] = decision.role
    elif isinstance(decision, RefineDecision):
        payload["refinedDescription"] = decision.description
    elif isinstance(decision, EscalateHumanDecision):
        payload["questionForHuman"] = decision.question
    return payload


def _required_text(payload: Mapping[str, Any], key: str, kind: DecisionKind) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Audit decision {kind.value!r} requires a non-empty {key!r}.")
    return value.strip()
