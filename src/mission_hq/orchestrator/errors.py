"""Error taxonomy for orchestration operations."""

from __future__ import annotations


class OrchestrationError(RuntimeError):
    """Base class for rejected orchestration operations."""


class ValidationError(OrchestrationError, ValueError):
    """Operation input is missing a required field or is malformed."""


class StateConflictError(OrchestrationError):
    """Transition attempted from a status that does not allow it."""

    def __init__(self, message: str, *, needs_audit: bool = False) -> None:
        super().__init__(message)
        self.needs_audit = needs_audit


class NotFoundError(OrchestrationError):
    """Referenced mission, task or agent does not exist."""

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind.capitalize()} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class RuntimeProvisionError(OrchestrationError):
    """Worker runtime could not provision or control a container."""


class StoreError(OrchestrationError):
    """Record store failed to read or persist a record."""
