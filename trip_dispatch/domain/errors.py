"""
Error kinds raised by the dispatch engine.

Every error carries a machine-readable ``kind``, a human-readable message and
a ``details`` dict.  Only :class:`ResourceConflict` is safe to retry: it is
raised before anything has been committed.
"""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Base class for all engine errors."""

    kind: str = "dispatch_error"
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFound(DispatchError):
    kind = "not_found"

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} {resource_id} not found",
            details={"resource": resource, "id": resource_id},
        )


class InvalidRequest(DispatchError):
    kind = "invalid_request"


class EligibilityFailed(DispatchError):
    kind = "eligibility_failed"

    def __init__(self, reason: str, rule: str):
        super().__init__(reason, details={"rule": rule})
        self.rule = rule


class InvalidTransition(DispatchError):
    kind = "invalid_transition"

    def __init__(self, current: str, event: str):
        super().__init__(
            f"Cannot {event} a trip in status {current}",
            details={"current": current, "event": event},
        )
        self.current = current
        self.event = event


class ResourceConflict(DispatchError):
    kind = "resource_conflict"
    retryable = True


class StorageUnavailable(DispatchError):
    kind = "storage_unavailable"
