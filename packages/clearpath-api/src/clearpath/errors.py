"""Domain error taxonomy.

Every recoverable failure of a core operation is one of these. Each carries a
machine-readable ``kind``, a human message, the HTTP status the API layer
renders it with, and a ``details`` dict with the relevant ids/states.
"""

from typing import Any


class ClearpathError(Exception):
    """Base class for all client-reportable domain errors."""

    kind: str = "error"
    status_code: int = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class InvalidTransitionError(ClearpathError):
    """Requested status change is not permitted from the current status."""

    kind = "invalid_transition"
    status_code = 409

    def __init__(self, current: str, target: str, allowed: list[str]) -> None:
        allowed_text = ", ".join(allowed)
        super().__init__(
            f"Cannot transition from '{current}' to '{target}'. "
            f"Allowed transitions: [{allowed_text}]",
            current=current,
            target=target,
            allowed=allowed,
        )
        self.current = current
        self.target = target
        self.allowed = allowed


class NotFoundError(ClearpathError):
    """Referenced entity does not exist."""

    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found", entity=entity, id=entity_id)


class ConflictError(ClearpathError):
    """A one-to-one, uniqueness or immutability invariant would be violated."""

    kind = "conflict"
    status_code = 409


class ValidationError(ClearpathError):
    """Input is well-formed but outside the domain's accepted values."""

    kind = "validation_error"
    status_code = 422


class RaceLostError(ClearpathError):
    """An optimistic concurrency check failed; the whole operation may be retried."""

    kind = "race_lost"
    status_code = 503
