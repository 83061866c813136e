"""
Engine-wide exception hierarchy.

All services raise (or, for the validators, return) these canonical
types so that every caller (bulk update, single-panel edit, import
pipeline) can translate them to operator-facing text in one place.

Usage:
    from panel_tracker.core.exceptions import NotFoundError, TransitionError

    raise NotFoundError(resource="Panel", resource_id="abc")

    error = validate_transition_for_role(current, new, role)
    if error is not None:
        payload = error.to_dict()   # structured data for message rendering
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Panel").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PersistenceError(Exception):
    """Raised when the history store (or panel store) rejects a read or write.

    Wraps the underlying driver / SQLAlchemy error as ``__cause__``.
    Never retried internally.
    """

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        msg = f"Persistence failure during {operation}"
        if message:
            msg += f": {message}"
        super().__init__(msg)


# ── Panel status transition taxonomy ─────────────────────────────────────────


class TransitionError(ValidationError):
    """Base class for every rejected panel status transition.

    ``kind`` is a stable machine-readable identifier; ``to_dict()`` returns
    the structured payload (ordinals, role, allowed set) callers need to
    build an actionable message.
    """

    kind = "transition_error"

    def __init__(
        self,
        message: str,
        *,
        current: int | None = None,
        requested: int | None = None,
        role: str | None = None,
        allowed: frozenset[int] | None = None,
    ) -> None:
        self.current = current
        self.requested = requested
        self.role = role
        self.allowed = frozenset(allowed) if allowed is not None else None
        super().__init__(message, details=self.to_dict())

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "current": self.current,
            "requested": self.requested,
            "role": self.role,
            "allowed": sorted(int(s) for s in self.allowed) if self.allowed is not None else None,
        }


class StatusOutOfRange(TransitionError):
    """An ordinal outside the catalog. Integration error, never user-facing."""

    kind = "out_of_range"

    def __init__(self, ordinal, *, size: int, current=None, requested=None) -> None:
        self.ordinal = ordinal
        self.size = size
        super().__init__(
            f"Status ordinal {ordinal!r} is outside the catalog range [0, {size})",
            current=current,
            requested=requested,
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["ordinal"] = self.ordinal
        return data


class NoOpTransition(TransitionError):
    """Requested status equals the current one."""

    kind = "no_op"

    def __init__(self, status: int) -> None:
        super().__init__("No change requested", current=status, requested=status)


class IllegalTransition(TransitionError):
    """The transition graph has no such edge."""

    kind = "illegal_transition"

    def __init__(self, current: int, requested: int, allowed: frozenset[int]) -> None:
        super().__init__(
            f"Cannot change status {current} to {requested}",
            current=current,
            requested=requested,
            allowed=allowed,
        )


class UnauthorizedRole(TransitionError):
    """The role may not set the requested destination."""

    kind = "unauthorized_role"

    def __init__(self, current: int, requested: int, role: str, allowed: frozenset[int]) -> None:
        super().__init__(
            f"Role {role!r} may not set status {requested}",
            current=current,
            requested=requested,
            role=role,
            allowed=allowed,
        )


class PreconditionNotMet(TransitionError):
    """A guarded destination's ordinal precondition failed."""

    kind = "precondition_not_met"

    def __init__(self, current: int, requested: int, reason: str, role: str | None = None) -> None:
        self.reason = reason
        super().__init__(
            f"Cannot change status {current} to {requested}: {reason}",
            current=current,
            requested=requested,
            role=role,
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class UnknownRole(TransitionError):
    """The role has no entry in the role destination table."""

    kind = "unknown_role"

    def __init__(self, role: str, current: int | None = None, requested: int | None = None) -> None:
        super().__init__(
            f"Unknown role {role!r}",
            current=current,
            requested=requested,
            role=role,
        )
