"""
Panel Status Transition Validator

Answers two questions over the declared status graph:
  - is ``current → requested`` legal (unconditionally, or for a role)?
  - which statuses may follow ``current`` (unconditionally, or for a role)?

Every function here is pure: no database access, no ambient "current
user". Role and, for the On-Hold resumption case, the previous status are
explicit arguments. Validators *return* a ``TransitionError`` (or None)
instead of raising, so bulk callers can collect rejections per panel.

Usage:
    from panel_tracker.services.panel_transition import validate_transition_for_role

    error = validate_transition_for_role(panel.status, new_status, role)
    if error is not None:
        raise error
"""

from panel_tracker.core.exceptions import (
    IllegalTransition,
    NoOpTransition,
    PreconditionNotMet,
    StatusOutOfRange,
    TransitionError,
    UnauthorizedRole,
    UnknownRole,
)
from panel_tracker.models.panel_status import (
    PanelStatus,
    ROLE_ADMINISTRATOR,
    ROLE_STATUS_PERMISSIONS,
    ROLE_STORE_SITE,
    SPECIAL_STATUSES,
    STATUS_TRANSITIONS,
    is_valid_ordinal,
    ordinal_count,
)


def _check_pair(current, requested) -> TransitionError | None:
    for ordinal in (current, requested):
        if not is_valid_ordinal(ordinal):
            return StatusOutOfRange(
                ordinal, size=ordinal_count(), current=current, requested=requested,
            )
    if current == requested:
        return NoOpTransition(current)
    return None


def broken_at_site_precondition(current: int) -> bool:
    """Broken at Site may only be declared once the panel reached Delivered."""
    return current >= PanelStatus.DELIVERED and current != PanelStatus.CANCELLED


# ── Unconditional (graph + special bypass) ───────────────────────────────────


def validate_transition(current: int, requested: int) -> TransitionError | None:
    """
    Validate ``current → requested`` against the graph alone.

    Special destinations (On Hold, Cancelled, Broken at Site) bypass the
    graph. Returns None when legal.
    """
    error = _check_pair(current, requested)
    if error is not None:
        return error

    if requested in SPECIAL_STATUSES:
        return None

    allowed = STATUS_TRANSITIONS[current]
    if requested not in allowed:
        return IllegalTransition(current, requested, allowed)
    return None


def next_statuses(current: int) -> frozenset[int]:
    """Direct successors of ``current``. Empty means terminal."""
    if not is_valid_ordinal(current):
        raise StatusOutOfRange(current, size=ordinal_count())
    return STATUS_TRANSITIONS[current]


def forward_closure(current: int) -> frozenset[int]:
    """
    Every status reachable from ``current`` through strictly increasing,
    non-special edges, transitively. ``current`` itself is not included.
    """
    if not is_valid_ordinal(current):
        raise StatusOutOfRange(current, size=ordinal_count())

    reachable = set()
    visited = {current}
    stack = [current]
    while stack:
        status = stack.pop()
        for successor in STATUS_TRANSITIONS[status]:
            if successor in SPECIAL_STATUSES or successor <= status:
                continue
            reachable.add(successor)
            if successor not in visited:
                visited.add(successor)
                stack.append(successor)
    return frozenset(reachable)


# ── Role scoped ──────────────────────────────────────────────────────────────


def validate_transition_for_role(current: int, requested: int, role: str) -> TransitionError | None:
    """
    Validate ``current → requested`` for the acting role.

    Order of checks:
      1. ordinal range, no-op
      2. Broken at Site guard: Store Site (or Administrator) only, and only
         once the panel reached Delivered and is not Cancelled
      3. Administrator: graph + special bypass, plus skip-ahead to any
         status in the forward closure
      4. other roles: destination must be in the role table
      5. graph + special bypass
    """
    error = _check_pair(current, requested)
    if error is not None:
        return error

    is_admin = role == ROLE_ADMINISTRATOR

    if requested == PanelStatus.BROKEN_AT_SITE:
        if not is_admin and role != ROLE_STORE_SITE:
            if role not in ROLE_STATUS_PERMISSIONS:
                return UnknownRole(role, current=current, requested=requested)
            return UnauthorizedRole(current, requested, role, ROLE_STATUS_PERMISSIONS[role])
        if not broken_at_site_precondition(current):
            reason = (
                "panel is cancelled"
                if current == PanelStatus.CANCELLED
                else "panel has not reached Delivered"
            )
            return PreconditionNotMet(current, requested, reason, role=role)

    if is_admin:
        error = validate_transition(current, requested)
        if isinstance(error, IllegalTransition):
            skip_ahead = forward_closure(current)
            if requested in skip_ahead:
                return None
            return IllegalTransition(current, requested, error.allowed | skip_ahead)
        return error

    if role not in ROLE_STATUS_PERMISSIONS:
        return UnknownRole(role, current=current, requested=requested)

    permitted = ROLE_STATUS_PERMISSIONS[role]
    if requested not in permitted:
        return UnauthorizedRole(current, requested, role, permitted)

    return validate_transition(current, requested)


def next_statuses_for_role(
    current: int,
    role: str,
    previous_status: int | None = None,
) -> frozenset[int]:
    """
    Statuses the role may choose from ``current``; never contains ``current``.

    Administrator:
        forward closure ∪ special statuses. From On Hold instead:
        {Cancelled, Broken at Site} ∪ {previous_status} (the status held
        before entering On Hold; omitted when unknown).
    Other roles:
        graph successors ∩ role table. Store Site additionally gets Broken
        at Site when its precondition holds. Unknown roles get nothing.
    """
    if not is_valid_ordinal(current):
        raise StatusOutOfRange(current, size=ordinal_count())

    if role == ROLE_ADMINISTRATOR:
        if current == PanelStatus.ON_HOLD:
            candidates = {PanelStatus.CANCELLED, PanelStatus.BROKEN_AT_SITE}
            if is_valid_ordinal(previous_status):
                candidates.add(previous_status)
        else:
            candidates = set(forward_closure(current)) | SPECIAL_STATUSES
        candidates.discard(current)
        return frozenset(int(s) for s in candidates)

    permitted = ROLE_STATUS_PERMISSIONS.get(role)
    if permitted is None:
        return frozenset()

    candidates = set(STATUS_TRANSITIONS[current] & permitted)
    candidates.discard(PanelStatus.BROKEN_AT_SITE)
    if (
        role == ROLE_STORE_SITE
        and PanelStatus.BROKEN_AT_SITE in permitted
        and broken_at_site_precondition(current)
    ):
        candidates.add(PanelStatus.BROKEN_AT_SITE)
    candidates.discard(current)
    return frozenset(int(s) for s in candidates)
