"""
Panel Tracker
Panel status catalog, transition graph and role destination table.

Everything in this module is immutable, declarative data plus pure lookups.
Ordinals are persisted on ``panels.status`` and
``panel_status_histories.status``; never renumber them.

Lifecycle:
    Issued For Production → Produced → Proceed for Delivery → Delivered
    Delivered → Approved Material ⇄ Rejected Material
    Approved Material → Installed → Inspected → Approved Final
    Rejected Material → Issued For Production  (rework)
    Broken at Site → Issued For Production (rework) | Delivered
    On Hold → any status  |  Cancelled (terminal)
"""

from enum import IntEnum

from panel_tracker.core.exceptions import StatusOutOfRange


class PanelStatus(IntEnum):
    ISSUED_FOR_PRODUCTION = 0
    PRODUCED = 1
    PROCEED_FOR_DELIVERY = 2
    DELIVERED = 3
    APPROVED_MATERIAL = 4
    REJECTED_MATERIAL = 5
    INSTALLED = 6
    INSPECTED = 7
    APPROVED_FINAL = 8
    BROKEN_AT_SITE = 9
    ON_HOLD = 10
    CANCELLED = 11


# Display names, indexed by ordinal
PANEL_STATUS_NAMES = (
    "Issued For Production",
    "Produced",
    "Proceed for Delivery",
    "Delivered",
    "Approved Material",
    "Rejected Material",
    "Installed",
    "Inspected",
    "Approved Final",
    "Broken at Site",
    "On Hold",
    "Cancelled",
)

_STATUS_BY_NAME = {name.lower(): ordinal for ordinal, name in enumerate(PANEL_STATUS_NAMES)}

# Spellings seen in imported spreadsheets
_STATUS_ALIASES = {
    "procced for delivery": int(PanelStatus.PROCEED_FOR_DELIVERY),
}

# Reachable as a destination even where no edge is declared.
# Domain decision, not derived from the graph.
SPECIAL_STATUSES = frozenset({
    PanelStatus.BROKEN_AT_SITE,
    PanelStatus.ON_HOLD,
    PanelStatus.CANCELLED,
})

_ALL_STATUSES = frozenset(PanelStatus)


# ── Transition graph ─────────────────────────────────────────────────────────

STATUS_TRANSITIONS = {
    PanelStatus.ISSUED_FOR_PRODUCTION: frozenset({
        PanelStatus.PRODUCED, PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.PRODUCED: frozenset({
        PanelStatus.PROCEED_FOR_DELIVERY, PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.PROCEED_FOR_DELIVERY: frozenset({
        PanelStatus.DELIVERED, PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.DELIVERED: frozenset({
        PanelStatus.APPROVED_MATERIAL, PanelStatus.REJECTED_MATERIAL,
        PanelStatus.BROKEN_AT_SITE, PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.APPROVED_MATERIAL: frozenset({
        PanelStatus.REJECTED_MATERIAL, PanelStatus.INSTALLED,
        PanelStatus.BROKEN_AT_SITE, PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.REJECTED_MATERIAL: frozenset({
        PanelStatus.ISSUED_FOR_PRODUCTION, PanelStatus.APPROVED_MATERIAL,
        PanelStatus.BROKEN_AT_SITE, PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.INSTALLED: frozenset({
        PanelStatus.INSPECTED, PanelStatus.BROKEN_AT_SITE,
        PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.INSPECTED: frozenset({
        PanelStatus.APPROVED_FINAL, PanelStatus.BROKEN_AT_SITE,
        PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.APPROVED_FINAL: frozenset(),
    PanelStatus.BROKEN_AT_SITE: frozenset({
        PanelStatus.ISSUED_FOR_PRODUCTION, PanelStatus.DELIVERED,
        PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    PanelStatus.ON_HOLD: _ALL_STATUSES - {PanelStatus.ON_HOLD},
    PanelStatus.CANCELLED: frozenset(),
}


# ── Role destination table ───────────────────────────────────────────────────

ROLE_ADMINISTRATOR = "Administrator"
ROLE_STORE_SITE = "Store Site"

# Statuses each role may set as a destination. Administrator is exempt
# from this table and therefore has no entry.
ROLE_STATUS_PERMISSIONS = {
    "Data Entry": frozenset({
        PanelStatus.ISSUED_FOR_PRODUCTION, PanelStatus.PRODUCED,
        PanelStatus.PROCEED_FOR_DELIVERY, PanelStatus.DELIVERED,
        PanelStatus.APPROVED_MATERIAL, PanelStatus.REJECTED_MATERIAL,
        PanelStatus.INSTALLED, PanelStatus.INSPECTED, PanelStatus.APPROVED_FINAL,
        PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    "Production engineer": frozenset({
        PanelStatus.ISSUED_FOR_PRODUCTION, PanelStatus.PRODUCED,
        PanelStatus.PROCEED_FOR_DELIVERY, PanelStatus.ON_HOLD,
    }),
    "QC Factory": frozenset({
        PanelStatus.PRODUCED, PanelStatus.PROCEED_FOR_DELIVERY, PanelStatus.ON_HOLD,
    }),
    ROLE_STORE_SITE: frozenset({
        PanelStatus.DELIVERED, PanelStatus.BROKEN_AT_SITE, PanelStatus.ON_HOLD,
    }),
    "QC Site": frozenset({
        PanelStatus.APPROVED_MATERIAL, PanelStatus.REJECTED_MATERIAL, PanelStatus.ON_HOLD,
    }),
    "Foreman Site": frozenset({
        PanelStatus.INSTALLED, PanelStatus.ON_HOLD,
    }),
    "Site Engineer": frozenset({
        PanelStatus.INSPECTED, PanelStatus.APPROVED_FINAL,
        PanelStatus.ON_HOLD, PanelStatus.CANCELLED,
    }),
    "Customer": frozenset(),
}


# ── Catalog lookups ──────────────────────────────────────────────────────────


def ordinal_count() -> int:
    return len(PANEL_STATUS_NAMES)


def is_valid_ordinal(ordinal) -> bool:
    """True for an int (not bool) inside ``[0, ordinal_count())``."""
    return (
        isinstance(ordinal, int)
        and not isinstance(ordinal, bool)
        and 0 <= ordinal < len(PANEL_STATUS_NAMES)
    )


def _check(ordinal) -> int:
    if not is_valid_ordinal(ordinal):
        raise StatusOutOfRange(ordinal, size=len(PANEL_STATUS_NAMES))
    return int(ordinal)


def is_special(ordinal) -> bool:
    return _check(ordinal) in SPECIAL_STATUSES


def is_terminal(ordinal) -> bool:
    """A status with no outgoing graph edges."""
    return not STATUS_TRANSITIONS[_check(ordinal)]


def status_name(ordinal) -> str:
    return PANEL_STATUS_NAMES[_check(ordinal)]


def status_ordinal(name: str) -> int:
    """Exact (case-insensitive) reverse lookup of :func:`status_name`."""
    try:
        return _STATUS_BY_NAME[name.strip().lower()]
    except (KeyError, AttributeError):
        raise ValueError(f"Unknown panel status: {name!r}") from None


def parse_status(text) -> int:
    """
    Tolerant status parser for imported spreadsheets and free text.

    Accepts an ordinal (int or digit string), an exact display name in any
    case, a name with collapsed/extra whitespace, or a known misspelling
    (``procced for delivery``). Raises ``ValueError`` for an unrecognised
    name and ``StatusOutOfRange`` for a bad ordinal.
    """
    if isinstance(text, int) and not isinstance(text, bool):
        return _check(text)
    if not isinstance(text, str):
        raise ValueError(f"Unknown panel status: {text!r}")
    normalised = " ".join(text.split()).lower()
    if normalised.isdigit():
        return _check(int(normalised))
    if normalised in _STATUS_BY_NAME:
        return _STATUS_BY_NAME[normalised]
    if normalised in _STATUS_ALIASES:
        return _STATUS_ALIASES[normalised]
    raise ValueError(f"Unknown panel status: {text!r}")
