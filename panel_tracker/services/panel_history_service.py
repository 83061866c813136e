"""
Panel Status History: Audit Trail Recorder

Appends and reconciles ``PanelStatusHistory`` rows. It never validates a
transition: callers run the validator first and only record what was
committed.

Store contract used here:
  - insert entry
  - find most recent entry by (panel, status)
  - update timestamp of an entry
  - list a panel's entries in timeline order

All writes ``flush`` so callers keep transaction control. SQLAlchemy
failures surface as ``PersistenceError``; there is no internal retry.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from panel_tracker.core.exceptions import PersistenceError
from panel_tracker.models import db
from panel_tracker.models.panel import PanelStatusHistory
from panel_tracker.models.panel_status import PanelStatus, status_name

logger = logging.getLogger(__name__)


def _as_aware(ts: datetime) -> datetime:
    # Naive datetimes are taken as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def append_entry(
    panel_id: str,
    status: int,
    user_id: str | None,
    *,
    timestamp: datetime | None = None,
    notes: str | None = None,
    image_url: str | None = None,
) -> PanelStatusHistory:
    """
    Insert one history row. ``timestamp`` defaults to now (UTC).

    Returns the flushed entry (``id`` populated).
    """
    status_name(status)  # range check, raises StatusOutOfRange
    entry = PanelStatusHistory(
        panel_id=panel_id,
        status=int(status),
        user_id=user_id,
        created_at=_as_aware(timestamp) if timestamp else datetime.now(timezone.utc),
        notes=notes or None,
        image_url=image_url or None,
    )
    try:
        db.session.add(entry)
        db.session.flush()
    except SQLAlchemyError as exc:
        logger.error(
            "Status history append failed panel_id=%s status=%s", panel_id, status,
            exc_info=True,
            extra={"panel_id": panel_id, "status": int(status), "event_type": "history.append_failed"},
        )
        raise PersistenceError("history append", str(exc)) from exc

    logger.debug(
        "Status history appended id=%s panel_id=%s status=%s",
        entry.id, panel_id, entry.status,
        extra={"panel_id": panel_id, "status": entry.status, "event_type": "history.append"},
    )
    return entry


def find_latest_entry(
    panel_id: str,
    status: int,
    *,
    user_id: str | None = None,
    for_update: bool = False,
) -> PanelStatusHistory | None:
    """
    Most recently inserted row for (panel, status), by insertion sequence.

    ``user_id`` narrows the match to rows recorded by that user.
    """
    stmt = (
        select(PanelStatusHistory)
        .where(
            PanelStatusHistory.panel_id == panel_id,
            PanelStatusHistory.status == int(status),
        )
        .order_by(PanelStatusHistory.id.desc())
        .limit(1)
    )
    if user_id is not None:
        stmt = stmt.where(PanelStatusHistory.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    try:
        return db.session.execute(stmt).scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise PersistenceError("history lookup", str(exc)) from exc


def update_entry_timestamp(entry: PanelStatusHistory, timestamp: datetime) -> PanelStatusHistory:
    """Overwrite ``created_at`` of one existing row; nothing else changes."""
    timestamp = _as_aware(timestamp)
    entry.created_at = timestamp
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        logger.error(
            "Status history timestamp update failed id=%s panel_id=%s", entry.id, entry.panel_id,
            exc_info=True,
            extra={"panel_id": entry.panel_id, "status": entry.status, "event_type": "history.reconcile_failed"},
        )
        raise PersistenceError("history timestamp update", str(exc)) from exc

    logger.info(
        "Status history timestamp set id=%s panel_id=%s status=%s ts=%s",
        entry.id, entry.panel_id, entry.status, timestamp.isoformat(),
        extra={"panel_id": entry.panel_id, "status": entry.status, "event_type": "history.reconcile"},
    )
    return entry


def reconcile_latest_timestamp(
    panel_id: str,
    status: int,
    user_id: str | None,
    business_timestamp: datetime,
    *,
    notes: str | None = None,
    image_url: str | None = None,
) -> PanelStatusHistory:
    """
    Reflect an after-the-fact business date in the timeline.

    If a row for (panel, status) exists, only the newest one has its
    timestamp overwritten; otherwise a single row is appended with
    ``business_timestamp``. Rows of other panels or statuses are never
    touched. The lookup row-locks the match (``SELECT ... FOR UPDATE``)
    where the backend supports it.
    """
    status_name(status)
    business_timestamp = _as_aware(business_timestamp)

    entry = find_latest_entry(panel_id, status, for_update=True)
    if entry is None:
        logger.info(
            "No %s history for panel_id=%s; appending reconciled entry",
            status_name(status), panel_id,
            extra={"panel_id": panel_id, "status": int(status), "event_type": "history.reconcile_append"},
        )
        return append_entry(
            panel_id, status, user_id,
            timestamp=business_timestamp, notes=notes, image_url=image_url,
        )

    return update_entry_timestamp(entry, business_timestamp)


def list_entries(panel_id: str) -> list[PanelStatusHistory]:
    """
    All rows for a panel, newest first.

    Ordered by ``created_at``; rows with the same timestamp fall back to
    insertion sequence (``id``), so ties never depend on the store.
    """
    stmt = (
        select(PanelStatusHistory)
        .where(PanelStatusHistory.panel_id == panel_id)
        .order_by(PanelStatusHistory.created_at.desc(), PanelStatusHistory.id.desc())
    )
    try:
        return list(db.session.execute(stmt).scalars())
    except SQLAlchemyError as exc:
        raise PersistenceError("history listing", str(exc)) from exc


def previous_status_before_hold(panel_id: str) -> int | None:
    """
    Status held immediately before the panel's latest On Hold entry.

    Uses the timeline order of :func:`list_entries` (timestamp, then
    insertion sequence for equal timestamps). Returns None when the panel
    has no On Hold entry or nothing precedes it.
    """
    entries = list_entries(panel_id)
    seen_hold = False
    for entry in entries:
        if not seen_hold:
            seen_hold = entry.status == PanelStatus.ON_HOLD
            continue
        if entry.status != PanelStatus.ON_HOLD:
            return entry.status
    return None


def get_panel_timeline(panel_id: str) -> list[dict]:
    """
    Newest-first timeline entries, each paired with the status that
    preceded it (None for the first recorded status).
    """
    entries = list_entries(panel_id)
    timeline = []
    for index, entry in enumerate(entries):
        previous = entries[index + 1] if index + 1 < len(entries) else None
        item = entry.to_dict()
        item["previous_status"] = previous.status if previous else None
        item["previous_status_name"] = previous.status_name if previous else None
        timeline.append(item)
    return timeline
