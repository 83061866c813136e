"""
Panel Lifecycle Service

Sequences a committed status change:
  1. role-scoped validation (panel_transition)
  2. persist the new status on the panel
  3. append a status history row (panel_history_service)

A validation failure never reaches steps 2-3. Bulk operations run one
independent triple per panel inside a SAVEPOINT, so a failing panel never
rolls back the others (partial success allowed).

Usage:
    from panel_tracker.services.panel_lifecycle import change_panel_status

    result = change_panel_status(
        panel_id="abc",
        new_status=PanelStatus.DELIVERED,
        user_id="user-1",
        role="Store Site",
    )
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from panel_tracker.core.exceptions import (
    NotFoundError,
    PersistenceError,
    StatusOutOfRange,
    TransitionError,
    ValidationError,
)
from panel_tracker.models import db
from panel_tracker.models.panel import Panel
from panel_tracker.models.panel_status import (
    PanelStatus,
    is_valid_ordinal,
    parse_status,
    status_name,
)
from panel_tracker.services.panel_history_service import (
    append_entry,
    find_latest_entry,
    list_entries,
    previous_status_before_hold,
    reconcile_latest_timestamp,
    update_entry_timestamp,
)
from panel_tracker.services.panel_transition import (
    next_statuses_for_role,
    validate_transition_for_role,
)

logger = logging.getLogger(__name__)

IMPORT_MODE_INSERT = "insert"
IMPORT_MODE_UPDATE = "update"

SYNC_NOTE = "Status synchronized with current panel status during bulk import"

# Update mode leaves rows whose timestamp differs by less than this
_TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def _get_panel(panel_id: str) -> Panel:
    try:
        panel = db.session.get(Panel, panel_id)
    except SQLAlchemyError as exc:
        raise PersistenceError("panel lookup", str(exc)) from exc
    if panel is None:
        raise NotFoundError(resource="Panel", resource_id=panel_id)
    return panel


def available_statuses_for_panel(panel_id: str, role: str) -> list[int]:
    """
    Statuses ``role`` may pick for the panel, ascending.

    For an Administrator on an On Hold panel the resumable previous status
    is read from the audit trail.
    """
    panel = _get_panel(panel_id)
    previous = None
    if panel.status == PanelStatus.ON_HOLD:
        previous = previous_status_before_hold(panel.id)
    return sorted(next_statuses_for_role(panel.status, role, previous_status=previous))


def change_panel_status(
    panel_id: str,
    new_status: int,
    user_id: str | None,
    role: str,
    *,
    notes: str | None = None,
    image_url: str | None = None,
    timestamp: datetime | None = None,
) -> dict:
    """
    Validate, persist and audit a single panel status change.

    Returns:
        {"panel_id", "previous_status", "new_status", "history_id"}

    Raises:
        NotFoundError, TransitionError (any subclass), PersistenceError
    """
    panel = _get_panel(panel_id)
    previous_status = panel.status

    error = validate_transition_for_role(previous_status, new_status, role)
    if error is not None:
        logger.info(
            "Panel status change rejected panel_id=%s %s→%s role=%s kind=%s",
            panel.id, previous_status, new_status, role, error.kind,
            extra={"panel_id": panel.id, "role": role, "event_type": f"panel.status.{error.kind}"},
        )
        raise error

    panel.status = int(new_status)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError("panel status update", str(exc)) from exc

    if notes is None and _default_notes_enabled():
        notes = f"Status changed from {status_name(previous_status)} to {status_name(new_status)}"

    entry = append_entry(
        panel.id, new_status, user_id,
        timestamp=timestamp, notes=notes, image_url=image_url,
    )

    logger.info(
        "Panel status changed panel_id=%s %s→%s role=%s",
        panel.id, previous_status, panel.status, role,
        extra={
            "panel_id": panel.id, "status": panel.status, "role": role,
            "event_type": "panel.status.changed",
        },
    )
    return {
        "panel_id": panel.id,
        "previous_status": previous_status,
        "new_status": panel.status,
        "history_id": entry.id,
    }


def batch_change_status(
    panel_ids: list[str],
    new_status: int,
    user_id: str | None,
    role: str,
    *,
    notes: str | None = None,
) -> dict:
    """
    Apply one status to many panels. Partial success allowed.

    Each panel runs its own validate → persist → audit triple inside a
    nested transaction; a failure rolls back only that panel.

    Returns:
        {"success": [...], "errors": [...], "success_count", "error_count"}
    """
    if notes is None and _default_notes_enabled() and is_valid_ordinal(new_status):
        notes = f"Bulk status update to {status_name(new_status)}"

    results = {"success": [], "errors": []}

    for panel_id in panel_ids:
        try:
            with db.session.begin_nested():
                result = change_panel_status(
                    panel_id, new_status, user_id, role, notes=notes,
                )
            results["success"].append(result)
        except TransitionError as e:
            results["errors"].append({
                "panel_id": panel_id,
                "error": str(e),
                "error_type": type(e).__name__,
                "details": e.to_dict(),
            })
        except (NotFoundError, PersistenceError) as e:
            results["errors"].append({
                "panel_id": panel_id,
                "error": str(e),
                "error_type": type(e).__name__,
                "details": {},
            })

    results["success_count"] = len(results["success"])
    results["error_count"] = len(results["errors"])
    logger.info(
        "Bulk status update to %s: %d succeeded, %d failed",
        new_status, results["success_count"], results["error_count"],
        extra={"role": role, "event_type": "panel.status.bulk"},
    )
    return results


def set_issued_for_production_date(
    panel_id: str,
    issued_at: datetime,
    user_id: str | None,
    *,
    notes: str | None = None,
) -> dict:
    """
    Store the panel's Issued For Production business date and move the
    matching history row to that date (or record one if missing).
    """
    panel = _get_panel(panel_id)
    panel.issued_for_production_date = issued_at
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        raise PersistenceError("panel update", str(exc)) from exc

    entry = reconcile_latest_timestamp(
        panel.id, PanelStatus.ISSUED_FOR_PRODUCTION, user_id, issued_at, notes=notes,
    )
    return {"panel_id": panel.id, "history_id": entry.id, "history": entry.to_dict()}


def _prepare_import_rows(panel_id: str, rows: list[dict]) -> list[tuple]:
    """
    Parse, order and collapse imported rows.

    Returns ``(created_at, index, status, row)`` tuples sorted by date
    (undated rows last, in input order) with consecutive repeats of the
    same status dropped. Nothing is written.
    """
    parsed = []
    for index, row in enumerate(rows):
        try:
            status = parse_status(row.get("status"))
        except (ValueError, StatusOutOfRange):
            logger.warning("Rejected history import row %d for panel_id=%s", index, panel_id)
            raise
        created_at = row.get("created_at")
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        parsed.append((created_at, index, status, row))

    parsed.sort(key=lambda item: (item[0] is None, item[0].timestamp() if item[0] else 0.0, item[1]))

    collapsed = []
    last_status = None
    for item in parsed:
        if item[2] == last_status:
            continue
        collapsed.append(item)
        last_status = item[2]
    return collapsed


def import_status_history(
    panel_id: str,
    rows: list[dict],
    user_id: str | None,
    *,
    mode: str = IMPORT_MODE_INSERT,
) -> dict:
    """
    Record imported history rows for one panel.

    Each row carries ``status`` (ordinal or display name) and optionally
    ``created_at`` (datetime), ``notes``, ``image_url`` and ``user_id``
    (overrides the importing user). Rows are ordered chronologically
    (undated rows keep their order after dated ones) and consecutive
    repeats of the same status are collapsed. The panel's own status is
    never changed.

    Modes:
        insert: append one entry per row. If the panel's current status
                differs from the last imported one, a sync entry with the
                current status is appended so the trail ends on the
                panel's real state.
        update: rewrite ``created_at`` of the newest existing entry with
                the same status and user; rows without a match or without
                a date are skipped. Differences under one second are
                ignored. Requires existing history.

    Returns:
        {"panel_id", "created": [...], "updated": [...], "skipped": [...],
         "sync_entry": entry or None}

    Raises ValueError / StatusOutOfRange for an unparseable status (or an
    unknown mode) before anything is written, and ValidationError in
    update mode when the panel has no history.
    """
    if mode not in (IMPORT_MODE_INSERT, IMPORT_MODE_UPDATE):
        raise ValueError(f"Unknown import mode: {mode!r}")

    panel = _get_panel(panel_id)
    prepared = _prepare_import_rows(panel.id, rows)

    if mode == IMPORT_MODE_UPDATE:
        result = _update_imported_timestamps(panel, prepared, user_id)
    else:
        result = _insert_imported_rows(panel, prepared, user_id)

    logger.info(
        "History import (%s) panel_id=%s: %d created, %d updated, %d skipped of %d supplied",
        mode, panel.id, len(result["created"]), len(result["updated"]),
        len(result["skipped"]), len(rows),
        extra={"panel_id": panel.id, "event_type": f"history.import.{mode}"},
    )
    return result


def _insert_imported_rows(panel: Panel, prepared: list[tuple], user_id: str | None) -> dict:
    created = []
    for created_at, _index, status, row in prepared:
        created.append(append_entry(
            panel.id, status, row.get("user_id") or user_id,
            timestamp=created_at,
            notes=row.get("notes"),
            image_url=row.get("image_url"),
        ))

    sync_entry = None
    if created and created[-1].status != panel.status:
        sync_entry = append_entry(panel.id, panel.status, user_id, notes=SYNC_NOTE)
        logger.info(
            "Appended sync entry panel_id=%s %s→%s",
            panel.id, created[-1].status, panel.status,
            extra={"panel_id": panel.id, "status": panel.status, "event_type": "history.import.sync"},
        )

    return {
        "panel_id": panel.id,
        "created": created,
        "updated": [],
        "skipped": [],
        "sync_entry": sync_entry,
    }


def _update_imported_timestamps(panel: Panel, prepared: list[tuple], user_id: str | None) -> dict:
    if not list_entries(panel.id):
        raise ValidationError(
            "No existing status history to update",
            details={"panel_id": panel.id},
        )

    updated = []
    skipped = []
    for created_at, index, status, row in prepared:
        row_user = row.get("user_id") or user_id
        entry = None
        if created_at is not None:
            entry = find_latest_entry(panel.id, status, user_id=row_user, for_update=True)
        if entry is None:
            skipped.append({"index": index, "status": status, "reason": "no matching entry or date"})
            continue
        current = entry.created_at
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        if abs(created_at - current) <= _TIMESTAMP_TOLERANCE:
            skipped.append({"index": index, "status": status, "reason": "unchanged"})
            continue
        updated.append(update_entry_timestamp(entry, created_at))

    return {
        "panel_id": panel.id,
        "created": [],
        "updated": updated,
        "skipped": skipped,
        "sync_entry": None,
    }


def _default_notes_enabled() -> bool:
    if has_app_context():
        return bool(current_app.config.get("PANEL_HISTORY_DEFAULT_NOTES", True))
    return True
