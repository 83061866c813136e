"""
Panel Tracker
Panel domain models.

Models:
    - Panel:               manufactured construction panel; only ``status`` is
                           driven by the lifecycle engine
    - PanelStatusHistory:  append-mostly audit trail, one row per committed
                           status change

Architecture:
    Panel ──1:N──▶ PanelStatusHistory

``PanelStatusHistory.id`` is an autoincrement integer and doubles as the
insertion sequence: the newest row of a (panel, status) pair is found by
id, and the timeline uses it to order rows with equal timestamps.
"""

import uuid
from datetime import datetime, timezone

from panel_tracker.models import db
from panel_tracker.models.panel_status import PanelStatus, PANEL_STATUS_NAMES


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _status_label(ordinal):
    if ordinal is None or not 0 <= ordinal < len(PANEL_STATUS_NAMES):
        return "Unknown"
    return PANEL_STATUS_NAMES[ordinal]


class Panel(db.Model):
    """A construction panel tracked from production to final approval."""

    __tablename__ = "panels"
    __table_args__ = (
        db.Index("idx_panel_project_status", "project_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(db.String(36), nullable=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(
        db.Integer, nullable=False, default=int(PanelStatus.ISSUED_FOR_PRODUCTION),
        comment="Status ordinal, see panel_tracker.models.panel_status",
    )
    issued_for_production_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    status_history = db.relationship(
        "PanelStatusHistory",
        back_populates="panel",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="PanelStatusHistory.id",
    )

    @property
    def status_name(self) -> str:
        return _status_label(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "status": self.status,
            "status_name": self.status_name,
            "issued_for_production_date": (
                self.issued_for_production_date.isoformat()
                if self.issued_for_production_date else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Panel {self.id}: {self.name} status={self.status}>"


class PanelStatusHistory(db.Model):
    """
    One audit row per committed status change.

    Rows are never deleted by the engine. The only permitted mutation is
    overwriting ``created_at`` of the newest row for a (panel, status) pair
    during timestamp reconciliation.
    """

    __tablename__ = "panel_status_histories"
    __table_args__ = (
        db.Index("idx_psh_panel_status", "panel_id", "status"),
        db.Index("idx_psh_panel_created", "panel_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    panel_id = db.Column(
        db.String(36),
        db.ForeignKey("panels.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow,
        comment="Business timestamp of the change; may be reconciled",
    )
    user_id = db.Column(
        db.String(150), nullable=True,
        comment="Opaque acting-user reference supplied by the caller",
    )
    notes = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)

    panel = db.relationship("Panel", back_populates="status_history")

    @property
    def status_name(self) -> str:
        return _status_label(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "panel_id": self.panel_id,
            "status": self.status,
            "status_name": self.status_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "user_id": self.user_id,
            "notes": self.notes,
            "image_url": self.image_url,
        }

    def __repr__(self):
        return f"<PanelStatusHistory {self.id}: panel={self.panel_id} status={self.status}>"
