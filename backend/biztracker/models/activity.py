from __future__ import annotations

from ..extensions import db
from biztracker.time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    Append-only feed of financial events (sale, expense, debt_repayment).

    IMMUTABLE: Rows are never updated or deleted. Used for the dashboard
    feed and reports only; ledger state is never re-derived from it.
    """
    __tablename__ = "activity_log"
    __table_args__ = (
        db.Index("ix_activity_log_type_date", "activity_type", "activity_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_type = db.Column(db.String(32), nullable=False, index=True)
    reference_id = db.Column(db.Integer, nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(32), nullable=True)
    details = db.Column(db.JSON, nullable=True)

    activity_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "activity_type": self.activity_type,
            "reference_id": self.reference_id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "details": self.details or {},
            "activity_date": to_utc_z(self.activity_date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
