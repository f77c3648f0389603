from __future__ import annotations

from ..extensions import db
from biztracker.time_utils import to_utc_z


class Expense(db.Model):
    """Money spent running the shop (internal) or on outside services (external)."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(16), nullable=False, index=True)  # internal, external
    subcategory = db.Column(db.String(64), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    recurring = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "category": self.category,
            "subcategory": self.subcategory,
            "date": to_utc_z(self.date),
            "recurring": self.recurring,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
