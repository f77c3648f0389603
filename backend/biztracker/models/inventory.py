from __future__ import annotations

from ..extensions import db
from biztracker.time_utils import to_utc_z


class Item(db.Model):
    """
    Stock item sold over the counter.

    `wholesale_price_cents` is optional; items without it contribute
    nothing to profit reports.
    """
    __tablename__ = "items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False)
    wholesale_price_cents = db.Column(db.Integer, nullable=True)
    stock = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "wholesale_price_cents": self.wholesale_price_cents,
            "stock": self.stock,
            "created_at": to_utc_z(self.created_at),
        }
