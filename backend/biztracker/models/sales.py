from __future__ import annotations

from ..extensions import db
from biztracker.time_utils import to_utc_z


class Sale(db.Model):
    """
    One counter transaction.

    INVARIANTS:
    - 0 <= balance_cents <= total_cents
    - payment_status == "paid" exactly when balance_cents == 0
    - balance_cents == max(0, debt.amount_cents - debt.repaid_amount_cents)
      whenever the sale has a debt
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "payment_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Display name as typed at the counter; may predate customer linkage
    buyer_name = db.Column(db.String(255), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, index=True)  # paid, partial, debt

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "buyer_name": self.buyer_name,
            "customer_id": self.customer_id,
            "total_cents": self.total_cents,
            "balance_cents": self.balance_cents,
            "payment_status": self.payment_status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.items]
        return data


class SaleItem(db.Model):
    """Line of a sale; prices are snapshotted at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale_cents = db.Column(db.Integer, nullable=False)
    wholesale_price_at_sale_cents = db.Column(db.Integer, nullable=True)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "price_at_sale_cents": self.price_at_sale_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class Debt(db.Model):
    """
    The unpaid remainder of a sale, tracked as its own ledger row.

    One row per sale that was not fully paid at creation; created only by
    the sales service. `repaid_amount_cents` never decreases.
    Outstanding = amount_cents - repaid_amount_cents.
    """
    __tablename__ = "debts"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_debts_sale"),
        db.CheckConstraint("repaid_amount_cents >= 0", name="ck_debts_repaid_non_negative"),
        db.Index("ix_debts_customer_id", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    # Nullable for rows recorded before sales were linked to customers
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    repaid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("debt", uselist=False, lazy=True))
    customer = db.relationship("Customer", backref=db.backref("debts", lazy=True))

    @property
    def outstanding_cents(self) -> int:
        return max(0, self.amount_cents - self.repaid_amount_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "repaid_amount_cents": self.repaid_amount_cents,
            "outstanding_cents": self.outstanding_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PaymentHistory(db.Model):
    """
    Append-only record of money received against a sale.

    PAYMENT TYPES:
    - initial: money taken when a partial or debt sale was created
    - partial: reserved for part-payments recorded outside the debt flow
    - debt_repayment: repayment that leaves a balance
    - full_settlement: payment that brings the balance to zero

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "payment_history"
    __table_args__ = (
        db.Index("ix_payment_history_sale_date", "sale_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    payment_type = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="PaymentHistory.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "payment_type": self.payment_type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "created_by": self.created_by,
            "payment_date": to_utc_z(self.payment_date),
            "created_at": to_utc_z(self.created_at),
        }
