# Overview: Debt repayment engine; single-debt repayments and FIFO allocation of customer payments.

"""
Debt Repayment Service

WHY: Money must never be double-counted or lost. Every repayment updates
the debt, its sale, the payment history, and the activity feed in one
transaction, or none of them.

LEDGER INVARIANTS:
- repaid_amount_cents >= 0 and never decreases
- sale.balance_cents == max(0, debt.amount_cents - debt.repaid_amount_cents)
- sale.payment_status == "paid" exactly when the balance is 0
- payment_history rows are append-only

OVERPAYMENT (see REJECT_DEBT_OVERPAYMENT):
A single-debt repayment larger than the outstanding balance is accepted by
default. The sale balance floors at 0 but repaid_amount_cents is not capped,
so it can exceed amount_cents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Debt, Item, PaymentHistory, Sale, SaleItem
from ..validation import NotFoundError, ValidationError, parse_amount_cents, parse_optional_text
from biztracker.time_utils import as_utc_naive, to_utc_z, utcnow
from .activity_service import append_activity, ACTIVITY_DEBT_REPAYMENT
from .concurrency import lock_for_update, run_with_retry
from .customer_service import get_customer
from .sales_service import (
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_TYPE_DEBT_REPAYMENT,
    PAYMENT_TYPE_FULL_SETTLEMENT,
)


@dataclass(frozen=True)
class RepaymentResult:
    new_balance_cents: int
    total_repaid_cents: int
    is_fully_paid: bool

    def to_dict(self) -> dict:
        return {
            "new_balance_cents": self.new_balance_cents,
            "total_repaid_cents": self.total_repaid_cents,
            "is_fully_paid": self.is_fully_paid,
        }


@dataclass
class AllocationResult:
    customer_id: int
    paid_cents: int
    unallocated_cents: int
    allocations: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "paid_cents": self.paid_cents,
            "unallocated_cents": self.unallocated_cents,
            "allocations": self.allocations,
        }


def format_money(cents: int) -> str:
    symbol = current_app.config.get("CURRENCY_SYMBOL", "₦")
    return f"{symbol}{cents / 100:,.2f}"


def _default_description(new_balance_cents: int) -> str:
    if new_balance_cents == 0:
        return "Final payment - debt fully settled"
    return f"Debt repayment - remaining balance: {format_money(new_balance_cents)}"


def _apply_payment(
    debt: Debt,
    sale: Sale,
    amount_cents: int,
    *,
    description: str | None,
    created_by: str | None,
    source: str,
) -> RepaymentResult:
    """
    Post one payment against one locked debt inside the caller's transaction.

    Order: payment history, debt, sale, activity.
    """
    now = utcnow()
    new_repaid = debt.repaid_amount_cents + amount_cents
    new_balance = max(0, debt.amount_cents - new_repaid)
    payment_type = PAYMENT_TYPE_FULL_SETTLEMENT if new_balance == 0 else PAYMENT_TYPE_DEBT_REPAYMENT

    # Rows recorded before customer linkage pick it up from their sale
    if debt.customer_id is None and sale.customer_id is not None:
        debt.customer_id = sale.customer_id

    db.session.add(PaymentHistory(
        sale_id=sale.id,
        customer_id=debt.customer_id,
        payment_type=payment_type,
        amount_cents=amount_cents,
        description=description or _default_description(new_balance),
        created_by=created_by,
        payment_date=now,
    ))

    debt.repaid_amount_cents = new_repaid
    debt.updated_at = now

    sale.balance_cents = new_balance
    sale.payment_status = PAYMENT_STATUS_PAID if new_balance == 0 else PAYMENT_STATUS_PARTIAL

    append_activity(
        activity_type=ACTIVITY_DEBT_REPAYMENT,
        reference_id=debt.id,
        description=sale.buyer_name,
        amount_cents=amount_cents,
        status=payment_type,
        activity_date=now,
        created_by=created_by,
        details={
            "sale_id": sale.id,
            "new_balance_cents": new_balance,
            "total_repaid_cents": new_repaid,
            "buyer_name": sale.buyer_name,
            "customer_id": debt.customer_id,
            "source": source,
        },
    )

    return RepaymentResult(
        new_balance_cents=new_balance,
        total_repaid_cents=new_repaid,
        is_fully_paid=new_balance == 0,
    )


def repay_debt(
    debt_id: int,
    amount_cents,
    description: str | None = None,
    created_by: str | None = None,
) -> RepaymentResult:
    """
    Record a repayment against a single debt.

    Args:
        debt_id: Debt being repaid
        amount_cents: Amount received, > 0
        description: Free text for the payment history (generated if absent)
        created_by: Operator recording the payment (optional)

    Returns:
        RepaymentResult with the new sale balance and cumulative repayments

    Raises:
        ValidationError: amount missing or <= 0, description not a string of
            at most 255 characters, or an overpayment when
            REJECT_DEBT_OVERPAYMENT is enabled
        NotFoundError: debt does not exist
    """
    amount = parse_amount_cents(amount_cents)
    description = parse_optional_text(description, "description")
    created_by = parse_optional_text(created_by, "created_by", max_length=64)

    def _op():
        debt = lock_for_update(db.session.query(Debt).filter_by(id=debt_id)).first()
        if debt is None:
            raise NotFoundError("Debt not found")

        sale = lock_for_update(db.session.query(Sale).filter_by(id=debt.sale_id)).first()
        if sale is None:
            raise NotFoundError("Sale not found for debt")

        if current_app.config.get("REJECT_DEBT_OVERPAYMENT") and amount > debt.outstanding_cents:
            raise ValidationError(
                f"Repayment exceeds outstanding balance of {format_money(debt.outstanding_cents)}"
            )

        result = _apply_payment(
            debt, sale, amount,
            description=description,
            created_by=created_by,
            source="single_debt",
        )
        db.session.commit()
        current_app.logger.info(
            "Debt %s repaid %s: balance=%s total_repaid=%s",
            debt.id, amount, result.new_balance_cents, result.total_repaid_cents,
        )
        return result

    return run_with_retry(_op)


def _open_debts_for_customer_query(customer_id: int):
    """Open debts of a customer joined to their sales, oldest sale first."""
    return (
        db.session.query(Debt, Sale)
        .join(Sale, Sale.id == Debt.sale_id)
        .filter(
            or_(
                Debt.customer_id == customer_id,
                (Debt.customer_id.is_(None)) & (Sale.customer_id == customer_id),
            ),
            Debt.amount_cents > Debt.repaid_amount_cents,
        )
        .order_by(Sale.created_at.asc(), Debt.id.asc())
    )


def allocate_customer_payment(
    customer_id: int,
    amount_cents,
    description: str | None = None,
    created_by: str | None = None,
) -> AllocationResult:
    """
    Spread one customer payment across their open debts, oldest sale first.

    Each debt receives at most its outstanding amount. Money left over after
    every open debt is settled is returned as unallocated and not persisted.

    Invariant: sum(allocated) + unallocated == amount.

    Raises:
        ValidationError: amount missing or <= 0, or a bad description
        NotFoundError: customer missing or soft-deleted
    """
    amount = parse_amount_cents(amount_cents)
    description = parse_optional_text(description, "description")
    created_by = parse_optional_text(created_by, "created_by", max_length=64)

    def _op():
        customer = get_customer(customer_id)

        # Locks the fetched debt and sale rows so concurrent payments for the
        # same customer serialize instead of allocating the same balance twice
        rows = lock_for_update(_open_debts_for_customer_query(customer.id)).all()

        remaining = amount
        allocations = []
        for debt, sale in rows:
            if remaining <= 0:
                break
            open_cents = debt.amount_cents - debt.repaid_amount_cents
            pay = min(open_cents, remaining)

            result = _apply_payment(
                debt, sale, pay,
                description=description,
                created_by=created_by,
                source="customer_payment",
            )
            allocations.append({
                "debt_id": debt.id,
                "sale_id": sale.id,
                "allocated_cents": pay,
                "new_balance_cents": result.new_balance_cents,
                "is_fully_paid": result.is_fully_paid,
            })
            remaining -= pay

        db.session.commit()
        current_app.logger.info(
            "Customer %s payment %s allocated across %s debts, unallocated=%s",
            customer.id, amount, len(allocations), remaining,
        )
        return AllocationResult(
            customer_id=customer.id,
            paid_cents=amount - remaining,
            unallocated_cents=remaining,
            allocations=allocations,
        )

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def _debt_status(outstanding_cents: int, sale_date, now) -> str:
    if outstanding_cents <= 0:
        return "paid"
    overdue_after = timedelta(days=current_app.config.get("OVERDUE_AFTER_DAYS", 7))
    return "overdue" if as_utc_naive(sale_date) < now - overdue_after else "current"


def _serialize_debt(debt: Debt, sale: Sale, now) -> dict:
    outstanding = max(0, debt.amount_cents - debt.repaid_amount_cents)
    last_payment = None
    if debt.repaid_amount_cents > 0:
        last_payment = (
            db.session.query(func.max(PaymentHistory.payment_date))
            .filter(PaymentHistory.sale_id == sale.id)
            .scalar()
        )
    lines = (
        db.session.query(SaleItem.quantity, Item.name)
        .join(Item, Item.id == SaleItem.item_id)
        .filter(SaleItem.sale_id == sale.id)
        .order_by(SaleItem.id.asc())
        .all()
    )
    return {
        "id": debt.id,
        "sale_id": sale.id,
        "customer": sale.buyer_name,
        "customer_id": debt.customer_id if debt.customer_id is not None else sale.customer_id,
        "original_amount_cents": sale.total_cents,
        "amount_cents": debt.amount_cents,
        "paid_amount_cents": debt.repaid_amount_cents,
        "balance_cents": outstanding,
        "payment_status": sale.payment_status,
        "status": _debt_status(outstanding, sale.created_at, now),
        "sale_date": sale.created_at.date().isoformat(),
        "last_payment": last_payment.date().isoformat() if last_payment else None,
        "items": ", ".join(f"{name} ({qty})" for qty, name in lines),
    }


def list_open_debts() -> list[dict]:
    """Open debts with sale and item context, newest debt first."""
    now = utcnow()
    rows = (
        db.session.query(Debt, Sale)
        .join(Sale, Sale.id == Debt.sale_id)
        .filter(Debt.amount_cents > Debt.repaid_amount_cents)
        .order_by(Debt.created_at.desc(), Debt.id.desc())
        .all()
    )
    return [_serialize_debt(debt, sale, now) for debt, sale in rows]


def get_debt(debt_id: int) -> dict:
    row = (
        db.session.query(Debt, Sale)
        .join(Sale, Sale.id == Debt.sale_id)
        .filter(Debt.id == debt_id)
        .first()
    )
    if row is None:
        raise NotFoundError("Debt not found")
    debt, sale = row
    return _serialize_debt(debt, sale, utcnow())


def customer_debt_summary() -> list[dict]:
    """
    Per-customer totals for everyone who still owes money.

    Debts without a customer link fall back to the sale's customer, and
    failing that are grouped under the buyer name with customer_id None.
    """
    resolved_id = func.coalesce(Debt.customer_id, Sale.customer_id)
    name = func.coalesce(Customer.name, Sale.buyer_name)
    total_debt = func.sum(Debt.amount_cents)
    total_repaid = func.sum(Debt.repaid_amount_cents)

    rows = (
        db.session.query(
            resolved_id.label("customer_id"),
            name.label("customer_name"),
            total_debt.label("total_debt"),
            total_repaid.label("total_repaid"),
            func.max(Debt.updated_at).label("last_activity"),
        )
        .join(Sale, Sale.id == Debt.sale_id)
        .outerjoin(Customer, Customer.id == resolved_id)
        .group_by(resolved_id, name)
        .having(total_debt - total_repaid > 0)
        .all()
    )

    summary = [
        {
            "customer_id": row.customer_id,
            "customer_name": row.customer_name,
            "total_debt_cents": int(row.total_debt or 0),
            "total_repaid_cents": int(row.total_repaid or 0),
            "outstanding_cents": int((row.total_debt or 0) - (row.total_repaid or 0)),
            "last_activity": row.last_activity,
        }
        for row in rows
    ]
    summary.sort(key=lambda r: (-r["outstanding_cents"], (r["customer_name"] or "").lower()))
    for row in summary:
        row["last_activity"] = to_utc_z(row["last_activity"]) if row["last_activity"] else None
    return summary
