# Overview: One-off ledger maintenance: customer backfill and invariant audit.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Debt, PaymentHistory, Sale
from .concurrency import run_with_retry


def backfill_customer_links() -> dict:
    """
    Link indebted sales, their debts, and payment history to customers.

    1. Every buyer with an open debt on an unlinked sale gets a customer
       (matched case-insensitively by name, created if missing) and all their
       unlinked sales are pointed at it.
    2. debts.customer_id is copied from the sale where missing.
    3. payment_history.customer_id is copied from the debt where missing.

    Idempotent: a second run changes nothing.
    """
    def _op():
        buyers = (
            db.session.query(Sale.buyer_name)
            .join(Debt, Debt.sale_id == Sale.id)
            .filter(
                Sale.customer_id.is_(None),
                Debt.amount_cents > Debt.repaid_amount_cents,
                Sale.buyer_name.isnot(None),
                Sale.buyer_name != "",
            )
            .distinct()
            .all()
        )

        customers_created = 0
        sales_linked = 0
        for (buyer_name,) in buyers:
            name = buyer_name.strip()
            if not name:
                continue
            customer = (
                db.session.query(Customer)
                .filter(func.lower(Customer.name) == name.lower(), Customer.is_deleted.is_(False))
                .order_by(Customer.id.asc())
                .first()
            )
            if customer is None:
                customer = Customer(name=name)
                db.session.add(customer)
                db.session.flush()
                customers_created += 1

            sales_linked += (
                db.session.query(Sale)
                .filter(Sale.buyer_name == buyer_name, Sale.customer_id.is_(None))
                .update({Sale.customer_id: customer.id}, synchronize_session=False)
            )

        debts_linked = 0
        for debt, sale_customer_id in (
            db.session.query(Debt, Sale.customer_id)
            .join(Sale, Sale.id == Debt.sale_id)
            .filter(Debt.customer_id.is_(None), Sale.customer_id.isnot(None))
            .all()
        ):
            debt.customer_id = sale_customer_id
            debts_linked += 1
        db.session.flush()

        payments_linked = 0
        for payment, debt_customer_id in (
            db.session.query(PaymentHistory, Debt.customer_id)
            .join(Debt, Debt.sale_id == PaymentHistory.sale_id)
            .filter(PaymentHistory.customer_id.is_(None), Debt.customer_id.isnot(None))
            .all()
        ):
            payment.customer_id = debt_customer_id
            payments_linked += 1

        db.session.commit()
        return {
            "customers_created": customers_created,
            "sales_linked": sales_linked,
            "debts_linked": debts_linked,
            "payments_linked": payments_linked,
        }

    return run_with_retry(_op)


def audit_ledger() -> list[dict]:
    """
    Check every sale/debt pair against the ledger invariants.

    Returns one entry per violation; an empty list means the ledger is
    consistent. Overpaid debts (repaid > amount) are reported separately as
    they are allowed unless REJECT_DEBT_OVERPAYMENT is set.
    """
    problems: list[dict] = []

    for sale in db.session.query(Sale).order_by(Sale.id.asc()).all():
        if not 0 <= sale.balance_cents <= sale.total_cents:
            problems.append({"sale_id": sale.id, "problem": "balance_out_of_range"})
        if (sale.payment_status == "paid") != (sale.balance_cents == 0):
            problems.append({"sale_id": sale.id, "problem": "status_balance_mismatch"})

    rows = db.session.query(Debt, Sale).join(Sale, Sale.id == Debt.sale_id).order_by(Debt.id.asc()).all()
    for debt, sale in rows:
        if debt.repaid_amount_cents < 0:
            problems.append({"debt_id": debt.id, "sale_id": sale.id, "problem": "negative_repaid_amount"})
        expected = max(0, debt.amount_cents - debt.repaid_amount_cents)
        if sale.balance_cents != expected:
            problems.append({
                "debt_id": debt.id,
                "sale_id": sale.id,
                "problem": "sale_balance_mismatch",
                "expected_balance_cents": expected,
                "actual_balance_cents": sale.balance_cents,
            })
        if debt.repaid_amount_cents > debt.amount_cents:
            problems.append({
                "debt_id": debt.id,
                "sale_id": sale.id,
                "problem": "overpaid",
                "overpaid_cents": debt.repaid_amount_cents - debt.amount_cents,
            })

    return problems
