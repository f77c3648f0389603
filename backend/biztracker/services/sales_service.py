"""
Sales Service - counter sales, stock decrement, and debt creation

WHY: A sale is the only event that creates a debt. Recording the sale,
its lines, the stock movement, the initial payment, the debt, and the
activity entry in one transaction keeps the ledger consistent.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Sale, SaleItem, Item, Debt, PaymentHistory
from ..validation import NotFoundError, ValidationError, PAYMENT_STATUSES, coerce_int, parse_optional_text
from biztracker.time_utils import utcnow
from .activity_service import append_activity, ACTIVITY_SALE
from .concurrency import lock_for_update, run_with_retry
from .customer_service import resolve_customer_for_sale


PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_DEBT = "debt"

PAYMENT_TYPE_INITIAL = "initial"
PAYMENT_TYPE_PARTIAL = "partial"
PAYMENT_TYPE_DEBT_REPAYMENT = "debt_repayment"
PAYMENT_TYPE_FULL_SETTLEMENT = "full_settlement"


def normalize_lines(lines) -> list[tuple[int, int]]:
    """Validate [{item_id, quantity}, ...] into (item_id, quantity) pairs."""
    if not isinstance(lines, list) or not lines:
        raise ValidationError("At least one item is required")

    normalized = []
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError("Each item must be an object with item_id and quantity")
        if line.get("item_id") is None or line.get("quantity") is None:
            raise ValidationError("item_id and quantity required for each item")
        item_id = coerce_int(line["item_id"], "item_id")
        quantity = coerce_int(line["quantity"], "quantity")
        if quantity <= 0:
            raise ValidationError("quantity must be greater than 0")
        normalized.append((item_id, quantity))
    return normalized


def _initial_balance(payment_status: str, total_cents: int, balance_cents: int | None) -> int:
    if payment_status == PAYMENT_STATUS_PAID:
        return 0
    if payment_status == PAYMENT_STATUS_DEBT:
        return total_cents

    # partial: the caller says how much is still owed
    if balance_cents is None:
        raise ValidationError("balance_cents is required for partial payments")
    if balance_cents <= 0 or balance_cents >= total_cents:
        raise ValidationError("balance_cents must be greater than 0 and less than the sale total")
    return balance_cents


def create_sale(
    *,
    buyer_name: str,
    lines: list[tuple[int, int]],
    payment_status: str,
    balance_cents: int | None = None,
    customer_id: int | None = None,
    created_by: str | None = None,
) -> Sale:
    """
    Record a sale and, if anything is left unpaid, its debt.

    Args:
        buyer_name: Name typed at the counter (links or creates a customer)
        lines: (item_id, quantity) pairs
        payment_status: paid, partial, or debt
        balance_cents: Amount still owed (partial sales only)
        customer_id: Explicit customer link (optional)
        created_by: Operator recording the sale (optional)

    Raises:
        ValidationError: Bad input or insufficient stock
        NotFoundError: Unknown item or customer
    """
    buyer_name = parse_optional_text(buyer_name, "buyer_name")
    if buyer_name is None:
        raise ValidationError("buyer_name is required")
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment_status. Must be one of {list(PAYMENT_STATUSES)}")
    if not lines:
        raise ValidationError("At least one item is required")

    def _op():
        now = utcnow()
        customer = resolve_customer_for_sale(buyer_name, customer_id)

        sale_lines = []
        total_cents = 0
        for item_id, quantity in lines:
            item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
            if item is None:
                raise NotFoundError(f"Item with ID {item_id} not found")
            if item.stock < quantity:
                raise ValidationError(f"Insufficient stock for item {item.name}")

            subtotal = item.price_cents * quantity
            total_cents += subtotal
            item.stock -= quantity
            sale_lines.append(SaleItem(
                item_id=item.id,
                quantity=quantity,
                price_at_sale_cents=item.price_cents,
                wholesale_price_at_sale_cents=item.wholesale_price_cents,
                subtotal_cents=subtotal,
            ))

        if total_cents <= 0:
            raise ValidationError("Sale total must be greater than 0")

        balance = _initial_balance(payment_status, total_cents, balance_cents)

        sale = Sale(
            buyer_name=buyer_name.strip(),
            customer_id=customer.id,
            total_cents=total_cents,
            balance_cents=balance,
            payment_status=payment_status,
            created_by=created_by,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for line in sale_lines:
            line.sale_id = sale.id
            db.session.add(line)

        _record_initial_payment(sale, now)

        # The only place a Debt row is ever created
        if balance > 0:
            db.session.add(Debt(
                sale_id=sale.id,
                customer_id=customer.id,
                amount_cents=total_cents,
                # Money taken at the counter counts as already repaid
                repaid_amount_cents=total_cents - balance,
                created_at=now,
                updated_at=now,
            ))

        append_activity(
            activity_type=ACTIVITY_SALE,
            reference_id=sale.id,
            description=sale.buyer_name,
            amount_cents=total_cents,
            status=payment_status,
            activity_date=now,
            created_by=created_by,
            details={
                "customer_id": customer.id,
                "balance_cents": balance,
                "items": [{"item_id": i, "quantity": q} for i, q in lines],
            },
        )

        db.session.commit()
        current_app.logger.info(
            "Sale %s recorded: total=%s balance=%s status=%s",
            sale.id, total_cents, balance, payment_status,
        )
        return sale

    return run_with_retry(_op)


def _record_initial_payment(sale: Sale, when) -> PaymentHistory:
    if sale.payment_status == PAYMENT_STATUS_PAID:
        payment_type = PAYMENT_TYPE_FULL_SETTLEMENT
        amount = sale.total_cents
        description = "Full payment on sale creation"
    elif sale.payment_status == PAYMENT_STATUS_PARTIAL:
        payment_type = PAYMENT_TYPE_INITIAL
        amount = sale.total_cents - sale.balance_cents
        description = "Initial partial payment"
    else:
        payment_type = PAYMENT_TYPE_INITIAL
        amount = 0
        description = "Debt sale - no initial payment"

    payment = PaymentHistory(
        sale_id=sale.id,
        customer_id=sale.customer_id,
        payment_type=payment_type,
        amount_cents=amount,
        description=description,
        created_by=sale.created_by,
        payment_date=when,
    )
    db.session.add(payment)
    return payment


def list_sales() -> list[Sale]:
    return db.session.query(Sale).order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def get_payment_history(sale_id: int) -> list[PaymentHistory]:
    get_sale(sale_id)
    return (
        db.session.query(PaymentHistory)
        .filter_by(sale_id=sale_id)
        .order_by(PaymentHistory.payment_date.asc(), PaymentHistory.id.asc())
        .all()
    )
