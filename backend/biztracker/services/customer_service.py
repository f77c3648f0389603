# Overview: Customer master data; lookup, creation, and soft delete.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Debt, Sale
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry

CUSTOMER_MUTABLE_FIELDS = {"name", "phone", "email", "address", "note"}
SEARCH_LIMIT = 200


def list_customers(q: str | None = None) -> list[Customer]:
    """Non-deleted customers, newest first; `q` matches name or phone."""
    query = db.session.query(Customer).filter(Customer.is_deleted.is_(False))
    if q:
        pattern = f"%{q.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Customer.name).like(pattern),
                func.lower(func.coalesce(Customer.phone, "")).like(pattern),
            )
        )
    return query.order_by(Customer.created_at.desc(), Customer.id.desc()).limit(SEARCH_LIMIT).all()


def get_customer(customer_id: int, include_deleted: bool = False) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None or (customer.is_deleted and not include_deleted):
        raise NotFoundError("Customer not found")
    return customer


def _ensure_phone_free(phone: str | None, exclude_id: int | None = None) -> None:
    if not phone:
        return
    query = db.session.query(Customer.id).filter(Customer.phone == phone)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Phone already exists")


def create_customer(patch: dict) -> Customer:
    def _op():
        _ensure_phone_free(patch.get("phone"))
        customer = Customer(**{k: v for k, v in patch.items() if k in CUSTOMER_MUTABLE_FIELDS})
        db.session.add(customer)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race on the unique phone constraint
            raise ConflictError("Phone already exists")
        return customer

    return run_with_retry(_op)


def update_customer(customer_id: int, patch: dict) -> Customer:
    def _op():
        customer = get_customer(customer_id)
        if "name" in patch and not patch["name"]:
            raise ValidationError("Name is required")
        if "phone" in patch:
            _ensure_phone_free(patch["phone"], exclude_id=customer.id)
        for k, v in patch.items():
            if k in CUSTOMER_MUTABLE_FIELDS:
                setattr(customer, k, v)
        try:
            db.session.commit()
        except IntegrityError:
            raise ConflictError("Phone already exists")
        return customer

    return run_with_retry(_op)


def customer_outstanding_cents(customer_id: int) -> int:
    """Total still owed by a customer, including debts not yet backfilled."""
    total = (
        db.session.query(
            func.coalesce(func.sum(Debt.amount_cents - Debt.repaid_amount_cents), 0)
        )
        .join(Sale, Sale.id == Debt.sale_id)
        .filter(
            or_(
                Debt.customer_id == customer_id,
                (Debt.customer_id.is_(None)) & (Sale.customer_id == customer_id),
            ),
            Debt.amount_cents > Debt.repaid_amount_cents,
        )
        .scalar()
    )
    return int(total or 0)


def soft_delete_customer(customer_id: int) -> Customer:
    """Hide a customer; refused while they still owe money."""
    def _op():
        customer = get_customer(customer_id)
        if customer_outstanding_cents(customer.id) > 0:
            raise ValidationError("Cannot delete customer with outstanding debt")
        customer.is_deleted = True
        db.session.commit()
        current_app.logger.info("Customer %s soft-deleted", customer.id)
        return customer

    return run_with_retry(_op)


def resolve_customer_for_sale(buyer_name: str, customer_id: int | None = None) -> Customer:
    """
    Find the customer a sale belongs to, creating one on the first named sale.

    Runs inside the caller's transaction (flush only).
    """
    if customer_id is not None:
        return get_customer(customer_id)

    name = buyer_name.strip()
    customer = (
        db.session.query(Customer)
        .filter(Customer.is_deleted.is_(False), func.lower(Customer.name) == name.lower())
        .order_by(Customer.id.asc())
        .first()
    )
    if customer is None:
        customer = Customer(name=name)
        db.session.add(customer)
        db.session.flush()
    return customer
