"""
Debt repayment engine tests.

Covers single-debt repayment, FIFO allocation of customer payments, and the
ledger invariants that tie debts, sales, payment history, and the activity feed
together.
"""

from datetime import datetime

import pytest

from biztracker.extensions import db
from biztracker.models import ActivityLog, Debt, PaymentHistory, Sale
from biztracker.services import debt_service
from biztracker.validation import NotFoundError, ValidationError


def _payment_rows(sale_id):
    return (
        db.session.query(PaymentHistory)
        .filter_by(sale_id=sale_id)
        .order_by(PaymentHistory.id.asc())
        .all()
    )


def _assert_sale_matches_debt(sale):
    debt = sale.debt
    assert sale.balance_cents == max(0, debt.amount_cents - debt.repaid_amount_cents)
    assert (sale.payment_status == "paid") == (sale.balance_cents == 0)


# =============================================================================
# SINGLE DEBT REPAYMENT
# =============================================================================

def test_partial_repayment_updates_debt_sale_and_history(make_sale):
    sale = make_sale(total_cents=500_000)
    debt = sale.debt

    result = debt_service.repay_debt(debt.id, 200_000, created_by="amaka")

    assert result.new_balance_cents == 300_000
    assert result.total_repaid_cents == 200_000
    assert result.is_fully_paid is False

    db.session.expire_all()
    sale = db.session.get(Sale, sale.id)
    assert sale.balance_cents == 300_000
    assert sale.payment_status == "partial"
    assert sale.debt.repaid_amount_cents == 200_000
    _assert_sale_matches_debt(sale)

    payments = _payment_rows(sale.id)
    assert [p.payment_type for p in payments] == ["initial", "debt_repayment"]
    assert payments[-1].amount_cents == 200_000
    assert payments[-1].created_by == "amaka"
    assert payments[-1].description == "Debt repayment - remaining balance: ₦3,000.00"


def test_exact_repayment_settles_with_one_full_settlement_row(make_sale):
    sale = make_sale(total_cents=250_000)
    before = len(_payment_rows(sale.id))

    result = debt_service.repay_debt(sale.debt.id, 250_000)

    assert result.new_balance_cents == 0
    assert result.is_fully_paid is True
    assert result.total_repaid_cents == 250_000

    payments = _payment_rows(sale.id)
    assert len(payments) == before + 1
    assert payments[-1].payment_type == "full_settlement"
    assert payments[-1].description == "Final payment - debt fully settled"

    db.session.expire_all()
    sale = db.session.get(Sale, sale.id)
    assert sale.payment_status == "paid"
    assert sale.balance_cents == 0


def test_partial_sale_settles_on_remaining_balance(make_sale):
    sale = make_sale(total_cents=100_000, payment_status="partial", balance_cents=40_000)
    assert sale.debt.repaid_amount_cents == 60_000

    result = debt_service.repay_debt(sale.debt.id, 40_000)

    assert result.is_fully_paid is True
    assert result.total_repaid_cents == 100_000
    db.session.expire_all()
    _assert_sale_matches_debt(db.session.get(Sale, sale.id))


def test_repayment_keeps_custom_description(make_sale):
    sale = make_sale(total_cents=100_000)

    debt_service.repay_debt(sale.debt.id, 10_000, description="Paid at the shop")

    assert _payment_rows(sale.id)[-1].description == "Paid at the shop"


def test_overpayment_accepted_by_default_and_balance_floors_at_zero(make_sale):
    sale = make_sale(total_cents=100_000)

    result = debt_service.repay_debt(sale.debt.id, 150_000)

    assert result.new_balance_cents == 0
    assert result.total_repaid_cents == 150_000
    assert result.is_fully_paid is True

    db.session.expire_all()
    debt = db.session.get(Debt, sale.debt.id)
    assert debt.repaid_amount_cents == 150_000
    assert debt.outstanding_cents == 0


def test_overpayment_rejected_when_configured(app, make_sale, monkeypatch):
    monkeypatch.setitem(app.config, "REJECT_DEBT_OVERPAYMENT", True)
    sale = make_sale(total_cents=100_000)
    before = len(_payment_rows(sale.id))

    with pytest.raises(ValidationError):
        debt_service.repay_debt(sale.debt.id, 100_001)

    assert len(_payment_rows(sale.id)) == before
    db.session.expire_all()
    assert db.session.get(Debt, sale.debt.id).repaid_amount_cents == 0


@pytest.mark.parametrize("amount", [0, -500, None, "", "abc", 12.5, "1e5"])
def test_invalid_amount_writes_nothing(make_sale, amount):
    sale = make_sale(total_cents=100_000)
    payments_before = db.session.query(PaymentHistory).count()
    activity_before = db.session.query(ActivityLog).count()

    with pytest.raises(ValidationError):
        debt_service.repay_debt(sale.debt.id, amount)

    assert db.session.query(PaymentHistory).count() == payments_before
    assert db.session.query(ActivityLog).count() == activity_before
    db.session.expire_all()
    assert db.session.get(Debt, sale.debt.id).repaid_amount_cents == 0


@pytest.mark.parametrize("description", ["x" * 256, 123, ["note"]])
def test_invalid_description_writes_nothing(make_sale, description):
    sale = make_sale(total_cents=100_000)
    payments_before = db.session.query(PaymentHistory).count()

    with pytest.raises(ValidationError, match="description"):
        debt_service.repay_debt(sale.debt.id, 10_000, description=description)

    assert db.session.query(PaymentHistory).count() == payments_before
    db.session.expire_all()
    assert db.session.get(Debt, sale.debt.id).repaid_amount_cents == 0


def test_failure_mid_repayment_rolls_back_debt_sale_and_payment(make_sale, monkeypatch):
    sale = make_sale(total_cents=100_000)
    debt_id = sale.debt.id
    payments_before = db.session.query(PaymentHistory).count()
    activity_before = db.session.query(ActivityLog).count()

    def failing_append(*args, **kwargs):
        raise RuntimeError("activity log unavailable")

    monkeypatch.setattr(debt_service, "append_activity", failing_append)

    with pytest.raises(RuntimeError):
        debt_service.repay_debt(debt_id, 40_000)

    db.session.expire_all()
    assert db.session.get(Debt, debt_id).repaid_amount_cents == 0
    restored = db.session.get(Sale, sale.id)
    assert (restored.payment_status, restored.balance_cents) == ("debt", 100_000)
    assert db.session.query(PaymentHistory).count() == payments_before
    assert db.session.query(ActivityLog).count() == activity_before


def test_repay_unknown_debt_raises_not_found(db_session):
    with pytest.raises(NotFoundError):
        debt_service.repay_debt(999_999, 1_000)


def test_repayment_links_customer_on_unlinked_debt(make_sale):
    sale = make_sale(total_cents=100_000)
    debt = sale.debt
    customer_id = sale.customer_id
    # Simulate a debt recorded before customer linkage existed
    debt.customer_id = None
    db.session.commit()

    debt_service.repay_debt(debt.id, 10_000)

    db.session.expire_all()
    assert db.session.get(Debt, debt.id).customer_id == customer_id
    assert _payment_rows(sale.id)[-1].customer_id == customer_id


def test_repayment_appends_activity_entry(make_sale):
    sale = make_sale(buyer_name="Chidi", total_cents=100_000)

    debt_service.repay_debt(sale.debt.id, 40_000, created_by="amaka")

    entry = (
        db.session.query(ActivityLog)
        .filter_by(activity_type="debt_repayment")
        .one()
    )
    assert entry.reference_id == sale.debt.id
    assert entry.amount_cents == 40_000
    assert entry.description == "Chidi"
    assert entry.status == "debt_repayment"
    assert entry.created_by == "amaka"
    assert entry.details["sale_id"] == sale.id
    assert entry.details["new_balance_cents"] == 60_000
    assert entry.details["source"] == "single_debt"


def test_repaid_amount_never_decreases(make_sale):
    sale = make_sale(total_cents=300_000)
    seen = []
    for amount in (50_000, 70_000, 180_000):
        seen.append(debt_service.repay_debt(sale.debt.id, amount).total_repaid_cents)

    assert seen == sorted(seen)
    assert seen[-1] == 300_000


# =============================================================================
# CUSTOMER PAYMENT ALLOCATION (FIFO)
# =============================================================================

def test_allocation_scenario_oldest_sale_settled_first(make_sale):
    sale_a = make_sale(total_cents=300_000, created_at=datetime(2026, 1, 5, 9))
    sale_b = make_sale(total_cents=500_000, created_at=datetime(2026, 2, 5, 9))
    assert sale_a.customer_id == sale_b.customer_id

    result = debt_service.allocate_customer_payment(sale_a.customer_id, 400_000)

    assert result.paid_cents == 400_000
    assert result.unallocated_cents == 0
    assert [(a["sale_id"], a["allocated_cents"]) for a in result.allocations] == [
        (sale_a.id, 300_000),
        (sale_b.id, 100_000),
    ]

    db.session.expire_all()
    sale_a = db.session.get(Sale, sale_a.id)
    sale_b = db.session.get(Sale, sale_b.id)
    assert (sale_a.payment_status, sale_a.balance_cents) == ("paid", 0)
    assert (sale_b.payment_status, sale_b.balance_cents) == ("partial", 400_000)
    _assert_sale_matches_debt(sale_a)
    _assert_sale_matches_debt(sale_b)


def test_small_payment_touches_only_oldest_debt(make_sale):
    oldest = make_sale(total_cents=200_000, created_at=datetime(2026, 1, 1, 9))
    middle = make_sale(total_cents=200_000, created_at=datetime(2026, 1, 2, 9))
    newest = make_sale(total_cents=200_000, created_at=datetime(2026, 1, 3, 9))

    result = debt_service.allocate_customer_payment(oldest.customer_id, 50_000)

    assert [a["sale_id"] for a in result.allocations] == [oldest.id]
    db.session.expire_all()
    assert db.session.get(Sale, oldest.id).balance_cents == 150_000
    assert db.session.get(Sale, middle.id).balance_cents == 200_000
    assert db.session.get(Sale, newest.id).balance_cents == 200_000


def test_allocation_order_follows_sale_date_not_insert_order(make_sale):
    recorded_first = make_sale(total_cents=100_000, created_at=datetime(2026, 3, 1, 9))
    recorded_second = make_sale(total_cents=100_000, created_at=datetime(2026, 1, 1, 9))

    result = debt_service.allocate_customer_payment(recorded_first.customer_id, 100_000)

    assert [a["sale_id"] for a in result.allocations] == [recorded_second.id]


def test_allocation_conserves_money_and_reports_unallocated(make_sale):
    sale_a = make_sale(total_cents=100_000, created_at=datetime(2026, 1, 1, 9))
    sale_b = make_sale(total_cents=50_000, created_at=datetime(2026, 1, 2, 9))

    result = debt_service.allocate_customer_payment(sale_a.customer_id, 200_000)

    allocated = sum(a["allocated_cents"] for a in result.allocations)
    assert allocated + result.unallocated_cents == 200_000
    assert result.paid_cents == 150_000
    assert result.unallocated_cents == 50_000
    assert all(a["is_fully_paid"] for a in result.allocations)

    db.session.expire_all()
    for sale_id in (sale_a.id, sale_b.id):
        sale = db.session.get(Sale, sale_id)
        assert sale.balance_cents == 0
        # No debt is pushed past its amount by an allocation
        assert sale.debt.repaid_amount_cents == sale.debt.amount_cents


def test_allocation_with_no_open_debts_returns_everything_unallocated(make_customer):
    customer = make_customer(name="Debt Free")

    result = debt_service.allocate_customer_payment(customer.id, 10_000)

    assert result.allocations == []
    assert result.paid_cents == 0
    assert result.unallocated_cents == 10_000
    assert db.session.query(PaymentHistory).count() == 0


def test_allocation_includes_debts_linked_only_through_sale(make_sale):
    sale = make_sale(total_cents=100_000)
    sale.debt.customer_id = None
    db.session.commit()

    result = debt_service.allocate_customer_payment(sale.customer_id, 40_000)

    assert [a["sale_id"] for a in result.allocations] == [sale.id]
    db.session.expire_all()
    assert db.session.get(Debt, sale.debt.id).customer_id == sale.customer_id


def test_allocation_ignores_other_customers(make_sale):
    mine = make_sale(buyer_name="Ada", total_cents=100_000, created_at=datetime(2026, 1, 2, 9))
    theirs = make_sale(buyer_name="Bola", total_cents=100_000, created_at=datetime(2026, 1, 1, 9))

    result = debt_service.allocate_customer_payment(mine.customer_id, 100_000)

    assert [a["sale_id"] for a in result.allocations] == [mine.id]
    db.session.expire_all()
    assert db.session.get(Sale, theirs.id).balance_cents == 100_000


def test_allocation_activity_entries_mark_source(make_sale):
    sale_a = make_sale(total_cents=100_000, created_at=datetime(2026, 1, 1, 9))
    make_sale(total_cents=100_000, created_at=datetime(2026, 1, 2, 9))

    debt_service.allocate_customer_payment(sale_a.customer_id, 150_000)

    entries = db.session.query(ActivityLog).filter_by(activity_type="debt_repayment").all()
    assert len(entries) == 2
    assert {e.details["source"] for e in entries} == {"customer_payment"}


def test_allocation_unknown_customer_raises_not_found(db_session):
    with pytest.raises(NotFoundError):
        debt_service.allocate_customer_payment(424_242, 1_000)


def test_allocation_deleted_customer_raises_not_found(make_customer):
    customer = make_customer(name="Gone")
    customer.is_deleted = True
    db.session.commit()

    with pytest.raises(NotFoundError):
        debt_service.allocate_customer_payment(customer.id, 1_000)


def test_allocation_rejects_non_positive_amount(make_sale):
    sale = make_sale(total_cents=100_000)

    with pytest.raises(ValidationError):
        debt_service.allocate_customer_payment(sale.customer_id, 0)

    db.session.expire_all()
    assert db.session.get(Sale, sale.id).balance_cents == 100_000


def test_allocation_rejects_overlong_description(make_sale):
    sale = make_sale(total_cents=100_000)

    with pytest.raises(ValidationError, match="description exceeds max length 255"):
        debt_service.allocate_customer_payment(sale.customer_id, 10_000, description="x" * 256)

    assert db.session.query(PaymentHistory).count() == 0


def test_failure_on_second_debt_undoes_first_allocation(make_sale, monkeypatch):
    sale_a = make_sale(total_cents=100_000, created_at=datetime(2026, 1, 1, 9))
    sale_b = make_sale(total_cents=100_000, created_at=datetime(2026, 1, 2, 9))
    debt_ids = (sale_a.debt.id, sale_b.debt.id)
    payments_before = db.session.query(PaymentHistory).count()
    activity_before = db.session.query(ActivityLog).count()

    real_append = debt_service.append_activity
    calls = []

    def append_then_fail(*args, **kwargs):
        calls.append(kwargs)
        if len(calls) > 1:
            raise RuntimeError("activity log unavailable")
        return real_append(*args, **kwargs)

    monkeypatch.setattr(debt_service, "append_activity", append_then_fail)

    with pytest.raises(RuntimeError):
        debt_service.allocate_customer_payment(sale_a.customer_id, 150_000)

    # The first debt was fully written and flushed before the failure
    assert len(calls) == 2
    db.session.expire_all()
    for debt_id in debt_ids:
        assert db.session.get(Debt, debt_id).repaid_amount_cents == 0
    for sale_id in (sale_a.id, sale_b.id):
        restored = db.session.get(Sale, sale_id)
        assert (restored.payment_status, restored.balance_cents) == ("debt", 100_000)
    assert db.session.query(PaymentHistory).count() == payments_before
    assert db.session.query(ActivityLog).count() == activity_before


# =============================================================================
# READS
# =============================================================================

def test_list_open_debts_excludes_settled(make_sale):
    open_sale = make_sale(buyer_name="Ada", total_cents=100_000)
    settled = make_sale(buyer_name="Bola", total_cents=100_000)
    debt_service.repay_debt(settled.debt.id, 100_000)

    rows = debt_service.list_open_debts()

    assert [r["sale_id"] for r in rows] == [open_sale.id]
    row = rows[0]
    assert row["customer"] == "Ada"
    assert row["balance_cents"] == 100_000
    assert row["paid_amount_cents"] == 0
    assert row["last_payment"] is None
    assert row["items"] == "Item for Ada (1)"


def test_old_unpaid_debt_is_overdue(make_sale):
    sale = make_sale(total_cents=100_000, created_at=datetime(2020, 1, 1, 9))

    row = debt_service.get_debt(sale.debt.id)

    assert row["status"] == "overdue"
    assert row["sale_date"] == "2020-01-01"


def test_customer_debt_summary_groups_and_sorts(make_sale):
    make_sale(buyer_name="Ada", total_cents=100_000)
    make_sale(buyer_name="Ada", total_cents=50_000)
    bola = make_sale(buyer_name="Bola", total_cents=300_000)
    paid_off = make_sale(buyer_name="Chidi", total_cents=10_000)
    debt_service.repay_debt(paid_off.debt.id, 10_000)
    debt_service.repay_debt(bola.debt.id, 20_000)

    summary = debt_service.customer_debt_summary()

    assert [r["customer_name"] for r in summary] == ["Bola", "Ada"]
    assert summary[0]["outstanding_cents"] == 280_000
    assert summary[0]["total_repaid_cents"] == 20_000
    assert summary[1]["total_debt_cents"] == 150_000
    assert summary[1]["outstanding_cents"] == 150_000
    assert all(r["last_activity"].endswith("Z") for r in summary)
