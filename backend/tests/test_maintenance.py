from biztracker.extensions import db
from biztracker.models import Customer, Debt, PaymentHistory, Sale
from biztracker.services import debt_service, maintenance_service


def _unlink(sale):
    """Strip customer links to mimic rows recorded before linkage existed."""
    sale.customer_id = None
    sale.debt.customer_id = None
    for payment in sale.payments:
        payment.customer_id = None
    db.session.commit()


def test_backfill_links_legacy_rows_and_is_idempotent(make_sale):
    sale = make_sale(buyer_name="Ada", total_cents=100_000)
    _unlink(sale)
    db.session.query(Customer).delete()
    db.session.commit()

    first = maintenance_service.backfill_customer_links()

    assert first == {
        "customers_created": 1,
        "sales_linked": 1,
        "debts_linked": 1,
        "payments_linked": 1,
    }
    db.session.expire_all()
    customer = db.session.query(Customer).one()
    assert customer.name == "Ada"
    assert db.session.get(Sale, sale.id).customer_id == customer.id
    assert db.session.get(Debt, sale.debt.id).customer_id == customer.id
    assert db.session.query(PaymentHistory).filter(PaymentHistory.customer_id.is_(None)).count() == 0

    second = maintenance_service.backfill_customer_links()
    assert second == {
        "customers_created": 0,
        "sales_linked": 0,
        "debts_linked": 0,
        "payments_linked": 0,
    }


def test_backfill_reuses_existing_customer_by_name(make_sale):
    sale = make_sale(buyer_name="Mama Ngozi", total_cents=100_000)
    existing_id = sale.customer_id
    _unlink(sale)

    result = maintenance_service.backfill_customer_links()

    assert result["customers_created"] == 0
    db.session.expire_all()
    assert db.session.get(Sale, sale.id).customer_id == existing_id


def test_audit_clean_after_normal_activity(make_sale):
    sale = make_sale(total_cents=100_000)
    make_sale(buyer_name="Bola", payment_status="paid")
    debt_service.repay_debt(sale.debt.id, 40_000)

    assert maintenance_service.audit_ledger() == []


def test_audit_reports_balance_drift_and_overpayment(make_sale):
    drifted = make_sale(buyer_name="Ada", total_cents=100_000)
    drifted.balance_cents = 70_000
    db.session.commit()

    overpaid = make_sale(buyer_name="Bola", total_cents=10_000)
    debt_service.repay_debt(overpaid.debt.id, 15_000)

    problems = {(p.get("sale_id"), p["problem"]) for p in maintenance_service.audit_ledger()}

    assert (drifted.id, "sale_balance_mismatch") in problems
    assert (overpaid.id, "overpaid") in problems


def test_cli_audit_passes_on_clean_ledger(app, make_sale):
    make_sale(total_cents=100_000)

    result = app.test_cli_runner().invoke(args=["debts", "audit"])

    assert result.exit_code == 0
    assert "PASS Ledger consistent" in result.output


def test_cli_backfill_reports_counts(app, db_session):
    result = app.test_cli_runner().invoke(args=["debts", "backfill-customers"])

    assert result.exit_code == 0
    assert "PASS Created 0 customers" in result.output
