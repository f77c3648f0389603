# Overview: Read-only aggregation over sales, expenses, debts, and payments.

from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import case, func

from biztracker.extensions import db
from biztracker.models import Debt, Expense, Item, PaymentHistory, Sale, SaleItem
from biztracker.time_utils import day_bounds, utcnow


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


PERIODS = ("today", "week", "month")


def _day_key(value) -> str:
    # SQLite returns DATE() as text, PostgreSQL as a date
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)


def _wholesale_expr():
    return func.coalesce(SaleItem.wholesale_price_at_sale_cents, Item.wholesale_price_cents)


def _profit_expr():
    """(price - wholesale) * qty per line; lines without a wholesale price add 0."""
    wholesale = _wholesale_expr()
    return case(
        (wholesale > 0, (SaleItem.price_at_sale_cents - wholesale) * SaleItem.quantity),
        else_=0,
    )


def _cost_expr():
    wholesale = _wholesale_expr()
    return case((wholesale > 0, wholesale * SaleItem.quantity), else_=0)


def _margin_expr():
    wholesale = _wholesale_expr()
    return case(
        (
            (wholesale > 0) & (SaleItem.price_at_sale_cents > 0),
            (SaleItem.price_at_sale_cents - wholesale) * 100.0 / SaleItem.price_at_sale_cents,
        ),
        else_=0,
    )


def period_range(period: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Start/end of a reporting period ending now.

    - today: midnight to now
    - week: most recent Sunday midnight to now
    - month: first of the month to now
    """
    now = now or utcnow()
    start_of_day = datetime(now.year, now.month, now.day)
    if period == "today":
        return start_of_day, now
    if period == "week":
        # Python weekday(): Monday=0 ... Sunday=6
        days_since_sunday = (now.weekday() + 1) % 7
        return start_of_day - timedelta(days=days_since_sunday), now
    if period == "month":
        return datetime(now.year, now.month, 1), now
    raise ReportError(f"period must be one of {list(PERIODS)}")


def _sales_total(start: datetime, end: datetime) -> int:
    """Sum of sale totals in the half-open window [start, end)."""
    return int(
        db.session.query(func.coalesce(func.sum(Sale.total_cents), 0))
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .scalar() or 0
    )


def _expenses_total(start: datetime, end: datetime) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0))
        .filter(Expense.date >= start, Expense.date < end)
        .scalar() or 0
    )


def _growth(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) * 100.0 / previous, 1)


def dashboard() -> dict:
    sales_total, sales_count = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.count(Sale.id),
    ).one()

    items_count, inventory_value = db.session.query(
        func.count(Item.id),
        func.coalesce(func.sum(Item.price_cents * Item.stock), 0),
    ).one()

    expenses_total = db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).scalar()

    outstanding = Debt.amount_cents - Debt.repaid_amount_cents
    active_debts, debt_total = db.session.query(
        func.count(Debt.id),
        func.coalesce(func.sum(outstanding), 0),
    ).filter(outstanding > 0).one()

    return {
        "total_sales_cents": int(sales_total or 0),
        "total_sales_count": int(sales_count or 0),
        "total_items": int(items_count or 0),
        "inventory_value_cents": int(inventory_value or 0),
        "total_expenses_cents": int(expenses_total or 0),
        "active_debts": int(active_debts or 0),
        "total_debt_cents": int(debt_total or 0),
    }


def period_report(period: str, now: datetime | None = None) -> dict:
    """Sales, expenses, and debt totals for a period, with growth vs the previous one."""
    start, end = period_range(period, now)

    sales = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0).label("total"),
        func.count(Sale.id).label("transactions"),
        func.coalesce(func.sum(case((Sale.payment_status == "paid", Sale.total_cents), else_=0)), 0).label("paid"),
        func.coalesce(func.sum(case((Sale.payment_status == "partial", Sale.total_cents), else_=0)), 0).label("partial"),
        func.coalesce(func.sum(case((Sale.payment_status == "debt", Sale.total_cents), else_=0)), 0).label("debt"),
    ).filter(Sale.created_at >= start, Sale.created_at <= end).one()

    expenses = db.session.query(
        func.coalesce(func.sum(Expense.amount_cents), 0).label("total"),
        func.count(Expense.id).label("count"),
        func.coalesce(func.sum(case((Expense.category == "internal", Expense.amount_cents), else_=0)), 0).label("internal"),
        func.coalesce(func.sum(case((Expense.category == "external", Expense.amount_cents), else_=0)), 0).label("external"),
    ).filter(Expense.date >= start, Expense.date <= end).one()

    debts = db.session.query(
        func.coalesce(func.sum(Sale.balance_cents), 0).label("outstanding"),
        func.count(Sale.id).label("count"),
    ).filter(Sale.balance_cents > 0, Sale.created_at >= start, Sale.created_at <= end).one()

    previous_start = start - (end - start)
    previous_sales = _sales_total(previous_start, start)
    previous_expenses = _expenses_total(previous_start, start)

    total_sales = int(sales.total or 0)
    total_expenses = int(expenses.total or 0)
    profit = total_sales - total_expenses

    return {
        "period": period,
        "total_sales_cents": total_sales,
        "total_expenses_cents": total_expenses,
        "profit_cents": profit,
        "profit_margin": round(profit * 100.0 / total_sales, 1) if total_sales > 0 else 0.0,
        "transactions": int(sales.transactions or 0),
        "sales_growth": _growth(total_sales, previous_sales),
        "expense_growth": _growth(total_expenses, previous_expenses),
        "paid_sales_cents": int(sales.paid or 0),
        "partial_sales_cents": int(sales.partial or 0),
        "debt_sales_cents": int(sales.debt or 0),
        "internal_expenses_cents": int(expenses.internal or 0),
        "external_expenses_cents": int(expenses.external or 0),
        "total_outstanding_cents": int(debts.outstanding or 0),
        "active_debts_count": int(debts.count or 0),
        "date_range": {"start": start.date().isoformat(), "end": end.date().isoformat()},
    }


def sales_breakdown(period: str, now: datetime | None = None) -> list[dict]:
    start, end = period_range(period, now)
    day = func.date(Sale.created_at)
    rows = db.session.query(
        day.label("day"),
        func.count(Sale.id).label("transactions"),
        func.coalesce(func.sum(Sale.total_cents), 0).label("total"),
        func.coalesce(func.sum(case((Sale.payment_status == "paid", Sale.total_cents), else_=0)), 0).label("paid"),
        func.coalesce(func.sum(case((Sale.payment_status == "partial", Sale.total_cents), else_=0)), 0).label("partial"),
        func.coalesce(func.sum(case((Sale.payment_status == "debt", Sale.total_cents), else_=0)), 0).label("debt"),
    ).filter(Sale.created_at >= start, Sale.created_at <= end).group_by(day).order_by(day).all()

    return [
        {
            "date": _day_key(row.day),
            "transactions": int(row.transactions or 0),
            "daily_sales_cents": int(row.total or 0),
            "paid_amount_cents": int(row.paid or 0),
            "partial_amount_cents": int(row.partial or 0),
            "debt_amount_cents": int(row.debt or 0),
        }
        for row in rows
    ]


def expenses_breakdown(period: str, now: datetime | None = None) -> list[dict]:
    start, end = period_range(period, now)
    day = func.date(Expense.date)
    rows = db.session.query(
        day.label("day"),
        func.count(Expense.id).label("transactions"),
        func.coalesce(func.sum(Expense.amount_cents), 0).label("total"),
        func.coalesce(func.sum(case((Expense.category == "internal", Expense.amount_cents), else_=0)), 0).label("internal"),
        func.coalesce(func.sum(case((Expense.category == "external", Expense.amount_cents), else_=0)), 0).label("external"),
    ).filter(Expense.date >= start, Expense.date <= end).group_by(day).order_by(day).all()

    return [
        {
            "date": _day_key(row.day),
            "transactions": int(row.transactions or 0),
            "daily_expenses_cents": int(row.total or 0),
            "internal_amount_cents": int(row.internal or 0),
            "external_amount_cents": int(row.external or 0),
        }
        for row in rows
    ]


def daily_summary(day: date) -> dict:
    """Dashboard figures for one calendar day."""
    start, end = day_bounds(day)

    revenue, sales_count = db.session.query(
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.count(Sale.id),
    ).filter(Sale.created_at >= start, Sale.created_at < end).one()

    payments = db.session.query(func.coalesce(func.sum(PaymentHistory.amount_cents), 0)).filter(
        PaymentHistory.payment_date >= start, PaymentHistory.payment_date < end,
    ).scalar()

    expenses = db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
        Expense.date >= start, Expense.date < end,
    ).scalar()

    profit = (
        db.session.query(func.coalesce(func.sum(_profit_expr()), 0))
        .select_from(SaleItem)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .join(Item, Item.id == SaleItem.item_id)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .scalar()
    )

    outstanding = db.session.query(func.coalesce(func.sum(Sale.balance_cents), 0)).filter(
        Sale.balance_cents > 0
    ).scalar()

    low_stock = db.session.query(func.count(Item.id)).filter(
        Item.stock < current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    ).scalar()

    profit = int(profit or 0)
    expenses = int(expenses or 0)
    return {
        "date": day.isoformat(),
        "daily_revenue_cents": int(revenue or 0),
        "daily_sales_count": int(sales_count or 0),
        "daily_payments_cents": int(payments or 0),
        "daily_expenses_cents": expenses,
        "daily_profit_cents": profit,
        "net_profit_cents": profit - expenses,
        "total_outstanding_cents": int(outstanding or 0),
        "low_stock_count": int(low_stock or 0),
    }


def profit_analysis(start_date: date | None = None, end_date: date | None = None) -> list[dict]:
    """
    Daily profit rollup, newest day first.

    Revenue is summed from sale lines so multi-item sales are not counted
    once per line.
    """
    day = func.date(Sale.created_at)
    query = (
        db.session.query(
            day.label("day"),
            func.count(func.distinct(Sale.id)).label("total_sales"),
            func.coalesce(func.sum(SaleItem.subtotal_cents), 0).label("revenue"),
            func.coalesce(func.sum(_profit_expr()), 0).label("profit"),
            func.coalesce(func.sum(_cost_expr()), 0).label("cost"),
            func.avg(_margin_expr()).label("margin"),
        )
        .select_from(Sale)
        .join(SaleItem, SaleItem.sale_id == Sale.id)
        .join(Item, Item.id == SaleItem.item_id)
    )
    if start_date is not None:
        query = query.filter(Sale.created_at >= day_bounds(start_date)[0])
    if end_date is not None:
        query = query.filter(Sale.created_at < day_bounds(end_date)[1])

    rows = query.group_by(day).order_by(day.desc()).all()
    return [
        {
            "sale_date": _day_key(row.day),
            "total_sales": int(row.total_sales or 0),
            "total_revenue_cents": int(row.revenue or 0),
            "total_profit_cents": int(row.profit or 0),
            "total_cost_cents": int(row.cost or 0),
            "avg_profit_margin": round(float(row.margin or 0), 2),
        }
        for row in rows
    ]
