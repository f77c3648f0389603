# Overview: Expense entry; writes the expense and its activity row in one transaction.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Expense
from biztracker.time_utils import utcnow
from .activity_service import append_activity, ACTIVITY_EXPENSE
from .concurrency import run_with_retry

EXPENSE_MUTABLE_FIELDS = {"amount_cents", "description", "category", "subcategory", "date", "recurring"}


def record_expense(patch: dict, created_by: str | None = None) -> Expense:
    """
    Record an expense. `patch` is already validated by the route.

    The activity entry is part of the same commit, so a client never sees a
    success for an expense the feed does not show.
    """
    def _op():
        expense = Expense(**{k: v for k, v in patch.items() if k in EXPENSE_MUTABLE_FIELDS})
        if expense.date is None:
            expense.date = utcnow()
        if expense.recurring is None:
            expense.recurring = False
        expense.created_by = created_by
        db.session.add(expense)
        db.session.flush()

        append_activity(
            activity_type=ACTIVITY_EXPENSE,
            reference_id=expense.id,
            description=expense.description,
            amount_cents=expense.amount_cents,
            status=expense.category,
            activity_date=expense.date,
            created_by=created_by,
            details={"subcategory": expense.subcategory, "recurring": expense.recurring},
        )

        db.session.commit()
        current_app.logger.info("Expense %s recorded: %s", expense.id, expense.amount_cents)
        return expense

    return run_with_retry(_op)
