# Overview: Append-only activity feed writer and reader.

"""
Activity log invariants

- Append-only: rows are never updated or deleted.
- Written inside the same DB transaction as the business event it records
  (flush only, never commit), so the feed and the ledger cannot disagree.
- activity_date is business time; created_at is system time (DB default).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from ..extensions import db
from ..models import ActivityLog
from biztracker.time_utils import day_bounds, utcnow

ACTIVITY_SALE = "sale"
ACTIVITY_EXPENSE = "expense"
ACTIVITY_DEBT_REPAYMENT = "debt_repayment"


def append_activity(
    *,
    activity_type: str,
    reference_id: int | None,
    amount_cents: int,
    description: str | None = None,
    status: str | None = None,
    details: dict | None = None,
    activity_date: Optional[datetime] = None,
    created_by: str | None = None,
) -> ActivityLog:
    """Add an activity row to the caller's transaction."""
    entry = ActivityLog(
        activity_type=activity_type,
        reference_id=reference_id,
        description=description,
        amount_cents=amount_cents,
        status=status,
        details=details or {},
        activity_date=activity_date or utcnow(),
        created_by=created_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_activity(*, day: date | None = None, limit: int = 50) -> list[ActivityLog]:
    """Most recent activity first, optionally restricted to one calendar day."""
    query = db.session.query(ActivityLog)
    if day is not None:
        start, end = day_bounds(day)
        query = query.filter(ActivityLog.activity_date >= start, ActivityLog.activity_date < end)
    return (
        query.order_by(ActivityLog.activity_date.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )
