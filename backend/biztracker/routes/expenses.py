# Overview: Flask API route for recording expenses.

from flask import Blueprint, request, jsonify, current_app

from ..models import Expense
from ..services import expense_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_expense,
    ValidationError,
)

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "description", "category", "subcategory", "date", "recurring"},
    required_on_create={"amount_cents", "description", "category"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("")
def create_expense():
    """
    Record an expense (category: internal | external).

    The matching activity row is committed with the expense.
    """
    try:
        payload = dict(request.get_json(silent=True) or {})
        created_by = payload.pop("created_by", None)
        patch = validate_payload(
            model=Expense,
            payload=payload,
            policy=EXPENSE_POLICY,
            partial=False,
        )
        enforce_rules_expense(patch)
        expense = expense_service.record_expense(patch, created_by=created_by)
        return jsonify(expense.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500
