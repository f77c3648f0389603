# Overview: Flask API routes for debts and repayments; parses input and returns JSON responses.

# backend/biztracker/routes/debts.py
"""
Debt & Repayment API Routes

DESIGN:
- List and inspect open debts with their sale context
- Repay one debt
- Allocate one customer payment across all their open debts (oldest first)
- Per-customer outstanding summary

Amounts are integers in minor units (kobo).
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import debt_service
from ..validation import NotFoundError, ValidationError, require_json_object


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.get("")
def list_debts_route():
    """List open debts, newest first."""
    try:
        return jsonify(debt_service.list_open_debts()), 200
    except Exception:
        current_app.logger.exception("Failed to list debts")
        return jsonify({"error": "Internal server error"}), 500


@debts_bp.get("/customers/summary")
def customer_summary_route():
    """
    Outstanding totals per customer.

    Returns rows of:
    {customer_id, customer_name, total_debt_cents, total_repaid_cents,
     outstanding_cents, last_activity}
    """
    try:
        return jsonify(debt_service.customer_debt_summary()), 200
    except Exception:
        current_app.logger.exception("Failed to build customer debt summary")
        return jsonify({"error": "Internal server error"}), 500


@debts_bp.get("/<int:debt_id>")
def get_debt_route(debt_id: int):
    try:
        return jsonify(debt_service.get_debt(debt_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load debt")
        return jsonify({"error": "Internal server error"}), 500


@debts_bp.post("/<int:debt_id>/repayment")
def repay_debt_route(debt_id: int):
    """
    Record a repayment against one debt.

    Request body:
    {
        "amount_cents": 150000,
        "description": "Paid at the shop",  (optional)
        "created_by": "amaka"  (optional)
    }

    Returns:
        200: {message, new_balance_cents, total_repaid_cents, is_fully_paid}
        400: Missing or invalid amount
        404: Debt not found
        500: Server error
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        result = debt_service.repay_debt(
            debt_id,
            data.get("amount_cents"),
            description=data.get("description"),
            created_by=data.get("created_by"),
        )

        return jsonify({"message": "Repayment recorded successfully", **result.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to record repayment")
        return jsonify({"error": "Internal server error"}), 500


@debts_bp.post("/customers/<int:customer_id>/payments")
def allocate_customer_payment_route(customer_id: int):
    """
    Allocate one payment across a customer's open debts, oldest sale first.

    Request body:
    {
        "amount_cents": 400000,
        "description": "Cash at month end",  (optional)
        "created_by": "amaka"  (optional)
    }

    Returns:
        200: {customer_id, paid_cents, unallocated_cents, allocations[]}
        400: Missing or invalid amount
        404: Customer not found
        500: Server error
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        result = debt_service.allocate_customer_payment(
            customer_id,
            data.get("amount_cents"),
            description=data.get("description"),
            created_by=data.get("created_by"),
        )

        return jsonify(result.to_dict()), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to allocate customer payment")
        return jsonify({"error": "Internal server error"}), 500
