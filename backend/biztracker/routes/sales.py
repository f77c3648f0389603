# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/biztracker/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, current_app

from ..services import sales_service
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_int,
    parse_optional_text,
    require_json_object,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    try:
        sales = sales_service.list_sales()
        return jsonify([s.to_dict(include_items=True) for s in sales]), 200
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale, decrement stock, and open a debt for any unpaid balance.

    Request body (single item):
    {
        "buyer_name": "Mama Ngozi",
        "item_id": 3,
        "quantity": 2,
        "payment_status": "partial",   (paid | partial | debt)
        "balance_cents": 50000,        (required for partial)
        "customer_id": 7,              (optional)
        "created_by": "amaka"          (optional)
    }

    or with several lines: "items": [{"item_id": 3, "quantity": 2}, ...]
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        buyer_name = data.get("buyer_name")
        payment_status = data.get("payment_status")
        if not buyer_name or not payment_status:
            return jsonify({"error": "buyer_name and payment_status required"}), 400
        if not isinstance(buyer_name, str) or not isinstance(payment_status, str):
            return jsonify({"error": "buyer_name and payment_status must be strings"}), 400

        if data.get("items") is not None:
            raw_lines = data.get("items")
        else:
            raw_lines = [{"item_id": data.get("item_id"), "quantity": data.get("quantity")}]
        lines = sales_service.normalize_lines(raw_lines)

        balance_cents = data.get("balance_cents")
        if balance_cents is not None:
            balance_cents = coerce_int(balance_cents, "balance_cents")

        customer_id = data.get("customer_id")
        if customer_id is not None:
            customer_id = coerce_int(customer_id, "customer_id")

        sale = sales_service.create_sale(
            buyer_name=buyer_name,
            lines=lines,
            payment_status=payment_status,
            balance_cents=balance_cents,
            customer_id=customer_id,
            created_by=parse_optional_text(data.get("created_by"), "created_by", max_length=64),
        )

        return jsonify(sale.to_dict(include_items=True)), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        data = sale.to_dict(include_items=True)
        data["debt"] = sale.debt.to_dict() if sale.debt else None
        return jsonify(data), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/payment-history")
def payment_history_route(sale_id: int):
    try:
        payments = sales_service.get_payment_history(sale_id)
        return jsonify([p.to_dict() for p in payments]), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load payment history")
        return jsonify({"error": "Internal server error"}), 500
