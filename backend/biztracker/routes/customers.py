# Overview: Flask API routes for customers; parses input and returns JSON responses.

# backend/biztracker/routes/customers.py
"""
Customer management routes.

- Phone numbers are unique (409 on duplicates)
- Customers are soft-deleted, and only once they owe nothing
"""
from flask import Blueprint, request, jsonify, current_app

from ..models import Customer
from ..services import customer_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
    ConflictError,
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "note"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers():
    """
    List/search customers.

    Query params:
    - q: str (optional) - case-insensitive match on name or phone
    """
    customers = customer_service.list_customers(request.args.get("q"))
    return jsonify([c.to_dict() for c in customers]), 200


@customers_bp.get("/<int:customer_id>")
def get_customer(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    data = customer.to_dict()
    data["outstanding_cents"] = customer_service.customer_outstanding_cents(customer.id)
    return jsonify(data), 200


@customers_bp.post("")
def create_customer():
    try:
        patch = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CUSTOMER_POLICY,
            partial=False,
        )
        customer = customer_service.create_customer(patch)
        return jsonify(customer.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
def update_customer(customer_id: int):
    try:
        patch = validate_payload(
            model=Customer,
            payload=request.get_json(silent=True),
            policy=CUSTOMER_POLICY,
            partial=True,
        )
        customer = customer_service.update_customer(customer_id, patch)
        return jsonify(customer.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
def delete_customer(customer_id: int):
    try:
        customer_service.soft_delete_customer(customer_id)
        return jsonify({"message": "Customer deleted"}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500
