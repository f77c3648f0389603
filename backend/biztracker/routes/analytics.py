from flask import Blueprint, jsonify

from biztracker.services import reporting_service


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/dashboard")
def dashboard():
    return jsonify(reporting_service.dashboard()), 200


@analytics_bp.get("/reports/<period>")
def period_report(period: str):
    try:
        return jsonify(reporting_service.period_report(period)), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@analytics_bp.get("/reports/<period>/sales")
def sales_breakdown(period: str):
    try:
        return jsonify(reporting_service.sales_breakdown(period)), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@analytics_bp.get("/reports/<period>/expenses")
def expenses_breakdown(period: str):
    try:
        return jsonify(reporting_service.expenses_breakdown(period)), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
