# Overview: Flask API routes for the activity feed and daily profit rollups.

from flask import Blueprint, jsonify, request, current_app

from biztracker.services import activity_service, reporting_service
from biztracker.time_utils import parse_iso_date, utcnow


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")

MAX_LIMIT = 500


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise reporting_service.ReportError(f"{name} must be YYYY-MM-DD")


@activity_bp.get("")
def list_activity():
    """
    Recent activity, newest first.

    Query params:
    - date: YYYY-MM-DD (optional) - only that day
    - limit: int (optional, default ACTIVITY_DEFAULT_LIMIT, max 500)
    """
    limit = request.args.get("limit", current_app.config["ACTIVITY_DEFAULT_LIMIT"], type=int)
    if limit is None or limit <= 0:
        return jsonify({"error": "limit must be a positive integer"}), 400

    try:
        day = _date_arg("date")
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400

    entries = activity_service.list_activity(day=day, limit=min(limit, MAX_LIMIT))
    return jsonify([e.to_dict() for e in entries]), 200


@activity_bp.get("/profit-analysis")
def profit_analysis():
    try:
        start_date = _date_arg("startDate")
        end_date = _date_arg("endDate")
        return jsonify(reporting_service.profit_analysis(start_date, end_date)), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@activity_bp.get("/daily-summary")
def daily_summary():
    try:
        day = _date_arg("date") or utcnow().date()
        return jsonify(reporting_service.daily_summary(day)), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
