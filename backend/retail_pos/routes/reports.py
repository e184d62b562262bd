from flask import Blueprint, jsonify, request

from ..services import reporting_service
from ..validation import ValidationError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/daily-revenue")
def daily_revenue_report():
    try:
        report = reporting_service.daily_revenue(request.args.get("date"))
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/sales")
def sales_report():
    try:
        rows = reporting_service.sales_report(
            request.args.get("start_date"),
            request.args.get("end_date"),
            cost_basis=request.args.get("cost_basis", "current"),
        )
        return jsonify({"rows": rows}), 200
    except (ValidationError, reporting_service.ReportError) as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/profit")
def profit_report():
    try:
        report = reporting_service.profit_report(
            request.args.get("start_date"),
            request.args.get("end_date"),
            cost_basis=request.args.get("cost_basis", "current"),
        )
        return jsonify(report), 200
    except (ValidationError, reporting_service.ReportError) as exc:
        return jsonify({"error": str(exc)}), 400
