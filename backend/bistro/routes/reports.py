from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_capability
from ..errors import BistroError
from ..services import reporting_service
from . import error_response


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
@require_capability("VIEW_REPORTS")
def sales_report():
    try:
        report = reporting_service.sales_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except BistroError as exc:
        return error_response(exc)


@reports_bp.get("/inventory")
@require_auth
@require_capability("VIEW_REPORTS")
def inventory_report():
    try:
        report = reporting_service.inventory_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except BistroError as exc:
        return error_response(exc)


@reports_bp.get("/staff")
@require_auth
@require_capability("VIEW_REPORTS")
def staff_report():
    try:
        report = reporting_service.staff_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(report), 200
    except BistroError as exc:
        return error_response(exc)


@reports_bp.get("/shifts/<int:shift_id>")
@require_auth
@require_capability("VIEW_REPORTS")
def shift_summary(shift_id: int):
    try:
        return jsonify(reporting_service.shift_summary(shift_id)), 200
    except BistroError as exc:
        return error_response(exc)
