# Overview: Dashboard views; refreshes the financial snapshot and records COGS purchases/expenses.

from flask import Blueprint, request, jsonify, current_app, redirect, url_for

from ..decorators import require_session, wants_json
from ..extensions import get_context
from ..responses import error_response, HANDLED_ERRORS
from ..services import sales_service
from ..services.dashboard_service import DashboardRefreshError


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


PRESETS = ("today", "yesterday", "last7")


def _refresh(loader, preset: str | None, date_from: str | None, date_to: str | None):
    if preset == "today":
        return loader.refresh_today()
    if preset == "yesterday":
        return loader.refresh_yesterday()
    if preset == "last7":
        return loader.refresh_last_7_days()
    return loader.refresh(date_from, date_to)


def _refresh_failed(exc: DashboardRefreshError):
    if exc.unauthorized:
        if not wants_json():
            return redirect(url_for("auth.login_view", next=request.path))
        return jsonify({"error": "Authentication required"}), 401
    return jsonify({
        "error": str(exc),
        "failed": sorted(exc.failures),
    }), 502


@dashboard_bp.get("")
@require_session
def dashboard_route():
    """
    Refresh and return the dashboard for a date range.

    Query:
    - preset: today | yesterday | last7 (business timezone)
    - date_from / date_to: YYYY-MM-DD, used when no preset is given

    A refresh is all-or-nothing: one failed feed -> 502 and the previous
    snapshot stays published. 409 when a newer refresh overtook this one.
    """
    preset = request.args.get("preset")
    if preset and preset not in PRESETS:
        return jsonify({"error": f"preset must be one of {', '.join(PRESETS)}"}), 400

    loader = get_context().dashboard
    try:
        snapshot = _refresh(loader, preset, request.args.get("date_from"), request.args.get("date_to"))
    except DashboardRefreshError as exc:
        return _refresh_failed(exc)
    except Exception:
        current_app.logger.exception("Failed to refresh dashboard")
        return jsonify({"error": "Internal server error"}), 500

    if snapshot is None:
        return jsonify({"error": "Superseded by a newer refresh"}), 409
    return jsonify(snapshot.to_dict()), 200


@dashboard_bp.get("/current")
@require_session
def current_dashboard_route():
    """Last published snapshot without hitting the backend."""
    snapshot = get_context().dashboard.current
    if snapshot is None:
        return jsonify({"error": "No dashboard loaded yet"}), 404
    return jsonify(snapshot.to_dict()), 200


def _record_then_refresh(create):
    ctx = get_context()
    try:
        created = create(ctx)
    except HANDLED_ERRORS as exc:
        return error_response(exc)

    # Re-load the range on screen so the new entry shows up in the totals
    current = ctx.dashboard.current
    body = {"created": created, "dashboard": None}
    try:
        if current is not None:
            snapshot = ctx.dashboard.refresh(current.date_from, current.date_to)
        else:
            snapshot = ctx.dashboard.refresh_today()
        body["dashboard"] = snapshot.to_dict() if snapshot else None
    except DashboardRefreshError as exc:
        body["refresh_error"] = str(exc)
    return jsonify(body), 201


@dashboard_bp.post("/cogs")
@require_session
def create_cogs_route():
    """
    Record a COGS purchase (stock bought), then refresh.

    Body: amount (required, > 0), description, date, payment_method,
    bottle_size_id, unit_cost_carton.
    """
    data = request.get_json(silent=True) or {}
    return _record_then_refresh(lambda ctx: sales_service.create_cogs_purchase(ctx.session, data))


@dashboard_bp.post("/expenses")
@require_session
def create_expense_route():
    """Record an operating expense (or category "cogs"), then refresh."""
    data = request.get_json(silent=True) or {}
    tz_name = current_app.config["BUSINESS_TIMEZONE"]
    return _record_then_refresh(
        lambda ctx: sales_service.create_expense(ctx.session, tz_name, data).to_dict()
    )
