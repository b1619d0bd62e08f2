# Overview: Login/logout views for this terminal; wraps the SessionManager and returns JSON.

# backoffice/routes/auth.py
"""
Authentication views

The terminal holds one session. These views drive it:
- POST /login: credentials -> session (or a pending device approval)
- POST /logout: always succeeds locally
- GET /login: what the login screen should show (logout reason, pending approval)
- GET /me: the current profile

SECURITY: Credentials are never logged. A pending device approval is answered
with 403 and the device details so the operator can ask an admin to approve.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_session
from ..extensions import get_context
from ..models import LOGIN_OK, LOGIN_PENDING, LOGIN_VALIDATION, LOGIN_NETWORK
from ..responses import error_response, HANDLED_ERRORS


auth_bp = Blueprint("auth", __name__)


# LoginResult.kind -> HTTP status for failed logins
_LOGIN_FAILURE_STATUS = {
    LOGIN_PENDING: 403,
    LOGIN_VALIDATION: 400,
    LOGIN_NETWORK: 502,
}


@auth_bp.get("/login")
def login_view():
    """
    State of the login screen.

    Includes why the previous session ended (logout, expiry, revoked, other
    tab) and any device approval still pending from the last attempt.
    """
    session = get_context().session
    session.sync_from_storage()
    pending = session.pending_approval

    return jsonify({
        "logged_in": session.is_logged_in,
        "user": session.user,
        "start_path": session.start_path() if session.is_logged_in else None,
        "logout_reason": session.logout_reason,
        "logout_message": session.logout_message,
        "pending_approval": pending.to_dict() if pending else None,
        "last_error": session.last_error,
        "next": request.args.get("next"),
    }), 200


@auth_bp.post("/login")
def login_route():
    """
    Authenticate against the backend and keep the session on this terminal.

    Returns user and landing path on success. A device that still needs
    approval gets 403 with `pending_approval`.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = (data.get("email") or data.get("username") or "").strip()
        password = data.get("password") or ""

        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        session = get_context().session
        result = session.login(email, password)

        if result.kind == LOGIN_OK:
            return jsonify({
                "user": result.user,
                "start_path": session.start_path(),
                "message": result.message,
            }), 200

        status = _LOGIN_FAILURE_STATUS.get(result.kind, 401)
        body = result.to_dict()
        body["error"] = result.message
        return jsonify(body), status

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.delete("/login/pending")
def clear_pending_route():
    """Dismiss the pending device approval notice."""
    get_context().session.clear_pending_approval()
    return jsonify({"message": "Pending approval dismissed"}), 200


@auth_bp.post("/logout")
def logout_route():
    """
    End the session on this terminal (and every tab sharing its storage).

    WHY: The server call is best effort; the local clear is unconditional, so
    this never fails for a reachable terminal.
    """
    try:
        get_context().session.logout()
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_session
def me_route():
    """
    Current profile with role flags.

    `?refresh=true` re-pulls the profile from the backend first, so a role
    change made by an admin shows up without a new login.
    """
    session = get_context().session

    if request.args.get("refresh", "false").lower() == "true":
        try:
            session.fetch_current_user()
        except HANDLED_ERRORS as exc:
            return error_response(exc)

    return jsonify({
        "user": session.user,
        "is_admin": session.is_admin,
        "is_overall_admin": session.is_overall_admin,
        "start_path": session.start_path(),
    }), 200
