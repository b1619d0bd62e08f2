# Overview: Route guards for the back-office views.

from functools import wraps
from flask import jsonify, redirect, request, url_for, g

from .extensions import get_context


def wants_json() -> bool:
    best = request.accept_mimetypes.best_match(["application/json", "text/html"])
    return best == "application/json" or request.is_json


def require_session(f):
    """
    Require a live session for this terminal.

    Sets:
    - g.session: the app's SessionManager
    - g.current_user: a copy of the logged-in user

    Shared storage is checked first, so a logout made in another tab is
    honoured on the next navigation. Browsers are redirected to the login
    view; JSON callers get a 401.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        session = get_context().session
        session.sync_from_storage()

        if not session.is_logged_in:
            if wants_json():
                return jsonify({
                    "error": "Authentication required",
                    "reason": session.logout_reason,
                    "message": session.logout_message,
                }), 401
            return redirect(url_for("auth.login_view", next=request.path))

        g.session = session
        g.current_user = session.user
        return f(*args, **kwargs)

    return decorated_function


def require_overall_admin(f):
    """
    Require an admin whose admin_level is "overall" (device approvals).

    Must be stacked below @require_session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        session = get_context().session
        if not session.is_overall_admin:
            return jsonify({"error": "Overall admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not get_context().session.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
