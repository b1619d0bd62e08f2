# Overview: Maps client-side exceptions to JSON error responses for the views.

from flask import jsonify, current_app

from .services.api_client import (
    ApiError,
    NetworkError,
    NotAuthenticatedError,
    UnauthorizedError,
    ValidationError,
)
from .services.normalize_service import ReportError


def error_response(exc: Exception):
    """
    (response, status) for an exception raised by a service call.

    - ValidationError -> 400
    - NotAuthenticatedError / UnauthorizedError -> 401 (session already cleared)
    - ApiError 403/404/409 -> passed through with the backend's message
    - other ApiError, NetworkError, ReportError -> 502
    """
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, (NotAuthenticatedError, UnauthorizedError)):
        return jsonify({"error": "Authentication required", "message": str(exc)}), 401
    if isinstance(exc, ApiError):
        if exc.status in (403, 404, 409):
            return jsonify({"error": exc.message, "details": exc.body}), exc.status
        current_app.logger.warning("Backend returned %s: %s", exc.status, exc.message)
        return jsonify({"error": exc.message, "upstream_status": exc.status}), 502
    if isinstance(exc, NetworkError):
        return jsonify({"error": "Cannot reach the server", "message": str(exc)}), 502
    if isinstance(exc, ReportError):
        return jsonify({"error": str(exc)}), 502
    raise exc


# Exceptions error_response knows how to render
HANDLED_ERRORS = (ValidationError, NotAuthenticatedError, ApiError, NetworkError, ReportError)
