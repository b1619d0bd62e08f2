# Overview: User administration views; thin wrappers over user_service for admins.

from flask import Blueprint, request, jsonify

from ..decorators import require_session, require_admin
from ..extensions import get_context
from ..responses import error_response, HANDLED_ERRORS
from ..services import user_service


users_bp = Blueprint("users", __name__, url_prefix="/admin/users")


@users_bp.get("")
@require_session
@require_admin
def list_users_route():
    include_inactive = request.args.get("all", "false").lower() == "true"
    try:
        users = user_service.list_users(get_context().session, include_inactive=include_inactive)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"users": users, "count": len(users)}), 200


@users_bp.get("/<int:user_id>")
@require_session
@require_admin
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(get_context().session, user_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"user": user}), 200


@users_bp.post("")
@require_session
@require_admin
def create_user_route():
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.create_user(get_context().session, data)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"user": user, "message": "User created successfully"}), 201


@users_bp.put("/<int:user_id>")
@require_session
@require_admin
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(get_context().session, user_id, data)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"user": user, "message": "User updated successfully"}), 200


@users_bp.delete("/<int:user_id>")
@require_session
@require_admin
def delete_user_route(user_id: int):
    try:
        user_service.delete_user(get_context().session, user_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"message": "User deactivated"}), 200


@users_bp.post("/<int:user_id>/reactivate")
@require_session
@require_admin
def reactivate_user_route(user_id: int):
    try:
        user_service.reactivate_user(get_context().session, user_id)
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"message": "User reactivated"}), 200


@users_bp.put("/<int:user_id>/password")
@require_session
@require_admin
def reset_password_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user_service.reset_password(get_context().session, user_id, data.get("password") or "")
    except HANDLED_ERRORS as exc:
        return error_response(exc)
    return jsonify({"message": "Password reset"}), 200
