# Overview: User administration passthroughs; every call goes through the session's request wrapper.

from __future__ import annotations

import logging
from typing import Any

from .api_client import ApiError, NetworkError, ValidationError
from .session_service import SessionManager


logger = logging.getLogger(__name__)


def _unwrap(res: Any) -> Any:
    if isinstance(res, dict) and "data" in res:
        return res["data"]
    return res


def list_users(session: SessionManager, *, include_inactive: bool = False) -> list[dict]:
    res = session.request("GET", "/users", params={"all": include_inactive or None})
    users = _unwrap(res)
    users = [u for u in users if isinstance(u, dict)] if isinstance(users, list) else []
    session.users = users
    return list(users)


def get_user(session: SessionManager, user_id: int) -> dict:
    return _unwrap(session.request("GET", f"/users/{user_id}"))


def create_user(session: SessionManager, payload: dict) -> dict:
    if not payload.get("email"):
        raise ValidationError("email is required")
    return _unwrap(session.request("POST", "/users", json=payload))


def update_user(session: SessionManager, user_id: int, patch: dict) -> dict:
    """
    Update a user. When the edited user is the one logged in, the profile is
    re-fetched so a role change takes effect immediately.
    """
    res = _unwrap(session.request("PUT", f"/users/{user_id}", json=patch))
    current = session.user or {}
    if str(current.get("id")) == str(user_id):
        try:
            session.fetch_current_user()
        except (ApiError, NetworkError) as exc:
            logger.warning("Profile refresh after self-update failed: %s", exc)
    return res


def delete_user(session: SessionManager, user_id: int) -> Any:
    return session.request("DELETE", f"/users/{user_id}")


def reactivate_user(session: SessionManager, user_id: int) -> Any:
    return session.request("POST", f"/users/{user_id}/reactivate")


def reset_password(session: SessionManager, user_id: int, new_password: str) -> Any:
    if not new_password:
        raise ValidationError("password is required")
    return session.request("PUT", f"/reset-password/{user_id}", json={"password": new_password})
