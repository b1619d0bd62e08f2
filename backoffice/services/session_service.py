# Overview: Client session lifecycle; token/user ownership, auto-logout, 401 handling and cross-tab sync.

"""
Session Manager

WHY: One object answers "who is logged in and with what token" and performs
every side effect when that answer changes. Each tab/terminal owns exactly one
SessionManager, built by the composition root and passed to whoever needs it.

INVARIANTS:
- token and user are set and cleared together (a token without a user exists
  only transiently while the profile is fetched after boot)
- at most one expiry timer is outstanding; a timer that belongs to a replaced
  token is inert (generation check)
- every authenticated call goes through request(), the only place where a 401
  is turned into "session cleared"

SECURITY: The expiry timer reads the JWT without verifying it. It exists so
the UI logs out on time; the server's 401 is the real boundary.

LOCKING: `_persist_lock` orders storage writes of this tab, `_state_lock`
guards in-memory state. Storage writes run with `_persist_lock` only, so a
storage event delivered to another tab never waits on a lock that tab holds.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any, Callable

from ..models import (
    PendingDeviceApproval,
    DeviceRequest,
    LoginResult,
    LOGIN_OK,
    LOGIN_PENDING,
    LOGIN_INVALID,
    LOGIN_VALIDATION,
    LOGIN_NETWORK,
)
from ..time_utils import utcnow
from . import token_service
from .api_client import ApiClient, ApiError, NetworkError, NotAuthenticatedError, UnauthorizedError
from .storage_service import ClientStorage, StorageEvent


logger = logging.getLogger(__name__)


# Storage keys shared by every tab
TOKEN_KEY = "token"
USER_KEY = "auth_user"

# Structured device-restriction codes accepted from the login endpoint
DEVICE_ERROR_CODES = {"DEVICE_NOT_APPROVED", "DEVICE_PENDING_APPROVAL", "DEVICE_RESTRICTED"}

# Reasons passed to "auth cleared" listeners
REASON_LOGOUT = "logout"
REASON_UNAUTHORIZED = "unauthorized"
REASON_EXPIRED = "expired"
REASON_STORAGE = "storage"

LOGOUT_MESSAGES = {
    REASON_LOGOUT: "You have been logged out.",
    REASON_UNAUTHORIZED: "You were logged out because your session is no longer valid.",
    REASON_EXPIRED: "You were logged out because your session expired.",
    REASON_STORAGE: "You were logged out from another window.",
}

AuthClearedListener = Callable[[str], None]


def role_start_path(user: dict | None) -> str:
    """Landing route for a user: admins -> /admin, everyone else -> cashier sale flow."""
    role = str((user or {}).get("role") or "").lower()
    if role == "admin":
        return "/admin"
    return "/cashier/sale"


class SessionManager:
    def __init__(
        self,
        api: ApiClient,
        storage: ClientStorage,
        *,
        expiry_skew_ms: int = 500,
        device_message_fallback: bool = False,
        clock: Callable[[], datetime] = utcnow,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.api = api
        self.storage = storage
        self.expiry_skew_ms = expiry_skew_ms
        self.device_message_fallback = device_message_fallback
        self._clock = clock
        self._timer_factory = timer_factory

        self._state_lock = threading.RLock()
        self._persist_lock = threading.RLock()
        self._token = ""
        self._user: dict | None = None
        self._generation = 0
        self._timer = None
        self._listeners: list[AuthClearedListener] = []

        self.pending_approval: PendingDeviceApproval | None = None
        self.last_error: str | None = None
        self.logout_reason: str | None = None
        self.device_requests: list[DeviceRequest] = []
        self.device_summary: dict = {}
        self.users: list[dict] = []

        storage.subscribe(self._on_storage_event, origin=self)

    # ------ state ------

    @property
    def token(self) -> str:
        with self._state_lock:
            return self._token

    @property
    def user(self) -> dict | None:
        with self._state_lock:
            return dict(self._user) if self._user is not None else None

    @property
    def is_logged_in(self) -> bool:
        with self._state_lock:
            return bool(self._token) and self._user is not None

    @property
    def is_admin(self) -> bool:
        user = self.user or {}
        return str(user.get("role") or "").lower() == "admin"

    @property
    def is_overall_admin(self) -> bool:
        user = self.user or {}
        return self.is_admin and str(user.get("admin_level") or "").lower() == "overall"

    def has_role(self, *roles: str) -> bool:
        role = str((self.user or {}).get("role") or "").lower()
        return role in {str(r).lower() for r in roles}

    def start_path(self) -> str:
        return role_start_path(self.user)

    @property
    def logout_message(self) -> str | None:
        if not self.logout_reason:
            return None
        return LOGOUT_MESSAGES.get(self.logout_reason, LOGOUT_MESSAGES[REASON_LOGOUT])

    def clear_pending_approval(self) -> None:
        with self._state_lock:
            self.pending_approval = None

    # ------ listeners ------

    def add_listener(self, listener: AuthClearedListener) -> None:
        """Register an "auth cleared" side effect; called with the clear reason."""
        with self._state_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: AuthClearedListener) -> None:
        with self._state_lock:
            self._listeners = [fn for fn in self._listeners if fn != listener]

    def _emit_cleared(self, reason: str) -> None:
        with self._state_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(reason)
            except Exception:
                logger.exception("Auth-cleared listener failed (reason=%s)", reason)

    # ------ boot ------

    def restore(self) -> dict | None:
        """
        Restore the session persisted by an earlier run or another tab.

        A stored user without a token is discarded. A token without a user
        triggers a profile fetch; failures there are logged, not raised.
        """
        with self._persist_lock:
            token = self.storage.get_item(TOKEN_KEY) or ""
            user = self._stored_user()
            if not token:
                if user is not None:
                    self.storage.remove_item(USER_KEY, origin=self)
                return None
            with self._state_lock:
                self._cancel_timer()
                self._generation += 1
                generation = self._generation
                self._token, self._user = token, user
            self._schedule_expiry(token, generation)

        if self.token and self.user is None:
            try:
                self.fetch_current_user()
            except (ApiError, NetworkError) as exc:
                logger.warning("Could not load the profile for the restored session: %s", exc)
        return self.user

    # ------ auth routes ------

    def login(self, email: str, password: str) -> LoginResult:
        with self._state_lock:
            self.pending_approval = None
            self.last_error = None

        try:
            res = self.api.send("POST", "/login", json={"email": email, "password": password})
        except NetworkError as exc:
            self.last_error = str(exc)
            return LoginResult(ok=False, kind=LOGIN_NETWORK, error=str(exc))
        except ApiError as exc:
            if self._is_device_restriction(exc):
                pending = PendingDeviceApproval.from_response(exc.body, exc.message)
                with self._state_lock:
                    self.pending_approval = pending
                logger.info("Login for %s is waiting on device approval (ip=%s)", email, pending.ip)
                return LoginResult(
                    ok=False,
                    kind=LOGIN_PENDING,
                    pending_approval=pending,
                    details=exc.body,
                )
            self.last_error = exc.message
            kind = LOGIN_VALIDATION if exc.status in (400, 422) else LOGIN_INVALID
            logger.info("Login for %s failed with %s", email, exc.status)
            return LoginResult(ok=False, kind=kind, error=exc.message, details=exc.body)

        token = res.get("token") if isinstance(res, dict) else None
        user = res.get("user") if isinstance(res, dict) else None
        if not token or not isinstance(user, dict):
            self.last_error = "Invalid login response"
            return LoginResult(ok=False, kind=LOGIN_INVALID, error=self.last_error)

        self._set_auth(token, user)
        if not self.is_logged_in:
            self.last_error = "Session token already expired"
            return LoginResult(ok=False, kind=LOGIN_INVALID, error=self.last_error)

        logger.info("User %s logged in", user.get("email") or user.get("id"))
        return LoginResult(ok=True, kind=LOGIN_OK, user=dict(user))

    def logout(self) -> bool:
        """
        Log out. The server call is best effort; the local session is
        cleared no matter what the server says.
        """
        token = self.token
        if token:
            try:
                self.api.send("POST", "/logout", token=token)
            except (ApiError, NetworkError) as exc:
                logger.debug("Server-side logout failed, clearing locally anyway: %s", exc)
        self._clear_auth(REASON_LOGOUT)
        return True

    def fetch_current_user(self) -> dict | None:
        """
        Re-pull the profile for the stored token.

        Role or device flags may have changed server-side. Returns None when
        nobody is logged in; a 401 clears the session and re-raises.
        """
        self.sync_from_storage()
        token = self.token
        if not token:
            return None

        res = self.request("GET", "/current-user")
        user = res
        if isinstance(res, dict) and isinstance(res.get("user"), dict):
            user = res["user"]
        if not isinstance(user, dict):
            raise ApiError(502, "Invalid current-user response", res)

        with self._persist_lock:
            with self._state_lock:
                if self._token != token:
                    return self.user
                self._user = dict(user)
            self.storage.set_item(USER_KEY, json.dumps(user), origin=self)
        return dict(user)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: Any = None,
        expect_blob: bool = False,
    ) -> Any:
        """
        Authenticated call. Every API call of the back office goes through here.

        Raises:
            NotAuthenticatedError: no session; nothing was sent
            UnauthorizedError: the server answered 401; the session is cleared
            ApiError: any other non-2xx
            NetworkError: no response
        """
        self.sync_from_storage()
        token = self.token
        if not token:
            raise NotAuthenticatedError("Not logged in")

        try:
            return self.api.send(
                method,
                path,
                token=token,
                params=params,
                json=json,
                expect_blob=expect_blob,
            )
        except ApiError as exc:
            if exc.status == 401:
                logger.warning("%s %s returned 401; clearing session", method.upper(), path)
                self._clear_auth(REASON_UNAUTHORIZED, token=token)
                raise UnauthorizedError(exc.status, exc.message, exc.data) from exc
            raise

    # ------ device approval (overall admin) ------

    def approve_by_code(self, code: str) -> Any:
        res = self.request("POST", "/approve-by-code", json={"code": code})
        self._refresh_device_requests()
        return res

    def approve_device(self, request_id: int) -> Any:
        res = self.request("POST", f"/device-requests/{request_id}/approve")
        with self._state_lock:
            if self.pending_approval and self.pending_approval.request_id == int(request_id):
                self.pending_approval = None
        self._refresh_device_requests()
        return res

    def get_device_requests(self) -> list[DeviceRequest]:
        res = self.request("GET", "/device-requests")
        raw = res.get("data") if isinstance(res, dict) else res
        requests = []
        for entry in raw if isinstance(raw, list) else []:
            request = DeviceRequest.from_payload(entry) if isinstance(entry, dict) else None
            if request is None:
                logger.warning("Skipping malformed device request entry: %r", entry)
                continue
            requests.append(request)
        with self._state_lock:
            self.device_requests = requests
        return list(requests)

    def get_device_summary(self) -> dict:
        res = self.request("GET", "/device-summary")
        summary = res.get("data", res) if isinstance(res, dict) else {}
        if not isinstance(summary, dict):
            summary = {}
        with self._state_lock:
            self.device_summary = summary
        return dict(summary)

    def reject_device_request(self, request_id: int) -> Any:
        res = self.request("DELETE", f"/device-requests/{request_id}")
        with self._state_lock:
            self.device_requests = [r for r in self.device_requests if r.id != int(request_id)]
        self._refresh_device_requests()
        return res

    def _refresh_device_requests(self) -> None:
        try:
            self.get_device_requests()
        except UnauthorizedError:
            raise
        except (ApiError, NetworkError) as exc:
            logger.warning("Device request list refresh failed: %s", exc)

    # ------ cross-tab consistency ------

    def sync_from_storage(self) -> bool:
        """
        Align the in-memory session with shared storage.

        Catches changes made by tabs in other processes, which cannot deliver
        storage events to this one. Never calls the server. Returns whether a
        token is present afterwards.
        """
        stored = self.storage.get_item(TOKEN_KEY) or ""
        current = self.token
        if stored == current:
            return bool(current)
        if not stored:
            self._clear_auth(REASON_STORAGE, touch_storage=False)
            return False
        user = self._stored_user()
        if user is None:
            # the other tab is between writes or still loading its profile
            return bool(current)
        self._adopt(stored, user)
        return True

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != TOKEN_KEY:
            return
        if event.removed:
            if self._clear_auth(REASON_STORAGE, touch_storage=False):
                logger.info("Session cleared in another tab; cleared here too")
            return
        user = self._stored_user()
        if user is not None and event.new_value != self.token:
            self._adopt(event.new_value, user)

    def _adopt(self, token: str, user: dict) -> None:
        """Take over a session written by another tab. Does not write storage."""
        with self._state_lock:
            self._cancel_timer()
            self._generation += 1
            generation = self._generation
            self._token, self._user = token, dict(user)
            self.logout_reason = None
        self._schedule_expiry(token, generation, touch_storage=False)

    # ------ internals ------

    def _stored_user(self) -> dict | None:
        raw = self.storage.get_item(USER_KEY)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            return None
        return user if isinstance(user, dict) else None

    def _is_device_restriction(self, exc: ApiError) -> bool:
        if exc.status not in (401, 403):
            return False
        body = exc.body
        code = str(body.get("code") or body.get("error_code") or "").upper()
        if code in DEVICE_ERROR_CODES:
            return True
        if body.get("device_restricted") is True or body.get("pending_approval") is True:
            return True
        if self.device_message_fallback and exc.status == 403 and "device" in exc.message.lower():
            logger.warning(
                "Device restriction inferred from the error text; the login endpoint should send code=DEVICE_NOT_APPROVED"
            )
            return True
        return False

    def _set_auth(self, token: str, user: dict) -> None:
        with self._persist_lock:
            with self._state_lock:
                self._cancel_timer()
                self._generation += 1
                generation = self._generation
                self._token, self._user = token, dict(user)
                self.logout_reason = None
            # user first: a tab that sees the new token always finds its user
            self.storage.set_item(USER_KEY, json.dumps(user), origin=self)
            self.storage.set_item(TOKEN_KEY, token, origin=self)
            self._schedule_expiry(token, generation)

    def _clear_auth(
        self,
        reason: str,
        *,
        token: str | None = None,
        generation: int | None = None,
        touch_storage: bool = True,
    ) -> bool:
        """
        Drop the session. `token`/`generation` make the clear conditional on
        the session still being the one the caller saw.

        Returns whether there was a session to clear.
        """
        if touch_storage:
            self._persist_lock.acquire()
        try:
            with self._state_lock:
                if generation is not None and generation != self._generation:
                    return False
                if token is not None and token != self._token:
                    return False
                had_session = bool(self._token) or self._user is not None
                self._cancel_timer()
                self._generation += 1
                self._token, self._user = "", None
                self.device_requests = []
                self.device_summary = {}
                self.users = []
                if had_session:
                    self.logout_reason = reason
            if touch_storage:
                self.storage.remove_item(TOKEN_KEY, origin=self)
                self.storage.remove_item(USER_KEY, origin=self)
        finally:
            if touch_storage:
                self._persist_lock.release()

        if had_session:
            logger.info("Session cleared (%s)", reason)
            self._emit_cleared(reason)
        return had_session

    def _schedule_expiry(self, token: str, generation: int, *, touch_storage: bool = True) -> None:
        expires_at = token_service.token_expiry(token)
        if expires_at is None:
            return

        remaining = (expires_at - self._clock()).total_seconds()
        if remaining <= 0:
            logger.info("Session token is already expired; logging out")
            self._clear_auth(REASON_EXPIRED, generation=generation, touch_storage=touch_storage)
            return

        delay = remaining + self.expiry_skew_ms / 1000.0
        with self._state_lock:
            if generation != self._generation:
                return
            self._cancel_timer()
            timer = self._timer_factory(delay, self._on_expiry_timer, args=(generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()
        logger.debug("Auto-logout scheduled in %.1fs", delay)

    def _on_expiry_timer(self, generation: int) -> None:
        self._clear_auth(REASON_EXPIRED, generation=generation)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        with self._state_lock:
            self._cancel_timer()
        self.storage.unsubscribe(self._on_storage_event)


class SessionHeartbeat(threading.Thread):
    """
    Re-validates the session while the terminal sits idle.

    A revoked session is then noticed without waiting for the next click.
    """

    def __init__(self, session: SessionManager, interval_seconds: float):
        super().__init__(name="session-heartbeat", daemon=True)
        self.session = session
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            if not self.session.is_logged_in:
                continue
            try:
                self.session.fetch_current_user()
            except (UnauthorizedError, NotAuthenticatedError):
                logger.info("Heartbeat found the session gone")
            except (ApiError, NetworkError) as exc:
                logger.warning("Session heartbeat failed: %s", exc)

    def stop(self) -> None:
        self._stop_event.set()
