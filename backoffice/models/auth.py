from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PendingDeviceApproval:
    """
    A login blocked because this browser/device is not yet authorized.

    Created from the 401/403 body of a restricted login; cleared when an admin
    approves the matching request or a new login attempt starts.
    """
    ip: str | None
    user_agent: str | None
    message: str
    request_id: int | None = None
    email_sent: bool = False

    @classmethod
    def from_response(cls, body: dict, fallback_message: str) -> "PendingDeviceApproval":
        request_id = body.get("request_id", body.get("device_request_id"))
        try:
            request_id = int(request_id) if request_id is not None else None
        except (TypeError, ValueError):
            request_id = None
        return cls(
            ip=body.get("ip"),
            user_agent=body.get("user_agent"),
            message=body.get("error") or body.get("message") or fallback_message,
            request_id=request_id,
            email_sent=bool(body.get("email_sent", False)),
        )

    def to_dict(self) -> dict:
        return {
            "ip": self.ip,
            "user_agent": self.user_agent,
            "message": self.message,
            "request_id": self.request_id,
            "email_sent": self.email_sent,
        }


@dataclass
class DeviceRequest:
    """Pending approval entry listed for overall admins."""
    id: int
    user_id: int | None
    ip: str | None
    user_agent: str | None
    created_at: str | None
    user_email: str | None = None

    @classmethod
    def from_payload(cls, raw: dict) -> "DeviceRequest | None":
        """None when the entry has no usable integer id."""
        try:
            request_id = int(raw.get("id"))
        except (TypeError, ValueError):
            return None
        user = raw.get("user") if isinstance(raw.get("user"), dict) else {}
        return cls(
            id=request_id,
            user_id=raw.get("user_id", user.get("id")),
            ip=raw.get("ip") or raw.get("ip_address"),
            user_agent=raw.get("user_agent"),
            created_at=raw.get("created_at"),
            user_email=raw.get("email") or user.get("email"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "created_at": self.created_at,
        }


# LoginResult.kind values
LOGIN_OK = "ok"
LOGIN_PENDING = "pending"
LOGIN_INVALID = "invalid"
LOGIN_VALIDATION = "validation"
LOGIN_NETWORK = "network"


@dataclass
class LoginResult:
    """
    Outcome of SessionManager.login.

    Callers branch on `kind`: a pending device approval needs a different
    screen than bad credentials or an unreachable server.
    """
    ok: bool
    kind: str
    user: dict | None = None
    pending_approval: PendingDeviceApproval | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if self.kind == LOGIN_OK:
            return "Login successful"
        if self.kind == LOGIN_PENDING:
            return "New device detected. Awaiting overall admin approval."
        if self.kind == LOGIN_NETWORK:
            return "Cannot reach the server. Check the connection and try again."
        return self.error or "Invalid credentials"

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "kind": self.kind,
            "user": self.user,
            "pending_approval": self.pending_approval.to_dict() if self.pending_approval else None,
            "error": self.error,
            "message": self.message,
        }
