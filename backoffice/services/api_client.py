# Overview: HTTP boundary to the back-office REST API; maps transport and status failures to exceptions.

"""
REST API client

WHY: One place builds URLs, attaches the bearer token and turns failures into
a small exception taxonomy. Session validity is NOT decided here; the
SessionManager wraps this client and owns the 401 side effects.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import httpx


logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response. `message` is the backend's `error` text when it sent one."""

    def __init__(self, status: int, message: str, data: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.data = data if data is not None else {}

    @property
    def body(self) -> dict:
        return self.data if isinstance(self.data, dict) else {}


class UnauthorizedError(ApiError):
    """401 on an authenticated call. The session is already cleared when this propagates."""


class NetworkError(Exception):
    """No response at all (DNS, refused connection, timeout, TLS...)."""


class NotAuthenticatedError(Exception):
    """Authenticated call attempted without a session; raised before any traffic."""


class ValidationError(ValueError):
    """Client-side input problem caught before calling the API."""


def resolve_base_url(base_url: str | None, origin: str) -> str:
    """
    Absolute API base.

    An unset base falls back to the same-origin "/api" prefix; a relative base
    is resolved against `origin`.
    """
    base = (base_url or "/api").strip()
    if base.startswith(("http://", "https://")):
        return base.rstrip("/")
    return urljoin(origin.rstrip("/") + "/", base.lstrip("/")).rstrip("/")


def clean_params(params: dict | None) -> dict:
    """Drop None/empty values and stringify the rest, as query strings expect."""
    if not params:
        return {}
    cleaned = {}
    for key, value in params.items():
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        cleaned[key] = str(value)
    return cleaned


class ApiClient:
    def __init__(self, base_url: str, *, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def url_for(self, path: str) -> str:
        return self.base_url + "/" + path.lstrip("/")

    def send(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict | None = None,
        json: Any = None,
        expect_blob: bool = False,
    ) -> Any:
        """
        Perform one request and decode the body.

        Returns parsed JSON for JSON responses, text otherwise, raw bytes when
        `expect_blob` is set.

        Raises:
            NetworkError: no response was received
            ApiError: the response status was not 2xx
        """
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self._http.request(
                method.upper(),
                self.url_for(path),
                params=clean_params(params),
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed without a response: %s", method.upper(), path, exc)
            raise NetworkError(str(exc)) from exc

        if response.is_error:
            raise self._error_from(response)

        if expect_blob:
            return response.content
        if "application/json" in response.headers.get("content-type", ""):
            return response.json() if response.content else None
        return response.text

    @staticmethod
    def _error_from(response: httpx.Response) -> ApiError:
        message = f"{response.status_code} {response.reason_phrase}".strip()
        data: Any = {}
        try:
            data = response.json()
        except ValueError:
            data = {}
        if isinstance(data, dict) and data.get("error"):
            message = str(data["error"])
        elif isinstance(data, dict) and data.get("message"):
            message = str(data["message"])
        return ApiError(response.status_code, message, data)

    def close(self):
        self._http.close()
