# Overview: Reads the expiry claim of a bearer token for proactive logout scheduling.

"""
Token inspection

WHY: Knowing when the bearer token expires lets the client log out on time
instead of waiting for the next call to fail.

SECURITY: The signature is NOT verified. The client has no key and does not
need one; the server's 401 is the security boundary. Nothing here may be used
to decide whether a user is authorized.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import jwt


logger = logging.getLogger(__name__)


def decode_claims(token: str) -> dict | None:
    """Unverified claims of a JWT, or None when `token` is not a JWT."""
    if not token:
        return None
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        logger.debug("Bearer token is not a decodable JWT; no expiry timer")
        return None


def token_expiry(token: str) -> datetime | None:
    """
    Expiry instant (aware UTC) from the `exp` claim.

    Returns None when the token cannot be decoded or carries no usable `exp`;
    such tokens are trusted until the server answers 401.
    """
    claims = decode_claims(token)
    if not claims:
        return None
    exp = claims.get("exp")
    if exp is None or isinstance(exp, bool):
        return None
    try:
        return datetime.fromtimestamp(float(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
