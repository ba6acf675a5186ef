"""Signed, stateless session cookies.

A cookie value is ``base64url(json).base64url(hmac_sha256(body))``. Decoding
never raises for untrusted input: anything that fails verification or parsing
is reported as "no session" (``None``) so callers cannot distinguish a forged
cookie from an absent one.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Union

logger = logging.getLogger(__name__)

COOKIE_NAME = "pm_oauth_session"
PENDING_MAX_AGE = 600
AUTHENTICATED_MAX_AGE = 60 * 60 * 24 * 30


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("ascii"))


def _sign(body: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body.encode("ascii"), hashlib.sha256)
    return _b64encode(digest.digest())


def encode_payload(payload: Mapping[str, Any], secret: str) -> str:
    """Serialize *payload* and append its HMAC-SHA256 signature."""
    if not secret:
        raise ValueError("A session secret is required to sign cookies")
    raw = json.dumps(dict(payload), sort_keys=True, separators=(",", ":"))
    body = _b64encode(raw.encode("utf-8"))
    return f"{body}.{_sign(body, secret)}"


def decode_payload(value: str | None, secret: str) -> dict[str, Any] | None:
    """Verify and decode a cookie value, returning ``None`` when untrusted."""
    if not value or not secret or "." not in value:
        return None
    body, signature = value.split(".", 1)
    if not body or not signature:
        return None
    try:
        expected = _sign(body, secret)
    except UnicodeEncodeError:
        return None
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        return None
    try:
        decoded = json.loads(_b64decode(body).decode("utf-8"))
    except (binascii.Error, ValueError) as exc:
        logger.error("Failed to parse session cookie: %s", exc)
        return None
    if not isinstance(decoded, dict):
        return None
    return decoded


@dataclass(frozen=True)
class PendingSession:
    """Issued by auth start; binds the provider round trip to this browser."""

    state: str
    code_verifier: str
    redirect_to: str
    issued_at: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "codeVerifier": self.code_verifier,
            "redirectTo": self.redirect_to,
            "issuedAt": self.issued_at,
        }


@dataclass(frozen=True)
class AuthenticatedSession:
    """Issued by the callback once tokens for ``google_user_id`` are stored."""

    state: str
    redirect_to: str
    issued_at: int
    google_user_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "redirectTo": self.redirect_to,
            "issuedAt": self.issued_at,
            "googleUserId": self.google_user_id,
        }


Session = Union[PendingSession, AuthenticatedSession]


def session_from_payload(payload: Mapping[str, Any]) -> Session | None:
    state = payload.get("state")
    redirect_to = payload.get("redirectTo")
    issued_at = payload.get("issuedAt")
    if not isinstance(state, str) or not state:
        return None
    if not isinstance(redirect_to, str):
        return None
    if isinstance(issued_at, bool) or not isinstance(issued_at, (int, float)):
        return None

    if "googleUserId" in payload:
        user_id = payload.get("googleUserId")
        if not isinstance(user_id, str) or not user_id:
            return None
        return AuthenticatedSession(
            state=state,
            redirect_to=redirect_to,
            issued_at=int(issued_at),
            google_user_id=user_id,
        )

    verifier = payload.get("codeVerifier")
    if not isinstance(verifier, str) or not verifier:
        return None
    return PendingSession(
        state=state,
        code_verifier=verifier,
        redirect_to=redirect_to,
        issued_at=int(issued_at),
    )


def encode_session(session: Session, secret: str) -> str:
    return encode_payload(session.to_payload(), secret)


def decode_session(value: str | None, secret: str) -> Session | None:
    payload = decode_payload(value, secret)
    if payload is None:
        return None
    return session_from_payload(payload)


__all__ = [
    "COOKIE_NAME",
    "PENDING_MAX_AGE",
    "AUTHENTICATED_MAX_AGE",
    "PendingSession",
    "AuthenticatedSession",
    "Session",
    "encode_payload",
    "decode_payload",
    "encode_session",
    "decode_session",
    "session_from_payload",
]
