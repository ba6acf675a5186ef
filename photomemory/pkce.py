"""PKCE verifier/challenge generation (RFC 7636, S256)."""
from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass

UNRESERVED_CHARACTERS = (
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-._~"
)
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


@dataclass(frozen=True)
class PKCEPair:
    verifier: str
    challenge: str
    method: str = "S256"


def generate_code_verifier(length: int = 64) -> str:
    """Return a verifier of *length* characters drawn from the unreserved set."""
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(
            f"verifier length must be between {MIN_VERIFIER_LENGTH} and "
            f"{MAX_VERIFIER_LENGTH}, got {length}"
        )
    alphabet_size = len(UNRESERVED_CHARACTERS)
    return "".join(
        UNRESERVED_CHARACTERS[byte % alphabet_size]
        for byte in secrets.token_bytes(length)
    )


def derive_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce_pair(length: int = 64) -> PKCEPair:
    """Generate a PKCE code verifier and challenge pair."""
    verifier = generate_code_verifier(length)
    return PKCEPair(verifier=verifier, challenge=derive_code_challenge(verifier))


def generate_state() -> str:
    return secrets.token_urlsafe(32)


__all__ = [
    "UNRESERVED_CHARACTERS",
    "PKCEPair",
    "generate_code_verifier",
    "derive_code_challenge",
    "generate_pkce_pair",
    "generate_state",
]
