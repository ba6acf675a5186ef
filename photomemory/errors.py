"""Error taxonomy shared by the auth endpoints, the OAuth client and the picker."""
from __future__ import annotations

from typing import Iterable


class PhotoMemoryError(Exception):
    """Base error carrying the HTTP status the web layer should answer with."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigMissing(PhotoMemoryError):
    """Raised when an entry point runs without its required configuration."""

    def __init__(self, fields: Iterable[str]) -> None:
        self.fields = tuple(fields)
        super().__init__("Missing server configuration: " + ", ".join(self.fields))


class BadRequest(PhotoMemoryError):
    status_code = 400


class OAuthDenied(BadRequest):
    """The provider redirected back with an ``error`` parameter."""

    def __init__(self, error: str) -> None:
        super().__init__(f"Google OAuth error: {error}")
        self.error = error


class InvalidSession(BadRequest):
    """The session cookie is absent, forged, expired or bound to another state."""

    def __init__(self, message: str = "Invalid OAuth session.") -> None:
        super().__init__(message)


class Unauthenticated(PhotoMemoryError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated.") -> None:
        super().__init__(message)


class MissingRefreshToken(PhotoMemoryError):
    """Consent did not grant offline access and no earlier grant is stored."""

    status_code = 401

    def __init__(self) -> None:
        super().__init__("Missing refresh token; please re-consent.")


class CallbackFailed(PhotoMemoryError):
    def __init__(self) -> None:
        super().__init__("OAuth callback failed.")


class TokenRefreshFailed(PhotoMemoryError):
    def __init__(self) -> None:
        super().__init__("Failed to refresh access token.")


class UpstreamError(PhotoMemoryError):
    """An upstream provider call failed; ``detail`` stays server-side."""

    status_code = 502

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


class ExchangeFailed(UpstreamError):
    def __init__(self, detail: str = "") -> None:
        super().__init__("Failed to exchange authorization code", detail)


class RefreshFailed(UpstreamError):
    def __init__(self, detail: str = "") -> None:
        super().__init__("Failed to refresh access token", detail)


class IdentityFetchFailed(UpstreamError):
    def __init__(self, detail: str = "") -> None:
        super().__init__("Failed to fetch user info", detail)


class TokenStoreError(PhotoMemoryError):
    """Storage or transport failure in the token store; safe to retry."""

    status_code = 503


class PickerApiError(UpstreamError):
    def __init__(self, detail: str = "", *, status: int | None = None) -> None:
        super().__init__("Google Photos Picker API error", detail)
        self.status = status

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class SelectionTimeout(PhotoMemoryError):
    """The user did not finish picking before the deadline."""

    status_code = 408

    def __init__(self) -> None:
        super().__init__("Timed out waiting for Google Photos selection.")


__all__ = [
    "PhotoMemoryError",
    "ConfigMissing",
    "BadRequest",
    "OAuthDenied",
    "InvalidSession",
    "Unauthenticated",
    "MissingRefreshToken",
    "CallbackFailed",
    "TokenRefreshFailed",
    "UpstreamError",
    "ExchangeFailed",
    "RefreshFailed",
    "IdentityFetchFailed",
    "TokenStoreError",
    "PickerApiError",
    "SelectionTimeout",
]
