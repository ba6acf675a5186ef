"""Auth start / callback / token flows over the signed session cookie.

The cookie is the only per-browser state. ``start`` issues a pending cookie
holding the PKCE verifier and the expected ``state``; ``callback`` trades it,
after the provider round trip, for an authenticated cookie naming the Google
identity; ``token`` turns an authenticated cookie into a fresh access token
using the refresh token kept in the token store.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
import logging

from ..clients.google import GoogleOAuthClient, build_authorization_url
from ..config import PhotoMemoryConfig
from ..errors import (
    BadRequest,
    CallbackFailed,
    ExchangeFailed,
    IdentityFetchFailed,
    InvalidSession,
    MissingRefreshToken,
    OAuthDenied,
    RefreshFailed,
    TokenRefreshFailed,
    TokenStoreError,
    Unauthenticated,
)
from ..logs import AUTH_CATEGORY, PhotoMemoryLogStore
from ..pkce import generate_pkce_pair, generate_state
from ..session import (
    AUTHENTICATED_MAX_AGE,
    PENDING_MAX_AGE,
    AuthenticatedSession,
    PendingSession,
    decode_session,
    encode_session,
)
from ..tokens import TokenRecord, TokenStore, expiry_from_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthRedirect:
    location: str
    cookie_value: str
    max_age: int


@dataclass(frozen=True)
class AccessTokenGrant:
    access_token: str
    expires_in: int

    def to_json(self) -> dict[str, object]:
        return {"accessToken": self.access_token, "expiresIn": self.expires_in}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthOrchestrator:
    def __init__(
        self,
        config: PhotoMemoryConfig,
        token_store: TokenStore,
        oauth_client: GoogleOAuthClient | None = None,
        *,
        log_store: PhotoMemoryLogStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config
        self._tokens = token_store
        self._oauth = oauth_client or GoogleOAuthClient(
            config.google_client_id, config.google_client_secret
        )
        self._log_store = log_store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def _expired(self, issued_at: int, max_age: int) -> bool:
        return self._now_ms() - issued_at > max_age * 1000

    def _audit(self, message: str, *, level: str = "INFO", **data: object) -> None:
        if self._log_store is not None:
            self._log_store.append(AUTH_CATEGORY, message, level=level, data=data)

    def start(self, redirect_to: str | None = None) -> AuthRedirect:
        """Begin an authorization attempt and return the consent redirect."""
        config = self._config
        config.require_for("start")

        pkce = generate_pkce_pair()
        state = generate_state()
        pending = PendingSession(
            state=state,
            code_verifier=pkce.verifier,
            redirect_to=redirect_to or config.frontend_url,
            issued_at=self._now_ms(),
        )
        location = build_authorization_url(
            client_id=config.google_client_id,
            redirect_uri=config.google_redirect_uri,
            scope=config.google_photos_scope,
            state=state,
            code_challenge=pkce.challenge,
        )
        self._audit("Authorization started", redirect_to=pending.redirect_to)
        return AuthRedirect(
            location=location,
            cookie_value=encode_session(pending, config.session_secret),
            max_age=PENDING_MAX_AGE,
        )

    def callback(
        self,
        cookie_value: str | None,
        *,
        code: str | None,
        state: str | None,
        error: str | None = None,
    ) -> AuthRedirect:
        """Complete the provider round trip and bind the cookie to an identity."""
        if error:
            self._audit("Authorization denied by provider", level="WARNING", error=error)
            raise OAuthDenied(error)
        if not code or not state:
            raise BadRequest("Missing code or state parameter.")

        config = self._config
        config.require_for("callback")

        if not cookie_value:
            raise InvalidSession("Missing OAuth session cookie.")
        session = decode_session(cookie_value, config.session_secret)
        if not isinstance(session, PendingSession) or session.state != state:
            self._audit("Rejected callback with invalid session", level="WARNING")
            raise InvalidSession()
        if self._expired(session.issued_at, PENDING_MAX_AGE):
            self._audit("Rejected callback with expired session", level="WARNING")
            raise InvalidSession("OAuth session expired. Start again.")

        try:
            grant = self._oauth.exchange_code(
                code, session.code_verifier, config.google_redirect_uri
            )
            identity = self._oauth.fetch_identity(grant.access_token)
            existing = self._tokens.get(identity.subject_id)
            refresh_token = grant.refresh_token or (existing.refresh_token if existing else None)
            if not refresh_token:
                self._audit(
                    "Callback without refresh token",
                    level="WARNING",
                    google_user_id=identity.subject_id,
                )
                raise MissingRefreshToken()
            self._tokens.upsert(
                TokenRecord(
                    google_user_id=identity.subject_id,
                    refresh_token=refresh_token,
                    access_token=grant.access_token,
                    token_expires_at=expiry_from_now(grant.expires_in, now=self._clock()),
                    profile_email=identity.email or (existing.profile_email if existing else None),
                )
            )
        except (ExchangeFailed, IdentityFetchFailed) as exc:
            logger.error("OAuth callback failed: %s: %s", exc.message, exc.detail)
            self._audit("OAuth callback failed", level="ERROR", reason=exc.message)
            raise CallbackFailed() from exc
        except TokenStoreError as exc:
            logger.error("OAuth callback failed to persist tokens: %s", exc.message)
            self._audit("OAuth callback failed", level="ERROR", reason="token store")
            raise CallbackFailed() from exc

        authenticated = AuthenticatedSession(
            state=generate_state(),
            redirect_to=session.redirect_to,
            issued_at=self._now_ms(),
            google_user_id=identity.subject_id,
        )
        self._audit(
            "Authorization completed",
            google_user_id=identity.subject_id,
            email=identity.email,
        )
        return AuthRedirect(
            location=session.redirect_to or "/",
            cookie_value=encode_session(authenticated, config.session_secret),
            max_age=AUTHENTICATED_MAX_AGE,
        )

    def token(self, cookie_value: str | None) -> AccessTokenGrant:
        """Mint a fresh access token for the identity bound to the cookie."""
        config = self._config
        config.require_for("token")

        # absent, forged, expired and pending-only cookies all answer 401
        session = decode_session(cookie_value, config.session_secret) if cookie_value else None
        if not isinstance(session, AuthenticatedSession):
            raise Unauthenticated()
        if self._expired(session.issued_at, AUTHENTICATED_MAX_AGE):
            raise Unauthenticated("Session expired. Re-authenticate.")
        return self.issue_access_token(session.google_user_id)

    def issue_access_token(self, google_user_id: str) -> AccessTokenGrant:
        """Refresh the stored grant for *google_user_id* and persist the new token."""
        record = self._tokens.get(google_user_id)
        if record is None or not record.refresh_token:
            raise Unauthenticated("No stored credentials. Re-authenticate.")

        try:
            grant = self._oauth.refresh_access_token(record.refresh_token)
            self._tokens.upsert(
                TokenRecord(
                    google_user_id=google_user_id,
                    refresh_token=grant.refresh_token or record.refresh_token,
                    access_token=grant.access_token,
                    token_expires_at=expiry_from_now(grant.expires_in, now=self._clock()),
                    profile_email=record.profile_email,
                )
            )
        except RefreshFailed as exc:
            logger.error("Token refresh failed for %s: %s", google_user_id, exc.detail)
            self._audit(
                "Token refresh failed",
                level="ERROR",
                google_user_id=google_user_id,
            )
            raise TokenRefreshFailed() from exc
        except TokenStoreError as exc:
            logger.error("Token refresh failed to persist tokens: %s", exc.message)
            raise TokenRefreshFailed() from exc

        self._audit("Access token issued", google_user_id=google_user_id)
        return AccessTokenGrant(access_token=grant.access_token, expires_in=grant.expires_in)


__all__ = ["AuthOrchestrator", "AuthRedirect", "AccessTokenGrant"]
