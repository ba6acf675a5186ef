"""Google OAuth and Photos Picker API clients."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlencode
import logging

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials

from ..errors import ExchangeFailed, IdentityFetchFailed, PickerApiError, RefreshFailed

logger = logging.getLogger(__name__)

AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
PICKER_API_BASE = "https://photospicker.googleapis.com/v1"
DEFAULT_TIMEOUT = 20
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    scope: str = ""

    @classmethod
    def from_response(cls, payload: Mapping[str, Any]) -> "TokenGrant":
        if not isinstance(payload, Mapping):
            raise ValueError("Token response is not a JSON object")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response missing access_token")
        expires_in = payload.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_EXPIRES_IN
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid expires_in in token response: {expires_in!r}") from exc
        refresh_token = payload.get("refresh_token")
        return cls(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else None,
            scope=str(payload.get("scope") or ""),
        )


@dataclass(frozen=True)
class Identity:
    subject_id: str
    email: str | None = None


def build_authorization_url(
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: str,
) -> str:
    """Consent URL forcing offline access so every grant carries a refresh token."""
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "access_type": "offline",
        "include_granted_scopes": "true",
        "scope": scope,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "prompt": "consent",
    }
    return f"{AUTHORIZATION_URL}?{urlencode(params)}"


class GoogleOAuthClient:
    """Authorization-code and refresh-token grants against Google's token endpoint."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._session = session or requests.Session()
        self._timeout = timeout

    def _token_request(self, data: Mapping[str, str]) -> requests.Response:
        return self._session.post(
            TOKEN_URL,
            data={
                **data,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
            headers={"content-type": "application/x-www-form-urlencoded"},
            timeout=self._timeout,
        )

    def exchange_code(self, code: str, code_verifier: str, redirect_uri: str) -> TokenGrant:
        try:
            response = self._token_request(
                {
                    "code": code,
                    "code_verifier": code_verifier,
                    "redirect_uri": redirect_uri,
                    "grant_type": "authorization_code",
                }
            )
        except requests.RequestException as exc:
            raise ExchangeFailed(str(exc)) from exc
        if not response.ok:
            raise ExchangeFailed(response.text)
        try:
            return TokenGrant.from_response(response.json())
        except ValueError as exc:
            raise ExchangeFailed(str(exc)) from exc

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        try:
            response = self._token_request(
                {"refresh_token": refresh_token, "grant_type": "refresh_token"}
            )
        except requests.RequestException as exc:
            raise RefreshFailed(str(exc)) from exc
        if not response.ok:
            raise RefreshFailed(response.text)
        try:
            grant = TokenGrant.from_response(response.json())
        except ValueError as exc:
            raise RefreshFailed(str(exc)) from exc
        logger.info("Refreshed Google access token")
        return grant

    def fetch_identity(self, access_token: str) -> Identity:
        try:
            response = self._session.get(
                USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise IdentityFetchFailed(str(exc)) from exc
        if not response.ok:
            raise IdentityFetchFailed(response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise IdentityFetchFailed(str(exc)) from exc
        subject = payload.get("sub") if isinstance(payload, Mapping) else None
        if not isinstance(subject, str) or not subject:
            raise IdentityFetchFailed("User info response missing sub")
        email = payload.get("email")
        return Identity(subject_id=subject, email=email if isinstance(email, str) else None)


class PhotosPickerClient:
    """Thin client for the Google Photos Picker REST API."""

    def __init__(
        self,
        access_token: str,
        *,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._api_key = api_key or None
        self._timeout = timeout
        self._session = session or AuthorizedSession(Credentials(token=access_token))

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Mapping[str, Any] | None = None,
    ) -> Mapping[str, Any]:
        query = {key: value for key, value in (params or {}).items() if value is not None}
        if self._api_key:
            query["key"] = self._api_key
        try:
            response = self._session.request(
                method,
                f"{PICKER_API_BASE}{path}",
                params=query or None,
                json=json,
                timeout=self._timeout,
            )
        except RefreshError as exc:
            # the bare access token cannot be refreshed client-side
            raise PickerApiError(str(exc), status=401) from exc
        except requests.RequestException as exc:
            raise PickerApiError(str(exc)) from exc
        if not response.ok:
            raise PickerApiError(response.text, status=response.status_code)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise PickerApiError(str(exc), status=response.status_code) from exc
        if not isinstance(payload, Mapping):
            raise PickerApiError("Unexpected response body", status=response.status_code)
        return payload

    def create_session(self, max_item_count: int) -> Mapping[str, Any]:
        return self._request(
            "POST",
            "/sessions",
            json={"pickingConfig": {"maxItemCount": max_item_count}},
        )

    def get_session(self, session_id: str) -> Mapping[str, Any]:
        return self._request("GET", f"/sessions/{session_id}")

    def list_media_items(
        self, session_id: str, page_token: str | None = None, page_size: int = 100
    ) -> Mapping[str, Any]:
        return self._request(
            "GET",
            "/mediaItems",
            params={"sessionId": session_id, "pageSize": page_size, "pageToken": page_token},
        )

    def delete_session(self, session_id: str) -> None:
        self._request("DELETE", f"/sessions/{session_id}")


__all__ = [
    "AUTHORIZATION_URL",
    "TOKEN_URL",
    "USERINFO_URL",
    "PICKER_API_BASE",
    "TokenGrant",
    "Identity",
    "GoogleOAuthClient",
    "PhotosPickerClient",
    "build_authorization_url",
]
