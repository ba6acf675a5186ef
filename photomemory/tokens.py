"""Server-side custody of Google refresh tokens, one record per identity."""
from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Mapping, Protocol
from urllib.parse import quote
import logging

import requests

from .config import PhotoMemoryConfig
from .errors import TokenStoreError
from .state import PhotoMemoryStateStore

logger = logging.getLogger(__name__)

TOKENS_SECTION = "google"
REST_TABLE = "photos_tokens"


@dataclass(frozen=True)
class TokenRecord:
    google_user_id: str
    refresh_token: str | None = None
    access_token: str | None = None
    token_expires_at: str | None = None
    profile_email: str | None = None

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "TokenRecord":
        user_id = payload.get("google_user_id")
        if not isinstance(user_id, str) or not user_id:
            raise ValueError("Token record missing google_user_id")

        def opt(key: str) -> str | None:
            value = payload.get(key)
            return str(value) if value not in (None, "") else None

        return cls(
            google_user_id=user_id,
            refresh_token=opt("refresh_token"),
            access_token=opt("access_token"),
            token_expires_at=opt("token_expires_at"),
            profile_email=opt("profile_email"),
        )

    def to_json(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    def merged_over(self, existing: "TokenRecord | None") -> "TokenRecord":
        """Return this record with unset fields filled from *existing*."""
        if existing is None:
            return self
        updates = {
            key: value
            for key, value in asdict(existing).items()
            if getattr(self, key) is None and value is not None
        }
        return replace(self, **updates) if updates else self


def expiry_from_now(expires_in: float, *, now: datetime | None = None) -> str:
    base = now or datetime.now(timezone.utc)
    return (base + timedelta(seconds=float(expires_in))).isoformat()


class TokenStore(Protocol):  # pragma: no cover - protocol definition
    def upsert(self, record: TokenRecord) -> TokenRecord: ...

    def get(self, google_user_id: str) -> TokenRecord | None: ...


class StateTokenStore:
    """Token records kept in ``tokens.json`` inside the state directory."""

    def __init__(self, state_store: PhotoMemoryStateStore) -> None:
        self._state = state_store
        self._lock = Lock()

    def _section(self, tokens: Mapping[str, Any]) -> dict[str, Any]:
        section = tokens.get(TOKENS_SECTION)
        return dict(section) if isinstance(section, Mapping) else {}

    def get(self, google_user_id: str) -> TokenRecord | None:
        try:
            section = self._section(self._state.load_tokens())
            payload = section.get(google_user_id)
            if not isinstance(payload, Mapping):
                return None
            return TokenRecord.from_json({**payload, "google_user_id": google_user_id})
        except (OSError, ValueError) as exc:
            raise TokenStoreError(f"Failed to fetch token record: {exc}") from exc

    def upsert(self, record: TokenRecord) -> TokenRecord:
        with self._lock:
            try:
                tokens = self._state.load_tokens()
                section = self._section(tokens)
                current = section.get(record.google_user_id)
                existing = (
                    TokenRecord.from_json({**current, "google_user_id": record.google_user_id})
                    if isinstance(current, Mapping)
                    else None
                )
                merged = record.merged_over(existing)
                section[record.google_user_id] = merged.to_json()
                tokens[TOKENS_SECTION] = section
                self._state.save_tokens(tokens)
            except (OSError, ValueError) as exc:
                raise TokenStoreError(f"Failed to upsert token record: {exc}") from exc
        return merged


class RestTokenStore:
    """Token records in a PostgREST table (Supabase ``photos_tokens``)."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        *,
        table: str = REST_TABLE,
        session: requests.Session | None = None,
        timeout: float = 20,
    ) -> None:
        if not base_url or not service_role_key:
            raise ValueError("base_url and service_role_key are required")
        self._table_url = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self._key = service_role_key
        self._session = session or requests.Session()
        self._timeout = timeout

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
        }
        headers.update(extra)
        return headers

    def get(self, google_user_id: str) -> TokenRecord | None:
        url = f"{self._table_url}?google_user_id=eq.{quote(google_user_id, safe='')}&limit=1"
        try:
            response = self._session.get(url, headers=self._headers(), timeout=self._timeout)
        except requests.RequestException as exc:
            raise TokenStoreError(f"Failed to fetch token record: {exc}") from exc
        if not response.ok:
            raise TokenStoreError(f"Failed to fetch token record: {response.text}")
        try:
            rows = response.json()
        except ValueError as exc:
            raise TokenStoreError(f"Failed to fetch token record: {exc}") from exc
        if not isinstance(rows, list) or not rows:
            return None
        return TokenRecord.from_json(rows[0])

    def upsert(self, record: TokenRecord) -> TokenRecord:
        # merge-duplicates only touches the columns present in the body, so
        # omitted fields keep their stored value.
        try:
            response = self._session.post(
                self._table_url,
                json=record.to_json(),
                headers=self._headers(Prefer="resolution=merge-duplicates"),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TokenStoreError(f"Failed to upsert token record: {exc}") from exc
        if not response.ok:
            raise TokenStoreError(f"Failed to upsert token record: {response.text}")
        return record


def create_token_store(
    config: PhotoMemoryConfig, state_store: PhotoMemoryStateStore
) -> TokenStore:
    if config.uses_rest_token_store:
        logger.info("Using REST token store at %s", config.supabase_url)
        return RestTokenStore(config.supabase_url, config.supabase_service_role_key)
    return StateTokenStore(state_store)


__all__ = [
    "TokenRecord",
    "TokenStore",
    "StateTokenStore",
    "RestTokenStore",
    "create_token_store",
    "expiry_from_now",
]
