"""Google Photos Picker session polling.

The picker runs in a separate browser window and never notifies this process.
The controller creates a session, lets the caller open it, then polls the
session until ``mediaItemsSet`` flips, honouring the poll interval and timeout
the server suggests, and finally pages through the picked items.
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
import webbrowser
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol

from ..errors import PickerApiError, SelectionTimeout

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_TIMEOUT_MS = 120_000
DEFAULT_MAX_ITEM_COUNT = 50
PROGRESS_MESSAGE = "Waiting for Google Photos selection..."
AUTOCLOSE_SUFFIX = "/autoclose"

_DURATION_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)s$")


def parse_duration(value: object) -> float | None:
    """Convert a protobuf duration string such as ``"1.5s"`` into seconds."""
    if not isinstance(value, str):
        return None
    match = _DURATION_RE.match(value.strip())
    if not match:
        return None
    return float(match.group(1))


@dataclass(frozen=True)
class PollingConfig:
    poll_interval: float | None = None
    timeout_in: float | None = None


@dataclass(frozen=True)
class PickerSession:
    id: str
    picker_uri: str
    media_items_set: bool = False
    polling_config: PollingConfig = field(default_factory=PollingConfig)

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "PickerSession":
        polling = payload.get("pollingConfig")
        polling = polling if isinstance(polling, Mapping) else {}
        return cls(
            id=str(payload.get("id") or ""),
            picker_uri=str(payload.get("pickerUri") or ""),
            media_items_set=bool(payload.get("mediaItemsSet")),
            polling_config=PollingConfig(
                poll_interval=parse_duration(polling.get("pollInterval")),
                timeout_in=parse_duration(polling.get("timeoutIn")),
            ),
        )


@dataclass(frozen=True)
class MediaItem:
    id: str
    base_url: str
    filename: str
    mime_type: str
    type: str | None = None
    width: str | None = None
    height: str | None = None
    create_time: str | None = None

    def to_json(self) -> dict[str, Any]:
        payload = {
            "id": self.id,
            "baseUrl": self.base_url,
            "filename": self.filename,
            "mimeType": self.mime_type,
            "type": self.type,
            "width": self.width,
            "height": self.height,
            "createTime": self.create_time,
        }
        return {key: value for key, value in payload.items() if value is not None}


def _dimension(value: object) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float, str)):
        return str(value)
    return None


def normalize_media_item(raw: object) -> MediaItem | None:
    """Flatten a picked item; entries without an id or base URL are dropped."""
    if not isinstance(raw, Mapping):
        return None
    media_file = raw.get("mediaFile")
    media_file = media_file if isinstance(media_file, Mapping) else {}
    item_id = raw.get("id")
    base_url = media_file.get("baseUrl")
    if not isinstance(item_id, str) or not item_id:
        return None
    if not isinstance(base_url, str) or not base_url:
        return None
    metadata = media_file.get("mediaFileMetadata")
    metadata = metadata if isinstance(metadata, Mapping) else {}
    item_type = raw.get("type")
    create_time = raw.get("createTime")
    return MediaItem(
        id=item_id,
        base_url=base_url,
        filename=str(media_file.get("filename") or "Google Photos item"),
        mime_type=str(media_file.get("mimeType") or "application/octet-stream"),
        type=item_type if isinstance(item_type, str) else None,
        width=_dimension(metadata.get("width")),
        height=_dimension(metadata.get("height")),
        create_time=create_time if isinstance(create_time, str) else None,
    )


class PickerClient(Protocol):  # pragma: no cover - protocol definition
    def create_session(self, max_item_count: int) -> Mapping[str, Any]: ...

    def get_session(self, session_id: str) -> Mapping[str, Any]: ...

    def list_media_items(
        self, session_id: str, page_token: str | None = None, page_size: int = 100
    ) -> Mapping[str, Any]: ...

    def delete_session(self, session_id: str) -> None: ...


ProgressCallback = Callable[[str], None]


class PickerSessionController:
    """Drive a picker session from creation to the final list of media items."""

    def __init__(
        self,
        client_factory: Callable[[str], PickerClient],
        *,
        max_item_count: int = DEFAULT_MAX_ITEM_COUNT,
        page_size: int = 100,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client_factory = client_factory
        self._max_item_count = max_item_count
        self._page_size = page_size
        self._sleep = sleep
        self._clock = clock

    async def create_session(self, access_token: str) -> PickerSession:
        client = self._client_factory(access_token)
        payload = await asyncio.to_thread(client.create_session, self._max_item_count)
        session = PickerSession.from_json(payload)
        if not session.id or not session.picker_uri:
            raise PickerApiError("Picker session response missing id or pickerUri.")
        logger.info("Created picker session %s", session.id)
        return session

    @staticmethod
    def picker_url(session: PickerSession) -> str:
        uri = session.picker_uri
        if uri.endswith(AUTOCLOSE_SUFFIX):
            return uri
        return uri.rstrip("/") + AUTOCLOSE_SUFFIX

    def open_session(
        self,
        session: PickerSession,
        opener: Callable[..., Any] = webbrowser.open,
    ) -> str:
        url = self.picker_url(session)
        opener(url, new=1)
        return url

    async def wait_for_selection(
        self,
        access_token: str,
        session_id: str,
        *,
        on_progress: ProgressCallback | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> list[MediaItem]:
        client = self._client_factory(access_token)
        deadline = self._clock() + timeout_ms / 1000
        polls = 0

        while self._clock() < deadline:
            if on_progress is not None:
                on_progress(PROGRESS_MESSAGE)
            payload = await asyncio.to_thread(client.get_session, session_id)
            polls += 1
            session = PickerSession.from_json(payload)
            if session.media_items_set:
                logger.info("Picker session %s completed after %d polls", session_id, polls)
                return await self._collect_items(client, session_id)

            interval = session.polling_config.poll_interval
            if interval is None:
                interval = DEFAULT_POLL_INTERVAL
            # a server-suggested timeout replaces the caller's budget
            if session.polling_config.timeout_in:
                deadline = self._clock() + session.polling_config.timeout_in
            await self._sleep(interval)

        logger.warning("Picker session %s timed out after %d polls", session_id, polls)
        raise SelectionTimeout()

    async def list_items(self, access_token: str, session_id: str) -> list[MediaItem]:
        return await self._collect_items(self._client_factory(access_token), session_id)

    async def close_session(self, access_token: str, session_id: str) -> bool:
        """Delete the picker session; failures are logged since the items are already read."""
        client = self._client_factory(access_token)
        try:
            await asyncio.to_thread(client.delete_session, session_id)
        except PickerApiError as exc:
            logger.warning("Failed to delete picker session %s: %s", session_id, exc)
            return False
        return True

    async def _collect_items(self, client: PickerClient, session_id: str) -> list[MediaItem]:
        items: list[MediaItem] = []
        seen: set[str] = set()
        dropped = 0
        page_token: str | None = None
        while True:
            response = await asyncio.to_thread(
                client.list_media_items, session_id, page_token, self._page_size
            )
            raw_items = response.get("mediaItems") or []
            for raw in raw_items:
                item = normalize_media_item(raw)
                if item is None:
                    dropped += 1
                    continue
                if item.id in seen:
                    continue
                seen.add(item.id)
                items.append(item)
            next_token = response.get("nextPageToken")
            if not next_token or next_token == page_token:
                break
            page_token = str(next_token)
        if dropped:
            logger.warning("Dropped %d malformed media items from session %s", dropped, session_id)
        return items


def media_items_to_json(items: list[MediaItem]) -> list[dict[str, Any]]:
    return [item.to_json() for item in items]


__all__ = [
    "PollingConfig",
    "PickerSession",
    "MediaItem",
    "PickerSessionController",
    "parse_duration",
    "normalize_media_item",
    "media_items_to_json",
]
