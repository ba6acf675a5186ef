"""Local state directory manager."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping
import json
import logging
import os

logger = logging.getLogger(__name__)

STATE_DIR_NAME = ".photomemory"
TOKENS_FILE = "tokens.json"
MEDIA_FILE = "media_items.json"


def _ensure_mode(path: Path, mode: int) -> None:
    """Ensure the file at *path* has the provided permission bits."""

    if path.exists():
        os.chmod(path, mode)


@dataclass
class PhotoMemoryStateStore:
    """Manage the on-disk token records and the cached media selection."""

    base_dir: Path = field(default_factory=lambda: Path.home() / STATE_DIR_NAME)

    def __post_init__(self) -> None:
        self.ensure_directory()

    def ensure_directory(self) -> Path:
        """Ensure the state directory exists with the proper permissions."""

        self.base_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.base_dir, 0o700)
        return self.base_dir

    @property
    def tokens_path(self) -> Path:
        return self.base_dir / TOKENS_FILE

    @property
    def media_path(self) -> Path:
        return self.base_dir / MEDIA_FILE

    # ---- tokens ----
    def load_tokens(self) -> Dict[str, Any]:
        if not self.tokens_path.exists():
            return {}
        with self.tokens_path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, Mapping):
            raise ValueError(f"Invalid token file contents: {self.tokens_path}")
        return dict(data)

    def save_tokens(self, tokens: Mapping[str, Any]) -> None:
        self._write_json(self.tokens_path, tokens)

    # ---- media selection cache ----
    def save_media_items(self, items: Iterable[Mapping[str, Any]]) -> int:
        payload = [dict(item) for item in items]
        self._write_json(self.media_path, payload)
        return len(payload)

    def load_media_items(self) -> list[dict[str, Any]]:
        if not self.media_path.exists():
            return []
        try:
            data = json.loads(self.media_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to parse cached media items: %s", exc)
            return []
        if not isinstance(data, list):
            return []
        return [
            dict(item)
            for item in data
            if isinstance(item, Mapping)
            and isinstance(item.get("id"), str)
            and isinstance(item.get("baseUrl"), str)
        ]

    def clear_media_items(self) -> None:
        self.media_path.unlink(missing_ok=True)

    def _write_json(self, path: Path, data: Any) -> None:
        tmp_path = path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
            fh.write("\n")
        os.replace(tmp_path, path)
        _ensure_mode(path, 0o600)


__all__ = ["PhotoMemoryStateStore", "STATE_DIR_NAME"]
