"""Structured audit log for auth and picker events.

Entries are JSON lines, one file per category, pruned by retention. Values
whose key names a credential are masked before they reach disk.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Mapping
import json
import logging

logger = logging.getLogger(__name__)

AUTH_CATEGORY = "auth"
PICKER_CATEGORY = "picker"

_SENSITIVE_MARKERS = ("token", "secret", "verifier", "code", "cookie")
_MASK = "[REDACTED]"
_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def redact(data: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        lowered = str(key).lower()
        if any(marker in lowered for marker in _SENSITIVE_MARKERS):
            cleaned[key] = _MASK
        elif isinstance(value, Mapping):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


@dataclass(frozen=True)
class LogRecord:
    """Structured representation of a persisted log entry."""

    timestamp: datetime
    level: str
    message: str
    data: Mapping[str, Any]

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "LogRecord":
        ts_raw = payload.get("timestamp")
        if not isinstance(ts_raw, str):
            raise ValueError("Log record missing timestamp")
        try:
            timestamp = datetime.fromisoformat(
                ts_raw.replace("Z", "+00:00") if ts_raw.endswith("Z") else ts_raw
            ).astimezone(timezone.utc)
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp in log record: {ts_raw!r}") from exc
        level = str(payload.get("level", "INFO"))
        message = str(payload.get("message", ""))
        data = payload.get("data") if isinstance(payload.get("data"), Mapping) else {}
        return cls(timestamp=timestamp, level=level.upper(), message=message, data=data)

    def to_json(self) -> Mapping[str, Any]:
        return {
            "timestamp": self.timestamp.astimezone(timezone.utc).isoformat(),
            "level": self.level,
            "message": self.message,
            "data": dict(self.data),
        }


class PhotoMemoryLogStore:
    """Persist and retrieve audit entries with retention controls."""

    def __init__(self, base_dir: Path | str, *, retention_days: int | None = None) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.retention_days = retention_days
        self._lock = Lock()

    def append(
        self,
        category: str,
        message: str,
        *,
        level: str = "INFO",
        data: Mapping[str, Any] | None = None,
    ) -> LogRecord:
        record = LogRecord(
            timestamp=datetime.now(timezone.utc),
            level=level.upper(),
            message=message,
            data=redact(data or {}),
        )
        logger.log(
            _LEVELS.get(record.level, logging.INFO),
            "[%s] %s",
            category,
            message,
        )
        path = self._path_for_category(category)
        line = json.dumps(record.to_json(), sort_keys=True, default=str)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
            if self.retention_days is not None:
                self._prune_file(path, self.retention_days)
        return record

    def tail(
        self,
        category: str,
        *,
        limit: int = 200,
        since: datetime | None = None,
    ) -> list[LogRecord]:
        path = self._path_for_category(category)
        if not path.exists():
            return []
        lines = path.read_text(encoding="utf-8").splitlines()[-max(limit, 0) :]
        records: list[LogRecord] = []
        for line in lines:
            if not line.strip():
                continue
            try:
                record = LogRecord.from_json(json.loads(line))
            except ValueError:
                continue
            if since and record.timestamp < since:
                continue
            records.append(record)
        return records

    def categories(self) -> list[str]:
        return sorted({path.stem for path in self.base_dir.glob("*.log")})

    def prune(self, retention_days: int | None = None) -> None:
        days = self.retention_days if retention_days is None else retention_days
        if days is None:
            return
        cutoff = datetime.now(timezone.utc) - timedelta(days=max(days, 0))
        with self._lock:
            for path in self.base_dir.glob("*.log"):
                self._prune_file(path, days, cutoff=cutoff)

    def _path_for_category(self, category: str) -> Path:
        safe = category.strip().lower() or "default"
        return self.base_dir / f"{safe}.log"

    def _prune_file(
        self,
        path: Path,
        retention_days: int,
        *,
        cutoff: datetime | None = None,
    ) -> None:
        if retention_days < 0:
            return
        if retention_days == 0:
            path.unlink(missing_ok=True)
            return
        if not path.exists():
            return
        cutoff_dt = cutoff or (
            datetime.now(timezone.utc) - timedelta(days=retention_days)
        )
        kept: list[str] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                record = LogRecord.from_json(json.loads(line))
            except ValueError:
                continue
            if record.timestamp >= cutoff_dt:
                kept.append(json.dumps(record.to_json(), sort_keys=True, default=str))
        with path.open("w", encoding="utf-8") as handle:
            handle.write("\n".join(kept))
            if kept:
                handle.write("\n")


def logs_directory(logs_dir: str | None, state_dir: Path) -> Path:
    """Determine the logs directory from config or the state directory default."""
    if logs_dir:
        return Path(logs_dir).expanduser()
    return state_dir / "logs"


__all__ = [
    "AUTH_CATEGORY",
    "PICKER_CATEGORY",
    "LogRecord",
    "PhotoMemoryLogStore",
    "logs_directory",
    "redact",
]
