"""Configuration utilities for Photo Memory."""
from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import os

from .errors import ConfigMissing


DEFAULT_DOTENV_PATH = Path(".env")
CONFIG_FILE_NAME = "config.json"
CONFIG_PATH_ENV = "PHOTOMEMORY_CONFIG_PATH"

DEFAULT_PHOTOS_SCOPE = (
    "openid email profile "
    "https://www.googleapis.com/auth/photospicker.mediaitems.readonly"
)
DEFAULT_MAX_ITEM_COUNT = 50

# Fields each network-facing entry point cannot run without.
ENTRY_POINT_REQUIREMENTS: dict[str, tuple[str, ...]] = {
    "start": (
        "google_client_id",
        "google_redirect_uri",
        "session_secret",
        "frontend_url",
    ),
    "callback": (
        "google_client_id",
        "google_client_secret",
        "google_redirect_uri",
        "session_secret",
    ),
    "token": (
        "google_client_id",
        "google_client_secret",
        "session_secret",
    ),
}

SECRET_FIELDS = frozenset(
    {"google_client_secret", "session_secret", "supabase_service_role_key", "google_api_key"}
)


def _resolve_max_item_count(value: int) -> int:
    return value if value > 0 else DEFAULT_MAX_ITEM_COUNT


@dataclass(frozen=True)
class PhotoMemoryConfig:
    """Process-wide configuration, loaded once at startup."""

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = ""
    session_secret: str = ""
    frontend_url: str = ""
    google_photos_scope: str = DEFAULT_PHOTOS_SCOPE
    google_api_key: str = ""
    photos_max_item_count: int = DEFAULT_MAX_ITEM_COUNT
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    log_retention_days: int = 30
    logs_directory: str | None = None

    @classmethod
    def from_mapping(
        cls,
        values: Mapping[str, str],
        *,
        defaults: Optional["PhotoMemoryConfig"] = None,
    ) -> "PhotoMemoryConfig":
        """Create a configuration instance from an environment-style mapping."""

        defaults = defaults or cls()

        def get_int(key: str, default: int) -> int:
            raw = values.get(key)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError as exc:
                raise ValueError(f"Invalid integer for {key}: {raw!r}") from exc

        def get_str(key: str, default: str) -> str:
            raw = values.get(key)
            if raw is None:
                return default
            return raw.strip()

        return cls(
            google_client_id=get_str("GOOGLE_CLIENT_ID", defaults.google_client_id),
            google_client_secret=get_str(
                "GOOGLE_CLIENT_SECRET", defaults.google_client_secret
            ),
            google_redirect_uri=get_str(
                "GOOGLE_REDIRECT_URI", defaults.google_redirect_uri
            ),
            session_secret=get_str("SESSION_SECRET", defaults.session_secret),
            frontend_url=get_str("FRONTEND_URL", defaults.frontend_url),
            google_photos_scope=get_str(
                "GOOGLE_PHOTOS_SCOPE", defaults.google_photos_scope
            )
            or DEFAULT_PHOTOS_SCOPE,
            google_api_key=get_str("GOOGLE_API_KEY", defaults.google_api_key),
            photos_max_item_count=_resolve_max_item_count(
                get_int("PHOTOS_MAX_ITEM_COUNT", defaults.photos_max_item_count)
            ),
            supabase_url=get_str("SUPABASE_URL", defaults.supabase_url),
            supabase_service_role_key=get_str(
                "SUPABASE_SERVICE_ROLE_KEY", defaults.supabase_service_role_key
            ),
            log_retention_days=get_int(
                "LOG_RETENTION_DAYS", defaults.log_retention_days
            ),
            logs_directory=values.get("LOGS_DIRECTORY", defaults.logs_directory)
            or None,
        )

    @classmethod
    def from_json(
        cls, values: Mapping[str, Any], *, defaults: Optional["PhotoMemoryConfig"] = None
    ) -> "PhotoMemoryConfig":
        """Create a configuration instance from structured data."""

        defaults = defaults or cls()

        def get_str(key: str, default: str) -> str:
            value = values.get(key, default)
            if value is None:
                return default
            return str(value)

        def get_int(key: str, default: int) -> int:
            value = values.get(key, default)
            if value is None or value == "":
                return default
            if isinstance(value, (int, float)):
                return int(value)
            if isinstance(value, str):
                try:
                    return int(value)
                except ValueError as exc:
                    raise ValueError(f"Invalid integer for {key}: {value!r}") from exc
            raise ValueError(f"Invalid integer for {key}: {value!r}")

        return cls(
            google_client_id=get_str("google_client_id", defaults.google_client_id),
            google_client_secret=get_str(
                "google_client_secret", defaults.google_client_secret
            ),
            google_redirect_uri=get_str(
                "google_redirect_uri", defaults.google_redirect_uri
            ),
            session_secret=get_str("session_secret", defaults.session_secret),
            frontend_url=get_str("frontend_url", defaults.frontend_url),
            google_photos_scope=get_str(
                "google_photos_scope", defaults.google_photos_scope
            )
            or DEFAULT_PHOTOS_SCOPE,
            google_api_key=get_str("google_api_key", defaults.google_api_key),
            photos_max_item_count=_resolve_max_item_count(
                get_int("photos_max_item_count", defaults.photos_max_item_count)
            ),
            supabase_url=get_str("supabase_url", defaults.supabase_url),
            supabase_service_role_key=get_str(
                "supabase_service_role_key", defaults.supabase_service_role_key
            ),
            log_retention_days=get_int(
                "log_retention_days", defaults.log_retention_days
            ),
            logs_directory=values.get("logs_directory", defaults.logs_directory)
            or None,
        )

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)

    def redacted(self) -> Dict[str, Any]:
        """Return the configuration with secrets replaced by presence flags."""

        payload = self.to_json()
        for name in SECRET_FIELDS:
            payload[name] = bool(payload.get(name))
        return payload

    def missing(self, *names: str) -> list[str]:
        known = {item.name for item in fields(self)}
        absent: list[str] = []
        for name in names:
            if name not in known:
                raise KeyError(f"Unknown configuration field: {name}")
            if not getattr(self, name):
                absent.append(name)
        return absent

    def missing_for(self, entry_point: str) -> list[str]:
        return self.missing(*ENTRY_POINT_REQUIREMENTS[entry_point])

    def require(self, *names: str) -> None:
        """Raise :class:`ConfigMissing` if any of *names* is unset."""

        absent = self.missing(*names)
        if absent:
            raise ConfigMissing(absent)

    def require_for(self, entry_point: str) -> None:
        self.require(*ENTRY_POINT_REQUIREMENTS[entry_point])

    @property
    def uses_rest_token_store(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


def _parse_dotenv(path: Path) -> Dict[str, str]:
    """Parse a minimal .env file into a dictionary."""

    data: Dict[str, str] = {}
    if not path.exists():
        return data

    for line in path.read_text().splitlines():
        striped = line.strip()
        if not striped or striped.startswith("#"):
            continue
        if "=" not in striped:
            continue
        key, value = striped.split("=", 1)
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


class ConfigStore:
    """Persist Photo Memory configuration to disk."""

    def __init__(self, path: Optional[Path] = None) -> None:
        env_path = os.environ.get(CONFIG_PATH_ENV)
        if path is None and env_path:
            path = Path(env_path)
        if path is None:
            from .state import STATE_DIR_NAME  # late import to avoid cycle

            base_dir = Path.home() / STATE_DIR_NAME
            path = base_dir / CONFIG_FILE_NAME
        self.path = path

    def load(self) -> PhotoMemoryConfig:
        if not self.path.exists():
            config = PhotoMemoryConfig()
            self.save(config)
            return config

        with self.path.open("r", encoding="utf-8") as fh:
            data = json_load(fh)
        if not isinstance(data, Mapping):
            raise ValueError("Invalid configuration file contents")
        return PhotoMemoryConfig.from_json(data)

    def save(self, config: PhotoMemoryConfig | Mapping[str, Any]) -> PhotoMemoryConfig:
        if isinstance(config, Mapping):
            instance = PhotoMemoryConfig.from_json(config)
        else:
            instance = config
        payload = instance.to_json()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json_dump(payload, fh)
        os.replace(tmp_path, self.path)
        os.chmod(self.path, 0o600)
        return instance


def json_load(handle) -> Any:
    import json

    return json.load(handle)


def json_dump(payload: Mapping[str, Any], handle) -> None:
    import json

    json.dump(payload, handle, indent=2, sort_keys=True)
    handle.write("\n")


def load_config(
    *,
    dotenv_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    store: Optional[ConfigStore] = None,
) -> PhotoMemoryConfig:
    """Load configuration from the on-disk store with optional overrides."""

    config_store = store or ConfigStore()
    config = config_store.load()

    overrides: Dict[str, str] = {}
    if dotenv_path is not None:
        overrides.update(_parse_dotenv(dotenv_path))
    elif DEFAULT_DOTENV_PATH.exists():
        overrides.update(_parse_dotenv(DEFAULT_DOTENV_PATH))

    env_mapping = os.environ if environ is None else environ
    overrides.update(
        {k: v for k, v in env_mapping.items() if k.upper() in ENV_KEYS}
    )

    if overrides:
        config = PhotoMemoryConfig.from_mapping(overrides, defaults=config)
    return config


ENV_KEYS = {
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REDIRECT_URI",
    "SESSION_SECRET",
    "FRONTEND_URL",
    "GOOGLE_PHOTOS_SCOPE",
    "GOOGLE_API_KEY",
    "PHOTOS_MAX_ITEM_COUNT",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "LOG_RETENTION_DAYS",
    "LOGS_DIRECTORY",
}


__all__ = ["PhotoMemoryConfig", "ConfigStore", "load_config", "ENTRY_POINT_REQUIREMENTS"]
