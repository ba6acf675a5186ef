"""Command line interface for Photo Memory."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import webbrowser
from datetime import datetime, timezone
from typing import Any, Callable

import uvicorn

from .clients.google import PhotosPickerClient
from .config import ENTRY_POINT_REQUIREMENTS, PhotoMemoryConfig, load_config
from .errors import PhotoMemoryError, SelectionTimeout
from .logs import AUTH_CATEGORY, PICKER_CATEGORY, PhotoMemoryLogStore, logs_directory
from .pollers.picker import (
    DEFAULT_TIMEOUT_MS,
    MediaItem,
    PickerSessionController,
    media_items_to_json,
)
from .state import PhotoMemoryStateStore
from .tokens import create_token_store
from .web.app import create_app
from .web.auth import AuthOrchestrator

DEFAULT_INDENT = 2
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="photomemory")
    sub = parser.add_subparsers(dest="command", required=True)

    status_parser = sub.add_parser(
        "status", help="Display configuration and state directory information."
    )
    status_parser.set_defaults(func=cmd_status)

    serve = sub.add_parser("serve", help="Run the OAuth HTTP endpoints")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.set_defaults(func=cmd_serve)

    token = sub.add_parser(
        "token", help="Refresh and print an access token for a stored identity"
    )
    token.add_argument("google_user_id", help="Google account subject id")
    token.set_defaults(func=cmd_token)

    pick = sub.add_parser("pick", help="Run a Google Photos Picker session")
    pick.add_argument("google_user_id", help="Google account subject id")
    pick.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_MS / 1000,
        help="Seconds to wait for the selection (default: 120)",
    )
    pick.add_argument(
        "--no-browser",
        action="store_true",
        help="Print the picker URL instead of opening a browser",
    )
    pick.set_defaults(func=cmd_pick)

    media = sub.add_parser("media", help="Inspect the cached media selection")
    media_sub = media.add_subparsers(dest="media_command", required=True)
    media_list = media_sub.add_parser("list", help="Print the cached media items")
    media_list.set_defaults(func=cmd_media_list)
    media_clear = media_sub.add_parser("clear", help="Remove the cached media items")
    media_clear.set_defaults(func=cmd_media_clear)

    logs = sub.add_parser("logs", help="Audit log utilities")
    logs_sub = logs.add_subparsers(dest="logs_command", required=True)
    tail = logs_sub.add_parser("tail", help="Print the most recent log entries")
    tail.add_argument(
        "--category",
        default=AUTH_CATEGORY,
        choices=(AUTH_CATEGORY, PICKER_CATEGORY),
    )
    tail.add_argument("--limit", type=int, default=20)
    tail.set_defaults(func=cmd_logs_tail)

    return parser


def _bootstrap() -> tuple[PhotoMemoryConfig, PhotoMemoryStateStore]:
    config = load_config()
    state = PhotoMemoryStateStore()
    state.ensure_directory()
    return config, state


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=DEFAULT_INDENT, sort_keys=True))


def create_log_store(
    config: PhotoMemoryConfig, state: PhotoMemoryStateStore
) -> PhotoMemoryLogStore:
    return PhotoMemoryLogStore(
        logs_directory(config.logs_directory, state.base_dir),
        retention_days=config.log_retention_days,
    )


def create_orchestrator(
    config: PhotoMemoryConfig,
    state: PhotoMemoryStateStore,
    log_store: PhotoMemoryLogStore | None = None,
) -> AuthOrchestrator:
    config.require("google_client_id", "google_client_secret")
    return AuthOrchestrator(config, create_token_store(config, state), log_store=log_store)


def create_picker_controller(config: PhotoMemoryConfig) -> PickerSessionController:
    def factory(access_token: str) -> PhotosPickerClient:
        return PhotosPickerClient(access_token, api_key=config.google_api_key or None)

    return PickerSessionController(factory, max_item_count=config.photos_max_item_count)


def cmd_status(_: argparse.Namespace) -> int:
    config, state = _bootstrap()
    missing = {name: config.missing_for(name) for name in ENTRY_POINT_REQUIREMENTS}
    payload: dict[str, Any] = {
        "config": config.redacted(),
        "state_directory": str(state.base_dir),
        "tokens_path_exists": state.tokens_path.exists(),
        "media_path_exists": state.media_path.exists(),
        "token_store": "rest" if config.uses_rest_token_store else "file",
        "missing": {name: fields for name, fields in missing.items() if fields},
    }
    _print(payload)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    config, state = _bootstrap()
    app = create_app(config, state_store=state)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def cmd_token(args: argparse.Namespace) -> int:
    config, state = _bootstrap()
    orchestrator = create_orchestrator(config, state, create_log_store(config, state))
    grant = orchestrator.issue_access_token(args.google_user_id)
    _print(
        {
            "google_user_id": args.google_user_id,
            "access_token": grant.access_token,
            "expires_in": grant.expires_in,
        }
    )
    return 0


def _stderr_progress() -> Callable[[str], None]:
    shown: set[str] = set()

    def report(message: str) -> None:
        if message not in shown:
            shown.add(message)
            print(message, file=sys.stderr)

    return report


async def _run_picker(
    controller: PickerSessionController,
    access_token: str,
    *,
    open_browser: bool,
    timeout_ms: int,
) -> tuple[str, list[MediaItem]]:
    session = await controller.create_session(access_token)
    if open_browser:
        url = controller.open_session(session, webbrowser.open)
    else:
        url = controller.picker_url(session)
    print(f"Open {url} to choose photos.", file=sys.stderr)
    try:
        items = await controller.wait_for_selection(
            access_token,
            session.id,
            on_progress=_stderr_progress(),
            timeout_ms=timeout_ms,
        )
    finally:
        await controller.close_session(access_token, session.id)
    return session.id, items


def cmd_pick(args: argparse.Namespace) -> int:
    config, state = _bootstrap()
    log_store = create_log_store(config, state)
    orchestrator = create_orchestrator(config, state, log_store)
    grant = orchestrator.issue_access_token(args.google_user_id)
    controller = create_picker_controller(config)

    try:
        session_id, items = asyncio.run(
            _run_picker(
                controller,
                grant.access_token,
                open_browser=not args.no_browser,
                timeout_ms=int(args.timeout * 1000),
            )
        )
    except SelectionTimeout:
        log_store.append(
            PICKER_CATEGORY,
            "Picker selection timed out",
            level="WARNING",
            data={"google_user_id": args.google_user_id},
        )
        raise
    except KeyboardInterrupt:
        log_store.append(
            PICKER_CATEGORY,
            "Picker selection cancelled",
            level="WARNING",
            data={"google_user_id": args.google_user_id},
        )
        print("Cancelled.", file=sys.stderr)
        return 130

    saved = state.save_media_items(media_items_to_json(items))
    log_store.append(
        PICKER_CATEGORY,
        "Picker selection saved",
        data={"google_user_id": args.google_user_id, "session_id": session_id, "count": saved},
    )
    _print(
        {
            "session_id": session_id,
            "count": saved,
            "media_path": str(state.media_path),
            "picked_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    return 0


def cmd_media_list(_: argparse.Namespace) -> int:
    _, state = _bootstrap()
    items = state.load_media_items()
    _print({"count": len(items), "items": items})
    return 0


def cmd_media_clear(_: argparse.Namespace) -> int:
    _, state = _bootstrap()
    existed = state.media_path.exists()
    state.clear_media_items()
    _print({"cleared": existed})
    return 0


def cmd_logs_tail(args: argparse.Namespace) -> int:
    config, state = _bootstrap()
    log_store = create_log_store(config, state)
    records = log_store.tail(args.category, limit=args.limit)
    _print([dict(record.to_json()) for record in records])
    return 0


COMMAND_HANDLERS = {
    "status": cmd_status,
    "serve": cmd_serve,
    "token": cmd_token,
    "pick": cmd_pick,
    "media": lambda args: args.func(args),
    "logs": lambda args: args.func(args),
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = COMMAND_HANDLERS.get(args.command)
    if handler is None:
        parser.error(f"Unknown command: {args.command}")
    try:
        return handler(args)
    except PhotoMemoryError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(json.dumps({"error": exc.message}), file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - entry point
    raise SystemExit(main())
