"""FastAPI application serving the auth start, callback and token endpoints."""
from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urlsplit

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from ..clients.google import GoogleOAuthClient
from ..config import ENTRY_POINT_REQUIREMENTS, PhotoMemoryConfig, load_config
from ..errors import PhotoMemoryError
from ..logs import PhotoMemoryLogStore, logs_directory
from ..session import COOKIE_NAME
from ..state import PhotoMemoryStateStore
from ..tokens import RestTokenStore, TokenStore, create_token_store
from .auth import AuthOrchestrator, AuthRedirect
from .models import ErrorResponse, HealthResponse, TokenResponse

logger = logging.getLogger(__name__)


def frontend_origin(frontend_url: str) -> str:
    """Reduce the configured frontend URL to the exact origin CORS matches on."""
    parts = urlsplit(frontend_url)
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


def _error_response(exc: PhotoMemoryError) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(error=exc.message).model_dump(),
        status_code=exc.status_code,
    )


def _redirect_with_cookie(result: AuthRedirect) -> RedirectResponse:
    response = RedirectResponse(url=result.location, status_code=302)
    response.set_cookie(
        key=COOKIE_NAME,
        value=result.cookie_value,
        max_age=result.max_age,
        path="/",
        httponly=True,
        secure=True,
        samesite="none",
    )
    return response


def create_app(
    config: PhotoMemoryConfig | None = None,
    *,
    state_store: PhotoMemoryStateStore | None = None,
    token_store: TokenStore | None = None,
    oauth_client: GoogleOAuthClient | None = None,
    log_store: PhotoMemoryLogStore | None = None,
) -> FastAPI:
    """Create the auth API. Configuration is read once, here."""
    config = config or load_config()
    state_store = state_store or PhotoMemoryStateStore()
    token_store = token_store or create_token_store(config, state_store)
    if log_store is None:
        log_store = PhotoMemoryLogStore(
            logs_directory(config.logs_directory, state_store.base_dir),
            retention_days=config.log_retention_days,
        )
        log_store.prune()
    orchestrator = AuthOrchestrator(
        config,
        token_store,
        oauth_client,
        log_store=log_store,
    )

    app = FastAPI(title="Photo Memory Auth", version="1.0.0")
    app.state.config = config
    app.state.orchestrator = orchestrator

    origin = frontend_origin(config.frontend_url)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin] if origin else [],
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["content-type"],
    )

    for entry_point in ENTRY_POINT_REQUIREMENTS:
        missing = config.missing_for(entry_point)
        if missing:
            logger.warning("%s endpoint disabled until configured: %s", entry_point, ", ".join(missing))

    @app.exception_handler(PhotoMemoryError)
    async def _handle_error(request: Request, exc: PhotoMemoryError) -> JSONResponse:
        return _error_response(exc)

    @app.get("/auth-start")
    async def auth_start(redirect_to: str | None = None) -> RedirectResponse:
        """Redirect the browser to Google's consent screen."""
        result = orchestrator.start(redirect_to)
        return _redirect_with_cookie(result)

    @app.get("/auth-callback")
    async def auth_callback(
        request: Request,
        code: str | None = None,
        state: str | None = None,
        error: str | None = None,
    ) -> RedirectResponse:
        """Handle Google's redirect back after consent."""
        result = await asyncio.to_thread(
            orchestrator.callback,
            request.cookies.get(COOKIE_NAME),
            code=code,
            state=state,
            error=error,
        )
        return _redirect_with_cookie(result)

    @app.get("/photos-token", response_model=TokenResponse)
    async def photos_token(request: Request) -> TokenResponse:
        """Return a freshly minted access token for the signed-in browser."""
        grant = await asyncio.to_thread(
            orchestrator.token, request.cookies.get(COOKIE_NAME)
        )
        return TokenResponse(accessToken=grant.access_token, expiresIn=grant.expires_in)

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz() -> dict[str, Any]:
        missing = {name: config.missing_for(name) for name in ENTRY_POINT_REQUIREMENTS}
        return {
            "status": "ok",
            "configured": {name: not fields for name, fields in missing.items()},
            "missing": {name: fields for name, fields in missing.items() if fields},
            "token_store": "rest" if isinstance(token_store, RestTokenStore) else "file",
        }

    return app


__all__ = ["create_app", "frontend_origin"]
