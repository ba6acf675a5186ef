"""Pydantic models for the auth API responses."""
from __future__ import annotations

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    """Access token handed to the browser; the refresh token never leaves the server."""

    accessToken: str = Field(..., min_length=1)
    expiresIn: int = Field(..., ge=0)


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str = "ok"
    configured: dict[str, bool] = Field(default_factory=dict)
    missing: dict[str, list[str]] = Field(default_factory=dict)
    token_store: str


__all__ = ["TokenResponse", "ErrorResponse", "HealthResponse"]
