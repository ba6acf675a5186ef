"""HTTP surface for the OAuth flow."""

from .app import create_app
from .auth import AuthOrchestrator

__all__ = ["create_app", "AuthOrchestrator"]
