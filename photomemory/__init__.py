"""Photo Memory package exposing configuration, state and token helpers."""

from .config import ConfigStore, PhotoMemoryConfig, load_config
from .state import PhotoMemoryStateStore
from .tokens import RestTokenStore, StateTokenStore, TokenRecord, create_token_store

__all__ = [
    "PhotoMemoryConfig",
    "ConfigStore",
    "load_config",
    "PhotoMemoryStateStore",
    "TokenRecord",
    "StateTokenStore",
    "RestTokenStore",
    "create_token_store",
]
