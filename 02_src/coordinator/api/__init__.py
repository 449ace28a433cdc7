"""HTTP API."""

from .app import create_fastapi_app, get_manager

__all__ = ["create_fastapi_app", "get_manager"]
