"""MessageRouter module."""

from .router import (
    DEFAULT_ALL_AGENTS,
    IMessageRouter,
    MessageHandler,
    MessageRouter,
    generate_correlation_id,
)

__all__ = [
    "DEFAULT_ALL_AGENTS",
    "IMessageRouter",
    "MessageHandler",
    "MessageRouter",
    "generate_correlation_id",
]
