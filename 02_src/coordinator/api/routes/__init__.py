"""API route factories."""

from . import control, messaging, observability

__all__ = ["control", "messaging", "observability"]
