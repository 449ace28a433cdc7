"""Scripted load generator for the coordinator API."""

from .sim import ISim, Sim

__all__ = ["Sim", "ISim"]
