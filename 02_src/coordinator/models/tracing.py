"""Trace events recorded for observability."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single observability event (bus traffic, SIM activity)."""

    id: str
    event_type: str  # e.g. "bus_message", "sim_started"
    actor: str  # agent id or "sim"
    data: dict  # self-contained, no lookups needed to display it
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "actor": self.actor,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }
