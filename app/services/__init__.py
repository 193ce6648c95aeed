"""Service layer: event validation and persistence."""

from .event_service import EventService, EventStore
from .event_storage import EventStorage

__all__ = [
    "EventService",
    "EventStorage",
    "EventStore",
]
