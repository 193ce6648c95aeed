# app/deps/events.py
from fastapi import Request

from app.services.event_service import EventService
from app.services.event_storage import EventStorage


def get_event_service(request: Request) -> EventService:
    """Build the service over the session factory opened at startup."""
    session_factory = request.app.state.session_factory
    return EventService(EventStorage(session_factory))
