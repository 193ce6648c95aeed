from __future__ import annotations

import logging
from typing import Protocol

from app.errors import EventError, InvalidInputError
from app.schemas import EventCreate, EventOut

_LOGGER = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 100


class EventStore(Protocol):
    """The storage operations EventService depends on."""

    async def create_event(self, request: EventCreate) -> EventOut: ...

    async def get_events(self) -> list[EventOut]: ...

    async def get_event_by_id(self, event_id: str) -> EventOut: ...


def _validate_create(request: EventCreate) -> None:
    if not request.title.strip():
        raise InvalidInputError("title is required")
    if not request.description.strip():
        raise InvalidInputError("description is required")
    if request.start_time is None or request.end_time is None:
        raise InvalidInputError("start_time and end_time are required")
    if request.start_time >= request.end_time:
        raise InvalidInputError("start_time must be before end_time")
    if len(request.title) <= MIN_TITLE_LENGTH:
        raise InvalidInputError(
            f"title is too short: must be longer than {MIN_TITLE_LENGTH} characters"
        )


class EventService:
    """Validate event requests and forward them to the store."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    async def create_event(self, request: EventCreate) -> EventOut:
        """Create an event after checking every creation rule.

        Raises ``InvalidInputError`` before touching storage when a rule fails;
        storage failures come back wrapped as ``"creating event: ..."`` with
        their original class.
        """
        try:
            _validate_create(request)
        except InvalidInputError as exc:
            _LOGGER.warning("Rejected event creation: %s", exc)
            raise

        try:
            event = await self._store.create_event(request)
        except EventError as exc:
            raise exc.wrap("creating event") from exc

        _LOGGER.info("Created event %s starting %s", event.id, event.start_time.isoformat())
        return event

    async def get_event_by_id(self, event_id: str) -> EventOut:
        if not event_id or not event_id.strip():
            _LOGGER.warning("Rejected event lookup with an empty id")
            raise InvalidInputError("event id is required")

        try:
            return await self._store.get_event_by_id(event_id)
        except EventError as exc:
            raise exc.wrap("getting event") from exc

    async def get_events(self) -> list[EventOut]:
        try:
            events = await self._store.get_events()
        except EventError as exc:
            raise exc.wrap("getting events") from exc
        return list(events or [])


__all__ = ["EventService", "EventStore", "MIN_TITLE_LENGTH"]
