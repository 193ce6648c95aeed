from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction
from sqlalchemy.orm import sessionmaker

from app.errors import NotFoundError, StorageError
from app.models.event import Event
from app.schemas import EventCreate, EventOut

_LOGGER = logging.getLogger(__name__)

# Driver-level connection failures (refused, reset) surface as OSError.
_DB_ERRORS = (SQLAlchemyError, OSError)


class EventStorage:
    """Read and write events through an injected async session factory.

    Every call opens its own session, so one instance is safe to share between
    concurrent requests. Writes are all-or-nothing: a creation either commits or
    leaves nothing behind.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    @staticmethod
    @asynccontextmanager
    async def _transaction(session: AsyncSession) -> AsyncIterator[AsyncSessionTransaction]:
        """Begin a transaction and roll it back on any exit that did not commit."""

        try:
            transaction = await session.begin()
        except _DB_ERRORS as exc:
            raise StorageError(f"creating transaction: {exc}") from exc

        try:
            yield transaction
        except BaseException:
            if session.in_transaction():
                try:
                    await transaction.rollback()
                except _DB_ERRORS as rollback_exc:
                    # Keep the error that caused the rollback.
                    _LOGGER.warning("Rollback failed: %s", rollback_exc)
            raise
        else:
            if session.in_transaction():
                await transaction.rollback()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def create_event(self, request: EventCreate) -> EventOut:
        # Fixed before the write so the response matches the stored row.
        event = Event(
            id=str(uuid.uuid4()),
            title=request.title,
            description=request.description,
            start_time=request.start_time,
            end_time=request.end_time,
            created_at=datetime.now(timezone.utc),
        )

        async with self._session_factory() as session:
            async with self._transaction(session) as transaction:
                try:
                    session.add(event)
                    await session.flush()
                except _DB_ERRORS as exc:
                    raise StorageError(f"creating event: {exc}") from exc

                result = EventOut(
                    id=event.id,
                    title=event.title,
                    description=event.description,
                    start_time=event.start_time,
                    end_time=event.end_time,
                    created_at=event.created_at,
                )

                try:
                    await transaction.commit()
                except _DB_ERRORS as exc:
                    raise StorageError(str(exc)) from exc

        _LOGGER.debug("Stored event %s", result.id)
        return result

    async def get_events(self) -> list[EventOut]:
        stmt = select(Event).order_by(Event.start_time.asc(), Event.created_at.asc())

        async with self._session_factory() as session:
            try:
                rows = (await session.execute(stmt)).scalars().all()
            except _DB_ERRORS as exc:
                raise StorageError(f"querying events: {exc}") from exc

            results: list[EventOut] = []
            for row in rows:
                try:
                    results.append(EventOut.model_validate(row))
                except ValidationError as exc:
                    raise StorageError(f"scanning event: {exc}") from exc

        return results

    async def get_event_by_id(self, event_id: str) -> EventOut:
        async with self._session_factory() as session:
            try:
                row = await session.get(Event, event_id)
            except _DB_ERRORS as exc:
                raise StorageError(f"getting event: {exc}") from exc

            if row is None:
                raise NotFoundError("event not found")

            try:
                return EventOut.model_validate(row)
            except ValidationError as exc:
                raise StorageError(f"scanning event: {exc}") from exc


__all__ = ["EventStorage"]
