# app/routes/events.py

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.deps.events import get_event_service
from app.errors import EventError, InvalidInputError, NotFoundError
from app.schemas import EventCreate, EventOut
from app.services.event_service import EventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


def _to_http(exc: EventError) -> HTTPException:
    if isinstance(exc, InvalidInputError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    logger.error("Event request failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )


# Create event -------------------------------------------------------

@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: EventCreate,
    service: EventService = Depends(get_event_service),
):
    try:
        return await service.create_event(payload)
    except EventError as exc:
        raise _to_http(exc) from exc


# List events --------------------------------------------------------

@router.get("/", response_model=List[EventOut])
async def list_events(service: EventService = Depends(get_event_service)):
    try:
        return await service.get_events()
    except EventError as exc:
        raise _to_http(exc) from exc


# Get event ----------------------------------------------------------

@router.get("/{event_id}", response_model=EventOut)
async def get_event(
    event_id: str,
    service: EventService = Depends(get_event_service),
):
    try:
        return await service.get_event_by_id(event_id)
    except EventError as exc:
        raise _to_http(exc) from exc
