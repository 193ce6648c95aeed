# app/schemas.py
# ------------------------------------------------------------
# Pydantic v2 schemas for events
# ------------------------------------------------------------
from datetime import datetime, timezone
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _strip_control_chars(value: str | None) -> str | None:
    if not isinstance(value, str):
        # Left for pydantic's own type check.
        return value
    return _CONTROL_CHAR_RE.sub("", value)


def _ensure_utc(value: datetime | None) -> datetime | None:
    # Naive timestamps are taken to be UTC; aware ones are converted to UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================
# Events
# ============================================================

class EventCreate(BaseModel):
    """Inbound creation request. Domain rules are enforced by EventService."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def _clean_text(cls, value):
        return _strip_control_chars(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _tz_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    created_at: datetime

    @field_validator("start_time", "end_time", "created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _ensure_utc(value)
