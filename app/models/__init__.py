"""ORM models; importing the package registers every table with ``Base``."""

from .event import Event, UTCDateTime

__all__ = ["Event", "UTCDateTime"]
