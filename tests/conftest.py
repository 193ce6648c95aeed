import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.database import build_engine, build_session_factory, init_models
from app.schemas import EventCreate

START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend, tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'events.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def make_request():
    """Factory for a valid creation request; keyword overrides replace fields."""

    def _make(**overrides) -> EventCreate:
        fields = dict(
            title="a" * 101,
            description="d",
            start_time=START,
            end_time=START + timedelta(hours=1),
        )
        fields.update(overrides)
        return EventCreate(**fields)

    return _make
