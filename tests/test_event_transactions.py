import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from app.errors import EventError, NotFoundError, StorageError
from app.services.event_service import EventService
from app.services.event_storage import EventStorage


def _db_error(message: str) -> OperationalError:
    return OperationalError("statement", {}, Exception(message))


class _FakeTransaction:
    def __init__(self, session):
        self._session = session

    def __await__(self):
        return self._start().__await__()

    async def _start(self):
        if self._session.begin_error is not None:
            raise self._session.begin_error
        self._session.open = True
        return self

    async def commit(self):
        self._session.calls.append("commit")
        if self._session.commit_error is not None:
            # A failed commit leaves the transaction open until rolled back.
            raise self._session.commit_error
        self._session.committed.extend(self._session.pending)
        self._session.pending = []
        self._session.open = False

    async def rollback(self):
        self._session.calls.append("rollback")
        if self._session.rollback_error is not None:
            raise self._session.rollback_error
        self._session.pending = []
        self._session.open = False


class _FakeResult:
    def __init__(self, items):
        self._items = list(items)

    def scalars(self):
        return self

    def all(self):
        return list(self._items)


class _FakeSession:
    """Stands in for AsyncSession; rows only become visible on commit."""

    def __init__(self):
        self.calls = []
        self.pending = []
        self.committed = []
        self.begin_error = None
        self.flush_error = None
        self.commit_error = None
        self.execute_error = None
        self.rollback_error = None
        self.closed = 0
        self.open = False

    def __call__(self):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed += 1
        return False

    def in_transaction(self):
        return self.open

    def begin(self):
        self.calls.append("begin")
        return _FakeTransaction(self)

    def add(self, obj):
        self.pending.append(obj)

    async def flush(self):
        self.calls.append("flush")
        if self.flush_error is not None:
            raise self.flush_error

    async def execute(self, stmt):  # noqa: ARG002 - ordering is the database's job
        if self.execute_error is not None:
            raise self.execute_error
        return _FakeResult(self.committed)

    async def get(self, model, key):  # noqa: ARG002
        if self.execute_error is not None:
            raise self.execute_error
        return next((row for row in self.committed if row.id == key), None)


@pytest.fixture
def fake_session():
    return _FakeSession()


def test_successful_create_commits_without_rollback(fake_session, make_request):
    storage = EventStorage(fake_session)

    created = asyncio.run(storage.create_event(make_request()))

    assert fake_session.calls == ["begin", "flush", "commit"]
    assert [row.id for row in fake_session.committed] == [created.id]
    assert fake_session.closed == 1


def test_insert_failure_rolls_back_and_hides_row(fake_session, make_request):
    fake_session.flush_error = _db_error("insert failed")
    storage = EventStorage(fake_session)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(storage.create_event(make_request()))

    assert str(excinfo.value).startswith("creating event: ")
    assert "insert failed" in str(excinfo.value)
    assert fake_session.calls == ["begin", "flush", "rollback"]
    assert asyncio.run(storage.get_events()) == []


def test_begin_failure_is_reported_as_transaction_error(fake_session, make_request):
    fake_session.begin_error = _db_error("begin transaction failed")
    storage = EventStorage(fake_session)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(storage.create_event(make_request()))

    assert str(excinfo.value).startswith("creating transaction: ")
    assert "flush" not in fake_session.calls


def test_commit_failure_is_returned_unwrapped(fake_session, make_request):
    fake_session.commit_error = _db_error("commit failed")
    storage = EventStorage(fake_session)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(storage.create_event(make_request()))

    assert "commit failed" in str(excinfo.value)
    assert not str(excinfo.value).startswith("creating event")
    assert fake_session.committed == []


def test_cancelled_insert_still_rolls_back(fake_session, make_request):
    fake_session.flush_error = asyncio.CancelledError()
    storage = EventStorage(fake_session)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(storage.create_event(make_request()))

    assert fake_session.calls[-1] == "rollback"
    assert fake_session.closed == 1


def test_unmappable_row_aborts_listing(fake_session):
    fake_session.committed.append(SimpleNamespace(id="broken", title=None))
    storage = EventStorage(fake_session)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(storage.get_events())

    assert str(excinfo.value).startswith("scanning event: ")
    assert fake_session.closed == 1


def test_lookup_failure_is_not_not_found(fake_session):
    fake_session.execute_error = _db_error("database connection error")
    storage = EventStorage(fake_session)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(storage.get_event_by_id("test-id"))

    assert not isinstance(excinfo.value, NotFoundError)
    assert str(excinfo.value).startswith("getting event: ")


def test_lookup_without_row_is_not_found(fake_session):
    storage = EventStorage(fake_session)

    with pytest.raises(NotFoundError):
        asyncio.run(storage.get_event_by_id("nonexistent-id"))


def test_refused_connection_is_wrapped_for_listing_and_lookup(fake_session):
    fake_session.execute_error = ConnectionRefusedError(111, "Connection refused")
    service = EventService(EventStorage(fake_session))

    with pytest.raises(EventError) as listing:
        asyncio.run(service.get_events())
    with pytest.raises(EventError) as by_id:
        asyncio.run(service.get_event_by_id("test-id"))

    assert isinstance(listing.value, StorageError)
    assert str(listing.value).startswith("getting events: querying events: ")
    assert isinstance(by_id.value, StorageError)
    assert not isinstance(by_id.value, NotFoundError)
    assert str(by_id.value).startswith("getting event: getting event: ")


def test_refused_connection_at_begin_is_transaction_error(fake_session, make_request):
    fake_session.begin_error = ConnectionRefusedError(111, "Connection refused")
    storage = EventStorage(fake_session)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(storage.create_event(make_request()))

    assert str(excinfo.value).startswith("creating transaction: ")
    assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)


def test_failing_rollback_keeps_insert_error(fake_session, make_request):
    fake_session.flush_error = _db_error("insert failed")
    fake_session.rollback_error = ConnectionResetError(104, "Connection reset by peer")
    storage = EventStorage(fake_session)

    with pytest.raises(StorageError) as excinfo:
        asyncio.run(storage.create_event(make_request()))

    assert str(excinfo.value).startswith("creating event: ")
    assert "insert failed" in str(excinfo.value)
    assert fake_session.calls == ["begin", "flush", "rollback"]
    assert fake_session.closed == 1
