# app/database.py
from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.exc import DisconnectionError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.engine import URL
from sqlalchemy.engine.url import make_url

load_dotenv()

logger = logging.getLogger(__name__)


def _default_db_url() -> str:
    """
    Use a file-based SQLite DB at the project root when no Postgres settings are provided.
    File-based SQLite works reliably across async connections and threads.
    """
    root = Path(__file__).resolve().parents[1]
    return f"sqlite+aiosqlite:///{(root / 'events.db').as_posix()}"


def _translate_sslmode(value: str) -> Optional[str]:
    """Translate libpq sslmode values to asyncpg-compatible flags."""

    normalized = value.strip().lower()
    if normalized in {"require", "verify-ca", "verify-full"}:
        return "true"
    if normalized == "disable":
        return "false"

    # "prefer" and "allow" have no asyncpg equivalent; leave the driver default.
    return None


def _normalize_database_url(raw_url: Optional[str]) -> Optional[str]:
    """Ensure async-friendly drivers even if the URL omits them."""

    if not raw_url:
        return raw_url

    try:
        url = make_url(raw_url)
    except Exception:
        # If SQLAlchemy can't parse the URL, fall back to the raw value.
        return raw_url

    driver = url.drivername.lower()
    if driver in {"postgresql", "postgres", "postgresql+psycopg2"}:
        url = url.set(drivername="postgresql+asyncpg")
    elif driver.startswith("postgresql+") and driver != "postgresql+asyncpg":
        url = url.set(drivername="postgresql+asyncpg")

    if url.drivername == "postgresql+asyncpg":
        query = dict(url.query)
        sslmode = query.pop("sslmode", None)
        if sslmode is not None:
            translated = _translate_sslmode(sslmode)
            if translated is not None:
                query["ssl"] = translated
        if query != url.query:
            url = url.set(query=query)

    return url.render_as_string(hide_password=False)


def _pg_env_database_url(env: Mapping[str, str]) -> Optional[str]:
    """Assemble a Postgres URL from the libpq-style PG* variables."""

    host = env.get("PGHOST")
    database = env.get("PGDATABASE")
    user = env.get("PGUSER")

    if not (host and database and user):
        return None

    port = env.get("PGPORT")
    password = env.get("PGPASSWORD") or None

    query: dict[str, str] = {}
    sslmode = env.get("PGSSLMODE")
    if sslmode:
        translated = _translate_sslmode(sslmode)
        if translated is not None:
            query["ssl"] = translated

    try:
        port_value = int(port) if port is not None else None
    except (TypeError, ValueError):
        port_value = None

    return URL.create(
        drivername="postgresql+asyncpg",
        username=user,
        password=password,
        host=host,
        port=port_value,
        database=database,
        query=query or None,
    ).render_as_string(hide_password=False)


def _database_url_from_env(env: Mapping[str, str]) -> Optional[str]:
    """Resolve the preferred database URL from environment variables."""

    candidates = [
        env.get("DATABASE_URL"),
        env.get("POSTGRES_URL"),
    ]

    for raw in candidates:
        normalized = _normalize_database_url(raw)
        if normalized:
            return normalized

    return _pg_env_database_url(env)


def resolve_database_url(env: Optional[Mapping[str, str]] = None) -> str:
    return _database_url_from_env(os.environ if env is None else env) or DEFAULT_SQLITE_URL


def redact_url(database_url: str) -> str:
    """Render a URL with its password masked, for logs."""

    try:
        return make_url(database_url).render_as_string(hide_password=True)
    except Exception:
        return "<unparseable database url>"


DEFAULT_SQLITE_URL: str = _default_db_url()

# Optional echo flag for local debugging
ECHO = os.getenv("SQLALCHEMY_ECHO", "0").lower() in {"1", "true", "yes"}


def _pool_settings(env: Mapping[str, str]) -> dict[str, int]:
    return {
        "pool_size": int(env.get("DB_POOL_SIZE", "5")),
        "max_overflow": int(env.get("DB_MAX_OVERFLOW", "20")),
        "pool_recycle": int(env.get("DB_POOL_RECYCLE_SECONDS", "300")),
        "pool_timeout": int(env.get("DB_POOL_TIMEOUT_SECONDS", "30")),
    }


def _mark_checked_in(dbapi_connection, connection_record) -> None:
    connection_record.info["checked_in_at"] = time.monotonic()


def _reject_if_idle(connection_record, max_idle_seconds: float) -> None:
    checked_in_at = connection_record.info.pop("checked_in_at", None)
    if checked_in_at is not None and time.monotonic() - checked_in_at > max_idle_seconds:
        # The pool invalidates the record and retries with a fresh connection.
        raise DisconnectionError("connection exceeded max idle time")


def _install_idle_timeout(engine: AsyncEngine, max_idle_seconds: float) -> None:
    """Discard pooled connections that sat idle longer than ``max_idle_seconds``."""

    event.listen(engine.sync_engine, "checkin", _mark_checked_in)

    @event.listens_for(engine.sync_engine, "checkout")
    def _reject_stale(dbapi_connection, connection_record, connection_proxy) -> None:
        _reject_if_idle(connection_record, max_idle_seconds)


def build_engine(database_url: str, env: Optional[Mapping[str, str]] = None) -> AsyncEngine:
    """Create the process-wide engine; the caller owns it and must dispose it."""

    env = os.environ if env is None else env
    kwargs: dict = {"echo": ECHO, "pool_pre_ping": True}
    is_sqlite = make_url(database_url).get_backend_name() == "sqlite"
    if not is_sqlite:
        kwargs.update(_pool_settings(env))

    engine = create_async_engine(database_url, **kwargs)

    if not is_sqlite:
        _install_idle_timeout(engine, float(env.get("DB_POOL_MAX_IDLE_SECONDS", "600")))
    return engine


def build_session_factory(bind_engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=bind_engine,
        class_=AsyncSession,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


Base = declarative_base()


async def init_models(engine: AsyncEngine) -> None:
    """
    Import all model modules so they register with Base, then create tables.
    Safe to run on every startup.
    """

    # Ensure SQLAlchemy knows about every mapped class
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
