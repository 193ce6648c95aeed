import asyncio
import logging
import os
from dotenv import load_dotenv  # load .env variables

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sqlalchemy.exc import DBAPIError, OperationalError

import app.database as database

# ----- Load environment variables -----
load_dotenv()

# ----- Logging -----
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

# ----- Routers -----
from app.routes.events import router as events_router

# ----- FastAPI app -----
app = FastAPI(
    title="Events API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# ----- CORS (enabled only if ALLOWED_ORIGINS is set) -----
raw_origins = os.getenv("ALLOWED_ORIGINS", "").strip()
if raw_origins:
    allowed_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"
        ],
        max_age=86400,
    )

# ----- Include routers -----
app.include_router(events_router)


def _open_database(database_url: str) -> None:
    engine = database.build_engine(database_url)
    app.state.database_url = database_url
    app.state.engine = engine
    app.state.session_factory = database.build_session_factory(engine)


def sqlite_fallback_allowed(current_url: str) -> bool:
    """Decide if we may fall back to the bundled SQLite database."""

    configured = os.getenv("DB_ALLOW_SQLITE_FALLBACK")
    if configured is not None:
        return configured.lower() in {"1", "true", "yes", "on"}

    # Without an explicit opt-in only the bundled SQLite URL itself qualifies,
    # so a misconfigured Postgres deployment fails fast.
    return current_url == database.DEFAULT_SQLITE_URL


@app.on_event("startup")
async def on_startup():
    """Open the connection pool and ensure tables exist, retrying while the database warms up."""

    _open_database(database.resolve_database_url())
    logging.info("Using DB: %s", database.redact_url(app.state.database_url))

    max_attempts = int(os.getenv("DB_INIT_MAX_ATTEMPTS", "10"))
    base_delay = float(os.getenv("DB_INIT_RETRY_SECONDS", "1.0"))

    attempt = 0
    while True:
        attempt += 1
        try:
            await database.init_models(app.state.engine)
        except (OperationalError, DBAPIError, OSError) as exc:  # pragma: no cover - depends on timing
            if attempt >= max_attempts:
                current_url = app.state.database_url
                if sqlite_fallback_allowed(current_url) and current_url != database.DEFAULT_SQLITE_URL:
                    logging.error(
                        "Database not reachable at %s after %s attempts: %s."
                        " Falling back to local SQLite for development.",
                        database.redact_url(current_url),
                        attempt,
                        exc,
                    )
                    await app.state.engine.dispose()
                    _open_database(database.DEFAULT_SQLITE_URL)
                    attempt = 0
                    continue

                logging.exception("Database not reachable after %s attempts", attempt)
                raise

            wait_time = base_delay * min(2 ** (attempt - 1), 8)
            logging.warning(
                "Database not ready (attempt %s/%s): %s. Retrying in %.1f seconds...",
                attempt,
                max_attempts,
                exc,
                wait_time,
            )
            await asyncio.sleep(wait_time)
        else:
            logging.info(
                "Events API started and database tables ensured (using %s).",
                database.redact_url(app.state.database_url),
            )
            break

# ----- Health check endpoint -----
@app.get("/health", tags=["meta"])
async def health():
    return {"ok": True}

# ----- Shutdown: release the connection pool -----
@app.on_event("shutdown")
async def on_shutdown():
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()
        logging.info("Database connections closed.")
