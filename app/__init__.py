"""Events API: FastAPI surface over an async SQLAlchemy event store."""

# Re-export the common database helpers for convenience.
from .database import Base, build_engine, build_session_factory, init_models  # noqa: F401

__all__ = ["Base", "build_engine", "build_session_factory", "init_models"]
