"""Engine, session factory and schema bootstrap.

A ledger commit rewrites whole collections, so SQLite connections wait for a
busy database instead of failing with ``database is locked``.
"""

from collections.abc import Generator
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from settlement_ledger.core.config import settings


def _connect_args(dsn: str) -> dict[str, Any]:
    if not dsn.startswith("sqlite"):
        return {}
    return {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS}


engine = create_engine(settings.APP_DATABASE_DSN, connect_args=_connect_args(settings.APP_DATABASE_DSN))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the ledger tables, and the data directory for the JSON backend."""
    import settlement_ledger.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    if settings.json_store_enabled:
        Path(settings.APP_DATA_PATH, settings.LEDGER_JSON_DIRNAME).mkdir(
            parents=True, exist_ok=True
        )
