"""Engine and session setup for the document store.

``DATABASE_URL`` selects the backend; without it the store lives in a SQLite
file next to the package. PostgreSQL deployments can forbid the SQLite
fallback with ``REQUIRE_POSTGRES=1``.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DEFAULT_SQLITE_PATH = Path(__file__).resolve().parent.parent / "card_reports.db"

REQUIRE_POSTGRES_ENV = "REQUIRE_POSTGRES"
SQLITE_BUSY_TIMEOUT_ENV = "SQLITE_BUSY_TIMEOUT_MS"

# Environment variable -> default for the PostgreSQL connection pool.
POOL_SETTINGS = {
    "pool_size": ("DATABASE_POOL_SIZE", 5),
    "max_overflow": ("DATABASE_MAX_OVERFLOW", 10),
    "pool_timeout": ("DATABASE_POOL_TIMEOUT", 30),
    "pool_recycle": ("DATABASE_POOL_RECYCLE", 1800),
}
CONNECT_TIMEOUT_ENV = "DATABASE_CONNECT_TIMEOUT"
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 5000


def _read_non_negative_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def _postgres_required() -> bool:
    return os.getenv(REQUIRE_POSTGRES_ENV, "").strip().lower() in {"1", "true", "yes", "on"}


def resolve_database_url(raw_url: str | None) -> str:
    """Return the URL to connect to, creating the SQLite directory when needed."""

    if not raw_url:
        if _postgres_required():
            raise RuntimeError(
                "DATABASE_URL must be configured for PostgreSQL when REQUIRE_POSTGRES=1"
            )
        DEFAULT_SQLITE_PATH.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{DEFAULT_SQLITE_PATH.as_posix()}"

    url = make_url(raw_url)
    is_sqlite = url.drivername.startswith("sqlite")
    if is_sqlite and _postgres_required():
        raise RuntimeError("SQLite is not permitted when REQUIRE_POSTGRES=1; configure DATABASE_URL")
    if is_sqlite and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return url.render_as_string(hide_password=False)


def engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    options: Dict[str, Any] = {
        option: _read_non_negative_int(env, default)
        for option, (env, default) in POOL_SETTINGS.items()
    }
    options["pool_pre_ping"] = True
    options["connect_args"] = {
        "connect_timeout": _read_non_negative_int(CONNECT_TIMEOUT_ENV, DEFAULT_CONNECT_TIMEOUT)
    }
    return options


def _install_sqlite_busy_timeout(target: Engine) -> None:
    busy_timeout_ms = _read_non_negative_int(
        SQLITE_BUSY_TIMEOUT_ENV, DEFAULT_SQLITE_BUSY_TIMEOUT_MS
    )

    @event.listens_for(target, "connect")
    def _set_busy_timeout(dbapi_connection, _connection_record) -> None:
        # Concurrent report writers wait for the file lock instead of failing.
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
        cursor.close()


SQLALCHEMY_DATABASE_URL = resolve_database_url(os.getenv("DATABASE_URL"))

engine = create_engine(SQLALCHEMY_DATABASE_URL, **engine_options(SQLALCHEMY_DATABASE_URL))
if engine.dialect.name == "sqlite":
    _install_sqlite_busy_timeout(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Transactional scope for the scheduled jobs and maintenance scripts."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
