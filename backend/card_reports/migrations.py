"""Apply the Alembic migrations before the service or a job touches the store.

Several workers may start at once, so upgrades are serialised through an
exclusive lock on a file next to ``alembic.ini``. Databases whose tables were
created directly from the models are stamped with the matching revision
instead of being migrated from scratch.
"""

from __future__ import annotations

import errno
import logging
import os
import time
from pathlib import Path
from typing import IO, Callable, Optional, Sequence

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine.reflection import Inspector

from .database import SQLALCHEMY_DATABASE_URL

LOGGER = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
LOCK_FILENAME = ".alembic-migration.lock"
LOCK_TIMEOUT_ENV = "ALEMBIC_MIGRATION_LOCK_TIMEOUT"
DEFAULT_LOCK_TIMEOUT = 30.0
LOCK_POLL_INTERVAL = 0.25

# errno values and Windows error codes (sharing/lock violation) of a held lock.
_BUSY_ERRNOS = {errno.EACCES, errno.EAGAIN, errno.EBUSY}
_BUSY_WINERRORS = {32, 33}

if os.name == "posix":  # pragma: no cover - platform specific
    import fcntl

    def _try_lock(handle: IO[str]) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock(handle: IO[str]) -> None:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

else:  # pragma: no cover - platform specific
    import msvcrt

    def _try_lock(handle: IO[str]) -> None:
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)

    def _unlock(handle: IO[str]) -> None:
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)


def lock_timeout_from_env() -> float:
    raw = os.getenv(LOCK_TIMEOUT_ENV)
    if not raw:
        return DEFAULT_LOCK_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        value = 0.0
    if value <= 0:
        LOGGER.warning(
            "Ignoring %s=%r; waiting %.1f seconds for the migration lock",
            LOCK_TIMEOUT_ENV,
            raw,
            DEFAULT_LOCK_TIMEOUT,
        )
        return DEFAULT_LOCK_TIMEOUT
    return value


class MigrationLock:
    """Inter-process lock held while Alembic upgrades or stamps the database."""

    def __init__(self, path: Path, *, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        self._handle: Optional[IO[str]] = None

    @staticmethod
    def _is_busy(error: OSError) -> bool:
        return (
            isinstance(error, BlockingIOError)
            or getattr(error, "errno", None) in _BUSY_ERRNOS
            or getattr(error, "winerror", None) in _BUSY_WINERRORS
        )

    def __enter__(self) -> "MigrationLock":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+")
        deadline = time.monotonic() + self.timeout
        LOGGER.debug("Waiting for migration lock %s", self.path)
        while True:
            try:
                _try_lock(handle)
                break
            except OSError as error:
                if not self._is_busy(error) or time.monotonic() >= deadline:
                    handle.close()
                    if self._is_busy(error):
                        raise TimeoutError(
                            f"Timed out after {self.timeout:.1f}s waiting for {self.path}"
                        ) from error
                    raise
                time.sleep(LOCK_POLL_INTERVAL)
        self._handle = handle
        return self

    def __exit__(self, *exc_info) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            _unlock(handle)
        except OSError:  # pragma: no cover - released by the OS on close
            LOGGER.debug("Migration lock %s was already released", self.path)
        finally:
            handle.close()


SchemaCheck = Callable[[Inspector], bool]


def _has_index(table: str, index: str) -> SchemaCheck:
    def check(inspector: Inspector) -> bool:
        if not inspector.has_table(table):
            return False
        return index in {item["name"] for item in inspector.get_indexes(table)}

    return check


# Newest first: the first matching check names the revision an unversioned schema is at.
SCHEMA_REVISIONS: Sequence[tuple[str, SchemaCheck]] = (
    ("20261001_0001", _has_index("documents", "ix_documents_parent_path")),
)


def detect_schema_revision(inspector: Inspector) -> Optional[str]:
    for revision, check in SCHEMA_REVISIONS:
        if check(inspector):
            return revision
    return None


def build_alembic_config(database_url: str | None = None) -> Config:
    """Alembic config pointing at the bundled scripts and the target database."""

    config = Config(str(BASE_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BASE_DIR / "alembic"))
    config.set_main_option(
        "sqlalchemy.url", database_url or os.getenv("DATABASE_URL") or SQLALCHEMY_DATABASE_URL
    )
    return config


def run_database_migrations(database_url: str | None = None) -> None:
    """Bring the database to the head revision."""

    config = build_alembic_config(database_url)
    url = config.get_main_option("sqlalchemy.url")
    LOGGER.info("Running database migrations at %s", url)

    with MigrationLock(BASE_DIR / LOCK_FILENAME, timeout=lock_timeout_from_env()):
        engine = create_engine(
            url, connect_args={"check_same_thread": False} if url.startswith("sqlite") else {}
        )
        try:
            inspector = inspect(engine)
            if not inspector.has_table("alembic_version"):
                revision = detect_schema_revision(inspector)
                if revision is not None:
                    LOGGER.info("Unversioned schema matches %s; stamping it", revision)
                    command.stamp(config, revision)
                    head = ScriptDirectory.from_config(config).get_current_head()
                    if revision == head:
                        return
            command.upgrade(config, "head")
        finally:
            engine.dispose()
