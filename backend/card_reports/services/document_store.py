"""Document store over the ``documents`` table.

Documents are JSON objects addressed by slash-separated paths such as
``reports/daily/2024-01/01``. Intermediate path segments do not need a
document of their own, so ``list_children`` derives the next segment from the
stored paths underneath a prefix.

Reads and writes go through SQLAlchemy Core statements on the session's
connection; the ORM identity map is never populated, so every call observes
the current row. Each write bumps ``version`` and :meth:`DocumentStore.compare_and_set`
only succeeds when the caller's expected version still matches.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Mapping, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..errors import (
    ConcurrentUpdateError,
    ConfigurationError,
    DocumentNotFoundError,
    StoreAccessError,
)
from ..models import StoredDocument

LOGGER = logging.getLogger(__name__)

DOCUMENTS = StoredDocument.__table__
DEFAULT_MAX_ATTEMPTS = 5


class _ServerTimestamp:
    """Sentinel replaced by the write time when a document is stored."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def normalize_path(path: str) -> str:
    segments = [segment for segment in str(path).strip().split("/") if segment]
    if not segments:
        raise ValueError("Document path must not be empty")
    return "/".join(segments)


def split_path(path: str) -> tuple[str, str]:
    """Return ``(parent_path, document_id)`` for a document path."""

    parent, _, document_id = normalize_path(path).rpartition("/")
    return parent, document_id


@dataclass(frozen=True)
class DocumentSnapshot:
    """Document contents together with the version they were read at."""

    path: str
    data: dict[str, Any]
    version: int

    @property
    def id(self) -> str:
        return self.path.rpartition("/")[2]


class DocumentStore:
    """Path-addressed JSON documents persisted through a SQLAlchemy session."""

    def __init__(self, session: Session, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self.session = session
        self.max_attempts = max(max_attempts, 1)

    @contextmanager
    def _guard(self, operation: str, path: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            LOGGER.error("Document store %s failed for %s: %s", operation, path, exc)
            self.session.rollback()
            raise StoreAccessError(
                f"Document store {operation} failed",
                operation=f"store.{operation}",
                context={"path": path},
            ) from exc

    @staticmethod
    def server_timestamp() -> _ServerTimestamp:
        """Return the placeholder resolved to the write time on store."""

        return SERVER_TIMESTAMP

    @staticmethod
    def _resolve_timestamps(data: Mapping[str, Any]) -> dict[str, Any]:
        written_at: Optional[str] = None
        resolved: dict[str, Any] = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                if written_at is None:
                    written_at = datetime.now(timezone.utc).isoformat()
                value = written_at
            resolved[key] = value
        return resolved

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(DOCUMENTS)
        if dialect == "sqlite":
            return sqlite.insert(DOCUMENTS)
        raise ConfigurationError(f"Unsupported database dialect for documents: {dialect}")

    def _row_values(self, path: str, data: Mapping[str, Any]) -> dict[str, Any]:
        parent, document_id = split_path(path)
        return {
            "path": path,
            "parent_path": parent,
            "document_id": document_id,
            "data": self._resolve_timestamps(data),
            "version": 1,
        }

    def read(self, path: str) -> Optional[DocumentSnapshot]:
        normalized = normalize_path(path)
        with self._guard("read", normalized):
            row = self.session.execute(
                select(DOCUMENTS.c.data, DOCUMENTS.c.version).where(
                    DOCUMENTS.c.path == normalized
                )
            ).first()
        if row is None:
            return None
        return DocumentSnapshot(path=normalized, data=dict(row.data or {}), version=row.version)

    def get(self, path: str) -> Optional[dict[str, Any]]:
        snapshot = self.read(path)
        return snapshot.data if snapshot is not None else None

    def exists(self, path: str) -> bool:
        normalized = normalize_path(path)
        with self._guard("exists", normalized):
            row = self.session.execute(
                select(DOCUMENTS.c.path).where(DOCUMENTS.c.path == normalized)
            ).first()
        return row is not None

    def create(self, path: str, data: Mapping[str, Any]) -> bool:
        """Insert the document unless one already exists; return whether it was created."""

        normalized = normalize_path(path)
        statement = (
            self._insert()
            .values(**self._row_values(normalized, data))
            .on_conflict_do_nothing(index_elements=[DOCUMENTS.c.path])
        )
        with self._guard("create", normalized):
            result = self.session.execute(statement)
        return result.rowcount == 1

    def set(self, path: str, data: Mapping[str, Any]) -> None:
        """Create or fully overwrite the document."""

        normalized = normalize_path(path)
        statement = self._insert().values(**self._row_values(normalized, data))
        statement = statement.on_conflict_do_update(
            index_elements=[DOCUMENTS.c.path],
            set_={
                "data": statement.excluded.data,
                "version": DOCUMENTS.c.version + 1,
                "updated_at": func.now(),
            },
        )
        with self._guard("set", normalized):
            self.session.execute(statement)

    def compare_and_set(
        self, path: str, data: Mapping[str, Any], expected_version: Optional[int]
    ) -> bool:
        """Write ``data`` only if the stored version still equals ``expected_version``.

        ``None`` means the caller observed no document, so the write only
        succeeds as a create.
        """

        if expected_version is None:
            return self.create(path, data)

        normalized = normalize_path(path)
        statement = (
            update(DOCUMENTS)
            .where(DOCUMENTS.c.path == normalized)
            .where(DOCUMENTS.c.version == expected_version)
            .values(data=self._resolve_timestamps(data), version=expected_version + 1)
        )
        with self._guard("compare_and_set", normalized):
            result = self.session.execute(statement)
        return result.rowcount == 1

    def modify(
        self,
        path: str,
        mutate: Callable[[Optional[DocumentSnapshot]], Optional[Mapping[str, Any]]],
        *,
        max_attempts: Optional[int] = None,
    ) -> tuple[Optional[DocumentSnapshot], Optional[dict[str, Any]]]:
        """Read-modify-write ``path`` with optimistic retries.

        ``mutate`` receives the freshest snapshot (``None`` when absent) and
        returns the full document to store, or ``None`` to leave it untouched.
        Returns the snapshot the write was based on and the written data.
        """

        normalized = normalize_path(path)
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            snapshot = self.read(normalized)
            data = mutate(snapshot)
            if data is None:
                return snapshot, None
            resolved = self._resolve_timestamps(data)
            expected = snapshot.version if snapshot is not None else None
            if self.compare_and_set(normalized, resolved, expected):
                return snapshot, resolved
            LOGGER.info(
                "Version conflict on %s (attempt %s/%s); retrying", normalized, attempt, attempts
            )
        raise ConcurrentUpdateError(
            "Document kept changing while it was being updated",
            operation="store.modify",
            context={"path": normalized, "attempts": attempts},
        )

    def update(self, path: str, changes: Mapping[str, Any]) -> None:
        """Merge ``changes`` into an existing document."""

        def merge(snapshot: Optional[DocumentSnapshot]) -> dict[str, Any]:
            if snapshot is None:
                raise DocumentNotFoundError(
                    "Document does not exist",
                    operation="store.update",
                    context={"path": normalize_path(path)},
                )
            return {**snapshot.data, **changes}

        self.modify(path, merge)

    def delete(self, path: str) -> bool:
        normalized = normalize_path(path)
        with self._guard("delete", normalized):
            result = self.session.execute(delete(DOCUMENTS).where(DOCUMENTS.c.path == normalized))
        return result.rowcount == 1

    def list_children(self, path: str) -> list[str]:
        """Return the distinct next path segments below ``path``."""

        normalized = normalize_path(path)
        prefix = f"{normalized}/"
        with self._guard("list_children", normalized):
            paths = self.session.execute(
                select(DOCUMENTS.c.path).where(DOCUMENTS.c.path.startswith(prefix, autoescape=True))
            ).scalars().all()
        children = {
            stored[len(prefix):].split("/", 1)[0]
            for stored in paths
            if stored.startswith(prefix)
        }
        return sorted(children)

    def list_documents(self, collection_path: str) -> list[DocumentSnapshot]:
        """Return the documents stored directly under ``collection_path``."""

        normalized = normalize_path(collection_path)
        with self._guard("list_documents", normalized):
            rows = self.session.execute(
                select(DOCUMENTS.c.path, DOCUMENTS.c.data, DOCUMENTS.c.version)
                .where(DOCUMENTS.c.parent_path == normalized)
                .order_by(DOCUMENTS.c.path)
            ).all()
        return [
            DocumentSnapshot(path=row.path, data=dict(row.data or {}), version=row.version)
            for row in rows
        ]

    def commit(self) -> None:
        with self._guard("commit", "*"):
            self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


def open_store(session: Session, settings: Optional[Settings] = None) -> DocumentStore:
    """Store bound to ``session`` with the configured write retry budget."""

    settings = settings or get_settings()
    return DocumentStore(session, max_attempts=settings.write_max_attempts)
