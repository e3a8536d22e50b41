"""Custom SQLAlchemy column types for multi-database compatibility."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy.dialects import postgresql
from sqlalchemy.types import JSON, TypeDecorator


class JSONDocument(TypeDecorator):
    """JSON object column holding one stored document.

    Uses ``JSONB`` in PostgreSQL and the generic ``JSON`` type elsewhere.
    Values are always mappings; a missing payload reads back as ``{}``.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise TypeError("Stored documents must be JSON objects")
        return dict(value)

    def process_result_value(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return {}
        return dict(value)
