"""Hierarchical JSON documents addressed by slash-separated paths."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, func

from ..database import Base
from ..db_types import JSONDocument


class StoredDocument(Base):
    """A single document in the path hierarchy.

    ``parent_path`` is the path without its last segment and ``document_id`` is
    that last segment. ``version`` increases by one on every write and backs the
    optimistic compare-and-set used by the report writers.
    """

    __tablename__ = "documents"

    path = Column(String(512), primary_key=True)
    parent_path = Column(String(512), nullable=False, index=True)
    document_id = Column(String(255), nullable=False)
    data = Column(JSONDocument(), nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
