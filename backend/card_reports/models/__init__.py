"""Expose SQLAlchemy models for convenient imports."""

from .document import StoredDocument

__all__ = ["StoredDocument"]
