"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .database import get_db
from .errors import ConfigurationError
from .services.document_store import DocumentStore, open_store
from .services.notifications import ReportNotifier, build_notification_client

LOGGER = logging.getLogger(__name__)


def get_report_settings() -> Settings:
    return get_settings()


def get_store(
    db: Session = Depends(get_db), settings: Settings = Depends(get_report_settings)
) -> DocumentStore:
    return open_store(db, settings)


def get_notifier(settings: Settings = Depends(get_report_settings)) -> Optional[ReportNotifier]:
    """Notifier for the configured transport, or ``None`` when it is misconfigured."""

    try:
        return ReportNotifier(build_notification_client(settings))
    except ConfigurationError as exc:
        LOGGER.error("Notifications disabled: %s", exc)
        return None
