from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("ENABLE_REPORT_DELIVERY", "0")
os.environ.setdefault("ENABLE_REPORT_RECALCULATION", "0")

from backend.card_reports.config import Settings, get_settings
from backend.card_reports.database import Base, get_db
from backend.card_reports.dependencies import get_notifier, get_report_settings
from backend.card_reports.main import app
from backend.card_reports.services.calendar import get_calendar_info
from backend.card_reports.services.document_store import DocumentStore
from backend.card_reports.services.notifications import (
    ConsoleNotificationClient,
    ReportNotifier,
)
from backend.card_reports.services.report_paths import details_path

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def store(db_session: Session) -> DocumentStore:
    return DocumentStore(db_session)


@pytest.fixture
def console_client() -> ConsoleNotificationClient:
    return ConsoleNotificationClient()


@pytest.fixture
def notifier(console_client: ConsoleNotificationClient) -> ReportNotifier:
    return ReportNotifier(console_client)


@pytest.fixture
def seed_record(store: DocumentStore, settings: Settings):
    """Store a raw card usage document and return its path."""

    counter = {"value": 0}

    def _seed(
        day: date,
        amount,
        *,
        is_active: bool = True,
        sequence: Optional[str] = None,
        term: Optional[int] = None,
    ) -> str:
        info = get_calendar_info(day, settings.report_timezone)
        counter["value"] += 1
        path = details_path(
            info.year,
            info.month,
            term if term is not None else info.term,
            info.day,
            sequence or f"{info.timestamp + counter['value']}",
        )
        store.create(
            path,
            {
                "amount": amount,
                "datetime_of_use": f"{day.isoformat()}T12:00:00+09:00",
                "is_active": is_active,
                "where_to_use": "Coffee shop",
            },
        )
        return path

    return _seed


@pytest.fixture
def client(
    db_session: Session,
    settings: Settings,
    notifier: ReportNotifier,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    monkeypatch.setattr("backend.card_reports.main.ensure_database_is_ready", lambda: None)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_report_settings] = lambda: settings
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
