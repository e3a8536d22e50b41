from __future__ import annotations

from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect, text

from backend.card_reports.database import Base
from backend.card_reports.migrations import build_alembic_config, run_database_migrations


def _current_head() -> str:
    return ScriptDirectory.from_config(build_alembic_config()).get_current_head()


def _stored_version(url: str) -> str:
    engine = create_engine(url, connect_args={"check_same_thread": False})
    try:
        with engine.connect() as connection:
            return connection.scalar(text("SELECT version_num FROM alembic_version"))
    finally:
        engine.dispose()


def test_run_database_migrations_creates_the_document_store(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'fresh.db'}"

    run_database_migrations(url)

    engine = create_engine(url, connect_args={"check_same_thread": False})
    inspector = inspect(engine)
    assert inspector.has_table("documents")
    assert "ix_documents_parent_path" in {
        index["name"] for index in inspector.get_indexes("documents")
    }
    engine.dispose()
    assert _stored_version(url) == _current_head()


def test_run_database_migrations_upgrades_existing_database(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    engine = create_engine(url, connect_args={"check_same_thread": False})
    with engine.begin() as connection:
        connection.execute(text("CREATE TABLE legacy_table (id INTEGER PRIMARY KEY)"))
    engine.dispose()

    run_database_migrations(url)

    engine = create_engine(url, connect_args={"check_same_thread": False})
    tables = inspect(engine).get_table_names()
    engine.dispose()
    assert "legacy_table" in tables
    assert "documents" in tables
    assert _stored_version(url) == _current_head()


def test_run_database_migrations_stamps_head_for_current_schema(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'current.db'}"
    engine = create_engine(url, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    engine.dispose()

    run_database_migrations(url)
    run_database_migrations(url)

    assert _stored_version(url) == _current_head()


def test_build_alembic_config_prefers_the_explicit_url(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:///ignored.db")

    config = build_alembic_config("sqlite:///explicit.db")

    assert config.get_main_option("sqlalchemy.url") == "sqlite:///explicit.db"
    assert config.get_main_option("script_location").endswith("alembic")
