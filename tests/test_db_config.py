"""
tests/test_db_config.py

Database URL resolution and .env loading.
"""

from __future__ import annotations

import os

import pytest

from db import config
from db.config import DatabaseConfigError, load_env_files, normalize_postgres_url, resolve_database_url


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (*config.DATABASE_URL_ENV_NAMES, "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "load_env_files", lambda project_root=None: None)


@pytest.mark.parametrize(
    "url",
    [
        "postgres://u:p@db/games",
        "postgresql://u:p@db/games",
        "postgresql+psycopg2://u:p@db/games",
        "postgresql+psycopg://u:p@db/games",
    ],
)
def test_normalize_to_psycopg(url: str) -> None:
    assert normalize_postgres_url(url) == "postgresql+psycopg://u:p@db/games"


def test_direct_url_wins(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgres://u@direct/games")
    monkeypatch.setenv("LOCAL_DATABASE_URL", "postgres://u@local/games")
    assert resolve_database_url() == "postgresql+psycopg://u@direct/games"


def test_cloud_url_only_in_cloud_environments(monkeypatch) -> None:
    monkeypatch.setenv("CLOUD_DATABASE_URL", "postgres://u@cloud/games")
    monkeypatch.setenv("LOCAL_DATABASE_URL", "postgres://u@local/games")
    assert resolve_database_url() == "postgresql+psycopg://u@local/games"

    monkeypatch.setenv("ENVIRONMENT", "Production")
    assert resolve_database_url() == "postgresql+psycopg://u@cloud/games"


def test_sqlite_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:///games.db")
    with pytest.raises(DatabaseConfigError, match="sqlite"):
        resolve_database_url()


def test_nothing_configured() -> None:
    with pytest.raises(DatabaseConfigError, match="No database URL"):
        resolve_database_url()


def test_env_files_do_not_override_process_env(tmp_path, monkeypatch) -> None:
    (tmp_path / ".env").write_text(
        "# comment\nexport IMPORT_TEST_A='from-file'\nIMPORT_TEST_B=\"quoted\"\nnot a pair\n",
        encoding="utf-8",
    )
    (tmp_path / ".env.local").write_text("IMPORT_TEST_B=local\n", encoding="utf-8")
    monkeypatch.setenv("IMPORT_TEST_A", "from-process")
    monkeypatch.setenv("IMPORT_TEST_B", "")
    monkeypatch.delenv("IMPORT_TEST_B")

    load_env_files(tmp_path)

    assert os.environ["IMPORT_TEST_A"] == "from-process"
    assert os.environ["IMPORT_TEST_B"] == "quoted"
