"""
Environment-driven database configuration.

The service runs against PostgreSQL only; every resolved URL is rewritten to
the psycopg 3 driver form SQLAlchemy expects.
"""

from __future__ import annotations

import os
from pathlib import Path

DATABASE_URL_ENV_NAMES = ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL")
CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})

_DRIVER_PREFIXES = (
    "postgres://",
    "postgresql://",
    "postgresql+psycopg2://",
)


class DatabaseConfigError(RuntimeError):
    """Raised when no usable PostgreSQL URL can be resolved."""


def load_env_files(project_root: Path | None = None) -> None:
    """
    Load KEY=VALUE pairs from `.env` then `.env.local`.

    Lines may carry an `export ` prefix. Variables already present in the
    process environment win over file values.
    """

    root = project_root or Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = root / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if line.startswith("export "):
                line = line[len("export ") :].lstrip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key:
                os.environ.setdefault(key, value)


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite any PostgreSQL URL spelling to `postgresql+psycopg://`.
    Non-PostgreSQL URLs are returned unchanged.
    """

    url = url.strip()
    for prefix in _DRIVER_PREFIXES:
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


def require_postgres_url(url: str) -> str:
    normalized = normalize_postgres_url(url)
    if not normalized.startswith("postgresql"):
        scheme = normalized.split(":", 1)[0] or "<empty>"
        raise DatabaseConfigError(f"Only PostgreSQL database URLs are supported (got '{scheme}').")
    return normalized


def resolve_database_url() -> str:
    """
    Resolve the database URL from the environment and optional .env files.

    Priority:
    1) DATABASE_URL
    2) CLOUD_DATABASE_URL when ENVIRONMENT is cloud-like
    3) LOCAL_DATABASE_URL

    Raises:
        DatabaseConfigError: if nothing is configured or the URL is not PostgreSQL.
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL", "").strip()
    if direct_url:
        return require_postgres_url(direct_url)

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    if environment in CLOUD_ENVIRONMENTS and cloud_url:
        return require_postgres_url(cloud_url)

    local_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if local_url:
        return require_postgres_url(local_url)

    raise DatabaseConfigError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )
