"""
Database connection helper.

Resolves DATABASE_URL from configuration, or from the Dapr secret store
(reading the workflow-builder-secrets K8s secret) when it is not set
directly. The URL is cached after the first lookup.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

import psycopg2
import requests

from core.config import config

logger = logging.getLogger(__name__)

# Cached connection string (fetched once)
_database_url: str | None = None


def get_database_url() -> str:
    """
    Return the PostgreSQL connection string.

    Raises:
        RuntimeError: If the secret cannot be fetched
    """
    global _database_url
    if _database_url is not None:
        return _database_url

    if config.DATABASE_URL:
        _database_url = config.DATABASE_URL
        return _database_url

    url = (
        f"http://{config.DAPR_HOST}:{config.DAPR_HTTP_PORT}"
        f"/v1.0/secrets/{config.SECRET_STORE_NAME}/{config.DATABASE_SECRET_NAME}"
    )

    try:
        response = requests.get(url, timeout=10)
        response.raise_for_status()
        secrets = response.json()
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"Failed to fetch DATABASE_URL from Dapr secrets: {e}") from e

    db_url = secrets.get("DATABASE_URL")
    if not db_url:
        raise RuntimeError(
            f"DATABASE_URL not found in secret '{config.DATABASE_SECRET_NAME}' "
            f"from store '{config.SECRET_STORE_NAME}'"
        )

    _database_url = db_url
    logger.info("[Database] Fetched DATABASE_URL from Dapr secrets")
    return db_url


@contextmanager
def connect() -> Iterator["psycopg2.extensions.connection"]:
    """Open a connection, commit on success, roll back on error, always close."""
    conn = psycopg2.connect(get_database_url())
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
