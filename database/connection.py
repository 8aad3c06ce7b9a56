"""Database URL resolution and engine creation."""

import json
from functools import lru_cache
from typing import Any, Dict, Optional

import boto3
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine

DRIVER = "postgresql+psycopg"
DEFAULT_PORT = 5432


@lru_cache(maxsize=1)
def _get_secrets_client():
    """Get or initialise the Secrets Manager client (cached)."""
    return boto3.client("secretsmanager")


def normalize_database_url(url: str) -> str:
    """Force the psycopg (v3) driver on Postgres URLs."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", f"{DRIVER}://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", f"{DRIVER}://", 1)
    return url


def url_from_secret_payload(payload: Dict[str, Any], database: Optional[str] = None) -> URL:
    """Build a SQLAlchemy URL from an RDS credentials secret.

    Secrets attached to an RDS instance carry ``host``, ``port`` and
    ``dbname`` next to ``username`` and ``password``.
    """
    missing = [key for key in ("username", "password", "host") if not payload.get(key)]
    if missing:
        raise ValueError(f"Secret is missing required keys: {', '.join(missing)}")

    return URL.create(
        DRIVER,
        username=payload["username"],
        password=payload["password"],
        host=payload["host"],
        port=int(payload.get("port") or DEFAULT_PORT),
        database=database or payload.get("dbname"),
    )


def database_url_from_secret(secret_arn: str, database: Optional[str] = None) -> URL:
    """Read RDS credentials from Secrets Manager and return a connection URL."""
    response = _get_secrets_client().get_secret_value(SecretId=secret_arn)
    return url_from_secret_payload(json.loads(response["SecretString"]), database)


def create_db_engine(url, echo: bool = False) -> Engine:
    """Create an engine for a URL string or ``URL`` object."""
    if isinstance(url, str):
        url = normalize_database_url(url)
    return create_engine(url, echo=echo, pool_pre_ping=True, future=True)
