"""Pytest configuration and fixtures for PostgreSQL integration tests.

These tests run the real migrations against the database in DATABASE_URL.
`make test-integration` starts a postgres:15 container, exports DATABASE_URL
and sets REQUIRE_DATABASE so a missing database fails the run instead of
skipping it.
"""

import os
import uuid
from typing import Any, Dict, Generator

import pytest
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from database.connection import create_db_engine
from database.migrate import HISTORY_TABLE, migrate
from database.orders import add_item, create_order


def reset_schema(engine: Engine) -> None:
    """Drop everything the migrations create."""
    with engine.begin() as conn:
        conn.execute(text("DROP SCHEMA IF EXISTS app CASCADE"))
        conn.execute(text(f"DROP TABLE IF EXISTS {HISTORY_TABLE}"))


@pytest.fixture(scope="session")
def database_url() -> str:
    """Get the database URL, skipping the suite when it is not configured."""
    url = os.environ.get("DATABASE_URL")
    if not url and os.environ.get("REQUIRE_DATABASE"):
        pytest.fail("REQUIRE_DATABASE is set but DATABASE_URL is not")
    if not url:
        pytest.skip("DATABASE_URL not set; skipping PostgreSQL integration tests")
    return url


@pytest.fixture(scope="session")
def engine(database_url: str) -> Generator[Engine, None, None]:
    """
    Migrate a clean schema for the test session and drop it afterwards.

    Yields:
        Engine connected to the migrated database
    """
    engine = create_db_engine(database_url)
    reset_schema(engine)

    print("\nApplying migrations to test database")
    migrate(engine)

    yield engine

    reset_schema(engine)
    engine.dispose()


@pytest.fixture
def conn(engine: Engine) -> Generator[Connection, None, None]:
    """Connection inside a transaction that is rolled back after the test."""
    with engine.connect() as connection:
        transaction = connection.begin()
        try:
            yield connection
        finally:
            transaction.rollback()


@pytest.fixture
def order(conn: Connection) -> Dict[str, Any]:
    """A fresh pending order with no items."""
    return create_order(
        conn,
        customer_id=uuid.uuid4(),
        customer_email="jane.citizen@example.com",
        customer_name="Jane Citizen",
        shipping_address={"street": "1 George St", "city": "Sydney", "postcode": "2000"},
        currency="AUD",
    )


@pytest.fixture
def add_product(conn: Connection, order: Dict[str, Any]):
    """Factory adding a line item to ``order``."""

    def _add(quantity: int, unit_price: str, **kwargs) -> Dict[str, Any]:
        return add_item(
            conn,
            order["id"],
            product_id=kwargs.pop("product_id", uuid.uuid4()),
            product_sku=kwargs.pop("product_sku", f"SKU-{uuid.uuid4().hex[:8]}"),
            product_name=kwargs.pop("product_name", "Widget"),
            quantity=quantity,
            unit_price=unit_price,
            **kwargs,
        )

    return _add
