"""Unit tests for order data access with a mocked connection."""

import json
import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from database.orders import (
    ItemNotFound,
    OrderNotFound,
    add_item,
    count_by_status,
    create_order,
    delete_item,
    get_order,
    transition_status,
    update_item,
)
from database.pricing import InvalidLineItem

ORDER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
ITEM_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
PRODUCT_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
CUSTOMER_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")
ADDRESS = {"street": "1 George St", "city": "Sydney", "postcode": "2000"}


def make_result(one=None, one_or_none=None, scalar=None):
    """Build a mock SQLAlchemy Result."""
    result = MagicMock()
    result.mappings.return_value.one.return_value = one
    result.mappings.return_value.one_or_none.return_value = one_or_none
    result.scalar_one.return_value = scalar
    result.scalar_one_or_none.return_value = scalar
    return result


@pytest.fixture
def conn():
    """Create a mock connection."""
    return MagicMock()


def executed(conn, index):
    """Return (sql, params) of the index-th execute call."""
    statement, params = conn.execute.call_args_list[index].args
    return str(statement), params


def test_create_order(conn):
    """Test a pending order is inserted with JSON addresses."""
    conn.execute.return_value = make_result(
        one={"id": ORDER_ID, "order_number": "ORD-20260101-000001"}
    )

    order = create_order(
        conn,
        customer_id=str(CUSTOMER_ID),
        customer_email="jane@example.com",
        customer_name="Jane Citizen",
        shipping_address=ADDRESS,
    )

    assert order["order_number"] == "ORD-20260101-000001"
    sql, params = executed(conn, 0)
    assert "INSERT INTO app.orders" in sql
    assert "RETURNING *" in sql
    assert params["customer_id"] == CUSTOMER_ID
    assert params["currency"] == "USD"
    assert json.loads(params["shipping_address"]) == ADDRESS
    # Billing address defaults to shipping
    assert json.loads(params["billing_address"]) == ADDRESS
    assert json.loads(params["metadata"]) == {}


def test_get_order_not_found(conn):
    """Test a missing order raises OrderNotFound."""
    conn.execute.return_value = make_result(one_or_none=None)

    with pytest.raises(OrderNotFound):
        get_order(conn, ORDER_ID)


def test_add_item(conn):
    """Test the order is locked, numbered and the line total computed."""
    conn.execute.side_effect = [
        make_result(one_or_none={"id": ORDER_ID, "currency": "AUD"}),
        make_result(scalar=3),
        make_result(one={"id": ITEM_ID, "item_number": 3}),
    ]

    item = add_item(
        conn,
        ORDER_ID,
        product_id=PRODUCT_ID,
        product_sku="SKU-1",
        product_name="Widget",
        quantity=2,
        unit_price="10.00",
        tax_amount="1.50",
    )

    assert item["item_number"] == 3
    lock_sql, _ = executed(conn, 0)
    assert "FOR UPDATE" in lock_sql

    insert_sql, params = executed(conn, 2)
    assert "INSERT INTO app.order_items" in insert_sql
    assert params["item_number"] == 3
    assert params["total_price"] == Decimal("21.50")
    assert params["unit_price"] == Decimal("10.00")
    assert params["discount_amount"] == Decimal("0.00")
    assert params["currency"] == "AUD"


def test_add_item_missing_order(conn):
    """Test adding to a missing order raises OrderNotFound."""
    conn.execute.return_value = make_result(one_or_none=None)

    with pytest.raises(OrderNotFound):
        add_item(
            conn,
            ORDER_ID,
            product_id=PRODUCT_ID,
            product_sku="SKU-1",
            product_name="Widget",
            quantity=1,
            unit_price="1.00",
        )

    assert conn.execute.call_count == 1


def test_add_item_invalid_values_never_touch_the_database(conn):
    """Test invalid line values are rejected before any SQL runs."""
    with pytest.raises(InvalidLineItem):
        add_item(
            conn,
            ORDER_ID,
            product_id=PRODUCT_ID,
            product_sku="SKU-1",
            product_name="Widget",
            quantity=0,
            unit_price="1.00",
        )

    conn.execute.assert_not_called()


def test_update_item_merges_stored_values(conn):
    """Test unchanged fields keep their stored values."""
    conn.execute.side_effect = [
        make_result(
            one_or_none={
                "quantity": 2,
                "unit_price": Decimal("10.00"),
                "discount_amount": Decimal("0.00"),
                "tax_amount": Decimal("0.00"),
            }
        ),
        make_result(one={"id": ITEM_ID, "quantity": 5}),
    ]

    update_item(conn, ITEM_ID, quantity=5, discount_amount="2.00")

    sql, params = executed(conn, 1)
    assert "UPDATE app.order_items" in sql
    assert params["quantity"] == 5
    assert params["unit_price"] == Decimal("10.00")
    assert params["discount_amount"] == Decimal("2.00")
    assert params["total_price"] == Decimal("48.00")


def test_update_item_not_found(conn):
    """Test updating a missing item raises ItemNotFound."""
    conn.execute.return_value = make_result(one_or_none=None)

    with pytest.raises(ItemNotFound):
        update_item(conn, ITEM_ID, quantity=1)


def test_delete_item(conn):
    """Test deleting an existing item."""
    conn.execute.return_value = make_result(scalar=ITEM_ID)

    delete_item(conn, ITEM_ID)

    sql, params = executed(conn, 0)
    assert "DELETE FROM app.order_items" in sql
    assert params == {"item_id": ITEM_ID}


def test_delete_item_not_found(conn):
    """Test deleting a missing item raises ItemNotFound."""
    conn.execute.return_value = make_result(scalar=None)

    with pytest.raises(ItemNotFound):
        delete_item(conn, ITEM_ID)


def test_transition_status_sets_timestamp(conn):
    """Test the status timestamp column is stamped."""
    conn.execute.return_value = make_result(one_or_none={"id": ORDER_ID})

    transition_status(conn, ORDER_ID, "shipped")

    sql, params = executed(conn, 0)
    assert "shipped_at = CURRENT_TIMESTAMP" in sql
    assert "cancellation_reason" not in sql
    assert params == {"order_id": ORDER_ID, "status": "shipped"}


def test_transition_status_cancelled_records_reason(conn):
    """Test cancelling stores the reason."""
    conn.execute.return_value = make_result(one_or_none={"id": ORDER_ID})

    transition_status(conn, ORDER_ID, "cancelled", reason="customer request")

    sql, params = executed(conn, 0)
    assert "cancelled_at = CURRENT_TIMESTAMP" in sql
    assert params["reason"] == "customer request"


def test_transition_status_failed_has_no_timestamp(conn):
    """Test failed orders only change status."""
    conn.execute.return_value = make_result(one_or_none={"id": ORDER_ID})

    transition_status(conn, ORDER_ID, "failed")

    sql, _ = executed(conn, 0)
    assert "_at = CURRENT_TIMESTAMP" not in sql


def test_transition_status_unknown(conn):
    """Test an unknown status is rejected before any SQL runs."""
    with pytest.raises(ValueError, match="Unknown order status"):
        transition_status(conn, ORDER_ID, "lost")

    conn.execute.assert_not_called()


def test_transition_status_missing_order(conn):
    """Test a missing order raises OrderNotFound."""
    conn.execute.return_value = make_result(one_or_none=None)

    with pytest.raises(OrderNotFound):
        transition_status(conn, ORDER_ID, "processing")


def test_count_by_status(conn):
    """Test the reporting function result is returned."""
    conn.execute.return_value = make_result(scalar=4)

    assert count_by_status(conn, "pending") == 4
    sql, params = executed(conn, 0)
    assert "app.get_order_count_by_status" in sql
    assert params == {"status": "pending"}
