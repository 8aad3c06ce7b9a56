"""Data access for orders and their line items.

Every function takes an open SQLAlchemy ``Connection`` and leaves transaction
control to the caller. Order totals are never written here: the
``update_order_total`` trigger recomputes them whenever a line item changes.
"""

import json
import uuid
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Connection

from database.pricing import Money, line_total, to_money

UUIDLike = Union[uuid.UUID, str]

# Status -> timestamp column the valid_status_transitions constraint requires
STATUS_TIMESTAMPS = {
    "pending": None,
    "processing": "processed_at",
    "confirmed": "confirmed_at",
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
    "failed": None,
}


class OrderNotFound(LookupError):
    """Raised when an order id does not exist."""


class ItemNotFound(LookupError):
    """Raised when an order item id does not exist."""


def _as_uuid(value: UUIDLike) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _as_json(value: Optional[Dict[str, Any]]) -> Optional[str]:
    return None if value is None else json.dumps(value)


def create_order(
    conn: Connection,
    customer_id: UUIDLike,
    customer_email: str,
    customer_name: str,
    shipping_address: Dict[str, Any],
    billing_address: Optional[Dict[str, Any]] = None,
    currency: str = "USD",
    payment_method: Optional[str] = None,
    payment_reference: Optional[str] = None,
    notes: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Insert a pending order with no items and return the stored row.

    The database assigns the id, the order number and a zero total. The
    billing address defaults to the shipping address.
    """
    row = conn.execute(
        text(
            """
            INSERT INTO app.orders (
                customer_id, customer_email, customer_name, currency,
                shipping_address, billing_address,
                payment_method, payment_reference, notes, metadata
            )
            VALUES (
                :customer_id, :customer_email, :customer_name, :currency,
                CAST(:shipping_address AS JSONB), CAST(:billing_address AS JSONB),
                :payment_method, :payment_reference, :notes,
                CAST(:metadata AS JSONB)
            )
            RETURNING *
            """
        ),
        {
            "customer_id": _as_uuid(customer_id),
            "customer_email": customer_email,
            "customer_name": customer_name,
            "currency": currency,
            "shipping_address": _as_json(shipping_address),
            "billing_address": _as_json(billing_address or shipping_address),
            "payment_method": payment_method,
            "payment_reference": payment_reference,
            "notes": notes,
            "metadata": _as_json(metadata or {}),
        },
    ).mappings().one()
    return dict(row)


def get_order(conn: Connection, order_id: UUIDLike) -> Dict[str, Any]:
    row = conn.execute(
        text("SELECT * FROM app.orders WHERE id = :order_id"),
        {"order_id": _as_uuid(order_id)},
    ).mappings().one_or_none()
    if row is None:
        raise OrderNotFound(f"Order not found: {order_id}")
    return dict(row)


def list_items(conn: Connection, order_id: UUIDLike) -> List[Dict[str, Any]]:
    rows = conn.execute(
        text(
            "SELECT * FROM app.order_items WHERE order_id = :order_id "
            "ORDER BY item_number"
        ),
        {"order_id": _as_uuid(order_id)},
    ).mappings().all()
    return [dict(row) for row in rows]


def add_item(
    conn: Connection,
    order_id: UUIDLike,
    product_id: UUIDLike,
    product_sku: str,
    product_name: str,
    quantity: int,
    unit_price: Money,
    discount_amount: Money = 0,
    tax_amount: Money = 0,
    product_description: Optional[str] = None,
    weight_kg: Optional[Money] = None,
    dimensions: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Append a line item to an order and return the stored row.

    The parent order row is locked so concurrent inserts on the same order
    get consecutive item numbers instead of colliding on
    ``unique_order_item_number``.

    Raises:
        OrderNotFound: If the order does not exist.
        InvalidLineItem: If the quantity or amounts are out of range.
    """
    total_price = line_total(quantity, unit_price, discount_amount, tax_amount)
    order_uuid = _as_uuid(order_id)

    order = conn.execute(
        text("SELECT id, currency FROM app.orders WHERE id = :order_id FOR UPDATE"),
        {"order_id": order_uuid},
    ).mappings().one_or_none()
    if order is None:
        raise OrderNotFound(f"Order not found: {order_id}")

    item_number = conn.execute(
        text(
            "SELECT COALESCE(MAX(item_number), 0) + 1 FROM app.order_items "
            "WHERE order_id = :order_id"
        ),
        {"order_id": order_uuid},
    ).scalar_one()

    row = conn.execute(
        text(
            """
            INSERT INTO app.order_items (
                order_id, item_number, product_id, product_sku, product_name,
                product_description, quantity, unit_price, discount_amount,
                tax_amount, total_price, currency, weight_kg, dimensions, metadata
            )
            VALUES (
                :order_id, :item_number, :product_id, :product_sku, :product_name,
                :product_description, :quantity, :unit_price, :discount_amount,
                :tax_amount, :total_price, :currency, :weight_kg,
                CAST(:dimensions AS JSONB), CAST(:metadata AS JSONB)
            )
            RETURNING *
            """
        ),
        {
            "order_id": order_uuid,
            "item_number": item_number,
            "product_id": _as_uuid(product_id),
            "product_sku": product_sku,
            "product_name": product_name,
            "product_description": product_description,
            "quantity": quantity,
            "unit_price": to_money(unit_price, "unit_price"),
            "discount_amount": to_money(discount_amount, "discount_amount"),
            "tax_amount": to_money(tax_amount, "tax_amount"),
            "total_price": total_price,
            "currency": order["currency"],
            "weight_kg": weight_kg,
            "dimensions": _as_json(dimensions),
            "metadata": _as_json(metadata or {}),
        },
    ).mappings().one()
    return dict(row)


def update_item(
    conn: Connection,
    item_id: UUIDLike,
    quantity: Optional[int] = None,
    unit_price: Optional[Money] = None,
    discount_amount: Optional[Money] = None,
    tax_amount: Optional[Money] = None,
) -> Dict[str, Any]:
    """Change the pricing fields of a line item and recompute its total.

    Fields left as None keep their stored value.

    Raises:
        ItemNotFound: If the item does not exist.
        InvalidLineItem: If the merged values are out of range.
    """
    item_uuid = _as_uuid(item_id)
    current = conn.execute(
        text(
            "SELECT quantity, unit_price, discount_amount, tax_amount "
            "FROM app.order_items WHERE id = :item_id FOR UPDATE"
        ),
        {"item_id": item_uuid},
    ).mappings().one_or_none()
    if current is None:
        raise ItemNotFound(f"Order item not found: {item_id}")

    values = {
        "quantity": current["quantity"] if quantity is None else quantity,
        "unit_price": current["unit_price"] if unit_price is None else unit_price,
        "discount_amount": (
            current["discount_amount"] if discount_amount is None else discount_amount
        ),
        "tax_amount": current["tax_amount"] if tax_amount is None else tax_amount,
    }
    total_price = line_total(**values)

    row = conn.execute(
        text(
            """
            UPDATE app.order_items
            SET quantity = :quantity,
                unit_price = :unit_price,
                discount_amount = :discount_amount,
                tax_amount = :tax_amount,
                total_price = :total_price
            WHERE id = :item_id
            RETURNING *
            """
        ),
        {
            "item_id": item_uuid,
            "quantity": values["quantity"],
            "unit_price": to_money(values["unit_price"], "unit_price"),
            "discount_amount": to_money(values["discount_amount"], "discount_amount"),
            "tax_amount": to_money(values["tax_amount"], "tax_amount"),
            "total_price": total_price,
        },
    ).mappings().one()
    return dict(row)


def delete_item(conn: Connection, item_id: UUIDLike) -> None:
    """Remove a line item; the parent order total drops accordingly."""
    deleted = conn.execute(
        text("DELETE FROM app.order_items WHERE id = :item_id RETURNING id"),
        {"item_id": _as_uuid(item_id)},
    ).scalar_one_or_none()
    if deleted is None:
        raise ItemNotFound(f"Order item not found: {item_id}")


def transition_status(
    conn: Connection,
    order_id: UUIDLike,
    status: str,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """Move an order to a new status, stamping the matching timestamp column.

    Args:
        conn: Open connection.
        order_id: Order to update.
        status: One of the ``app.order_status`` values.
        reason: Stored as ``cancellation_reason`` when cancelling.

    Raises:
        ValueError: If the status is unknown.
        OrderNotFound: If the order does not exist.
    """
    if status not in STATUS_TIMESTAMPS:
        raise ValueError(
            f"Unknown order status {status!r}, expected one of "
            f"{', '.join(STATUS_TIMESTAMPS)}"
        )

    params = {"order_id": _as_uuid(order_id), "status": status}
    assignments = ["status = CAST(:status AS app.order_status)"]
    timestamp_column = STATUS_TIMESTAMPS[status]
    if timestamp_column:
        assignments.append(f"{timestamp_column} = CURRENT_TIMESTAMP")
    if status == "cancelled":
        assignments.append("cancellation_reason = :reason")
        params["reason"] = reason

    row = conn.execute(
        text(
            f"UPDATE app.orders SET {', '.join(assignments)} "
            "WHERE id = :order_id RETURNING *"
        ),
        params,
    ).mappings().one_or_none()
    if row is None:
        raise OrderNotFound(f"Order not found: {order_id}")
    return dict(row)


def count_by_status(conn: Connection, status: str) -> int:
    return conn.execute(
        text("SELECT app.get_order_count_by_status(CAST(:status AS app.order_status))"),
        {"status": status},
    ).scalar_one()


def top_products(conn: Connection, limit: int = 10) -> List[Dict[str, Any]]:
    rows = conn.execute(
        text("SELECT * FROM app.get_top_products(:limit)"),
        {"limit": limit},
    ).mappings().all()
    return [dict(row) for row in rows]
