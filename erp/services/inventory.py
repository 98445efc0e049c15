from __future__ import annotations

import logging
from typing import Any, Optional

from erp.db import q, q1, x
from erp.services.money import round_won
from erp.utils import iso_today

logger = logging.getLogger(__name__)

STOCK_LOW = "LOW"
STOCK_HIGH = "HIGH"
STOCK_NORMAL = "NORMAL"


def stock_status(current_stock: int, min_stock: int, max_stock: int) -> str:
    if int(current_stock) <= int(min_stock):
        return STOCK_LOW
    if int(current_stock) >= int(max_stock):
        return STOCK_HIGH
    return STOCK_NORMAL


def record_purchase(
    conn,
    item_id: int,
    quantity: int,
    unit_cost: int,
) -> dict:
    """
    Blend one purchase into the item's running weighted-average cost.

    Must run inside the same transaction as the purchase insert. Stock only ever
    grows here; sales do not decrement it.
    """
    if int(quantity) <= 0:
        raise ValueError("Purchase quantity must be > 0.")

    today = iso_today()
    existing = q1(conn, "SELECT * FROM inventory WHERE item_id=?", (int(item_id),))

    if existing is None:
        x(
            conn,
            """
            INSERT INTO inventory (item_id, current_stock, avg_purchase_cost, last_purchase_date)
            VALUES (?, ?, ?, ?)
            """,
            (int(item_id), int(quantity), round_won(unit_cost), today),
        )
        return {"current_stock": int(quantity), "avg_purchase_cost": round_won(unit_cost)}

    # Negative stock (manual corrections) contributes nothing to the blend, so
    # new_stock is never below the incoming quantity.
    base_stock = max(int(existing["current_stock"]), 0)
    new_stock = base_stock + int(quantity)
    new_avg = round_won(
        (int(existing["avg_purchase_cost"]) * base_stock + int(unit_cost) * int(quantity)) / new_stock
    )
    if base_stock != int(existing["current_stock"]):
        logger.warning(
            "Item %s had negative stock (%s); restarting its average cost from this purchase.",
            item_id,
            existing["current_stock"],
        )

    x(
        conn,
        """
        UPDATE inventory
        SET current_stock=?, avg_purchase_cost=?, last_purchase_date=?
        WHERE item_id=?
        """,
        (int(new_stock), int(new_avg), today, int(item_id)),
    )
    return {"current_stock": int(new_stock), "avg_purchase_cost": int(new_avg)}


def set_limits(conn, item_id: int, min_stock: int, max_stock: int) -> None:
    if int(min_stock) < 0 or int(max_stock) < 0:
        raise ValueError("Stock limits must be >= 0.")
    if int(min_stock) > int(max_stock):
        raise ValueError("Minimum stock cannot exceed maximum stock.")

    if q1(conn, "SELECT id FROM items WHERE id=?", (int(item_id),)) is None:
        raise ValueError("Item not found.")

    x(
        conn,
        """
        INSERT INTO inventory (item_id, current_stock, avg_purchase_cost, min_stock, max_stock)
        VALUES (?, 0, 0, ?, ?)
        ON CONFLICT(item_id) DO UPDATE SET min_stock=excluded.min_stock, max_stock=excluded.max_stock
        """,
        (int(item_id), int(min_stock), int(max_stock)),
    )


def _with_status(row) -> dict[str, Any]:
    d = dict(row)
    d["stock_status"] = stock_status(d["current_stock"], d["min_stock"], d["max_stock"])
    return d


def list_inventory(conn) -> list[dict[str, Any]]:
    rows = q(
        conn,
        """
        SELECT inv.*,
               i.name AS item_name,
               i.code AS item_code,
               i.category AS item_category,
               i.standard_price
        FROM inventory inv
        JOIN items i ON i.id = inv.item_id
        WHERE i.is_active = 1
        ORDER BY inv.current_stock ASC, i.name
        """,
    )
    return [_with_status(r) for r in rows]


def get_inventory(conn, item_id: int) -> Optional[dict[str, Any]]:
    row = q1(
        conn,
        """
        SELECT inv.*, i.name AS item_name, i.code AS item_code
        FROM inventory inv
        JOIN items i ON i.id = inv.item_id
        WHERE inv.item_id=?
        """,
        (int(item_id),),
    )
    return _with_status(row) if row is not None else None


def low_stock_items(conn) -> list[dict[str, Any]]:
    return [r for r in list_inventory(conn) if r["stock_status"] == STOCK_LOW]
