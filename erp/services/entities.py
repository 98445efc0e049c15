from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Optional

from erp.db import q, q1, x, x_count
from erp.errors import EntityResolutionError
from erp.utils import clean_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityKind:
    kind: str
    table: str
    columns: tuple[str, ...]
    defaults: tuple[tuple[str, Any], ...] = ()


CUSTOMER = EntityKind(
    kind="customer",
    table="customers",
    columns=("name", "business_number", "contact_person", "phone", "email", "address"),
)
SUPPLIER = EntityKind(
    kind="supplier",
    table="suppliers",
    columns=("name", "business_number", "contact_person", "phone", "email", "address", "payment_terms", "notes"),
    defaults=(("payment_terms", "현금"),),
)
ITEM = EntityKind(
    kind="item",
    table="items",
    columns=("code", "name", "category", "unit", "standard_price", "description"),
    defaults=(("category", "전자부품"), ("unit", "개"), ("standard_price", 0)),
)

KINDS = {k.kind: k for k in (CUSTOMER, SUPPLIER, ITEM)}


def _kind(kind: str) -> EntityKind:
    try:
        return KINDS[str(kind).strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {kind!r}. Use one of {sorted(KINDS)}.")


def _row_values(ek: EntityKind, fields: dict[str, Any]) -> list[Any]:
    values = dict(ek.defaults)
    for col in ek.columns:
        v = fields.get(col)
        if isinstance(v, str):
            v = v.strip() or None
        if v is not None:
            values[col] = v
    return [values.get(col) for col in ek.columns]


def _insert(conn, ek: EntityKind, fields: dict[str, Any]) -> int:
    cols = ", ".join(ek.columns)
    marks = ", ".join("?" for _ in ek.columns)
    return x(conn, f"INSERT INTO {ek.table} ({cols}) VALUES ({marks})", _row_values(ek, fields))


def get_by_natural_key(conn, kind: str, name: str) -> Optional[sqlite3.Row]:
    ek = _kind(kind)
    key = clean_text(name)
    if key is None:
        return None
    return q1(conn, f"SELECT * FROM {ek.table} WHERE name=?", (key,))


def resolve(conn, kind: str, name: str, **fields: Any) -> int:
    """
    Return the id of the entity called `name`, creating it on first reference.

    The insert is attempted first; a UNIQUE conflict falls back to a lookup by
    name, so resolving the same name again (same or later import) yields the
    same id and never creates a second row. Any other failure is raised as
    EntityResolutionError.
    """
    ek = _kind(kind)
    key = clean_text(name)
    if key is None:
        raise EntityResolutionError(ek.kind, name, "name is required")

    try:
        return _insert(conn, ek, {**fields, "name": key})
    except sqlite3.IntegrityError as e:
        if "UNIQUE" not in str(e):
            raise EntityResolutionError(ek.kind, key, str(e)) from e
        existing = get_by_natural_key(conn, ek.kind, key)
        if existing is None:
            # Conflict was on another unique column (item code), not the name.
            raise EntityResolutionError(ek.kind, key, str(e)) from e
        logger.debug("%s '%s' already exists as id %s", ek.kind, key, existing["id"])
        return int(existing["id"])


# -------------------------
# Customers
# -------------------------

def _require_name(name: Optional[str], label: str) -> str:
    key = clean_text(name)
    if key is None:
        raise ValueError(f"{label} name is required.")
    return key


def _name_taken(conn, table: str, name: str, exclude_id: Optional[int] = None) -> bool:
    if exclude_id is None:
        row = q1(conn, f"SELECT id FROM {table} WHERE name=?", (name,))
    else:
        row = q1(conn, f"SELECT id FROM {table} WHERE name=? AND id<>?", (name, int(exclude_id)))
    return row is not None


def add_customer(conn, **fields: Any) -> int:
    name = _require_name(fields.get("name"), "Customer")
    if _name_taken(conn, "customers", name):
        raise ValueError(f"Customer '{name}' already exists.")
    return _insert(conn, CUSTOMER, {**fields, "name": name})


def update_customer(conn, customer_id: int, **fields: Any) -> None:
    name = _require_name(fields.get("name"), "Customer")
    if _name_taken(conn, "customers", name, exclude_id=customer_id):
        raise ValueError(f"Customer '{name}' already exists.")
    values = _row_values(CUSTOMER, {**fields, "name": name})
    sets = ", ".join(f"{c}=?" for c in CUSTOMER.columns)
    if x_count(conn, f"UPDATE customers SET {sets} WHERE id=?", (*values, int(customer_id))) == 0:
        raise ValueError("Customer not found.")


def delete_customer(conn, customer_id: int) -> None:
    used = q1(conn, "SELECT COUNT(1) AS n FROM sales WHERE customer_id=?", (int(customer_id),))
    if used and int(used["n"]) > 0:
        raise ValueError("Customers with sales records cannot be deleted.")
    if x_count(conn, "DELETE FROM customers WHERE id=?", (int(customer_id),)) == 0:
        raise ValueError("Customer not found.")


def list_customers(conn):
    return q(
        conn,
        """
        SELECT c.*,
               COUNT(s.id) AS total_transactions,
               COALESCE(SUM(s.total_amount), 0) AS total_sales,
               COALESCE(SUM(s.profit_amount), 0) AS total_profit
        FROM customers c
        LEFT JOIN sales s ON s.customer_id = c.id
        GROUP BY c.id
        ORDER BY c.name
        """,
    )


# -------------------------
# Suppliers
# -------------------------

def add_supplier(conn, **fields: Any) -> int:
    name = _require_name(fields.get("name"), "Supplier")
    if _name_taken(conn, "suppliers", name):
        raise ValueError(f"Supplier '{name}' already exists.")
    return _insert(conn, SUPPLIER, {**fields, "name": name})


def update_supplier(conn, supplier_id: int, **fields: Any) -> None:
    name = _require_name(fields.get("name"), "Supplier")
    if _name_taken(conn, "suppliers", name, exclude_id=supplier_id):
        raise ValueError(f"Supplier '{name}' already exists.")
    values = _row_values(SUPPLIER, {**fields, "name": name})
    sets = ", ".join(f"{c}=?" for c in SUPPLIER.columns)
    if x_count(conn, f"UPDATE suppliers SET {sets} WHERE id=?", (*values, int(supplier_id))) == 0:
        raise ValueError("Supplier not found.")


def delete_supplier(conn, supplier_id: int) -> None:
    # Soft delete: purchases keep pointing at the row.
    if x_count(conn, "UPDATE suppliers SET is_active=0 WHERE id=?", (int(supplier_id),)) == 0:
        raise ValueError("Supplier not found.")


def list_suppliers(conn):
    return q(
        conn,
        """
        SELECT sup.*,
               COUNT(p.id) AS total_transactions,
               COALESCE(SUM(p.total_amount), 0) AS total_purchases,
               COALESCE(ROUND(AVG(p.unit_cost)), 0) AS avg_unit_cost,
               MAX(p.purchase_date) AS last_purchase_date
        FROM suppliers sup
        LEFT JOIN purchases p ON p.supplier_id = sup.id
        WHERE sup.is_active = 1
        GROUP BY sup.id
        ORDER BY sup.name
        """,
    )


# -------------------------
# Items
# -------------------------

def _code_taken(conn, code: Optional[str], exclude_id: Optional[int] = None) -> bool:
    code = clean_text(code)
    if code is None:
        return False
    if exclude_id is None:
        return q1(conn, "SELECT id FROM items WHERE code=?", (code,)) is not None
    return q1(conn, "SELECT id FROM items WHERE code=? AND id<>?", (code, int(exclude_id))) is not None


def add_item(conn, **fields: Any) -> int:
    name = _require_name(fields.get("name"), "Item")
    if _code_taken(conn, fields.get("code")):
        raise ValueError(f"Item code '{fields.get('code')}' already exists.")
    if _name_taken(conn, "items", name):
        raise ValueError(f"Item '{name}' already exists.")
    return _insert(conn, ITEM, {**fields, "name": name})


def update_item(conn, item_id: int, **fields: Any) -> None:
    name = _require_name(fields.get("name"), "Item")
    if _code_taken(conn, fields.get("code"), exclude_id=item_id):
        raise ValueError(f"Item code '{fields.get('code')}' already exists.")
    if _name_taken(conn, "items", name, exclude_id=item_id):
        raise ValueError(f"Item '{name}' already exists.")
    values = _row_values(ITEM, {**fields, "name": name})
    sets = ", ".join(f"{c}=?" for c in ITEM.columns)
    if x_count(conn, f"UPDATE items SET {sets} WHERE id=?", (*values, int(item_id))) == 0:
        raise ValueError("Item not found.")


def delete_item(conn, item_id: int) -> None:
    used = q1(
        conn,
        """
        SELECT (SELECT COUNT(1) FROM sales WHERE item_id=?)
             + (SELECT COUNT(1) FROM purchases WHERE item_id=?) AS n
        """,
        (int(item_id), int(item_id)),
    )
    if used and int(used["n"]) > 0:
        raise ValueError("Items with sales or purchase records cannot be deleted.")
    if x_count(conn, "DELETE FROM items WHERE id=?", (int(item_id),)) == 0:
        raise ValueError("Item not found.")


def list_items(conn):
    return q(
        conn,
        """
        SELECT i.*,
               COUNT(s.id) AS total_transactions,
               COALESCE(SUM(s.quantity), 0) AS total_quantity_sold,
               COALESCE(SUM(s.total_amount), 0) AS total_revenue,
               COALESCE(SUM(s.profit_amount), 0) AS total_profit
        FROM items i
        LEFT JOIN sales s ON s.item_id = i.id
        WHERE i.is_active = 1
        GROUP BY i.id
        ORDER BY i.name
        """,
    )


def next_item_code(conn, prefix: str = "ITEM-") -> str:
    """Next free sequential code, e.g. ITEM-001, ITEM-002 ... (gaps are not reused)."""
    highest = 0
    for r in q(conn, "SELECT code FROM items WHERE code LIKE ?", (prefix + "%",)):
        suffix = str(r["code"])[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:03d}"
