from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from erp.db import q, q1, transaction, x, x_count
from erp.services.inventory import record_purchase
from erp.services.money import PurchaseFigures, purchase_figures
from erp.utils import clean_text

PURCHASE_STATUSES = ("ordered", "received", "cancelled")


@dataclass
class PurchaseResult:
    purchase_id: int
    figures: PurchaseFigures
    current_stock: int
    avg_purchase_cost: int


def _normalize_status(status: Optional[str]) -> str:
    if not status:
        return "ordered"
    s = str(status).strip().lower()
    if s in PURCHASE_STATUSES:
        return s
    raise ValueError(f"Invalid status. Use one of: {', '.join(PURCHASE_STATUSES)}.")


def _validate_quantity(quantity) -> int:
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise ValueError("Quantity must be a whole number.")
    if qty <= 0:
        raise ValueError("Quantity must be > 0.")
    return qty


def _require_refs(conn, supplier_id: int, item_id: int) -> None:
    if q1(conn, "SELECT id FROM suppliers WHERE id=?", (int(supplier_id),)) is None:
        raise ValueError("Supplier not found.")
    if q1(conn, "SELECT id FROM items WHERE id=?", (int(item_id),)) is None:
        raise ValueError("Item not found.")


def create_purchase(
    conn,
    *,
    supplier_id: int,
    item_id: int,
    purchase_date: str,
    quantity: int,
    unit_cost: int,
    vat_amount: int = 0,
    expected_sale_price: Optional[int] = None,
    invoice_number: Optional[str] = None,
    status: Optional[str] = None,
    notes: Optional[str] = None,
) -> PurchaseResult:
    """
    Insert a purchase and fold it into the item's inventory in one transaction.

    Inside an already-open transaction (an import batch) this becomes a
    savepoint, so the purchase row and the ledger update succeed or fail
    together.
    """
    qty = _validate_quantity(quantity)
    if not purchase_date:
        raise ValueError("Purchase date is required.")
    status_value = _normalize_status(status)

    f = purchase_figures(
        unit_cost=unit_cost,
        quantity=qty,
        vat=vat_amount or 0,
        expected_sale_price=expected_sale_price or 0,
    )

    with transaction(conn):
        _require_refs(conn, supplier_id, item_id)
        purchase_id = x(
            conn,
            """
            INSERT INTO purchases (
                supplier_id, item_id, purchase_date, quantity, unit_cost,
                supply_amount, vat_amount, total_amount, expected_sale_price,
                expected_margin, invoice_number, status, notes
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(supplier_id),
                int(item_id),
                str(purchase_date),
                qty,
                f.unit_cost,
                f.supply_amount,
                f.vat_amount,
                f.total_amount,
                f.expected_sale_price,
                f.expected_margin,
                clean_text(invoice_number),
                status_value,
                clean_text(notes),
            ),
        )
        ledger = record_purchase(conn, int(item_id), qty, f.unit_cost)

    return PurchaseResult(
        purchase_id=int(purchase_id),
        figures=f,
        current_stock=int(ledger["current_stock"]),
        avg_purchase_cost=int(ledger["avg_purchase_cost"]),
    )


def update_purchase(
    conn,
    purchase_id: int,
    *,
    supplier_id: int,
    item_id: int,
    purchase_date: str,
    quantity: int,
    unit_cost: int,
    vat_amount: int = 0,
    expected_sale_price: Optional[int] = None,
    invoice_number: Optional[str] = None,
    status: Optional[str] = None,
    notes: Optional[str] = None,
) -> PurchaseFigures:
    # Recomputes the purchase's own figures; the inventory ledger is not replayed.
    qty = _validate_quantity(quantity)
    status_value = _normalize_status(status)
    _require_refs(conn, supplier_id, item_id)

    f = purchase_figures(
        unit_cost=unit_cost,
        quantity=qty,
        vat=vat_amount or 0,
        expected_sale_price=expected_sale_price or 0,
    )
    n = x_count(
        conn,
        """
        UPDATE purchases
        SET supplier_id=?, item_id=?, purchase_date=?, quantity=?, unit_cost=?,
            supply_amount=?, vat_amount=?, total_amount=?, expected_sale_price=?,
            expected_margin=?, invoice_number=?, status=?, notes=?
        WHERE id=?
        """,
        (
            int(supplier_id),
            int(item_id),
            str(purchase_date),
            qty,
            f.unit_cost,
            f.supply_amount,
            f.vat_amount,
            f.total_amount,
            f.expected_sale_price,
            f.expected_margin,
            clean_text(invoice_number),
            status_value,
            clean_text(notes),
            int(purchase_id),
        ),
    )
    if n == 0:
        raise ValueError("Purchase not found.")
    return f


def delete_purchase(conn, purchase_id: int) -> None:
    if x_count(conn, "DELETE FROM purchases WHERE id=?", (int(purchase_id),)) == 0:
        raise ValueError("Purchase not found.")


def latest_purchase_cost(conn, item_id: int) -> Optional[int]:
    r = q1(
        conn,
        """
        SELECT unit_cost
        FROM purchases
        WHERE item_id=? AND status='received'
        ORDER BY purchase_date DESC, id DESC
        LIMIT 1
        """,
        (int(item_id),),
    )
    return int(r["unit_cost"]) if r is not None else None


def get_purchase(conn, purchase_id: int):
    return q1(
        conn,
        """
        SELECT p.*, sup.name AS supplier_name, i.name AS item_name, i.code AS item_code
        FROM purchases p
        JOIN suppliers sup ON sup.id = p.supplier_id
        JOIN items i ON i.id = p.item_id
        WHERE p.id=?
        """,
        (int(purchase_id),),
    )


def list_purchases(
    conn,
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    supplier_id: Optional[int] = None,
    item_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 1000,
    offset: int = 0,
):
    where = "WHERE 1=1"
    params: list = []
    if start_date:
        where += " AND p.purchase_date >= ?"
        params.append(str(start_date))
    if end_date:
        where += " AND p.purchase_date <= ?"
        params.append(str(end_date))
    if supplier_id:
        where += " AND p.supplier_id = ?"
        params.append(int(supplier_id))
    if item_id:
        where += " AND p.item_id = ?"
        params.append(int(item_id))
    if status:
        where += " AND p.status = ?"
        params.append(_normalize_status(status))

    return q(
        conn,
        f"""
        SELECT p.*,
               sup.name AS supplier_name,
               i.name AS item_name,
               i.code AS item_code,
               i.category AS item_category
        FROM purchases p
        JOIN suppliers sup ON sup.id = p.supplier_id
        JOIN items i ON i.id = p.item_id
        {where}
        ORDER BY p.purchase_date DESC, p.id DESC
        LIMIT ? OFFSET ?
        """,
        (*params, int(limit), int(offset)),
    )
