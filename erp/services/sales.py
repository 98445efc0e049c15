from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from erp.db import q, q1, x, x_count
from erp.services.money import SaleFigures, sale_figures
from erp.services.purchases import latest_purchase_cost
from erp.utils import clean_text


@dataclass
class SaleResult:
    sale_id: int
    figures: SaleFigures


def _validate_quantity(quantity) -> int:
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        raise ValueError("Quantity must be a whole number.")
    if qty <= 0:
        raise ValueError("Quantity must be > 0.")
    return qty


def _require_refs(conn, customer_id: int, item_id: int) -> None:
    if q1(conn, "SELECT id FROM customers WHERE id=?", (int(customer_id),)) is None:
        raise ValueError("Customer not found.")
    if q1(conn, "SELECT id FROM items WHERE id=?", (int(item_id),)) is None:
        raise ValueError("Item not found.")


def _cost_basis(conn, item_id: int, purchase_price: Optional[int]) -> int:
    # No explicit cost: fall back to the latest received purchase of the item.
    if purchase_price:
        return int(purchase_price)
    latest = latest_purchase_cost(conn, int(item_id))
    return int(latest) if latest is not None else 0


def create_sale(
    conn,
    *,
    customer_id: int,
    item_id: int,
    sale_date: str,
    quantity: int,
    unit_price: int,
    vat_amount: int = 0,
    purchase_price: Optional[int] = None,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> SaleResult:
    qty = _validate_quantity(quantity)
    if not sale_date:
        raise ValueError("Sale date is required.")
    _require_refs(conn, customer_id, item_id)

    f = sale_figures(
        unit_price=unit_price,
        quantity=qty,
        vat=vat_amount or 0,
        purchase_price=_cost_basis(conn, item_id, purchase_price),
    )

    sale_id = x(
        conn,
        """
        INSERT INTO sales (
            customer_id, item_id, sale_date, quantity, unit_price,
            supply_price, vat_amount, total_amount, purchase_price,
            profit_amount, margin_rate, invoice_number, notes
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            int(customer_id),
            int(item_id),
            str(sale_date),
            qty,
            f.unit_price,
            f.supply_price,
            f.vat_amount,
            f.total_amount,
            f.purchase_price,
            f.profit_amount,
            f.margin_rate,
            clean_text(invoice_number),
            clean_text(notes),
        ),
    )
    return SaleResult(sale_id=int(sale_id), figures=f)


def update_sale(
    conn,
    sale_id: int,
    *,
    customer_id: int,
    item_id: int,
    sale_date: str,
    quantity: int,
    unit_price: int,
    vat_amount: int = 0,
    purchase_price: Optional[int] = None,
    invoice_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> SaleFigures:
    """
    Replace a sale's raw fields and recompute supply, total, profit and margin.

    The cost basis is kept as given; pass the stored purchase_price to keep it.
    """
    qty = _validate_quantity(quantity)
    _require_refs(conn, customer_id, item_id)

    f = sale_figures(
        unit_price=unit_price,
        quantity=qty,
        vat=vat_amount or 0,
        purchase_price=_cost_basis(conn, item_id, purchase_price),
    )

    n = x_count(
        conn,
        """
        UPDATE sales
        SET customer_id=?, item_id=?, sale_date=?, quantity=?, unit_price=?,
            supply_price=?, vat_amount=?, total_amount=?, purchase_price=?,
            profit_amount=?, margin_rate=?, invoice_number=?, notes=?
        WHERE id=?
        """,
        (
            int(customer_id),
            int(item_id),
            str(sale_date),
            qty,
            f.unit_price,
            f.supply_price,
            f.vat_amount,
            f.total_amount,
            f.purchase_price,
            f.profit_amount,
            f.margin_rate,
            clean_text(invoice_number),
            clean_text(notes),
            int(sale_id),
        ),
    )
    if n == 0:
        raise ValueError("Sale not found.")
    return f


def delete_sale(conn, sale_id: int) -> None:
    if x_count(conn, "DELETE FROM sales WHERE id=?", (int(sale_id),)) == 0:
        raise ValueError("Sale not found.")


def get_sale(conn, sale_id: int):
    return q1(
        conn,
        """
        SELECT s.*, c.name AS customer_name, i.name AS item_name, i.code AS item_code
        FROM sales s
        JOIN customers c ON c.id = s.customer_id
        JOIN items i ON i.id = s.item_id
        WHERE s.id=?
        """,
        (int(sale_id),),
    )


def _sales_filter(
    start_date: Optional[str],
    end_date: Optional[str],
    customer_id: Optional[int],
    item_id: Optional[int],
) -> tuple[str, list]:
    where = "WHERE 1=1"
    params: list = []
    if start_date:
        where += " AND s.sale_date >= ?"
        params.append(str(start_date))
    if end_date:
        where += " AND s.sale_date <= ?"
        params.append(str(end_date))
    if customer_id:
        where += " AND s.customer_id = ?"
        params.append(int(customer_id))
    if item_id:
        where += " AND s.item_id = ?"
        params.append(int(item_id))
    return where, params


def list_sales(
    conn,
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    customer_id: Optional[int] = None,
    item_id: Optional[int] = None,
    limit: int = 1000,
    offset: int = 0,
):
    where, params = _sales_filter(start_date, end_date, customer_id, item_id)
    return q(
        conn,
        f"""
        SELECT s.*,
               c.name AS customer_name,
               i.name AS item_name,
               i.code AS item_code,
               i.category AS item_category
        FROM sales s
        JOIN customers c ON c.id = s.customer_id
        JOIN items i ON i.id = s.item_id
        {where}
        ORDER BY s.sale_date DESC, s.id DESC
        LIMIT ? OFFSET ?
        """,
        (*params, int(limit), int(offset)),
    )


def sales_summary(
    conn,
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    customer_id: Optional[int] = None,
    item_id: Optional[int] = None,
) -> dict:
    where, params = _sales_filter(start_date, end_date, customer_id, item_id)
    r = q(
        conn,
        f"""
        SELECT COUNT(s.id) AS transactions,
               COALESCE(SUM(s.total_amount), 0) AS total_sales,
               COALESCE(SUM(s.profit_amount), 0) AS total_profit,
               COALESCE(ROUND(AVG(s.margin_rate), 1), 0) AS avg_margin_rate
        FROM sales s
        {where}
        """,
        params,
    )[0]
    return {
        "transactions": int(r["transactions"]),
        "total_sales": int(r["total_sales"]),
        "total_profit": int(r["total_profit"]),
        "avg_margin_rate": float(r["avg_margin_rate"]),
    }
