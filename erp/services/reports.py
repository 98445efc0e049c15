from __future__ import annotations

from typing import Optional

from erp.db import q


def _period_filter(year: Optional[int], month: Optional[int]) -> tuple[str, tuple]:
    if year and month:
        return (
            "WHERE strftime('%Y', s.sale_date) = ? AND strftime('%m', s.sale_date) = ?",
            (str(int(year)), f"{int(month):02d}"),
        )
    if year:
        return "WHERE strftime('%Y', s.sale_date) = ?", (str(int(year)),)
    return "", ()


def dashboard_stats(conn, year: Optional[int] = None, month: Optional[int] = None) -> dict:
    where, params = _period_filter(year, month)
    r = q(
        conn,
        f"""
        SELECT COUNT(s.id) AS total_transactions,
               COALESCE(SUM(s.total_amount), 0) AS total_sales,
               COALESCE(SUM(s.profit_amount), 0) AS total_profit,
               COALESCE(ROUND(AVG(s.margin_rate), 1), 0) AS avg_margin_rate,
               COUNT(DISTINCT s.customer_id) AS total_customers,
               COUNT(DISTINCT s.item_id) AS total_items
        FROM sales s
        {where}
        """,
        params,
    )[0]
    return {
        "total_transactions": int(r["total_transactions"]),
        "total_sales": int(r["total_sales"]),
        "total_profit": int(r["total_profit"]),
        "avg_margin_rate": float(r["avg_margin_rate"]),
        "total_customers": int(r["total_customers"]),
        "total_items": int(r["total_items"]),
    }


def monthly_trend(conn, year: int) -> list[dict]:
    """Revenue and profit for each month of `year`; months without sales are zero."""
    rows = q(
        conn,
        """
        SELECT strftime('%m', s.sale_date) AS month,
               COALESCE(SUM(s.total_amount), 0) AS revenue,
               COALESCE(SUM(s.profit_amount), 0) AS profit
        FROM sales s
        WHERE strftime('%Y', s.sale_date) = ?
        GROUP BY month
        """,
        (str(int(year)),),
    )
    by_month = {int(r["month"]): r for r in rows}
    out = []
    for m in range(1, 13):
        r = by_month.get(m)
        out.append(
            {
                "period": f"{int(year)}-{m:02d}",
                "revenue": int(r["revenue"]) if r else 0,
                "profit": int(r["profit"]) if r else 0,
            }
        )
    return out


def top_customers(conn, limit: int = 10):
    return q(
        conn,
        """
        SELECT c.name,
               COUNT(s.id) AS transactions,
               SUM(s.total_amount) AS revenue,
               SUM(s.profit_amount) AS profit
        FROM sales s
        JOIN customers c ON c.id = s.customer_id
        GROUP BY c.id
        ORDER BY revenue DESC
        LIMIT ?
        """,
        (int(limit),),
    )


def top_items(conn, limit: int = 10):
    return q(
        conn,
        """
        SELECT i.name,
               SUM(s.quantity) AS quantity,
               SUM(s.total_amount) AS revenue,
               ROUND(AVG(s.unit_price)) AS average_price,
               ROUND(SUM(s.profit_amount) * 100.0 / NULLIF(SUM(s.total_amount), 0), 1) AS profit_rate
        FROM sales s
        JOIN items i ON i.id = s.item_id
        GROUP BY i.id
        ORDER BY revenue DESC
        LIMIT ?
        """,
        (int(limit),),
    )
