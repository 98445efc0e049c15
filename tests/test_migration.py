import sqlite3

import pytest

from erp.db import q
from erp.services import migration
from erp.services.inventory import get_inventory
from erp.services.migration import ExcelMigrator, format_report
from erp.services.sheet_parser import ItemRef, ParsedSheet, SaleRow

TODAY = "2024-06-30"

SALES_ROWS = [
    ["판매현황"],
    [None, "거래처", "일자", "품목", "수량", "공급가액", "부가세", "합계금액"],
    [None, "ACME", "2024-02-01", "Widget", 2, 2000, 200, 2200],
    [None, "ACME", "2024-02-02", "Widget", 3, 3000, 300, 3300],
    [None, "합계", None, None, 5, 5000, 500, 5500],
]


def _count(conn, table):
    return q(conn, f"SELECT COUNT(*) AS n FROM {table}")[0]["n"]


def _sale(customer, row_index, item="Widget"):
    return SaleRow(
        customer_name=customer,
        item_name=item,
        item_code=None,
        sale_date="2024-02-01",
        quantity=1,
        unit_price=1000,
        supply_amount=1000,
        vat=100,
        total_amount=1100,
        purchase_price=0,
        profit=1100,
        margin_rate=100.0,
        raw_row_index=row_index,
    )


def test_end_to_end_two_rows(conn):
    report = ExcelMigrator(conn, today=TODAY).migrate_rows(SALES_ROWS)

    assert report.ok
    assert report.layout == "sales"
    assert _count(conn, "customers") == 1
    assert _count(conn, "items") == 1
    totals = [r["total_amount"] for r in q(conn, "SELECT total_amount FROM sales ORDER BY id")]
    assert totals == [2200, 3300]

    assert report.customers.to_dict() == {"total": 1, "success": 1, "errors": 0}
    assert report.sales.to_dict() == {"total": 2, "success": 2, "errors": 0}
    assert report.totals().total == 4

    item = q(conn, "SELECT * FROM items")[0]
    assert item["code"] == "ITEM-001"
    assert item["name"] == "Widget"


def test_reimport_does_not_duplicate_entities(conn):
    ExcelMigrator(conn, today=TODAY).migrate_rows(SALES_ROWS)
    report = ExcelMigrator(conn, today=TODAY).migrate_rows(SALES_ROWS)

    assert report.ok
    assert report.customers.success == 1
    assert _count(conn, "customers") == 1
    assert _count(conn, "items") == 1
    # Transaction rows have no natural key and are inserted again.
    assert _count(conn, "sales") == 4


def test_clear_existing_replaces_previous_import(conn):
    ExcelMigrator(conn, today=TODAY).migrate_rows(SALES_ROWS)
    report = ExcelMigrator(conn, today=TODAY, clear_existing=True).migrate_rows(SALES_ROWS)
    assert report.ok
    assert _count(conn, "sales") == 2


def test_one_unresolved_customer_does_not_sink_the_batch(conn):
    sales = [_sale("ACME", n) for n in range(1, 101)]
    sales[36] = _sale("Ghost", 37)
    parsed = ParsedSheet(layout="sales", data_start_row=0, sales=sales,
                         customers=["ACME"], items=[ItemRef("Widget")])

    report = ExcelMigrator(conn, today=TODAY).migrate(parsed)

    assert report.ok
    assert report.sales.to_dict() == {"total": 100, "success": 99, "errors": 1}
    assert _count(conn, "sales") == 99


def test_failed_batch_rolls_back_and_stops_the_run(conn, monkeypatch):
    calls = {"n": 0}
    real_create_sale = migration.create_sale

    def flaky_create_sale(c, **kwargs):
        calls["n"] += 1
        if calls["n"] == 15:
            raise sqlite3.OperationalError("disk I/O error")
        return real_create_sale(c, **kwargs)

    monkeypatch.setattr(migration, "create_sale", flaky_create_sale)

    sales = [_sale("ACME", n) for n in range(1, 26)]
    parsed = ParsedSheet(layout="sales", data_start_row=0, sales=sales,
                         customers=["ACME"], items=[ItemRef("Widget")])
    report = ExcelMigrator(conn, batch_size=10, today=TODAY).migrate(parsed)

    assert not report.ok
    assert report.status == migration.FAILED
    assert report.failed_stage == migration.MIGRATE_SALES
    assert "disk I/O error" in report.error
    assert report.sales.to_dict() == {"total": 25, "success": 10, "errors": 10}
    # First batch committed, second rolled back, third never started.
    assert _count(conn, "sales") == 10
    assert not conn.in_transaction


def test_combined_import_feeds_inventory_before_sales(conn):
    header = ["일자", "매출처", "코드", "품목", "수량", "공급가", "세액", "합계", None,
              "일자", "매입처", None, None, "수량", "공급가", "세액", "합계"]
    row = ["2024-03-05", "한빛전자", None, "Resistor 10k", 10, 10000, 1000, 11000, None,
           "2024-03-01", "Mouser", None, None, 10, 6000, 600, 6600]
    report = ExcelMigrator(conn, today=TODAY).migrate_rows([header, row, list(row)])

    assert report.ok
    assert report.layout == "combined"
    assert report.suppliers.success == 1
    assert report.purchases.to_dict() == {"total": 2, "success": 2, "errors": 0}

    item = q(conn, "SELECT * FROM items")[0]
    assert item["code"] == "ITEM-001"
    inv = get_inventory(conn, item["id"])
    assert (inv["current_stock"], inv["avg_purchase_cost"]) == (20, 600)

    statuses = {r["status"] for r in q(conn, "SELECT status FROM purchases")}
    assert statuses == {"received"}
    costs = {r["purchase_price"] for r in q(conn, "SELECT purchase_price FROM sales")}
    assert costs == {600}


def test_missing_source_fails_before_any_stage(conn, tmp_path):
    report = ExcelMigrator(conn).run(str(tmp_path / "missing.xlsx"))
    assert report.status == migration.FAILED
    assert report.failed_stage == migration.READ_SOURCE
    assert report.totals().total == 0


def test_unknown_layout_fails_the_run(conn):
    report = ExcelMigrator(conn).migrate_rows(SALES_ROWS, layout="invoice")
    assert report.status == migration.FAILED


def test_invalid_batch_size(conn):
    with pytest.raises(ValueError):
        ExcelMigrator(conn, batch_size=0)


def test_report_output(conn):
    report = ExcelMigrator(conn, today=TODAY).migrate_rows(
        SALES_ROWS + [[None, "Beta", "someday", "Widget", 1, 100, 10, 110]]
    )
    d = report.to_dict()
    assert d["status"] == migration.DONE
    assert d["sales"] == {"total": 3, "success": 3, "errors": 0}
    assert d["total"]["success"] == 6
    assert len(d["warnings"]) == 1

    text = format_report(report)
    assert "Status:   DONE" in text
    assert "Sales      3/3 (errors: 0)" in text
    assert "Warning:" in text


def test_unreadable_workbook_still_produces_a_report(conn, tmp_path):
    path = tmp_path / "upload.xlsx"
    path.write_bytes(b"this is not a workbook")

    report = ExcelMigrator(conn).run(str(path))

    assert report.status == migration.FAILED
    assert report.failed_stage == migration.READ_SOURCE
    assert "readable" in report.error
    assert report.to_dict()["sales"] == {"total": 0, "success": 0, "errors": 0}


def test_imported_sale_figures_are_recomputed_from_unit_price(conn):
    rows = [
        *SALES_ROWS[:2],
        [None, "ACME", "2024-02-01", "Widget", 3, 1000, 100, 1100],
    ]
    report = ExcelMigrator(conn, today=TODAY).migrate_rows(rows)

    assert report.ok
    sale = q(conn, "SELECT * FROM sales")[0]
    # 1000 / 3 rounds to 333 per unit, so the stored supply loses a won
    assert sale["unit_price"] == 333
    assert sale["supply_price"] == 999
    assert sale["total_amount"] == 1099
