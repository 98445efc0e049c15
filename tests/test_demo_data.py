from erp.db import q, transaction
from erp.services.demo_data import DEFAULT_ITEMS, load_demo_data, wipe_all
from erp.services.migration import ExcelMigrator

SALES_ROWS = [
    [None, "거래처", "일자", "품목", "수량", "공급가액", "부가세", "합계금액"],
    [None, "ACME", "2024-02-01", "Widget", 2, 2000, 200, 2200],
]


def test_load_demo_data(conn):
    load_demo_data(conn)
    assert q(conn, "SELECT COUNT(*) AS n FROM items")[0]["n"] == len(DEFAULT_ITEMS)
    assert q(conn, "SELECT COUNT(*) AS n FROM sales")[0]["n"] == 12
    assert q(conn, "SELECT COUNT(*) AS n FROM inventory")[0]["n"] == len(DEFAULT_ITEMS)


def test_demo_data_after_import_takes_free_codes(conn):
    assert ExcelMigrator(conn).migrate_rows(SALES_ROWS).ok
    widget = q(conn, "SELECT code FROM items WHERE name='Widget'")[0]["code"]
    assert widget == "ITEM-001"

    load_demo_data(conn)

    codes = [r["code"] for r in q(conn, "SELECT code FROM items ORDER BY id")]
    assert len(codes) == len(DEFAULT_ITEMS) + 1
    assert len(set(codes)) == len(codes)
    assert q(conn, "SELECT code FROM items WHERE name='Widget'")[0]["code"] == "ITEM-001"


def test_demo_data_reload_reuses_entities(conn):
    load_demo_data(conn)
    load_demo_data(conn)
    assert q(conn, "SELECT COUNT(*) AS n FROM items")[0]["n"] == len(DEFAULT_ITEMS)
    assert q(conn, "SELECT COUNT(*) AS n FROM customers")[0]["n"] == 3


def test_wipe_all(conn):
    load_demo_data(conn)
    with transaction(conn):
        wipe_all(conn)
    for table in ("sales", "purchases", "inventory", "items", "customers", "suppliers"):
        assert q(conn, f"SELECT COUNT(*) AS n FROM {table}")[0]["n"] == 0
