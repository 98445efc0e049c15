import pytest

from erp.db import q
from erp.errors import EntityResolutionError
from erp.services import entities
from erp.services.sales import create_sale


def test_resolve_is_idempotent(conn):
    first = entities.resolve(conn, "customer", "ACME")
    second = entities.resolve(conn, "customer", "  ACME ")
    assert first == second
    assert q(conn, "SELECT COUNT(*) AS n FROM customers")[0]["n"] == 1


def test_resolve_applies_kind_defaults(conn):
    sid = entities.resolve(conn, "supplier", "Mouser")
    iid = entities.resolve(conn, "item", "Widget", code="W-1")
    sup = entities.get_by_natural_key(conn, "supplier", "Mouser")
    item = entities.get_by_natural_key(conn, "item", "Widget")
    assert sup["id"] == sid and sup["payment_terms"] == "현금"
    assert item["id"] == iid and item["category"] == "전자부품" and item["unit"] == "개"


def test_resolve_blank_name_is_an_error(conn):
    with pytest.raises(EntityResolutionError):
        entities.resolve(conn, "customer", "   ")


def test_resolve_code_conflict_is_an_error(conn):
    entities.add_item(conn, code="ITEM-001", name="Widget")
    with pytest.raises(EntityResolutionError) as exc:
        entities.resolve(conn, "item", "Gadget", code="ITEM-001")
    assert exc.value.kind == "item"


def test_unknown_kind_rejected(conn):
    with pytest.raises(ValueError):
        entities.resolve(conn, "warehouse", "Main")


def test_add_customer_rejects_duplicates(conn):
    entities.add_customer(conn, name="ACME")
    with pytest.raises(ValueError):
        entities.add_customer(conn, name="ACME")


def test_update_customer(conn):
    cid = entities.add_customer(conn, name="ACME")
    entities.add_customer(conn, name="Other")
    entities.update_customer(conn, cid, name="ACME Corp", phone="010-1234-5678")
    row = entities.get_by_natural_key(conn, "customer", "ACME Corp")
    assert row["id"] == cid and row["phone"] == "010-1234-5678"
    with pytest.raises(ValueError):
        entities.update_customer(conn, cid, name="Other")


def test_customer_with_sales_cannot_be_deleted(conn):
    cid = entities.add_customer(conn, name="ACME")
    iid = entities.add_item(conn, name="Widget")
    create_sale(conn, customer_id=cid, item_id=iid, sale_date="2024-02-01", quantity=1, unit_price=100)
    with pytest.raises(ValueError):
        entities.delete_customer(conn, cid)
    with pytest.raises(ValueError):
        entities.delete_item(conn, iid)


def test_supplier_delete_is_soft(conn):
    sid = entities.add_supplier(conn, name="Mouser")
    entities.delete_supplier(conn, sid)
    assert entities.list_suppliers(conn) == []
    assert entities.get_by_natural_key(conn, "supplier", "Mouser")["is_active"] == 0


def test_next_item_code(conn):
    assert entities.next_item_code(conn) == "ITEM-001"
    entities.add_item(conn, code="ITEM-007", name="A")
    entities.add_item(conn, code="ITEM-X", name="B")
    assert entities.next_item_code(conn) == "ITEM-008"
