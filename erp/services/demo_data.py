from __future__ import annotations

import random
from datetime import date, timedelta

from erp.db import q1, transaction
from erp.services import entities
from erp.services.purchases import create_purchase
from erp.services.sales import create_sale


DEFAULT_CUSTOMERS = ["제이에스일렉트로닉", "한빛전자", "대성테크"]
DEFAULT_SUPPLIERS = ["Digi-Key", "Mouser", "디바이스마트"]
DEFAULT_ITEMS = [
    ("ITEM-001", "MCU STM32F103C8T6", 4200),
    ("ITEM-002", "Regulator LM1117-3.3", 650),
    ("ITEM-003", "Crystal 8MHz HC-49S", 300),
    ("ITEM-004", "Connector USB-C 16P", 900),
]

# Children first so foreign keys never block the delete.
_WIPE_ORDER = ["sales", "purchases", "inventory", "items", "customers", "suppliers"]


def wipe_all(conn) -> None:
    # Keep schema, delete data. Callers decide the transaction boundary.
    for t in _WIPE_ORDER:
        conn.execute(f"DELETE FROM {t};")


def _demo_item(conn, code: str, name: str, price: int) -> int:
    existing = entities.get_by_natural_key(conn, "item", name)
    if existing is not None:
        return int(existing["id"])
    # An earlier import may already hold this code.
    if q1(conn, "SELECT id FROM items WHERE code=?", (code,)) is not None:
        code = entities.next_item_code(conn)
    return entities.resolve(conn, "item", name, code=code, standard_price=price)


def load_demo_data(conn, *, seed: int = 7) -> None:
    random.seed(seed)

    with transaction(conn):
        customer_ids = [entities.resolve(conn, "customer", n) for n in DEFAULT_CUSTOMERS]
        supplier_ids = [entities.resolve(conn, "supplier", n) for n in DEFAULT_SUPPLIERS]
        items = [(_demo_item(conn, code, name, price), price) for code, name, price in DEFAULT_ITEMS]

        # Two receipts per item so the weighted-average cost has something to blend
        base_date = date.today() - timedelta(days=30)
        for n, (item_id, price) in enumerate(items):
            for k in range(2):
                unit_cost = int(price * random.uniform(0.55, 0.75))
                create_purchase(
                    conn,
                    supplier_id=random.choice(supplier_ids),
                    item_id=item_id,
                    purchase_date=(base_date + timedelta(days=n + 7 * k)).isoformat(),
                    quantity=random.randint(50, 200),
                    unit_cost=unit_cost,
                    vat_amount=0,
                    expected_sale_price=price,
                    status="received",
                    notes="Demo receipt",
                )

        for d in range(12):
            item_id, price = random.choice(items)
            qty = random.randint(1, 40)
            supply = price * qty
            create_sale(
                conn,
                customer_id=random.choice(customer_ids),
                item_id=item_id,
                sale_date=(base_date + timedelta(days=14 + d)).isoformat(),
                quantity=qty,
                unit_price=price,
                vat_amount=supply // 10,
                notes="Demo sale",
            )
