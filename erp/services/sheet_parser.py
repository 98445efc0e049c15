"""
Spreadsheet row parsing.

Turns the raw rows of a sales workbook (lists of untyped cell values, as produced
by erp.services.workbook.read_rows) into typed SaleRow / PurchaseRow records plus
the distinct customer, supplier and item names they reference.

Two historical layouts are supported:

* ``sales``    - the monthly sales sheet (판매현황). One sale per row; the
                 purchase unit price sits in column 9.
* ``combined`` - the quotation sheet (견적서). The sale occupies columns 0-7 and
                 the matching purchase columns 9-16 of the same physical row;
                 each row is split into one sale and one purchase.

Rows that are empty, too short, missing the key name, subtotal/total lines
(계, 합계) or that carry no positive total are skipped without being counted.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional, Sequence

from erp.services import money
from erp.utils import iso_today

logger = logging.getLogger(__name__)

SUBTOTAL_MARKERS = ("합계", "계")
NO_ITEM_NAME = "품목명없음"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_DELIMITED_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_KOREAN_DATE = re.compile(r"(\d{4})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일?")

# Excel's 1900 date system: serial 1 is 1900-01-01, and serial 60 is the
# non-existent 1900-02-29, so serials after 59 are one day ahead.
_EXCEL_EPOCH = date(1899, 12, 31)
_EXCEL_LEAP_BUG_SERIAL = 59


@dataclass(frozen=True)
class SheetLayout:
    name: str
    header_scan_rows: int
    header_markers: tuple[str, ...]
    default_start_row: int
    min_cells: int

    sale_date_col: int
    customer_col: int
    item_name_col: int
    quantity_col: int
    supply_col: int
    vat_col: int
    total_col: int
    item_code_col: Optional[int] = None
    cost_col: Optional[int] = None

    # Purchase half (combined layout only)
    purchase_date_col: Optional[int] = None
    supplier_col: Optional[int] = None
    purchase_quantity_col: Optional[int] = None
    purchase_supply_col: Optional[int] = None
    purchase_vat_col: Optional[int] = None
    purchase_total_col: Optional[int] = None

    @property
    def has_purchases(self) -> bool:
        return self.supplier_col is not None


SALES_LAYOUT = SheetLayout(
    name="sales",
    header_scan_rows=4,
    header_markers=("거래처", "품목"),
    default_start_row=4,
    min_cells=3,
    customer_col=1,
    sale_date_col=2,
    item_name_col=3,
    quantity_col=4,
    supply_col=5,
    vat_col=6,
    total_col=7,
    cost_col=9,
)

COMBINED_LAYOUT = SheetLayout(
    name="combined",
    header_scan_rows=10,
    header_markers=("거래처", "품목", "매출처", "매입처"),
    default_start_row=6,
    min_cells=17,
    sale_date_col=0,
    customer_col=1,
    item_code_col=2,
    item_name_col=3,
    quantity_col=4,
    supply_col=5,
    vat_col=6,
    total_col=7,
    purchase_date_col=9,
    supplier_col=10,
    purchase_quantity_col=13,
    purchase_supply_col=14,
    purchase_vat_col=15,
    purchase_total_col=16,
)

LAYOUTS = {l.name: l for l in (SALES_LAYOUT, COMBINED_LAYOUT)}


@dataclass
class SaleRow:
    customer_name: str
    item_name: str
    item_code: Optional[str]
    sale_date: str
    quantity: int
    unit_price: int
    supply_amount: int
    vat: int
    total_amount: int
    purchase_price: int
    profit: int
    margin_rate: float
    raw_row_index: int


@dataclass
class PurchaseRow:
    supplier_name: str
    item_name: str
    item_code: Optional[str]
    purchase_date: str
    quantity: int
    unit_cost: int
    supply_amount: int
    vat: int
    total_amount: int
    expected_sale_price: int
    expected_margin: float
    raw_row_index: int


@dataclass(frozen=True)
class ItemRef:
    name: str
    code: Optional[str] = None


@dataclass
class ParsedSheet:
    layout: str
    data_start_row: int
    sales: list[SaleRow] = field(default_factory=list)
    purchases: list[PurchaseRow] = field(default_factory=list)
    customers: list[str] = field(default_factory=list)
    suppliers: list[str] = field(default_factory=list)
    items: list[ItemRef] = field(default_factory=list)
    date_fallbacks: int = 0


# -------------------------
# Cell helpers
# -------------------------

def _cell(row: Sequence[Any], col: Optional[int]) -> Any:
    if col is None or col >= len(row):
        return None
    return row[col]


def _cell_text(row: Sequence[Any], col: Optional[int]) -> Optional[str]:
    v = _cell(row, col)
    if v is None or v == "" or v == 0 or isinstance(v, bool):
        return None
    s = str(v).strip()
    return s or None


def to_int(value: Any) -> Optional[int]:
    """Leading integer of a cell, truncating decimals; None when there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value)
    m = _LEADING_INT.match(str(value).replace(",", ""))
    return int(m.group(1)) if m else None


def _int_or(value: Any, default: int) -> int:
    n = to_int(value)
    return n if n else default


def _is_subtotal(text: str) -> bool:
    return any(marker in text for marker in SUBTOTAL_MARKERS)


# -------------------------
# Dates
# -------------------------

def _excel_serial_to_date(serial: float) -> Optional[date]:
    days = int(math.floor(serial))
    if days <= 0:
        return None
    if days > _EXCEL_LEAP_BUG_SERIAL:
        days -= 1
    try:
        return _EXCEL_EPOCH + timedelta(days=days)
    except OverflowError:
        return None


def _date_from_parts(y: str, m: str, d: str) -> Optional[date]:
    try:
        return date(int(y), int(m), int(d))
    except ValueError:
        return None


def _parse_date_value(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        try:
            return value.date()
        except ValueError:
            return None
    if isinstance(value, date):
        return value

    if isinstance(value, str):
        text = value.strip()
        cleaned = re.sub(r"[/.]", "-", text).split(" ")[0].split("T")[0]
        m = _DELIMITED_DATE.match(cleaned)
        if m:
            parsed = _date_from_parts(*m.groups())
            if parsed is not None:
                return parsed
        m = _KOREAN_DATE.search(text)
        if m:
            return _date_from_parts(*m.groups())
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return _excel_serial_to_date(value)

    return None


def _is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return False


def parse_date(value: Any, today: Optional[str] = None) -> str:
    """
    Normalize a cell to ``YYYY-MM-DD``.

    Accepts date/datetime objects, ``2024-02-01`` / ``2024/02/01`` / ``2024.02.01``
    strings (time part ignored), Korean ``2024년 2월 1일`` and Excel 1900-system
    serial numbers. Blank cells and anything unparseable fall back to today; the
    latter is logged as a warning.
    """
    fallback = today or iso_today()
    if _is_blank(value):
        return fallback
    parsed = _parse_date_value(value)
    if parsed is None:
        logger.warning("Could not parse date %r (%s); using %s", value, type(value).__name__, fallback)
        return fallback
    return parsed.isoformat()


# -------------------------
# Layout / header detection
# -------------------------

def find_data_start_row(rows: Sequence[Sequence[Any]], layout: SheetLayout) -> int:
    for i in range(min(layout.header_scan_rows, len(rows))):
        row = rows[i]
        if not row or len(row) <= 5:
            continue
        text = "".join(str(c) for c in row if c is not None).lower()
        if any(marker in text for marker in layout.header_markers):
            return i + 1
    return layout.default_start_row


def detect_layout(rows: Sequence[Sequence[Any]]) -> SheetLayout:
    for row in rows:
        if (
            row
            and len(row) >= COMBINED_LAYOUT.min_cells
            and _cell_text(row, COMBINED_LAYOUT.customer_col)
            and _cell_text(row, COMBINED_LAYOUT.supplier_col)
        ):
            return COMBINED_LAYOUT
    return SALES_LAYOUT


def get_layout(layout: str | SheetLayout, rows: Sequence[Sequence[Any]] = ()) -> SheetLayout:
    if isinstance(layout, SheetLayout):
        return layout
    key = (layout or "auto").strip().lower()
    if key == "auto":
        return detect_layout(rows)
    try:
        return LAYOUTS[key]
    except KeyError:
        raise ValueError(f"Unknown sheet layout: {layout!r}. Use auto, sales or combined.")


# -------------------------
# Row parsing
# -------------------------

class _Collector:
    def __init__(self, today: str):
        self.today = today
        self.date_fallbacks = 0
        self.customers: dict[str, None] = {}
        self.suppliers: dict[str, None] = {}
        self.items: dict[str, Optional[str]] = {}

    def date(self, value: Any) -> str:
        if not _is_blank(value) and _parse_date_value(value) is None:
            self.date_fallbacks += 1
        return parse_date(value, self.today)


def _key_text(row: Sequence[Any], layout: SheetLayout) -> Optional[str]:
    v = _cell(row, layout.customer_col)
    if layout.name == "sales" and not isinstance(v, str):
        return None
    return _cell_text(row, layout.customer_col)


def _parse_sales_row(row, i: int, layout: SheetLayout, c: _Collector) -> Optional[SaleRow]:
    customer = _key_text(row, layout)
    if customer is None or _is_subtotal(customer):
        return None

    item_name = _cell_text(row, layout.item_name_col) or NO_ITEM_NAME
    quantity = _int_or(_cell(row, layout.quantity_col), 1)
    supply = _int_or(_cell(row, layout.supply_col), 0)
    vat = _int_or(_cell(row, layout.vat_col), 0)
    total = _int_or(_cell(row, layout.total_col), supply + vat)
    purchase_price = _int_or(_cell(row, layout.cost_col), 0)

    if total <= 0:
        return None

    p = money.profit(total, purchase_price, quantity)
    return SaleRow(
        customer_name=customer,
        item_name=item_name,
        item_code=None,
        sale_date=c.date(_cell(row, layout.sale_date_col)),
        quantity=quantity,
        unit_price=money.unit_price_from_supply(supply, quantity),
        supply_amount=supply,
        vat=vat,
        total_amount=total,
        purchase_price=purchase_price,
        profit=p,
        margin_rate=money.margin_rate(p, total),
        raw_row_index=i + 1,
    )


def _parse_combined_row(row, i: int, layout: SheetLayout, c: _Collector) -> Optional[tuple[SaleRow, PurchaseRow]]:
    customer = _key_text(row, layout)
    supplier = _cell_text(row, layout.supplier_col)
    if customer is None or supplier is None or _is_subtotal(customer):
        return None

    # Missing codes are assigned at import time (next free ITEM-NNN).
    item_code = _cell_text(row, layout.item_code_col)
    item_name = _cell_text(row, layout.item_name_col) or NO_ITEM_NAME

    quantity = _int_or(_cell(row, layout.quantity_col), 1)
    supply = _int_or(_cell(row, layout.supply_col), 0)
    vat = _int_or(_cell(row, layout.vat_col), 0)
    total = _int_or(_cell(row, layout.total_col), supply + vat)
    unit_price = money.unit_price_from_supply(supply, quantity)

    p_quantity = _int_or(_cell(row, layout.purchase_quantity_col), 1)
    p_supply = _int_or(_cell(row, layout.purchase_supply_col), 0)
    p_vat = _int_or(_cell(row, layout.purchase_vat_col), 0)
    p_total = _int_or(_cell(row, layout.purchase_total_col), p_supply + p_vat)
    unit_cost = money.unit_price_from_supply(p_supply, p_quantity)

    if total <= 0:
        return None

    # Profit of a combined row is sale total minus the purchase total on the same line.
    p = total - p_total
    rate = money.margin_rate(p, total)

    sale = SaleRow(
        customer_name=customer,
        item_name=item_name,
        item_code=item_code,
        sale_date=c.date(_cell(row, layout.sale_date_col)),
        quantity=quantity,
        unit_price=unit_price,
        supply_amount=supply,
        vat=vat,
        total_amount=total,
        purchase_price=unit_cost,
        profit=p,
        margin_rate=rate,
        raw_row_index=i + 1,
    )
    purchase = PurchaseRow(
        supplier_name=supplier,
        item_name=item_name,
        item_code=item_code,
        purchase_date=c.date(_cell(row, layout.purchase_date_col)),
        quantity=p_quantity,
        unit_cost=unit_cost,
        supply_amount=p_supply,
        vat=p_vat,
        total_amount=p_total,
        expected_sale_price=unit_price,
        expected_margin=rate,
        raw_row_index=i + 1,
    )
    return sale, purchase


def parse_sheet(
    rows: Sequence[Sequence[Any]],
    layout: str | SheetLayout = "auto",
    *,
    today: Optional[str] = None,
) -> ParsedSheet:
    lay = get_layout(layout, rows)
    start = find_data_start_row(rows, lay)
    c = _Collector(today or iso_today())
    out = ParsedSheet(layout=lay.name, data_start_row=start)

    for i in range(start, len(rows)):
        row = rows[i]
        if not row or len(row) < lay.min_cells:
            continue

        if lay.has_purchases:
            parsed = _parse_combined_row(row, i, lay, c)
            if parsed is None:
                continue
            sale, purchase = parsed
            out.purchases.append(purchase)
            c.suppliers.setdefault(purchase.supplier_name, None)
        else:
            sale = _parse_sales_row(row, i, lay, c)
            if sale is None:
                continue

        out.sales.append(sale)
        c.customers.setdefault(sale.customer_name, None)
        c.items.setdefault(sale.item_name, sale.item_code)

    out.customers = list(c.customers)
    out.suppliers = list(c.suppliers)
    out.items = [ItemRef(name=name, code=code) for name, code in c.items.items()]
    out.date_fallbacks = c.date_fallbacks

    logger.info(
        "Parsed %s layout from row %s: %s customers, %s suppliers, %s items, %s purchases, %s sales",
        lay.name,
        start + 1,
        len(out.customers),
        len(out.suppliers),
        len(out.items),
        len(out.purchases),
        len(out.sales),
    )
    return out
