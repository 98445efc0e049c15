from datetime import date, datetime

import pytest

from erp.services.sheet_parser import (
    COMBINED_LAYOUT,
    NO_ITEM_NAME,
    SALES_LAYOUT,
    detect_layout,
    find_data_start_row,
    parse_date,
    parse_sheet,
    to_int,
)

TODAY = "2020-01-01"

SALES_HEADER = [None, "거래처", "일자", "품목", "수량", "공급가액", "부가세", "합계금액", None, "매입단가"]


@pytest.mark.parametrize(
    "value, expected",
    [
        (45323, "2024-02-01"),
        (45323.75, "2024-02-01"),
        (1, "1900-01-01"),
        (59, "1900-02-28"),
        (61, "1900-03-01"),
        ("2024-02-01", "2024-02-01"),
        ("2024/02/01", "2024-02-01"),
        ("2024.2.1", "2024-02-01"),
        ("2024-02-01 13:45:00", "2024-02-01"),
        ("2024-02-01T13:45:00", "2024-02-01"),
        ("2024년 2월 1일", "2024-02-01"),
        ("판매일 2024년 12월 31일 (화)", "2024-12-31"),
        (date(2024, 2, 1), "2024-02-01"),
        (datetime(2024, 2, 1, 23, 59), "2024-02-01"),
    ],
)
def test_parse_date_formats(value, expected):
    assert parse_date(value, TODAY) == expected


@pytest.mark.parametrize("value", [None, "", "   ", 0, "not a date", "2024-13-45", -3])
def test_parse_date_falls_back_to_today(value):
    assert parse_date(value, TODAY) == TODAY


def test_to_int_truncates_and_tolerates_separators():
    assert to_int(3.9) == 3
    assert to_int("1,234원") == 1234
    assert to_int(" -12 ea") == -12
    assert to_int("abc") is None
    assert to_int(None) is None
    assert to_int(float("nan")) is None


def test_header_detection_and_default():
    rows = [["판매현황"], SALES_HEADER, [None, "ACME"]]
    assert find_data_start_row(rows, SALES_LAYOUT) == 2
    assert find_data_start_row([["x"]] * 3, SALES_LAYOUT) == SALES_LAYOUT.default_start_row
    assert find_data_start_row([], COMBINED_LAYOUT) == COMBINED_LAYOUT.default_start_row


def test_sales_layout_parsing_skips_subtotals_and_invalid_rows():
    rows = [
        ["2024년 2월 판매현황"],
        SALES_HEADER,
        [None, "ACME", "2024-02-01", "Widget", 2, 2000, 200, 2200, None, 800],
        [None, "ACME", 45323, "Widget", "3", "3,000", 300, None],
        [None, "Beta", "2024-02-03", None, None, 500, 50, 550],
        [None, "소계", None, None, 5, 5500, 550, 6050],
        [None, "합계", None, None, 5, 5500, 550, 6050],
        [None, "Zero", "2024-02-04", "Widget", 1, 0, 0, 0],
        [None, 12345, "2024-02-04", "Widget", 1, 100, 10, 110],
        [None, "Short"],
        [],
    ]
    parsed = parse_sheet(rows, "sales", today=TODAY)

    assert parsed.layout == "sales"
    assert parsed.data_start_row == 2
    assert parsed.customers == ["ACME", "Beta"]
    assert [i.name for i in parsed.items] == ["Widget", NO_ITEM_NAME]
    assert parsed.purchases == []
    assert len(parsed.sales) == 3

    first, second, third = parsed.sales
    assert (first.quantity, first.unit_price, first.total_amount) == (2, 1000, 2200)
    assert first.purchase_price == 800
    assert first.profit == 600
    assert first.margin_rate == 27.3
    assert first.raw_row_index == 3

    assert second.sale_date == "2024-02-01"
    assert (second.quantity, second.supply_amount, second.total_amount) == (3, 3000, 3300)

    assert third.quantity == 1
    assert third.item_name == NO_ITEM_NAME


def test_unparseable_dates_are_counted():
    rows = [SALES_HEADER, [None, "ACME", "someday", "Widget", 1, 100, 10, 110]]
    parsed = parse_sheet(rows, "sales", today=TODAY)
    assert parsed.sales[0].sale_date == TODAY
    assert parsed.date_fallbacks == 1


def _combined_row(customer, supplier, code="P-100", name="Resistor 10k"):
    return [
        "2024-03-05", customer, code, name, 10, 10000, 1000, 11000, None,
        "2024-03-01", supplier, None, None, 10, 6000, 600, 6600,
    ]


def test_combined_layout_splits_sale_and_purchase():
    header = ["일자", "매출처", "코드", "품목", "수량", "공급가", "세액", "합계", None,
              "일자", "매입처", None, None, "수량", "공급가", "세액", "합계"]
    rows = [
        header,
        _combined_row("한빛전자", "Mouser"),
        _combined_row("합계", "Mouser"),
        _combined_row("대성테크", None),
        _combined_row("대성테크", "Digi-Key", code=None, name="Cap 100nF"),
    ]
    assert detect_layout(rows) is COMBINED_LAYOUT

    parsed = parse_sheet(rows, today=TODAY)
    assert parsed.layout == "combined"
    assert parsed.customers == ["한빛전자", "대성테크"]
    assert parsed.suppliers == ["Mouser", "Digi-Key"]
    assert [(i.name, i.code) for i in parsed.items] == [("Resistor 10k", "P-100"), ("Cap 100nF", None)]
    assert len(parsed.sales) == len(parsed.purchases) == 2

    sale, purchase = parsed.sales[0], parsed.purchases[0]
    assert sale.unit_price == 1000
    assert sale.purchase_price == 600
    assert sale.profit == 11000 - 6600
    assert sale.margin_rate == 40.0
    assert purchase.purchase_date == "2024-03-01"
    assert (purchase.unit_cost, purchase.total_amount) == (600, 6600)
    assert purchase.expected_sale_price == 1000
    assert purchase.raw_row_index == sale.raw_row_index == 2


def test_combined_purchase_total_defaults_to_supply_plus_vat():
    row = _combined_row("한빛전자", "Mouser")
    row[16] = None
    parsed = parse_sheet([row], "combined", today=TODAY)
    assert parsed.data_start_row == COMBINED_LAYOUT.default_start_row
    assert parsed.sales == []

    parsed = parse_sheet([["x"]] * 6 + [row], "combined", today=TODAY)
    assert parsed.purchases[0].total_amount == 6600


def test_unknown_layout_rejected():
    with pytest.raises(ValueError):
        parse_sheet([], "invoice")
