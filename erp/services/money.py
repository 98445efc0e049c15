"""
Money math for sales and purchases.

Amounts are whole won (KRW has no subunit here); rates are percentages with one
decimal. Every rounding step is round-half-up, never Python's banker's rounding.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

_WON = Decimal("1")
_RATE = Decimal("0.1")


def _dec(value) -> Decimal:
    # str() first so 0.1-style floats don't drag binary noise into the rounding.
    return Decimal(str(value if value is not None else 0))


def round_won(value) -> int:
    return int(_dec(value).quantize(_WON, rounding=ROUND_HALF_UP))


def round_rate(value) -> float:
    return float(_dec(value).quantize(_RATE, rounding=ROUND_HALF_UP))


def supply_amount(unit_price, quantity) -> int:
    return round_won(_dec(unit_price) * _dec(quantity))


def total_amount(supply, vat) -> int:
    return round_won(_dec(supply) + _dec(vat))


def profit(total, cost_basis, quantity) -> int:
    return round_won(_dec(total) - _dec(cost_basis) * _dec(quantity))


def margin_rate(profit_amount, total) -> float:
    total_d = _dec(total)
    if total_d <= 0:
        return 0.0
    return round_rate(_dec(profit_amount) / total_d * 100)


def expected_margin(expected_sale_price, unit_cost) -> float:
    esp = _dec(expected_sale_price)
    if esp <= 0:
        return 0.0
    return round_rate((esp - _dec(unit_cost)) / esp * 100)


def unit_price_from_supply(supply, quantity) -> int:
    qty = _dec(quantity)
    if qty <= 0:
        return 0
    return round_won(_dec(supply) / qty)


@dataclass(frozen=True)
class SaleFigures:
    unit_price: int
    supply_price: int
    vat_amount: int
    total_amount: int
    purchase_price: int
    profit_amount: int
    margin_rate: float


@dataclass(frozen=True)
class PurchaseFigures:
    unit_cost: int
    supply_amount: int
    vat_amount: int
    total_amount: int
    expected_sale_price: int
    expected_margin: float


def sale_figures(*, unit_price, quantity, vat=0, purchase_price=0) -> SaleFigures:
    supply = supply_amount(unit_price, quantity)
    total = total_amount(supply, vat or 0)
    p = profit(total, purchase_price or 0, quantity)
    return SaleFigures(
        unit_price=round_won(unit_price),
        supply_price=supply,
        vat_amount=round_won(vat or 0),
        total_amount=total,
        purchase_price=round_won(purchase_price or 0),
        profit_amount=p,
        margin_rate=margin_rate(p, total),
    )


def purchase_figures(*, unit_cost, quantity, vat=0, expected_sale_price=0) -> PurchaseFigures:
    supply = supply_amount(unit_cost, quantity)
    return PurchaseFigures(
        unit_cost=round_won(unit_cost),
        supply_amount=supply,
        vat_amount=round_won(vat or 0),
        total_amount=total_amount(supply, vat or 0),
        expected_sale_price=round_won(expected_sale_price or 0),
        expected_margin=expected_margin(expected_sale_price or 0, unit_cost),
    )
