"""
quickcart/billing/totals.py
---------------------------
VAT decomposition for cart lines and whole carts.

Prices are VAT-inclusive, so VAT is extracted, not added:

    total_incl_vat = unit_price × quantity
    total_excl_vat = total_incl_vat / (1 + vat_rate / 100)
    vat_amount     = total_incl_vat − total_excl_vat

Per-line figures keep full Decimal precision. Rounding to 0.01 happens
once, on the aggregates:

    grand_total       = round(Σ total_incl_vat)
    vat_total         = round(Σ vat_amount)
    subtotal_excl_vat = grand_total − vat_total

so grand_total == subtotal_excl_vat + vat_total holds exactly. Receipts,
order history and the POS screen all go through this module.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List


Q = Decimal('0.01')   # quantize target
HUNDRED = Decimal('100')


def as_decimal(value) -> Decimal:
    """Decimal from Decimal/int/str; floats go through str() to drop binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(Q, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineBreakdown:
    """Unrounded decomposition of one line."""
    vat_rate_percent: Decimal
    total_incl_vat:   Decimal
    total_excl_vat:   Decimal
    vat_amount:       Decimal

    def rounded(self) -> dict:
        return {
            'vat_rate_percent': str(self.vat_rate_percent),
            'total_incl_vat':   str(round_money(self.total_incl_vat)),
            'total_excl_vat':   str(round_money(self.total_excl_vat)),
            'vat_amount':       str(round_money(self.vat_amount)),
        }


@dataclass
class VatRecap:
    """Per-rate summary line printed at the bottom of a tax receipt."""
    vat_rate_percent: Decimal
    base:             Decimal = Decimal('0')
    vat:              Decimal = Decimal('0')
    total:            Decimal = Decimal('0')


@dataclass
class CartTotals:
    subtotal_excl_vat: Decimal = Decimal('0.00')
    vat_total:         Decimal = Decimal('0.00')
    grand_total:       Decimal = Decimal('0.00')
    lines:             List[LineBreakdown] = field(default_factory=list)
    vat_recap:         List[VatRecap] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'subtotal_excl_vat': str(self.subtotal_excl_vat),
            'vat_total':         str(self.vat_total),
            'grand_total':       str(self.grand_total),
            'vat_recap': [
                {
                    'vat_rate_percent': str(r.vat_rate_percent),
                    'base':             str(r.base),
                    'vat':              str(r.vat),
                    'total':            str(r.total),
                }
                for r in self.vat_recap
            ],
        }


def line_breakdown(unit_price, quantity, vat_rate_percent) -> LineBreakdown:
    unit_price       = as_decimal(unit_price)
    quantity         = as_decimal(quantity)
    vat_rate_percent = as_decimal(vat_rate_percent)

    total_incl = unit_price * quantity
    total_excl = total_incl / (1 + vat_rate_percent / HUNDRED)
    return LineBreakdown(
        vat_rate_percent=vat_rate_percent,
        total_incl_vat=total_incl,
        total_excl_vat=total_excl,
        vat_amount=total_incl - total_excl,
    )


def compute_totals(lines: Iterable) -> CartTotals:
    """
    Aggregate any iterable of objects exposing unit_price, quantity and
    vat_rate_percent (cart LineItems, OrderLines, stored order items).
    The result does not depend on line order.
    """
    breakdowns = [
        line_breakdown(l.unit_price, l.quantity, l.vat_rate_percent) for l in lines
    ]

    sum_incl = sum((b.total_incl_vat for b in breakdowns), start=Decimal('0'))
    sum_vat  = sum((b.vat_amount for b in breakdowns), start=Decimal('0'))

    grand_total = round_money(sum_incl)
    vat_total   = round_money(sum_vat)

    # VAT recap per rate, each rate rounded on its own
    by_rate: Dict[Decimal, List[LineBreakdown]] = {}
    for b in breakdowns:
        by_rate.setdefault(b.vat_rate_percent.quantize(Q), []).append(b)

    recap = []
    for rate in sorted(by_rate):
        group = by_rate[rate]
        total = round_money(sum((b.total_incl_vat for b in group), start=Decimal('0')))
        vat   = round_money(sum((b.vat_amount for b in group), start=Decimal('0')))
        recap.append(VatRecap(vat_rate_percent=rate, base=total - vat, vat=vat, total=total))

    return CartTotals(
        subtotal_excl_vat=grand_total - vat_total,
        vat_total=vat_total,
        grand_total=grand_total,
        lines=breakdowns,
        vat_recap=recap,
    )
