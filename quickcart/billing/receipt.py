"""
quickcart/billing/receipt.py
----------------------------
Receipt document for a finished sale and its fixed-width text form
for 58/80 mm thermal printers.

Two sources:
    from_checkout()  right after payment, from the FinalizeResult
                     (manual entries included)
    from_order()     re-printing a stored order (catalog items only)
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from quickcart.billing.cart import format_quantity
from quickcart.billing.totals import CartTotals, compute_totals, round_money

RECEIPT_WIDTH = 42
CURRENCY = 'Kč'


@dataclass
class ReceiptLine:
    label:            str
    quantity:         str
    unit:             str
    unit_price:       Decimal
    total:            Decimal
    vat_rate_percent: Decimal

    def to_dict(self) -> dict:
        return {
            'label':            self.label,
            'quantity':         self.quantity,
            'unit':             self.unit,
            'unit_price':       str(self.unit_price),
            'total':            str(self.total),
            'vat_rate_percent': str(self.vat_rate_percent),
        }


@dataclass
class Receipt:
    merchant:        dict
    created_at:      datetime
    totals:          CartTotals
    amount_tendered: Decimal
    change_due:      Decimal
    receipt_number:  Optional[str] = None
    lines:           List[ReceiptLine] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'merchant':        self.merchant,
            'receipt_number':  self.receipt_number,
            'created_at':      self.created_at.isoformat(),
            'lines':           [line.to_dict() for line in self.lines],
            'totals':          self.totals.to_dict(),
            'amount_tendered': str(self.amount_tendered),
            'change_due':      str(self.change_due),
        }

    def render_text(self, width: int = RECEIPT_WIDTH) -> str:
        """Plain-text receipt, every line at most `width` characters."""
        rule = '-' * width
        out = []

        m = self.merchant
        for text in (m.get('company_name'), m.get('company_address')):
            if text:
                out.append(text[:width].center(width).rstrip())
        ids = f"IČO: {m.get('ico')}" if m.get('ico') else ''
        if m.get('dic'):
            ids += f"  DIČ: {m['dic']}"
        if ids:
            out.append(ids[:width].center(width).rstrip())

        out.append(rule)
        out.append(_row(f"Receipt {self.receipt_number or ''}".strip(),
                        self.created_at.strftime('%d.%m.%Y %H:%M'), width))
        out.append(rule)

        for line in self.lines:
            out.append(line.label[:width])
            out.append(_row(f"  {line.quantity} {line.unit} x {line.unit_price}",
                            str(line.total), width))

        out.append(rule)
        out.append(_row('TOTAL', f"{self.totals.grand_total} {CURRENCY}", width))
        out.append(_row('Paid', f"{self.amount_tendered} {CURRENCY}", width))
        out.append(_row('Change', f"{self.change_due} {CURRENCY}", width))
        out.append(rule)

        out.append(_row('VAT %', 'Base      VAT    Total', width))
        for r in self.totals.vat_recap:
            out.append(_row(f"{r.vat_rate_percent} %", f"{r.base:>9} {r.vat:>7} {r.total:>9}", width))
        out.append(_row('Excl. VAT', str(self.totals.subtotal_excl_vat), width))
        out.append(_row('VAT', str(self.totals.vat_total), width))
        return '\n'.join(out) + '\n'


def _row(left: str, right: str, width: int) -> str:
    """Left text padded so `right` ends at column `width`."""
    room = max(0, width - len(right) - 1)
    return f"{left[:room]:<{room}} {right}"


def merchant_header(merchant) -> dict:
    if merchant is None:
        return {}
    return {
        'company_name':    merchant.company_name,
        'company_address': merchant.company_address,
        'ico':             merchant.ico,
        'dic':             merchant.dic,
    }


def from_checkout(merchant, result, receipt_number: Optional[str] = None) -> Receipt:
    """Receipt for a FinalizeResult, covering the whole cart as paid."""
    lines = [
        ReceiptLine(
            label=line.label,
            quantity=line.formatted_quantity,
            unit=line.unit_kind.value,
            unit_price=line.unit_price,
            total=round_money(line.breakdown().total_incl_vat),
            vat_rate_percent=line.vat_rate_percent,
        )
        for line in result.receipt_lines
    ]
    return Receipt(
        merchant=merchant_header(merchant),
        receipt_number=receipt_number,
        created_at=result.created_at,
        lines=lines,
        totals=result.totals,
        amount_tendered=result.amount_tendered,
        change_due=result.change_due,
    )


def from_order(order) -> Receipt:
    """Receipt re-built from a stored Order."""
    lines = []
    for item in order.items:
        product = item.product
        quantity = Decimal(str(item.quantity))
        lines.append(ReceiptLine(
            label=product.name if product else f'Product #{item.product_id}',
            quantity=format_quantity(quantity, product.unit_kind) if product else str(quantity),
            unit=product.unit_kind.value if product else '',
            unit_price=item.unit_price,
            total=round_money(item.breakdown().total_incl_vat),
            vat_rate_percent=item.vat_rate_percent,
        ))
    return Receipt(
        merchant=merchant_header(order.merchant),
        receipt_number=order.receipt_number,
        created_at=order.created_at,
        lines=lines,
        totals=compute_totals(order.items),
        amount_tendered=Decimal(str(order.amount_tendered)),
        change_due=Decimal(str(order.change_due)),
    )
