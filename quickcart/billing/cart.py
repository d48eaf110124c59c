"""
quickcart/billing/cart.py
-------------------------
The in-progress cart and every rule for mutating it.

No I/O happens here. Catalog data arrives as CatalogProduct snapshots,
VAT for manual entries through a resolver callable, and persistence of
the cart between requests is handled by billing/store.py.

Pointer contract (indices into `lines`):
    selected      explicit operator selection for targeted edits
    last_touched  the line most recently added or updated; the implicit
                  edit target when nothing is selected

    operation            selected     last_touched
    ───────────────────  ───────────  ─────────────────────────────
    add_or_increment     cleared      resulting line (cleared if the
                                      line was removed)
    add_manual_entry     cleared      new line
    set_quantity         cleared      target line
    set_weight           cleared      target line
    edit_unit_price      cleared      unchanged
    remove_selected      cleared      cleared if it was the removed line
    move_selection_*     moved        unchanged
    reset                cleared      cleared

Money and quantities are Decimal throughout; the session form stores
them as strings so JSON serialisation never goes through float.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterator, List, Optional

from quickcart.errors import NotFoundError, ValidationError
from quickcart.inventory.models import UnitKind
from quickcart.billing.totals import CartTotals, as_decimal, compute_totals, line_breakdown

MANUAL_CODE_PREFIX = 'MANUAL_'
WEIGHT_PLACES = Decimal('0.001')


def format_quantity(quantity: Decimal, unit_kind: UnitKind) -> str:
    """'3' for pieces, '0.500' for kilograms."""
    if unit_kind is UnitKind.weighed:
        return str(quantity.quantize(WEIGHT_PLACES))
    return str(quantity.to_integral_value())


@dataclass
class LineItem:
    """One row of the cart. Manual entries carry a negative reference_id."""
    reference_id:     int
    display_code:     str
    label:            str
    quantity:         Decimal
    unit_price:       Decimal
    category_id:      int
    vat_rate_percent: Decimal
    unit_kind:        UnitKind

    @property
    def key(self):
        return (self.reference_id, self.unit_kind)

    @property
    def is_manual(self) -> bool:
        return self.reference_id < 0

    @property
    def formatted_quantity(self) -> str:
        return format_quantity(self.quantity, self.unit_kind)

    def breakdown(self):
        return line_breakdown(self.unit_price, self.quantity, self.vat_rate_percent)

    # ── Serialisation ─────────────────────────────────────────────
    def to_dict(self) -> dict:
        return {
            'reference_id':     self.reference_id,
            'display_code':     self.display_code,
            'label':            self.label,
            'quantity':         str(self.quantity),
            'unit_price':       str(self.unit_price),
            'category_id':      self.category_id,
            'vat_rate_percent': str(self.vat_rate_percent),
            'unit_kind':        self.unit_kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> LineItem:
        return cls(
            reference_id=int(data['reference_id']),
            display_code=data['display_code'],
            label=data['label'],
            quantity=Decimal(data['quantity']),
            unit_price=Decimal(data['unit_price']),
            category_id=int(data['category_id']),
            vat_rate_percent=Decimal(data['vat_rate_percent']),
            unit_kind=UnitKind(data['unit_kind']),
        )

    # Session rows: positional, so the cookie carries no repeated key names.
    def to_row(self) -> list:
        return [self.reference_id, self.display_code, self.label, str(self.quantity),
                str(self.unit_price), self.category_id, str(self.vat_rate_percent),
                self.unit_kind.value]

    @classmethod
    def from_row(cls, row) -> LineItem:
        if isinstance(row, dict):
            return cls.from_dict(row)
        ref, code, label, qty, price, category, vat, kind = row
        return cls(reference_id=int(ref), display_code=code, label=label,
                   quantity=Decimal(qty), unit_price=Decimal(price),
                   category_id=int(category), vat_rate_percent=Decimal(vat),
                   unit_kind=UnitKind(kind))


def _require_positive(value: Decimal, what: str) -> None:
    if value is None or not as_decimal(value).is_finite() or value <= 0:
        raise ValidationError(f'{what} must be a positive number.')


def _require_whole(value: Decimal, what: str) -> None:
    value = as_decimal(value)
    if value != value.to_integral_value():
        raise ValidationError(f'{what} must be a whole number.')


class Cart:
    """Ordered line items plus the selection and last-touched pointers."""

    def __init__(self, lines: Optional[List[LineItem]] = None,
                 selected: Optional[int] = None,
                 last_touched: Optional[int] = None,
                 manual_seq: int = 0):
        self.lines: List[LineItem] = list(lines or [])
        self.selected = selected
        self.last_touched = last_touched
        # Source of unique negative reference ids for manual entries
        self.manual_seq = manual_seq

    # ── Read ──────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def selected_line(self) -> Optional[LineItem]:
        return self.lines[self.selected] if self.selected is not None else None

    @property
    def last_touched_line(self) -> Optional[LineItem]:
        return self.lines[self.last_touched] if self.last_touched is not None else None

    def find(self, reference_id: int, unit_kind: UnitKind) -> Optional[int]:
        for index, line in enumerate(self.lines):
            if line.key == (reference_id, unit_kind):
                return index
        return None

    def totals(self) -> CartTotals:
        return compute_totals(self.lines)

    def _target_index(self) -> int:
        """Selection wins over last-touched; neither → ValidationError."""
        if self.selected is not None:
            return self.selected
        if self.last_touched is not None:
            return self.last_touched
        raise ValidationError('Scan or select an item first.')

    # ── Internal write helpers ────────────────────────────────────

    def _drop(self, index: int) -> LineItem:
        """Remove a line and shift both pointers so they stay valid."""
        removed = self.lines.pop(index)
        for attr in ('selected', 'last_touched'):
            pointer = getattr(self, attr)
            if pointer is None:
                continue
            if pointer == index:
                setattr(self, attr, None)
            elif pointer > index:
                setattr(self, attr, pointer - 1)
        return removed

    # ── 1. Scan / weigh ───────────────────────────────────────────

    def add_or_increment(self, product, quantity: Decimal,
                         as_exact_amount: bool = False) -> Optional[LineItem]:
        """
        Add `quantity` of a catalog product, or set it when as_exact_amount.

        Returns the resulting line, or None when a countable line was
        driven to zero and removed. Unit price and VAT are taken from
        `product` only when the line is created.
        """
        quantity = as_decimal(quantity)
        unit_kind = product.unit_kind
        index = self.find(product.id, unit_kind)

        if index is None:
            _require_positive(quantity, 'Quantity' if unit_kind is UnitKind.countable else 'Weight')
            if unit_kind is UnitKind.countable:
                _require_whole(quantity, 'Quantity')
            self.lines.append(LineItem(
                reference_id=product.id,
                display_code=product.barcode,
                label=product.name,
                quantity=quantity,
                unit_price=as_decimal(product.unit_price),
                category_id=product.category_id,
                vat_rate_percent=as_decimal(product.vat_rate_percent),
                unit_kind=unit_kind,
            ))
            self.selected = None
            self.last_touched = len(self.lines) - 1
            return self.lines[-1]

        line = self.lines[index]
        new_quantity = quantity if as_exact_amount else line.quantity + quantity

        if new_quantity <= 0:
            if unit_kind is UnitKind.weighed:
                raise ValidationError(
                    f'Weight of "{line.label}" cannot be zero or negative. Item unchanged.'
                )
            self._drop(index)
            self.selected = None
            return None

        if unit_kind is UnitKind.countable:
            _require_whole(new_quantity, 'Quantity')
        line.quantity = new_quantity
        self.selected = None
        self.last_touched = index
        return line

    # ── 2. Quantity / weight of the target line ───────────────────

    def set_quantity(self, new_quantity: Decimal) -> LineItem:
        """Set the piece count of the selected (or last touched) line."""
        index = self._target_index()
        line = self.lines[index]
        if line.unit_kind is UnitKind.weighed:
            raise ValidationError(
                f'"{line.label}" is sold by weight. Confirm a new weight instead.'
            )
        _require_positive(new_quantity, 'Quantity')
        _require_whole(new_quantity, 'Quantity')
        line.quantity = as_decimal(new_quantity)
        self.selected = None
        self.last_touched = index
        return line

    def set_weight(self, new_weight: Decimal) -> LineItem:
        """Weight confirmation: the operator re-enters the full new weight."""
        index = self._target_index()
        line = self.lines[index]
        if line.unit_kind is not UnitKind.weighed:
            raise ValidationError(f'"{line.label}" is sold by the piece. Set a quantity instead.')
        _require_positive(new_weight, 'Weight')
        line.quantity = as_decimal(new_weight)
        self.selected = None
        self.last_touched = index
        return line

    # ── 3. Price ──────────────────────────────────────────────────

    def edit_unit_price(self, new_price: Decimal) -> LineItem:
        index = self._target_index()
        if new_price is None or not as_decimal(new_price).is_finite() or new_price < 0:
            raise ValidationError('Price must be zero or a positive number.')
        line = self.lines[index]
        line.unit_price = as_decimal(new_price)
        self.selected = None
        return line

    # ── 4. Manual entry ───────────────────────────────────────────

    def add_manual_entry(self, category_id: int, price: Decimal,
                         resolve_vat: Callable[[int], Decimal],
                         label: Optional[str] = None) -> LineItem:
        """
        Add one piece at an ad-hoc price under a product type.

        `resolve_vat(category_id)` returns the VAT percentage or raises
        NotFoundError; either that or a non-positive price is a
        ValidationError here.
        """
        if price is None or not as_decimal(price).is_finite() or price <= 0:
            raise ValidationError('Enter a valid positive price.')
        try:
            vat_rate = resolve_vat(category_id)
        except NotFoundError as exc:
            raise ValidationError(f'VAT for the product type could not be resolved: {exc.message}')
        if vat_rate is None:
            raise ValidationError('VAT for the product type could not be resolved.')

        self.manual_seq += 1
        line = LineItem(
            reference_id=-self.manual_seq,
            display_code=f'{MANUAL_CODE_PREFIX}{category_id}',
            label=label or 'Manual entry',
            quantity=Decimal('1'),
            unit_price=as_decimal(price),
            category_id=category_id,
            vat_rate_percent=as_decimal(vat_rate),
            unit_kind=UnitKind.countable,
        )
        self.lines.append(line)
        self.selected = None
        self.last_touched = len(self.lines) - 1
        return line

    # ── 5. Removal ────────────────────────────────────────────────

    def remove_selected(self) -> Optional[LineItem]:
        """Remove the selected line; None (no-op) when nothing is selected."""
        if self.selected is None:
            return None
        removed = self._drop(self.selected)
        self.selected = None
        return removed

    # ── Selection navigation ──────────────────────────────────────

    def move_selection_up(self) -> Optional[int]:
        if not self.lines:
            return None
        if self.selected is None:
            self.selected = len(self.lines) - 1
        else:
            self.selected = max(0, self.selected - 1)
        return self.selected

    def move_selection_down(self) -> Optional[int]:
        if not self.lines:
            return None
        if self.selected is None:
            self.selected = 0
        else:
            self.selected = min(len(self.lines) - 1, self.selected + 1)
        return self.selected

    def select(self, index: int) -> LineItem:
        if not 0 <= index < len(self.lines):
            raise ValidationError('No such line in the cart.')
        self.selected = index
        return self.lines[index]

    def clear_selection(self) -> None:
        self.selected = None

    def reset(self) -> None:
        self.lines = []
        self.selected = None
        self.last_touched = None

    # ── Serialisation ─────────────────────────────────────────────

    def copy(self) -> Cart:
        return Cart([replace(line) for line in self.lines],
                    self.selected, self.last_touched, self.manual_seq)

    def to_dict(self) -> dict:
        return {
            'lines':        [line.to_row() for line in self.lines],
            'selected':     self.selected,
            'last_touched': self.last_touched,
            'manual_seq':   self.manual_seq,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Cart:
        """Rebuild a cart; out-of-range pointers from a stale cookie are dropped."""
        if not data:
            return cls()
        lines = [LineItem.from_row(row) for row in data.get('lines', [])]

        def valid(pointer):
            return pointer if isinstance(pointer, int) and 0 <= pointer < len(lines) else None

        return cls(lines, valid(data.get('selected')), valid(data.get('last_touched')),
                   int(data.get('manual_seq', 0)))
