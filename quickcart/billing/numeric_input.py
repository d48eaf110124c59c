"""
quickcart/billing/numeric_input.py
----------------------------------
The operator's half-typed number (numpad or keyboard) before it is
committed to the cart.

PendingNumericInput is immutable: press() returns a new buffer. Only
commit() produces a Decimal, so the cart never sees raw text.

Key rules
    '0'-'9'      append; a lone '0' is replaced by a non-zero digit and
                 never doubled ('0' + '0' stays '0')
    '00'         append two zeros, or only as many as the remaining
                 decimal places allow
    '.' or ','   one decimal separator (stored as '.'), a leading
                 separator becomes '0.'; ignored when max_decimals is 0
    Backspace    drop the last character
    Clear        empty the buffer
Keys that would exceed max_decimals or max_length are ignored.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Optional

from quickcart.errors import ValidationError

DIGITS = frozenset('0123456789')
SEPARATORS = frozenset('.,')
QUANTITY_COMMAND = re.compile(r'^\s*(\d+)\s*(?:\+|%2b)\s*$', re.IGNORECASE)


@dataclass(frozen=True)
class PendingNumericInput:
    buffer:       str = ''
    max_decimals: int = 2
    max_length:   int = 8

    # ── Presets ───────────────────────────────────────────────────

    @classmethod
    def for_price(cls) -> PendingNumericInput:
        return cls(max_decimals=2, max_length=8)     # 12345.67

    @classmethod
    def for_weight(cls) -> PendingNumericInput:
        return cls(max_decimals=3, max_length=7)     # 123.456 kg

    @classmethod
    def for_quantity(cls) -> PendingNumericInput:
        return cls(max_decimals=0, max_length=5)

    @classmethod
    def for_payment(cls) -> PendingNumericInput:
        return cls(max_decimals=2, max_length=10)

    # ── Inspection ────────────────────────────────────────────────

    @property
    def decimals(self) -> int:
        if '.' not in self.buffer:
            return 0
        return len(self.buffer.split('.', 1)[1])

    @property
    def is_empty(self) -> bool:
        return not self.buffer

    def _with(self, buffer: str) -> PendingNumericInput:
        if len(buffer) > self.max_length:
            return self
        return replace(self, buffer=buffer)

    # ── Editing ───────────────────────────────────────────────────

    def press(self, key: str) -> PendingNumericInput:
        if key == 'Backspace':
            return replace(self, buffer=self.buffer[:-1])
        if key in ('Clear', 'Delete'):
            return replace(self, buffer='')
        if key in SEPARATORS:
            return self._press_separator()
        if key == '00':
            return self._press_double_zero()
        if key in DIGITS:
            return self._press_digit(key)
        return self

    def _press_separator(self) -> PendingNumericInput:
        if self.max_decimals == 0 or '.' in self.buffer:
            return self
        return self._with((self.buffer or '0') + '.')

    def _press_digit(self, digit: str) -> PendingNumericInput:
        if '.' in self.buffer:
            if self.decimals >= self.max_decimals:
                return self
            return self._with(self.buffer + digit)
        if self.buffer == '0':
            return self if digit == '0' else self._with(digit)
        return self._with(self.buffer + digit)

    def _press_double_zero(self) -> PendingNumericInput:
        if '.' in self.buffer:
            room = self.max_decimals - self.decimals
            return self._with(self.buffer + '0' * min(2, room)) if room > 0 else self
        if self.buffer in ('', '0'):
            return self._with('0')
        return self._with(self.buffer + '00')

    @classmethod
    def from_text(cls, raw, template: Optional[PendingNumericInput] = None) -> PendingNumericInput:
        """
        Build a buffer from typed text ('12,5', '.5', '007').

        Anything that is not plain digits with one optional separator and
        at most `max_decimals` decimals raises ValidationError.
        """
        template = template or cls()
        text = '' if raw is None else str(raw).strip().replace(',', '.')
        if text == '':
            return template

        decimals = r'\.\d{0,%d}' % template.max_decimals if template.max_decimals else ''
        if not re.fullmatch(r'\d*(%s)?' % decimals, text) or text == '.':
            raise ValidationError(f'"{raw}" is not a valid number.')

        whole, dot, frac = text.partition('.')
        whole = whole.lstrip('0') or '0'
        buffer = whole + dot + frac
        if len(buffer) > template.max_length:
            raise ValidationError(f'"{raw}" is too long.')
        return replace(template, buffer=buffer)

    # ── Commit ────────────────────────────────────────────────────

    def commit(self) -> Decimal:
        """Parse the buffer. Empty or unparsable input → ValidationError."""
        text = self.buffer.rstrip('.')
        if not text:
            raise ValidationError('Enter a number first.')
        try:
            return Decimal(text)
        except InvalidOperation:
            raise ValidationError(f'"{self.buffer}" is not a valid number.')


def parse_amount(raw, template: PendingNumericInput) -> Decimal:
    """Typed text → Decimal with the rules of `template`."""
    return PendingNumericInput.from_text(raw, template).commit()


def parse_quantity_command(text) -> Optional[Decimal]:
    """
    The barcode field doubles as a quantity shortcut: '5+' (or '5%2b'
    from URL-encoded scanners) means "set quantity to 5".
    Returns the quantity, or None when `text` is not such a command.
    """
    match = QUANTITY_COMMAND.match(str(text or ''))
    if not match:
        return None
    return Decimal(match.group(1))
