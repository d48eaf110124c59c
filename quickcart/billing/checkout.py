"""
quickcart/billing/checkout.py
-----------------------------
Checkout state machine: turns a cart into a finalized order.

    OPEN ──begin_tendering()──▶ TENDERING ──finalize()──▶ FINALIZED
      ▲                            │  │
      └────cancel_tendering()──────┘  └─ insufficient payment or
                                         PersistenceError: stays in
                                         TENDERING, cart untouched

A FINALIZED session accepts new scans; the first mutation or a new
begin_tendering() starts the next sale.

Only catalog lines (reference_id > 0) become OrderLines. The stored
order totals cover those lines, matching what is persisted; payment
is checked against the whole cart's amount due. A cart of manual
entries only finalizes without an order record (order_created False).
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from quickcart.errors import ValidationError
from quickcart.billing.cart import Cart, LineItem
from quickcart.billing.totals import CartTotals, as_decimal, compute_totals
from quickcart.utils.clock import shop_now


class CheckoutState(enum.Enum):
    open      = "open"
    tendering = "tendering"
    finalized = "finalized"


@dataclass(frozen=True)
class OrderLine:
    product_reference_id: int
    quantity:             Decimal
    unit_price_at_sale:   Decimal
    vat_rate_at_sale:     Decimal

    # compute_totals() reads these names
    @property
    def unit_price(self) -> Decimal:
        return self.unit_price_at_sale

    @property
    def vat_rate_percent(self) -> Decimal:
        return self.vat_rate_at_sale


@dataclass(frozen=True)
class FinalizedOrder:
    merchant_id:       int
    created_at:        datetime
    subtotal_excl_vat: Decimal
    vat_total:         Decimal
    grand_total:       Decimal
    amount_tendered:   Decimal
    change_due:        Decimal
    lines:             List[OrderLine] = field(default_factory=list)


@dataclass
class FinalizeResult:
    """
    What the operator sees after payment. `receipt_lines` and `totals`
    cover the full cart (manual entries included) for printing.
    """
    order_created:   bool
    order_id:        Optional[int]
    order:           Optional[FinalizedOrder]
    amount_due:      Decimal
    amount_tendered: Decimal
    change_due:      Decimal
    created_at:      datetime
    receipt_lines:   List[LineItem]
    totals:          CartTotals


SaveOrder = Callable[[int, FinalizedOrder], int]


def build_order(merchant_id: int, lines, amount_tendered: Decimal,
                change_due: Decimal, created_at: datetime) -> FinalizedOrder:
    """FinalizedOrder over the catalog lines of `lines`."""
    order_lines = [
        OrderLine(
            product_reference_id=line.reference_id,
            quantity=line.quantity,
            unit_price_at_sale=line.unit_price,
            vat_rate_at_sale=line.vat_rate_percent,
        )
        for line in lines if not line.is_manual
    ]
    totals = compute_totals(order_lines)
    return FinalizedOrder(
        merchant_id=merchant_id,
        created_at=created_at,
        subtotal_excl_vat=totals.subtotal_excl_vat,
        vat_total=totals.vat_total,
        grand_total=totals.grand_total,
        amount_tendered=amount_tendered,
        change_due=change_due,
        lines=order_lines,
    )


class CheckoutSession:
    """One till's cart plus where it stands in the checkout flow."""

    def __init__(self, cart: Optional[Cart] = None,
                 state: CheckoutState = CheckoutState.open,
                 amount_due: Optional[Decimal] = None):
        self.cart = cart if cart is not None else Cart()
        self.state = state
        self.amount_due = amount_due

    @property
    def is_tendering(self) -> bool:
        return self.state is CheckoutState.tendering

    def require_open(self) -> Cart:
        """
        Cart to mutate. Refused while tendering; a FINALIZED session
        reopens for the next sale.
        """
        if self.state is CheckoutState.tendering:
            raise ValidationError('Payment is in progress. Finish or cancel it first.')
        self.state = CheckoutState.open
        return self.cart

    def begin_tendering(self) -> Decimal:
        """Freeze the amount due and wait for payment."""
        if self.state is CheckoutState.tendering:
            return self.amount_due
        if self.cart.is_empty:
            raise ValidationError('The cart is empty.')
        self.amount_due = self.cart.totals().grand_total
        self.state = CheckoutState.tendering
        return self.amount_due

    def cancel_tendering(self) -> None:
        if self.state is CheckoutState.tendering:
            self.state = CheckoutState.open
            self.amount_due = None

    def finalize(self, merchant_id: int, amount_tendered, save_order: SaveOrder,
                 now: Optional[datetime] = None) -> FinalizeResult:
        """
        Take payment and hand the order to `save_order`.

        The cart is cleared only after save_order returns. A
        PersistenceError from it propagates with the session still
        TENDERING and the cart intact, so the operator can retry.
        """
        if self.state is not CheckoutState.tendering:
            raise ValidationError('Start the checkout before taking payment.')
        if merchant_id is None:
            raise ValidationError('No merchant for this checkout.')

        amount_tendered = as_decimal(amount_tendered)
        if not amount_tendered.is_finite() or amount_tendered < self.amount_due:
            raise ValidationError(
                'Paid amount is insufficient.',
                details={'amount_due': str(self.amount_due),
                         'amount_tendered': str(amount_tendered)},
            )

        created_at = now or shop_now()
        change_due = amount_tendered - self.amount_due
        receipt_lines = list(self.cart.copy())
        totals = self.cart.totals()

        order = build_order(merchant_id, self.cart, amount_tendered, change_due, created_at)
        order_id = None
        if order.lines:
            # PersistenceError escapes here, before any state change
            order_id = save_order(merchant_id, order)
        else:
            order = None

        result = FinalizeResult(
            order_created=order is not None,
            order_id=order_id,
            order=order,
            amount_due=self.amount_due,
            amount_tendered=amount_tendered,
            change_due=change_due,
            created_at=created_at,
            receipt_lines=receipt_lines,
            totals=totals,
        )
        self.cart.reset()
        self.state = CheckoutState.finalized
        self.amount_due = None
        return result

    # ── Serialisation ─────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            'cart':       self.cart.to_dict(),
            'state':      self.state.value,
            'amount_due': str(self.amount_due) if self.amount_due is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> CheckoutSession:
        if not data:
            return cls()
        amount_due = data.get('amount_due')
        session = cls(
            cart=Cart.from_dict(data.get('cart')),
            state=CheckoutState(data.get('state', 'open')),
            amount_due=Decimal(amount_due) if amount_due is not None else None,
        )
        if session.state is CheckoutState.tendering and session.amount_due is None:
            session.state = CheckoutState.open
        return session
