"""
test_checkout.py: checkout state machine, without a database.
Run: pytest test_checkout.py -v
"""
from datetime import datetime
from decimal import Decimal

import pytest

from quickcart.errors import PersistenceError, ValidationError
from quickcart.billing.cart import Cart
from quickcart.billing.checkout import CheckoutSession, CheckoutState
from quickcart.inventory.lookup import CatalogProduct
from quickcart.inventory.models import UnitKind


def make_product(pid, price, vat='21', kind=UnitKind.countable):
    return CatalogProduct(id=pid, name=f'Product {pid}', barcode=f'BC{pid}',
                          unit_price=Decimal(price), unit_kind=kind,
                          category_id=1, vat_rate_percent=Decimal(vat))


class RecordingStore:
    """save_order stand-in that remembers what it was given."""

    def __init__(self, fail=False):
        self.fail = fail
        self.saved = []

    def __call__(self, merchant_id, order):
        if self.fail:
            raise PersistenceError('The order could not be saved. Please try again.')
        self.saved.append((merchant_id, order))
        return 42


@pytest.fixture
def checkout():
    cart = Cart()
    cart.add_or_increment(make_product(1, '25.00'), Decimal('2'))
    return CheckoutSession(cart)


# ── 1. Tendering ─────────────────────────────────────────────────────────────

def test_begin_tendering_freezes_amount_due(checkout):
    assert checkout.begin_tendering() == Decimal('50.00')
    assert checkout.state is CheckoutState.tendering


def test_empty_cart_cannot_be_tendered():
    with pytest.raises(ValidationError):
        CheckoutSession().begin_tendering()


def test_cart_locked_while_tendering(checkout):
    checkout.begin_tendering()
    with pytest.raises(ValidationError):
        checkout.require_open()
    checkout.cancel_tendering()
    assert checkout.state is CheckoutState.open
    assert checkout.amount_due is None
    checkout.require_open().add_or_increment(make_product(2, '10'), Decimal('1'))
    assert len(checkout.cart) == 2


# ── 2. Finalize ──────────────────────────────────────────────────────────────

def test_finalize_requires_tendering(checkout):
    with pytest.raises(ValidationError):
        checkout.finalize(1, Decimal('100'), RecordingStore())


def test_insufficient_payment(checkout):
    store = RecordingStore()
    checkout.begin_tendering()
    with pytest.raises(ValidationError) as exc:
        checkout.finalize(1, Decimal('49.99'), store)
    assert exc.value.details['amount_due'] == '50.00'
    assert store.saved == []
    assert checkout.state is CheckoutState.tendering
    assert len(checkout.cart) == 1


def test_finalize_success(checkout):
    store = RecordingStore()
    checkout.begin_tendering()
    now = datetime(2026, 3, 1, 10, 30)
    result = checkout.finalize(7, Decimal('100'), store, now=now)

    assert result.order_created
    assert result.order_id == 42
    assert result.change_due == Decimal('50.00')
    assert result.created_at == now
    assert len(result.receipt_lines) == 1

    merchant_id, order = store.saved[0]
    assert merchant_id == 7
    assert order.grand_total == Decimal('50.00')
    assert order.vat_total + order.subtotal_excl_vat == order.grand_total
    assert order.amount_tendered == Decimal('100')
    assert order.lines[0].product_reference_id == 1
    assert order.lines[0].unit_price_at_sale == Decimal('25.00')
    assert order.lines[0].vat_rate_at_sale == Decimal('21')

    assert checkout.cart.is_empty
    assert checkout.state is CheckoutState.finalized


def test_exact_payment_gives_zero_change(checkout):
    checkout.begin_tendering()
    result = checkout.finalize(1, Decimal('50.00'), RecordingStore())
    assert result.change_due == Decimal('0')


def test_persistence_failure_keeps_cart(checkout):
    checkout.begin_tendering()
    with pytest.raises(PersistenceError):
        checkout.finalize(1, Decimal('50'), RecordingStore(fail=True))
    assert checkout.state is CheckoutState.tendering
    assert checkout.cart.lines[0].quantity == Decimal('2')

    # retry succeeds with the same cart
    result = checkout.finalize(1, Decimal('50'), RecordingStore())
    assert result.order_created


def test_manual_entries_not_persisted(checkout):
    checkout.cart.add_manual_entry(3, Decimal('20'), lambda category_id: Decimal('12'))
    store = RecordingStore()
    checkout.begin_tendering()
    result = checkout.finalize(1, Decimal('70'), store)

    order = store.saved[0][1]
    assert [l.product_reference_id for l in order.lines] == [1]
    assert order.grand_total == Decimal('50.00')     # catalog lines only
    assert result.amount_due == Decimal('70.00')     # what the customer paid for
    assert result.totals.grand_total == Decimal('70.00')
    assert len(result.receipt_lines) == 2


def test_manual_only_cart_finalizes_without_order():
    cart = Cart()
    cart.add_manual_entry(3, Decimal('20'), lambda category_id: Decimal('12'))
    checkout = CheckoutSession(cart)
    store = RecordingStore()
    checkout.begin_tendering()
    result = checkout.finalize(1, Decimal('20'), store)

    assert result.order_created is False
    assert result.order_id is None
    assert store.saved == []
    assert checkout.cart.is_empty


def test_finalized_session_reopens_on_next_scan(checkout):
    checkout.begin_tendering()
    checkout.finalize(1, Decimal('50'), RecordingStore())
    checkout.require_open().add_or_increment(make_product(2, '10'), Decimal('1'))
    assert checkout.state is CheckoutState.open
    assert len(checkout.cart) == 1


# ── 3. Session form ──────────────────────────────────────────────────────────

def test_roundtrip_while_tendering(checkout):
    checkout.begin_tendering()
    restored = CheckoutSession.from_dict(checkout.to_dict())
    assert restored.state is CheckoutState.tendering
    assert restored.amount_due == Decimal('50.00')


def test_tendering_without_amount_falls_back_to_open():
    restored = CheckoutSession.from_dict({'cart': None, 'state': 'tendering', 'amount_due': None})
    assert restored.state is CheckoutState.open
