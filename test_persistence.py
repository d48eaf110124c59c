"""
test_persistence.py: writing finalized orders and allocating receipt numbers.
Run: pytest test_persistence.py -v
"""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import SQLAlchemyError

from quickcart import create_app, db, seed_reference_data
from quickcart.auth.models import Merchant
from quickcart.billing.checkout import FinalizedOrder, OrderLine
from quickcart.billing.invoice import generate_receipt_number
from quickcart.billing.models import Order, OrderItem, ReceiptSequence
from quickcart.billing.persistence import save_order
from quickcart.billing.totals import compute_totals
from quickcart.errors import PersistenceError, ValidationError
from quickcart.inventory.models import Product, ProductType, UnitKind

SALE_TIME = datetime(2026, 3, 2, 9, 15)


@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        seed_reference_data()
        yield app
        db.session.remove()
        db.drop_all()


def make_merchant(email):
    merchant = Merchant(ico='12345678', company_name=email, email=email)
    merchant.set_password('secret1')
    db.session.add(merchant)
    db.session.commit()
    return merchant


def make_product(merchant, barcode='8590001', price='25.00', kind=UnitKind.countable):
    drinks = ProductType.query.filter_by(name='Nápoje').first()
    product = Product(merchant_id=merchant.id, name=f'Product {barcode}', barcode=barcode,
                      price=Decimal(price), unit_kind=kind, product_type_id=drinks.id)
    db.session.add(product)
    db.session.commit()
    return product


def finalized(merchant, *items, tendered=None, when=SALE_TIME):
    """items: (product, quantity) pairs."""
    lines = [
        OrderLine(product_reference_id=p.id, quantity=Decimal(q),
                  unit_price_at_sale=Decimal(str(p.price)), vat_rate_at_sale=p.vat_rate)
        for p, q in items
    ]
    totals = compute_totals(lines)
    tendered = Decimal(tendered) if tendered else totals.grand_total
    return FinalizedOrder(
        merchant_id=merchant.id,
        created_at=when,
        subtotal_excl_vat=totals.subtotal_excl_vat,
        vat_total=totals.vat_total,
        grand_total=totals.grand_total,
        amount_tendered=tendered,
        change_due=tendered - totals.grand_total,
        lines=lines,
    )


# ── 1. save_order ────────────────────────────────────────────────────────────

def test_save_order_writes_header_and_items(app):
    shop = make_merchant('shop@example.cz')
    cola = make_product(shop)
    apples = make_product(shop, barcode='APPLE', price='34.90', kind=UnitKind.weighed)

    order_id = save_order(shop.id, finalized(shop, (cola, '2'), (apples, '0.455'), tendered='100'))

    order = db.session.get(Order, order_id)
    assert order.receipt_number == '2026-0001'
    assert order.created_at == SALE_TIME
    assert order.grand_total == Decimal('65.88')
    assert order.vat_total + order.subtotal_excl_vat == order.grand_total
    assert order.amount_tendered == Decimal('100.00')
    assert order.change_due == Decimal('34.12')

    assert [item.product_id for item in order.items] == [cola.id, apples.id]
    weighed = order.items[1]
    assert weighed.quantity == Decimal('0.455')
    assert weighed.unit_price_at_sale == Decimal('34.90')
    assert weighed.vat_rate_at_sale == Decimal('21.00')


def test_snapshot_survives_price_change(app):
    shop = make_merchant('shop@example.cz')
    cola = make_product(shop)
    order_id = save_order(shop.id, finalized(shop, (cola, '1')))

    cola.price = Decimal('29.90')
    db.session.commit()

    item = db.session.get(Order, order_id).items[0]
    assert item.unit_price_at_sale == Decimal('25.00')
    assert item.to_dict()['total_incl_vat'] == '25.00'


def test_empty_order_rejected(app):
    shop = make_merchant('shop@example.cz')
    with pytest.raises(ValidationError):
        save_order(shop.id, finalized(shop))
    assert Order.query.count() == 0


def test_foreign_product_rejected(app):
    shop = make_merchant('shop@example.cz')
    other = make_merchant('other@example.cz')
    theirs = make_product(other, barcode='THEIRS')

    with pytest.raises(ValidationError) as exc:
        save_order(shop.id, finalized(shop, (theirs, '1')))
    assert exc.value.details == {'product_ids': [theirs.id]}
    assert Order.query.count() == 0
    assert ReceiptSequence.query.count() == 0


def test_database_failure_becomes_persistence_error(app, monkeypatch):
    shop = make_merchant('shop@example.cz')
    cola = make_product(shop)

    def broken(*args, **kwargs):
        raise SQLAlchemyError('database is locked')

    monkeypatch.setattr('quickcart.billing.persistence.generate_receipt_number', broken)
    with pytest.raises(PersistenceError):
        save_order(shop.id, finalized(shop, (cola, '1')))
    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0


# ── 2. Receipt numbers ───────────────────────────────────────────────────────

def test_receipt_numbers_are_sequential(app):
    shop = make_merchant('shop@example.cz')
    cola = make_product(shop)
    numbers = [
        db.session.get(Order, save_order(shop.id, finalized(shop, (cola, '1')))).receipt_number
        for _ in range(3)
    ]
    assert numbers == ['2026-0001', '2026-0002', '2026-0003']


def test_receipt_numbers_are_per_merchant(app):
    shop = make_merchant('shop@example.cz')
    other = make_merchant('other@example.cz')
    ours = make_product(shop)
    theirs = make_product(other)

    save_order(shop.id, finalized(shop, (ours, '1')))
    save_order(shop.id, finalized(shop, (ours, '1')))
    other_id = save_order(other.id, finalized(other, (theirs, '1')))

    assert db.session.get(Order, other_id).receipt_number == '2026-0001'


def test_new_year_restarts_sequence(app):
    shop = make_merchant('shop@example.cz')
    cola = make_product(shop)
    save_order(shop.id, finalized(shop, (cola, '1'), when=datetime(2025, 12, 31, 23, 59)))
    order_id = save_order(shop.id, finalized(shop, (cola, '1'), when=datetime(2026, 1, 1, 8, 0)))
    assert db.session.get(Order, order_id).receipt_number == '2026-0001'


def test_generate_receipt_number_rolls_back_with_transaction(app):
    shop = make_merchant('shop@example.cz')
    assert generate_receipt_number(db.session, shop.id, SALE_TIME) == '2026-0001'
    db.session.rollback()
    assert generate_receipt_number(db.session, shop.id, SALE_TIME) == '2026-0001'
    db.session.commit()
    assert generate_receipt_number(db.session, shop.id, SALE_TIME) == '2026-0002'
    db.session.commit()

    row = db.session.get(ReceiptSequence, (shop.id, 2026))
    assert row.last_seq == 2
