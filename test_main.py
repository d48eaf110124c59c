"""
test_main.py: health check, dashboard and the flask CLI commands.
Run: pytest test_main.py -v
"""
from datetime import datetime, time
from decimal import Decimal

import pytest

from quickcart import create_app, db, seed_reference_data
from quickcart.auth.models import Merchant
from quickcart.billing.models import Order, OrderItem, ReceiptSequence
from quickcart.inventory.models import FastMenuItem, Product, ProductType, Vat
from quickcart.utils.clock import shop_today


@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        seed_reference_data()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def make_merchant(email='shop@example.cz'):
    merchant = Merchant(ico='12345678', company_name='Test Potraviny s.r.o.', email=email)
    merchant.set_password('secret1')
    db.session.add(merchant)
    db.session.commit()
    return merchant


# ── Health ────────────────────────────────────────────────────────

def test_health(app):
    resp = app.test_client().get('/health')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['status'] == 'ok'
    assert body['details'] == {'db': 'ok'}


def test_unknown_route_is_json(app):
    resp = app.test_client().get('/nowhere')
    assert resp.status_code == 404
    assert resp.get_json() == {'error': 'Not found.'}


# ── Dashboard ─────────────────────────────────────────────────────

def test_dashboard_requires_login(app):
    assert app.test_client().get('/').status_code == 401


def test_dashboard(app):
    shop = make_merchant()
    drinks = ProductType.query.filter_by(name='Nápoje').first()
    cola = Product(merchant_id=shop.id, name='Kofola', barcode='K1', price=Decimal('25.00'),
                   product_type_id=drinks.id)
    water = Product(merchant_id=shop.id, name='Voda', barcode='V1', price=Decimal('10.00'),
                    product_type_id=drinks.id)
    db.session.add_all([cola, water])
    db.session.flush()

    noon = datetime.combine(shop_today(), time(12, 0))
    for number, (product, qty, total) in enumerate([(cola, '2', '50.00'), (water, '1', '10.00')], start=1):
        order = Order(merchant_id=shop.id, receipt_number=f'{noon.year}-{number:04d}', created_at=noon,
                      subtotal_excl_vat=Decimal(total), vat_total=Decimal('0.00'),
                      grand_total=Decimal(total), amount_tendered=Decimal(total),
                      change_due=Decimal('0.00'))
        order.items.append(OrderItem(product_id=product.id, quantity=Decimal(qty),
                                     unit_price_at_sale=product.price,
                                     vat_rate_at_sale=Decimal('21.00')))
        db.session.add(order)
    db.session.commit()

    client = app.test_client()
    client.post('/auth/login', json={'email': 'shop@example.cz', 'password': 'secret1'})
    data = client.get('/').get_json()

    assert data['product_count'] == 2
    assert data['today'] == {'orders': 2, 'revenue': '60.00', 'avg_bill': '30.00'}
    assert [p['name'] for p in data['top_products']] == ['Kofola', 'Voda']


# ── CLI ───────────────────────────────────────────────────────────

def test_init_db_is_idempotent(runner):
    result = runner.invoke(args=['init-db'])
    assert result.exit_code == 0
    assert 'Reference data already present.' in result.output
    assert Vat.query.count() == 3
    assert ProductType.query.count() == 8


def test_seed_merchant(runner):
    result = runner.invoke(args=['seed-merchant', '--ico', '12345678', '--name', 'Večerka',
                                 '--address', 'Hlavní 1, Praha', '--email', 'Vecerka@Example.cz',
                                 '--password', 'tajne123'])
    assert result.exit_code == 0
    merchant = Merchant.query.filter_by(email='vecerka@example.cz').first()
    assert merchant is not None
    assert merchant.check_password('tajne123')

    again = runner.invoke(args=['seed-merchant', '--ico', '12345678', '--name', 'Večerka',
                                '--address', 'Hlavní 1, Praha', '--email', 'vecerka@example.cz',
                                '--password', 'tajne123'])
    assert 'already exists' in again.output
    assert Merchant.query.count() == 1


def test_seed_merchant_rejects_bad_ico(runner):
    result = runner.invoke(args=['seed-merchant', '--ico', '123', '--name', 'Večerka',
                                 '--address', '', '--email', 'vecerka@example.cz',
                                 '--password', 'tajne123'])
    assert 'ico:' in result.output
    assert Merchant.query.count() == 0


def test_seed_demo(runner):
    assert runner.invoke(args=['seed-demo']).exit_code == 0
    assert runner.invoke(args=['seed-demo']).exit_code == 0

    merchant = Merchant.query.filter_by(email='demo@quickcart.cz').first()
    assert Product.query.filter_by(merchant_id=merchant.id).count() == 7
    assert FastMenuItem.query.filter_by(merchant_id=merchant.id).count() == 2


def test_show_sequences(runner):
    assert 'No sequence rows found' in runner.invoke(args=['show-sequences']).output

    shop = make_merchant()
    db.session.add(ReceiptSequence(merchant_id=shop.id, year=2026, last_seq=41))
    db.session.commit()
    assert '2026-0042' in runner.invoke(args=['show-sequences']).output
