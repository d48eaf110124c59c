"""
test_reporting.py: order history, daily sales, CSV exports and the summary.
Run: pytest test_reporting.py -v
"""
import csv
import io
from datetime import datetime, time
from decimal import Decimal

import pytest

from quickcart import create_app, db, seed_reference_data
from quickcart.auth.models import Merchant
from quickcart.billing.checkout import FinalizedOrder, OrderLine
from quickcart.billing.persistence import save_order
from quickcart.billing.totals import compute_totals
from quickcart.inventory.models import Product, ProductType, UnitKind
from quickcart.utils.clock import shop_today

# ── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        seed_reference_data()
        for email in ('shop@example.cz', 'other@example.cz'):
            merchant = Merchant(ico='12345678', company_name='Test Potraviny s.r.o.', email=email)
            merchant.set_password('secret1')
            db.session.add(merchant)
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


def login(app, email='shop@example.cz'):
    client = app.test_client()
    client.post('/auth/login', json={'email': email, 'password': 'secret1'})
    return client


@pytest.fixture
def client(app):
    return login(app)


def merchant(email='shop@example.cz'):
    return Merchant.query.filter_by(email=email).first()


def product(owner, barcode='8590001', price='25.00', type_name='Nápoje'):
    ptype = ProductType.query.filter_by(name=type_name).first()
    p = Product(merchant_id=owner.id, name=f'Product {barcode}', barcode=barcode,
                price=Decimal(price), unit_kind=UnitKind.countable, product_type_id=ptype.id)
    db.session.add(p)
    db.session.commit()
    return p


def sell(owner, items, when, tendered=None):
    """Store one sale of (product, quantity) pairs; returns the order id."""
    lines = [
        OrderLine(product_reference_id=p.id, quantity=Decimal(q),
                  unit_price_at_sale=Decimal(str(p.price)), vat_rate_at_sale=p.vat_rate)
        for p, q in items
    ]
    totals = compute_totals(lines)
    tendered = Decimal(tendered) if tendered else totals.grand_total
    return save_order(owner.id, FinalizedOrder(
        merchant_id=owner.id,
        created_at=when,
        subtotal_excl_vat=totals.subtotal_excl_vat,
        vat_total=totals.vat_total,
        grand_total=totals.grand_total,
        amount_tendered=tendered,
        change_due=tendered - totals.grand_total,
        lines=lines,
    ))


# ── Access ────────────────────────────────────────────────────────

def test_reporting_requires_login(app):
    anon = app.test_client()
    for route in ('/reporting/orders', '/reporting/sales', '/reporting/summary',
                  '/reporting/orders/export.csv'):
        assert anon.get(route).status_code == 401, route


# ── Orders ────────────────────────────────────────────────────────

def test_orders_in_range_newest_first(client):
    shop = merchant()
    cola = product(shop)
    sell(shop, [(cola, '1')], datetime(2026, 3, 2, 9, 0))
    sell(shop, [(cola, '2')], datetime(2026, 3, 3, 9, 0))
    sell(shop, [(cola, '3')], datetime(2026, 4, 1, 9, 0))

    data = client.get('/reporting/orders?start_date=2026-03-01&end_date=2026-03-31').get_json()
    assert data['pagination']['total_items'] == 2
    assert [o['grand_total'] for o in data['data']] == ['50.00', '25.00']
    assert data['data'][0]['items'][0]['quantity'] == '2.000'
    assert data['start_date'] == '2026-03-01'


def test_orders_pagination(client):
    shop = merchant()
    cola = product(shop)
    for day in range(1, 6):
        sell(shop, [(cola, '1')], datetime(2026, 3, day, 10, 0))

    data = client.get('/reporting/orders?start_date=2026-03-01&end_date=2026-03-31'
                      '&page=3&page_size=2').get_json()
    assert data['pagination'] == {'total_items': 5, 'total_pages': 3,
                                  'current_page': 3, 'page_size': 2}
    assert [o['receipt_number'] for o in data['data']] == ['2026-0001']


def test_orders_only_own(app, client):
    other = merchant('other@example.cz')
    sell(other, [(product(other), '1')], datetime(2026, 3, 2, 9, 0))
    data = client.get('/reporting/orders?start_date=2026-03-01&end_date=2026-03-31').get_json()
    assert data['data'] == []


def test_orders_bad_range(client):
    assert client.get('/reporting/orders?start_date=2026-03-10&end_date=2026-03-01').status_code == 400
    assert client.get('/reporting/orders?start_date=tomorrow').status_code == 400


def test_order_detail(client):
    shop = merchant()
    cola = product(shop)
    bread = product(shop, barcode='BREAD', price='39.90', type_name='Pečivo')
    order_id = sell(shop, [(cola, '2'), (bread, '1')], datetime(2026, 3, 2, 9, 0), tendered='100')

    data = client.get(f'/reporting/orders/{order_id}').get_json()
    assert data['grand_total'] == '89.90'
    assert data['change_due'] == '10.10'
    assert [r['vat_rate_percent'] for r in data['totals']['vat_recap']] == ['12.00', '21.00']
    assert data['receipt']['merchant']['company_name'] == 'Test Potraviny s.r.o.'
    assert data['receipt']['receipt_number'] == '2026-0001'


def test_order_detail_of_other_merchant(app, client):
    other = merchant('other@example.cz')
    order_id = sell(other, [(product(other), '1')], datetime(2026, 3, 2, 9, 0))
    resp = client.get(f'/reporting/orders/{order_id}')
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'Order not found.'


def test_orders_csv(client):
    shop = merchant()
    cola = product(shop)
    sell(shop, [(cola, '2')], datetime(2026, 3, 2, 9, 30), tendered='100')

    resp = client.get('/reporting/orders/export.csv?start_date=2026-03-01&end_date=2026-03-31')
    assert resp.status_code == 200
    assert resp.mimetype == 'text/csv'
    assert 'orders_2026-03-01_to_2026-03-31.csv' in resp.headers['Content-Disposition']

    rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert rows[0][0] == 'Receipt Number'
    assert rows[1] == ['2026-0001', '2026-03-02', '09:30:00', '1',
                       '41.32', '8.68', '50.00', '100.00', '50.00']


# ── Sales ─────────────────────────────────────────────────────────

def test_sales_requires_both_dates(client):
    assert client.get('/reporting/sales').status_code == 400
    assert client.get('/reporting/sales?start_date=2026-03-01').status_code == 400


def test_daily_sales(client):
    shop = merchant()
    cola = product(shop)
    sell(shop, [(cola, '1')], datetime(2026, 3, 2, 9, 0))
    sell(shop, [(cola, '2')], datetime(2026, 3, 2, 17, 45))
    sell(shop, [(cola, '1')], datetime(2026, 3, 5, 12, 0))
    sell(shop, [(cola, '1')], datetime(2026, 3, 6, 0, 0))    # outside the range

    data = client.get('/reporting/sales?start_date=2026-03-01&end_date=2026-03-05').get_json()
    assert data['data'] == [
        {'date': '2026-03-02', 'orders': 2, 'total': '75.00'},
        {'date': '2026-03-05', 'orders': 1, 'total': '25.00'},
    ]
    assert data['pagination']['total_items'] == 2


def test_sales_csv(client):
    shop = merchant()
    sell(shop, [(product(shop), '3')], datetime(2026, 3, 2, 9, 0))

    resp = client.get('/reporting/sales/export.csv?start_date=2026-03-01&end_date=2026-03-31')
    rows = list(csv.reader(io.StringIO(resp.get_data(as_text=True))))
    assert rows == [['Date', 'Orders', 'Total'], ['2026-03-02', '1', '75.00']]


# ── Summary ───────────────────────────────────────────────────────

def test_summary(client):
    shop = merchant()
    cola = product(shop)
    noon = datetime.combine(shop_today(), time(12, 0))
    sell(shop, [(cola, '2')], noon)
    sell(shop, [(cola, '1')], noon)

    data = client.get('/reporting/summary').get_json()
    assert data['today']['orders'] == 2
    assert data['today']['total'] == '75.00'
    assert data['today']['vat'] == '13.02'
    assert data['month']['orders'] == 2


def test_summary_empty(client):
    data = client.get('/reporting/summary').get_json()
    assert data['today'] == {'date': shop_today().isoformat(), 'orders': 0,
                             'total': '0.00', 'vat': '0.00'}
