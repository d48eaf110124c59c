"""
test_auth.py: merchant registration, session login and the ARES client.
Run: pytest test_auth.py -v
"""
import pytest
import requests

from quickcart import create_app, db
from quickcart.auth.models import Merchant
from quickcart.auth.registry import RegistryError, fetch_company, search_companies

REGISTRATION = {
    'ico':             '27074358',
    'company_name':    'Pekárna U Mlýna s.r.o.',
    'company_address': 'Mlýnská 5, 602 00 Brno',
    'dic':             'CZ27074358',
    'email':           'Pekarna@Example.cz',
    'password':        'rohlik123',
}


@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError('No JSON')
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f'HTTP {self.status_code}')


# ── 1. Registration ──────────────────────────────────────────────────────────

def test_register(client):
    resp = client.post('/auth/register', json=REGISTRATION)
    assert resp.status_code == 201
    merchant = resp.get_json()['merchant']
    assert merchant['email'] == 'pekarna@example.cz'
    assert merchant['ico'] == '27074358'

    stored = Merchant.query.filter_by(email='pekarna@example.cz').first()
    assert stored.password_hash != 'rohlik123'
    assert stored.check_password('rohlik123')


def test_register_duplicate_email(client):
    client.post('/auth/register', json=REGISTRATION)
    resp = client.post('/auth/register', json={**REGISTRATION, 'email': 'pekarna@example.cz'})
    assert resp.status_code == 409


def test_register_invalid(client):
    resp = client.post('/auth/register', json={**REGISTRATION, 'ico': '123', 'password': 'abc',
                                               'email': 'not-an-email'})
    assert resp.status_code == 400
    details = resp.get_json()['details']
    assert set(details) == {'ico', 'password', 'email'}


def test_register_does_not_log_in(client):
    client.post('/auth/register', json=REGISTRATION)
    assert client.get('/auth/me').status_code == 401


# ── 2. Login / logout ────────────────────────────────────────────────────────

def test_login_and_me(client):
    client.post('/auth/register', json=REGISTRATION)
    resp = client.post('/auth/login', json={'email': 'PEKARNA@example.cz', 'password': 'rohlik123'})
    assert resp.status_code == 200

    me = client.get('/auth/me').get_json()
    assert me['company_name'] == 'Pekárna U Mlýna s.r.o.'


def test_login_wrong_password(client):
    client.post('/auth/register', json=REGISTRATION)
    resp = client.post('/auth/login', json={'email': 'pekarna@example.cz', 'password': 'wrong'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid email or password.'


def test_login_missing_fields(client):
    assert client.post('/auth/login', json={'email': ''}).status_code == 400


def test_logout_clears_session(client):
    client.post('/auth/register', json=REGISTRATION)
    client.post('/auth/login', json={'email': 'pekarna@example.cz', 'password': 'rohlik123'})
    client.post('/auth/logout')
    assert client.get('/auth/me').status_code == 401
    assert client.get('/pos/').status_code == 401


# ── 3. Company registry ──────────────────────────────────────────────────────

def test_fetch_company(app, monkeypatch):
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return FakeResponse(200, {
            'ico': '27074358',
            'obchodniJmeno': 'Pekárna U Mlýna s.r.o.',
            'dic': 'CZ27074358',
            'sidlo': {'textovaAdresa': 'Mlýnská 5, 602 00 Brno'},
        })

    monkeypatch.setattr('quickcart.auth.registry.requests.get', fake_get)
    company = fetch_company('27074358')
    assert company == {
        'ico': '27074358',
        'name': 'Pekárna U Mlýna s.r.o.',
        'address': 'Mlýnská 5, 602 00 Brno',
        'dic': 'CZ27074358',
    }
    assert calls[0][0].endswith('/ekonomicke-subjekty/27074358')
    assert calls[0][1] == app.config['ARES_TIMEOUT']


def test_fetch_company_not_found(app, monkeypatch):
    monkeypatch.setattr('quickcart.auth.registry.requests.get',
                        lambda url, timeout: FakeResponse(404))
    with pytest.raises(RegistryError) as exc:
        fetch_company('12345678')
    assert exc.value.not_found


def test_fetch_company_rejects_bad_ico(app):
    with pytest.raises(RegistryError):
        fetch_company('12AB')


def test_registry_route_outage(client, monkeypatch):
    def timeout(url, timeout):
        raise requests.Timeout('too slow')

    monkeypatch.setattr('quickcart.auth.registry.requests.get', timeout)
    resp = client.get('/auth/registry/27074358')
    assert resp.status_code == 502


def test_search_by_name(client, monkeypatch):
    sent = {}

    def fake_post(url, json, timeout):
        sent['url'], sent['body'] = url, json
        return FakeResponse(200, {'ekonomickeSubjekty': [
            {'ico': '27074358', 'obchodniJmeno': 'Pekárna U Mlýna s.r.o.'},
        ]})

    monkeypatch.setattr('quickcart.auth.registry.requests.post', fake_post)
    resp = client.get('/auth/registry/search?query=Pekárna')
    assert resp.get_json()['results'] == [{'ico': '27074358', 'name': 'Pekárna U Mlýna s.r.o.'}]
    assert sent['url'].endswith('/vyhledat')
    assert sent['body'] == {'obchodniJmeno': 'Pekárna'}


def test_search_by_ico_and_short_query(app, monkeypatch):
    sent = {}

    def fake_post(url, json, timeout):
        sent['body'] = json
        return FakeResponse(200, {'ekonomickeSubjekty': []})

    monkeypatch.setattr('quickcart.auth.registry.requests.post', fake_post)
    assert search_companies('270') == []
    assert sent['body'] == {'ico': ['270']}

    sent.clear()
    assert search_companies('ab') == []
    assert sent == {}
