from flask import jsonify, session, current_app, request
from sqlalchemy.exc import IntegrityError

from quickcart import db
from quickcart.auth import auth
from quickcart.auth.decorators import login_required, current_merchant_id
from quickcart.auth.models import Merchant
from quickcart.auth.registry import RegistryError, fetch_company, search_companies
from quickcart.auth.validators import validate_registration, parse_registration
from quickcart.utils.http import payload


@auth.route('/register', methods=['POST'])
def register():
    """Create a merchant account. Does not log in."""
    data = payload()
    errors = validate_registration(data)
    if errors:
        return jsonify({'error': 'Invalid registration data.', 'details': errors}), 400

    fields = parse_registration(data)
    if Merchant.query.filter_by(email=fields['email']).first():
        return jsonify({'error': 'Email is already registered.'}), 409

    merchant = Merchant(**fields)
    merchant.set_password(data['password'])
    try:
        db.session.add(merchant)
        db.session.commit()
    except IntegrityError:
        # Concurrent registration with the same email
        db.session.rollback()
        return jsonify({'error': 'Email is already registered.'}), 409

    current_app.logger.info(f"Merchant registered: {merchant.email} (IČO {merchant.ico})")
    return jsonify({'success': True, 'merchant': merchant.to_dict()}), 201


@auth.route('/login', methods=['POST'])
def login():
    """Validate credentials and populate the session."""
    data     = payload()
    email    = str(data.get('email', '')).strip().lower()
    password = str(data.get('password', ''))

    if not email or not password:
        return jsonify({'error': 'Email and password are required.'}), 400

    merchant = Merchant.query.filter_by(email=email).first()
    if merchant is None or not merchant.check_password(password):
        # Deliberately vague: don't reveal which field was wrong
        current_app.logger.warning(f"Failed login attempt for email: {email}")
        return jsonify({'error': 'Invalid email or password.'}), 401

    session.clear()
    session['merchant_id'] = merchant.id
    session.permanent = True   # respect PERMANENT_SESSION_LIFETIME

    current_app.logger.info(f"Merchant {merchant.email} logged in.")
    return jsonify({'success': True, 'merchant': merchant.to_dict()})


@auth.route('/logout', methods=['POST'])
def logout():
    """Clear the session, including any open cart."""
    session.clear()
    return jsonify({'message': 'Logged out.'})


@auth.route('/me')
@login_required
def me():
    merchant = db.session.get(Merchant, current_merchant_id())
    if merchant is None:
        # Account deleted while the session cookie survived
        session.clear()
        return jsonify({'error': 'Authentication required.'}), 401
    return jsonify(merchant.to_dict())


# ── Company registry ─────────────────────────────────────────────

@auth.route('/registry/<ico>')
def registry_lookup(ico):
    try:
        company = fetch_company(ico)
    except RegistryError as exc:
        return jsonify({'error': exc.message}), 404 if exc.not_found else 502
    return jsonify(company)


@auth.route('/registry/search')
def registry_search():
    query = request.args.get('query', '')
    try:
        results = search_companies(query)
    except RegistryError as exc:
        return jsonify({'error': exc.message, 'results': []}), 502
    return jsonify({'results': results})
