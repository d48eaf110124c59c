"""
quickcart/auth/decorators.py
----------------------------
Route protection for the JSON API.
Usage:
    from quickcart.auth.decorators import login_required, current_merchant_id

    @pos.route('/scan', methods=['POST'])
    @login_required
    def scan():
        merchant_id = current_merchant_id()
        ...
"""
from functools import wraps
from flask import session, jsonify


def current_merchant_id():
    """The authenticated merchant's id, or None outside a login."""
    return session.get('merchant_id')


def login_required(f):
    """
    Reject unauthenticated requests with 401 JSON.
    Checks for the 'merchant_id' key in the Flask session.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        if 'merchant_id' not in session:
            return jsonify({'error': 'Authentication required.'}), 401
        return f(*args, **kwargs)
    return decorated
