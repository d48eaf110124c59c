"""
quickcart/billing/store.py
--------------------------
Keeps the till's CheckoutSession in the Flask session cookie between
requests, so a page reload picks up the same cart.

Session structure:
    session['pos_checkout'] = {
        'cart': {'lines': [[...], ...], 'selected': 0, 'last_touched': 2, 'manual_seq': 1},
        'state': 'open',
        'amount_due': None,
    }

Lines are positional rows (see LineItem.to_row) and Decimals are stored as
strings; Flask's default JSON serialiser never sees a float.

Browsers silently drop cookies over ~4 KB, so save_checkout() measures the
signed cookie first and refuses a change that would not fit. The previous
cart then stays in the cookie untouched.
"""
from flask import current_app, session

from quickcart.billing.checkout import CheckoutSession
from quickcart.errors import ValidationError

CART_KEY = 'pos_checkout'


def load_checkout() -> CheckoutSession:
    """Rehydrate the checkout from the session, or start an empty one."""
    return CheckoutSession.from_dict(session.get(CART_KEY))


def _cookie_size(payload: dict) -> int:
    serializer = current_app.session_interface.get_signing_serializer(current_app)
    if serializer is None:     # no SECRET_KEY, Flask refuses the session anyway
        return 0
    return len(serializer.dumps(payload))


def save_checkout(checkout: CheckoutSession) -> None:
    data = checkout.to_dict()
    limit = current_app.config.get('SESSION_COOKIE_MAX_BYTES')
    if limit:
        candidate = dict(session)
        candidate[CART_KEY] = data
        size = _cookie_size(candidate)
        if size > limit:
            current_app.logger.warning(
                f'Cart not saved: session cookie would be {size} bytes '
                f'({len(checkout.cart)} lines, limit {limit})'
            )
            raise ValidationError(
                'The cart is too large to keep. Check out or remove some lines first.',
                details={'lines': len(checkout.cart)},
            )
    session[CART_KEY] = data
    session.modified = True   # nested dicts aren't tracked automatically


def discard_checkout() -> None:
    session.pop(CART_KEY, None)
    session.modified = True
