"""
quickcart/inventory/validators.py
---------------------------------
Pure-Python validation for product and fast-menu payloads.
Returns a dict of field -> error_message.
An empty dict means all fields are valid.
"""
from decimal import Decimal, InvalidOperation

from quickcart.inventory.models import UnitKind

AMOUNT_TYPES = {kind.value: kind for kind in UnitKind}   # 'KS', 'KG'


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    return '' if value is None else str(value).strip()


def validate_product_form(form_data: dict, partial: bool = False) -> dict:
    """
    Validate a create (partial=False) or update (partial=True) payload.

    On update only the fields present are checked, but a present field
    must still be valid (an empty name is an error, not a no-op).
    """
    errors = {}

    def wanted(key):
        return not partial or key in form_data

    # ── name ─────────────────────────────────────────────────────
    if wanted('name'):
        name = _text(form_data, 'name')
        if not name:
            errors['name'] = 'Product name is required.'
        elif len(name) > 200:
            errors['name'] = 'Product name must be 200 characters or fewer.'

    # ── barcode ───────────────────────────────────────────────────
    if wanted('barcode'):
        barcode = _text(form_data, 'barcode')
        if not barcode:
            errors['barcode'] = 'Barcode is required.'
        elif len(barcode) > 100:
            errors['barcode'] = 'Barcode must be 100 characters or fewer.'

    # ── price ─────────────────────────────────────────────────────
    if wanted('price'):
        price_raw = _text(form_data, 'price').replace(',', '.')
        if not price_raw:
            errors['price'] = 'Price is required.'
        else:
            try:
                price = Decimal(price_raw)
                if not price.is_finite():
                    errors['price'] = 'Price must be a valid number.'
                elif price < 0:
                    errors['price'] = 'Price cannot be negative.'
                elif price >= Decimal('100000000'):
                    errors['price'] = 'Price is too large.'
            except InvalidOperation:
                errors['price'] = 'Price must be a valid number.'

    # ── amount_type ───────────────────────────────────────────────
    if wanted('amount_type'):
        if _text(form_data, 'amount_type').upper() not in AMOUNT_TYPES:
            errors['amount_type'] = 'Amount type must be KS or KG.'

    # ── product_type_id ───────────────────────────────────────────
    if wanted('product_type_id'):
        try:
            if int(_text(form_data, 'product_type_id')) <= 0:
                errors['product_type_id'] = 'Product type is required.'
        except ValueError:
            errors['product_type_id'] = 'Product type is required.'

    return errors


def parse_product_form(form_data: dict, partial: bool = False) -> dict:
    """
    Convert validated raw values to model types.
    Call only after validate_product_form returns no errors.
    """
    parsed = {}
    if not partial or 'name' in form_data:
        parsed['name'] = _text(form_data, 'name')
    if not partial or 'barcode' in form_data:
        parsed['barcode'] = _text(form_data, 'barcode')
    if not partial or 'price' in form_data:
        parsed['price'] = Decimal(_text(form_data, 'price').replace(',', '.')).quantize(Decimal('0.01'))
    if not partial or 'amount_type' in form_data:
        parsed['unit_kind'] = AMOUNT_TYPES[_text(form_data, 'amount_type').upper()]
    if not partial or 'product_type_id' in form_data:
        parsed['product_type_id'] = int(_text(form_data, 'product_type_id'))
    return parsed


def validate_fast_menu_item(data: dict) -> dict:
    errors = {}
    for key in ('product_id', 'product_type_id'):
        try:
            if int(_text(data, key)) <= 0:
                errors[key] = 'Must be a positive integer.'
        except ValueError:
            errors[key] = 'Must be a positive integer.'
    if data.get('display_order') is not None:
        try:
            int(_text(data, 'display_order'))
        except ValueError:
            errors['display_order'] = 'Must be an integer.'
    return errors


def validate_fast_menu_order(updates) -> dict:
    """[{'id': int > 0, 'display_order': int >= 0}, ...], non-empty."""
    if not isinstance(updates, list) or not updates:
        return {'updates': 'No updates provided.'}
    errors = {}
    for i, entry in enumerate(updates):
        if not isinstance(entry, dict):
            errors[str(i)] = 'Each update must be an object.'
            continue
        try:
            item_id = int(entry.get('id'))
            order   = int(entry.get('display_order'))
        except (TypeError, ValueError):
            errors[str(i)] = 'id and display_order must be integers.'
            continue
        if item_id <= 0 or order < 0:
            errors[str(i)] = 'id must be positive and display_order non-negative.'
    return errors
