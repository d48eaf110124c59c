from decimal import Decimal, InvalidOperation
from flask import jsonify, request, current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from quickcart.inventory import inventory
from quickcart.inventory.models import Product, ProductType, FastMenuItem
from quickcart.inventory.validators import (
    validate_product_form, parse_product_form,
    validate_fast_menu_item, validate_fast_menu_order,
)
from quickcart.billing.models import OrderItem
from quickcart.auth.decorators import login_required, current_merchant_id
from quickcart.utils.http import payload, page_args, paginate
from quickcart import db

SEARCH_LIMIT = 50


def _owned_product(product_id):
    """The merchant's product or None. Other merchants' rows look missing."""
    return Product.query.filter_by(id=product_id, merchant_id=current_merchant_id()).first()


def _decimal_arg(name):
    raw = request.args.get(name, '').strip().replace(',', '.')
    if not raw:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


# ── PRODUCT TYPES ─────────────────────────────────────────────────────────────

@inventory.route('/product-types')
@login_required
def product_types():
    """Global product categories with their VAT rate."""
    types = ProductType.query.order_by(ProductType.name.asc()).all()
    return jsonify([t.to_dict() for t in types])


# ── LIST ──────────────────────────────────────────────────────────────────────

@inventory.route('/products')
@login_required
def index():
    """
    Paginated product list, ordered by name.

    Filters: ?name= / ?barcode= (substring, either matches),
    ?product_type_ids=1,2 and ?min_price= / ?max_price=.
    """
    query = Product.query.filter(Product.merchant_id == current_merchant_id())

    name    = request.args.get('name', '').strip()
    barcode = request.args.get('barcode', '').strip()
    if name or barcode:
        conditions = []
        if name:
            conditions.append(Product.name.ilike(f'%{name}%'))
        if barcode:
            conditions.append(Product.barcode.ilike(f'%{barcode}%'))
        query = query.filter(or_(*conditions))

    type_ids = [
        int(part) for part in request.args.get('product_type_ids', '').split(',')
        if part.strip().isdigit()
    ]
    if type_ids:
        query = query.filter(Product.product_type_id.in_(type_ids))

    min_price = _decimal_arg('min_price')
    max_price = _decimal_arg('max_price')
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    page, page_size = page_args()
    rows, pagination = paginate(query.order_by(Product.name.asc()), page, page_size)
    return jsonify({'data': [p.to_dict() for p in rows], 'pagination': pagination})


@inventory.route('/products/search')
@login_required
def search():
    """POS product search: name or barcode substring, unpaginated."""
    term  = request.args.get('search', '').strip()
    query = Product.query.filter(Product.merchant_id == current_merchant_id())
    if term:
        query = query.filter(or_(Product.name.ilike(f'%{term}%'),
                                 Product.barcode.ilike(f'%{term}%')))
    products = query.order_by(Product.name.asc()).limit(SEARCH_LIMIT).all()
    return jsonify([p.to_dict() for p in products])


@inventory.route('/products/barcode/<barcode>')
@login_required
def by_barcode(barcode):
    product = Product.query.filter_by(merchant_id=current_merchant_id(), barcode=barcode.strip()).first()
    if product is None:
        return jsonify({'error': f'Product with barcode "{barcode}" not found.'}), 404
    return jsonify(product.to_dict())


@inventory.route('/products/<int:product_id>')
@login_required
def detail(product_id):
    product = _owned_product(product_id)
    if product is None:
        return jsonify({'error': 'Product not found.'}), 404
    return jsonify(product.to_dict())


# ── CREATE ────────────────────────────────────────────────────────────────────

@inventory.route('/products', methods=['POST'])
@login_required
def create():
    """Create a product. Barcodes are unique per merchant."""
    form_data = payload()
    errors = validate_product_form(form_data)
    if errors:
        return jsonify({'error': 'Invalid input.', 'details': errors}), 400

    data = parse_product_form(form_data)
    merchant_id = current_merchant_id()

    # Route-level uniqueness check (fast path, avoids unnecessary DB write)
    if Product.query.filter_by(merchant_id=merchant_id, barcode=data['barcode']).first():
        return jsonify({'error': 'A product with this barcode already exists.'}), 409

    if db.session.get(ProductType, data['product_type_id']) is None:
        return jsonify({'error': 'Selected product type does not exist.'}), 400

    product = Product(merchant_id=merchant_id, **data)
    try:
        db.session.add(product)
        db.session.commit()
    except IntegrityError:
        # Race condition: another request inserted the same barcode between
        # our check above and this commit.
        db.session.rollback()
        return jsonify({'error': 'A product with this barcode already exists.'}), 409

    current_app.logger.info(f"Merchant {merchant_id} created product: {product.name} ({product.barcode})")
    return jsonify(product.to_dict()), 201


# ── EDIT ──────────────────────────────────────────────────────────────────────

@inventory.route('/products/<int:product_id>', methods=['PUT', 'PATCH'])
@login_required
def update(product_id):
    """Partial update: only the fields present in the body change."""
    product = _owned_product(product_id)
    if product is None:
        return jsonify({'error': 'Product not found.'}), 404

    form_data = payload()
    errors = validate_product_form(form_data, partial=True)
    if errors:
        return jsonify({'error': 'Invalid input.', 'details': errors}), 400

    data = parse_product_form(form_data, partial=True)
    if not data:
        return jsonify({'error': 'Nothing to update.'}), 400

    if 'barcode' in data:
        # Only fail if barcode belongs to a DIFFERENT product of this merchant
        conflict = Product.query.filter(
            Product.merchant_id == product.merchant_id,
            Product.barcode == data['barcode'],
            Product.id != product_id,
        ).first()
        if conflict:
            return jsonify({'error': 'A product with this barcode already exists.'}), 409

    if 'product_type_id' in data and db.session.get(ProductType, data['product_type_id']) is None:
        return jsonify({'error': 'Selected product type does not exist.'}), 400

    for field, value in data.items():
        setattr(product, field, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'A product with this barcode already exists.'}), 409

    current_app.logger.info(f"Merchant {product.merchant_id} updated product: {product.name} ({product.barcode})")
    return jsonify(product.to_dict())


# ── DELETE ────────────────────────────────────────────────────────────────────

@inventory.route('/products/<int:product_id>', methods=['DELETE'])
@login_required
def delete(product_id):
    """Hard delete. Products referenced by stored orders are kept (409)."""
    product = _owned_product(product_id)
    if product is None:
        return jsonify({'error': 'Product not found.'}), 404

    if db.session.query(OrderItem.id).filter(OrderItem.product_id == product_id).first():
        return jsonify({
            'error': 'Cannot delete product: it appears in existing orders.'
        }), 409

    name, barcode = product.name, product.barcode
    try:
        db.session.delete(product)   # fast menu buttons go with it
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'Cannot delete product: it is still referenced.'}), 409

    current_app.logger.info(f"Merchant {current_merchant_id()} deleted product: {name} ({barcode})")
    return jsonify({'message': f'Product "{name}" deleted.'})


# ── FAST MENU ─────────────────────────────────────────────────────────────────

@inventory.route('/fast-menu')
@login_required
def fast_menu():
    """The merchant's quick buttons, optionally one product type tab only."""
    query = FastMenuItem.query.filter(FastMenuItem.merchant_id == current_merchant_id())

    type_param = request.args.get('product_type_id', '').strip()
    if type_param:
        if not type_param.isdigit():
            return jsonify({'error': 'Invalid product_type_id parameter.'}), 400
        query = query.filter(FastMenuItem.product_type_id == int(type_param))

    items = query.order_by(FastMenuItem.display_order.asc(), FastMenuItem.id.asc()).all()
    return jsonify([item.to_dict() for item in items])


@inventory.route('/fast-menu', methods=['POST'])
@login_required
def add_fast_menu_item():
    """
    Add a product button under a product type tab. Without display_order
    the button goes to the end of the tab.
    """
    data = payload()
    errors = validate_fast_menu_item(data)
    if errors:
        return jsonify({'error': 'Invalid request body.', 'details': errors}), 400

    merchant_id     = current_merchant_id()
    product_id      = int(data['product_id'])
    product_type_id = int(data['product_type_id'])

    if _owned_product(product_id) is None:
        return jsonify({'error': 'Product not found.'}), 404
    if db.session.get(ProductType, product_type_id) is None:
        return jsonify({'error': 'Product type not found.'}), 404

    if data.get('display_order') is not None:
        display_order = int(data['display_order'])
    else:
        current_max = (
            db.session.query(func.max(FastMenuItem.display_order))
            .filter(FastMenuItem.merchant_id == merchant_id,
                    FastMenuItem.product_type_id == product_type_id)
            .scalar()
        )
        display_order = (current_max if current_max is not None else -1) + 1

    item = FastMenuItem(
        merchant_id=merchant_id,
        product_id=product_id,
        product_type_id=product_type_id,
        display_order=display_order,
    )
    try:
        db.session.add(item)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'This product is already in the fast menu for this product type.'}), 409

    return jsonify(item.to_dict()), 201


@inventory.route('/fast-menu/<int:item_id>', methods=['DELETE'])
@login_required
def remove_fast_menu_item(item_id):
    item = db.session.get(FastMenuItem, item_id)
    if item is None:
        return jsonify({'error': 'Fast menu item not found.'}), 404
    if item.merchant_id != current_merchant_id():
        return jsonify({'error': 'Forbidden.'}), 403

    db.session.delete(item)
    db.session.commit()
    return jsonify({'message': 'Fast menu item removed.'})


@inventory.route('/fast-menu/order', methods=['PUT'])
@login_required
def reorder_fast_menu():
    """Body: {"updates": [{"id": 4, "display_order": 0}, ...]}; all-or-nothing."""
    updates = payload().get('updates')
    errors = validate_fast_menu_order(updates)
    if errors:
        return jsonify({'error': 'Invalid request body.', 'details': errors}), 400

    wanted = {int(u['id']): int(u['display_order']) for u in updates}
    items  = FastMenuItem.query.filter(FastMenuItem.id.in_(wanted)).all()

    if len(items) != len(wanted):
        return jsonify({'error': 'Fast menu item not found.'}), 404
    if any(item.merchant_id != current_merchant_id() for item in items):
        return jsonify({'error': 'Forbidden.'}), 403

    for item in items:
        item.display_order = wanted[item.id]
    db.session.commit()
    return jsonify({'message': 'Fast menu order updated.', 'updated': len(items)})
