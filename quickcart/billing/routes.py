from dataclasses import replace

from flask import Response, current_app, jsonify, request

from quickcart import db
from quickcart.auth.decorators import current_merchant_id, login_required
from quickcart.auth.models import Merchant
from quickcart.billing import pos
from quickcart.billing import receipt as receipts
from quickcart.billing.cart import Cart
from quickcart.billing.checkout import CheckoutSession
from quickcart.billing.models import Order
from quickcart.billing.numeric_input import (
    PendingNumericInput, parse_amount, parse_quantity_command
)
from quickcart.billing.persistence import save_order
from quickcart.billing.store import discard_checkout, load_checkout, save_checkout
from quickcart.errors import NotFoundError, ValidationError
from quickcart.inventory.lookup import (
    CatalogProduct, lookup_by_barcode, lookup_by_id, resolve_category_vat
)
from quickcart.inventory.models import FastMenuItem, UnitKind
from quickcart.utils.http import payload

NUMPAD_MODES = {
    'price':    PendingNumericInput.for_price,
    'weight':   PendingNumericInput.for_weight,
    'quantity': PendingNumericInput.for_quantity,
    'payment':  PendingNumericInput.for_payment,
}


# ── Helpers ───────────────────────────────────────────────────────

def _cart_state(checkout: CheckoutSession, status: int = 200, **extra):
    """The whole till state as JSON: lines with VAT breakdown, totals, pointers."""
    cart   = checkout.cart
    totals = cart.totals()

    lines = []
    for index, (line, breakdown) in enumerate(zip(cart, totals.lines)):
        row = line.to_dict()
        row.update(breakdown.rounded())
        row['index'] = index
        row['formatted_quantity'] = line.formatted_quantity
        row['is_manual'] = line.is_manual
        lines.append(row)

    data = {
        'lines':        lines,
        'selected':     cart.selected,
        'last_touched': cart.last_touched,
        'totals':       totals.to_dict(),
        'state':        checkout.state.value,
        'amount_due':   str(checkout.amount_due) if checkout.amount_due is not None else None,
    }
    data.update(extra)
    return jsonify(data), status


def _product_dict(product: CatalogProduct) -> dict:
    return {
        'id':               product.id,
        'name':             product.name,
        'barcode':          product.barcode,
        'price':            str(product.unit_price),
        'amount_type':      product.unit_kind.value,
        'product_type_id':  product.category_id,
        'vat_rate_percent': str(product.vat_rate_percent),
    }


def _signed_quantity(raw):
    """Whole piece count; a leading '-' takes pieces off the line."""
    text = '1' if raw is None or str(raw).strip() == '' else str(raw).strip()
    if text.startswith('-'):
        return -parse_amount(text[1:], PendingNumericInput.for_quantity())
    return parse_amount(text, PendingNumericInput.for_quantity())


def _add_product(checkout: CheckoutSession, product: CatalogProduct, data: dict):
    """
    Put a scanned / tapped product into the cart.

    Weighed goods without a weight in the request don't touch the cart:
    the response asks the client to prompt for one (needs_weight).
    """
    cart = checkout.cart
    if product.unit_kind is UnitKind.weighed:
        raw_weight = data.get('weight')
        if raw_weight is None or str(raw_weight).strip() == '':
            save_checkout(checkout)
            return _cart_state(checkout, needs_weight=True, product=_product_dict(product))
        amount = parse_amount(raw_weight, PendingNumericInput.for_weight())
    else:
        amount = _signed_quantity(data.get('quantity'))

    # a new weighing replaces the weight already on the line
    line = cart.add_or_increment(product, amount,
                                 as_exact_amount=product.unit_kind is UnitKind.weighed)
    save_checkout(checkout)
    if line is None:
        return _cart_state(checkout, message=f'"{product.name}" removed from the cart.')
    return _cart_state(checkout, message=f'{line.label}: {line.formatted_quantity} {line.unit_kind.value}')


# ── Till state ────────────────────────────────────────────────────

@pos.route('/')
@login_required
def index():
    """Current cart, totals and checkout state."""
    return _cart_state(load_checkout())


@pos.route('/numpad', methods=['POST'])
@login_required
def numpad():
    """
    Apply one numpad key to a pending buffer.
    Body: {"mode": "price"|"weight"|"quantity"|"payment", "buffer": "12.", "key": "5"}
    """
    data = payload()
    mode = str(data.get('mode', 'price'))
    if mode not in NUMPAD_MODES:
        raise ValidationError(f'Unknown numpad mode "{mode}".')
    pending = PendingNumericInput.from_text(data.get('buffer', ''), NUMPAD_MODES[mode]())
    pending = pending.press(str(data.get('key', '')))
    return jsonify({'mode': mode, 'buffer': pending.buffer})


# ── Adding items ──────────────────────────────────────────────────

@pos.route('/scan', methods=['POST'])
@login_required
def scan():
    """
    Barcode field submit. Either a barcode (optional "quantity", or
    "weight" for weighed goods) or the "N+" quantity shortcut.
    """
    data = payload()
    code = str(data.get('barcode', '')).strip()
    if not code:
        raise ValidationError('Please enter a barcode.')

    checkout = load_checkout()
    cart     = checkout.require_open()

    quantity = parse_quantity_command(code)
    if quantity is not None:
        line = cart.set_quantity(quantity)
        save_checkout(checkout)
        return _cart_state(checkout, message=f'Quantity of "{line.label}" set to {line.formatted_quantity}.')

    try:
        product = lookup_by_barcode(current_merchant_id(), code)
    except NotFoundError as exc:
        # The client offers to create the product with this barcode
        return jsonify({
            'error':   exc.message,
            'details': {'barcode': code, 'create_product': True},
        }), 404

    return _add_product(checkout, product, data)


@pos.route('/weight', methods=['POST'])
@login_required
def add_weighed():
    """Answer to a needs_weight prompt: {"product_id": 7, "weight": "0.455"}."""
    data = payload()
    try:
        product_id = int(data.get('product_id'))
    except (TypeError, ValueError):
        raise ValidationError('product_id is required.')

    checkout = load_checkout()
    checkout.require_open()
    product = lookup_by_id(current_merchant_id(), product_id)
    if product.unit_kind is not UnitKind.weighed:
        raise ValidationError(f'"{product.name}" is sold by the piece.')
    if data.get('weight') is None or str(data.get('weight')).strip() == '':
        raise ValidationError('Enter a weight first.')
    return _add_product(checkout, product, data)


@pos.route('/fast-menu/<int:item_id>', methods=['POST'])
@login_required
def add_fast_menu_item(item_id):
    """Quick button tap. Weighed products answer with needs_weight."""
    item = FastMenuItem.query.filter_by(id=item_id, merchant_id=current_merchant_id()).first()
    if item is None:
        raise NotFoundError('Fast menu item not found.')

    checkout = load_checkout()
    checkout.require_open()
    return _add_product(checkout, CatalogProduct.from_model(item.product), payload())


@pos.route('/manual', methods=['POST'])
@login_required
def add_manual():
    """Ad-hoc priced item: {"product_type_id": 3, "price": "49.90", "label": "..."}."""
    data = payload()
    try:
        category_id = int(data.get('product_type_id'))
    except (TypeError, ValueError):
        raise ValidationError('Choose a product type.')
    price = parse_amount(data.get('price'), PendingNumericInput.for_price())
    label = str(data.get('label') or '').strip()[:200] or None

    checkout = load_checkout()
    cart     = checkout.require_open()
    line     = cart.add_manual_entry(category_id, price, resolve_category_vat, label=label)
    save_checkout(checkout)
    return _cart_state(checkout, message=f'{line.label}: {line.unit_price}')


# ── Editing the target line ───────────────────────────────────────

@pos.route('/quantity', methods=['POST'])
@login_required
def set_quantity():
    quantity = parse_amount(payload().get('quantity'), PendingNumericInput.for_quantity())
    checkout = load_checkout()
    line     = checkout.require_open().set_quantity(quantity)
    save_checkout(checkout)
    return _cart_state(checkout, message=f'Quantity of "{line.label}" set to {line.formatted_quantity}.')


@pos.route('/line-weight', methods=['POST'])
@login_required
def set_weight():
    """Re-weigh the target line; the value replaces the old weight."""
    weight   = parse_amount(payload().get('weight'), PendingNumericInput.for_weight())
    checkout = load_checkout()
    line     = checkout.require_open().set_weight(weight)
    save_checkout(checkout)
    return _cart_state(checkout, message=f'Weight of "{line.label}" set to {line.formatted_quantity} kg.')


@pos.route('/price', methods=['POST'])
@login_required
def edit_price():
    price    = parse_amount(payload().get('price'), PendingNumericInput.for_price())
    checkout = load_checkout()
    line     = checkout.require_open().edit_unit_price(price)
    save_checkout(checkout)
    return _cart_state(checkout, message=f'Price of "{line.label}" set to {line.unit_price}.')


@pos.route('/remove', methods=['POST'])
@login_required
def remove_selected():
    checkout = load_checkout()
    removed  = checkout.require_open().remove_selected()
    if removed is None:
        return _cart_state(checkout, message='Select an item to remove first.')
    save_checkout(checkout)
    return _cart_state(checkout, message=f'"{removed.label}" removed from the cart.')


@pos.route('/select', methods=['POST'])
@login_required
def select():
    """{"direction": "up"|"down"|"clear"} or {"index": 2}."""
    data     = payload()
    checkout = load_checkout()
    cart     = checkout.cart
    direction = str(data.get('direction', '')).lower()

    if direction == 'up':
        cart.move_selection_up()
    elif direction == 'down':
        cart.move_selection_down()
    elif direction == 'clear':
        cart.clear_selection()
    elif data.get('index') is not None:
        try:
            cart.select(int(data['index']))
        except (TypeError, ValueError):
            raise ValidationError('index must be an integer.')
    else:
        raise ValidationError('Give a direction (up, down, clear) or an index.')

    save_checkout(checkout)
    return _cart_state(checkout)


@pos.route('/reset', methods=['POST'])
@login_required
def reset():
    checkout = load_checkout()
    checkout.require_open().reset()
    save_checkout(checkout)
    return _cart_state(checkout, message='Cart cleared.')


# ── Checkout ──────────────────────────────────────────────────────

@pos.route('/checkout', methods=['POST'])
@login_required
def begin_checkout():
    checkout   = load_checkout()
    amount_due = checkout.begin_tendering()
    save_checkout(checkout)
    return _cart_state(checkout, message=f'Amount due: {amount_due}')


@pos.route('/checkout/cancel', methods=['POST'])
@login_required
def cancel_checkout():
    checkout = load_checkout()
    checkout.cancel_tendering()
    save_checkout(checkout)
    return _cart_state(checkout)


def _finalize(checkout: CheckoutSession, amount_raw):
    """
    Take payment on a TENDERING checkout and build the JSON reply.

    ValidationError / PersistenceError propagate to the app-level
    handlers; the caller's stored cart is untouched in that case.
    """
    merchant_id = current_merchant_id()
    amount      = parse_amount(amount_raw, PendingNumericInput.for_payment())
    result      = checkout.finalize(merchant_id, amount, save_order)

    order = db.session.get(Order, result.order_id) if result.order_id else None
    receipt = receipts.from_checkout(
        db.session.get(Merchant, merchant_id), result,
        receipt_number=order.receipt_number if order else None,
    )

    if result.order_created:
        current_app.logger.info(
            f"Sale finalized by merchant {merchant_id}: {order.receipt_number} | "
            f"Due: {result.amount_due} | Paid: {result.amount_tendered} | Change: {result.change_due}"
        )
        message = f'Sale complete! Receipt {order.receipt_number}'
    else:
        current_app.logger.info(
            f"Sale with manual entries only by merchant {merchant_id} | Due: {result.amount_due}"
        )
        message = 'Payment accepted. The sale had only manual entries, so no order was stored.'

    body = {
        'message':         message,
        'order_created':   result.order_created,
        'order_id':        result.order_id,
        'receipt_number':  order.receipt_number if order else None,
        'amount_due':      str(result.amount_due),
        'amount_tendered': str(result.amount_tendered),
        'change_due':      str(result.change_due),
        'receipt':         receipt.to_dict(),
    }
    return body, 201 if result.order_created else 200


@pos.route('/pay', methods=['POST'])
@login_required
def pay():
    """{"amount_tendered": "200"}: finish the sale in progress."""
    checkout = load_checkout()
    body, status = _finalize(checkout, payload().get('amount_tendered'))
    save_checkout(checkout)
    return jsonify(body), status


@pos.route('/order', methods=['POST'])
@login_required
def create_order():
    """
    Stateless checkout for clients that keep their own cart.

    Body:
        {"items": [{"id": 12, "amount": "2", "price": "19.90"},
                   {"id": -1, "product_type_id": 3, "price": "49.90"}],
         "amount_tendered": "100"}

    Positive ids are catalog products of the merchant; VAT comes from
    the catalog, "price" overrides the unit price. Negative ids are
    manual entries. The items go through the same cart rules and
    checkout as the till: a weighed product listed twice keeps the
    last weight.
    """
    data  = payload()
    items = data.get('items')
    if not isinstance(items, list) or not items:
        raise ValidationError('The order must contain at least one item.')

    merchant_id = current_merchant_id()
    cart = Cart()
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError('Each item must be an object.', details={'item': position})
        try:
            item_id = int(item.get('id'))
        except (TypeError, ValueError):
            raise ValidationError('Each item needs an integer id.', details={'item': position})

        if item_id < 0:
            try:
                category_id = int(item.get('product_type_id'))
            except (TypeError, ValueError):
                raise ValidationError('Manual items need a product_type_id.', details={'item': position})
            price = parse_amount(item.get('price'), PendingNumericInput.for_price())
            cart.add_manual_entry(category_id, price, resolve_category_vat, label=item.get('name'))
            continue

        product = lookup_by_id(merchant_id, item_id)
        if item.get('price') is not None:
            product = replace(product, unit_price=parse_amount(item['price'], PendingNumericInput.for_price()))
        template = (PendingNumericInput.for_weight() if product.unit_kind is UnitKind.weighed
                    else PendingNumericInput.for_quantity())
        amount = parse_amount(item.get('amount', '1'), template)
        cart.add_or_increment(product, amount,
                              as_exact_amount=product.unit_kind is UnitKind.weighed)

    checkout = CheckoutSession(cart)
    checkout.begin_tendering()
    body, status = _finalize(checkout, data.get('amount_tendered'))
    return jsonify(body), status


# ── Receipts ──────────────────────────────────────────────────────

@pos.route('/receipt/<int:order_id>')
@login_required
def receipt(order_id):
    """Stored order as a receipt. ?format=text for the printer rendering."""
    order = Order.query.filter_by(id=order_id, merchant_id=current_merchant_id()).first()
    if order is None:
        raise NotFoundError('Order not found.')

    document = receipts.from_order(order)
    if request.args.get('format') == 'text':
        return Response(document.render_text(), mimetype='text/plain; charset=utf-8')
    return jsonify(document.to_dict())


@pos.route('/session', methods=['DELETE'])
@login_required
def drop_session():
    """Forget the till state entirely (e.g. after a stuck payment)."""
    discard_checkout()
    return _cart_state(CheckoutSession())
