"""
quickcart/billing/persistence.py
--------------------------------
Writes a FinalizedOrder to the database.

Everything happens in one transaction:
  1. Verify every product belongs to the merchant
  2. Allocate the next receipt number (row lock, see invoice.py)
  3. Insert Order + OrderItems
  4. Commit

Any SQLAlchemyError rolls back and surfaces as PersistenceError, which
the checkout treats as "order not saved, keep the cart".
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from quickcart import db
from quickcart.errors import PersistenceError, ValidationError
from quickcart.billing.checkout import FinalizedOrder
from quickcart.billing.invoice import generate_receipt_number
from quickcart.billing.models import Order, OrderItem
from quickcart.inventory.models import Product

logger = logging.getLogger(__name__)


def save_order(merchant_id: int, order: FinalizedOrder) -> int:
    """Persist `order` for `merchant_id` and return the new order id."""
    if not order.lines:
        raise ValidationError('The order has no products.')

    try:
        product_ids = sorted({line.product_reference_id for line in order.lines})
        owned = {
            pid for (pid,) in
            db.session.query(Product.id)
            .filter(Product.merchant_id == merchant_id, Product.id.in_(product_ids))
        }
        foreign = [pid for pid in product_ids if pid not in owned]
        if foreign:
            db.session.rollback()
            raise ValidationError(
                'Some products are no longer in your catalog.',
                details={'product_ids': foreign},
            )

        receipt_number = generate_receipt_number(db.session, merchant_id, order.created_at)

        record = Order(
            merchant_id       = merchant_id,
            receipt_number    = receipt_number,
            created_at        = order.created_at,
            subtotal_excl_vat = order.subtotal_excl_vat,
            vat_total         = order.vat_total,
            grand_total       = order.grand_total,
            amount_tendered   = order.amount_tendered,
            change_due        = order.change_due,
        )
        for line in order.lines:
            record.items.append(OrderItem(
                product_id         = line.product_reference_id,
                quantity           = line.quantity,
                unit_price_at_sale = line.unit_price_at_sale,
                vat_rate_at_sale   = line.vat_rate_at_sale,
            ))

        db.session.add(record)
        db.session.commit()

    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error(f"Order rollback for merchant {merchant_id}: {exc}")
        raise PersistenceError('The order could not be saved. Please try again.')

    logger.info(
        f"Order saved for merchant {merchant_id}: {receipt_number} | "
        f"Total: {order.grand_total} | Items: {len(order.lines)}"
    )
    return record.id
