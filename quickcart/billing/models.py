from decimal import Decimal
from quickcart import db
from quickcart.billing.totals import line_breakdown, round_money
from quickcart.utils.clock import shop_now


class ReceiptSequence(db.Model):
    """
    Last used receipt number, one row per merchant per calendar year.

    COUNT(orders) inside a transaction is not safe under concurrent
    checkouts at two tills of the same shop: both would read the same
    count and generate the same number. The row lock taken in
    billing/invoice.py serialises them instead.
    """
    __tablename__ = 'receipt_sequences'

    merchant_id = db.Column(db.Integer, db.ForeignKey('merchants.id'), primary_key=True)
    year        = db.Column(db.Integer, primary_key=True)
    last_seq    = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ReceiptSequence merchant={self.merchant_id} year={self.year} last_seq={self.last_seq}>"


class Order(db.Model):
    """
    One finalized sale. Totals cover the persisted (catalog) items only;
    amount_tendered / change_due are what changed hands at the till.
    """
    __tablename__ = 'orders'

    id                = db.Column(db.Integer, primary_key=True)
    merchant_id       = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False, index=True)
    receipt_number    = db.Column(db.String(20), nullable=False)
    created_at        = db.Column(db.DateTime, nullable=False, default=shop_now, index=True)   # shop-local
    subtotal_excl_vat = db.Column(db.Numeric(12, 2), nullable=False)
    vat_total         = db.Column(db.Numeric(12, 2), nullable=False)
    grand_total       = db.Column(db.Numeric(12, 2), nullable=False)
    amount_tendered   = db.Column(db.Numeric(12, 2), nullable=False)
    change_due        = db.Column(db.Numeric(12, 2), nullable=False)

    merchant = db.relationship('Merchant', lazy='select')
    items    = db.relationship('OrderItem', backref='order', lazy='select',
                               cascade='all, delete-orphan', order_by='OrderItem.id')

    __table_args__ = (
        db.UniqueConstraint('merchant_id', 'receipt_number', name='uq_order_merchant_receipt'),
        db.CheckConstraint('amount_tendered >= 0', name='check_tendered_non_negative'),
        db.CheckConstraint('change_due >= 0', name='check_change_non_negative'),
    )

    def to_dict(self, with_items: bool = True) -> dict:
        data = {
            'id':                self.id,
            'receipt_number':    self.receipt_number,
            'created_at':        self.created_at.isoformat(),
            'subtotal_excl_vat': str(self.subtotal_excl_vat),
            'vat_total':         str(self.vat_total),
            'grand_total':       str(self.grand_total),
            'amount_tendered':   str(self.amount_tendered),
            'change_due':        str(self.change_due),
        }
        if with_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Order {self.receipt_number!r} {self.grand_total} Kč>"


class OrderItem(db.Model):
    """
    One product line of an order, with price and VAT rate snapshotted
    at the time of sale so later catalog edits don't alter history.
    """
    __tablename__ = 'order_items'

    id                 = db.Column(db.Integer, primary_key=True)
    order_id           = db.Column(db.Integer, db.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id         = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    quantity           = db.Column(db.Numeric(10, 3), nullable=False)
    unit_price_at_sale = db.Column(db.Numeric(10, 2), nullable=False)
    vat_rate_at_sale   = db.Column(db.Numeric(5, 2), nullable=False)

    product = db.relationship('Product', lazy='joined')

    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='check_item_quantity_positive'),
    )

    # compute_totals() reads these names
    @property
    def unit_price(self) -> Decimal:
        return Decimal(str(self.unit_price_at_sale))

    @property
    def vat_rate_percent(self) -> Decimal:
        return Decimal(str(self.vat_rate_at_sale))

    def breakdown(self):
        return line_breakdown(self.unit_price, Decimal(str(self.quantity)), self.vat_rate_percent)

    def to_dict(self) -> dict:
        b = self.breakdown()
        product = self.product
        return {
            'product_id':         self.product_id,
            'name':               product.name if product else None,
            'amount_type':        product.unit_kind.value if product else None,
            'quantity':           str(self.quantity),
            'unit_price_at_sale': str(self.unit_price_at_sale),
            'vat_rate_at_sale':   str(self.vat_rate_at_sale),
            'total_incl_vat':     str(round_money(b.total_incl_vat)),
            'total_excl_vat':     str(round_money(b.total_excl_vat)),
            'vat_amount':         str(round_money(b.vat_amount)),
        }

    def __repr__(self):
        return f"<OrderItem order={self.order_id} product={self.product_id} qty={self.quantity}>"
