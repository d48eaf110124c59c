import enum
from datetime import datetime
from decimal import Decimal
from quickcart import db


class UnitKind(enum.Enum):
    """How a product is sold: by the piece (KS) or by weight in kg (KG)."""
    countable = "KS"
    weighed   = "KG"


class Vat(db.Model):
    """A VAT rate, e.g. 'Základní' 21 %. Global, shared by all merchants."""
    __tablename__ = 'vat_rates'

    id   = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(60), nullable=False)
    rate = db.Column(db.Numeric(5, 2), nullable=False)

    __table_args__ = (
        db.CheckConstraint('rate >= 0 AND rate <= 100', name='check_vat_rate_valid'),
    )

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'rate': str(self.rate)}

    def __repr__(self):
        return f"<Vat {self.name!r} {self.rate}%>"


class ProductType(db.Model):
    """
    Product category. Fixed and global; carries the VAT rate applied to
    its products and to manual entries made under it.
    """
    __tablename__ = 'product_types'

    id     = db.Column(db.Integer, primary_key=True)
    name   = db.Column(db.String(100), unique=True, nullable=False)
    vat_id = db.Column(db.Integer, db.ForeignKey('vat_rates.id'), nullable=False)

    vat = db.relationship('Vat', lazy='joined')

    @property
    def vat_rate(self) -> Decimal:
        return Decimal(str(self.vat.rate))

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'vat': self.vat.to_dict()}

    def __repr__(self):
        return f"<ProductType {self.name!r}>"


class Product(db.Model):
    """A catalog product owned by one merchant. Price is VAT-inclusive."""
    __tablename__ = 'products'

    id              = db.Column(db.Integer, primary_key=True)
    merchant_id     = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False, index=True)
    name            = db.Column(db.String(200), nullable=False, index=True)
    barcode         = db.Column(db.String(100), nullable=False, index=True)
    price           = db.Column(db.Numeric(10, 2), nullable=False)   # per piece or per kg
    unit_kind       = db.Column(db.Enum(UnitKind), nullable=False, default=UnitKind.countable)
    product_type_id = db.Column(db.Integer, db.ForeignKey('product_types.id'), nullable=False)
    created_at      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at      = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    product_type = db.relationship('ProductType', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint('merchant_id', 'barcode', name='uq_product_merchant_barcode'),
        db.CheckConstraint('price >= 0', name='check_price_non_negative'),
    )

    @property
    def vat_rate(self) -> Decimal:
        return self.product_type.vat_rate

    def to_dict(self) -> dict:
        return {
            'id':              self.id,
            'name':            self.name,
            'barcode':         self.barcode,
            'price':           str(self.price),
            'amount_type':     self.unit_kind.value,
            'product_type_id': self.product_type_id,
            'product_type':    self.product_type.to_dict() if self.product_type else None,
        }

    def __repr__(self):
        return f"<Product {self.barcode!r} {self.name!r}>"


class FastMenuItem(db.Model):
    """
    A quick-access button on the POS screen, grouped under a product type
    tab and ordered by display_order.
    """
    __tablename__ = 'fast_menu_items'

    id              = db.Column(db.Integer, primary_key=True)
    merchant_id     = db.Column(db.Integer, db.ForeignKey('merchants.id'), nullable=False, index=True)
    product_id      = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    product_type_id = db.Column(db.Integer, db.ForeignKey('product_types.id'), nullable=False)
    display_order   = db.Column(db.Integer, nullable=False, default=0)

    product      = db.relationship(
        'Product', lazy='joined',
        backref=db.backref('fast_menu_items', cascade='all, delete-orphan', lazy='select'),
    )
    product_type = db.relationship('ProductType', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint('merchant_id', 'product_id', 'product_type_id',
                            name='uq_fast_menu_merchant_product_type'),
    )

    def to_dict(self) -> dict:
        return {
            'id':              self.id,
            'product_id':      self.product_id,
            'product_type_id': self.product_type_id,
            'display_order':   self.display_order,
            'product':         self.product.to_dict(),
            'product_type':    {'id': self.product_type.id, 'name': self.product_type.name},
        }

    def __repr__(self):
        return f"<FastMenuItem {self.id} product={self.product_id} order={self.display_order}>"
