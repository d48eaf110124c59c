"""
quickcart/inventory/lookup.py
-----------------------------
Catalog lookups consumed by the POS core.

The cart never touches ORM rows: it receives a frozen CatalogProduct
snapshot, so price and VAT are captured at the moment of the scan.
"""
from dataclasses import dataclass
from decimal import Decimal

from quickcart import db
from quickcart.errors import NotFoundError
from quickcart.inventory.models import Product, ProductType, UnitKind


@dataclass(frozen=True)
class CatalogProduct:
    id:               int
    name:             str
    barcode:          str
    unit_price:       Decimal
    unit_kind:        UnitKind
    category_id:      int
    vat_rate_percent: Decimal

    @classmethod
    def from_model(cls, product: Product) -> 'CatalogProduct':
        return cls(
            id=product.id,
            name=product.name,
            barcode=product.barcode,
            unit_price=Decimal(str(product.price)),
            unit_kind=product.unit_kind,
            category_id=product.product_type_id,
            vat_rate_percent=product.vat_rate,
        )


def lookup_by_barcode(merchant_id: int, barcode: str) -> CatalogProduct:
    """Find the merchant's product by exact barcode or raise NotFoundError."""
    product = Product.query.filter_by(merchant_id=merchant_id, barcode=barcode).first()
    if product is None:
        raise NotFoundError(f'Product with barcode "{barcode}" not found.',
                            details={'barcode': barcode})
    return CatalogProduct.from_model(product)


def lookup_by_id(merchant_id: int, product_id: int) -> CatalogProduct:
    product = Product.query.filter_by(merchant_id=merchant_id, id=product_id).first()
    if product is None:
        raise NotFoundError('Product not found.')
    return CatalogProduct.from_model(product)


def get_category(category_id: int) -> ProductType:
    category = db.session.get(ProductType, category_id)
    if category is None:
        raise NotFoundError('Product type not found.')
    return category


def resolve_category_vat(category_id: int) -> Decimal:
    """VAT percentage configured for a product type, or NotFoundError."""
    category = get_category(category_id)
    if category.vat is None:
        raise NotFoundError(f'No VAT rate configured for "{category.name}".')
    return category.vat_rate
