"""
quickcart/main/routes.py
────────────────────────
Health check and the merchant's landing dashboard.
"""
from datetime import datetime, time, timedelta
from decimal import Decimal

from flask import current_app, jsonify
from sqlalchemy import desc, func, text
from sqlalchemy.exc import SQLAlchemyError

from quickcart import db
from quickcart.main import main
from quickcart.auth.decorators import current_merchant_id, login_required
from quickcart.utils.clock import shop_today


@main.route("/health")
def health():
    """Health check for load balancers and monitoring."""
    status = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        status = "error"
        current_app.logger.error(f"Health check failed (DB): {e}")

    response = {
        "status": status,
        "timestamp": datetime.utcnow().isoformat(),
        "details": {"db": status},
    }
    return jsonify(response), 200 if status == "ok" else 500


@main.route('/')
@login_required
def index():
    """Dashboard KPIs: catalog size, today's sales and top sellers."""
    from quickcart.inventory.models import Product
    from quickcart.billing.models import Order, OrderItem

    merchant_id = current_merchant_id()
    today_start = datetime.combine(shop_today(), time.min)
    tomorrow    = today_start + timedelta(days=1)

    product_count = Product.query.filter_by(merchant_id=merchant_id).count()

    # Single query: count + sum + avg for today's orders
    today_agg = db.session.query(
        func.count(Order.id).label('tx_count'),
        func.coalesce(func.sum(Order.grand_total), 0).label('revenue'),
        func.coalesce(func.avg(Order.grand_total), 0).label('avg_bill'),
    ).filter(
        Order.merchant_id == merchant_id,
        Order.created_at >= today_start,
        Order.created_at < tomorrow,
    ).first()

    # ── Top 5 products today by quantity ─────────────────────────
    top_products = db.session.query(
        Product.name.label('name'),
        func.sum(OrderItem.quantity).label('qty_sold'),
    ).join(
        OrderItem, OrderItem.product_id == Product.id
    ).join(
        Order, Order.id == OrderItem.order_id
    ).filter(
        Order.merchant_id == merchant_id,
        Order.created_at >= today_start,
        Order.created_at < tomorrow,
    ).group_by(
        Product.id, Product.name
    ).order_by(
        desc('qty_sold')
    ).limit(5).all()

    return jsonify({
        'product_count': product_count,
        'today': {
            'orders':   today_agg.tx_count if today_agg else 0,
            'revenue':  str(Decimal(str(today_agg.revenue or 0)).quantize(Decimal('0.01'))),
            'avg_bill': str(Decimal(str(today_agg.avg_bill or 0)).quantize(Decimal('0.01'))),
        },
        'top_products': [
            {'name': r.name, 'quantity': str(Decimal(str(r.qty_sold or 0)))}
            for r in top_products
        ],
    })
