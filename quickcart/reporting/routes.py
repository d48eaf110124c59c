"""
quickcart/reporting/routes.py
-----------------------------
Order history and sales reporting, always scoped to the logged-in
merchant.

  GET /reporting/orders                paginated orders in a date range
  GET /reporting/orders/<id>           one order with VAT decomposition
  GET /reporting/orders/export.csv     orders in range as CSV
  GET /reporting/sales                 daily totals (paginated)
  GET /reporting/sales/export.csv      daily totals as CSV
  GET /reporting/summary               today / this month at a glance
"""
import csv
import io
from collections import OrderedDict
from datetime import datetime, time, timedelta
from decimal import Decimal

from flask import Response, jsonify, request
from sqlalchemy import func

from quickcart import db
from quickcart.auth.decorators import current_merchant_id, login_required
from quickcart.billing.models import Order
from quickcart.billing.receipt import from_order
from quickcart.billing.totals import compute_totals
from quickcart.errors import NotFoundError
from quickcart.reporting import reporting
from quickcart.utils.clock import shop_today
from quickcart.utils.http import date_range_args, page_args, paginate


# ── Helpers ───────────────────────────────────────────────────────

def _orders_in_range(start_dt, end_dt):
    return (
        Order.query
        .filter(Order.merchant_id == current_merchant_id(),
                Order.created_at >= start_dt,
                Order.created_at < end_dt)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )


def _daily_totals(start_dt, end_dt):
    """[(date_str, order_count, total)] ascending by day."""
    rows = (
        db.session.query(Order.created_at, Order.grand_total)
        .filter(Order.merchant_id == current_merchant_id(),
                Order.created_at >= start_dt,
                Order.created_at < end_dt)
        .order_by(Order.created_at.asc())
        .all()
    )
    # Grouped in Python: DATE() returns str on SQLite but date on PostgreSQL
    by_day = OrderedDict()
    for created_at, grand_total in rows:
        day = created_at.date().isoformat()
        count, total = by_day.get(day, (0, Decimal('0')))
        by_day[day] = (count + 1, total + Decimal(str(grand_total)))
    return [(day, count, total) for day, (count, total) in by_day.items()]


def _sum_between(start_dt, end_dt):
    """(order_count, grand_total, vat_total) for the merchant in [start, end)."""
    count, total, vat = (
        db.session.query(func.count(Order.id),
                         func.sum(Order.grand_total),
                         func.sum(Order.vat_total))
        .filter(Order.merchant_id == current_merchant_id(),
                Order.created_at >= start_dt,
                Order.created_at < end_dt)
        .one()
    )
    return (
        count or 0,
        Decimal(str(total or 0)).quantize(Decimal('0.01')),
        Decimal(str(vat or 0)).quantize(Decimal('0.01')),
    )


def _csv_response(header, rows, filename):
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)
    return Response(
        buf.getvalue(),
        mimetype='text/csv',
        headers={
            'Content-Disposition': f'attachment; filename="{filename}"',
            'Content-Type': 'text/csv; charset=utf-8',
        }
    )


# ── Orders ────────────────────────────────────────────────────────

@reporting.route('/orders')
@login_required
def orders():
    """Newest first, with items. Defaults to the current month."""
    start_date, end_date, start_dt, end_dt = date_range_args()
    page, page_size = page_args()
    rows, pagination = paginate(_orders_in_range(start_dt, end_dt), page, page_size)
    return jsonify({
        'data':       [order.to_dict() for order in rows],
        'pagination': pagination,
        'start_date': start_date.isoformat(),
        'end_date':   end_date.isoformat(),
    })


@reporting.route('/orders/<int:order_id>')
@login_required
def order_detail(order_id):
    """
    One order with per-item VAT decomposition and a per-rate recap,
    recomputed from the snapshotted prices.
    """
    order = Order.query.filter_by(id=order_id, merchant_id=current_merchant_id()).first()
    if order is None:
        raise NotFoundError('Order not found.')

    data = order.to_dict()
    data['totals']  = compute_totals(order.items).to_dict()
    data['receipt'] = from_order(order).to_dict()
    return jsonify(data)


@reporting.route('/orders/export.csv')
@login_required
def export_orders():
    start_date, end_date, start_dt, end_dt = date_range_args()
    rows = [
        [
            order.receipt_number,
            order.created_at.strftime('%Y-%m-%d'),
            order.created_at.strftime('%H:%M:%S'),
            len(order.items),
            f'{order.subtotal_excl_vat:.2f}',
            f'{order.vat_total:.2f}',
            f'{order.grand_total:.2f}',
            f'{order.amount_tendered:.2f}',
            f'{order.change_due:.2f}',
        ]
        for order in _orders_in_range(start_dt, end_dt).all()
    ]
    header = ['Receipt Number', 'Date', 'Time', 'Items', 'Subtotal (excl. VAT)',
              'VAT Total', 'Grand Total', 'Paid', 'Change']
    return _csv_response(header, rows, f'orders_{start_date}_to_{end_date}.csv')


# ── Sales ─────────────────────────────────────────────────────────

@reporting.route('/sales')
@login_required
def sales():
    """Daily sales totals in [start_date, end_date]; both dates required."""
    start_date, end_date, start_dt, end_dt = date_range_args(default_to_month=False)
    page, page_size = page_args()

    days = _daily_totals(start_dt, end_dt)
    total_items = len(days)
    chunk = days[(page - 1) * page_size: page * page_size]

    return jsonify({
        'data': [
            {'date': day, 'orders': count, 'total': str(total)}
            for day, count, total in chunk
        ],
        'pagination': {
            'total_items':  total_items,
            'total_pages':  -(-total_items // page_size),
            'current_page': page,
            'page_size':    page_size,
        },
    })


@reporting.route('/sales/export.csv')
@login_required
def export_sales():
    start_date, end_date, start_dt, end_dt = date_range_args(default_to_month=False)
    rows = [[day, count, f'{total:.2f}'] for day, count, total in _daily_totals(start_dt, end_dt)]
    return _csv_response(['Date', 'Orders', 'Total'], rows,
                         f'sales_{start_date}_to_{end_date}.csv')


# ── Summary ───────────────────────────────────────────────────────

@reporting.route('/summary')
@login_required
def summary():
    today       = shop_today()
    today_start = datetime.combine(today, time.min)
    tomorrow    = today_start + timedelta(days=1)
    month_start = datetime.combine(today.replace(day=1), time.min)

    today_count, today_total, today_vat = _sum_between(today_start, tomorrow)
    month_count, month_total, month_vat = _sum_between(month_start, tomorrow)

    return jsonify({
        'today': {
            'date':   today.isoformat(),
            'orders': today_count,
            'total':  str(today_total),
            'vat':    str(today_vat),
        },
        'month': {
            'start':  today.replace(day=1).isoformat(),
            'orders': month_count,
            'total':  str(month_total),
            'vat':    str(month_vat),
        },
    })
