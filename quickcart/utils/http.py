"""
quickcart/utils/http.py
-----------------------
Small helpers shared by the JSON blueprints: reading the request
payload, parsing date ranges and paging a query.
"""
from datetime import date, datetime, time, timedelta

from flask import current_app, request

from quickcart.errors import ValidationError
from quickcart.utils.clock import shop_today


def payload() -> dict:
    """Return the JSON body, falling back to form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def page_args():
    """(page, page_size) from the query string, clamped to sane bounds."""
    page      = max(1, int_arg('page', 1))
    page_size = int_arg('page_size', current_app.config['PAGE_SIZE'])
    page_size = min(max(1, page_size), current_app.config['MAX_PAGE_SIZE'])
    return page, page_size


def paginate(query, page: int, page_size: int):
    """
    Manual limit/offset pagination.

    Returns (rows, pagination_dict). Pages past the end return no rows
    rather than clamping, so clients can stop on an empty page.
    """
    total_items = query.order_by(None).count()
    total_pages = -(-total_items // page_size)   # ceiling division
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return rows, {
        'total_items':  total_items,
        'total_pages':  total_pages,
        'current_page': page,
        'page_size':    page_size,
    }


def date_range_args(default_to_month: bool = True):
    """
    Parse ?start_date=YYYY-MM-DD&end_date=YYYY-MM-DD.

    Returns (start_date, end_date, start_dt, end_dt) where the datetimes
    bound the half-open interval [start 00:00, end+1 00:00).
    Missing values default to the current month up to today.
    """
    today     = shop_today()
    start_str = request.args.get('start_date', '').strip()
    end_str   = request.args.get('end_date', '').strip()

    if not default_to_month and not (start_str and end_str):
        raise ValidationError('Start date and end date are required.')

    try:
        start_date = date.fromisoformat(start_str) if start_str else today.replace(day=1)
        end_date   = date.fromisoformat(end_str) if end_str else today
    except ValueError:
        raise ValidationError('Invalid date format, expected YYYY-MM-DD.')

    if end_date < start_date:
        raise ValidationError('End date must not be before start date.')

    start_dt = datetime.combine(start_date, time.min)
    end_dt   = datetime.combine(end_date + timedelta(days=1), time.min)
    return start_date, end_date, start_dt, end_dt
