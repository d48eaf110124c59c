"""
quickcart/utils/clock.py
------------------------
Shop wall clock.

Orders are stamped, grouped by day and printed in the shop's time zone
(SHOP_TIMEZONE), stored as naive local datetimes. Audit columns such as
Merchant.created_at stay in UTC.
"""
from datetime import date, datetime
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

DEFAULT_TIMEZONE = 'Europe/Prague'


def shop_zone() -> ZoneInfo:
    name = DEFAULT_TIMEZONE
    if has_app_context():
        name = current_app.config.get('SHOP_TIMEZONE') or DEFAULT_TIMEZONE
    return ZoneInfo(name)


def shop_now() -> datetime:
    """Current local time at the shop, without tzinfo."""
    return datetime.now(shop_zone()).replace(tzinfo=None)


def shop_today() -> date:
    return shop_now().date()
