"""
quickcart/reporting/__init__.py
-------------------------------
Order history & sales reporting blueprint.
URL prefix: /reporting
"""
from flask import Blueprint

reporting = Blueprint('reporting', __name__)

from quickcart.reporting import routes  # noqa: E402, F401
