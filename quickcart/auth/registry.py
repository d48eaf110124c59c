"""
quickcart/auth/registry.py
--------------------------
Client for ARES, the Czech public register of economic subjects.
Used during registration to look up a company by IČO or name.

Only network and decoding problems are turned into RegistryError;
callers decide how to present them.
"""
import logging
import re

import requests
from flask import current_app

logger = logging.getLogger(__name__)

ICO_PATTERN = re.compile(r'^\d{8}$')
MIN_QUERY_LENGTH = 3


class RegistryError(Exception):
    """Lookup failed. `not_found` distinguishes a miss from an outage."""

    def __init__(self, message: str, not_found: bool = False):
        super().__init__(message)
        self.message = message
        self.not_found = not_found


def _base_url() -> str:
    return current_app.config['ARES_BASE_URL'].rstrip('/')


def _timeout() -> float:
    return current_app.config['ARES_TIMEOUT']


def fetch_company(ico: str) -> dict:
    """
    Fetch one company by its 8-digit IČO.

    Returns {'ico', 'name', 'address', 'dic'}.
    """
    if not ico or not ICO_PATTERN.match(ico):
        raise RegistryError('Invalid IČO, expected 8 digits.', not_found=True)

    try:
        resp = requests.get(f'{_base_url()}/{ico}', timeout=_timeout())
    except requests.RequestException as exc:
        logger.warning(f"ARES lookup for {ico} failed: {exc}")
        raise RegistryError('Company registry is unavailable.')

    if resp.status_code == 404:
        raise RegistryError('Company not found.', not_found=True)
    if not resp.ok:
        logger.warning(f"ARES lookup for {ico} returned HTTP {resp.status_code}")
        raise RegistryError('Company registry is unavailable.')

    try:
        data = resp.json()
    except ValueError:
        raise RegistryError('Company registry returned an invalid response.')

    address = data.get('sidlo') or {}
    return {
        'ico':     data.get('ico', ico),
        'name':    data.get('obchodniJmeno'),
        'address': address.get('textovaAdresa'),
        'dic':     data.get('dic'),
    }


def search_companies(query: str) -> list:
    """
    Search by IČO prefix (all digits) or by company name.
    Queries shorter than MIN_QUERY_LENGTH return an empty list.
    """
    query = (query or '').strip()
    if len(query) < MIN_QUERY_LENGTH:
        return []

    body = {'ico': [query]} if query.isdigit() else {'obchodniJmeno': query}

    try:
        resp = requests.post(f'{_base_url()}/vyhledat', json=body, timeout=_timeout())
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as exc:
        logger.warning(f"ARES search for {query!r} failed: {exc}")
        raise RegistryError('Company registry is unavailable.')
    except ValueError:
        raise RegistryError('Company registry returned an invalid response.')

    return [
        {'ico': c.get('ico'), 'name': c.get('obchodniJmeno')}
        for c in data.get('ekonomickeSubjekty') or []
    ]
