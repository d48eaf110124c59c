"""
quickcart/auth/validators.py
----------------------------
Validation for merchant registration data.
Returns a dict of field -> error_message; empty means valid.
"""
import re

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
ICO_PATTERN   = re.compile(r'^\d{8}$')
MIN_PASSWORD_LENGTH = 6


def validate_registration(data: dict) -> dict:
    errors = {}

    ico = str(data.get('ico', '')).strip()
    if not ico:
        errors['ico'] = 'IČO is required.'
    elif not ICO_PATTERN.match(ico):
        errors['ico'] = 'IČO must be exactly 8 digits.'

    company_name = str(data.get('company_name', '')).strip()
    if not company_name:
        errors['company_name'] = 'Company name is required.'
    elif len(company_name) > 200:
        errors['company_name'] = 'Company name must be 200 characters or fewer.'

    if len(str(data.get('company_address') or '').strip()) > 255:
        errors['company_address'] = 'Address must be 255 characters or fewer.'

    dic = str(data.get('dic') or '').strip()
    if dic and len(dic) > 14:
        errors['dic'] = 'DIČ must be 14 characters or fewer.'

    email = str(data.get('email', '')).strip()
    if not email:
        errors['email'] = 'Email is required.'
    elif not EMAIL_PATTERN.match(email):
        errors['email'] = 'Email address is not valid.'

    password = str(data.get('password', ''))
    if not password:
        errors['password'] = 'Password is required.'
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors['password'] = f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'

    return errors


def parse_registration(data: dict) -> dict:
    """Call only after validate_registration returns no errors."""
    return {
        'ico':             str(data['ico']).strip(),
        'company_name':    str(data['company_name']).strip(),
        'company_address': str(data.get('company_address') or '').strip() or None,
        'dic':             str(data.get('dic') or '').strip() or None,
        'email':           str(data['email']).strip().lower(),
    }
