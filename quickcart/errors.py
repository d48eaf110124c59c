"""
quickcart/errors.py
-------------------
Error taxonomy shared by the POS core and its collaborators.

Every error here is recoverable. Routes translate them into JSON
responses via the handlers registered in create_app():

    ValidationError   → 400   bad quantity / price / weight, no edit target,
                              insufficient payment, missing category VAT
    NotFoundError     → 404   unknown barcode, product or category
    PersistenceError  → 503   order could not be saved; cart is kept
"""


class PosError(Exception):
    """Base class. `message` is safe to show to the operator."""
    status_code = 400

    def __init__(self, message: str, details=None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {'error': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(PosError):
    status_code = 400


class NotFoundError(PosError):
    status_code = 404


class PersistenceError(PosError):
    status_code = 503
