from flask import Blueprint

auth = Blueprint('auth', __name__)

from quickcart.auth import routes   # noqa: F401, E402
from quickcart.auth import models   # noqa: F401, E402  registers Merchant with SQLAlchemy
