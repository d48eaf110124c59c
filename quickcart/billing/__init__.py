from flask import Blueprint

pos = Blueprint('pos', __name__)

from quickcart.billing import routes  # noqa: F401, E402
from quickcart.billing import models  # noqa: F401, E402  registers Order/OrderItem with SQLAlchemy
