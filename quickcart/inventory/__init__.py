from flask import Blueprint

inventory = Blueprint('inventory', __name__)

from quickcart.inventory import routes  # noqa: F401, E402
from quickcart.inventory import models  # noqa: F401, E402  registers Product/FastMenuItem with SQLAlchemy
