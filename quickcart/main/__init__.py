from flask import Blueprint

main = Blueprint('main', __name__)

from quickcart.main import routes  # noqa: F401, E402
