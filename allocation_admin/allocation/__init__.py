from flask import Blueprint

bp = Blueprint("allocation", __name__, url_prefix="/allocations")

from . import routes  # noqa: E402,F401
