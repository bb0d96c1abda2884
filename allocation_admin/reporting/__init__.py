from flask import Blueprint

bp = Blueprint("reporting", __name__, url_prefix="/reporting")

from . import routes  # noqa: E402,F401
