from flask import Blueprint

bp = Blueprint("tier", __name__)

from . import routes  # noqa: E402,F401
