# allocation_admin/errors.py
import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .utils.api import api_error

logger = logging.getLogger(__name__)


class AllocationAdminError(Exception):
    """Base for errors that the API turns into an ``api_error`` envelope."""

    status_code = 400

    def __init__(self, message, data=None):
        super().__init__(message)
        self.message = message
        self.data = data


class ValidationError(AllocationAdminError):
    status_code = 422


class NotFound(AllocationAdminError):
    status_code = 404


class DuplicateTierLevel(AllocationAdminError):
    status_code = 409

    def __init__(self, level):
        super().__init__(f"a tier with level {level} already exists", {"level": level})
        self.level = level


class AllocationInUse(AllocationAdminError):
    status_code = 409


class PersistenceError(AllocationAdminError):
    """A row-store call failed. ``step`` names the write that failed, if known."""

    status_code = 500

    def __init__(self, message="Failed to save changes", step=None):
        data = {"step": getattr(step, "value", step)} if step is not None else None
        super().__init__(message, data)
        self.step = step


def register_error_handlers(app):
    @app.errorhandler(AllocationAdminError)
    def handle_domain_error(e):
        r = jsonify(api_error(e.message, e.data))
        r.status_code = e.status_code
        return r

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        db.session.rollback()
        logger.exception("unhandled database error")
        r = jsonify(api_error("Failed to save changes"))
        r.status_code = 500
        return r
