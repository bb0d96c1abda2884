# allocation_admin/utils/parsing.py
"""Coercion of loosely typed JSON input into column values.

Blank strings and ``None`` mean "not set". Anything else that does not coerce
raises ``ValidationError`` naming the field.
"""
from datetime import datetime, timezone

from flask import request

from ..errors import ValidationError

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _blank(v):
    return v is None or (isinstance(v, str) and v.strip().lower() in {"", "null"})


def json_object():
    """Request JSON body; ``{}`` when there is none. Anything but an object is rejected."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("body must be a JSON object")
    return data


def opt_text(v, field):
    if _blank(v):
        return None
    if not isinstance(v, str):
        raise ValidationError(f"{field} must be a string")
    return v.strip() or None


def opt_bool(v, field):
    if _blank(v):
        return None
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValidationError(f"{field} must be a boolean")


def opt_int(v, field, minimum=None):
    if _blank(v):
        return None
    if isinstance(v, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(v, float) and v != n:
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and n < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return n


def opt_float(v, field, minimum=None):
    if _blank(v):
        return None
    if isinstance(v, bool):
        raise ValidationError(f"{field} must be numeric")
    try:
        n = float(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be numeric")
    if minimum is not None and n < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return n


def opt_choice(v, field, choices):
    if _blank(v):
        return None
    s = str(v).strip().lower()
    if s not in choices:
        allowed = ", ".join(sorted(choices))
        raise ValidationError(f"{field} must be one of: {allowed}")
    return s


def parse_iso8601(s):
    """Parse an ISO-8601 string to a naive UTC datetime; ``None`` if unparseable."""
    if isinstance(s, datetime):
        dt = s
    else:
        if not s:
            return None
        s = str(s).strip()
        # support trailing 'Z' (UTC)
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)  # store naive UTC
    return dt


def require_datetime(v, field):
    dt = parse_iso8601(v)
    if dt is None:
        raise ValidationError(f"Invalid datetime format for {field}")
    return dt


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(dt):
    return dt.isoformat() if dt else None
