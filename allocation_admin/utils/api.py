# --- allocation_admin/utils/api.py ---
from datetime import datetime, timezone

from flask import jsonify


def _api_time():
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _payload(data):
    if data is None:
        return {}
    if isinstance(data, dict):
        return dict(data)
    return {"items": data}


def api_ok(message, data=None):
    return {
        "status": True,
        "message": message,
        "data": {**_payload(data), "api_time": _api_time()},
    }


def api_error(message, data=None):
    return {
        "status": False,
        "message": message,
        "data": {**_payload(data), "api_time": _api_time()},
    }


# unified response helpers
def ok(message, data=None, status_code=200):
    resp = jsonify(api_ok(message, data))
    resp.status_code = status_code
    return resp


def err(message, status_code=400, data=None):
    resp = jsonify(api_error(message, data))
    resp.status_code = status_code
    return resp
