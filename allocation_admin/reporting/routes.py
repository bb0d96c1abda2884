# allocation_admin/reporting/routes.py
from flask import request
from flask_jwt_extended import jwt_required

from . import bp
from .client import ReportingEndpoint, create_api_client
from ..utils.api import err, ok


@bp.get("/endpoints")
@jwt_required()
def list_endpoints():
    return ok("reporting endpoints", [e.as_api() for e in ReportingEndpoint])


@bp.get("/<endpoint>")
@jwt_required()
def call_endpoint(endpoint):
    """Path parameters of the endpoint are read from the query string."""
    target = ReportingEndpoint.from_slug(endpoint)
    if target is None:
        return err("unknown reporting endpoint", 404)
    params = {name: request.args.get(name) for name in target.params}
    data = create_api_client().call(target, **params)
    return ok(target.label, {"endpoint": target.slug, "result": data})
