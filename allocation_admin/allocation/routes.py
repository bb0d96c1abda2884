# allocation_admin/allocation/routes.py
from flask import request
from flask_jwt_extended import jwt_required

from . import bp
from ..model import Allocation
from ..model.allocation import ALLOCATION_STATUSES, ALLOCATION_TYPES
from ..services import allocation_service as svc
from ..services import tier_service
from ..services.customer_sources import SelectedSources
from ..services.product_override_service import ProductOverrideDraft
from ..services.source_resolver import get_resolver
from ..utils.api import err, ok
from ..utils.decorators import role_at_least
from ..utils.parsing import json_object


# ---------- allocations ----------
@bp.get("")
@jwt_required()
def list_allocations():
    """
    Query params:
      - status=draft|scheduled|active|completed
      - type=tier|individual
      - page, per_page
    """
    q = Allocation.query
    status = (request.args.get("status") or "").strip().lower()
    kind = (request.args.get("type") or "").strip().lower()
    if status:
        if status not in ALLOCATION_STATUSES:
            return err("invalid status filter", 400)
        q = q.filter(Allocation.status == status)
    if kind:
        if kind not in ALLOCATION_TYPES:
            return err("invalid type filter", 400)
        q = q.filter(Allocation.allocation_type == kind)

    page = request.args.get("page", 1, type=int)
    per = min(request.args.get("per_page", 20, type=int), 100)
    paged = q.order_by(Allocation.start_date.desc(), Allocation.id.desc()).paginate(
        page=page, per_page=per, error_out=False
    )
    return ok("allocations", {
        "page": page,
        "per_page": per,
        "total": paged.total,
        "items": [a.as_api(include_products=False) for a in paged.items],
    })


@bp.post("")
@role_at_least("manager")
def create_allocation():
    allocation = svc.create_allocation(json_object())
    return ok("Allocation created", allocation.as_api(), 201)


@bp.get("/<int:allocation_id>")
@jwt_required()
def get_allocation(allocation_id):
    return ok("allocation", svc.get_allocation(allocation_id).as_api())


@bp.put("/<int:allocation_id>")
@role_at_least("manager")
def update_allocation(allocation_id):
    allocation = svc.update_allocation(svc.get_allocation(allocation_id), json_object())
    return ok("Allocation updated", allocation.as_api())


@bp.delete("/<int:allocation_id>")
@role_at_least("admin")
def delete_allocation(allocation_id):
    svc.delete_allocation(svc.get_allocation(allocation_id))
    return ok("Allocation deleted", {"id": allocation_id})


@bp.get("/<int:allocation_id>/overview")
@jwt_required()
def allocation_overview(allocation_id):
    return ok("overview", svc.overview(svc.get_allocation(allocation_id)))


# ---------- products ----------
@bp.get("/<int:allocation_id>/products")
@jwt_required()
def list_products(allocation_id):
    allocation = svc.get_allocation(allocation_id)
    return ok("products", [p.as_api() for p in allocation.products])


@bp.post("/<int:allocation_id>/products")
@role_at_least("manager")
def add_product(allocation_id):
    product = svc.add_product(svc.get_allocation(allocation_id), json_object())
    return ok("Product added", product.as_api(), 201)


@bp.put("/<int:allocation_id>/products/<product_id>")
@role_at_least("manager")
def update_product(allocation_id, product_id):
    product = svc.update_product(svc.get_allocation(allocation_id), product_id, json_object())
    return ok("Product updated", product.as_api())


@bp.delete("/<int:allocation_id>/products/<product_id>")
@role_at_least("manager")
def remove_product(allocation_id, product_id):
    svc.remove_product(svc.get_allocation(allocation_id), product_id)
    return ok("Product removed", {"product_id": product_id})


# ---------- tiers ----------
@bp.get("/<int:allocation_id>/tiers")
@jwt_required()
def list_tiers(allocation_id):
    svc.get_allocation(allocation_id)
    return ok("tiers", [t.as_api() for t in tier_service.list_tiers(allocation_id)])


@bp.post("/<int:allocation_id>/tiers")
@role_at_least("manager")
def create_tier(allocation_id):
    """
    Body:
      name, level, access_start, access_end   (required)
      overrides: {requirements, discounts, shipping, products}
      sources: [{"source": "tag", "items": [{"id", "name", "count"}]}]
      productOverrides: {product_id: {overridePrice, minPurchase, ...}}
    """
    allocation = svc.get_allocation(allocation_id)
    data = json_object()
    selections = SelectedSources.from_payload(data.get("sources"))
    draft = ProductOverrideDraft(data.get("productOverrides"))

    tier = tier_service.create_tier(
        allocation,
        name=data.get("name"),
        level=data.get("level"),
        access_start=data.get("access_start"),
        access_end=data.get("access_end"),
        overrides=data.get("overrides"),
        selections=selections,
        product_overrides=draft.save(),
        resolver=get_resolver() if selections else None,
    )
    return ok("Tier created", {
        "tier": tier.as_api(),
        "assigned_customers": len(tier.assignments),
    }, 201)


@bp.post("/<int:allocation_id>/tiers/estimate")
@jwt_required()
def estimate_tier_customers(allocation_id):
    """Raw estimate (sum of source cardinalities) next to the deduplicated count."""
    svc.get_allocation(allocation_id)
    selections = SelectedSources.from_payload(json_object().get("sources"))
    data = {
        "sources": selections.as_api(),
        "estimated_customers": selections.total_estimated_customers(),
        "unresolved_items": len(selections.resolution_gaps()),
    }
    if request.args.get("exact", "true").lower() not in ("0", "false", "no"):
        data["exact_customers"] = selections.exact_customer_count(get_resolver()) if selections else 0
    return ok("estimate", data)
