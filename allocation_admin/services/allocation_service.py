# allocation_admin/services/allocation_service.py
import logging
import math
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..errors import AllocationInUse, NotFound, PersistenceError, ValidationError
from ..extensions import db
from ..model import Allocation, AllocationProduct, AllocationTier, CustomerTier, TierOverride, TierProductOverride
from ..model.allocation import ALLOCATION_STATUSES, ALLOCATION_TYPES, DISCOUNT_TYPES
from ..utils.parsing import opt_bool, opt_choice, opt_float, opt_int, opt_text, require_datetime, utcnow
from .override_resolver import effective_config

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)
NOT_APPLICABLE = "not applicable"


# ---- progress --------------------------------------------------------------

def _ceil_days(delta):
    return math.ceil(delta / DAY)


def days_total(allocation):
    return _ceil_days(allocation.end_date - allocation.start_date)


def days_remaining(allocation, now=None):
    return _ceil_days(allocation.end_date - (now or utcnow()))


def compute_progress(allocation, now=None):
    """Elapsed share of the allocation window as a percentage in [0, 100]."""
    total = days_total(allocation)
    if total <= 0:
        # zero-length window is already complete
        return 100.0
    progress = (total - days_remaining(allocation, now)) / total * 100
    return float(min(100, max(0, progress)))


def status_message(allocation, now=None):
    remaining = days_remaining(allocation, now)
    if allocation.status == "scheduled":
        return f"This allocation will open in {remaining} days"
    if allocation.status == "active":
        return f"{remaining} days remaining in this allocation"
    if allocation.status == "completed":
        return "This allocation has ended"
    return "This allocation is in draft mode"


def summarize_type(allocation):
    if allocation.allocation_type != "tier":
        return NOT_APPLICABLE
    tiers = AllocationTier.query.filter_by(allocation_id=allocation.id).all()
    return {
        "tierCount": len(tiers),
        "totalCustomers": sum(t.customer_count or 0 for t in tiers),
    }


# ---- cached aggregates -----------------------------------------------------

def refresh_aggregates(allocation, recount_customers=False, estimates=None, saved_override_sets=()):
    """
    The one place cached aggregates are recomputed. Flushes, never commits.

    - tier.customer_count: ``estimates`` maps tier id -> raw source estimate
      (written at creation); with ``recount_customers`` every tier is recounted
      from distinct assigned customers instead. Otherwise the stored value stays.
    - tier override ``has_product_overrides``: set when product override rows
      exist, or for tiers in ``saved_override_sets`` whose override set was just
      saved (even an empty one); never cleared
    - allocation.total_customers: sum of tier customer counts
    """
    db.session.flush()
    tiers = AllocationTier.query.filter_by(allocation_id=allocation.id).all()

    for tier in tiers:
        if estimates and tier.id in estimates:
            tier.customer_count = estimates[tier.id]

    if recount_customers:
        counts = dict(
            db.session.query(CustomerTier.tier_id, func.count(func.distinct(CustomerTier.customer_id)))
            .filter(CustomerTier.allocation_id == allocation.id)
            .group_by(CustomerTier.tier_id)
            .all()
        )
        for tier in tiers:
            tier.customer_count = counts.get(tier.id, 0)

    with_products = set()
    if tiers:
        rows = (db.session.query(TierProductOverride.tier_id)
                .filter(TierProductOverride.tier_id.in_([t.id for t in tiers]))
                .distinct()
                .all())
        with_products = {tier_id for (tier_id,) in rows}
    with_products.update(saved_override_sets)
    for tier in tiers:
        if tier.id not in with_products:
            continue
        if tier.override is None:
            tier.override = TierOverride(has_product_overrides=True)
        elif not tier.override.has_product_overrides:
            tier.override.has_product_overrides = True

    if allocation.allocation_type == "tier":
        allocation.total_customers = sum(t.customer_count or 0 for t in tiers)

    db.session.flush()
    return allocation


# ---- allocations -----------------------------------------------------------

_ALLOCATION_FIELDS = (
    "name", "description", "status", "allocation_type", "start_date", "end_date",
    "cart_min", "cart_max", "min_amount",
    "order_discount_type", "order_discount_amount",
    "shipping_discount_method", "shipping_discount_type", "shipping_discount_amount",
    "expected_revenue", "current_revenue",
)


def _allocation_values(data):
    values = {}
    for key in _ALLOCATION_FIELDS:
        if key not in data:
            continue
        v = data[key]
        if key in ("name", "description", "shipping_discount_method"):
            values[key] = opt_text(v, key)
        elif key == "status":
            values[key] = opt_choice(v, key, ALLOCATION_STATUSES)
        elif key == "allocation_type":
            values[key] = opt_choice(v, key, ALLOCATION_TYPES)
        elif key in ("start_date", "end_date"):
            values[key] = require_datetime(v, key)
        elif key in ("cart_min", "cart_max"):
            values[key] = opt_int(v, key, minimum=0)
        elif key in ("order_discount_type", "shipping_discount_type"):
            values[key] = opt_choice(v, key, DISCOUNT_TYPES)
        else:
            values[key] = opt_float(v, key, minimum=0)
    return values


def _check_window(start, end):
    if end <= start:
        raise ValidationError("end_date must be after start_date")


def get_allocation(allocation_id):
    allocation = db.session.get(Allocation, allocation_id)
    if allocation is None:
        raise NotFound("allocation not found")
    return allocation


def create_allocation(data):
    if not isinstance(data, dict):
        raise ValidationError("body must be a JSON object")
    if not data.get("start_date") or not data.get("end_date"):
        raise ValidationError("missing required fields")
    values = _allocation_values(data)
    if not values.get("name"):
        raise ValidationError("missing required fields")
    products = data.get("products") or []
    if not isinstance(products, list):
        raise ValidationError("products must be a list")
    values["status"] = values.get("status") or "draft"
    values["allocation_type"] = values.get("allocation_type") or "tier"
    _check_window(values["start_date"], values["end_date"])

    allocation = Allocation(**values)
    try:
        db.session.add(allocation)
        db.session.flush()
        for raw in products:
            _add_product(allocation, raw)
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("allocation create failed")
        raise PersistenceError("Failed to create allocation") from e
    logger.info("allocation %s created (%s)", allocation.id, allocation.allocation_type)
    return allocation


def update_allocation(allocation, data):
    if not isinstance(data, dict):
        raise ValidationError("body must be a JSON object")
    values = _allocation_values(data)
    if values.get("name") is None and "name" in values:
        raise ValidationError("name cannot be empty")
    for key in ("status", "allocation_type", "start_date", "end_date"):
        if key in values and values[key] is None:
            values.pop(key)
    start = values.get("start_date", allocation.start_date)
    end = values.get("end_date", allocation.end_date)
    _check_window(start, end)
    for key, value in values.items():
        setattr(allocation, key, value)
    try:
        refresh_aggregates(allocation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("allocation %s update failed", allocation.id)
        raise PersistenceError("Failed to update allocation") from e
    return allocation


def delete_allocation(allocation):
    if AllocationTier.query.filter_by(allocation_id=allocation.id).first():
        raise AllocationInUse("cannot delete: allocation has tiers")
    try:
        db.session.delete(allocation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("allocation %s delete failed", allocation.id)
        raise PersistenceError("Failed to delete allocation") from e
    logger.info("allocation %s deleted", allocation.id)


# ---- allocation products ---------------------------------------------------

def _product_values(data, partial=False):
    if not isinstance(data, dict):
        raise ValidationError("product must be an object")
    values = {}
    if not partial or "name" in data:
        name = opt_text(data.get("name"), "product name")
        if not name:
            raise ValidationError("product name is required")
        values["name"] = name
    if not partial or "price" in data:
        values["price"] = opt_float(data.get("price"), "price", minimum=0) or 0.0
    for key, field in (("override_price", "overridePrice"),):
        if key in data or field in data:
            values[key] = opt_float(data.get(key, data.get(field)), key, minimum=0)
    for key, field in (
        ("min_purchase", "minPurchase"),
        ("max_purchase", "maxPurchase"),
        ("wish_request_min", "wishRequestMin"),
        ("wish_request_max", "wishRequestMax"),
    ):
        if key in data or field in data:
            values[key] = opt_int(data.get(key, data.get(field)), key, minimum=0)
    if "allow_wish_requests" in data or "allowWishRequests" in data:
        flag = opt_bool(data.get("allow_wish_requests", data.get("allowWishRequests")), "allow_wish_requests")
        values["allow_wish_requests"] = bool(flag)
    return values


def _add_product(allocation, data):
    if not isinstance(data, dict):
        raise ValidationError("product must be an object")
    product_id = str(data.get("product_id") or data.get("id") or "").strip()
    if not product_id:
        raise ValidationError("product_id is required")
    if allocation.product(product_id) is not None:
        raise ValidationError(f"product {product_id} is already in this allocation")
    product = AllocationProduct(product_id=product_id, **_product_values(data))
    allocation.products.append(product)
    db.session.flush()
    return product


def add_product(allocation, data):
    try:
        product = _add_product(allocation, data)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("add product to allocation %s failed", allocation.id)
        raise PersistenceError("Failed to add product") from e
    return product


def get_product(allocation, product_id):
    product = allocation.product(product_id)
    if product is None:
        raise NotFound("product not found in allocation")
    return product


def update_product(allocation, product_id, data):
    product = get_product(allocation, product_id)
    for key, value in _product_values(data, partial=True).items():
        setattr(product, key, value)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("update product %s failed", product_id)
        raise PersistenceError("Failed to update product") from e
    return product


def remove_product(allocation, product_id):
    """Detach a product; tier overrides for it go with it."""
    product = get_product(allocation, product_id)
    tier_ids = [t.id for t in AllocationTier.query.filter_by(allocation_id=allocation.id).all()]
    try:
        if tier_ids:
            (TierProductOverride.query
                .filter(TierProductOverride.tier_id.in_(tier_ids),
                        TierProductOverride.product_id == product.product_id)
                .delete(synchronize_session="fetch"))
        allocation.products.remove(product)
        db.session.flush()
        for tier in allocation.tiers:
            db.session.expire(tier, ["product_overrides"])
        refresh_aggregates(allocation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("remove product %s failed", product_id)
        raise PersistenceError("Failed to remove product") from e


def overview(allocation, now=None):
    now = now or utcnow()
    return {
        "allocation": allocation.as_api(),
        "days_total": days_total(allocation),
        "days_remaining": days_remaining(allocation, now),
        "progress": compute_progress(allocation, now),
        "status_message": status_message(allocation, now),
        "product_count": len(allocation.products),
        "type_summary": summarize_type(allocation),
        "configuration": effective_config(allocation),
    }
