# allocation_admin/services/product_override_service.py
"""
Per-tier, per-product overrides.

Edit mode writes straight to ``tier_product_overrides``. Creation mode
(``ProductOverrideDraft``) keeps overrides in memory until the tier exists.
A save always replaces the tier's whole set.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFound, PersistenceError, ValidationError
from ..extensions import db
from ..model import AllocationTier, TierProductOverride
from ..utils.parsing import opt_bool, opt_float, opt_int
from .allocation_service import refresh_aggregates
from .override_resolver import effective_product

logger = logging.getLogger(__name__)

# payload key -> (column, parser)
OVERRIDE_FIELDS = {
    "overridePrice": ("override_price", lambda v, f: opt_float(v, f, minimum=0)),
    "minPurchase": ("min_purchase", lambda v, f: opt_int(v, f, minimum=0)),
    "maxPurchase": ("max_purchase", lambda v, f: opt_int(v, f, minimum=0)),
    "allowWishRequests": ("allow_wish_requests", opt_bool),
    "wishRequestMin": ("wish_request_min", lambda v, f: opt_int(v, f, minimum=0)),
    "wishRequestMax": ("wish_request_max", lambda v, f: opt_int(v, f, minimum=0)),
}


def normalize_override_fields(fields):
    """Payload (camelCase) -> column values. Unknown keys are ignored."""
    if not isinstance(fields, dict):
        raise ValidationError("override must be an object")
    values = {}
    for key, (column, parse) in OVERRIDE_FIELDS.items():
        if key in fields:
            values[column] = parse(fields[key], key)
    return values


def normalize_override_set(overrides):
    """``{product_id: fields}`` -> ``{product_id: column values}``."""
    if overrides is None:
        return {}
    if not isinstance(overrides, dict):
        raise ValidationError("productOverrides must be an object keyed by product id")
    return {str(pid): normalize_override_fields(fields) for pid, fields in overrides.items()}


def _check_products(allocation, product_ids):
    unknown = sorted(pid for pid in product_ids if allocation.product(pid) is None)
    if unknown:
        raise ValidationError("products are not part of this allocation", {"unknown": unknown})


def _get_tier(tier_id):
    tier = db.session.get(AllocationTier, tier_id)
    if tier is None:
        raise NotFound("tier not found")
    return tier


def list_overrides(tier_id):
    """``{product_id: TierProductOverride}``; empty for unknown or deleted tiers."""
    rows = (TierProductOverride.query
            .filter_by(tier_id=tier_id)
            .order_by(TierProductOverride.id.asc())
            .all())
    return {row.product_id: row for row in rows}


def add_override_rows(tier, normalized):
    """Insert rows for an already-normalized set. Flushes, never commits."""
    for product_id, values in normalized.items():
        db.session.add(TierProductOverride(tier_id=tier.id, product_id=product_id, **values))
    db.session.flush()


def set_override(tier_id, product_id, fields):
    """Upsert one product's override row."""
    tier = _get_tier(tier_id)
    product_id = str(product_id)
    _check_products(tier.allocation, [product_id])
    values = normalize_override_fields(fields)
    try:
        row = TierProductOverride.query.filter_by(tier_id=tier.id, product_id=product_id).first()
        if row is None:
            row = TierProductOverride(tier_id=tier.id, product_id=product_id)
            db.session.add(row)
        for column, value in values.items():
            setattr(row, column, value)
        refresh_aggregates(tier.allocation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("saving override of product %s on tier %s failed", product_id, tier_id)
        raise PersistenceError("Failed to save product override") from e
    logger.info("product override %s saved on tier %s", product_id, tier_id)
    return row


def save_overrides(tier_id, overrides):
    """Replace the tier's whole override set. An empty mapping clears it."""
    tier = _get_tier(tier_id)
    normalized = normalize_override_set(overrides)
    _check_products(tier.allocation, normalized)
    try:
        for row in TierProductOverride.query.filter_by(tier_id=tier.id).all():
            db.session.delete(row)
        db.session.flush()
        db.session.expire(tier, ["product_overrides"])
        add_override_rows(tier, normalized)
        refresh_aggregates(tier.allocation, saved_override_sets={tier.id})
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("saving product overrides of tier %s failed", tier_id)
        raise PersistenceError("Failed to save product overrides") from e
    logger.info("tier %s product overrides replaced (%d rows)", tier_id, len(normalized))
    return list_overrides(tier.id)


def effective_products(tier_id):
    tier = _get_tier(tier_id)
    overrides = list_overrides(tier.id)
    return [effective_product(p, overrides.get(p.product_id)) for p in tier.allocation.products]


class ProductOverrideDraft:
    """
    Creation-mode editor: overrides live in memory and are handed to
    ``on_save``; ``create_tier`` persists them with the new tier.
    """

    def __init__(self, initial=None, on_save=None):
        if initial is not None and not isinstance(initial, dict):
            raise ValidationError("productOverrides must be an object keyed by product id")
        self._overrides = {}
        for pid, fields in (initial or {}).items():
            if not isinstance(fields, dict):
                raise ValidationError(f"override of product {pid} must be an object")
            self._overrides[str(pid)] = dict(fields)
        self.on_save = on_save

    def change(self, product_id, field, value):
        if field not in OVERRIDE_FIELDS:
            raise ValidationError(f"unknown override field: {field}")
        entry = self._overrides.setdefault(str(product_id), {})
        # allowWishRequests stays unset unless changed, so the product default applies
        entry[field] = value
        return self

    def discard(self, product_id):
        self._overrides.pop(str(product_id), None)
        return self

    @property
    def overrides(self):
        return {pid: dict(fields) for pid, fields in self._overrides.items()}

    def save(self):
        normalized = normalize_override_set(self._overrides)
        if self.on_save is not None:
            self.on_save(normalized)
        return normalized
