# allocation_admin/services/tier_service.py
import logging
from enum import Enum

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DuplicateTierLevel, NotFound, PersistenceError, ValidationError
from ..extensions import db
from ..model import AllocationTier, CustomerTier, TierOverride
from ..model.allocation import DISCOUNT_TYPES
from ..utils.parsing import opt_bool, opt_choice, opt_float, opt_int, opt_text, require_datetime
from .allocation_service import refresh_aggregates
from .customer_sources import SelectedSources
from .product_override_service import add_override_rows

logger = logging.getLogger(__name__)


class TierCreationStep(str, Enum):
    """Writes of a tier creation, in order. A failure names the step it hit."""

    TIER = "tier"
    OVERRIDES = "overrides"
    PRODUCT_OVERRIDES = "product_overrides"
    ASSIGNMENTS = "assignments"


# ---- override bundle -------------------------------------------------------

def _requirements(raw):
    return {
        "cartMin": opt_int(raw.get("cartMin"), "cartMin", minimum=0),
        "cartMax": opt_int(raw.get("cartMax"), "cartMax", minimum=0),
        "minAmount": opt_float(raw.get("minAmount"), "minAmount", minimum=0),
    }


def _discounts(raw):
    return {
        "type": opt_choice(raw.get("type"), "discount type", DISCOUNT_TYPES),
        "amount": opt_float(raw.get("amount"), "discount amount", minimum=0),
    }


def _shipping(raw):
    return {
        "method": opt_text(raw.get("method"), "shipping method"),
        "type": opt_choice(raw.get("type"), "shipping type", DISCOUNT_TYPES),
        "amount": opt_float(raw.get("amount"), "shipping amount", minimum=0),
    }


_SECTIONS = {"requirements": _requirements, "discounts": _discounts, "shipping": _shipping}


def _section(name, raw):
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError(f"{name} override must be an object")
    # unset keys are dropped so they fall back to the allocation value
    values = {k: v for k, v in _SECTIONS[name](raw).items() if v is not None}
    return values or None


def normalize_override_bundle(overrides):
    """
    Console payload -> ``tier_overrides`` columns; ``{}`` when nothing was
    submitted. ``products`` is the console's "has product overrides" switch.
    """
    if not overrides:
        return {}
    if not isinstance(overrides, dict):
        raise ValidationError("overrides must be an object")
    bundle = {name: _section(name, overrides.get(name)) for name in _SECTIONS}
    bundle["has_product_overrides"] = bool(opt_bool(overrides.get("products"), "products"))
    return bundle


# ---- validation ------------------------------------------------------------

def _parse_level(level):
    n = opt_int(level, "level")
    if n is None or n < 1:
        raise ValidationError("level must be a positive integer")
    return n


def _parse_window(access_start, access_end):
    start = require_datetime(access_start, "access_start")
    end = require_datetime(access_end, "access_end")
    if end <= start:
        raise ValidationError("access_end must be after access_start")
    return start, end


def _enforce_unique_levels():
    return current_app.config.get("ENFORCE_UNIQUE_TIER_LEVELS", True)


def _check_level_free(allocation_id, level, exclude_tier_id=None):
    q = AllocationTier.query.filter_by(allocation_id=allocation_id, level=level)
    if exclude_tier_id is not None:
        q = q.filter(AllocationTier.id != exclude_tier_id)
    if q.first() is not None:
        raise DuplicateTierLevel(level)


# ---- queries ---------------------------------------------------------------

def list_tiers(allocation_id):
    """Tiers by ascending level; ties keep creation order."""
    return (AllocationTier.query
            .filter_by(allocation_id=allocation_id)
            .order_by(AllocationTier.level.asc(),
                      AllocationTier.created_at.asc(),
                      AllocationTier.id.asc())
            .all())


def get_tier(tier_id):
    tier = db.session.get(AllocationTier, tier_id)
    if tier is None:
        raise NotFound("tier not found")
    return tier


def list_assignments(tier_id):
    return (CustomerTier.query
            .filter_by(tier_id=tier_id)
            .order_by(CustomerTier.id.asc())
            .all())


# ---- mutations -------------------------------------------------------------

def create_tier(allocation, name, level, access_start, access_end,
                overrides=None, selections=None, product_overrides=None, resolver=None):
    """
    Create a tier with its override bundle, product overrides and customer
    assignments in one transaction.

    ``product_overrides`` is the normalized mapping produced by
    ``ProductOverrideDraft.save``. ``resolver`` expands selected sources into
    customer ids and is required when ``selections`` is not empty.
    """
    name = opt_text(name, "name")
    if not name or level in (None, "") or not access_start or not access_end:
        raise ValidationError("missing required fields")
    if allocation.allocation_type != "tier":
        raise ValidationError("tiers can only be added to tier allocations")
    level = _parse_level(level)
    start, end = _parse_window(access_start, access_end)
    if _enforce_unique_levels():
        _check_level_free(allocation.id, level)

    selections = selections if selections is not None else SelectedSources()
    bundle = normalize_override_bundle(overrides)
    product_overrides = product_overrides or {}
    unknown = sorted(pid for pid in product_overrides if allocation.product(pid) is None)
    if unknown:
        raise ValidationError("products are not part of this allocation", {"unknown": unknown})

    # resolve membership before the first write
    assignments = selections.flatten(resolver) if selections else []

    step = TierCreationStep.TIER
    try:
        tier = AllocationTier(
            allocation_id=allocation.id,
            name=name,
            level=level,
            access_start=start,
            access_end=end,
            customer_count=0,
        )
        db.session.add(tier)
        db.session.flush()

        step = TierCreationStep.OVERRIDES
        if bundle:
            tier.override = TierOverride(**bundle)
            db.session.flush()

        step = TierCreationStep.PRODUCT_OVERRIDES
        if product_overrides:
            add_override_rows(tier, product_overrides)
            db.session.flush()

        step = TierCreationStep.ASSIGNMENTS
        for row in assignments:
            db.session.add(CustomerTier(
                allocation_id=allocation.id,
                tier_id=tier.id,
                customer_id=row.customer_id,
                source_type=row.source_type,
                source_id=row.source_id,
            ))
        db.session.flush()

        refresh_aggregates(allocation, estimates={tier.id: selections.total_estimated_customers()})
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("tier creation failed at step %s", step.value)
        raise PersistenceError("Failed to create tier", step=step) from e

    logger.info(
        "tier %s (level %s) created on allocation %s with %d assignments",
        tier.id, tier.level, allocation.id, len(assignments),
    )
    return tier


def update_tier(tier_id, data):
    """
    Edit name, level, window and override sections. Last write wins.

    Every field is validated before the tier is touched, so a rejected edit
    leaves nothing pending in the session.
    """
    tier = get_tier(tier_id)
    if not isinstance(data, dict):
        raise ValidationError("body must be a JSON object")

    values = {}
    if "name" in data:
        name = opt_text(data.get("name"), "name")
        if not name:
            raise ValidationError("name cannot be empty")
        values["name"] = name
    if "level" in data:
        level = _parse_level(data.get("level"))
        if _enforce_unique_levels():
            _check_level_free(tier.allocation_id, level, exclude_tier_id=tier.id)
        values["level"] = level
    if "access_start" in data or "access_end" in data:
        values["access_start"], values["access_end"] = _parse_window(
            data.get("access_start", tier.access_start),
            data.get("access_end", tier.access_end),
        )

    overrides = data.get("overrides")
    sections = {}
    turn_on_products = False
    if overrides is not None:
        if not isinstance(overrides, dict):
            raise ValidationError("overrides must be an object")
        sections = {name: _section(name, overrides[name]) for name in _SECTIONS if name in overrides}
        # the flag only ever turns on here
        turn_on_products = bool(opt_bool(overrides.get("products"), "products"))

    for key, value in values.items():
        setattr(tier, key, value)
    if overrides is not None:
        if tier.override is None:
            tier.override = TierOverride(has_product_overrides=False)
        for name, value in sections.items():
            setattr(tier.override, name, value)
        if turn_on_products:
            tier.override.has_product_overrides = True

    try:
        refresh_aggregates(tier.allocation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("tier %s update failed", tier_id)
        raise PersistenceError("Failed to update tier") from e
    return tier


def delete_tier(tier_id):
    """Delete a tier with its bundle, product overrides and assignments, all or nothing."""
    tier = get_tier(tier_id)
    allocation = tier.allocation
    try:
        db.session.delete(tier)
        db.session.flush()
        refresh_aggregates(allocation)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("tier %s delete failed", tier_id)
        raise PersistenceError("Failed to delete tier") from e
    logger.info("tier %s deleted from allocation %s", tier_id, allocation.id)
