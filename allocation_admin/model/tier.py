# allocation_admin/model/tier.py
from ..extensions import db
from ..utils.money import to_float
from ..utils.parsing import isoformat, utcnow


class AllocationTier(db.Model):
    __tablename__ = "allocation_tiers"

    id = db.Column(db.Integer, primary_key=True)
    allocation_id = db.Column(
        db.Integer, db.ForeignKey("allocations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(120), nullable=False)
    # lower level = evaluated and displayed first
    level = db.Column(db.Integer, nullable=False, index=True)

    access_start = db.Column(db.DateTime, nullable=False)
    access_end = db.Column(db.DateTime, nullable=False)

    # advisory; written by refresh_aggregates only
    customer_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    allocation = db.relationship("Allocation", back_populates="tiers")

    # loaded one query per tier when a list is rendered
    override = db.relationship(
        "TierOverride",
        back_populates="tier",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="select",
    )
    product_overrides = db.relationship(
        "TierProductOverride",
        backref="tier",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="TierProductOverride.id.asc()",
    )
    assignments = db.relationship(
        "CustomerTier",
        backref="tier",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="CustomerTier.id.asc()",
    )

    def as_api(self, include_overrides=True):
        data = {
            "id": self.id,
            "allocation_id": self.allocation_id,
            "name": self.name,
            "level": self.level,
            "access_start": isoformat(self.access_start),
            "access_end": isoformat(self.access_end),
            "customer_count": self.customer_count or 0,
            "created_at": isoformat(self.created_at),
        }
        if include_overrides:
            data["overrides"] = self.override.as_api() if self.override else None
        return data


class TierOverride(db.Model):
    """Tier-level replacements for the allocation's requirement/discount/shipping defaults."""

    __tablename__ = "tier_overrides"

    id = db.Column(db.Integer, primary_key=True)
    tier_id = db.Column(
        db.Integer,
        db.ForeignKey("allocation_tiers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    requirements = db.Column(db.JSON)   # {cartMin?, cartMax?, minAmount?}
    discounts = db.Column(db.JSON)      # {type?, amount?}
    shipping = db.Column(db.JSON)       # {method?, type?, amount?}

    # denormalized; set when product overrides are saved, never cleared
    has_product_overrides = db.Column(db.Boolean, nullable=False, default=False)

    tier = db.relationship("AllocationTier", back_populates="override")

    def as_api(self):
        return {
            "requirements": self.requirements,
            "discounts": self.discounts,
            "shipping": self.shipping,
            "has_product_overrides": bool(self.has_product_overrides),
        }


class TierProductOverride(db.Model):
    __tablename__ = "tier_product_overrides"
    __table_args__ = (
        db.UniqueConstraint("tier_id", "product_id", name="uq_tier_product_override"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tier_id = db.Column(
        db.Integer, db.ForeignKey("allocation_tiers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.String(64), nullable=False)

    override_price = db.Column(db.Float)
    min_purchase = db.Column(db.Integer)
    max_purchase = db.Column(db.Integer)
    # None = inherit the product default
    allow_wish_requests = db.Column(db.Boolean, nullable=True)
    wish_request_min = db.Column(db.Integer)
    wish_request_max = db.Column(db.Integer)

    def as_api(self):
        return {
            "productId": self.product_id,
            "overridePrice": to_float(self.override_price),
            "minPurchase": self.min_purchase,
            "maxPurchase": self.max_purchase,
            "allowWishRequests": self.allow_wish_requests,
            "wishRequestMin": self.wish_request_min,
            "wishRequestMax": self.wish_request_max,
        }


class CustomerTier(db.Model):
    """One resolved customer membership of a tier."""

    __tablename__ = "customer_tiers"

    id = db.Column(db.Integer, primary_key=True)
    allocation_id = db.Column(
        db.Integer, db.ForeignKey("allocations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tier_id = db.Column(
        db.Integer, db.ForeignKey("allocation_tiers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    source_type = db.Column(db.String(16), nullable=False)
    source_id = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def as_api(self):
        return {
            "id": self.id,
            "allocation_id": self.allocation_id,
            "tier_id": self.tier_id,
            "customer_id": self.customer_id,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "created_at": isoformat(self.created_at),
        }
