# allocation_admin/model/allocation.py
from sqlalchemy.sql import func

from ..extensions import db
from ..utils.money import to_float
from ..utils.parsing import isoformat

ALLOCATION_TYPES = {"tier", "individual"}
ALLOCATION_STATUSES = {"draft", "scheduled", "active", "completed"}
DISCOUNT_TYPES = {"percentage", "fixed"}


class Allocation(db.Model):
    __tablename__ = "allocations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    allocation_type = db.Column(db.String(16), nullable=False, default="tier")

    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)

    # global purchase requirements
    cart_min = db.Column(db.Integer)         # bottles
    cart_max = db.Column(db.Integer)
    min_amount = db.Column(db.Float)         # cart value

    # global order discount: "percentage" | "fixed"
    order_discount_type = db.Column(db.String(16))
    order_discount_amount = db.Column(db.Float)

    # global shipping discount
    shipping_discount_method = db.Column(db.String(64))
    shipping_discount_type = db.Column(db.String(16))
    shipping_discount_amount = db.Column(db.Float)

    # advisory, recomputed by refresh_aggregates
    total_customers = db.Column(db.Integer, nullable=False, default=0)
    expected_revenue = db.Column(db.Float)
    current_revenue = db.Column(db.Float)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    products = db.relationship(
        "AllocationProduct",
        backref="allocation",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AllocationProduct.id.asc()",
    )
    tiers = db.relationship(
        "AllocationTier",
        back_populates="allocation",
        lazy="select",
        order_by="AllocationTier.level.asc()",
    )

    def product(self, product_id):
        for p in self.products:
            if p.product_id == str(product_id):
                return p
        return None

    def as_api(self, include_products=True):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "allocation_type": self.allocation_type,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "cart_min": self.cart_min,
            "cart_max": self.cart_max,
            "min_amount": to_float(self.min_amount),
            "order_discount_type": self.order_discount_type,
            "order_discount_amount": self.order_discount_amount,
            "shipping_discount_method": self.shipping_discount_method,
            "shipping_discount_type": self.shipping_discount_type,
            "shipping_discount_amount": self.shipping_discount_amount,
            "total_customers": self.total_customers or 0,
            "expected_revenue": to_float(self.expected_revenue),
            "current_revenue": to_float(self.current_revenue),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }
        if include_products:
            data["allocation_products"] = [p.as_api() for p in self.products]
        return data


class AllocationProduct(db.Model):
    """Allocation-level defaults for one product; tiers layer overrides on top."""

    __tablename__ = "allocation_products"
    __table_args__ = (
        db.UniqueConstraint("allocation_id", "product_id", name="uq_allocation_product"),
    )

    id = db.Column(db.Integer, primary_key=True)
    allocation_id = db.Column(
        db.Integer, db.ForeignKey("allocations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.String(64), nullable=False)   # SKU / external id
    name = db.Column(db.String(255), nullable=False)

    price = db.Column(db.Float, nullable=False, default=0.0)
    override_price = db.Column(db.Float)
    min_purchase = db.Column(db.Integer)
    max_purchase = db.Column(db.Integer)

    allow_wish_requests = db.Column(db.Boolean, nullable=False, default=False)
    wish_request_min = db.Column(db.Integer)
    wish_request_max = db.Column(db.Integer)

    def as_api(self):
        return {
            "id": self.id,
            "allocation_id": self.allocation_id,
            "product_id": self.product_id,
            "name": self.name,
            "price": to_float(self.price),
            "override_price": to_float(self.override_price),
            "min_purchase": self.min_purchase,
            "max_purchase": self.max_purchase,
            "allow_wish_requests": bool(self.allow_wish_requests),
            "wish_request_min": self.wish_request_min,
            "wish_request_max": self.wish_request_max,
        }
