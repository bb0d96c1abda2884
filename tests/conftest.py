"""Pytest configuration and fixtures."""

from datetime import datetime

import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from allocation_admin import create_app
from allocation_admin.extensions import db
from allocation_admin.model import User
from allocation_admin.services import allocation_service, tier_service
from allocation_admin.services.customer_sources import SelectedSources, SourceItem
from allocation_admin.services.source_resolver import StaticSourceResolver

# customers behind each selectable source item
MEMBERSHIP = {
    ("tag", "vip"): ["c1", "c2", "c3"],
    ("group", "g1"): ["c3", "c4"],
    ("club", "club1"): ["c5"],
    ("query", "q1"): ["c1", "c6"],
}


@pytest.fixture
def resolver():
    return StaticSourceResolver(MEMBERSHIP)


@pytest.fixture
def app(resolver):
    """App on a fresh in-memory database, with an app context pushed for the test."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "JWT_SECRET_KEY": "test-secret-key-long-enough-for-hs256-signing",
        "REPORTING_API_TOKEN": "test-token",
    })
    app.extensions["customer_source_resolver"] = resolver
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(email, role):
    user = User(email=email, name=role.title(), password_hash=generate_password_hash("secret123"), role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin(app):
    return _user("admin@example.com", "admin")


@pytest.fixture
def viewer(app):
    return _user("viewer@example.com", "user")


def _headers(user):
    return {"Authorization": f"Bearer {create_access_token(identity=str(user.id))}"}


@pytest.fixture
def auth_headers(admin):
    return _headers(admin)


@pytest.fixture
def viewer_headers(viewer):
    return _headers(viewer)


@pytest.fixture
def make_allocation(app):
    """Create an allocation; keyword arguments override the defaults."""

    def factory(**overrides):
        data = {
            "name": "Spring Release",
            "start_date": datetime(2024, 1, 1),
            "end_date": datetime(2024, 1, 11),
            "cart_min": 2,
            "cart_max": 12,
            "min_amount": 100,
            "order_discount_type": "percentage",
            "order_discount_amount": 10,
            "shipping_discount_method": "Ground",
            "shipping_discount_type": "fixed",
            "shipping_discount_amount": 5,
            "products": [
                {"product_id": "p1", "name": "Cabernet 2019", "price": 45, "min_purchase": 1, "max_purchase": 6},
                {"product_id": "p2", "name": "Chardonnay 2021", "price": 30, "allow_wish_requests": True},
            ],
        }
        data.update(overrides)
        return allocation_service.create_allocation(data)

    return factory


@pytest.fixture
def allocation(make_allocation):
    return make_allocation()


@pytest.fixture
def make_tier(resolver):
    """Create a tier on ``allocation``; ``sources`` maps kind -> [SourceItem]."""

    def factory(allocation, name="Gold", level=1, sources=None, **kwargs):
        selections = SelectedSources()
        for kind, items in (sources or {}).items():
            for item in items:
                selections.add_selection(kind, item)
        return tier_service.create_tier(
            allocation,
            name=name,
            level=level,
            access_start=kwargs.pop("access_start", datetime(2024, 1, 1)),
            access_end=kwargs.pop("access_end", datetime(2024, 1, 5)),
            selections=selections,
            resolver=resolver,
            **kwargs,
        )

    return factory


@pytest.fixture
def vip():
    return SourceItem(id="vip", name="VIP", count=150)
