# allocation_admin/reporting/client.py
"""Client for the third-party Reporting API (read-only JSON endpoints)."""
import logging
import string
from enum import Enum
from urllib.parse import quote

import requests
from flask import current_app

from ..errors import AllocationAdminError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.securecheckout.com/v1/reporting"


class ReportingApiError(AllocationAdminError):
    """Uniform error for every failed Reporting API call."""

    def __init__(self, message, status=None, status_text=None):
        super().__init__(message)
        self.status = status
        self.status_text = status_text
        self.data = {"upstream": self.as_envelope()}

    @property
    def status_code(self):
        # upstream 401/403, network and envelope errors are a bad gateway
        if isinstance(self.status, int) and 400 <= self.status < 600 and self.status not in (401, 403):
            return self.status
        return 502

    def as_envelope(self):
        return {"status": self.status, "statusText": self.status_text, "message": self.message}


class ReportingEndpoint(Enum):
    """Closed set of Reporting API operations: (label, path template)."""

    ADDRESS = ("Get Address", "/addresses/{id}")
    ADDRESSES = ("Get Addresses", "/addresses/{limit}/{page}")
    CATEGORY = ("Get Category", "/categories/{id}")
    CATEGORIES = ("Get All Categories", "/categories")
    CATEGORY_PRODUCTS = ("Get Category Products", "/categories/{id}/products")
    CLUB_MEMBERS = ("Get All Club Members", "/club-members")
    CLUB_MEMBER = ("Get Club Member", "/club-members/{id}")
    CLUB = ("Get Club", "/clubs/{id}")
    CLUBS = ("Get All Clubs", "/clubs")
    CUSTOMER = ("Get Customer", "/customers/{id}")
    CUSTOMERS_BY_LAST_UPDATE = ("Get Customers by Last Update", "/customers/last-update/{start}/{end}/{limit}/{page}")
    CUSTOMERS_BY_SIGNUP = ("Get Customers by Signup Date", "/customers/created/{start}/{end}/{limit}/{page}")
    CUSTOMERS_IN_GROUP = ("Get Customers in Group", "/customers/groups/{id}")
    GROUPS = ("Get All Groups", "/groups")
    GROUP = ("Get Group", "/groups/{id}")
    INVENTORY_LEVELS = ("Get Inventory Levels", "/inventory")
    INVENTORY_MOVEMENTS = ("Get Inventory Movements", "/inventory/transactions/{start}/{end}")
    UNSHIPPED_INVENTORY = ("Get Unshipped Inventory", "/inventory/allocated")
    ORDER = ("Get Order", "/orders/{id}")
    ORDER_PACKAGES = ("Get Order Packages", "/orders/{id}/packages")
    ORDERS_BY_CREATION = ("Get Orders by Creation Date", "/orders/created/{start}/{end}")
    ORDERS_BY_LAST_UPDATE = ("Get Orders by Last Update", "/orders/last-update/{start}/{end}/{limit}/{page}")
    ORDERS_BY_TYPE = ("Get Orders by Type", "/orders/type/{order_type}/{start}/{end}")
    ORDERS_FOR_ACCOUNTING = ("Get Orders for Accounting", "/orders/nav/{start}/{end}")
    PRODUCT_TRANSACTIONS = ("Get Product Transactions", "/orders/product-transactions/{start}/{end}")
    PAYMENT_TRANSACTIONS = ("Get Payment Transactions", "/orders/payment-transactions/{start}/{end}")
    PRODUCT = ("Get Product", "/products/{sku}")
    ARCHIVED_PRODUCTS = ("Get Archived Products", "/products/archived")
    AVAILABLE_PRODUCTS = ("Get All Products", "/products")
    ACTIVE_WISHES = ("Get Active Wishes", "/wishes")

    def __init__(self, label, path):
        self.label = label
        self.path = path

    @property
    def slug(self):
        return self.name.lower().replace("_", "-")

    @property
    def params(self):
        return [name for _, name, _, _ in string.Formatter().parse(self.path) if name]

    @classmethod
    def from_slug(cls, slug):
        for endpoint in cls:
            if endpoint.slug == slug:
                return endpoint
        return None

    def build_path(self, **params):
        missing = [p for p in self.params if params.get(p) in (None, "")]
        if missing:
            raise ValidationError(f"missing parameters: {', '.join(missing)}", {"missing": missing})
        return self.path.format(**{p: quote(str(params[p]), safe="") for p in self.params})

    def as_api(self):
        return {"name": self.slug, "label": self.label, "path": self.path, "method": "GET", "parameters": self.params}


class ReportingApiClient:
    def __init__(self, auth_token, base_url=DEFAULT_BASE_URL, timeout=10.0, session=None):
        self.auth_token = auth_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def call(self, endpoint, **params):
        return self._get(endpoint.build_path(**params))

    def _get(self, path):
        if not self.auth_token:
            raise ReportingApiError("API token is missing. Please check your configuration.")
        if not path.startswith("/"):
            path = f"/{path}"
        url = f"{self.base_url}{path}"
        logger.debug("GET %s", url)
        try:
            response = self.session.get(
                url,
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                    "X-Auth-Token": self.auth_token,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("reporting API unreachable: %s", e)
            raise ReportingApiError(
                "Network error - unable to reach API. Please check your internet connection and try again.",
                0,
                "Network Error",
            ) from e

        is_json = "application/json" in (response.headers.get("Content-Type") or "")

        if not response.ok:
            message = response.reason
            if is_json:
                try:
                    body = response.json()
                except ValueError:
                    body = None
                if isinstance(body, dict):
                    error = body.get("error")
                    message = (error.get("message") if isinstance(error, dict) else None) or body.get("message") or message
            logger.warning("reporting API %s failed: %s %s", path, response.status_code, message)
            raise ReportingApiError(f"API request failed: {message}", response.status_code, response.reason)

        if not is_json:
            return None

        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                raise ReportingApiError(error.get("message") or "API Error", error.get("code") or response.status_code)
            raise ReportingApiError(str(error), response.status_code)
        return data

    # Addresses
    def get_address(self, address_id):
        return self.call(ReportingEndpoint.ADDRESS, id=address_id)

    def get_addresses(self, limit, page):
        return self.call(ReportingEndpoint.ADDRESSES, limit=limit, page=page)

    # Categories
    def get_category(self, category_id):
        return self.call(ReportingEndpoint.CATEGORY, id=category_id)

    def get_categories(self):
        return self.call(ReportingEndpoint.CATEGORIES)

    def get_category_products(self, category_id):
        return self.call(ReportingEndpoint.CATEGORY_PRODUCTS, id=category_id)

    # Clubs
    def get_club_members(self):
        return self.call(ReportingEndpoint.CLUB_MEMBERS)

    def get_club_member(self, member_id):
        return self.call(ReportingEndpoint.CLUB_MEMBER, id=member_id)

    def get_club(self, club_id):
        return self.call(ReportingEndpoint.CLUB, id=club_id)

    def get_clubs(self):
        return self.call(ReportingEndpoint.CLUBS)

    # Customers
    def get_customer(self, customer_id):
        return self.call(ReportingEndpoint.CUSTOMER, id=customer_id)

    def get_customers_by_last_update(self, start, end, limit, page):
        return self.call(ReportingEndpoint.CUSTOMERS_BY_LAST_UPDATE, start=start, end=end, limit=limit, page=page)

    def get_customers_by_signup(self, start, end, limit, page):
        return self.call(ReportingEndpoint.CUSTOMERS_BY_SIGNUP, start=start, end=end, limit=limit, page=page)

    def get_customers_in_group(self, group_id):
        return self.call(ReportingEndpoint.CUSTOMERS_IN_GROUP, id=group_id)

    # Groups
    def get_groups(self):
        return self.call(ReportingEndpoint.GROUPS)

    def get_group(self, group_id):
        return self.call(ReportingEndpoint.GROUP, id=group_id)

    # Inventory
    def get_inventory_levels(self):
        return self.call(ReportingEndpoint.INVENTORY_LEVELS)

    def get_inventory_movements(self, start, end):
        return self.call(ReportingEndpoint.INVENTORY_MOVEMENTS, start=start, end=end)

    def get_unshipped_inventory(self):
        return self.call(ReportingEndpoint.UNSHIPPED_INVENTORY)

    # Orders
    def get_order(self, order_id):
        return self.call(ReportingEndpoint.ORDER, id=order_id)

    def get_order_packages(self, order_id):
        return self.call(ReportingEndpoint.ORDER_PACKAGES, id=order_id)

    def get_orders_by_creation(self, start, end):
        return self.call(ReportingEndpoint.ORDERS_BY_CREATION, start=start, end=end)

    def get_orders_by_last_update(self, start, end, limit, page):
        return self.call(ReportingEndpoint.ORDERS_BY_LAST_UPDATE, start=start, end=end, limit=limit, page=page)

    def get_orders_by_type(self, order_type, start, end):
        return self.call(ReportingEndpoint.ORDERS_BY_TYPE, order_type=order_type, start=start, end=end)

    def get_orders_for_accounting(self, start, end):
        return self.call(ReportingEndpoint.ORDERS_FOR_ACCOUNTING, start=start, end=end)

    def get_product_transactions(self, start, end):
        return self.call(ReportingEndpoint.PRODUCT_TRANSACTIONS, start=start, end=end)

    def get_payment_transactions(self, start, end):
        return self.call(ReportingEndpoint.PAYMENT_TRANSACTIONS, start=start, end=end)

    # Products
    def get_product(self, sku):
        return self.call(ReportingEndpoint.PRODUCT, sku=sku)

    def get_archived_products(self):
        return self.call(ReportingEndpoint.ARCHIVED_PRODUCTS)

    def get_available_products(self):
        return self.call(ReportingEndpoint.AVAILABLE_PRODUCTS)

    # Wishes
    def get_active_wishes(self):
        return self.call(ReportingEndpoint.ACTIVE_WISHES)


def create_api_client(app=None):
    app = app or current_app
    return ReportingApiClient(
        app.config.get("REPORTING_API_TOKEN"),
        base_url=app.config.get("REPORTING_API_BASE_URL") or DEFAULT_BASE_URL,
        timeout=app.config.get("REPORTING_API_TIMEOUT", 10.0),
    )
