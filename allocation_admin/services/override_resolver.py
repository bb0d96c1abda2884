# allocation_admin/services/override_resolver.py
"""
Effective values for a tier.

Every field is resolved on its own: an override that is present (not None)
replaces the base value for that field only. Nothing here validates that a
discount override carries both ``type`` and ``amount``; a missing amount is
shown as "None".

Price layering for a product, first present value wins:
  1) tier product override ``override_price``
  2) allocation product ``override_price``
  3) allocation product ``price``
"""
from ..utils.money import format_money, to_float

REQUIREMENT_FIELDS = {
    "cartMin": "cart_min",
    "cartMax": "cart_max",
    "minAmount": "min_amount",
}
DISCOUNT_FIELDS = {
    "type": "order_discount_type",
    "amount": "order_discount_amount",
}
SHIPPING_FIELDS = {
    "method": "shipping_discount_method",
    "type": "shipping_discount_type",
    "amount": "shipping_discount_amount",
}


def resolve(base, override):
    return base if override is None else override


def resolve_fields(base, override):
    """Resolve each key of ``base`` and ``override`` independently."""
    base = base or {}
    override = override or {}
    keys = list(base) + [k for k in override if k not in base]
    return {k: resolve(base.get(k), override.get(k)) for k in keys}


def resolve_flag(default, override):
    """Booleans: an unset override inherits the default, never plain False."""
    if override is None:
        return bool(default)
    return bool(override)


def _defaults(allocation, mapping):
    return {key: getattr(allocation, column) for key, column in mapping.items()}


def _known(section, mapping):
    return {k: v for k, v in (section or {}).items() if k in mapping}


def _section(bundle, name):
    return getattr(bundle, name, None) if bundle is not None else None


def effective_requirements(allocation, bundle=None):
    return resolve_fields(
        _defaults(allocation, REQUIREMENT_FIELDS),
        _known(_section(bundle, "requirements"), REQUIREMENT_FIELDS),
    )


def effective_discount(allocation, bundle=None):
    return resolve_fields(
        _defaults(allocation, DISCOUNT_FIELDS),
        _known(_section(bundle, "discounts"), DISCOUNT_FIELDS),
    )


def effective_shipping(allocation, bundle=None):
    return resolve_fields(
        _defaults(allocation, SHIPPING_FIELDS),
        _known(_section(bundle, "shipping"), SHIPPING_FIELDS),
    )


def effective_config(allocation, bundle=None):
    discount = effective_discount(allocation, bundle)
    shipping = effective_shipping(allocation, bundle)
    return {
        "requirements": effective_requirements(allocation, bundle),
        "discounts": {**discount, "display": format_discount(discount["type"], discount["amount"])},
        "shipping": {
            **shipping,
            "method": shipping["method"] or "Default",
            "display": format_discount(shipping["type"], shipping["amount"]),
        },
    }


def effective_product(product, override=None):
    """Resolved settings of one allocation product under an optional tier override."""
    ov = override
    base_price = resolve(product.price, product.override_price)
    price = resolve(base_price, getattr(ov, "override_price", None))
    return {
        "productId": product.product_id,
        "name": product.name,
        "basePrice": to_float(base_price),
        "price": to_float(price),
        "minPurchase": resolve(product.min_purchase, getattr(ov, "min_purchase", None)),
        "maxPurchase": resolve(product.max_purchase, getattr(ov, "max_purchase", None)),
        "allowWishRequests": resolve_flag(
            product.allow_wish_requests, getattr(ov, "allow_wish_requests", None)
        ),
        "wishRequestMin": resolve(product.wish_request_min, getattr(ov, "wish_request_min", None)),
        "wishRequestMax": resolve(product.wish_request_max, getattr(ov, "wish_request_max", None)),
        "overridden": ov is not None,
    }


def format_discount(dtype, amount):
    if not amount:
        return "None"
    if dtype == "percentage":
        return f"{float(amount):g}%"
    return format_money(amount)
