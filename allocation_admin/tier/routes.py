# allocation_admin/tier/routes.py
from io import BytesIO

import pandas as pd
from flask import send_file
from flask_jwt_extended import jwt_required

from . import bp
from ..services import product_override_service as overrides_svc
from ..services import tier_service as svc
from ..services.override_resolver import effective_config
from ..utils.api import ok
from ..utils.decorators import role_at_least
from ..utils.parsing import json_object

EXPORT_COLUMNS = ["customer_id", "source_type", "source_id", "created_at"]


@bp.get("/tiers/<int:tier_id>")
@jwt_required()
def get_tier(tier_id):
    tier = svc.get_tier(tier_id)
    data = tier.as_api()
    data["effective"] = effective_config(tier.allocation, tier.override)
    return ok("tier", data)


@bp.put("/tiers/<int:tier_id>")
@role_at_least("manager")
def update_tier(tier_id):
    tier = svc.update_tier(tier_id, json_object())
    return ok("Tier updated", tier.as_api())


@bp.delete("/tiers/<int:tier_id>")
@role_at_least("manager")
def delete_tier(tier_id):
    svc.delete_tier(tier_id)
    return ok("Tier deleted", {"id": tier_id})


# ---------- product overrides ----------
@bp.get("/tiers/<int:tier_id>/product-overrides")
@jwt_required()
def list_product_overrides(tier_id):
    rows = overrides_svc.list_overrides(tier_id)
    return ok("product overrides", {pid: row.as_api() for pid, row in rows.items()})


@bp.put("/tiers/<int:tier_id>/product-overrides")
@role_at_least("manager")
def save_product_overrides(tier_id):
    body = json_object()
    rows = overrides_svc.save_overrides(tier_id, body.get("productOverrides", body))
    return ok("Product overrides saved", {pid: row.as_api() for pid, row in rows.items()})


@bp.put("/tiers/<int:tier_id>/product-overrides/<product_id>")
@role_at_least("manager")
def set_product_override(tier_id, product_id):
    row = overrides_svc.set_override(tier_id, product_id, json_object())
    return ok("Product override saved", row.as_api())


@bp.get("/tiers/<int:tier_id>/effective-products")
@jwt_required()
def effective_products(tier_id):
    return ok("effective products", overrides_svc.effective_products(tier_id))


# ---------- customers ----------
@bp.get("/tiers/<int:tier_id>/customers")
@jwt_required()
def list_customers(tier_id):
    svc.get_tier(tier_id)
    return ok("customers", [row.as_api() for row in svc.list_assignments(tier_id)])


@bp.get("/tiers/<int:tier_id>/customers/export")
@role_at_least("manager")
def export_customers(tier_id):
    tier = svc.get_tier(tier_id)
    rows = [row.as_api() for row in svc.list_assignments(tier_id)]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    output = BytesIO()
    df.to_excel(output, index=False, sheet_name="customers")
    output.seek(0)

    return send_file(
        output,
        as_attachment=True,
        download_name=f"tier_{tier.id}_customers.xlsx",
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
