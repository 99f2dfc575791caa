from flask import Blueprint, jsonify

from souklist.services.catalog_service import list_active_categories, list_active_plans
from souklist.services.gating_service import business_rules_summary
from souklist.utils.auth import require_user

catalog_bp = Blueprint("catalog_bp", __name__, url_prefix="/api")


@catalog_bp.get("/pricing-plans")
def pricing_plans():
    return jsonify({"ok": True, "items": [row.to_dict() for row in list_active_plans()]}), 200


@catalog_bp.get("/categories")
def categories():
    return jsonify({"ok": True, "items": [row.to_dict() for row in list_active_categories()]}), 200


@catalog_bp.get("/user/limits")
def user_limits():
    user = require_user()
    out = {"ok": True}
    out.update(business_rules_summary(int(user.id)))
    return jsonify(out), 200
