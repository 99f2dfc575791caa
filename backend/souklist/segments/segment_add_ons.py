from flask import Blueprint, jsonify, request

from souklist.services.add_on_service import available_add_ons, list_listing_add_ons, purchase_add_on
from souklist.utils.auth import require_user
from souklist.utils.clock import utcnow
from souklist.utils.settings import addon_effects_policy, get_setting

add_ons_bp = Blueprint("add_ons_bp", __name__, url_prefix="/api")


@add_ons_bp.get("/add-ons")
def catalog():
    return jsonify({
        "ok": True,
        "currency": get_setting("ADDON_CURRENCY") or "USD",
        "effects_policy": addon_effects_policy(),
        "items": available_add_ons(),
    }), 200


@add_ons_bp.get("/listings/<int:listing_id>/add-ons")
def listing_add_ons(listing_id: int):
    user = require_user()
    rows = list_listing_add_ons(listing_id, int(user.id))
    return jsonify({"ok": True, "items": [row.to_dict() for row in rows]}), 200


@add_ons_bp.post("/listings/<int:listing_id>/add-ons")
def purchase(listing_id: int):
    user = require_user()
    payload = request.get_json(silent=True) or {}
    purchase_result = purchase_add_on(
        listing_id,
        payload.get("add_on_type") or payload.get("type"),
        payload.get("quantity", 1),
        int(user.id),
        now=utcnow(),
    )
    out = {"ok": True}
    out.update(purchase_result.to_dict())
    return jsonify(out), 201
