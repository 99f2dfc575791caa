from flask import Blueprint, jsonify, request

from souklist.services.feed_service import FeedQuery, browse_listings
from souklist.services.listing_lifecycle_service import (
    ACTOR_ADMIN,
    delete_listing,
    moderation_counts,
    transition_listing_status,
)
from souklist.utils.auth import require_admin
from souklist.utils.clock import utcnow
from souklist.utils.errors import ValidationError

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/admin")


@admin_bp.get("/stats")
def stats():
    require_admin()
    return jsonify({"ok": True, "stats": moderation_counts()}), 200


@admin_bp.get("/listings")
def moderation_queue():
    admin = require_admin()
    now = utcnow()
    page = browse_listings(FeedQuery.from_args(request.args), viewer=admin, now=now)
    return jsonify({
        "ok": True,
        "listings": [row.to_dict(now=now, include_private=True) for row in page["listings"]],
        "pagination": page["pagination"],
    }), 200


@admin_bp.patch("/listings/<int:listing_id>")
def moderate(listing_id: int):
    admin = require_admin()
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        raise ValidationError("status required", details={"field": "status"})
    now = utcnow()
    listing = transition_listing_status(
        listing_id,
        status,
        ACTOR_ADMIN,
        payload.get("reason"),
        actor_id=int(admin.id),
        now=now,
    )
    return jsonify({
        "ok": True,
        "listing": listing.to_dict(now=now, include_private=True),
        "stats": moderation_counts(),
    }), 200


@admin_bp.delete("/listings/<int:listing_id>")
def remove(listing_id: int):
    admin = require_admin()
    result = delete_listing(listing_id, ACTOR_ADMIN, actor_id=int(admin.id), now=utcnow())
    return jsonify({"ok": True, "deleted": result["deleted"], "stats": moderation_counts()}), 200
