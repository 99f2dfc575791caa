from flask import Blueprint, jsonify, request

from souklist.services.feed_service import FeedQuery, browse_listings
from souklist.services.gating_service import evaluate_listing_creation
from souklist.services.listing_lifecycle_service import (
    ACTOR_ADMIN,
    ACTOR_OWNER,
    archive_listing,
    delete_listing,
    get_listing,
    reactivate_listing,
    status_history,
)
from souklist.services.listing_service import create_listing, view_listing
from souklist.utils.auth import current_user, require_user
from souklist.utils.clock import utcnow
from souklist.utils.errors import ForbiddenError

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/listings")


def _can_see_private(user, listing) -> bool:
    return user is not None and (user.is_admin or int(user.id) == int(listing.user_id))


@listings_bp.get("")
def list_listings():
    now = utcnow()
    viewer = current_user()
    query = FeedQuery.from_args(request.args)
    page = browse_listings(query, viewer=viewer, now=now)
    return jsonify({
        "ok": True,
        "listings": [row.to_dict(now=now, include_private=_can_see_private(viewer, row)) for row in page["listings"]],
        "pagination": page["pagination"],
    }), 200


@listings_bp.post("")
def create():
    user = require_user()
    payload = request.get_json(silent=True) or {}
    now = utcnow()
    listing = create_listing(int(user.id), payload, now=now)
    return jsonify({"ok": True, "listing": listing.to_dict(now=now, include_private=True)}), 201


@listings_bp.post("/check")
def check_creation():
    """Preview the gate for a submission without creating anything."""
    user = require_user()
    payload = request.get_json(silent=True) or {}
    decision = evaluate_listing_creation(
        int(user.id), payload.get("category_id"), payload.get("pricing_plan_id") or None
    )
    return jsonify({"ok": True, "decision": decision.to_dict()}), 200


@listings_bp.get("/<int:listing_id>")
def detail(listing_id: int):
    now = utcnow()
    viewer = current_user()
    listing = view_listing(listing_id, viewer=viewer, now=now)
    return jsonify({
        "ok": True,
        "listing": listing.to_dict(now=now, include_private=_can_see_private(viewer, listing)),
    }), 200


@listings_bp.get("/<int:listing_id>/history")
def history(listing_id: int):
    user = require_user()
    listing = get_listing(listing_id)
    if not _can_see_private(user, listing):
        raise ForbiddenError("You can only view the history of your own listings")
    return jsonify({"ok": True, "items": [row.to_dict() for row in status_history(listing_id)]}), 200


@listings_bp.post("/<int:listing_id>/archive")
def archive(listing_id: int):
    user = require_user()
    now = utcnow()
    listing = archive_listing(listing_id, actor_id=int(user.id), now=now)
    return jsonify({"ok": True, "listing": listing.to_dict(now=now, include_private=True)}), 200


@listings_bp.post("/<int:listing_id>/reactivate")
def reactivate(listing_id: int):
    user = require_user()
    now = utcnow()
    listing = reactivate_listing(listing_id, actor_id=int(user.id), now=now)
    return jsonify({"ok": True, "listing": listing.to_dict(now=now, include_private=True)}), 200


@listings_bp.delete("/<int:listing_id>")
def remove(listing_id: int):
    user = require_user()
    now = utcnow()
    listing = get_listing(listing_id)
    # Admins deleting someone else's listing go through moderation rules.
    role = ACTOR_OWNER if int(listing.user_id) == int(user.id) else ACTOR_ADMIN
    if role == ACTOR_ADMIN and not user.is_admin:
        raise ForbiddenError("You can only manage your own listings")
    result = delete_listing(listing_id, role, actor_id=int(user.id), now=now)
    archived = result.get("listing")
    return jsonify({
        "ok": True,
        "deleted": result["deleted"],
        "archived": result["archived"],
        "listing": archived.to_dict(now=now, include_private=True) if archived is not None else None,
    }), 200
