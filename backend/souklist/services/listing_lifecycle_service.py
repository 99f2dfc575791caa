from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from flask import current_app

from souklist.extensions import db
from souklist.models import Listing, ListingStatusTransition, User
from souklist.utils.clock import resolve_now
from souklist.utils.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from souklist.utils.events import log_event


class ListingStatus:
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    FLAGGED = "FLAGGED"

    ALL = (PENDING, ACTIVE, ARCHIVED, FLAGGED)

    # Admins moderate; FLAGGED is reachable from anywhere.
    ADMIN_ALLOWED = {
        PENDING: {ACTIVE, ARCHIVED, FLAGGED},
        ACTIVE: {ARCHIVED, FLAGGED},
        ARCHIVED: {ACTIVE, FLAGGED},
        FLAGGED: {ACTIVE, ARCHIVED},
    }
    # Owners can hide a listing, and bring it back only through moderation.
    OWNER_ALLOWED = {
        PENDING: {ARCHIVED},
        ACTIVE: {ARCHIVED},
        FLAGGED: {ARCHIVED},
        ARCHIVED: {PENDING},
    }


DELETED = "DELETED"
ACTOR_ADMIN = "admin"
ACTOR_OWNER = "owner"


def _normalize_status(value) -> str:
    status = str(value or "").strip().upper()
    if status not in ListingStatus.ALL:
        raise ValidationError("Invalid listing status", details={"status": value})
    return status


def _normalize_role(value) -> str:
    role = str(value or "").strip().lower()
    if role not in (ACTOR_ADMIN, ACTOR_OWNER):
        raise ValidationError("Invalid actor role", details={"actor_role": value})
    return role


def get_listing(listing_id) -> Listing:
    try:
        lid = int(listing_id)
    except (TypeError, ValueError):
        raise NotFoundError("Listing not found", details={"listing_id": listing_id})
    row = db.session.get(Listing, lid)
    if row is None:
        raise NotFoundError("Listing not found", details={"listing_id": lid})
    return row


def _check_owner(listing: Listing, role: str, actor_id) -> None:
    if role != ACTOR_OWNER:
        return
    if actor_id is None or int(actor_id) != int(listing.user_id):
        raise ForbiddenError("You can only manage your own listings")


def _record_transition(
    listing_id: int,
    current: str,
    target: str,
    *,
    role: str,
    actor_id,
    reason: str | None,
    now: datetime,
) -> None:
    db.session.add(
        ListingStatusTransition(
            listing_id=int(listing_id),
            from_status=current,
            to_status=target,
            actor_role=role,
            actor_id=int(actor_id) if actor_id is not None else None,
            reason=(reason or "")[:500] or None,
            created_at=now,
        )
    )
    log_event(
        "listing_status_changed",
        actor_user_id=actor_id,
        subject_type="listing",
        subject_id=listing_id,
        metadata={"from": current, "to": target, "role": role, "reason": reason or ""},
    )


def transition_listing_status(
    listing_id,
    new_status,
    actor_role,
    reason: str | None = None,
    *,
    actor_id=None,
    now: datetime | None = None,
) -> Listing:
    current_time = resolve_now(now)
    target = _normalize_status(new_status)
    role = _normalize_role(actor_role)
    listing = get_listing(listing_id)
    _check_owner(listing, role, actor_id)

    current = listing.status
    reason_text = (reason or "").strip() or None
    if current == target:
        if reason_text and target in (ListingStatus.FLAGGED, ListingStatus.ARCHIVED):
            listing.moderation_reason = reason_text[:500]
            _record_transition(
                listing.id, current, target, role=role, actor_id=actor_id, reason=reason_text, now=current_time
            )
            db.session.commit()
        return listing

    table = ListingStatus.ADMIN_ALLOWED if role == ACTOR_ADMIN else ListingStatus.OWNER_ALLOWED
    if target not in table.get(current, set()):
        raise InvalidTransitionError("listing", current, target)

    values = {"status": target, "updated_at": current_time}
    if target in (ListingStatus.FLAGGED, ListingStatus.ARCHIVED):
        values["moderation_reason"] = reason_text[:500] if reason_text else None
    else:
        values["moderation_reason"] = None

    # Compare-and-set on the status we validated against.
    result = db.session.execute(
        sa.update(Listing)
        .where(Listing.id == int(listing.id))
        .where(Listing.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount or 0) != 1:
        db.session.rollback()
        raise ConflictError(
            "Listing status changed concurrently; refetch and retry",
            details={"listing_id": int(listing.id)},
        )

    _record_transition(listing.id, current, target, role=role, actor_id=actor_id, reason=reason_text, now=current_time)
    db.session.commit()
    current_app.logger.info(
        "listing_status_changed listing_id=%s from=%s to=%s role=%s", int(listing.id), current, target, role
    )
    return db.session.get(Listing, int(listing.id), populate_existing=True)


def archive_listing(listing_id, *, actor_id, now: datetime | None = None) -> Listing:
    return transition_listing_status(listing_id, ListingStatus.ARCHIVED, ACTOR_OWNER, actor_id=actor_id, now=now)


def reactivate_listing(listing_id, *, actor_id, now: datetime | None = None) -> Listing:
    """Archived listings always go back through moderation."""
    return transition_listing_status(listing_id, ListingStatus.PENDING, ACTOR_OWNER, actor_id=actor_id, now=now)


def delete_listing(listing_id, actor_role, *, actor_id=None, now: datetime | None = None) -> dict:
    """Hard delete from a non-ACTIVE state.

    An owner deleting an ACTIVE listing gets it archived instead, which
    keeps its moderation history and analytics.
    """
    current_time = resolve_now(now)
    role = _normalize_role(actor_role)
    listing = get_listing(listing_id)
    _check_owner(listing, role, actor_id)

    if listing.status == ListingStatus.ACTIVE:
        if role == ACTOR_OWNER:
            archived = transition_listing_status(
                listing.id,
                ListingStatus.ARCHIVED,
                ACTOR_OWNER,
                "owner delete of active listing",
                actor_id=actor_id,
                now=current_time,
            )
            return {"deleted": False, "archived": True, "listing": archived}
        raise ConflictError(
            "Active listings cannot be deleted; archive it first",
            details={"listing_id": int(listing.id), "listing_status": listing.status},
        )

    lid = int(listing.id)
    previous = listing.status
    db.session.delete(listing)
    _record_transition(lid, previous, DELETED, role=role, actor_id=actor_id, reason=None, now=current_time)
    db.session.commit()
    current_app.logger.info("listing_deleted listing_id=%s from=%s role=%s", lid, previous, role)
    return {"deleted": True, "archived": False, "listing": None}


def moderation_counts() -> dict:
    """Dashboard counters, always recomputed from the rows themselves."""
    rows = db.session.execute(
        sa.select(Listing.status, sa.func.count(Listing.id)).group_by(Listing.status)
    ).all()
    by_status = {str(status): int(count) for status, count in rows}
    total_users = db.session.scalar(sa.select(sa.func.count(User.id))) or 0
    return {
        "total_users": int(total_users),
        "total_listings": int(sum(by_status.values())),
        "pending_listings": by_status.get(ListingStatus.PENDING, 0),
        "active_listings": by_status.get(ListingStatus.ACTIVE, 0),
        "archived_listings": by_status.get(ListingStatus.ARCHIVED, 0),
        "flagged_listings": by_status.get(ListingStatus.FLAGGED, 0),
    }


def status_history(listing_id) -> list[ListingStatusTransition]:
    return (
        ListingStatusTransition.query.filter_by(listing_id=int(listing_id))
        .order_by(ListingStatusTransition.created_at.asc(), ListingStatusTransition.id.asc())
        .all()
    )
