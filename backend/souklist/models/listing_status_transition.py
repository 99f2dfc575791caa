from souklist.extensions import db
from souklist.utils.clock import utcnow


class ListingStatusTransition(db.Model):
    __tablename__ = "listing_status_transitions"

    id = db.Column(db.Integer, primary_key=True)
    # Not a foreign key: history outlives a hard-deleted listing.
    listing_id = db.Column(db.Integer, nullable=False, index=True)
    from_status = db.Column(db.String(16), nullable=False, default="")
    to_status = db.Column(db.String(16), nullable=False)
    actor_role = db.Column(db.String(16), nullable=False, default="system")
    actor_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "listing_id": int(self.listing_id),
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_role": self.actor_role or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "reason": self.reason or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
