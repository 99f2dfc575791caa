from __future__ import annotations


class MarketplaceError(Exception):
    """Base for per-operation failures surfaced to API callers."""

    code = "marketplace_error"
    status_code = 400

    def __init__(self, message: str = "", *, details: dict | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = dict(details or {})

    def to_dict(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "status": int(self.status_code),
        }
        payload.update(self.details)
        return payload


class ValidationError(MarketplaceError):
    code = "validation_error"
    status_code = 400


class NotFoundError(MarketplaceError):
    code = "not_found"
    status_code = 404


class ForbiddenError(MarketplaceError):
    code = "forbidden"
    status_code = 403


class ConflictError(MarketplaceError):
    """Safe to retry after refetching state."""

    code = "conflict"
    status_code = 409


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from {current} to {target}",
            details={"from_status": current, "to_status": target},
        )
        self.entity = entity
        self.current = current
        self.target = target


class GatingRejected(MarketplaceError):
    """Expected business denial; never retried automatically."""

    code = "gating_rejected"
    status_code = 402

    REQUIRES_PAYMENT = "requiresPayment"
    QUOTA_EXCEEDED = "quotaExceeded"

    def __init__(self, decision):
        details = decision.to_dict()
        super().__init__(decision.message or "Listing creation not allowed", details=details)
        self.decision = decision
        self.reason = decision.reason
