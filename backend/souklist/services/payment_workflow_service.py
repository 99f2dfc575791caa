from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import IntegrityError

from souklist.extensions import db
from souklist.models import ListingAddOn, Payment, PaymentTransition
from souklist.services.add_on_service import activate_payment_add_ons, revoke_payment_add_ons
from souklist.utils.clock import resolve_now
from souklist.utils.errors import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from souklist.utils.events import log_event


class PaymentStatus:
    PENDING = "PENDING"
    APPROVED_AWAITING_PAYMENT = "APPROVED_AWAITING_PAYMENT"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

    ALL = (PENDING, APPROVED_AWAITING_PAYMENT, PAYMENT_RECEIVED, COMPLETED, CANCELLED, FAILED, REFUNDED)
    VOID = {CANCELLED, FAILED, REFUNDED}

    # Same-state moves are always allowed and only touch notes/reference.
    ALLOWED = {
        PENDING: {APPROVED_AWAITING_PAYMENT, PAYMENT_RECEIVED, CANCELLED, FAILED},
        APPROVED_AWAITING_PAYMENT: {PAYMENT_RECEIVED, CANCELLED, FAILED},
        PAYMENT_RECEIVED: {COMPLETED, REFUNDED, FAILED},
        COMPLETED: {REFUNDED},
        CANCELLED: set(),
        FAILED: set(),
        REFUNDED: set(),
    }


def _normalize_status(value) -> str:
    status = str(value or "").strip().upper()
    if status not in PaymentStatus.ALL:
        raise ValidationError("Invalid payment status", details={"status": value})
    return status


def get_payment(payment_id) -> Payment:
    try:
        pid = int(payment_id)
    except (TypeError, ValueError):
        raise NotFoundError("Payment not found", details={"payment_id": payment_id})
    row = db.session.get(Payment, pid)
    if row is None:
        raise NotFoundError("Payment not found", details={"payment_id": pid})
    return row


def get_user_payment(payment_id, user_id) -> Payment:
    payment = get_payment(payment_id)
    if user_id is None or int(payment.user_id) != int(user_id):
        raise ForbiddenError("You can only view your own payments")
    return payment


def allowed_next(status: str) -> list[str]:
    return sorted(PaymentStatus.ALLOWED.get(status, set()))


def _milestones(payment: Payment, target: str, admin_user_id, now: datetime) -> dict:
    """First-entry timestamps; never cleared or overwritten."""
    values = {}
    if target == PaymentStatus.APPROVED_AWAITING_PAYMENT and payment.approved_at is None:
        values["approved_at"] = now
        values["approved_by"] = int(admin_user_id) if admin_user_id is not None else None
    if target == PaymentStatus.PAYMENT_RECEIVED and payment.paid_at is None:
        values["paid_at"] = now
    if target == PaymentStatus.COMPLETED and payment.completed_at is None:
        values["completed_at"] = now
    return values


def transition_payment_status(
    payment_id,
    new_status,
    admin_notes: str | None = None,
    *,
    admin_user_id=None,
    reference: str | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> Payment:
    current_time = resolve_now(now)
    target = _normalize_status(new_status)
    payment = get_payment(payment_id)
    pid = int(payment.id)

    key = (idempotency_key or "").strip()[:160] or None
    if key:
        existing = PaymentTransition.query.filter_by(payment_id=pid, idempotency_key=key).first()
        if existing is not None:
            if existing.to_status != target:
                raise ConflictError(
                    "Idempotency key already used for a different transition",
                    details={"payment_id": pid, "idempotency_key": key, "to_status": existing.to_status},
                )
            return payment

    current = payment.status
    if target != current and target not in PaymentStatus.ALLOWED.get(current, set()):
        raise InvalidTransitionError("payment", current, target)

    values = {"status": target, "updated_at": current_time}
    notes = (admin_notes or "").strip()
    if notes:
        values["admin_notes"] = notes[:4000]
    ref = (reference or "").strip()
    if ref:
        values["reference"] = ref[:120]
    if target != current:
        values.update(_milestones(payment, target, admin_user_id, current_time))

    try:
        result = db.session.execute(
            sa.update(Payment)
            .where(Payment.id == pid)
            .where(Payment.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if int(result.rowcount or 0) != 1:
            db.session.rollback()
            raise ConflictError(
                "Payment status changed concurrently; refetch and retry",
                details={"payment_id": pid},
            )
        payment = db.session.get(Payment, pid, populate_existing=True)

        applied = revoked = 0
        if target != current:
            if target == PaymentStatus.COMPLETED:
                applied = activate_payment_add_ons(payment, now=current_time)
            elif target in PaymentStatus.VOID:
                revoked = revoke_payment_add_ons(payment, now=current_time)

        db.session.add(
            PaymentTransition(
                payment_id=pid,
                from_status=current,
                to_status=target,
                actor_id=int(admin_user_id) if admin_user_id is not None else None,
                idempotency_key=key,
                admin_notes=notes or None,
                created_at=current_time,
            )
        )
        log_event(
            "payment_status_changed",
            actor_user_id=admin_user_id,
            subject_type="payment",
            subject_id=pid,
            metadata={
                "from": current,
                "to": target,
                "effects_applied": applied,
                "add_ons_revoked": revoked,
                "reference": ref,
            },
        )
        db.session.commit()
    except IntegrityError:
        # Lost a race on the same idempotency key; the other request won.
        db.session.rollback()
        winner = PaymentTransition.query.filter_by(payment_id=pid, idempotency_key=key).first() if key else None
        if winner is not None and winner.to_status == target:
            return get_payment(pid)
        if winner is not None:
            raise ConflictError("Idempotency key already used for a different transition", details={"payment_id": pid})
        raise
    except ConflictError:
        raise
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "payment_status_changed payment_id=%s from=%s to=%s applied=%s revoked=%s",
        pid,
        current,
        target,
        applied,
        revoked,
    )
    return db.session.get(Payment, pid, populate_existing=True)


def payment_history(payment_id) -> list[PaymentTransition]:
    return (
        PaymentTransition.query.filter_by(payment_id=int(payment_id))
        .order_by(PaymentTransition.created_at.asc(), PaymentTransition.id.asc())
        .all()
    )


def list_user_payments(user_id) -> list[Payment]:
    return (
        Payment.query.filter_by(user_id=int(user_id))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def list_admin_payments(status: str | None = None, *, limit: int = 200) -> list[Payment]:
    q = Payment.query
    if status:
        q = q.filter(Payment.status == _normalize_status(status))
    return q.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(max(1, min(int(limit), 500))).all()


def delete_payment(payment_id, *, admin_user_id=None, now: datetime | None = None) -> dict:
    """Remove an unsettled payment together with its unpaid add-ons.

    Completed payments are part of the money trail and must be refunded
    instead.
    """
    current_time = resolve_now(now)
    payment = get_payment(payment_id)
    pid = int(payment.id)
    if payment.status == PaymentStatus.COMPLETED:
        raise ConflictError(
            "Completed payments cannot be deleted; refund them instead",
            details={"payment_id": pid, "payment_status": payment.status},
        )

    previous = payment.status
    try:
        revoked = revoke_payment_add_ons(payment, now=current_time)
        removed = db.session.execute(
            sa.delete(ListingAddOn)
            .where(ListingAddOn.payment_id == pid)
            .execution_options(synchronize_session="fetch")
        ).rowcount or 0
        db.session.execute(sa.delete(PaymentTransition).where(PaymentTransition.payment_id == pid))
        db.session.execute(sa.delete(Payment).where(Payment.id == pid))
        log_event(
            "payment_deleted",
            actor_user_id=admin_user_id,
            subject_type="payment",
            subject_id=pid,
            metadata={"status": previous, "add_ons_revoked": revoked, "add_ons_removed": int(removed)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("payment_deleted payment_id=%s status=%s add_ons=%s", pid, previous, int(removed))
    return {"deleted": True, "payment_id": pid, "add_ons_removed": int(removed)}
