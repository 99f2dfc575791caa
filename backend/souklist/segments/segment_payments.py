from flask import Blueprint, jsonify, request

from souklist.services.payment_workflow_service import (
    allowed_next,
    delete_payment,
    get_payment,
    get_user_payment,
    list_admin_payments,
    list_user_payments,
    payment_history,
    transition_payment_status,
)
from souklist.utils.auth import require_admin, require_user
from souklist.utils.clock import utcnow
from souklist.utils.errors import ValidationError

payments_bp = Blueprint("payments_bp", __name__, url_prefix="/api/payments")
admin_payments_bp = Blueprint("admin_payments_bp", __name__, url_prefix="/api/admin/payments")


@payments_bp.get("")
def my_payments():
    user = require_user()
    rows = list_user_payments(int(user.id))
    return jsonify({"ok": True, "items": [row.to_dict() for row in rows]}), 200


@payments_bp.get("/<int:payment_id>")
def my_payment(payment_id: int):
    user = require_user()
    payment = get_user_payment(payment_id, int(user.id))
    return jsonify({"ok": True, "payment": payment.to_dict()}), 200


@admin_payments_bp.get("")
def admin_list():
    require_admin()
    status = (request.args.get("status") or "").strip() or None
    rows = list_admin_payments(status)
    return jsonify({"ok": True, "items": [row.to_dict() for row in rows]}), 200


@admin_payments_bp.get("/<int:payment_id>")
def admin_detail(payment_id: int):
    require_admin()
    payment = get_payment(payment_id)
    return jsonify({
        "ok": True,
        "payment": payment.to_dict(),
        "allowed_next": allowed_next(payment.status),
        "history": [row.to_dict() for row in payment_history(payment_id)],
    }), 200


@admin_payments_bp.patch("/<int:payment_id>")
def admin_update(payment_id: int):
    admin = require_admin()
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        raise ValidationError("status required", details={"field": "status"})
    key = (request.headers.get("Idempotency-Key") or payload.get("idempotency_key") or "").strip() or None
    payment = transition_payment_status(
        payment_id,
        status,
        payload.get("admin_notes"),
        admin_user_id=int(admin.id),
        reference=payload.get("reference"),
        idempotency_key=key,
        now=utcnow(),
    )
    return jsonify({"ok": True, "payment": payment.to_dict(), "allowed_next": allowed_next(payment.status)}), 200


@admin_payments_bp.delete("/<int:payment_id>")
def admin_delete(payment_id: int):
    admin = require_admin()
    result = delete_payment(payment_id, admin_user_id=int(admin.id), now=utcnow())
    out = {"ok": True}
    out.update(result)
    return jsonify(out), 200
