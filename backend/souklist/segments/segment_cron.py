import hmac

from flask import Blueprint, jsonify, request

from souklist.services.add_on_service import expiry_status, run_expiry_sweep
from souklist.services.quota_service import quota_window_status, reset_expired_quota_windows
from souklist.utils.auth import UnauthorizedError, current_user
from souklist.utils.clock import utcnow
from souklist.utils.jwt_utils import get_bearer_token
from souklist.utils.settings import get_setting

cron_bp = Blueprint("cron_bp", __name__, url_prefix="/api/cron")


def _require_cron_caller():
    """Scheduler token, or a signed-in admin running the sweep by hand."""
    secret = str(get_setting("CRON_SECRET_TOKEN") or "")
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if secret and token and hmac.compare_digest(token, secret):
        return
    user = current_user()
    if user is not None and user.is_admin:
        return
    raise UnauthorizedError("Cron token required")


@cron_bp.get("/expire-featured")
def expire_featured_status():
    _require_cron_caller()
    return jsonify({"ok": True, "status": expiry_status(now=utcnow())}), 200


@cron_bp.post("/expire-featured")
def expire_featured_run():
    _require_cron_caller()
    return jsonify({"ok": True, "result": run_expiry_sweep(now=utcnow())}), 200


@cron_bp.get("/monthly-reset")
def monthly_reset_status():
    _require_cron_caller()
    return jsonify({"ok": True, "status": quota_window_status(now=utcnow())}), 200


@cron_bp.post("/monthly-reset")
def monthly_reset_run():
    _require_cron_caller()
    now = utcnow()
    reset = reset_expired_quota_windows(now=now)
    return jsonify({"ok": True, "result": {"users_reset": reset, "timestamp": now.isoformat()}}), 200
