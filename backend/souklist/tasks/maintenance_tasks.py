from __future__ import annotations

import json
import time

from celery import shared_task
from flask import current_app

from souklist.services.add_on_service import run_expiry_sweep
from souklist.services.quota_service import reset_expired_quota_windows
from souklist.utils.clock import utcnow


def _task_log(task_name: str, *, status: str, started_at: float, **extra):
    duration_ms = int(max(0.0, (time.perf_counter() - float(started_at))) * 1000.0)
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": duration_ms,
        "timestamp": utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload))


def _retry_countdown(retries: int) -> int:
    # Exponential backoff with cap.
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))


@shared_task(bind=True, name="souklist.tasks.maintenance_tasks.run_featured_sweep", max_retries=3)
def run_featured_sweep(self):
    """Clear lapsed featured flags, expired add-ons and stale bumps."""
    started = time.perf_counter()
    try:
        result = run_expiry_sweep(now=utcnow())
    except Exception as exc:
        if int(self.request.retries or 0) < int(self.max_retries or 0):
            countdown = _retry_countdown(int(self.request.retries or 0))
            _task_log("run_featured_sweep", status="retrying", started_at=started, detail=str(exc), countdown=countdown)
            raise self.retry(exc=exc, countdown=countdown)
        _task_log("run_featured_sweep", status="failed", started_at=started, detail=str(exc))
        raise
    _task_log("run_featured_sweep", status="ok", started_at=started, **result)
    return {"ok": True, **result}


@shared_task(bind=True, name="souklist.tasks.maintenance_tasks.run_monthly_reset", max_retries=3)
def run_monthly_reset(self):
    started = time.perf_counter()
    now = utcnow()
    try:
        reset = reset_expired_quota_windows(now=now)
    except Exception as exc:
        if int(self.request.retries or 0) < int(self.max_retries or 0):
            countdown = _retry_countdown(int(self.request.retries or 0))
            _task_log("run_monthly_reset", status="retrying", started_at=started, detail=str(exc), countdown=countdown)
            raise self.retry(exc=exc, countdown=countdown)
        _task_log("run_monthly_reset", status="failed", started_at=started, detail=str(exc))
        raise
    _task_log("run_monthly_reset", status="ok", started_at=started, users_reset=reset)
    return {"ok": True, "users_reset": reset, "timestamp": now.isoformat()}
