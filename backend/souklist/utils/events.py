from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from flask import current_app, has_app_context

from souklist.extensions import db
from souklist.models import AuditEvent
from souklist.utils.observability import get_request_id


def _safe_value(value: Any):
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    return str(value)


def _safe_json(data: dict) -> str:
    try:
        return json.dumps(_safe_value(data), separators=(",", ":"), ensure_ascii=False)
    except Exception:
        return "{}"


def log_event(
    event_type: str,
    *,
    actor_user_id: int | None = None,
    subject_type: str | None = None,
    subject_id: int | str | None = None,
    metadata: dict | None = None,
) -> AuditEvent | None:
    """Record a domain audit event inside the caller's transaction.

    Runs in a savepoint so a failed insert never poisons the business
    operation that triggered it; the caller's commit persists the row.
    """
    try:
        event = AuditEvent(
            event_type=(event_type or "unknown").strip()[:80],
            actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
            subject_type=(subject_type or "").strip()[:40] or None,
            subject_id=str(subject_id)[:64] if subject_id is not None else None,
            request_id=(get_request_id() or "")[:80] or None,
            metadata_json=_safe_json(metadata or {}),
        )
        with db.session.begin_nested():
            db.session.add(event)
            db.session.flush()
        return event
    except Exception:
        if has_app_context():
            current_app.logger.exception("audit_event_failed event_type=%s", event_type)
        return None
