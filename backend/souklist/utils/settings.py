from __future__ import annotations

import os

from flask import current_app, has_app_context


EFFECTS_ON_PURCHASE = "on_purchase"
EFFECTS_ON_PAYMENT_COMPLETED = "on_payment_completed"
EFFECT_POLICIES = (EFFECTS_ON_PURCHASE, EFFECTS_ON_PAYMENT_COMPLETED)

DEFAULTS: dict[str, object] = {
    "FREE_LISTINGS_INDIVIDUAL": 3,
    "FREE_LISTINGS_BUSINESS": 10,
    "ADDON_EFFECTS_POLICY": EFFECTS_ON_PURCHASE,
    "AUTO_APPROVE_PAID_LISTINGS": False,
    "DEFAULT_LISTING_DURATION_DAYS": 30,
    "ADDON_CURRENCY": "USD",
    "BUMP_RETENTION_DAYS": 7,
    "CRON_SECRET_TOKEN": "",
}


def coerce_bool(value, default: bool = False) -> bool:
    if value is None:
        return bool(default)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value) == 1
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "on")
    return bool(default)


def env_int(name: str, default: int, *, minimum: int = 0, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(value, maximum))


def load_marketplace_config(app) -> None:
    """Copy marketplace rule settings from the environment into app.config."""
    app.config["FREE_LISTINGS_INDIVIDUAL"] = env_int("FREE_LISTINGS_INDIVIDUAL", 3)
    app.config["FREE_LISTINGS_BUSINESS"] = env_int("FREE_LISTINGS_BUSINESS", 10)
    app.config["DEFAULT_LISTING_DURATION_DAYS"] = env_int("DEFAULT_LISTING_DURATION_DAYS", 30, minimum=1, maximum=3650)
    app.config["BUMP_RETENTION_DAYS"] = env_int("BUMP_RETENTION_DAYS", 7, minimum=1, maximum=365)
    app.config["AUTO_APPROVE_PAID_LISTINGS"] = coerce_bool(os.getenv("AUTO_APPROVE_PAID_LISTINGS"), False)
    app.config["ADDON_CURRENCY"] = (os.getenv("ADDON_CURRENCY") or "USD").strip().upper()[:8] or "USD"
    app.config["CRON_SECRET_TOKEN"] = (os.getenv("CRON_SECRET_TOKEN") or "").strip()

    policy = (os.getenv("ADDON_EFFECTS_POLICY") or EFFECTS_ON_PURCHASE).strip().lower()
    if policy not in EFFECT_POLICIES:
        app.logger.warning("addon_effects_policy_invalid value=%s fallback=%s", policy, EFFECTS_ON_PURCHASE)
        policy = EFFECTS_ON_PURCHASE
    app.config["ADDON_EFFECTS_POLICY"] = policy


def get_setting(key: str):
    if has_app_context() and key in current_app.config:
        return current_app.config[key]
    return DEFAULTS.get(key)


def get_int(key: str) -> int:
    try:
        return int(get_setting(key))
    except (TypeError, ValueError):
        return int(DEFAULTS[key])


def get_bool(key: str) -> bool:
    return coerce_bool(get_setting(key), bool(DEFAULTS.get(key)))


def addon_effects_policy() -> str:
    policy = str(get_setting("ADDON_EFFECTS_POLICY") or EFFECTS_ON_PURCHASE).strip().lower()
    return policy if policy in EFFECT_POLICIES else EFFECTS_ON_PURCHASE
