from __future__ import annotations

from flask import g, request

from souklist.extensions import db
from souklist.models import User
from souklist.utils.errors import ForbiddenError, MarketplaceError
from souklist.utils.jwt_utils import decode_token, get_bearer_token


class UnauthorizedError(MarketplaceError):
    code = "unauthorized"
    status_code = 401


def current_user() -> User | None:
    """Resolve the acting user from the bearer token, or None."""
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    user = getattr(g, "auth_user", None)
    if user is None or getattr(g, "auth_token", None) != token:
        payload = decode_token(token)
        if not payload:
            return None
        try:
            uid = int(payload.get("sub"))
        except (TypeError, ValueError):
            return None
        user = db.session.get(User, uid)
        if user is None:
            return None
        g.auth_token = token
        g.auth_user = user
    g.auth_user_id = int(user.id)
    g.auth_role = user.role
    return user


def require_user() -> User:
    user = current_user()
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


def require_admin() -> User:
    user = require_user()
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user
