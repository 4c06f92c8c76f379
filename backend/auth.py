"""
Session resolution. Sign-in is handled by an external provider that writes
sessions; here we only turn a token into a User (or None) per request.
"""
import logging
from typing import Optional

from fastapi import Request

from errors import UnauthorizedError
from models import User

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {"/", "/health", "/docs", "/openapi.json"}


def _session_token(request: Request) -> Optional[str]:
    settings = request.app.state.settings
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def resolve_session(request: Request) -> Optional[User]:
    """Attach the session's user (or None) to request.state.user."""
    database = request.app.state.database
    settings = request.app.state.settings

    user = None
    token = _session_token(request)
    if token:
        user = database.get_session_user(token)
        if user is None:
            logger.debug("Rejected unknown or expired session token")
    request.state.user = user

    if settings.require_auth and user is None and request.url.path not in PUBLIC_PATHS:
        raise UnauthorizedError()
    return user


def current_user(request: Request) -> Optional[User]:
    return getattr(request.state, "user", None)
