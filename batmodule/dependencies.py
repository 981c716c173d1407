import logging

from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError

from batmodule.errors import (
    AUTH_LOOKUP_FAILED,
    NOT_AUTHENTICATED,
    SESSION_REQUIRED,
    USER_GONE,
    APIError,
)
from batmodule.services.auth_service import AuthService
from batmodule.services.session_manager import Session

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


def get_auth_service(request: Request) -> AuthService:
    """Get AuthService from app state"""
    return request.app.state.auth_service


def get_session_manager(request: Request):
    """Get SessionManager from app state"""
    return request.app.state.session_manager


def get_session(request: Request) -> Session | None:
    """Session attached by SessionMiddleware, if installed."""
    return request.scope.get("session")


async def generate_csrf_token(request: Request) -> str | None:
    """Mint a CSRF token for the current session; never blocks the request."""
    session = get_session(request)
    if session is None or not getattr(session, "id", None):
        return None
    token = request.app.state.csrf.generate_token(session.id)
    request.state.csrf_token = token
    if not hasattr(request.state, "locals"):
        request.state.locals = {}
    request.state.locals["csrf_token"] = token
    return token


async def require_session(request: Request) -> Session:
    """Logged-in session or 401. userId must be truthy (0 is anonymous)."""
    session = get_session(request)
    if session is None or not session.get("userId"):
        raise APIError(*SESSION_REQUIRED)
    return session


def _request_user(user: dict) -> dict:
    return {
        "user_id": user["id"],
        "email": user["email"],
        "first_name": user["first_name"],
        "last_name": user["last_name"],
        "company_name": user["company_name"],
    }


async def authenticate_secure(
    request: Request, auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Session user, re-checked against the DB. Deleted users lose their session."""
    session = get_session(request)
    if session is None or not session.get("userId"):
        raise APIError(*NOT_AUTHENTICATED)

    try:
        user = await auth_service.get_user(session["userId"])
    except SQLAlchemyError as e:
        logger.error("User lookup failed during authentication: %s", e)
        raise APIError(*AUTH_LOOKUP_FAILED) from e
    if not user:
        session.destroy()
        raise APIError(*USER_GONE)

    request.state.user = _request_user(user)
    return request.state.user


async def optional_auth(
    request: Request, auth_service: AuthService = Depends(get_auth_service)
) -> dict | None:
    """Like authenticate_secure but never blocks."""
    session = get_session(request)
    if session is None or not session.get("userId"):
        return None
    try:
        user = await auth_service.get_user(session["userId"])
    except SQLAlchemyError as e:
        logger.warning("Optional auth lookup failed: %s", e)
        return None
    if not user:
        return None
    request.state.user = _request_user(user)
    return request.state.user
