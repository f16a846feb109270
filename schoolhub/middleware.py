import logging
from collections.abc import Callable
from typing import Any

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from .config import Settings
from .database import get_db_session
from .models import User
from .permissions import has_permission
from .security import AuthError, read_session_token
from .session import SessionState


logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_state(request: Request) -> SessionState:
    return request.app.state.session_state


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _parse_token(auth_header: str | None) -> str | None:
    if not auth_header:
        return None
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def _find_user(db: Session, user_id: str | None) -> User | None:
    if not user_id:
        return None
    return db.query(User).filter(User.id == user_id).first()


def _demo_user(db: Session, settings: Settings) -> User | None:
    return _find_user(db, settings.demo_user_id) or db.query(User).order_by(User.seq).first()


def read_bearer_claims(request: Request, authorization: str | None) -> dict[str, Any] | None:
    """Verified claims of the bearer token, or None when it is missing, invalid or revoked."""
    token = _parse_token(authorization)
    if not token:
        return None
    try:
        claims = read_session_token(get_settings(request), token)
    except AuthError as exc:
        logger.debug(f"Ignoring unusable bearer token: {exc}")
        return None
    if get_session_state(request).is_revoked(claims["jti"]):
        logger.debug(f"Ignoring revoked token for {claims['sub']}")
        return None
    return claims


def get_signed_in_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
) -> User | None:
    """Resolve the caller from a bearer token or the session user. Never falls back to the demo user."""
    claims = read_bearer_claims(request, authorization)
    if claims:
        user = _find_user(db, claims["sub"])
        if user:
            return user
    return _find_user(db, get_session_state(request).user_id)


def get_current_user(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db_session),
    signed_in: User | None = Depends(get_signed_in_user),
) -> User | None:
    """Resolve the caller: bearer token, then session user, then the demo default."""
    if signed_in:
        return signed_in
    settings = get_settings(request)
    if settings.demo_mode and (authorization or request.url.path.startswith("/api")):
        return _demo_user(db, settings)
    return None


def _authenticated(current_user: User | None) -> User:
    if current_user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return current_user


def _authorized(current_user: User, permission: str) -> User:
    if not has_permission(current_user, permission):
        logger.warning(f"Permission denied: {current_user.id} lacks {permission}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {permission}")
    return current_user


def require_user(current_user: User | None = Depends(get_current_user)) -> User:
    return _authenticated(current_user)


def require_signed_in_user(current_user: User | None = Depends(get_signed_in_user)) -> User:
    return _authenticated(current_user)


def require_permission(permission: str, *, signed_in: bool = False) -> Callable:
    """Permission gate; with ``signed_in`` the demo default user is not accepted."""
    if signed_in:
        def dependency(current_user: User = Depends(require_signed_in_user)) -> User:
            return _authorized(current_user, permission)
    else:
        def dependency(current_user: User = Depends(require_user)) -> User:
            return _authorized(current_user, permission)

    return dependency
