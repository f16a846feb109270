import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from .config import Settings


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_id: str
    expires_at: int


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_session_token(settings: Settings, *, user_id: str, roles: list[str]) -> IssuedToken:
    now = datetime.now(timezone.utc)
    expires_at = int((now + timedelta(minutes=settings.jwt_exp_minutes)).timestamp())
    payload: dict[str, Any] = {
        "sub": user_id,
        "roles": list(roles),
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return IssuedToken(token=token, token_id=payload["jti"], expires_at=expires_at)


def read_session_token(settings: Settings, token: str) -> dict[str, Any]:
    """Return the verified claims of a session token (``sub``, ``jti``, ``exp``)."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc
    if not payload.get("sub") or not payload.get("jti"):
        raise AuthError("Invalid token payload")
    return payload
