import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from livequiz.core.config import Settings, get_settings
from livequiz.core.errors import NotAuthenticated

PARTICIPANT_AUDIENCE = "participant"
ADMIN_AUDIENCE = "admin"


class TokenData(BaseModel):
    sub: str
    roles: List[str]


bearer = HTTPBearer(auto_error=False)


def _settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def create_token(settings: Settings, subject: str, audience: str, ttl: timedelta, roles: Optional[List[str]] = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "aud": audience,
        "roles": roles or [],
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)


def decode_token(settings: Settings, token: str, audience: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY.get_secret_value(),
            algorithms=[settings.ALGORITHM],
            audience=audience,
        )
    except jwt.PyJWTError:
        return None


# ---------- participant session cookie ----------

def create_session_token(settings: Settings, session_id: str) -> str:
    return create_token(
        settings, session_id, PARTICIPANT_AUDIENCE, timedelta(days=settings.SESSION_COOKIE_TTL_DAYS)
    )


def read_session_id(request: Request) -> Optional[str]:
    """Session id carried by the cookie, or None when absent, forged or expired."""
    settings = _settings(request)
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None
    payload = decode_token(settings, token, PARTICIPANT_AUDIENCE)
    return payload.get("sub") if payload else None


def require_session_id(request: Request) -> str:
    session_id = read_session_id(request)
    if session_id is None:
        raise NotAuthenticated()
    return session_id


# ---------- admin bearer tokens ----------

def check_admin_password(settings: Settings, password: str) -> bool:
    expected = settings.ADMIN_PASSWORD.get_secret_value() if settings.ADMIN_PASSWORD else ""
    return secrets.compare_digest(password.encode("utf-8"), expected.encode("utf-8"))


def create_admin_token(settings: Settings) -> str:
    return create_token(
        settings,
        "admin",
        ADMIN_AUDIENCE,
        timedelta(minutes=settings.ADMIN_TOKEN_EXPIRE_MINUTES),
        roles=["admin"],
    )


def get_current_user(request: Request, creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> TokenData:
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(_settings(request), creds.credentials, ADMIN_AUDIENCE)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return TokenData(sub=payload["sub"], roles=payload.get("roles", []))


def require_roles(*required: str):
    def checker(user: TokenData = Depends(get_current_user)):
        roles = set(user.roles)
        if not roles.intersection(set(required)):
            raise HTTPException(status_code=403, detail="Insufficient role")
        return user
    return checker
