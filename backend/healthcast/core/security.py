# healthcast/core/security.py
from __future__ import annotations

import datetime as dt

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from healthcast.config import get_settings
from healthcast.db.session import get_db
from healthcast.models.user import User

settings = get_settings()
pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer = HTTPBearer()


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def hash_password(plain: str) -> str:
    return pwd_ctx.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_ctx.verify(plain, hashed)


def _encode(sub: str, lifetime: dt.timedelta, typ: str) -> str:
    now = _utc_now()
    payload = {
        "sub": sub,
        "typ": typ,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def create_access(sub: str) -> str:
    return _encode(sub, dt.timedelta(minutes=settings.JWT_ACCESS_MIN), "access")


def create_refresh(sub: str) -> str:
    return _encode(sub, dt.timedelta(days=settings.JWT_REFRESH_DAYS), "refresh")


def decode_token(token: str, expected_typ: str) -> str:
    """Return the token subject, or raise ValueError if the token is unusable."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError as e:
        raise ValueError(str(e)) from e
    if payload.get("typ") != expected_typ:
        raise ValueError(f"Not an {expected_typ} token")
    sub = payload.get("sub")
    if not sub:
        raise ValueError("Missing subject")
    return sub


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency that validates an access token and returns the active caller."""
    try:
        email = decode_token(creds.credentials, "access")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user = db.query(User).filter(User.email == email, User.is_active.is_(True)).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user
