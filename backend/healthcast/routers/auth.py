# healthcast/routers/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from healthcast.core.security import create_access, create_refresh, decode_token, verify_password
from healthcast.db.session import get_db
from healthcast.models.user import User
from healthcast.schemas.auth import LoginIn, RefreshIn, TokenPair

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=TokenPair)
def login(body: LoginIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email).first()
    if not user or not user.is_active or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return TokenPair(
        access_token=create_access(user.email),
        refresh_token=create_refresh(user.email),
    )


@router.post("/refresh", response_model=TokenPair)
def refresh(body: RefreshIn):
    # Public endpoint; the refresh token in the body is the credential.
    try:
        email = decode_token(body.refresh_token, "refresh")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    return TokenPair(
        access_token=create_access(email),
        refresh_token=create_refresh(email),
    )
