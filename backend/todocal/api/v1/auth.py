from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status
from sqlmodel import select

from todocal.core.errors import DuplicateError
from todocal.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
    verify_token,
)
from todocal.db import SessionDep
from todocal.models import User
from todocal.schemas import (
    RefreshTokenRequest,
    TokenPair,
    UserCreate,
    UserLogin,
    UserRead,
)
from todocal.services.profiles import ensure_profile, get_profile_by_username

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
def register_user(payload: UserCreate, session: SessionDep) -> User:
    email = payload.email.lower()
    existing = session.exec(select(User).where(User.email == email)).one_or_none()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is already registered",
        )
    if payload.username and get_profile_by_username(session, payload.username):
        raise DuplicateError("Username is already taken")

    user = User(
        email=email,
        hashed_password=get_password_hash(payload.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    ensure_profile(session, user, payload.username)
    session.refresh(user)
    logger.info("User registered id=%s", user.id)
    return user


@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login and obtain tokens",
)
def login(payload: UserLogin, session: SessionDep) -> TokenPair:
    email = payload.email.lower()
    user = session.exec(select(User).where(User.email == email)).one_or_none()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect email or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive",
        )

    return TokenPair(
        access_token=create_access_token(user.id),
        refresh_token=create_refresh_token(user.id),
    )


@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
)
def refresh_tokens(payload: RefreshTokenRequest) -> TokenPair:
    try:
        refresh_payload = verify_token(payload.refresh_token, token_type="refresh")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token",
        ) from None

    user_id = refresh_payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token payload",
        )

    return TokenPair(
        access_token=create_access_token(user_id),
        refresh_token=create_refresh_token(user_id),
    )
