# backend/app/api/auth.py

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import jwt
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional
import logging

import redis

from ..database import get_db
from .. import crud
from ..models import NotificationType, User
from ..schemas.user import UserCreate, UserResponse
from ..utils.auth import verify_password, normalize_email
from ..utils.notifications import notify, render
from ..utils.redis_cache import get_redis_client
from .dependencies import get_current_user
from app.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return crud.user.get_user_by_email(db, email)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    email = normalize_email(user_data.email)
    if get_user_by_email(db, email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="That email already has an account. Sign in instead.",
        )

    db_user = crud.user.create_user(db, user_data)
    logger.info("Registered user id=%s organizer=%s artist=%s provider=%s",
                db_user.id, db_user.is_organizer, db_user.is_artist, db_user.is_provider)
    notify(
        db,
        db_user,
        NotificationType.WELCOME,
        render("welcome", db_user.first_name or "there"),
        "/dashboard",
    )
    return db_user


@router.post("/login")
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    ip = request.client.host if request.client else "unknown"
    email = normalize_email(form_data.username)
    user_key = f"login_fail:user:{email}"
    ip_key = f"login_fail:ip:{ip}"
    client = get_redis_client()
    try:
        user_attempts = int(client.get(user_key) or 0)
        ip_attempts = int(client.get(ip_key) or 0)
        if user_attempts >= settings.MAX_LOGIN_ATTEMPTS or ip_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            logger.info("Login locked out for %s from %s", email, ip)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many login attempts. Try again later.",
            )
    except redis.exceptions.ConnectionError as exc:
        logger.warning("Redis unavailable for login tracking: %s", exc)

    user = get_user_by_email(db, email)
    if not user or not verify_password(form_data.password, user.password):
        try:
            client.incr(user_key)
            client.expire(user_key, settings.LOGIN_ATTEMPT_WINDOW)
            client.incr(ip_key)
            client.expire(ip_key, settings.LOGIN_ATTEMPT_WINDOW)
        except redis.exceptions.ConnectionError as exc:
            logger.warning("Could not update login attempt counters: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account {user.status.value}",
        )

    try:
        client.delete(user_key)
        client.delete(ip_key)
    except redis.exceptions.ConnectionError as exc:
        logger.warning("Could not reset login counters: %s", exc)

    access_token = create_access_token(
        data={"sub": user.email},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": UserResponse.model_validate(user).model_dump(mode="json"),
    }


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    """Return details for the authenticated user."""
    return current_user
