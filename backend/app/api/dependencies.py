from typing import Optional, Tuple

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from jose import JWTError, jwt

from ..database import get_db
from ..models import AdminRole, AdminUser, User
from .. import crud
from app.core.config import settings

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def _user_from_token(db: Session, token: Optional[str]) -> Optional[User]:
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    email = payload.get("sub")
    if not email:
        return None
    return crud.user.get_user_by_email(db, email)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db), request: Request = None) -> User:
    jwt_token = token or (request.cookies.get("access_token") if request else None)
    user = _user_from_token(db, jwt_token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Optional[User]:
    """Resolve the caller when a valid token is sent; anonymous otherwise."""
    return _user_from_token(db, token)


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account {current_user.status.value}",
        )
    return current_user


def get_current_organizer(current_user: User = Depends(get_current_active_user)) -> User:
    if not current_user.is_organizer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not an organizer.",
        )
    return current_user


def get_current_admin_user(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> Tuple[User, AdminUser]:
    admin = db.query(AdminUser).filter(AdminUser.user_id == current_user.id).first()
    if not admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user, admin


def require_roles(*roles: AdminRole):
    """Admin dependency limited to ``roles``; super admins always pass."""

    def _dep(current=Depends(get_current_admin_user)):
        user, admin = current
        if admin.role == AdminRole.SUPER_ADMIN or admin.role in roles:
            return current
        raise HTTPException(status_code=403, detail="Insufficient role")

    return _dep
