# sidebyside/api/deps.py
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from sidebyside.config import settings
from sidebyside.database import get_db
from sidebyside.models.user import User
from sidebyside.core.security import decode_access_token
from sidebyside.services import auth_service

# Missing credentials are handled below so the answer is 401, not 403
security = HTTPBearer(auto_error=False)


def _user_from_token(token: Optional[HTTPAuthorizationCredentials], db: Session) -> Optional[User]:
    if token is None:
        return None

    payload = decode_access_token(token.credentials)
    if payload is None:
        return None

    user_id = payload.get("userId")
    if user_id is None:
        return None

    return db.get(User, user_id)


def get_optional_user(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Current user if the request carries a valid token"""
    if settings.is_anonymous_mode:
        return auth_service.get_or_create_anonymous_user(db)
    return _user_from_token(token, db)


def get_current_user(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Current user from the access token, 401 otherwise"""
    if settings.is_anonymous_mode:
        return auth_service.get_or_create_anonymous_user(db)

    user = _user_from_token(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
