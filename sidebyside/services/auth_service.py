# sidebyside/services/auth_service.py
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import quote

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from sidebyside.config import settings, ANONYMOUS_USER_ID, ANONYMOUS_USER_EMAIL
from sidebyside.core import security
from sidebyside.core.clock import utcnow
from sidebyside.core.logger import logger
from sidebyside.models.auth import Session, MagicToken, FigmaAuthCode
from sidebyside.models.user import User

INVALID_TOKEN = "Invalid or expired token"


@dataclass
class IssuedTokens:
    """Result of a successful login"""
    access_token: str
    refresh_token: str
    user: User


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def get_or_create_user(db: DBSession, email: str) -> User:
    email = _normalize_email(email)
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user

    user = User(email=email)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Created by a concurrent request
        db.rollback()
        return db.query(User).filter(User.email == email).one()

    db.refresh(user)
    logger.info(f"New user {user.id} ({email})")
    return user


def get_or_create_anonymous_user(db: DBSession) -> User:
    user = db.get(User, ANONYMOUS_USER_ID)
    if user:
        return user

    user = User(id=ANONYMOUS_USER_ID, email=ANONYMOUS_USER_EMAIL)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return db.get(User, ANONYMOUS_USER_ID)

    db.refresh(user)
    logger.info("Anonymous user created")
    return user


# ===== Sessions =====

def create_session(db: DBSession, user: User) -> IssuedTokens:
    """New refresh-token session plus a fresh access token"""
    session_id = security.generate_id()
    refresh_token = security.create_refresh_token(session_id, user.id)

    db.add(Session(
        id=session_id,
        user_id=user.id,
        refresh_token_hash=security.hash_token(refresh_token),
        expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
    ))
    db.commit()

    return IssuedTokens(
        access_token=security.create_access_token(user.id, user.email),
        refresh_token=refresh_token,
        user=user,
    )


def _session_for_refresh_token(db: DBSession, refresh_token: str) -> Optional[Session]:
    payload = security.decode_refresh_token(refresh_token)
    if not payload:
        return None

    session = db.get(Session, payload.get("sessionId"))
    if not session or session.user_id != payload.get("userId"):
        return None
    if session.is_expired():
        return None
    if not security.verify_token(refresh_token, session.refresh_token_hash):
        return None
    return session


def rotate_session(db: DBSession, refresh_token: str) -> IssuedTokens:
    """Trade a refresh token for a new session; the old one is deleted"""
    session = _session_for_refresh_token(db, refresh_token) if refresh_token else None
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    user = session.user
    db.delete(session)
    db.commit()

    return create_session(db, user)


def delete_session(db: DBSession, refresh_token: str) -> bool:
    session = _session_for_refresh_token(db, refresh_token)
    if session is None:
        return False
    db.delete(session)
    db.commit()
    return True


# ===== Magic links =====

def build_magic_link(token: str, return_to: str) -> str:
    return f"{settings.client_url}/#/auth/callback?token={token}&returnTo={quote(return_to, safe='')}"


def create_magic_token(db: DBSession, email: str) -> tuple[str, MagicToken]:
    """Store the hash, hand back the raw token for the email"""
    token = security.generate_magic_token()
    magic_token = MagicToken(
        token_hash=security.hash_token(token),
        user_email=_normalize_email(email),
        expires_at=utcnow() + timedelta(hours=settings.magic_token_expire_hours),
    )
    db.add(magic_token)
    db.commit()
    return token, magic_token


def verify_magic_token(db: DBSession, token: str) -> User:
    """Consume a magic token and return its user"""
    magic_token = db.get(MagicToken, security.hash_token(token))
    if magic_token is None or not magic_token.is_usable():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=INVALID_TOKEN
        )

    magic_token.used_at = utcnow()
    db.commit()

    return get_or_create_user(db, magic_token.user_email)


# ===== Figma plugin codes =====

def create_figma_code(db: DBSession, user: User) -> tuple[str, FigmaAuthCode]:
    code = security.generate_figma_code()
    figma_code = FigmaAuthCode(
        code_hash=security.hash_token(code),
        user_id=user.id,
        expires_at=utcnow() + timedelta(minutes=settings.figma_code_expire_minutes),
    )
    db.add(figma_code)
    db.commit()
    return code, figma_code


def verify_figma_code(db: DBSession, code: str) -> User:
    figma_code = db.get(FigmaAuthCode, security.hash_token(code.strip().upper()))
    if figma_code is None or not figma_code.is_usable():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired code"
        )

    figma_code.used_at = utcnow()
    db.commit()
    return figma_code.user


# ===== Cleanup =====

def cleanup_expired_auth_data(db: DBSession) -> dict:
    """Delete expired sessions, magic tokens and Figma codes"""
    now = utcnow()

    deleted_sessions = db.query(Session)\
        .filter(Session.expires_at < now)\
        .delete(synchronize_session=False)
    deleted_magic_tokens = db.query(MagicToken)\
        .filter(MagicToken.expires_at < now)\
        .delete(synchronize_session=False)
    deleted_figma_codes = db.query(FigmaAuthCode)\
        .filter(FigmaAuthCode.expires_at < now)\
        .delete(synchronize_session=False)
    db.commit()

    logger.info(
        f"Auth cleanup: {deleted_sessions} sessions, "
        f"{deleted_magic_tokens} magic tokens, {deleted_figma_codes} figma codes"
    )
    return {
        "deleted_sessions": deleted_sessions,
        "deleted_magic_tokens": deleted_magic_tokens,
        "deleted_figma_codes": deleted_figma_codes,
    }

def cleanup_old_user_sessions(db: DBSession, keep: int) -> int:
    """Trim every user down to their `keep` newest sessions"""
    user_ids = [row[0] for row in db.query(Session.user_id).distinct().all()]

    deleted = 0
    for user_id in user_ids:
        stale_ids = [
            row[0] for row in db.query(Session.id)
            .filter(Session.user_id == user_id)
            .order_by(Session.expires_at.desc())
            .offset(keep)
            .all()
        ]
        if stale_ids:
            deleted += db.query(Session)\
                .filter(Session.id.in_(stale_ids))\
                .delete(synchronize_session=False)
    db.commit()

    if deleted:
        logger.info(f"Trimmed {deleted} old user sessions")
    return deleted
