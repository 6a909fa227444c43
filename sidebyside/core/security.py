# sidebyside/core/security.py
import hashlib
import hmac
import secrets
from datetime import timedelta

from jose import JWTError, jwt

from sidebyside.config import settings
from sidebyside.core.clock import utcnow

FIGMA_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_magic_token() -> str:
    return secrets.token_hex(32)


def generate_figma_code() -> str:
    """FGM-XXXXXX"""
    return "FGM-" + "".join(secrets.choice(FIGMA_CODE_ALPHABET) for _ in range(6))


def generate_id() -> str:
    return secrets.token_hex(16)


def hash_token(token: str) -> str:
    """Deterministic digest so tokens can be looked up by hash"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token(token: str, token_hash: str) -> bool:
    return hmac.compare_digest(hash_token(token), token_hash)


def _encode(payload: dict, expires_delta: timedelta) -> str:
    to_encode = payload.copy()
    to_encode["exp"] = utcnow() + expires_delta
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(user_id: str, email: str) -> str:
    return _encode(
        {"userId": user_id, "email": email, "type": "access"},
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(session_id: str, user_id: str) -> str:
    return _encode(
        {"sessionId": session_id, "userId": user_id, "type": "refresh"},
        timedelta(days=settings.refresh_token_expire_days),
    )


def _decode(token: str, expected_type: str) -> dict | None:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != expected_type:
        return None
    return payload


def decode_access_token(token: str) -> dict | None:
    """Payload of a valid access token, else None"""
    return _decode(token, "access")


def decode_refresh_token(token: str) -> dict | None:
    return _decode(token, "refresh")
