# sidebyside/models/auth.py
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sidebyside.core.clock import utcnow, as_utc
from sidebyside.database import Base


class Session(Base):
    """Refresh-token session; deleted on logout and on rotation"""
    __tablename__ = "sessions"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    refresh_token_hash = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")

    def is_expired(self) -> bool:
        return utcnow() > as_utc(self.expires_at)

    def __repr__(self):
        return f"<Session {self.id}>"


class MagicToken(Base):
    """One-time email login token (hash only)"""
    __tablename__ = "magic_tokens"

    token_hash = Column(String, primary_key=True)
    user_email = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)

    def is_usable(self) -> bool:
        return self.used_at is None and utcnow() <= as_utc(self.expires_at)


class FigmaAuthCode(Base):
    """Short-lived code the Figma plugin trades for a session"""
    __tablename__ = "figma_auth_codes"

    code_hash = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User")

    def is_usable(self) -> bool:
        return self.used_at is None and utcnow() <= as_utc(self.expires_at)
