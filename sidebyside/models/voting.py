# sidebyside/models/voting.py
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sidebyside.core.clock import utcnow, as_utc
from sidebyside.database import Base
import uuid
import enum

class MediaType(str, enum.Enum):
    """Option media kind"""
    IMAGE = "image"
    VIDEO = "video"

class Voting(Base):
    """Timed comparison poll"""
    __tablename__ = "votings"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    end_at = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_hours = Column(Float, nullable=False, default=24)

    is_public = Column(Boolean, nullable=False, default=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    complete_notified = Column(Boolean, nullable=False, default=False)

    owner = relationship("User", backref="votings")
    options = relationship(
        "VotingOption",
        back_populates="voting",
        cascade="all, delete-orphan",
        order_by="VotingOption.sort_order",
    )
    votes = relationship("Vote", back_populates="voting", cascade="all, delete-orphan")

    def is_finished(self, now=None) -> bool:
        """Active until end_at; finished from end_at on (terminal)"""
        now = now or utcnow()
        return as_utc(self.end_at) <= now

    def __repr__(self):
        return f"<Voting {self.id} '{self.title}'>"

class VotingOption(Base):
    """One media item of a voting; immutable once created"""
    __tablename__ = "voting_options"

    id = Column(Integer, primary_key=True, autoincrement=True)
    voting_id = Column(String, ForeignKey("votings.id", ondelete="CASCADE"), nullable=False, index=True)

    file_path = Column(String, nullable=False)  # storage key
    sort_order = Column(Integer, nullable=False)
    pixel_ratio = Column(Float, nullable=False, default=1)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    media_type = Column(SQLEnum(MediaType), nullable=False, default=MediaType.IMAGE)

    voting = relationship("Voting", back_populates="options")

    def __repr__(self):
        return f"<VotingOption {self.id} #{self.sort_order} of {self.voting_id}>"
