# sidebyside/models/vote.py
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sidebyside.database import Base

class Vote(Base):
    """A single ballot for one option"""
    __tablename__ = "votes"
    # NULL user_id (anonymous mode) never collides
    __table_args__ = (
        UniqueConstraint("voting_id", "user_id", name="uq_votes_voting_user"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    voting_id = Column(String, ForeignKey("votings.id", ondelete="CASCADE"), nullable=False, index=True)
    option_id = Column(Integer, ForeignKey("voting_options.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    voting = relationship("Voting", back_populates="votes")
    option = relationship("VotingOption")
    user = relationship("User", backref="votes")

    def __repr__(self):
        return f"<Vote {self.id} for Voting {self.voting_id}>"
