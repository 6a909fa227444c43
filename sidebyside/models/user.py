# sidebyside/models/user.py
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from sidebyside.database import Base
import uuid

class User(Base):
    """User account (magic-link or the synthetic anonymous user)"""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User {self.email}>"
