"""
User model
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from app.core.db import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)  # stored lower-cased
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(50))
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def full_name(self):
        return " ".join(part for part in (self.first_name, self.last_name) if part) or None
