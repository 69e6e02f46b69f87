"""
Per-scope counters for human-readable reference codes
"""

from sqlalchemy import Column, Integer, String

from app.core.db import Base

class ReferenceSequence(Base):
    __tablename__ = "reference_sequences"

    scope = Column(String(100), primary_key=True)
    last_value = Column(Integer, default=0, nullable=False)
