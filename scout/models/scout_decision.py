"""
Gate decision audit trail - one row per verdict per item per gate.
"""
from sqlalchemy import Column, Text, Integer, Float, DateTime, JSON, Boolean

from scout.database import Base


class ScoutDecision(Base):
    __tablename__ = 'scout_decisions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, nullable=False, index=True)
    scout_id = Column(Text, nullable=False)
    stage = Column(Text, nullable=False)
    item_key = Column(Text, nullable=False)
    item_title = Column(Text, nullable=True)
    verdict = Column(Text, nullable=False)
    score = Column(Float, nullable=False)
    rationale = Column(Text, nullable=True)
    sentiment = Column(Text, nullable=True)
    fallback = Column(Boolean, default=False)
    item_data = Column(JSON, nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=False)
