"""
Persisted scout result - one row per item approved by the storage gate.
"""
from sqlalchemy import Column, Text, Integer, Float, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from scout.database import Base


class ScoutResult(Base):
    __tablename__ = 'scout_results'

    id = Column(Integer, primary_key=True, autoincrement=True)
    scout_id = Column(Text, nullable=False, index=True)
    run_id = Column(Text, nullable=False, index=True)
    organization_id = Column(Text, nullable=True)
    platform = Column(Text, nullable=False)
    external_id = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    author = Column(Text, nullable=True)
    author_url = Column(Text, nullable=True)
    engagement_score = Column(Float, nullable=False, default=0.0)
    relevance_score = Column(Float, nullable=False)
    sentiment = Column(Text, nullable=True)
    sentiment_score = Column(Float, nullable=True)
    platform_data = Column(JSON, nullable=True)
    status = Column(Text, nullable=False, default='new')
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('scout_id', 'external_id', name='uq_scout_result_external_id'),
    )
