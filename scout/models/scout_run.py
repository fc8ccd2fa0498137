"""
Postgres-backed scout run record - mirrors the in-memory RunContext.
"""
from sqlalchemy import Column, Text, Integer, DateTime, JSON
from sqlalchemy.sql import func

from scout.database import Base


class DbScoutRun(Base):
    __tablename__ = 'scout_runs'

    id = Column(Text, primary_key=True)
    scout_id = Column(Text, nullable=False, index=True)
    platform = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default='initializing')
    results_found = Column(Integer, default=0)
    results_processed = Column(Integer, default=0)
    results_investigated = Column(Integer, default=0)
    results_enriched = Column(Integer, default=0)
    results_approved = Column(Integer, default=0)
    results_stored = Column(Integer, default=0)
    error_count = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)
    stage_timings = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
