"""
Scout missions - the persistent `scouts` row and the frozen view the funnel reads.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from sqlalchemy import Column, Text, Integer, Float, DateTime, JSON
from sqlalchemy.sql import func

from scout.config import FREQUENCIES
from scout.database import Base


class Scout(Base):
    __tablename__ = 'scouts'

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    instructions = Column(Text, nullable=False, default='')
    keywords = Column(JSON, default=list)
    platform = Column(Text, nullable=False, default='itchio')
    platform_config = Column(JSON, nullable=True)
    organization_id = Column(Text, nullable=True)
    max_results = Column(Integer, default=50)
    quality_threshold = Column(Float, default=0.7)
    frequency = Column(Text, default='daily')
    total_runs = Column(Integer, default=0)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


def _freeze(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ScoutMission:
    """Read-only mission configuration for one run."""
    id: str
    name: str
    instructions: str
    keywords: Tuple[str, ...] = ()
    platform: str = 'itchio'
    max_results: int = 50
    quality_threshold: float = 0.7
    frequency: str = 'daily'
    organization_id: Optional[str] = None
    platform_config: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        if not 0.0 <= self.quality_threshold <= 1.0:
            raise ValueError(f"quality_threshold must be within [0, 1], got {self.quality_threshold}")
        if self.max_results < 0:
            raise ValueError(f"max_results must be non-negative, got {self.max_results}")
        if self.frequency not in FREQUENCIES:
            raise ValueError(f"frequency must be one of {FREQUENCIES}, got '{self.frequency}'")
        # Accept lists/dicts from callers but store immutable copies
        object.__setattr__(self, 'keywords', tuple(self.keywords or ()))
        object.__setattr__(self, 'platform_config', _freeze(self.platform_config))

    @classmethod
    def from_row(cls, row: Scout) -> 'ScoutMission':
        return cls(
            id=row.id,
            name=row.name,
            instructions=row.instructions or '',
            keywords=tuple(row.keywords or ()),
            platform=row.platform or 'itchio',
            max_results=row.max_results if row.max_results is not None else 50,
            quality_threshold=row.quality_threshold if row.quality_threshold is not None else 0.7,
            frequency=row.frequency or 'daily',
            organization_id=row.organization_id,
            platform_config=row.platform_config or {},
        )
