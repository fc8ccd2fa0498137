"""
In-memory funnel records - listings, enriched items and gate decisions.

None of these are persisted directly; the persistence writer maps approved
EnrichedItems onto ScoutResult rows and GateDecisions onto ScoutDecision rows.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ADVANCE = 'advance'
REJECT = 'reject'
VERDICTS = (ADVANCE, REJECT)

INVESTIGATION = 'investigation'
STORAGE = 'storage'
GATE_STAGES = (INVESTIGATION, STORAGE)

SENTIMENTS = ('positive', 'negative', 'neutral', 'mixed')


def clamp_score(value: Any) -> float:
    """Coerce a score to a float within [0, 1]. Non-numeric values become 0.0."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return max(0.0, min(1.0, score))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CandidateListing:
    """Cheap listing scraped from a browse page."""
    title: str
    url: str = ''
    developer: str = ''
    price: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    source: str = ''
    keyword_hits: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.url or self.title

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'url': self.url,
            'developer': self.developer,
            'price': self.price,
            'genre': self.genre,
            'description': self.description,
        }


@dataclass
class CommunityComment:
    author: str = ''
    content: str = ''
    date: Optional[str] = None
    is_author_reply: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'author': self.author,
            'content': self.content,
            'date': self.date,
            'is_author_reply': self.is_author_reply,
        }


@dataclass
class EnrichedItem:
    """A listing plus its full detail page and community feedback."""
    url: str
    title: str
    platform: str = ''
    developer: str = ''
    price: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    full_description: str = ''
    tags: List[str] = field(default_factory=list)
    platforms: List[str] = field(default_factory=list)
    rating: Optional[str] = None
    screenshots: List[str] = field(default_factory=list)
    release_date: Optional[str] = None
    file_size: Optional[str] = None
    download_count: Optional[str] = None
    comment_count: int = 0
    comments: List[CommunityComment] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.url or self.title

    @property
    def has_author_reply(self) -> bool:
        return any(c.is_author_reply for c in self.comments)

    @property
    def comment_total(self) -> int:
        """Comments on the page: the reported count, or what was extracted if higher."""
        return max(self.comment_count, len(self.comments))

    def to_dict(self) -> Dict[str, Any]:
        """Compact view sent to the scoring service."""
        return {
            'url': self.url,
            'title': self.title,
            'developer': self.developer,
            'price': self.price,
            'genre': self.genre,
            'description': (self.full_description or self.description or '')[:1500],
            'tags': self.tags,
            'platforms': self.platforms,
            'rating': self.rating,
            'screenshot_count': len(self.screenshots),
            'comment_count': self.comment_total,
            'comments': [c.to_dict() for c in self.comments],
        }


@dataclass
class GateDecision:
    """One verdict from one gate for one item. Append-only once recorded."""
    stage: str
    item_key: str
    verdict: str
    score: float
    rationale: str = ''
    sentiment: Optional[str] = None
    fallback: bool = False
    item_title: str = ''
    decided_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if self.stage not in GATE_STAGES:
            raise ValueError(f"Unknown gate stage '{self.stage}'")
        if self.verdict not in VERDICTS:
            raise ValueError(f"Unknown verdict '{self.verdict}'")
        if self.sentiment is not None and self.sentiment not in SENTIMENTS:
            raise ValueError(f"Unknown sentiment '{self.sentiment}'")
        self.score = clamp_score(self.score)

    @property
    def advanced(self) -> bool:
        return self.verdict == ADVANCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stage': self.stage,
            'item_key': self.item_key,
            'item_title': self.item_title,
            'verdict': self.verdict,
            'score': self.score,
            'rationale': self.rationale,
            'sentiment': self.sentiment,
            'fallback': self.fallback,
            'decided_at': self.decided_at.isoformat(),
        }
