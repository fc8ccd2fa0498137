"""
Pipeline Stage 4: STORAGE - final keep/drop decision on enriched items.

One scoring call for the batch. The mission's quality threshold is enforced
here regardless of the service's own flag. When the service gives no sentiment
the lexical classifier below reads the comments instead; when it gives no
verdict at all, the composite fallback score decides.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from scout.models.items import ADVANCE, REJECT, STORAGE, GateDecision
from scout.pipeline.base import match_verdicts
from scout.pipeline.funnel_config import load_funnel_config

logger = logging.getLogger('pipeline.storage')


# ── Lexical sentiment ─────────────────────────────────────────────────────────

def classify_sentiment(comments: List[Any], lexicon: Dict[str, Any] = None) -> str:
    """
    positive / negative / mixed / neutral from keyword hits in comment text.

    Hits are counted per word (a word counts if it contains a lexicon term)
    and normalized by the total word count.
    """
    lexicon = lexicon or load_funnel_config()['sentiment']
    words = ' '.join(c.content for c in comments if c.content).lower().split()
    if not words:
        return 'neutral'

    pos_hits = sum(1 for w in words if any(term in w for term in lexicon['positive']))
    neg_hits = sum(1 for w in words if any(term in w for term in lexicon['negative']))
    pos_ratio = pos_hits / len(words)
    neg_ratio = neg_hits / len(words)
    dominance = lexicon['dominance_ratio']

    if pos_ratio > neg_ratio * dominance:
        return 'positive'
    if neg_ratio > pos_ratio * dominance:
        return 'negative'
    if pos_ratio > 0 and neg_ratio > 0:
        return 'mixed'
    return 'neutral'


# ── Fallback composite ───────────────────────────────────────────────────────

_NUMBER = re.compile(r'(\d+(?:\.\d+)?)')


def parse_rating(rating: Optional[str]) -> Optional[float]:
    """Rating on a 0-5 scale from text like '4.5', '4.2/5' or '92%'."""
    if not rating:
        return None
    match = _NUMBER.search(str(rating))
    if not match:
        return None
    value = float(match.group(1))
    if '%' in str(rating):
        return value / 20.0
    return value if value <= 5.0 else None


def is_recent(date_text: Optional[str], markers: List[str]) -> bool:
    """
    True for relative dates like '3 hours ago', 'a day ago', 'today' or
    'yesterday'. A marker only counts as the unit of an "N <unit>(s) ago"
    phrase, so absolute dates such as 'Sunday, Mar 3 2019' are not recent.
    """
    lowered = (date_text or '').lower()
    if re.search(r'\b(?:just now|today|yesterday)\b', lowered):
        return True
    units = '|'.join(re.escape(m) for m in markers)
    if not units:
        return False
    return re.search(rf'\b(?:\d+|an?|one)\s+(?:{units})s?\s+ago\b', lowered) is not None


def fallback_storage_score(item, config: Dict[str, Any] = None) -> float:
    cfg = config or load_funnel_config()['storage']
    weights = cfg['fallback']
    score = weights['base']
    if item.comment_total > 0:
        score += weights['has_comments']
    if item.has_author_reply:
        score += weights['has_author_reply']
    rating = parse_rating(item.rating)
    if rating is not None and rating >= cfg['high_rating_min']:
        score += weights['high_rating']
    if any(is_recent(c.date, cfg['recent_markers']) for c in item.comments):
        score += weights['recent_activity']
    return round(min(score, 1.0), 4)


# ── Gate ──────────────────────────────────────────────────────────────────────

class StorageGate:

    def __init__(self, scoring, config: Dict[str, Any] = None):
        self.scoring = scoring
        config = config or load_funnel_config()
        self.config = config['storage']
        self.lexicon = config['sentiment']
        self.used_fallback = False

    @staticmethod
    def _enforce_threshold(score: float, advance: bool, rationale: str, threshold: float):
        if score < threshold:
            note = f"[rejected: score {score:.2f} below threshold {threshold:.2f}]"
            return False, f"{rationale} {note}".strip()
        return advance, rationale

    def fallback_decision(self, item, threshold: float) -> GateDecision:
        score = fallback_storage_score(item, self.config)
        rationale = (
            f"Fallback composite: comments={item.comment_total}, "
            f"author_reply={'yes' if item.has_author_reply else 'no'}, rating={item.rating or 'n/a'}"
        )
        advance, rationale = self._enforce_threshold(score, True, rationale, threshold)
        return GateDecision(
            stage=STORAGE,
            item_key=item.key,
            item_title=item.title,
            verdict=ADVANCE if advance else REJECT,
            score=score,
            rationale=rationale,
            sentiment=classify_sentiment(item.comments, self.lexicon),
            fallback=True,
        )

    def decide_storage(self, mission, items: List[Any]) -> List[GateDecision]:
        """One decision per enriched item, in input order."""
        self.used_fallback = False
        if not items:
            return []
        threshold = mission.quality_threshold

        try:
            verdicts = self.scoring.score_items(mission, items, threshold)
        except Exception as e:
            logger.warning("Scoring service failed for %d items, using fallback: %s", len(items), e)
            verdicts = []

        matched = match_verdicts(verdicts, items)
        missing = len(items) - len(matched)
        if missing:
            self.used_fallback = True
            logger.warning("No verdict for %d/%d items, fallback applied to those", missing, len(items))

        decisions = []
        for item in items:
            v = matched.get(item.key)
            if v is None:
                decisions.append(self.fallback_decision(item, threshold))
                continue
            advance, rationale = self._enforce_threshold(v.score, v.advance, v.rationale, threshold)
            decisions.append(GateDecision(
                stage=STORAGE,
                item_key=item.key,
                item_title=item.title,
                verdict=ADVANCE if advance else REJECT,
                score=v.score,
                rationale=rationale,
                sentiment=v.sentiment or classify_sentiment(item.comments, self.lexicon),
            ))

        approved = sum(1 for d in decisions if d.advanced)
        logger.info("Storage: %d/%d items approved (threshold=%.2f, fallback=%s)",
                    approved, len(items), threshold, self.used_fallback)
        return decisions
