"""
Scoring service - the external judge behind both funnel gates.

The provider answers in whatever JSON shape the model felt like that day
(wrapped under "decisions", wrapped again under "object", or a bare array,
with camelCase or snake_case keys). parse_verdicts()/parse_categories()
normalize all of those into Verdict/CategoryLabel lists here, so the gates
only ever see one shape.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from scout.config import OPENAI_MODEL
from scout.models.items import SENTIMENTS, clamp_score

logger = logging.getLogger('services.scoring')


@dataclass(frozen=True)
class Verdict:
    key: str
    advance: bool
    score: float
    rationale: str = ''
    sentiment: Optional[str] = None


@dataclass(frozen=True)
class CategoryLabel:
    label: str
    confidence: float


# ── Response normalization ───────────────────────────────────────────────────

_LIST_KEYS = ('decisions', 'verdicts', 'results', 'items', 'games', 'evaluations')
_CATEGORY_LIST_KEYS = ('genres', 'categories', 'labels')
_KEY_FIELDS = ('url', 'gameUrl', 'game_url', 'item_key', 'key', 'title', 'gameTitle')
_ADVANCE_FIELDS = ('advance', 'shouldInvestigate', 'should_investigate', 'shouldStore',
                   'should_store', 'store', 'investigate')
_RATIONALE_FIELDS = ('rationale', 'reasoning', 'reason')


def _first(entry: Dict[str, Any], fields) -> Any:
    for name in fields:
        if entry.get(name) not in (None, ''):
            return entry[name]
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', '1', 'advance', 'store')
    return bool(value)


def _unwrap(payload: Any, list_keys) -> List[Any]:
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError:
            logger.warning("Scoring response was not valid JSON")
            return []
    if isinstance(payload, dict) and isinstance(payload.get('object'), (dict, list)):
        payload = payload['object']
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for name in list_keys:
            if isinstance(payload.get(name), list):
                return payload[name]
    return []


def parse_verdicts(payload: Any) -> List[Verdict]:
    """Normalize any known scoring response shape into a list of Verdicts."""
    verdicts = []
    for entry in _unwrap(payload, _LIST_KEYS):
        if not isinstance(entry, dict):
            continue
        key = _first(entry, _KEY_FIELDS)
        if key is None:
            continue
        sentiment = entry.get('sentiment')
        if isinstance(sentiment, str):
            sentiment = sentiment.strip().lower()
        verdicts.append(Verdict(
            key=str(key),
            advance=_as_bool(_first(entry, _ADVANCE_FIELDS)),
            score=clamp_score(entry.get('score')),
            rationale=str(_first(entry, _RATIONALE_FIELDS) or ''),
            sentiment=sentiment if sentiment in SENTIMENTS else None,
        ))
    return verdicts


def parse_categories(payload: Any) -> List[CategoryLabel]:
    labels = []
    for entry in _unwrap(payload, _CATEGORY_LIST_KEYS):
        if not isinstance(entry, dict):
            continue
        label = entry.get('genre') or entry.get('label') or entry.get('category')
        if not label:
            continue
        labels.append(CategoryLabel(label=str(label).strip().lower(),
                                    confidence=clamp_score(entry.get('confidence'))))
    return labels


# ── Contract ─────────────────────────────────────────────────────────────────

class ScoringService(ABC):
    """One batched call per gate. Implementations may raise; gates fall back."""

    @abstractmethod
    def score_listings(self, mission, listings) -> List[Verdict]:
        """Verdict per listing: advance flag, score and rationale."""
        ...

    @abstractmethod
    def score_items(self, mission, items, threshold: float) -> List[Verdict]:
        """Verdict per enriched item, optionally with a sentiment label."""
        ...

    def classify_categories(self, mission, categories: List[str]) -> List[CategoryLabel]:
        """Optional: map a mission onto the platform's browse categories."""
        return []


# ── OpenAI implementation ────────────────────────────────────────────────────

class OpenAIScoringService(ScoringService):
    """Scores batches with chat completions in JSON mode."""

    def __init__(self, client, model: str = OPENAI_MODEL, breaker=None):
        self.client = client
        self.model = model
        self.breaker = breaker

    def _chat_json(self, system: str, user: str) -> Any:
        kwargs = dict(
            model=self.model,
            messages=[
                {'role': 'system', 'content': system},
                {'role': 'user', 'content': user},
            ],
            response_format={'type': 'json_object'},
            temperature=0.2,
        )
        create = self.client.chat.completions.create
        if self.breaker is not None:
            response = self.breaker.call(create, **kwargs)
        else:
            response = create(**kwargs)
        return json.loads(response.choices[0].message.content)

    @staticmethod
    def _mission_block(mission) -> str:
        keywords = ', '.join(mission.keywords) or 'none'
        return f"MISSION: {mission.instructions}\nKEYWORDS: {keywords}"

    def score_listings(self, mission, listings) -> List[Verdict]:
        payload = json.dumps([l.to_dict() for l in listings])
        result = self._chat_json(
            "You pick which indie game listings deserve a closer look for a scouting mission.",
            f"""{self._mission_block(mission)}

LISTINGS: {payload}

For EVERY listing return one entry. Respond ONLY with JSON:
{{"decisions": [{{"url": "...", "advance": true/false, "score": 0.0-1.0, "rationale": "one sentence"}}]}}""",
        )
        verdicts = parse_verdicts(result)
        logger.debug("Listing verdicts: %d for %d listings", len(verdicts), len(listings))
        return verdicts

    def score_items(self, mission, items, threshold: float) -> List[Verdict]:
        payload = json.dumps([i.to_dict() for i in items])
        result = self._chat_json(
            "You decide which indie games are worth storing for a scouting mission, "
            "weighing the game itself and how its community responds to it.",
            f"""{self._mission_block(mission)}
QUALITY THRESHOLD: {threshold}

GAMES: {payload}

For EVERY game return one entry. Only store games scoring at or above the threshold.
Respond ONLY with JSON:
{{"decisions": [{{"url": "...", "advance": true/false, "score": 0.0-1.0, "rationale": "one sentence",
  "sentiment": "positive|negative|neutral|mixed"}}]}}""",
        )
        verdicts = parse_verdicts(result)
        logger.debug("Item verdicts: %d for %d items", len(verdicts), len(items))
        return verdicts

    def classify_categories(self, mission, categories: List[str]) -> List[CategoryLabel]:
        result = self._chat_json(
            "You map a scouting mission onto game genre categories.",
            f"""{self._mission_block(mission)}

AVAILABLE GENRES: {', '.join(categories)}

Pick up to 3 genres from the list that match the mission. Respond ONLY with JSON:
{{"genres": [{{"genre": "...", "confidence": 0.0-1.0}}]}}""",
        )
        allowed = set(categories)
        return [label for label in parse_categories(result) if label.label in allowed]
