"""
Pipeline Stage 5: PERSISTENCE - write approved items to scout_results.

Each item is inserted in its own transaction; a failed insert is logged and
counted against the run but never stops the rest. The returned WriteResult
says exactly which items landed, so run counts always match stored rows.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote_plus, urlparse

from sqlalchemy.exc import SQLAlchemyError

from scout.models.items import INVESTIGATION, STORAGE
from scout.pipeline.funnel_config import load_funnel_config
from scout.services.db import insert_result

logger = logging.getLogger('pipeline.persistence')


@dataclass
class WriteResult:
    succeeded: List[str] = field(default_factory=list)        # external ids
    failed: List[Dict[str, str]] = field(default_factory=list)  # {'item_key', 'error'}
    skipped: List[str] = field(default_factory=list)          # item keys never written

    @property
    def stored_count(self) -> int:
        return len(self.succeeded)


# ── External ids ─────────────────────────────────────────────────────────────

def last_path_segment(url: str) -> str:
    parsed = urlparse(url or '')
    segments = [s for s in parsed.path.split('/') if s]
    if segments:
        return segments[-1]
    # https://dev.itch.io/ with no path: use the subdomain
    host = parsed.netloc.split('.')[0] if parsed.netloc else ''
    return host or 'item'


def build_external_id(platform: str, url: str, run_timestamp_ms: int) -> str:
    return f"{platform}_{last_path_segment(url)}_{run_timestamp_ms}"


def parse_external_id(external_id: str) -> Tuple[str, str, int]:
    """Inverse of build_external_id: (platform, slug, run_timestamp_ms)."""
    platform, _, rest = external_id.partition('_')
    slug, _, ts = rest.rpartition('_')
    if not platform or not slug or not ts.isdigit():
        raise ValueError(f"Malformed external id '{external_id}'")
    return platform, slug, int(ts)


# ── Derived fields ───────────────────────────────────────────────────────────

def engagement_score(item, weights: Dict[str, Dict[str, float]] = None) -> float:
    """0..1 from capped comment, screenshot and tag counts."""
    weights = weights or load_funnel_config()['engagement']
    counts = {
        'comments': item.comment_total,
        'screenshots': len(item.screenshots),
        'tags': len(item.tags),
    }
    score = 0.0
    for name, count in counts.items():
        w = weights[name]
        score += min(count, w['cap']) / w['cap'] * w['weight']
    return round(min(score, 1.0), 4)


def normalize_content(text: Optional[str], max_chars: int = 5000) -> str:
    text = (text or '').replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'\n{3,}', '\n\n', text).strip()
    return text[:max_chars]


def author_url(platform: str, developer: str, item_url: str) -> Optional[str]:
    if not developer:
        return None
    if platform == 'itchio':
        slug = re.sub(r'\s+', '-', developer.strip().lower())
        return f'https://itch.io/profile/{slug}'
    if platform == 'steam':
        return f'https://store.steampowered.com/search/?developer={quote_plus(developer.strip())}'
    return item_url


# ── Writer ───────────────────────────────────────────────────────────────────

class PersistenceWriter:

    def __init__(self, session_factory, mission, config: Dict[str, Any] = None):
        self.session_factory = session_factory
        self.mission = mission
        config = config or load_funnel_config()
        self.sentiment_scores = config['sentiment']['scores']
        self.engagement_weights = config['engagement']
        self.content_cfg = config['content']

    def build_row(self, run, item, decision, investigation=None) -> Dict[str, Any]:
        body = item.full_description or item.description or ''
        return {
            'scout_id': self.mission.id,
            'run_id': run.id,
            'organization_id': self.mission.organization_id,
            'platform': self.mission.platform,
            'external_id': build_external_id(self.mission.platform, item.url, run.timestamp_ms),
            'url': item.url,
            'title': item.title,
            'description': (item.description or body)[:self.content_cfg['description_chars']],
            'content': normalize_content(body, self.content_cfg['max_chars']),
            'author': item.developer or None,
            'author_url': author_url(self.mission.platform, item.developer, item.url),
            'engagement_score': engagement_score(item, self.engagement_weights),
            'relevance_score': decision.score,
            'sentiment': decision.sentiment,
            'sentiment_score': self.sentiment_scores.get(decision.sentiment) if decision.sentiment else None,
            'platform_data': {
                'price': item.price,
                'genre': item.genre,
                'tags': item.tags,
                'platforms': item.platforms,
                'rating': item.rating,
                'screenshots': item.screenshots,
                'release_date': item.release_date,
                'file_size': item.file_size,
                'download_count': item.download_count,
                'comment_count': item.comment_count,
                'comments': [c.to_dict() for c in item.comments],
                'rationale': {
                    'investigation': investigation.rationale if investigation else None,
                    'storage': decision.rationale,
                },
                'fallback': decision.fallback,
            },
            'status': 'new',
        }

    def persist(self, run, approved_items: List[Any], decisions: List[Any]) -> WriteResult:
        """Insert approved items one by one, then finalize the run as completed."""
        threshold = self.mission.quality_threshold
        storage = {d.item_key: d for d in decisions if d.stage == STORAGE}
        investigation = {d.item_key: d for d in run.decisions if d.stage == INVESTIGATION}
        result = WriteResult()

        try:
            for item in approved_items:
                decision = storage.get(item.key)
                if decision is None or not decision.advanced or decision.score < threshold:
                    logger.warning("Not persisting %s: no approving storage decision at threshold %.2f",
                                   item.key, threshold)
                    result.skipped.append(item.key)
                    continue

                try:
                    row = self.build_row(run, item, decision, investigation.get(item.key))
                    insert_result(self.session_factory, row)
                except (SQLAlchemyError, ValueError, TypeError) as e:
                    logger.error("Failed to persist %s: %s", item.key, e)
                    run.add_error('persistence', str(e), item.key)
                    result.failed.append({'item_key': item.key, 'error': str(e)})
                    continue
                result.succeeded.append(row['external_id'])
        except Exception as e:
            run.stored = result.stored_count
            run.fail(f"Stage 'persistence' failed: {e}")
            raise

        run.stored = result.stored_count
        logger.info("Persisted %d/%d approved items (%d failed, %d skipped)",
                    result.stored_count, len(approved_items), len(result.failed), len(result.skipped))
        run.complete()
        return result
