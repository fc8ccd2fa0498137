"""
Pipeline Stage 3: ENRICHMENT - full detail pages for the selected listings.

Strictly sequential through the shared rate-limited fetcher. A URL that fails
(or comes back empty) is logged and skipped, never retried in the same run.
"""
import logging
from typing import Any, Dict, List, Optional

from scout.models.items import CommunityComment, EnrichedItem
from scout.pipeline.base import PlatformAdapter
from scout.pipeline.funnel_config import load_funnel_config
from scout.services.fetcher import ExtractionSpec, FetchError

logger = logging.getLogger('pipeline.enrichment')


def _detail_schema(max_comments: int, comments_key: str) -> Dict[str, Any]:
    text = {'type': 'string'}
    text_list = {'type': 'array', 'items': text}
    return {
        'type': 'object',
        'properties': {
            'title': text,
            'developer': text,
            'price': text,
            'genre': text,
            'fullDescription': text,
            'screenshots': text_list,
            'tags': text_list,
            'platforms': text_list,
            'rating': text,
            'fileSize': text,
            'releaseDate': text,
            'downloadCount': text,
            'commentCount': {'type': 'integer'},
            comments_key: {
                'type': 'array',
                'maxItems': max_comments,
                'items': {
                    'type': 'object',
                    'properties': {
                        'author': text,
                        'content': text,
                        'date': text,
                        'isDevReply': {'type': 'boolean'},
                    },
                },
            },
        },
        'required': ['title'],
    }


def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v not in (None, '') and str(v).strip()]


def _as_int(value) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


# ── Base scanner ──────────────────────────────────────────────────────────────

class DetailScanner(PlatformAdapter):
    stage = 'enrichment'
    comments_key = 'comments'
    detail_prompt = ''

    def __init__(self, fetcher, config: Dict[str, Any] = None):
        self.fetcher = fetcher
        self.max_comments = (config or load_funnel_config())['detail']['max_comments']
        self.failed_urls: List[str] = []

    def detail_spec(self) -> ExtractionSpec:
        return ExtractionSpec(self.detail_prompt, _detail_schema(self.max_comments, self.comments_key))

    def enrich(self, urls: List[str], listings: List[Any] = None) -> List[EnrichedItem]:
        listing_by_url = {l.url: l for l in (listings or []) if l.url}
        spec = self.detail_spec()
        items: List[EnrichedItem] = []
        self.failed_urls = []
        attempted = set()

        for i, url in enumerate(urls, 1):
            if url in attempted:
                continue
            attempted.add(url)
            logger.info("Enriching %d/%d: %s", i, len(urls), url)
            try:
                content = self.fetcher.fetch(url, spec)
            except FetchError as e:
                logger.warning("Enrichment failed for %s: %s", url, e)
                self.failed_urls.append(url)
                continue

            item = None if content.empty else self.parse_item(url, content.data, listing_by_url.get(url))
            if item is None:
                logger.warning("No detail data extracted for %s", url)
                self.failed_urls.append(url)
                continue
            items.append(item)

        logger.info("Enrichment: %d/%d URLs enriched", len(items), len(attempted))
        return items

    def parse_comments(self, data: Dict[str, Any]) -> List[CommunityComment]:
        raw = data.get(self.comments_key) or []
        comments = []
        for entry in raw if isinstance(raw, list) else []:
            if not isinstance(entry, dict):
                continue
            content = str(entry.get('content') or '').strip()
            if not content:
                continue
            comments.append(CommunityComment(
                author=str(entry.get('author') or '').strip(),
                content=content,
                date=str(entry['date']).strip() if entry.get('date') else None,
                is_author_reply=bool(entry.get('isDevReply') or entry.get('is_author_reply')),
            ))
        return comments[:self.max_comments]

    def parse_item(self, url: str, data: Dict[str, Any], listing=None) -> Optional[EnrichedItem]:
        if not data:
            return None
        title = str(data.get('title') or '').strip() or (listing.title if listing else '')
        if not title:
            return None

        comments = self.parse_comments(data)
        return EnrichedItem(
            url=url,
            title=title,
            platform=self.platform,
            developer=str(data.get('developer') or '').strip() or (listing.developer if listing else ''),
            price=data.get('price') or (listing.price if listing else None),
            genre=data.get('genre') or (listing.genre if listing else None),
            description=listing.description if listing else None,
            full_description=str(data.get('fullDescription') or '').strip(),
            tags=_str_list(data.get('tags')),
            platforms=_str_list(data.get('platforms')),
            rating=str(data['rating']) if data.get('rating') not in (None, '') else None,
            screenshots=[self.absolute_url(s) for s in _str_list(data.get('screenshots'))],
            release_date=data.get('releaseDate') or None,
            file_size=data.get('fileSize') or None,
            download_count=str(data['downloadCount']) if data.get('downloadCount') else None,
            comment_count=max(_as_int(data.get('commentCount')), len(comments)),
            comments=comments,
        )


# ── Adapters ──────────────────────────────────────────────────────────────────

class ItchioDetailScanner(DetailScanner):
    """itch.io game pages with the community comment thread."""
    platform = 'itchio'
    base_url = 'https://itch.io'
    description = 'itch.io game page + community comments'
    detail_prompt = (
        "Extract the full details of this itch.io game page: title, developer, price, genre, "
        "full description, screenshot URLs, tags, supported platforms, rating, file size, "
        "release date, download count, total comment count, and the most recent community "
        "comments (author, content, relative date, and whether the developer wrote it)."
    )


class SteamDetailScanner(DetailScanner):
    """Steam store pages; recent user reviews stand in for comments."""
    platform = 'steam'
    base_url = 'https://store.steampowered.com'
    description = 'Steam store page + recent user reviews'
    comments_key = 'reviews'
    detail_prompt = (
        "Extract the full details of this Steam store page: title, developer, price, genre, "
        "full description, screenshot URLs, user tags, supported platforms, review rating, "
        "release date, total review count as commentCount, and the most recent user reviews "
        "as reviews (author, content, relative date, and whether it is a developer response)."
    )


ADAPTERS = {
    'itchio': ItchioDetailScanner,
    'steam': SteamDetailScanner,
}
