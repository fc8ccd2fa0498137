"""
Pipeline Stage 1: DISCOVERY - enumerate cheap candidate listings.

Each adapter knows its platform's browse pages. When the scoring service can
map the mission onto the platform's genres, the scanner visits those genre
pages plus the trending page; otherwise it walks the platform defaults.
Keywords never exclude anything here; exclusion is the investigation gate's job.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from scout.models.items import CandidateListing
from scout.pipeline.base import PlatformAdapter
from scout.pipeline.funnel_config import load_funnel_config
from scout.services.fetcher import ExtractionAuthError, ExtractionSpec, FetchError

logger = logging.getLogger('pipeline.discovery')


def _listing_schema(limit: int) -> Dict[str, Any]:
    text = {'type': 'string'}
    return {
        'type': 'object',
        'properties': {
            'games': {
                'type': 'array',
                'maxItems': limit,
                'items': {
                    'type': 'object',
                    'properties': {
                        'title': text,
                        'developer': text,
                        'url': text,
                        'price': text,
                        'genre': text,
                        'description': text,
                    },
                    'required': ['title', 'url'],
                },
            },
        },
        'required': ['games'],
    }


def keyword_hits(listing: CandidateListing, keywords) -> List[str]:
    """Keywords that appear in the listing's title, genre or description."""
    haystack = ' '.join(filter(None, [listing.title, listing.genre, listing.description])).lower()
    return [kw for kw in keywords if kw and kw.lower() in haystack]


# ── Base scanner ──────────────────────────────────────────────────────────────

class SourceScanner(PlatformAdapter):
    """Walks browse pages through the shared fetcher until max_results is reached."""
    stage = 'discovery'
    categories: List[str] = []
    trending_page: Tuple[str, str] = ('', '')
    default_pages: List[Tuple[str, str]] = []
    listing_prompt = ''

    def __init__(self, fetcher, classifier=None, config: Dict[str, Any] = None):
        self.fetcher = fetcher
        self.classifier = classifier
        self.config = (config or load_funnel_config())['source']
        self.page_errors: List[str] = []

    def category_url(self, label: str) -> Optional[str]:
        """Browse page for a category, or None when the platform has none."""
        return None

    def plan_pages(self, mission) -> List[Tuple[str, str]]:
        """(label, url) pairs to visit, in order."""
        pages = []
        for label in self._pick_categories(mission):
            url = self.category_url(label)
            if url:
                pages.append((label, url))
            else:
                logger.warning("No %s page for category '%s', dropping it", self.platform, label)
        if pages:
            return pages + [self.trending_page]
        return list(self.default_pages)

    def _pick_categories(self, mission) -> List[str]:
        if self.classifier is None or not self.categories:
            return []
        try:
            candidates = self.classifier.classify_categories(mission, list(self.categories))
        except Exception as e:
            logger.warning("Category classification failed, using default pages: %s", e)
            return []

        min_conf = self.config['category_min_confidence']
        confident = [c for c in candidates if c.confidence >= min_conf and c.label in self.categories]
        confident.sort(key=lambda c: c.confidence, reverse=True)
        picked = []
        for c in confident:
            if c.label not in picked:
                picked.append(c.label)
        picked = picked[:self.config['max_categories']]
        logger.info("Categories for mission %s: %s", mission.id, picked or 'none (defaults)')
        return picked

    def scan(self, mission) -> List[CandidateListing]:
        max_results = mission.max_results
        listings: List[CandidateListing] = []
        seen = set()
        self.page_errors = []

        for label, url in self.plan_pages(mission):
            remaining = max_results - len(listings)
            if remaining <= 0:
                break
            limit = min(remaining, self.config['page_item_limit'])
            try:
                content = self.fetcher.fetch(url, ExtractionSpec(self.listing_prompt, _listing_schema(limit)))
            except ExtractionAuthError:
                raise
            except FetchError as e:
                logger.warning("Skipping page '%s' (%s): %s", label, url, e)
                self.page_errors.append(f"{label}: {e}")
                continue

            page_new = 0
            for listing in self.parse_listings(content.data, label):
                if listing.key in seen:
                    continue
                seen.add(listing.key)
                listing.keyword_hits = keyword_hits(listing, mission.keywords)
                listings.append(listing)
                page_new += 1
                if len(listings) >= max_results:
                    break
            logger.info("Page '%s': %d new listings (total %d/%d)", label, page_new, len(listings), max_results)

        matched = sum(1 for l in listings if l.keyword_hits)
        logger.info("Scan finished: %d listings, %d with keyword matches", len(listings), matched)
        return listings

    def parse_listings(self, data: Dict[str, Any], source: str) -> List[CandidateListing]:
        raw = data.get('games') or data.get('items') or data.get('listings') or []
        listings = []
        for entry in raw if isinstance(raw, list) else []:
            if not isinstance(entry, dict):
                continue
            title = str(entry.get('title') or '').strip()
            if not title:
                continue
            listings.append(CandidateListing(
                title=title,
                url=self.absolute_url(str(entry.get('url') or '')),
                developer=str(entry.get('developer') or entry.get('author') or '').strip(),
                price=entry.get('price') or None,
                genre=entry.get('genre') or None,
                description=str(entry.get('description') or '').strip() or None,
                source=source,
            ))
        return listings


# ── Adapters ──────────────────────────────────────────────────────────────────

class ItchioSourceScanner(SourceScanner):
    """itch.io browse pages, with genre pages when the mission maps onto genres."""
    platform = 'itchio'
    base_url = 'https://itch.io'
    description = 'itch.io genre and browse pages'
    categories = [
        'action', 'adventure', 'card-game', 'educational', 'fighting',
        'interactive-fiction', 'platformer', 'puzzle', 'racing', 'rhythm',
        'role-playing', 'shooter', 'simulation', 'sports', 'strategy',
        'survival', 'visual-novel', 'other',
    ]
    trending_page = ('new-and-popular', 'https://itch.io/games/new-and-popular')
    default_pages = [
        ('games', 'https://itch.io/games'),
        ('new-and-popular', 'https://itch.io/games/new-and-popular'),
        ('newest', 'https://itch.io/games/newest'),
        ('top-sellers', 'https://itch.io/games/top-sellers'),
        ('featured', 'https://itch.io/games/featured'),
    ]
    listing_prompt = (
        "Extract the game listings on this itch.io browse page. For each game return "
        "title, developer, game page url, price (or 'Free'), genre and the short description."
    )

    def category_url(self, label: str) -> str:
        return f'https://itch.io/games/genre-{label}'


class SteamSourceScanner(SourceScanner):
    """Steam demo hub pages. No genre mapping; always the default pages."""
    platform = 'steam'
    base_url = 'https://store.steampowered.com'
    description = 'Steam demo hub pages'
    trending_page = ('newandtrending', 'https://store.steampowered.com/demos/?flavor=contenthub_newandtrending')
    default_pages = [
        ('demos', 'https://store.steampowered.com/demos/'),
        ('recentlyreleased', 'https://store.steampowered.com/demos/?flavor=recentlyreleased'),
        ('newandtrending', 'https://store.steampowered.com/demos/?flavor=contenthub_newandtrending'),
    ]
    listing_prompt = (
        "Extract the games with playable demos on this Steam page. For each game return "
        "title, developer, store page url, price, genre and the short description."
    )


ADAPTERS = {
    'itchio': ItchioSourceScanner,
    'steam': SteamSourceScanner,
}
