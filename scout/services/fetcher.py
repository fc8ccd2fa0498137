"""
Rate-limited content extraction.

FirecrawlExtractor turns a URL + extraction prompt/schema into structured JSON
via the Firecrawl scrape API. RateLimitedFetcher wraps any extractor with the
shared minimum-interval limiter and the provider error policy:

  - rate limit   → cooldown, then RateLimitedError (retryable, caller decides)
  - auth/config  → ExtractionAuthError immediately (not retryable)
  - anything else → FetchError
"""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scout.config import (
    RATE_LIMIT_COOLDOWN_SECONDS,
    FETCH_BATCH_SIZE,
    FETCH_BATCH_PAUSE_SECONDS,
)
from scout.services.circuit_breaker import CircuitOpenError

logger = logging.getLogger('services.fetcher')


# ── Errors ────────────────────────────────────────────────────────────────────

class FetchError(Exception):
    """Extraction failed for one URL."""
    retryable = False

    def __init__(self, url, message=''):
        self.url = url
        super().__init__(f"Fetch failed for {url}: {message}" if message else f"Fetch failed for {url}")


class RateLimitedError(FetchError):
    """Provider rate limit hit. Raised after the cooldown has been served."""
    retryable = True


class ExtractionAuthError(FetchError):
    """Provider rejected our credentials or configuration."""


# ── Extraction types ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExtractionSpec:
    prompt: str
    schema: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExtractedContent:
    url: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not self.data


_RATE_LIMIT_MARKERS = ('rate limit', 'rate_limit', 'too many requests')
_AUTH_MARKERS = ('api key', 'apikey', 'unauthorized', 'forbidden', 'authentication')
# Status codes only count as standalone numbers, not digits inside e.g. '14030ms'
_RATE_LIMIT_STATUS = re.compile(r'(?<![\w.])429(?![\w.])')
_AUTH_STATUS = re.compile(r'(?<![\w.])40[13](?![\w.])')


def classify_provider_error(url: str, error: Exception) -> FetchError:
    """Map a raw provider exception onto the fetch error taxonomy."""
    status = getattr(error, 'status_code', None)
    message = str(error)
    lowered = message.lower()
    if (status == 429 or any(m in lowered for m in _RATE_LIMIT_MARKERS)
            or _RATE_LIMIT_STATUS.search(message)):
        return RateLimitedError(url, message)
    if (status in (401, 403) or any(m in lowered for m in _AUTH_MARKERS)
            or _AUTH_STATUS.search(message)):
        return ExtractionAuthError(url, message)
    return FetchError(url, message)


# ── Firecrawl client wrapper ─────────────────────────────────────────────────

class FirecrawlExtractor:
    """Structured JSON extraction through firecrawl's scrape endpoint."""

    def __init__(self, client, breaker=None):
        self.client = client
        self.breaker = breaker

    def extract(self, url: str, spec: ExtractionSpec) -> Dict[str, Any]:
        json_format = {'type': 'json', 'prompt': spec.prompt}
        if spec.schema:
            json_format['schema'] = spec.schema
        try:
            if self.breaker is not None:
                doc = self.breaker.call(self.client.scrape, url, formats=[json_format])
            else:
                doc = self.client.scrape(url, formats=[json_format])
        except CircuitOpenError as e:
            raise FetchError(url, str(e)) from e
        except Exception as e:
            raise classify_provider_error(url, e) from e

        if doc is None:
            return {}
        data = getattr(doc, 'json', None)
        if data is None and isinstance(doc, dict):
            data = doc.get('json')
        # Non-conforming payloads count as "no data", not as a failure
        return data if isinstance(data, dict) else {}


# ── Rate-limited fetcher ─────────────────────────────────────────────────────

class RateLimitedFetcher:
    """
    Usage:
        fetcher = RateLimitedFetcher(FirecrawlExtractor(client), MinIntervalLimiter(6.0))
        content = fetcher.fetch(url, ExtractionSpec(prompt, schema))
    """

    def __init__(self, extractor, limiter, cooldown_seconds: float = RATE_LIMIT_COOLDOWN_SECONDS):
        self.extractor = extractor
        self.limiter = limiter
        self.cooldown_seconds = cooldown_seconds

    def fetch(self, url: str, spec: ExtractionSpec) -> ExtractedContent:
        with self.limiter.slot():
            try:
                data = self.extractor.extract(url, spec)
            except RateLimitedError:
                logger.warning("Rate limit hit for %s, cooling down %.0fs", url, self.cooldown_seconds)
                self.limiter.pause(self.cooldown_seconds)
                raise
            except ExtractionAuthError:
                logger.error("Extraction provider rejected credentials for %s", url)
                raise
            except FetchError:
                raise
            except Exception as e:
                raise classify_provider_error(url, e) from e

        return ExtractedContent(url=url, data=data if isinstance(data, dict) else {})

    def fetch_many(
        self,
        urls: List[str],
        spec: ExtractionSpec,
        batch_size: int = FETCH_BATCH_SIZE,
        batch_pause: Optional[float] = None,
    ) -> List[ExtractedContent]:
        """
        Fetch urls in groups of batch_size, pausing between groups.

        Every call still passes through the limiter, so calls inside a group
        are spaced by the full interval. Failed URLs are logged and left out;
        successful results keep input order.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if batch_pause is None:
            batch_pause = FETCH_BATCH_PAUSE_SECONDS

        results: List[ExtractedContent] = []
        for i in range(0, len(urls), batch_size):
            batch = urls[i:i + batch_size]
            outcomes: Dict[int, ExtractedContent] = {}

            with ThreadPoolExecutor(max_workers=batch_size) as executor:
                future_to_idx = {
                    executor.submit(self.fetch, url, spec): idx
                    for idx, url in enumerate(batch)
                }
                for future, idx in future_to_idx.items():
                    try:
                        outcomes[idx] = future.result()
                    except FetchError as e:
                        logger.warning("Skipping %s: %s", batch[idx], e)

            results.extend(outcomes[idx] for idx in sorted(outcomes))

            if i + batch_size < len(urls) and batch_pause > 0:
                self.limiter.pause(batch_pause)

        logger.info("Batch fetch: %d/%d URLs succeeded", len(results), len(urls))
        return results
