"""
Client handles - Redis, OpenAI, Firecrawl, DB session factory.

Built once per worker process by build_clients() and passed into the pipeline
explicitly. Importing this module never opens a connection.
"""
import logging
from dataclasses import dataclass
from typing import Any

import redis
from firecrawl import Firecrawl
from openai import OpenAI

from scout.config import (
    REDIS_URL,
    DATABASE_URL,
    OPENAI_API_KEY,
    OPENAI_MODEL,
    FIRECRAWL_API_KEY,
    FETCH_DELAY_SECONDS,
    RATE_LIMIT_COOLDOWN_SECONDS,
)
from scout.database import build_session_factory
from scout.services.circuit_breaker import build_breakers
from scout.services.fetcher import FirecrawlExtractor, RateLimitedFetcher
from scout.services.rate_limiter import MinIntervalLimiter
from scout.services.scoring import OpenAIScoringService

logger = logging.getLogger('scout.extensions')


@dataclass
class ScoutClients:
    redis_client: Any
    session_factory: Any
    fetcher: RateLimitedFetcher
    scoring: OpenAIScoringService


def build_clients(
    redis_url: str = REDIS_URL,
    database_url: str = DATABASE_URL,
    openai_api_key: str = OPENAI_API_KEY,
    firecrawl_api_key: str = FIRECRAWL_API_KEY,
) -> ScoutClients:
    """Construct every external client the funnel needs, exactly once."""
    if not firecrawl_api_key:
        raise ValueError("FIRECRAWL_API_KEY must be set")
    if not openai_api_key:
        raise ValueError("OPENAI_API_KEY must be set")

    redis_client = redis.from_url(redis_url, decode_responses=True)
    breakers = build_breakers(redis_client)

    fetcher = RateLimitedFetcher(
        FirecrawlExtractor(Firecrawl(api_key=firecrawl_api_key), breaker=breakers['firecrawl']),
        MinIntervalLimiter(FETCH_DELAY_SECONDS),
        cooldown_seconds=RATE_LIMIT_COOLDOWN_SECONDS,
    )
    scoring = OpenAIScoringService(
        OpenAI(api_key=openai_api_key),
        model=OPENAI_MODEL,
        breaker=breakers['openai'],
    )
    logger.info("Clients initialized (model=%s, fetch_delay=%.1fs)", OPENAI_MODEL, FETCH_DELAY_SECONDS)

    return ScoutClients(
        redis_client=redis_client,
        session_factory=build_session_factory(database_url),
        fetcher=fetcher,
        scoring=scoring,
    )
