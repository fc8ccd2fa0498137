"""Shared test fixtures."""
import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from scout.database import create_schema
from scout.models.items import CandidateListing, CommunityComment, EnrichedItem
from scout.models.mission import Scout, ScoutMission
from scout.pipeline.funnel_config import _default_config
from scout.services.scoring import ScoringService


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session, with schema created."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """Session for assertions. Rolls back after each test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def mock_redis():
    """Mock Redis client. Returns a MagicMock with common Redis methods."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.setex.return_value = True
    mock.zadd.return_value = 1
    return mock


@pytest.fixture
def funnel_config():
    """Funnel config independent of the YAML file on disk."""
    return _default_config()


class FakeClock:
    """Manual clock: sleep() advances time instantly and records the request."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        if seconds > 0:
            self.now += seconds

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


class FakeScoringService(ScoringService):
    """
    Scoring service double.

    Each attribute is either a list to return or an exception to raise.
    Calls are counted so tests can assert on batching.
    """

    def __init__(self, listing_verdicts=None, item_verdicts=None, categories=None):
        self.listing_verdicts = listing_verdicts if listing_verdicts is not None else []
        self.item_verdicts = item_verdicts if item_verdicts is not None else []
        self.categories = categories if categories is not None else []
        self.calls = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value() if callable(value) else value

    def score_listings(self, mission, listings):
        self.calls.append(('score_listings', len(listings)))
        return self._answer(self.listing_verdicts)

    def score_items(self, mission, items, threshold):
        self.calls.append(('score_items', len(items), threshold))
        return self._answer(self.item_verdicts)

    def classify_categories(self, mission, categories):
        self.calls.append(('classify_categories', len(categories)))
        return self._answer(self.categories)


@pytest.fixture
def fake_scoring():
    return FakeScoringService()


class FakeExtractor:
    """URL → payload dict (or exception instance). Records every URL requested."""

    def __init__(self, pages=None, clock=None):
        self.pages = pages or {}
        self.clock = clock
        self.requests = []

    def extract(self, url, spec):
        self.requests.append((url, self.clock.monotonic() if self.clock else None))
        result = self.pages.get(url, {})
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def make_mission():
    """Factory fixture - builds a ScoutMission with sensible defaults."""
    def _make(**overrides):
        defaults = dict(
            id='scout-test-001',
            name='Cozy puzzle hunt',
            instructions='Find cozy puzzle games with an active community',
            keywords=('cozy', 'puzzle'),
            platform='itchio',
            max_results=50,
            quality_threshold=0.7,
            frequency='daily',
            organization_id='org-1',
        )
        defaults.update(overrides)
        return ScoutMission(**defaults)
    return _make


@pytest.fixture
def add_scout(session_factory):
    """Insert a scouts row and return its id."""
    def _add(**overrides):
        values = dict(
            id='scout-test-001',
            name='Cozy puzzle hunt',
            instructions='Find cozy puzzle games with an active community',
            keywords=['cozy', 'puzzle'],
            platform='itchio',
            organization_id='org-1',
            max_results=50,
            quality_threshold=0.7,
            frequency='daily',
            total_runs=0,
        )
        values.update(overrides)
        session = session_factory()
        session.add(Scout(**values))
        session.commit()
        session.close()
        return values['id']
    return _add


@pytest.fixture
def make_listing():
    def _make(n=1, **overrides):
        defaults = dict(
            title=f'Game {n}',
            url=f'https://dev{n}.itch.io/game-{n}',
            developer=f'Dev {n}',
            price='Free',
            genre='Puzzle',
            description=f'A cozy puzzle game number {n} about tiles',
        )
        defaults.update(overrides)
        return CandidateListing(**defaults)
    return _make


@pytest.fixture
def make_item():
    def _make(n=1, comments=None, **overrides):
        defaults = dict(
            url=f'https://dev{n}.itch.io/game-{n}',
            title=f'Game {n}',
            platform='itchio',
            developer=f'Dev {n}',
            full_description=f'Full description of game {n}.',
            tags=['puzzle', 'cozy'],
            screenshots=[f'https://img.itch.zone/{n}.png'],
            comments=comments if comments is not None else [],
        )
        defaults.update(overrides)
        return EnrichedItem(**defaults)
    return _make


def comment(content='Great game', author='player', date=None, is_author_reply=False):
    return CommunityComment(author=author, content=content, date=date, is_author_reply=is_author_reply)


@pytest.fixture
def make_comment():
    return comment


@pytest.fixture
def make_fetcher(fake_clock):
    """Factory fixture - RateLimitedFetcher over a FakeExtractor on the fake clock."""
    from scout.services.fetcher import RateLimitedFetcher
    from scout.services.rate_limiter import MinIntervalLimiter

    def _make(pages=None, delay=6.0, cooldown=60.0):
        extractor = FakeExtractor(pages, clock=fake_clock)
        fetcher = RateLimitedFetcher(extractor, MinIntervalLimiter(delay, clock=fake_clock),
                                     cooldown_seconds=cooldown)
        return fetcher, extractor
    return _make
