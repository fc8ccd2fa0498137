"""Tests for scout.pipeline.discovery - source scanners."""
import pytest

from scout.pipeline.discovery import (
    ADAPTERS, ItchioSourceScanner, SteamSourceScanner, keyword_hits,
)
from scout.services.fetcher import ExtractionAuthError, FetchError
from scout.services.scoring import CategoryLabel


def _page(*games):
    return {'games': [dict(g) for g in games]}


def _game(n, **overrides):
    g = {'title': f'Game {n}', 'url': f'https://dev{n}.itch.io/game-{n}', 'developer': f'Dev {n}',
         'price': 'Free', 'genre': 'Puzzle', 'description': f'Cozy tile puzzle {n}'}
    g.update(overrides)
    return g


class TestAdaptersRegistry:

    def test_platforms(self):
        assert ADAPTERS == {'itchio': ItchioSourceScanner, 'steam': SteamSourceScanner}


class TestPlanPages:

    def test_confident_categories_plus_trending(self, make_fetcher, fake_scoring, make_mission, funnel_config):
        fake_scoring.categories = [
            CategoryLabel('strategy', 0.55),
            CategoryLabel('puzzle', 0.9),
            CategoryLabel('action', 0.3),       # below 0.5
            CategoryLabel('simulation', 0.7),
            CategoryLabel('survival', 0.6),     # 4th confident label, dropped
        ]
        fetcher, _ = make_fetcher()
        scanner = ItchioSourceScanner(fetcher, classifier=fake_scoring, config=funnel_config)
        pages = scanner.plan_pages(make_mission())
        assert pages == [
            ('puzzle', 'https://itch.io/games/genre-puzzle'),
            ('simulation', 'https://itch.io/games/genre-simulation'),
            ('survival', 'https://itch.io/games/genre-survival'),
            ('new-and-popular', 'https://itch.io/games/new-and-popular'),
        ]

    def test_no_confident_categories_uses_defaults(self, make_fetcher, fake_scoring, make_mission, funnel_config):
        fake_scoring.categories = [CategoryLabel('puzzle', 0.2)]
        fetcher, _ = make_fetcher()
        pages = ItchioSourceScanner(fetcher, fake_scoring, funnel_config).plan_pages(make_mission())
        assert pages == ItchioSourceScanner.default_pages

    def test_classifier_error_uses_defaults(self, make_fetcher, fake_scoring, make_mission, funnel_config):
        fake_scoring.categories = RuntimeError('llm down')
        fetcher, _ = make_fetcher()
        pages = ItchioSourceScanner(fetcher, fake_scoring, funnel_config).plan_pages(make_mission())
        assert pages == ItchioSourceScanner.default_pages

    def test_steam_never_classifies(self, make_fetcher, fake_scoring, make_mission, funnel_config):
        fetcher, _ = make_fetcher()
        pages = SteamSourceScanner(fetcher, fake_scoring, funnel_config).plan_pages(make_mission(platform='steam'))
        assert pages == SteamSourceScanner.default_pages
        assert fake_scoring.calls == []

    def test_categories_without_pages_fall_back_to_defaults(self, make_fetcher, fake_scoring, make_mission,
                                                            funnel_config):
        class TaggedSteam(SteamSourceScanner):
            categories = ['roguelike', 'deckbuilder']

        fake_scoring.categories = [CategoryLabel('roguelike', 0.9)]
        fetcher, _ = make_fetcher()
        scanner = TaggedSteam(fetcher, fake_scoring, funnel_config)
        assert scanner.category_url('roguelike') is None
        assert scanner.plan_pages(make_mission(platform='steam')) == SteamSourceScanner.default_pages


class TestScan:

    def test_collects_and_normalizes_urls(self, make_fetcher, make_mission, funnel_config):
        pages = {'https://itch.io/games': _page(_game(1), _game(2, url='/games/relative-one'))}
        fetcher, _ = make_fetcher(pages)
        listings = ItchioSourceScanner(fetcher, config=funnel_config).scan(make_mission())
        assert [l.url for l in listings] == ['https://dev1.itch.io/game-1', 'https://itch.io/games/relative-one']
        assert listings[0].source == 'games'

    def test_stops_at_max_results(self, make_fetcher, make_mission, funnel_config):
        pages = {
            'https://itch.io/games': _page(*[_game(i) for i in range(4)]),
            'https://itch.io/games/new-and-popular': _page(*[_game(i) for i in range(10, 14)]),
        }
        fetcher, extractor = make_fetcher(pages)
        listings = ItchioSourceScanner(fetcher, config=funnel_config).scan(make_mission(max_results=4))
        assert len(listings) == 4
        assert len(extractor.requests) == 1

    def test_zero_max_results_fetches_nothing(self, make_fetcher, make_mission, funnel_config):
        fetcher, extractor = make_fetcher()
        assert ItchioSourceScanner(fetcher, config=funnel_config).scan(make_mission(max_results=0)) == []
        assert extractor.requests == []

    def test_duplicates_across_pages_dropped(self, make_fetcher, make_mission, funnel_config):
        pages = {
            'https://itch.io/games': _page(_game(1)),
            'https://itch.io/games/new-and-popular': _page(_game(1), _game(2)),
        }
        fetcher, _ = make_fetcher(pages)
        listings = ItchioSourceScanner(fetcher, config=funnel_config).scan(make_mission())
        assert [l.title for l in listings] == ['Game 1', 'Game 2']

    def test_keywords_are_informative_only(self, make_fetcher, make_mission, funnel_config):
        pages = {'https://itch.io/games': _page(_game(1), _game(2, title='Gun Run', description='Shoot'))}
        fetcher, _ = make_fetcher(pages)
        listings = ItchioSourceScanner(fetcher, config=funnel_config).scan(make_mission(keywords=('cozy',)))
        assert len(listings) == 2
        assert listings[0].keyword_hits == ['cozy']
        assert listings[1].keyword_hits == []

    def test_failed_page_skipped(self, make_fetcher, make_mission, funnel_config):
        pages = {
            'https://itch.io/games': FetchError('https://itch.io/games', 'timeout'),
            'https://itch.io/games/new-and-popular': _page(_game(1)),
        }
        fetcher, _ = make_fetcher(pages)
        scanner = ItchioSourceScanner(fetcher, config=funnel_config)
        assert len(scanner.scan(make_mission())) == 1
        assert len(scanner.page_errors) == 1

    def test_auth_error_aborts_scan(self, make_fetcher, make_mission, funnel_config):
        pages = {'https://itch.io/games': ExtractionAuthError('https://itch.io/games', 'bad key')}
        fetcher, _ = make_fetcher(pages)
        with pytest.raises(ExtractionAuthError):
            ItchioSourceScanner(fetcher, config=funnel_config).scan(make_mission())

    def test_page_request_limited_to_remaining(self, make_fetcher, make_mission, funnel_config):
        captured = {}

        class SpyFetcher:
            def fetch(self, url, spec):
                captured[url] = spec.schema['properties']['games']['maxItems']
                raise FetchError(url, 'skip')

        ItchioSourceScanner(SpyFetcher(), config=funnel_config).scan(make_mission(max_results=7))
        assert set(captured.values()) == {7}

    def test_malformed_entries_ignored(self, make_fetcher, make_mission, funnel_config):
        pages = {'https://itch.io/games': {'games': ['junk', {'url': 'no-title'}, _game(1)]}}
        fetcher, _ = make_fetcher(pages)
        listings = ItchioSourceScanner(fetcher, config=funnel_config).scan(make_mission())
        assert [l.title for l in listings] == ['Game 1']


class TestKeywordHits:

    def test_case_insensitive(self, make_listing):
        assert keyword_hits(make_listing(title='COZY Farm'), ['cozy', 'horror']) == ['cozy']
