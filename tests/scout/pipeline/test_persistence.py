"""Tests for scout.pipeline.persistence: row mapping and per-item writes."""
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select

from scout.models.items import ADVANCE, INVESTIGATION, REJECT, STORAGE, GateDecision
from scout.models.run import RunContext, RunFinalizedError
from scout.models.scout_result import ScoutResult
from scout.pipeline.persistence import (
    PersistenceWriter,
    author_url,
    build_external_id,
    engagement_score,
    last_path_segment,
    normalize_content,
    parse_external_id,
)

RUN_START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def approve(item, score=0.9, rationale='Strong community', verdict=ADVANCE, sentiment='positive'):
    return GateDecision(stage=STORAGE, item_key=item.key, verdict=verdict, score=score,
                        rationale=rationale, sentiment=sentiment)


@pytest.fixture
def run():
    return RunContext('scout-test-001', 'itchio', id='run-1', created_at=RUN_START)


class TestExternalIds:

    def test_build_and_parse(self):
        ext = build_external_id('itchio', 'https://tinystudio.itch.io/tile-town/', 1772366400000)
        assert ext == 'itchio_tile-town_1772366400000'
        assert parse_external_id(ext) == ('itchio', 'tile-town', 1772366400000)

    def test_slug_with_underscores_round_trips(self):
        ext = build_external_id('steam', 'https://store.steampowered.com/app/42/Deck_Hero/', 5)
        assert parse_external_id(ext) == ('steam', 'Deck_Hero', 5)

    @pytest.mark.parametrize('bad', ['', 'itchio', 'itchio_slug', 'itchio_slug_abc', '_slug_12'])
    def test_malformed_ids_rejected(self, bad):
        with pytest.raises(ValueError):
            parse_external_id(bad)

    def test_last_segment_falls_back_to_subdomain(self):
        assert last_path_segment('https://tinystudio.itch.io/') == 'tinystudio'
        assert last_path_segment('') == 'item'


class TestDerivedFields:

    def test_engagement_default_item(self, make_item, funnel_config):
        # 1 screenshot (of 5) and 2 tags (of 10), no comments
        assert engagement_score(make_item(1), funnel_config['engagement']) == pytest.approx(0.1)

    def test_engagement_caps(self, make_item, funnel_config):
        item = make_item(1, comment_count=300, screenshots=['s'] * 12, tags=['t'] * 30)
        assert engagement_score(item, funnel_config['engagement']) == 1.0

    def test_normalize_content(self):
        assert normalize_content('a\r\n\r\n\r\n\r\nb  ') == 'a\n\nb'
        assert normalize_content(None) == ''
        assert normalize_content('x' * 10, max_chars=4) == 'xxxx'

    def test_author_url(self):
        assert author_url('itchio', 'Tiny Studio', 'u') == 'https://itch.io/profile/tiny-studio'
        assert author_url('steam', 'Tiny & Co', 'u') == \
            'https://store.steampowered.com/search/?developer=Tiny+%26+Co'
        assert author_url('itchio', '', 'u') is None


class TestPersist:

    def _rows(self, session_factory):
        session = session_factory()
        try:
            return session.execute(select(ScoutResult).order_by(ScoutResult.id)).scalars().all()
        finally:
            session.close()

    def test_writes_approved_items_and_completes(self, session_factory, make_mission, make_item,
                                                 make_comment, funnel_config, run):
        mission = make_mission()
        item = make_item(1, comments=[make_comment('Great game')], full_description='Line one\r\nLine two')
        investigation = GateDecision(stage=INVESTIGATION, item_key=item.key, verdict=ADVANCE,
                                     score=0.8, rationale='Fits the cozy brief')
        run.record_decisions([investigation])

        result = PersistenceWriter(session_factory, mission, funnel_config).persist(run, [item], [approve(item)])

        assert result.succeeded == [f'itchio_game-1_{run.timestamp_ms}']
        assert run.status == 'completed'
        assert run.stored == 1

        (row,) = self._rows(session_factory)
        assert row.scout_id == 'scout-test-001'
        assert row.run_id == 'run-1'
        assert row.organization_id == 'org-1'
        assert row.relevance_score == 0.9
        assert row.sentiment == 'positive'
        assert row.sentiment_score == 1.0
        assert row.content == 'Line one\nLine two'
        assert row.author_url == 'https://itch.io/profile/dev-1'
        assert row.status == 'new'
        assert row.platform_data['rationale'] == {'investigation': 'Fits the cozy brief',
                                                  'storage': 'Strong community'}
        assert row.platform_data['comments'][0]['content'] == 'Great game'

    def test_skips_rejected_and_below_threshold(self, session_factory, make_mission, make_item,
                                                funnel_config, run):
        items = [make_item(1), make_item(2), make_item(3), make_item(4)]
        decisions = [
            approve(items[0]),
            approve(items[1], verdict=REJECT),
            approve(items[2], score=0.5),
        ]
        result = PersistenceWriter(session_factory, make_mission(quality_threshold=0.7), funnel_config) \
            .persist(run, items, decisions)

        assert result.stored_count == 1
        assert result.skipped == [items[1].key, items[2].key, items[3].key]
        assert len(self._rows(session_factory)) == 1

    def test_failed_insert_does_not_stop_the_rest(self, session_factory, make_mission, make_item,
                                                  funnel_config, run):
        # Same slug on two hosts: identical external ids, second insert hits the unique constraint
        items = [
            make_item(1, url='https://alpha.itch.io/tiles'),
            make_item(2, url='https://beta.itch.io/tiles'),
            make_item(3),
        ]
        result = PersistenceWriter(session_factory, make_mission(), funnel_config).persist(
            run, items, [approve(i) for i in items])

        assert result.stored_count == 2
        assert [f['item_key'] for f in result.failed] == ['https://beta.itch.io/tiles']
        assert run.stored == 2
        assert run.error_count == 1
        assert run.errors[0]['stage'] == 'persistence'
        assert run.status == 'completed'
        assert len(self._rows(session_factory)) == 2

    def test_no_items_still_completes(self, session_factory, make_mission, funnel_config, run):
        result = PersistenceWriter(session_factory, make_mission(), funnel_config).persist(run, [], [])
        assert result.stored_count == 0
        assert run.status == 'completed'

    def test_completes_exactly_once(self, session_factory, make_mission, funnel_config, run):
        writer = PersistenceWriter(session_factory, make_mission(), funnel_config)
        writer.persist(run, [], [])
        with pytest.raises(RunFinalizedError):
            writer.persist(run, [], [])

    def test_unexpected_error_fails_run(self, session_factory, make_mission, make_item, funnel_config, run):
        item = make_item(1)
        writer = PersistenceWriter(session_factory, make_mission(), funnel_config)
        with patch('scout.pipeline.persistence.insert_result', side_effect=RuntimeError('disk full')):
            with pytest.raises(RuntimeError):
                writer.persist(run, [item], [approve(item)])
        assert run.status == 'failed'
        assert 'disk full' in run.error_message
