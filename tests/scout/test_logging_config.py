"""Tests for structured logging configuration."""
import json
import logging
import os
from unittest.mock import patch

import pytest

from scout.logging_config import configure_logging, JSONFormatter


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Reset root logger state after each test."""
    root = logging.getLogger()
    original_level = root.level
    original_handlers = root.handlers[:]
    yield
    root.setLevel(original_level)
    root.handlers = original_handlers


class TestConfigureLogging:

    def test_default_level_is_info(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop('LOG_LEVEL', None)
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_env_level_case_insensitive(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'debug'}):
            configure_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_explicit_level_wins_over_env(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'DEBUG'}):
            configure_logging(level_name='WARNING')
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_level_defaults_to_info(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'NONSENSE'}):
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_single_handler_after_reinit(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_noisy_loggers_quieted(self):
        configure_logging()
        assert logging.getLogger('firecrawl').level == logging.WARNING
        assert logging.getLogger('openai').level == logging.WARNING

    def test_json_format_emits_json(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json'}):
            configure_logging()
        logging.getLogger('pipeline.test').info("scanned %d pages", 3)
        line = capsys.readouterr().err.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry['message'] == 'scanned 3 pages'
        assert entry['logger'] == 'pipeline.test'
        assert entry['level'] == 'INFO'


class TestJSONFormatter:

    def _record(self, **extra):
        record = logging.LogRecord('x', logging.ERROR, __file__, 1, 'msg', None, None)
        for k, v in extra.items():
            setattr(record, k, v)
        return record

    def test_includes_run_id_when_present(self):
        entry = json.loads(JSONFormatter().format(self._record(run_id='run-9')))
        assert entry['run_id'] == 'run-9'

    def test_includes_exception(self):
        try:
            raise RuntimeError('kaput')
        except RuntimeError:
            import sys
            record = logging.LogRecord('x', logging.ERROR, __file__, 1, 'msg', None, sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert 'kaput' in entry['exception']
