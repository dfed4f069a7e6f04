"""Tests for structured logging configuration."""
import json
import logging
import os
from unittest.mock import patch

import pytest

from kanban.logging_config import configure_logging, JSONFormatter


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

    def test_log_level_env_var_case_insensitive(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'debug'}):
            configure_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_log_level_defaults_to_info(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'NONSENSE'}):
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_text_format(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'text'}):
            configure_logging()
        logging.getLogger('projection.engine').info("Projected %s", 'Vanzari')
        output = capsys.readouterr().err
        assert 'projection.engine' in output
        assert 'Projected Vanzari' in output
        assert 'INFO' in output

    def test_json_format_with_exception(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json'}):
            configure_logging()
        try:
            raise ValueError("boom")
        except ValueError:
            logging.getLogger('projection.writes').error("batch failed", exc_info=True)
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed['level'] == 'ERROR'
        assert parsed['logger'] == 'projection.writes'
        assert 'ValueError' in parsed['exception']

    def test_noisy_loggers_quieted(self):
        configure_logging()
        for name in ['sqlalchemy.engine', 'sqlalchemy.pool', 'werkzeug', 'alembic']:
            assert logging.getLogger(name).level == logging.WARNING

    def test_no_duplicate_handlers_on_repeated_calls(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_app_logger_propagates_to_root(self, app):
        assert app.logger.handlers == []
        assert app.logger.propagate is True


class TestJSONFormatter:

    def test_format_basic_record(self):
        record = logging.LogRecord(
            name='projection.quality', level=logging.WARNING, pathname='', lineno=0,
            msg='%d tray(s) skipped', args=(3,), exc_info=None,
        )
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed['message'] == '3 tray(s) skipped'
        assert parsed['level'] == 'WARNING'
        assert 'exception' not in parsed
