"""Tests for structured logging configuration."""
import json
import logging
import os
from unittest.mock import patch

import pytest

from growth_audit.logging_config import configure_logging, JSONFormatter


@pytest.fixture(autouse=True)
def _reset_root_logger():
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

    @pytest.mark.parametrize('value,level', [
        ('DEBUG', logging.DEBUG), ('warning', logging.WARNING), ('NONSENSE', logging.INFO),
    ])
    def test_log_level_env_var(self, value, level):
        with patch.dict(os.environ, {'LOG_LEVEL': value}):
            configure_logging()
        assert logging.getLogger().level == level

    def test_text_format(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'text', 'LOG_LEVEL': 'INFO'}):
            configure_logging()
        logging.getLogger('pipeline.orchestrator').info("scan queued")
        output = capsys.readouterr().err
        assert 'pipeline.orchestrator' in output
        assert 'scan queued' in output
        assert 'INFO' in output

    def test_json_format_carries_scan_context(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json', 'LOG_LEVEL': 'INFO'}):
            configure_logging()
        logging.getLogger('pipeline.manager').info(
            "Scan queued", extra={'scan_id': 's1', 'lead_id': 'l1'})
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed['level'] == 'INFO'
        assert parsed['logger'] == 'pipeline.manager'
        assert parsed['message'] == 'Scan queued'
        assert parsed['scan_id'] == 's1'
        assert parsed['lead_id'] == 'l1'
        assert 'report_id' not in parsed

    def test_json_format_includes_exception(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json', 'LOG_LEVEL': 'INFO'}):
            configure_logging()
        try:
            raise ValueError("boom")
        except ValueError:
            logging.getLogger('test.exc').error("failed", exc_info=True)
        parsed = json.loads(capsys.readouterr().err.strip())
        assert 'ValueError' in parsed['exception']

    def test_third_party_loggers_quieted(self):
        configure_logging()
        for name in ['urllib3', 'requests', 'sqlalchemy.engine', 'werkzeug']:
            assert logging.getLogger(name).level == logging.WARNING

    def test_no_duplicate_handlers_on_repeated_calls(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1


class TestJSONFormatter:

    def test_format_basic_record(self):
        record = logging.LogRecord(
            name='test', level=logging.INFO, pathname='', lineno=0,
            msg='hello %s', args=('world',), exc_info=None,
        )
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed['message'] == 'hello world'
        assert 'timestamp' in parsed
