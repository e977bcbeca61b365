"""Tests for logger.py: setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from corpus_sync.logger import JsonFormatter, setup_logging

# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert kwargs["force"] is True

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_default_level_is_warning(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()
        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_env_level_respected(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "info")
        setup_logging()
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_unknown_env_level_falls_back(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging()
        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_verbose_overrides_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(verbose=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_config_level_used_without_env(self, mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(level="INFO")
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_env_level_beats_config_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(level="DEBUG")
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_log_file_adds_file_handler(self, mock_basic, tmp_path):
        log_file = tmp_path / "corpus-sync.log"
        setup_logging(log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert handlers[1].baseFilename == str(log_file)
        handlers[1].close()

    @patch("corpus_sync.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(debug_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for the single-line JSON formatter."""

    def _record(self, msg="Fetched %s", args=("main",), exc_info=None):
        return logging.LogRecord(
            name="corpus_sync.core.transport",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_fields(self):
        output = JsonFormatter().format(self._record())
        entry = json.loads(output)
        assert entry["level"] == "INFO"
        assert entry["logger"] == "corpus_sync.core.transport"
        assert entry["msg"] == "Fetched main"
        assert "ts" in entry
        assert "exc" not in entry
        assert "\n" not in output

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            exc_info = sys.exc_info()
        entry = json.loads(
            JsonFormatter().format(self._record(exc_info=exc_info))
        )
        assert "RuntimeError: boom" in entry["exc"]
