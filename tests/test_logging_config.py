from __future__ import annotations

import json
import logging

import pytest

from ferias.logging_config import JSONFormatter, setup_logging


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger = logging.getLogger("ferias")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


class TestSetupLogging:
    def test_plain_stream_handler_on_stderr(self, capsys, monkeypatch) -> None:
        monkeypatch.delenv("FERIAS_LOG_FORMAT", raising=False)
        setup_logging()
        logger = logging.getLogger("ferias")
        assert len(logger.handlers) == 1
        assert type(logger.handlers[0]) is logging.StreamHandler

        logging.getLogger("ferias.optimizer").warning("budget exhausted")
        captured = capsys.readouterr()
        assert "budget exhausted" in captured.err
        assert "WARNING" in captured.err
        assert captured.out == ""

    def test_warning_level_by_default(self, capsys, monkeypatch) -> None:
        monkeypatch.delenv("FERIAS_LOG_FORMAT", raising=False)
        setup_logging()
        logging.getLogger("ferias").debug("hidden")
        assert capsys.readouterr().err == ""

    def test_verbose_enables_debug(self, capsys, monkeypatch) -> None:
        monkeypatch.delenv("FERIAS_LOG_FORMAT", raising=False)
        setup_logging(verbose=True)
        logging.getLogger("ferias").debug("shown")
        assert "shown" in capsys.readouterr().err

    def test_json_from_env(self, capsys, monkeypatch) -> None:
        monkeypatch.setenv("FERIAS_LOG_FORMAT", "json")
        setup_logging()
        assert isinstance(logging.getLogger("ferias").handlers[0].formatter, JSONFormatter)

        logging.getLogger("ferias.provider").warning("fetch failed for %d", 2026)
        record = json.loads(capsys.readouterr().err.strip())
        assert record["level"] == "WARNING"
        assert record["logger"] == "ferias.provider"
        assert record["message"] == "fetch failed for 2026"

    def test_repeated_setup_keeps_one_handler(self, monkeypatch) -> None:
        monkeypatch.delenv("FERIAS_LOG_FORMAT", raising=False)
        setup_logging()
        first = logging.getLogger("ferias").handlers[0]
        setup_logging(verbose=True)
        handlers = logging.getLogger("ferias").handlers
        assert len(handlers) == 1
        assert handlers[0] is not first
