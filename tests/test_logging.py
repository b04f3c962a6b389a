"""Tests for logging setup, JSON formatting and BoundaryLogger."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from boundaries.lib.errors import SchemaMissingError
from boundaries.lib.logging import BoundaryLogger, JSONFormatter, get_boundary_logger, setup_logging


def _reset_logging() -> None:
    """Reset logging state to the default configuration."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def _record(msg: str = "hello", exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("boundaries.test", logging.WARNING, __file__, 10, msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self) -> None:
        data = json.loads(JSONFormatter().format(_record("states load failed")))
        assert data["level"] == "WARNING"
        assert data["logger"] == "boundaries.test"
        assert data["message"] == "states load failed"
        assert data["timestamp"].endswith("Z")
        assert data["source"]["line"] == 10

    def test_extra_fields_and_exclusions(self) -> None:
        formatter = JSONFormatter(exclude_fields=["secret"])
        data = json.loads(formatter.format(_record(kind="state", secret="x")))
        assert data["extra"] == {"kind": "state"}

    def test_boundary_error_is_structured(self) -> None:
        try:
            raise SchemaMissingError("gis schema missing", operation="find_country_at_point")
        except SchemaMissingError:
            exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(_record(exc_info=exc_info)))
        assert "SchemaMissingError" in data["exception"]
        assert data["error"]["type"] == "schema_missing"
        assert data["error"]["recoverable"] is False


class TestBoundaryLogger:
    def test_context_attached_to_records(self, caplog) -> None:
        log = get_boundary_logger("boundaries.test.context")
        log.set_context(manager="main-map")
        with caplog.at_level(logging.INFO, logger="boundaries.test.context"):
            log.info("loaded %d", 3)
        record = caplog.records[-1]
        assert record.getMessage() == "loaded 3"
        assert record.manager == "main-map"

    def test_metric(self, caplog) -> None:
        log = BoundaryLogger("boundaries.test.metric")
        with caplog.at_level(logging.INFO, logger="boundaries.test.metric"):
            log.metric("features_loaded", 214, unit="features", kind="country")
        record = caplog.records[-1]
        assert record.getMessage() == "METRIC features_loaded=214"
        assert record.metric_unit == "features"
        assert record.kind == "country"

    def test_clear_context(self) -> None:
        log = BoundaryLogger("boundaries.test.clear")
        log.set_context(a=1)
        log.clear_context()
        assert log.context == {}


class TestSetupLogging:
    def test_json_file_output(self, tmp_path: Path) -> None:
        log_path = tmp_path / "boundaries.log"
        root = logging.getLogger()
        try:
            setup_logging(json_format=True, log_file=str(log_path), level="debug")
            assert root.level == logging.DEBUG
            assert all(isinstance(h.formatter, JSONFormatter) for h in root.handlers)

            logging.getLogger("boundaries.test.file").info("hello file")
            for handler in root.handlers:
                handler.flush()

            records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
            assert any(r["message"] == "hello file" for r in records)
        finally:
            _reset_logging()

    def test_verbose_overrides_level(self) -> None:
        try:
            setup_logging(verbose=True, level="ERROR")
            assert logging.getLogger().level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            _reset_logging()

    def test_unknown_level_falls_back_to_info(self) -> None:
        try:
            setup_logging(level="chatty")
            assert logging.getLogger().level == logging.INFO
        finally:
            _reset_logging()
