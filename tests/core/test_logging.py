"""Tests for structured logging setup."""

from __future__ import annotations

import json

from strata.core.logging import LogContext, configure_logging, get_logger
from strata.core.orm.types import ColumnSpec, StorageType


def events(err: str) -> list[dict]:
    return [json.loads(line) for line in err.splitlines() if line.startswith("{")]


class TestConfigureLogging:
    def test_json_event_carries_logger_name(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("strata.sample").info("sample.event", n=1)
        [event] = events(capsys.readouterr().err)
        assert event["event"] == "sample.event"
        assert event["logger"] == "strata.sample"
        assert event["level"] == "info"
        assert event["n"] == 1
        assert event["service.name"] == "strata"

    def test_level_filters(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        logger = get_logger("strata.sample")
        logger.info("quiet")
        logger.warning("loud")
        assert [e["event"] for e in events(capsys.readouterr().err)] == ["loud"]

    def test_log_context(self, capsys):
        configure_logging(level="INFO", json_format=True)
        with LogContext(connection="local"):
            get_logger("strata.sample").info("inside")
        get_logger("strata.sample").info("outside")
        inside, outside = events(capsys.readouterr().err)
        assert inside["connection"] == "local"
        assert "connection" not in outside

    def test_console_renderer(self, capsys):
        configure_logging(level="INFO", json_format=False)
        get_logger("strata.sample").info("console.event", table="authors")
        err = capsys.readouterr().err
        assert "console.event" in err
        assert "table" in err

    def test_library_logs_after_configuration(self, db, capsys):
        configure_logging(level="INFO", json_format=True)
        db.schema.create_table("tags", {"label": ColumnSpec(StorageType.STRING)})
        created = [e for e in events(capsys.readouterr().err) if e["event"] == "schema.table_created"]
        assert created[0]["table"] == "tags"
        assert created[0]["logger"] == "strata.core.schema"
