"""Tests for structured logging helpers."""

import json
import logging

from biaswatch.core.logging import (
    SensitiveDataFilter,
    StructuredFormatter,
    TextFormatter,
    get_logger,
    job_key_var,
)


def make_record(msg: str, *args) -> logging.LogRecord:
    return logging.LogRecord(
        name="biaswatch.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_get_logger_prefix():
    assert get_logger("jobs.scheduler").name == "biaswatch.jobs.scheduler"


class TestFormatters:
    def test_structured_includes_job_key(self):
        token = job_key_var.set("USD:earnings")
        try:
            output = json.loads(StructuredFormatter().format(make_record("checked")))
        finally:
            job_key_var.reset(token)

        assert output["message"] == "checked"
        assert output["level"] == "INFO"
        assert output["job_key"] == "USD:earnings"
        assert output["asset"] == "USD"
        assert output["data_type"] == "earnings"

    def test_structured_splits_data_type_with_underscores(self):
        token = job_key_var.set("EUR:economic_indicator")
        try:
            output = json.loads(StructuredFormatter().format(make_record("checked")))
        finally:
            job_key_var.reset(token)

        assert output["asset"] == "EUR"
        assert output["data_type"] == "economic_indicator"

    def test_structured_without_job_key(self):
        output = json.loads(StructuredFormatter().format(make_record("idle")))
        assert "job_key" not in output
        assert "asset" not in output

    def test_text_includes_job_key(self):
        token = job_key_var.set("EUR:revenue")
        try:
            line = TextFormatter().format(make_record("checked %d records", 3))
        finally:
            job_key_var.reset(token)

        assert "[EUR:revenue]" in line
        assert line.endswith("biaswatch.test: checked 3 records")


class TestSensitiveDataFilter:
    def test_redacts_api_key(self):
        record = make_record("GET https://host/usd?api_key=abc123&limit=5")
        assert SensitiveDataFilter().filter(record) is True
        assert "abc123" not in record.getMessage()
        assert "api_key=[REDACTED]" in record.getMessage()
        assert "limit=5" in record.getMessage()

    def test_leaves_plain_messages(self):
        record = make_record("Fetched 4 records")
        SensitiveDataFilter().filter(record)
        assert record.getMessage() == "Fetched 4 records"
