"""Tests for detacher.logging."""

from __future__ import annotations

import io
import json
import logging
import sys

import structlog

from detacher.logging import setup_logging


class TestSetupLogging:
    def test_json_mode(self):
        setup_logging(json=True, level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_console_mode(self):
        setup_logging(json=False, level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG

    def test_level_case_insensitive(self):
        setup_logging(level="warning")
        root = logging.getLogger()
        assert root.level == logging.WARNING

    def test_replaces_existing_handlers(self):
        root = logging.getLogger()
        root.addHandler(logging.StreamHandler())
        root.addHandler(logging.StreamHandler())
        assert len(root.handlers) >= 2
        setup_logging()
        assert len(root.handlers) == 1

    def test_defaults_to_stderr(self):
        setup_logging()
        [handler] = logging.getLogger().handlers
        assert handler.stream is sys.stderr

    def test_json_lines_written_to_stream(self):
        stream = io.StringIO()
        setup_logging(json=True, level="DEBUG", stream=stream)

        structlog.get_logger("detacher.test").info("attachment_detached", digest="ab12")

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["event"] == "attachment_detached"
        assert record["digest"] == "ab12"
        assert record["level"] == "info"
        assert record["logger"] == "detacher.test"
        assert "timestamp" in record

    def test_level_filters_records(self):
        stream = io.StringIO()
        setup_logging(json=True, level="WARNING", stream=stream)

        structlog.get_logger("detacher.test").info("quiet")
        assert stream.getvalue() == ""

    def test_console_renderer_is_plain_text(self):
        stream = io.StringIO()
        setup_logging(json=False, level="INFO", stream=stream)

        structlog.get_logger("detacher.test").warning("store_dir_missing", dir="/srv")

        output = stream.getvalue()
        assert "store_dir_missing" in output
        assert "dir=/srv" in output
        assert "\x1b[" not in output

    def test_stdlib_records_share_the_formatter(self):
        stream = io.StringIO()
        setup_logging(json=True, level="INFO", stream=stream)

        logging.getLogger("uvicorn.error").info("Started server process [%d]", 42)

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["event"] == "Started server process [42]"
        assert record["level"] == "info"
        assert record["logger"] == "uvicorn.error"
        assert "timestamp" in record

    def test_exception_is_rendered(self):
        stream = io.StringIO()
        setup_logging(json=True, level="INFO", stream=stream)

        try:
            raise RuntimeError("disk gone")
        except RuntimeError:
            structlog.get_logger("detacher.test").exception("retrieval_failed")

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert record["event"] == "retrieval_failed"
        assert "RuntimeError: disk gone" in record["exception"]

    def test_context_vars_are_not_merged(self):
        stream = io.StringIO()
        setup_logging(json=True, level="INFO", stream=stream)

        structlog.contextvars.bind_contextvars(request_id="r-1")
        try:
            structlog.get_logger("detacher.test").info("object_stored")
        finally:
            structlog.contextvars.clear_contextvars()

        record = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert "request_id" not in record
