"""Tests for imap_receiver.logging."""

from __future__ import annotations

import logging
import sys

import structlog

from imap_receiver.logging import setup_logging


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

    def test_logs_go_to_stderr(self):
        setup_logging()
        handler = logging.getLogger().handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert handler.stream is sys.stderr

    def test_structlog_produces_output(self):
        setup_logging(json=True, level="DEBUG")
        logger = structlog.get_logger("test_logger")
        logger.info("test_event", key="value")

    def test_client_libraries_quieted(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("aiokafka").level == logging.WARNING
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_client_libraries_follow_stricter_root(self):
        setup_logging(level="ERROR")
        assert logging.getLogger("aiokafka").level == logging.ERROR
