"""
Tests for configuration and structured logging
"""

import json
import logging

from collection_desk.config import CollectionDeskConfig
from collection_desk.logging_config import JSONFormatter, log_action


class TestConfig:
    """Test environment-driven settings"""

    def test_defaults(self):
        config = CollectionDeskConfig()
        assert config.verification_secret == "6789"
        assert config.admin_secret == "1234"
        assert config.due_soon_days == 10
        assert config.overdue_days == 14

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("COLLECTIONS_DATABASE_URL", "memory")
        monkeypatch.setenv("COLLECTIONS_OVERDUE_DAYS", "30")
        config = CollectionDeskConfig()
        assert config.database_url == "memory"
        assert config.overdue_days == 30


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestStructuredLogging:
    """Test JSON log records"""

    def test_log_action_fields(self):
        logger = logging.getLogger("collection_desk.tests.logging")
        logger.setLevel(logging.INFO)
        handler = _Capture()
        logger.addHandler(handler)
        try:
            log_action(logger, "info", "Collection recognized", user_id="u1",
                       action="recognize", resource="c1", extra={"amount": "1000"})
        finally:
            logger.removeHandler(handler)

        entry = json.loads(JSONFormatter().format(handler.records[0]))
        assert entry["message"] == "Collection recognized"
        assert entry["user_id"] == "u1"
        assert entry["action"] == "recognize"
        assert entry["resource"] == "c1"
        assert entry["extra"] == {"amount": "1000"}
        assert "correlation_id" not in entry

    def test_disabled_level_is_skipped(self):
        logger = logging.getLogger("collection_desk.tests.quiet")
        logger.setLevel(logging.WARNING)
        handler = _Capture()
        logger.addHandler(handler)
        try:
            log_action(logger, "info", "ignored")
        finally:
            logger.removeHandler(handler)
        assert handler.records == []
