"""
Event & Audit Unit Tests
========================
"""

import json
from unittest.mock import MagicMock

import pytest

from kora_reclaim.shared.system.events import (
    AuditTrail,
    BotEvent,
    BotEventType,
    LoggerEventRecorder,
    MemoryEventRecorder,
)


class TestAuditTrail:

    def test_appends_json_lines(self, tmp_path):
        path = tmp_path / "logs" / "audit.log"
        trail = AuditTrail(str(path))

        trail.append({"action": "reclaim", "account": "abc", "success": True, "amount": 5})
        trail.append({"action": "reclaim", "account": "def", "success": False, "reason": "too_recent"})

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["account"] == "abc"
        assert first["amount"] == 5
        assert "timestamp" in first


class TestLoggerEventRecorder:

    @pytest.mark.parametrize("event_type, level", [
        (BotEventType.ERROR, "error"),
        (BotEventType.RECLAIM_FAILED, "error"),
        (BotEventType.ACCOUNT_REVIVED, "warning"),
        (BotEventType.ALERT_THRESHOLD_EXCEEDED, "warning"),
        (BotEventType.RECLAIM_SUCCESS, "success"),
        (BotEventType.SCAN_STARTED, "info"),
        (BotEventType.ACCOUNT_DISCOVERED, "debug"),
    ])
    def test_routes_by_type(self, monkeypatch, event_type, level):
        sink = MagicMock()
        monkeypatch.setattr(f"kora_reclaim.shared.system.logging.Logger.{level}", sink)

        LoggerEventRecorder().record(BotEvent(type=event_type, message="hello", source="TEST"))

        sink.assert_called_once_with("[TEST] hello")


class TestMemoryEventRecorder:

    def test_filters_by_type(self):
        recorder = MemoryEventRecorder()
        recorder.record(BotEvent(type=BotEventType.SCAN_STARTED, message="a"))
        recorder.record(BotEvent(type=BotEventType.ERROR, message="b"))

        assert [e.message for e in recorder.of_type(BotEventType.ERROR)] == ["b"]
