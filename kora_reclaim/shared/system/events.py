"""
Event & Audit Collaborators
===========================
Engines receive these at construction instead of reaching for the Logger
singleton, so cycles can be driven deterministically in tests.

- EventRecorder.record(event)   → one log line per event
- AuditSink.append(entry)       → one JSON line per reclaim-relevant entry

Production wiring:
    audit = AuditTrail("logs/audit.log")
    events = LoggerEventRecorder()
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Protocol, runtime_checkable

from kora_reclaim.shared.models import utc_now
from kora_reclaim.shared.system.logging import Logger


class BotEventType(str, Enum):
    SCAN_STARTED = "scan_started"
    SCAN_COMPLETED = "scan_completed"
    ACCOUNT_DISCOVERED = "account_discovered"
    ACCOUNT_CLOSED_DETECTED = "account_closed_detected"
    ACCOUNT_REVIVED = "account_revived"
    ACCOUNT_PROTECTED = "account_protected"
    RECLAIM_STARTED = "reclaim_started"
    RECLAIM_SUCCESS = "reclaim_success"
    RECLAIM_FAILED = "reclaim_failed"
    RECLAIM_COMPLETED = "reclaim_completed"
    ALERT_THRESHOLD_EXCEEDED = "alert_threshold_exceeded"
    ERROR = "error"


WARNING_EVENTS = frozenset({
    BotEventType.ALERT_THRESHOLD_EXCEEDED,
    BotEventType.ACCOUNT_REVIVED,
    BotEventType.ACCOUNT_PROTECTED,
})


@dataclass
class BotEvent:
    type: BotEventType
    message: str
    source: str = "SYSTEM"
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


@runtime_checkable
class EventRecorder(Protocol):
    def record(self, event: BotEvent) -> None: ...


@runtime_checkable
class AuditSink(Protocol):
    def append(self, entry: Dict[str, Any]) -> None: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class AuditTrail:
    """JSON-lines audit file, rotated at 50MB x 10."""

    def __init__(self, path: str):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.path = path
        self._logger = logging.getLogger(f"KoraReclaimAudit:{path}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False
        if not self._logger.handlers:
            handler = RotatingFileHandler(path, maxBytes=50 * 1024 * 1024, backupCount=10, encoding='utf-8')
            handler.setFormatter(logging.Formatter('%(message)s'))
            self._logger.addHandler(handler)

    def append(self, entry: Dict[str, Any]) -> None:
        payload = {"timestamp": utc_now().isoformat(), **entry}
        self._logger.info(json.dumps(payload, default=_json_default, sort_keys=True))


class LoggerEventRecorder:
    """Routes events to the console/file Logger."""

    def record(self, event: BotEvent) -> None:
        line = f"[{event.source}] {event.message}"
        if event.type in (BotEventType.ERROR, BotEventType.RECLAIM_FAILED):
            Logger.error(line)
        elif event.type in WARNING_EVENTS:
            Logger.warning(line)
        elif event.type in (BotEventType.RECLAIM_SUCCESS, BotEventType.SCAN_COMPLETED, BotEventType.RECLAIM_COMPLETED):
            Logger.success(line)
        elif event.type == BotEventType.ACCOUNT_DISCOVERED:
            Logger.debug(line)
        else:
            Logger.info(line)


class MemoryEventRecorder:
    """Collects events in a list."""

    def __init__(self):
        self.events: List[BotEvent] = []

    def record(self, event: BotEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: BotEventType) -> List[BotEvent]:
        return [e for e in self.events if e.type == event_type]


class MemoryAuditSink:
    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    def append(self, entry: Dict[str, Any]) -> None:
        self.entries.append(entry)
