"""An in-memory Slack client for tests."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

__all__ = ["FakeSlackClient"]


@dataclass(frozen=True)
class _MessageEntry:
    text: str
    sent_time: datetime


class FakeSlackClient:
    """Keeps posted messages per channel and serves them back as history."""

    def __init__(self) -> None:
        self.history: dict[str, list[_MessageEntry]] = {}
        self._lock = threading.Lock()

    def message_history(self, channel: str, start_time: datetime) -> list[str]:
        """Return the messages posted to channel, provided start_time is in the past."""
        with self._lock:
            now = datetime.now(start_time.tzinfo)
            return [entry.text for entry in self.history.get(channel, []) if now > start_time]

    def post(self, text: str, channel: str) -> None:
        """Record text as a message sent to channel."""
        with self._lock:
            self.history.setdefault(channel, []).append(_MessageEntry(text, datetime.now()))