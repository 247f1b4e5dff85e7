"""Rolling log of analyzed turns with derived tracking metrics."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from dialogstate.core.state.context import utcnow

ACCURATE_CONTEXT_THRESHOLD = 0.8


@dataclass(frozen=True)
class TurnLogEntry:
    """
    Outcome of analyzing one turn.
    """

    session_id: str
    turn: int
    context_accuracy: float
    intent_recognized: bool
    error_detected: bool
    user_satisfaction: float | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class TrackingMetrics:
    """
    Rates computed over the most recent window of entries.
    """

    context_tracking_accuracy: float = 0.0
    intent_recognition_rate: float = 0.0
    error_detection_rate: float = 0.0
    window: int = 0


class TurnLog:
    """
    Bounded, thread-safe turn log.
    """

    def __init__(self, max_entries: int = 1000, window: int = 100) -> None:
        """
        Initialize the TurnLog.

        Args:
            max_entries (int, optional): Entries kept before the oldest are dropped. Defaults to 1000.
            window (int, optional): Number of recent entries the metrics cover. Defaults to 100.
        """
        self.max_entries = max_entries
        self.window = window
        self._entries: deque[TurnLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def log(self, entry: TurnLogEntry) -> None:
        """
        Record an entry, stamping it with the current time.

        Args:
            entry (TurnLogEntry): The entry to record.
        """
        with self._lock:
            self._entries.append(replace(entry, timestamp=utcnow()))

    def metrics(self) -> TrackingMetrics:
        """
        Compute tracking rates over the most recent window.

        Returns:
            TrackingMetrics: The computed rates; all zero when the log is empty.
        """
        with self._lock:
            recent = list(self._entries)[-self.window :]
        if not recent:
            return TrackingMetrics()
        total = len(recent)
        return TrackingMetrics(
            context_tracking_accuracy=sum(
                1 for e in recent if e.context_accuracy > ACCURATE_CONTEXT_THRESHOLD
            )
            / total,
            intent_recognition_rate=sum(1 for e in recent if e.intent_recognized) / total,
            error_detection_rate=sum(1 for e in recent if e.error_detected) / total,
            window=total,
        )

    def stats(self, now: datetime | None = None) -> dict[str, float | int]:
        """
        Summarize the log.

        Args:
            now (datetime | None, optional): Reference time for the last-24h count. Defaults to now.

        Returns:
            dict[str, float | int]: total_logs, recent_logs, average_accuracy, error_rate.
        """
        now = now or utcnow()
        with self._lock:
            entries = list(self._entries)
        metrics = self.metrics()
        return {
            "total_logs": len(entries),
            "recent_logs": sum(
                1 for e in entries if now - e.timestamp < timedelta(hours=24)
            ),
            "average_accuracy": metrics.context_tracking_accuracy,
            "error_rate": metrics.error_detection_rate,
        }

    def export(self, limit: int = 100) -> list[TurnLogEntry]:
        with self._lock:
            entries = list(self._entries)
        return entries[-limit:] if limit > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
