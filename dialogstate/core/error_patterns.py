"""Process-wide registry of recurring error patterns."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Iterable

from dialogstate.core.state.context import ErrorPattern, utcnow

DEFAULT_STRATEGY = "additional_verification"

SEED_PATTERNS: tuple[tuple[str, str], ...] = (
    ("numeric_error", "research_then_recheck"),
    ("rule_misunderstanding", "consult_rulebook"),
    ("card_effect_confusion", "check_card_database"),
)


class ErrorPatternTable:
    """
    Lock-guarded map of pattern name to :class:`ErrorPattern`.

    Shared by every session in the process; increments never lose updates.
    Readers receive copies.
    """

    def __init__(self, seeds: Iterable[tuple[str, str]] | None = SEED_PATTERNS) -> None:
        self._lock = threading.Lock()
        self._patterns: dict[str, ErrorPattern] = {}
        self._seeds = tuple(seeds or ())
        self._seed()

    def _seed(self) -> None:
        now = utcnow()
        for name, strategy in self._seeds:
            self._patterns[name] = ErrorPattern(
                pattern_name=name,
                frequency=0,
                last_occurrence=now,
                correction_strategy=strategy,
            )

    def increment(
        self, pattern_name: str, now: datetime | None = None
    ) -> ErrorPattern:
        """
        Count one more occurrence, creating the pattern at frequency 1 if new.

        Args:
            pattern_name (str): The pattern key.
            now (datetime | None, optional): Occurrence time. Defaults to the current UTC time.

        Returns:
            ErrorPattern: A copy of the updated pattern.
        """
        when = now or utcnow()
        with self._lock:
            pattern = self._patterns.get(pattern_name)
            if pattern is None:
                pattern = ErrorPattern(
                    pattern_name=pattern_name,
                    frequency=1,
                    last_occurrence=when,
                    correction_strategy=DEFAULT_STRATEGY,
                )
                self._patterns[pattern_name] = pattern
            else:
                pattern.frequency += 1
                pattern.last_occurrence = when
            return pattern.copy()

    def get(self, pattern_name: str) -> ErrorPattern | None:
        with self._lock:
            pattern = self._patterns.get(pattern_name)
            return pattern.copy() if pattern is not None else None

    def all(self) -> list[ErrorPattern]:
        with self._lock:
            return [p.copy() for p in self._patterns.values()]

    def reset(self) -> None:
        """
        Drop learned patterns and restore the seeds.
        """
        with self._lock:
            self._patterns.clear()
            self._seed()

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)
