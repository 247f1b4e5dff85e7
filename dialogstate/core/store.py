"""Per-session conversation context stores."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Protocol

from loguru import logger

from dialogstate.core.state.context import (
    ConversationContext,
    QuestionHistoryItem,
    utcnow,
)


class ConversationContextStore(Protocol):
    """Interface for session context storage."""

    def get(
        self, session_id: str
    ) -> ConversationContext | None:  # pragma: no cover - interface
        """Return a snapshot of the context, or None if the session is unknown."""
        ...

    def get_or_create(
        self, session_id: str
    ) -> ConversationContext:  # pragma: no cover - interface
        """Return a snapshot of the context, creating an empty one if missing."""
        ...

    def append(
        self, session_id: str, item: QuestionHistoryItem
    ) -> QuestionHistoryItem:  # pragma: no cover - interface
        """Append a finalized turn and return it as stored."""
        ...

    def delete(self, session_id: str) -> bool:  # pragma: no cover - interface
        """Drop a session. Called by the external session manager."""
        ...

    def session_ids(self) -> list[str]:  # pragma: no cover - interface
        """Return the known session ids."""
        ...


class SessionLocks:
    """
    One lock per session id, kept only while a caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def _acquire_entry(self, session_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            self._users[session_id] = self._users.get(session_id, 0) + 1
            return lock

    def _release_entry(self, session_id: str) -> None:
        with self._guard:
            remaining = self._users[session_id] - 1
            if remaining:
                self._users[session_id] = remaining
            else:
                del self._users[session_id]
                del self._locks[session_id]

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        """
        Serialize a critical section for one session.

        Args:
            session_id (str): The session to lock.

        Yields:
            None
        """
        lock = self._acquire_entry(session_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(session_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def apply_append(
    context: ConversationContext, item: QuestionHistoryItem
) -> QuestionHistoryItem:
    """
    Append an item to a context in place, keeping turn indices gapless.

    The stored item always carries the next turn index; a topic different from
    the current one opens a new topic span starting at this turn.

    Args:
        context (ConversationContext): The context to mutate.
        item (QuestionHistoryItem): The finalized turn.

    Returns:
        QuestionHistoryItem: The item as stored.
    """
    expected = context.next_turn_index
    if item.turn_index != expected:
        logger.warning(
            "Session {}: turn index {} re-stamped as {}",
            context.session_id,
            item.turn_index,
            expected,
        )
        item = item.with_turn_index(expected)

    if item.topic and item.topic != context.current_topic:
        if context.current_topic:
            logger.debug(
                "Session {}: topic shift {!r} -> {!r} at turn {}",
                context.session_id,
                context.current_topic,
                item.topic,
                expected,
            )
        context.current_topic = item.topic
        context.topic_start_turn = expected

    context.question_history.append(item)
    context.last_updated = utcnow()
    return item


class InMemoryContextStore(ConversationContextStore):
    """
    Process-local store. Appends for one session are serialized; different
    sessions never contend on the same lock.
    """

    def __init__(self) -> None:
        self._contexts: dict[str, ConversationContext] = {}
        self._locks = SessionLocks()

    def get(self, session_id: str) -> ConversationContext | None:
        """
        Return a snapshot of the session context.

        Args:
            session_id (str): The session id.

        Returns:
            ConversationContext | None: The snapshot, or None when not found.
        """
        with self._locks.hold(session_id):
            context = self._contexts.get(session_id)
            return context.snapshot() if context is not None else None

    def get_or_create(self, session_id: str) -> ConversationContext:
        with self._locks.hold(session_id):
            context = self._contexts.get(session_id)
            if context is None:
                context = ConversationContext(session_id=session_id)
                self._contexts[session_id] = context
                logger.debug("Created conversation context for session {}", session_id)
            return context.snapshot()

    def append(self, session_id: str, item: QuestionHistoryItem) -> QuestionHistoryItem:
        """
        Append a finalized turn, creating the context if absent.

        Args:
            session_id (str): The session id.
            item (QuestionHistoryItem): The finalized turn.

        Returns:
            QuestionHistoryItem: The item as stored, with its assigned turn index.
        """
        with self._locks.hold(session_id):
            context = self._contexts.get(session_id)
            if context is None:
                context = ConversationContext(session_id=session_id)
                self._contexts[session_id] = context
            return apply_append(context, item)

    def delete(self, session_id: str) -> bool:
        with self._locks.hold(session_id):
            return self._contexts.pop(session_id, None) is not None

    def session_ids(self) -> list[str]:
        return list(self._contexts)

    def __len__(self) -> int:
        return len(self._contexts)
