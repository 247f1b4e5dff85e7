from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator, cast

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from dialogstate.core.state.base import _make_session_maker
from dialogstate.core.state.context import (
    ConversationContext,
    IntentAnalysis,
    QuestionHistoryItem,
)
from dialogstate.core.state.conversation import ConversationRecord
from dialogstate.core.state.turn import TurnRecord
from dialogstate.core.store import ConversationContextStore, SessionLocks, apply_append


@dataclass(slots=True)
class SqlContextStore(ConversationContextStore):
    """
    Conversation contexts persisted through SQLAlchemy.
    """

    db_url: str = "sqlite:///dialogstate_sessions.db"
    _SessionMaker: Any | None = field(default=None, init=False, repr=False)
    _locks: SessionLocks = field(default_factory=SessionLocks, init=False, repr=False)

    def init_session_store(self, db_url: str | None = None) -> None:
        """
        Initialize the session store.

        Args:
           db_url (str | None): Optional database URL to override default.
        """
        if db_url:
            self.db_url = db_url
        self._SessionMaker = _make_session_maker(self.db_url)

    def init_session_store_if_needed(self) -> None:
        """
        Initialize the session store if it has not been initialized yet.
        """
        if self._SessionMaker is None:
            self.init_session_store()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Yields:
            Iterator[Session]: A new database session.

        Raises:
            RuntimeError: If the SessionMaker is not initialized.
        """
        self.init_session_store_if_needed()
        if self._SessionMaker is None:
            raise RuntimeError("SessionMaker is not initialized.")
        session = self._SessionMaker()
        try:
            yield session
        finally:
            session.close()

    def _load_or_create_convo(
        self, session: Session, session_id: str
    ) -> ConversationRecord:
        """
        Load an existing conversation or create a new one.

        Args:
            session (Session): The database session.
            session_id (str): The ID of the session.

        Returns:
            ConversationRecord: The loaded or created conversation.
        """
        conv = session.get(ConversationRecord, session_id)
        if conv is None:
            conv = ConversationRecord(id=session_id, current_topic="", topic_start_turn=0)
            session.add(conv)
            session.commit()
        return conv

    def get(self, session_id: str) -> ConversationContext | None:
        """
        Load the context of a session.

        Args:
            session_id (str): The ID of the session.

        Returns:
            ConversationContext | None: The context, or None when not found.
        """
        with self._session_scope() as s:
            conv = s.get(ConversationRecord, session_id)
            if conv is None:
                return None
            return _to_context(conv)

    def get_or_create(self, session_id: str) -> ConversationContext:
        with self._locks.hold(session_id):
            with self._session_scope() as s:
                conv = self._load_or_create_convo(s, session_id)
                return _to_context(conv)

    def append(self, session_id: str, item: QuestionHistoryItem) -> QuestionHistoryItem:
        """
        Persist a finalized turn.

        Args:
            session_id (str): The ID of the session.
            item (QuestionHistoryItem): The finalized turn.

        Returns:
            QuestionHistoryItem: The item as stored, with its assigned turn index.
        """
        with self._locks.hold(session_id):
            with self._session_scope() as s:
                conv = self._load_or_create_convo(s, session_id)
                context = _to_context(conv)
                stored = apply_append(context, item)

                s.add(
                    TurnRecord(
                        conversation_id=session_id,
                        idx=stored.turn_index,
                        question=stored.question,
                        answer=stored.answer,
                        topic=stored.topic,
                        confidence=stored.confidence,
                        was_researched=stored.was_researched,
                        intent_analysis=(
                            json.dumps(stored.intent_analysis.to_dict(), ensure_ascii=False)
                            if stored.intent_analysis
                            else None
                        ),
                        created_at=_as_utc(stored.timestamp),
                    )
                )
                conv.current_topic = cast(Any, context.current_topic)
                conv.topic_start_turn = cast(Any, context.topic_start_turn)
                conv.last_updated = cast(Any, _as_utc(context.last_updated))
                s.commit()
                return stored

    def delete(self, session_id: str) -> bool:
        with self._locks.hold(session_id):
            with self._session_scope() as s:
                conv = s.get(ConversationRecord, session_id)
                if conv is None:
                    return False
                s.delete(conv)
                s.commit()
                logger.info("Deleted conversation {}", session_id)
                return True

    def session_ids(self) -> list[str]:
        with self._session_scope() as s:
            return [str(row) for row in s.scalars(select(ConversationRecord.id))]


def _as_utc(value: datetime) -> datetime:
    # Columns are naive; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_context(conv: ConversationRecord) -> ConversationContext:
    history: list[QuestionHistoryItem] = []
    for t in conv.turns:
        raw = cast(str | None, t.intent_analysis)
        history.append(
            QuestionHistoryItem(
                turn_index=cast(int, t.idx),
                question=cast(str, t.question),
                answer=cast(str, t.answer),
                topic=cast(str, t.topic) or "",
                confidence=cast(float, t.confidence),
                was_researched=bool(t.was_researched),
                intent_analysis=IntentAnalysis.from_dict(json.loads(raw)) if raw else None,
                timestamp=_as_utc(cast(datetime, t.created_at)),
            )
        )
    return ConversationContext(
        session_id=cast(str, conv.id),
        current_topic=cast(str, conv.current_topic) or "",
        topic_start_turn=cast(int, conv.topic_start_turn),
        question_history=history,
        last_updated=_as_utc(cast(datetime, conv.last_updated)),
    )
