"""Conversation state value objects and their plain-data layout."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value:
        return utcnow()
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class Intent(StrEnum):
    """Classified purpose of an incoming message."""

    QUESTION = "question"
    CORRECTION = "correction"
    CLARIFICATION = "clarification"
    FOLLOWUP = "followup"


class CorrectionIntensity(StrEnum):
    """How strongly a message disputes the previous answer."""

    NONE = "none"
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"
    CORRECTION = "correction"
    REVIEW = "review"
    DOUBT = "doubt"

    @classmethod
    def parse(cls, value: str | None) -> CorrectionIntensity:
        try:
            return cls(value or "none")
        except ValueError:
            return cls.NONE


@dataclass(frozen=True)
class IntentAnalysis:
    """
    Intent classification of one user message.

    ``referenced_turn`` is a weak reference: the turn index of the history item
    the message points at, resolved against the owning context on demand.
    """

    primary_intent: Intent = Intent.QUESTION
    is_challenging_previous_answer: bool = False
    referenced_turn: int | None = None
    implicit_context: tuple[str, ...] = ()
    confidence: float = 0.5
    correction_patterns: tuple[str, ...] = ()

    def resolve_referenced(
        self, context: ConversationContext
    ) -> QuestionHistoryItem | None:
        """
        Look up the referenced history item in a context.

        Args:
            context (ConversationContext): The owning conversation context.

        Returns:
            QuestionHistoryItem | None: The referenced item, if it still exists.
        """
        if self.referenced_turn is None:
            return None
        return context.find_turn(self.referenced_turn)

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_intent": str(self.primary_intent),
            "is_challenging_previous_answer": self.is_challenging_previous_answer,
            "referenced_turn": self.referenced_turn,
            "implicit_context": list(self.implicit_context),
            "confidence": self.confidence,
            "correction_patterns": list(self.correction_patterns),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IntentAnalysis:
        referenced = data.get("referenced_turn")
        return cls(
            primary_intent=Intent(data.get("primary_intent", "question")),
            is_challenging_previous_answer=bool(
                data.get("is_challenging_previous_answer", False)
            ),
            referenced_turn=int(referenced) if referenced is not None else None,
            implicit_context=tuple(data.get("implicit_context", [])),
            confidence=float(data.get("confidence", 0.5)),
            correction_patterns=tuple(data.get("correction_patterns", [])),
        )


@dataclass(frozen=True)
class QuestionHistoryItem:
    """
    One finalized question/answer turn. Immutable once appended.
    """

    turn_index: int
    question: str
    answer: str
    topic: str = ""
    confidence: float = 0.5
    was_researched: bool = False
    intent_analysis: IntentAnalysis | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def with_turn_index(self, turn_index: int) -> QuestionHistoryItem:
        return replace(self, turn_index=turn_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn_index": self.turn_index,
            "question": self.question,
            "answer": self.answer,
            "topic": self.topic,
            "confidence": self.confidence,
            "was_researched": self.was_researched,
            "intent_analysis": (
                self.intent_analysis.to_dict() if self.intent_analysis else None
            ),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionHistoryItem:
        intent = data.get("intent_analysis")
        return cls(
            turn_index=int(data["turn_index"]),
            question=str(data.get("question", "")),
            answer=str(data.get("answer", "")),
            topic=str(data.get("topic") or ""),
            confidence=float(data.get("confidence", 0.5)),
            was_researched=bool(data.get("was_researched", False)),
            intent_analysis=IntentAnalysis.from_dict(intent) if intent else None,
            timestamp=_parse_ts(data.get("timestamp")),
        )


@dataclass
class ConversationContext:
    """
    Per-session dialogue state.

    ``question_history`` is append-only; ``question_history[i].turn_index == i``.
    """

    session_id: str
    current_topic: str = ""
    topic_start_turn: int = 0
    question_history: list[QuestionHistoryItem] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def next_turn_index(self) -> int:
        return len(self.question_history)

    @property
    def last_item(self) -> QuestionHistoryItem | None:
        return self.question_history[-1] if self.question_history else None

    def find_turn(self, turn_index: int) -> QuestionHistoryItem | None:
        """
        Return the history item with the given turn index.

        Args:
            turn_index (int): The turn index to find.

        Returns:
            QuestionHistoryItem | None: The item, or None if out of range.
        """
        if 0 <= turn_index < len(self.question_history):
            item = self.question_history[turn_index]
            if item.turn_index == turn_index:
                return item
        for item in self.question_history:
            if item.turn_index == turn_index:
                return item
        return None

    def recent(self, count: int) -> list[QuestionHistoryItem]:
        if count <= 0:
            return []
        return list(self.question_history[-count:])

    def snapshot(self) -> ConversationContext:
        """
        Return a copy that is safe to read while the original keeps growing.

        Returns:
            ConversationContext: A shallow copy with its own history list.
        """
        return ConversationContext(
            session_id=self.session_id,
            current_topic=self.current_topic,
            topic_start_turn=self.topic_start_turn,
            question_history=list(self.question_history),
            last_updated=self.last_updated,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to the plain persisted layout.

        Returns:
            dict[str, Any]: session_id, current_topic, topic_start_turn, question_history, last_updated.
        """
        return {
            "session_id": self.session_id,
            "current_topic": self.current_topic,
            "topic_start_turn": self.topic_start_turn,
            "question_history": [item.to_dict() for item in self.question_history],
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationContext:
        return cls(
            session_id=str(data["session_id"]),
            current_topic=str(data.get("current_topic") or ""),
            topic_start_turn=int(data.get("topic_start_turn", 0)),
            question_history=[
                QuestionHistoryItem.from_dict(item)
                for item in data.get("question_history", [])
            ],
            last_updated=_parse_ts(data.get("last_updated")),
        )


@dataclass
class ErrorPattern:
    """
    Process-wide record of a recurring error kind.
    """

    pattern_name: str
    frequency: int = 0
    last_occurrence: datetime = field(default_factory=utcnow)
    correction_strategy: str = "additional_verification"

    def copy(self) -> ErrorPattern:
        return replace(self)
