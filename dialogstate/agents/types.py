"""Shared types for turn analysis."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Protocol

from dialogstate.core.state.context import (
    ConversationContext,
    CorrectionIntensity,
    IntentAnalysis,
    QuestionHistoryItem,
)

ReferenceType = Literal["direct", "implicit", "none"]
ConfidenceLevel = Literal["high", "medium", "low"]
ConflictType = Literal["factual", "logical", "contextual"]


class TurnStage(str, Enum):
    """Per-turn processing stages, in order."""

    RECEIVED = "received"
    TOPIC_ANALYZED = "topic_analyzed"
    INTENT_CLASSIFIED = "intent_classified"
    CORRECTION_CONFIRMED = "correction_confirmed"
    ANSWER_PRODUCED = "answer_produced"
    CONSISTENCY_CHECKED = "consistency_checked"
    HISTORY_APPENDED = "history_appended"


@dataclass
class ContextAnalysis:
    """Topic continuity of a question against the stored history."""

    topic: str
    is_topic_shift: bool = False
    topic_start_turn: int = 0
    related_to_history: bool = False
    reference_type: ReferenceType = "none"
    referenced_turn: int | None = None
    keywords: list[str] = field(default_factory=list)
    topic_continuity: float = 0.0
    confidence: float = 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "is_topic_shift": self.is_topic_shift,
            "topic_start_turn": self.topic_start_turn,
            "related_to_history": self.related_to_history,
            "reference_type": self.reference_type,
            "referenced_turn": self.referenced_turn,
            "keywords": list(self.keywords),
            "topic_continuity": self.topic_continuity,
            "confidence": self.confidence,
        }


@dataclass
class ComplexityScore:
    """Question complexity estimate."""

    score: float
    factors: list[str]
    threshold: float
    requires_research: bool


@dataclass
class QuestionTypeAnalysis:
    """Best-scoring intent category with the categories that matched."""

    type: str
    confidence: float
    indicators: list[str] = field(default_factory=list)


@dataclass
class CorrectionDetection:
    """Result of confirming a user correction."""

    is_correction: bool
    intensity: CorrectionIntensity = CorrectionIntensity.NONE
    confidence: float = 0.0
    suggested_response: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_correction": self.is_correction,
            "intensity": str(self.intensity),
            "confidence": self.confidence,
            "suggested_response": self.suggested_response,
        }


@dataclass
class RecoveryStrategy:
    """Recommended remediation for a recurring error pattern."""

    strategy: str
    confidence: float
    actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "confidence": self.confidence,
            "actions": list(self.actions),
        }


@dataclass
class ContextualError:
    """Likely error in a candidate answer."""

    has_error: bool
    error_type: str = "none"
    confidence: float = 0.0
    recommendation: str = ""


@dataclass
class RecoveryReport:
    """Error summary over one session's history."""

    total_errors: int
    errors_by_type: dict[str, int]
    recovery_rate: float
    recommendations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "errors_by_type": dict(self.errors_by_type),
            "recovery_rate": self.recovery_rate,
            "recommendations": list(self.recommendations),
        }


@dataclass
class ConsistencyCheck:
    """Outcome of validating a candidate answer against history."""

    is_consistent: bool
    conflicting_answers: list[QuestionHistoryItem] = field(default_factory=list)
    confidence_level: ConfidenceLevel = "medium"
    recommends_research: bool = False
    error_type: ConflictType | None = None
    conflict_details: str | None = None
    research_requested: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_consistent": self.is_consistent,
            "conflicting_turns": [c.turn_index for c in self.conflicting_answers],
            "confidence_level": self.confidence_level,
            "recommends_research": self.recommends_research,
            "error_type": self.error_type,
            "conflict_details": self.conflict_details,
            "research_requested": self.research_requested,
        }


@dataclass
class ConflictSeverity:
    """Severity of a set of conflicting answers."""

    severity: ConfidenceLevel
    score: float
    factors: list[str]


@dataclass
class RecoveryRecommendation:
    """What the caller should do after a suspected correction."""

    research_requested: bool
    correction: CorrectionDetection
    strategy: RecoveryStrategy | None = None
    message: str = ""
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "research_requested": self.research_requested,
            "correction": self.correction.to_dict(),
            "strategy": self.strategy.to_dict() if self.strategy else None,
            "message": self.message,
            "reason": self.reason,
        }


@dataclass
class TurnAnalysis:
    """Top-level result for a single analyzed turn."""

    session_id: str
    question: str
    topic: str
    context_analysis: ContextAnalysis
    intent_analysis: IntentAnalysis
    recovery_recommendation: RecoveryRecommendation | None = None
    stages: list[TurnStage] = field(default_factory=list)

    @property
    def correction(self) -> CorrectionDetection | None:
        rec = self.recovery_recommendation
        return rec.correction if rec else None

    @property
    def research_requested(self) -> bool:
        rec = self.recovery_recommendation
        return bool(rec and rec.research_requested)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "question": self.question,
            "topic": self.topic,
            "context_analysis": self.context_analysis.to_dict(),
            "intent_analysis": self.intent_analysis.to_dict(),
            "recovery_recommendation": (
                self.recovery_recommendation.to_dict()
                if self.recovery_recommendation
                else None
            ),
            "stages": [s.value for s in self.stages],
        }


class ContextAnalyzerAgent(Protocol):
    """Interface for topic tracking."""

    def analyze_context(
        self,
        question: str,
        history: list[QuestionHistoryItem],
        current_topic: str | None = None,
    ) -> ContextAnalysis:  # pragma: no cover - interface
        """Decide the topic of a question and whether it shifts."""
        ...


class IntentRecognizerAgent(Protocol):
    """Interface for intent classification."""

    def recognize_intent(
        self, question: str, context: ConversationContext
    ) -> IntentAnalysis:  # pragma: no cover - interface
        """Classify a question and detect correction signals."""
        ...


class CorrectionAgent(Protocol):
    """Interface for correction confirmation and recovery."""

    def detect_user_correction(
        self, question: str, intent_analysis: IntentAnalysis | None = None
    ) -> CorrectionDetection:  # pragma: no cover - interface
        """Confirm whether a question corrects a previous answer."""
        ...

    def learn_error_pattern(
        self, pattern_key: str, context: ConversationContext | None = None
    ) -> Any:  # pragma: no cover - interface
        """Record one occurrence of an error pattern."""
        ...

    def suggest_recovery_strategy(
        self, pattern_key: str, context: ConversationContext | None = None
    ) -> RecoveryStrategy:  # pragma: no cover - interface
        """Recommend a remediation for a pattern."""
        ...


class ConsistencyAgent(Protocol):
    """Interface for answer consistency validation."""

    def validate_consistency(
        self, candidate_answer: str, context: ConversationContext
    ) -> ConsistencyCheck:  # pragma: no cover - interface
        """Check a candidate answer against the session history."""
        ...
