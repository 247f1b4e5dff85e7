"""Answer consistency validation against the session history."""

import re
from datetime import datetime, timedelta

from loguru import logger

from dialogstate.agents.types import (
    ConfidenceLevel,
    ConflictSeverity,
    ConflictType,
    ConsistencyAgent,
    ConsistencyCheck,
)
from dialogstate.core.patterns import PatternBundle, load_pattern_bundle
from dialogstate.core.state.context import (
    ConversationContext,
    QuestionHistoryItem,
    clamp,
    utcnow,
)

NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
NUMBER_CONTEXT_CHARS = 20


class ConsistencyValidator(ConsistencyAgent):
    """
    Flags answers that contradict earlier answers in the same session.

    Logical conflicts use the shared polarity-pair table. Factual conflicts
    are different numbers quoted next to the same keyword.
    """

    def __init__(
        self,
        patterns: PatternBundle | None = None,
        high_threshold: float = 0.8,
        medium_threshold: float = 0.6,
        low_threshold: float = 0.4,
    ) -> None:
        """
        Initialize the ConsistencyValidator.

        Args:
            patterns (PatternBundle | None, optional): Lexical tables. Defaults to the built-in English bundle.
            high_threshold (float, optional): Answer confidence above which a conflict counts as high-confidence. Defaults to 0.8.
            medium_threshold (float, optional): Severity below which confidence is medium. Defaults to 0.6.
            low_threshold (float, optional): Severity below which confidence stays high. Defaults to 0.4.
        """
        self.patterns = patterns or load_pattern_bundle()
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold
        self.low_threshold = low_threshold

    def _keywords(self, text: str) -> set[str]:
        return set(self.patterns.keywords.extract(text))

    def _number_contexts(self, text: str) -> list[tuple[str, set[str]]]:
        contexts = []
        for match in NUMBER_RE.finditer(text):
            start = max(0, match.start() - NUMBER_CONTEXT_CHARS)
            end = min(len(text), match.end() + NUMBER_CONTEXT_CHARS)
            contexts.append((match.group(0), self._keywords(text[start:end])))
        return contexts

    def has_number_conflict(self, first: str, second: str) -> bool:
        """
        Return True if the texts quote different numbers about the same keyword.

        Args:
            first (str): One answer.
            second (str): Another answer.

        Returns:
            bool: Whether a numeric conflict was found.
        """
        for number1, keywords1 in self._number_contexts(first):
            for number2, keywords2 in self._number_contexts(second):
                if number1 != number2 and keywords1 & keywords2:
                    return True
        return False

    def has_logical_contradiction(self, first: str, second: str) -> bool:
        """
        Return True if the texts take opposite sides of a polarity pair.

        When both texts mention domain keywords they must share one, so
        statements about unrelated things never conflict.

        Args:
            first (str): One answer.
            second (str): Another answer.

        Returns:
            bool: Whether a logical contradiction was found.
        """
        if not self.patterns.has_contradiction(first, second):
            return False
        keywords1, keywords2 = self._keywords(first), self._keywords(second)
        if keywords1 and keywords2:
            return bool(keywords1 & keywords2)
        return True

    def _confidence_level(
        self, conflicts: list[QuestionHistoryItem]
    ) -> ConfidenceLevel:
        if not conflicts:
            return "high"
        severity = sum(1 - c.confidence for c in conflicts) / len(conflicts)
        if severity < self.low_threshold:
            return "high"
        if severity < self.medium_threshold:
            return "medium"
        return "low"

    @staticmethod
    def _error_type(
        factual: list[QuestionHistoryItem], logical: list[QuestionHistoryItem]
    ) -> ConflictType | None:
        if factual and logical:
            return "contextual"
        if factual:
            return "factual"
        if logical:
            return "logical"
        return None

    @staticmethod
    def _conflict_details(conflicts: list[QuestionHistoryItem]) -> str | None:
        if not conflicts:
            return None
        parts = [
            f'turn {c.turn_index}: contradicts "{c.question[:30]}..."' for c in conflicts
        ]
        return f"{len(conflicts)} conflicts found: {', '.join(parts)}"

    def validate_consistency(
        self, candidate_answer: str, context: ConversationContext
    ) -> ConsistencyCheck:
        """
        Check a candidate answer against every earlier answer in the session.

        Args:
            candidate_answer (str): The answer about to be returned.
            context (ConversationContext): The session context.

        Returns:
            ConsistencyCheck: Conflicts found; consistent with medium confidence if validation fails.
        """
        try:
            factual: list[QuestionHistoryItem] = []
            logical: list[QuestionHistoryItem] = []
            for item in context.question_history:
                if self.has_number_conflict(candidate_answer, item.answer):
                    factual.append(item)
                if self.has_logical_contradiction(candidate_answer, item.answer):
                    logical.append(item)

            flagged = {c.turn_index for c in factual} | {c.turn_index for c in logical}
            conflicts = [
                item for item in context.question_history if item.turn_index in flagged
            ]
            if conflicts:
                logger.info(
                    "Answer conflicts with turns {} in session {}",
                    sorted(flagged),
                    context.session_id,
                )
            return ConsistencyCheck(
                is_consistent=not conflicts,
                conflicting_answers=conflicts,
                confidence_level=self._confidence_level(conflicts),
                recommends_research=bool(conflicts),
                error_type=self._error_type(factual, logical),
                conflict_details=self._conflict_details(conflicts),
            )
        except Exception as e:
            logger.exception("Error validating consistency: {}", e)
            return ConsistencyCheck(is_consistent=True, confidence_level="medium")

    def assess_answer_confidence(
        self, answer: str, research_data: str | None = None
    ) -> float:
        """
        Heuristic confidence of an answer.

        Args:
            answer (str): The answer text.
            research_data (str | None, optional): Research text the answer was based on. Defaults to None.

        Returns:
            float: Confidence in [0, 1].
        """
        confidence = 0.5
        length = len(answer)
        if 50 <= length <= 500:
            confidence += 0.1
        elif length < 20 or length > 1000:
            confidence -= 0.1

        keywords = self.patterns.keywords
        if NUMBER_RE.search(answer):
            confidence += 0.1
        if any(keywords.contains(answer, topic) for topic in keywords.topics):
            confidence += 0.1
        if keywords.hits(answer, keywords.general):
            confidence += 0.05

        if research_data:
            confidence += 0.2
            if len(self._keywords(research_data) & self._keywords(answer)) >= 2:
                confidence += 0.1

        if self.patterns.low_confidence.matches(answer):
            confidence -= 0.15
        return clamp(confidence)

    def analyze_conflict_severity(
        self, conflicts: list[QuestionHistoryItem], now: datetime | None = None
    ) -> ConflictSeverity:
        """
        Rate how serious a set of conflicts is.

        Args:
            conflicts (list[QuestionHistoryItem]): Conflicting history items.
            now (datetime | None, optional): Reference time for recency. Defaults to now.

        Returns:
            ConflictSeverity: ``high`` from 40 points, ``medium`` from 20.
        """
        if not conflicts:
            return ConflictSeverity(severity="low", score=0.0, factors=[])

        now = now or utcnow()
        factors = [f"{len(conflicts)} conflicts"]
        score = 10.0 * len(conflicts)

        recent = [c for c in conflicts if now - c.timestamp < timedelta(hours=24)]
        if recent:
            score += 15
            factors.append(f"{len(recent)} recent conflicts")

        confident = [c for c in conflicts if c.confidence > self.high_threshold]
        if confident:
            score += 20
            factors.append(f"{len(confident)} high-confidence conflicts")

        if score >= 40:
            severity: ConfidenceLevel = "high"
        elif score >= 20:
            severity = "medium"
        else:
            severity = "low"
        return ConflictSeverity(severity=severity, score=score, factors=factors)
