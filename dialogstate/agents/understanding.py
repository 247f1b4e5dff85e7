"""Intent recognition and correction signal detection."""

from typing import Any

from loguru import logger

from dialogstate.agents.context import item_text, overlap_ratio
from dialogstate.agents.types import IntentRecognizerAgent, QuestionTypeAnalysis
from dialogstate.core.patterns import PatternBundle, load_pattern_bundle
from dialogstate.core.state.context import (
    ConversationContext,
    CorrectionIntensity,
    Intent,
    IntentAnalysis,
    QuestionHistoryItem,
    clamp,
)

INTENT_ORDER: tuple[Intent, ...] = (
    Intent.CORRECTION,
    Intent.CLARIFICATION,
    Intent.FOLLOWUP,
    Intent.QUESTION,
)


class IntentRecognizer(IntentRecognizerAgent):
    """
    Table-driven intent classification.

    Classification is a pure function of the question, the context and the
    pattern tables; identical inputs always give identical analyses.
    """

    def __init__(
        self,
        patterns: PatternBundle | None = None,
        recent_window: int = 3,
        overlap_threshold: float = 0.3,
    ) -> None:
        """
        Initialize the IntentRecognizer.

        Args:
            patterns (PatternBundle | None, optional): Lexical tables. Defaults to the built-in English bundle.
            recent_window (int, optional): Turns scanned when resolving a referenced answer. Defaults to 3.
            overlap_threshold (float, optional): Keyword overlap a referenced answer must exceed. Defaults to 0.3.
        """
        self.patterns = patterns or load_pattern_bundle()
        self.recent_window = recent_window
        self.overlap_threshold = overlap_threshold

    def _keywords(self, text: str) -> list[str]:
        return self.patterns.keywords.extract(text)

    def classify_primary_intent(self, question: str) -> Intent:
        """
        Pick the intent whose pattern set matches most often.

        Args:
            question (str): The incoming question.

        Returns:
            Intent: The winning intent; ``question`` on ties and when nothing matched.
        """
        scores = self.patterns.intent.score(question)
        best = max((scores.get(i.value, 0.0) for i in INTENT_ORDER), default=0.0)
        if best <= 0:
            return Intent.QUESTION
        winners = [i for i in INTENT_ORDER if scores.get(i.value, 0.0) == best]
        if len(winners) > 1:
            return Intent.QUESTION
        return winners[0]

    def detect_correction_intent(self, question: str) -> bool:
        """
        Decide whether the question disputes a previous answer.

        Strong and medium patterns are sufficient alone; a weak pattern also
        needs an implicit reference such as "that" or "earlier". The reference
        may come from the weak phrase itself, so "is that right?" and "isn't
        that wrong?" count while a bare "are you sure?" or "really?" does not.

        Args:
            question (str): The incoming question.

        Returns:
            bool: True if the question challenges a previous answer.
        """
        table = self.patterns.correction_intensity
        if table.matches(question, "strong") or table.matches(question, "medium"):
            return True
        return table.matches(question, "weak") and self.patterns.implicit_reference.matches(
            question
        )

    def detect_correction_patterns(self, question: str) -> tuple[str, ...]:
        """
        Labels of every correction pattern present in the question.

        Args:
            question (str): The incoming question.

        Returns:
            tuple[str, ...]: ``{tier}_correction`` labels, then ``general_correction``.
        """
        labels: dict[str, None] = {}
        for rule in self.patterns.correction_intensity.matching_rules(question):
            labels.setdefault(f"{rule.label or rule.category}_correction", None)
        if self.patterns.intent.matches(question, Intent.CORRECTION.value):
            labels.setdefault("general_correction", None)
        return tuple(labels)

    def find_referenced_answer(
        self,
        question: str,
        context: ConversationContext,
        correction_intent: bool | None = None,
    ) -> int | None:
        """
        Resolve which earlier turn the question points at.

        Args:
            question (str): The incoming question.
            context (ConversationContext): The session context.
            correction_intent (bool | None, optional): Precomputed correction flag. Defaults to None.

        Returns:
            int | None: Turn index of the referenced item, or None when unresolved.
        """
        history = context.question_history
        if not history:
            return None
        if self.patterns.implicit_reference.matches(question):
            return history[-1].turn_index

        if correction_intent is None:
            correction_intent = self.detect_correction_intent(question)
        if not correction_intent:
            return None

        question_keywords = self._keywords(question)
        best: QuestionHistoryItem | None = None
        best_score = 0.0
        # newest first so ties favour the latest turn
        for item in reversed(history[-self.recent_window :]):
            score = overlap_ratio(question_keywords, self._keywords(item_text(item)))
            if best is None or score > best_score:
                best, best_score = item, score
        if best is not None and best_score > self.overlap_threshold:
            return best.turn_index
        return None

    def extract_implicit_references(
        self, question: str, history: list[QuestionHistoryItem]
    ) -> tuple[str, ...]:
        """
        Collect implicit references and keywords shared with the last answer.

        Args:
            question (str): The incoming question.
            history (list[QuestionHistoryItem]): The session history.

        Returns:
            tuple[str, ...]: Deduplicated references in first-seen order.
        """
        references: dict[str, None] = dict.fromkeys(
            self.patterns.implicit_reference.matched_texts(question)
        )
        if history:
            answer_keywords = set(self._keywords(history[-1].answer))
            for kw in self._keywords(question):
                if kw in answer_keywords:
                    references.setdefault(kw, None)
        return tuple(references)

    def _confidence(
        self,
        primary: Intent,
        challenging: bool,
        referenced: int | None,
        implicit: tuple[str, ...],
    ) -> float:
        confidence = 0.5
        if primary != Intent.QUESTION:
            confidence += 0.2
        if challenging:
            confidence += 0.2
        if referenced is not None:
            confidence += 0.15
        if len(implicit) >= 2:
            confidence += 0.1
        elif implicit:
            confidence += 0.05
        return clamp(confidence)

    def recognize_intent(
        self, question: str, context: ConversationContext
    ) -> IntentAnalysis:
        """
        Classify a question and detect correction signals.

        Args:
            question (str): The incoming question.
            context (ConversationContext): The session context.

        Returns:
            IntentAnalysis: The analysis; the default analysis if anything fails.
        """
        try:
            primary = self.classify_primary_intent(question)
            challenging = self.detect_correction_intent(question)
            referenced = self.find_referenced_answer(
                question, context, correction_intent=challenging
            )
            implicit = self.extract_implicit_references(
                question, context.question_history
            )
            return IntentAnalysis(
                primary_intent=primary,
                is_challenging_previous_answer=challenging,
                referenced_turn=referenced,
                implicit_context=implicit,
                confidence=self._confidence(primary, challenging, referenced, implicit),
                correction_patterns=self.detect_correction_patterns(question),
            )
        except Exception as e:
            logger.exception("Error recognizing intent: {}", e)
            return IntentAnalysis()

    def analyze_correction_intensity(self, question: str) -> CorrectionIntensity:
        rule = self.patterns.correction_intensity.first_match(question)
        if rule is None:
            return CorrectionIntensity.NONE
        return CorrectionIntensity.parse(rule.label or rule.category)

    def analyze_question_type(self, question: str) -> QuestionTypeAnalysis:
        """
        Describe which intent categories the question matches.

        Args:
            question (str): The incoming question.

        Returns:
            QuestionTypeAnalysis: First best category (``general`` when none), confidence ``min(score / 3, 1)``, and per-category match counts.
        """
        scores = self.patterns.intent.score(question)
        best_type, best_score = "general", 0.0
        indicators: list[str] = []
        for category, score in scores.items():
            if score > best_score:
                best_type, best_score = category, score
            if score > 0:
                indicators.append(f"{category}: {score:g} matches")
        return QuestionTypeAnalysis(
            type=best_type,
            confidence=min(best_score / 3, 1.0),
            indicators=indicators,
        )

    def recognition_stats(self) -> dict[str, Any]:
        return {
            "supported_intents": len(self.patterns.intent.categories),
            "correction_levels": len(self.patterns.correction_intensity.categories),
            "reference_patterns": len(self.patterns.implicit_reference.rules),
            "total_patterns": len(self.patterns.intent.rules),
            "pattern_version": self.patterns.version,
        }
