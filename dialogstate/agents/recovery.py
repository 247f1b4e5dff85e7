"""Correction confirmation, error-pattern learning and recovery reporting."""

import math
import random
import threading
from datetime import datetime, timedelta
from typing import Any, Protocol, Sequence

from loguru import logger

from dialogstate.agents.types import (
    ContextualError,
    CorrectionAgent,
    CorrectionDetection,
    RecoveryReport,
    RecoveryStrategy,
)
from dialogstate.core.error_patterns import ErrorPatternTable
from dialogstate.core.patterns import PatternBundle, PatternRule, load_pattern_bundle
from dialogstate.core.state.context import (
    ConversationContext,
    CorrectionIntensity,
    ErrorPattern,
    Intent,
    IntentAnalysis,
    QuestionHistoryItem,
    utcnow,
)

# Share of detected errors assumed to be recovered by a later turn.
ASSUMED_RECOVERY_RATE = 0.7
ERROR_CONFIDENCE_THRESHOLD = 0.6

_process_error_patterns = ErrorPatternTable()


def default_error_pattern_table() -> ErrorPatternTable:
    """
    Return the error-pattern table shared by every session in the process.

    Returns:
        ErrorPatternTable: The process-wide table.
    """
    return _process_error_patterns


class TemplateSelector(Protocol):
    """Interface for picking a response template from a pool."""

    def choose(
        self, templates: Sequence[str], key: str = ""
    ) -> str:  # pragma: no cover - interface
        """Return one template from a non-empty pool."""
        ...


class RandomTemplateSelector(TemplateSelector):
    """
    Random choice with an optional seed for reproducible output.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def choose(self, templates: Sequence[str], key: str = "") -> str:
        if not templates:
            return ""
        with self._lock:
            return self._rng.choice(list(templates))


class RoundRobinTemplateSelector(TemplateSelector):
    """
    Cycles through each pool in order, keeping one cursor per key.
    """

    def __init__(self) -> None:
        self._cursors: dict[str, int] = {}
        self._lock = threading.Lock()

    def choose(self, templates: Sequence[str], key: str = "") -> str:
        if not templates:
            return ""
        with self._lock:
            cursor = self._cursors.get(key, 0)
            self._cursors[key] = cursor + 1
        return templates[cursor % len(templates)]


def build_template_selector(
    strategy: str = "random", seed: int | None = None
) -> TemplateSelector:
    """
    Build a template selector by name.

    Args:
        strategy (str, optional): "random" or "round_robin". Defaults to "random".
        seed (int | None, optional): Seed for the random selector. Defaults to None.

    Returns:
        TemplateSelector: The selector.

    Raises:
        ValueError: If the strategy is unknown.
    """
    if strategy == "random":
        return RandomTemplateSelector(seed)
    if strategy in {"round_robin", "round-robin"}:
        return RoundRobinTemplateSelector()
    logger.error("ValueError: Unknown apology strategy: {}", strategy)
    raise ValueError(f"Unknown apology strategy: {strategy}")


def _rule_confidence(rule: PatternRule) -> float:
    return rule.confidence if rule.confidence is not None else 0.5


class ErrorRecoverySystem(CorrectionAgent):
    """
    Secondary correction detector and long-term error tracker.

    The error-pattern table is process-wide by default so recurring mistakes
    escalate the recommended strategy across sessions.
    """

    def __init__(
        self,
        patterns: PatternBundle | None = None,
        error_patterns: ErrorPatternTable | None = None,
        selector: TemplateSelector | None = None,
        recent_window: int = 3,
    ) -> None:
        """
        Initialize the ErrorRecoverySystem.

        Args:
            patterns (PatternBundle | None, optional): Lexical tables. Defaults to the built-in English bundle.
            error_patterns (ErrorPatternTable | None, optional): Error-pattern table. Defaults to the process-wide table.
            selector (TemplateSelector | None, optional): Apology template selector. Defaults to an unseeded random selector.
            recent_window (int, optional): Answers checked for contradictions. Defaults to 3.
        """
        self.patterns = patterns or load_pattern_bundle()
        self.error_patterns = (
            error_patterns if error_patterns is not None else default_error_pattern_table()
        )
        self.selector = selector or RandomTemplateSelector()
        self.recent_window = recent_window

    def detect_user_correction(
        self, question: str, intent_analysis: IntentAnalysis | None = None
    ) -> CorrectionDetection:
        """
        Confirm whether a question corrects a previous answer.

        When the intent analysis already flags a challenge, the highest
        confidence match wins and must exceed 0.5. Otherwise the first match in
        table order is used.

        Args:
            question (str): The user's message.
            intent_analysis (IntentAnalysis | None, optional): Analysis of the same message. Defaults to None.

        Returns:
            CorrectionDetection: The detection; ``is_correction`` is False when nothing matched.
        """
        try:
            matches = self.patterns.user_correction.matching_rules(question)
            if not matches:
                return CorrectionDetection(is_correction=False)

            if intent_analysis is not None and intent_analysis.is_challenging_previous_answer:
                best = max(matches, key=_rule_confidence)
                if _rule_confidence(best) <= 0.5:
                    return CorrectionDetection(is_correction=False)
            else:
                best = matches[0]

            intensity = CorrectionIntensity.parse(best.label or best.category)
            return CorrectionDetection(
                is_correction=True,
                intensity=intensity,
                confidence=_rule_confidence(best),
                suggested_response=self.generate_apology(intensity),
            )
        except Exception as e:
            logger.exception("Error detecting user correction: {}", e)
            return CorrectionDetection(is_correction=False)

    def generate_apology(
        self, intensity: CorrectionIntensity | str = CorrectionIntensity.MEDIUM
    ) -> str:
        """
        Pick an apology for the given intensity.

        Args:
            intensity (CorrectionIntensity | str, optional): Intensity tier. Defaults to medium.

        Returns:
            str: The apology; tiers without a pool use the medium pool.
        """
        key = str(intensity)
        pool = self.patterns.apologies.get(key)
        if not pool:
            key = CorrectionIntensity.MEDIUM.value
            pool = self.patterns.apologies.get(key, ())
        return self.selector.choose(pool, key)

    def acknowledge_error(self) -> str:
        return self.generate_apology(CorrectionIntensity.MEDIUM)

    def request_correction(self) -> str:
        return self.patterns.message("research_notice")

    def learn_error_pattern(
        self, pattern_key: str, context: ConversationContext | None = None
    ) -> ErrorPattern:
        """
        Count one more occurrence of an error pattern.

        Args:
            pattern_key (str): The pattern name.
            context (ConversationContext | None, optional): Session the error occurred in. Defaults to None.

        Returns:
            ErrorPattern: A copy of the updated pattern.
        """
        pattern = self.error_patterns.increment(pattern_key)
        logger.info(
            "Learned error pattern {} (frequency {}, session {})",
            pattern_key,
            pattern.frequency,
            context.session_id if context else None,
        )
        return pattern

    def _actions(self, strategy: str) -> list[str]:
        return list(self.patterns.recovery_actions.get(strategy, ()))

    def suggest_recovery_strategy(
        self, pattern_key: str, context: ConversationContext | None = None
    ) -> RecoveryStrategy:
        """
        Recommend a remediation based on how often a pattern occurred.

        Args:
            pattern_key (str): The pattern name.
            context (ConversationContext | None, optional): Session asking for the strategy. Defaults to None.

        Returns:
            RecoveryStrategy: Strategy name, confidence and suggested actions.
        """
        pattern = self.error_patterns.get(pattern_key)
        if pattern is None:
            strategy, confidence = "general_verification", 0.5
        elif pattern.frequency >= 3:
            strategy, confidence = "high_priority_research", 0.8
        elif pattern.frequency >= 2:
            strategy, confidence = "enhanced_verification", 0.7
        else:
            strategy, confidence = "standard_correction", 0.6
        return RecoveryStrategy(
            strategy=strategy, confidence=confidence, actions=self._actions(strategy)
        )

    def has_low_confidence_markers(self, answer: str) -> bool:
        return self.patterns.low_confidence.matches(answer)

    def detect_contextual_error(
        self,
        new_answer: str,
        context: ConversationContext,
        user_feedback: str | None = None,
    ) -> ContextualError:
        """
        Look for a likely error in a candidate answer.

        User feedback is checked first, then contradictions with the most
        recent answers, then hedging language. The first hit wins.

        Args:
            new_answer (str): The candidate answer.
            context (ConversationContext): The session context.
            user_feedback (str | None, optional): Free-text feedback from the user. Defaults to None.

        Returns:
            ContextualError: The detected error, or ``has_error=False``.
        """
        try:
            if user_feedback:
                correction = self.detect_user_correction(
                    user_feedback,
                    IntentAnalysis(
                        primary_intent=Intent.CORRECTION,
                        is_challenging_previous_answer=True,
                        confidence=0.8,
                    ),
                )
                if correction.is_correction:
                    return ContextualError(
                        has_error=True,
                        error_type="user_reported",
                        confidence=correction.confidence,
                        recommendation=correction.suggested_response,
                    )

            for item in context.recent(self.recent_window):
                if self.patterns.has_contradiction(new_answer, item.answer):
                    return ContextualError(
                        has_error=True,
                        error_type="consistency_error",
                        confidence=0.7,
                        recommendation=self.patterns.message("consistency_error"),
                    )

            if self.has_low_confidence_markers(new_answer):
                return ContextualError(
                    has_error=True,
                    error_type="low_confidence",
                    confidence=0.6,
                    recommendation=self.patterns.message("low_confidence"),
                )
        except Exception as e:
            logger.exception("Error detecting contextual error: {}", e)
        return ContextualError(has_error=False)

    def _classify_error(
        self, item: QuestionHistoryItem, earlier: list[QuestionHistoryItem]
    ) -> str:
        if item.was_researched and item.confidence < 0.5:
            return "research_error"
        if any(self.patterns.has_contradiction(item.answer, e.answer) for e in earlier):
            return "consistency_error"
        if item.confidence < 0.4:
            return "low_confidence_error"
        if item.intent_analysis and item.intent_analysis.is_challenging_previous_answer:
            return "user_challenged_error"
        return "general_error"

    def generate_recovery_report(self, context: ConversationContext) -> RecoveryReport:
        """
        Summarize likely errors over a session's history.

        Turns below 0.6 confidence count as errors. The recovery rate assumes
        ``ASSUMED_RECOVERY_RATE`` of them were recovered.

        Args:
            context (ConversationContext): The session context.

        Returns:
            RecoveryReport: Error counts, estimated recovery rate and recommendations.
        """
        errors_by_type: dict[str, int] = {}
        total = 0
        history = context.question_history
        for i, item in enumerate(history):
            if item.confidence < ERROR_CONFIDENCE_THRESHOLD:
                total += 1
                error_type = self._classify_error(item, history[:i])
                errors_by_type[error_type] = errors_by_type.get(error_type, 0) + 1

        recovered = math.floor(total * ASSUMED_RECOVERY_RATE)
        recovery_rate = recovered / total if total else 1.0

        recommendations: list[str] = []
        if total > 5:
            recommendations.append(self.patterns.message("recommend_more_research"))
        if errors_by_type.get("consistency_error", 0) > 2:
            recommendations.append(self.patterns.message("recommend_consistency_checks"))
        if recovery_rate < 0.8:
            recommendations.append(
                self.patterns.message("recommend_recovery_improvement")
            )

        return RecoveryReport(
            total_errors=total,
            errors_by_type=errors_by_type,
            recovery_rate=round(recovery_rate, 2),
            recommendations=recommendations,
        )

    def error_pattern_stats(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Summarize the error-pattern table.

        Args:
            now (datetime | None, optional): Reference time for the last-24h count. Defaults to now.

        Returns:
            dict[str, Any]: total_patterns, most_frequent (top 5) and recent_errors.
        """
        now = now or utcnow()
        patterns = self.error_patterns.all()
        most_frequent = sorted(patterns, key=lambda p: p.frequency, reverse=True)[:5]
        return {
            "total_patterns": len(patterns),
            "most_frequent": most_frequent,
            "recent_errors": sum(
                1
                for p in patterns
                if p.frequency > 0 and now - p.last_occurrence < timedelta(hours=24)
            ),
        }

    def reset(self) -> None:
        self.error_patterns.reset()
