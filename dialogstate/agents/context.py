"""Topic tracking against the stored question history."""

from datetime import datetime, timedelta
from typing import Sequence

from loguru import logger

from dialogstate.agents.types import (
    ComplexityScore,
    ContextAnalysis,
    ContextAnalyzerAgent,
    ReferenceType,
)
from dialogstate.core.patterns import PatternBundle, load_pattern_bundle
from dialogstate.core.state.context import QuestionHistoryItem, clamp, utcnow


def overlap_ratio(current: Sequence[str], other: Sequence[str]) -> float:
    """
    Share of keywords two texts have in common.

    Args:
        current (Sequence[str]): Keywords of the current text.
        other (Sequence[str]): Keywords of the other text.

    Returns:
        float: ``common / max(len(current), len(other))``; 0 when both are empty.
    """
    denominator = max(len(current), len(other))
    if denominator == 0:
        return 0.0
    other_set = set(other)
    common = sum(1 for kw in dict.fromkeys(current) if kw in other_set)
    return common / denominator


def item_text(item: QuestionHistoryItem) -> str:
    return f"{item.question} {item.answer}"


class ContextAnalyzer(ContextAnalyzerAgent):
    """
    Keyword-table topic tracker.

    A question only shifts the topic when it names a known topic. Questions
    without topic keywords continue whatever topic is current.
    """

    def __init__(
        self,
        patterns: PatternBundle | None = None,
        recent_window: int = 3,
        reference_window: int = 5,
        continuity_decay: float = 0.7,
        complexity_threshold: float = 15.0,
    ) -> None:
        """
        Initialize the ContextAnalyzer.

        Args:
            patterns (PatternBundle | None, optional): Lexical tables. Defaults to the built-in English bundle.
            recent_window (int, optional): Turns considered for relatedness and continuity. Defaults to 3.
            reference_window (int, optional): Turns scanned for a referenced turn. Defaults to 5.
            continuity_decay (float, optional): Weight decay per older turn. Defaults to 0.7.
            complexity_threshold (float, optional): Complexity score that requires research. Defaults to 15.0.
        """
        self.patterns = patterns or load_pattern_bundle()
        self.recent_window = recent_window
        self.reference_window = reference_window
        self.continuity_decay = continuity_decay
        self.complexity_threshold = complexity_threshold

    def extract_keywords(self, text: str) -> list[str]:
        return self.patterns.keywords.extract(text)

    def _detect_topic(self, question: str, current_topic: str) -> str:
        topic = self.patterns.keywords.detect_topic(question)
        if topic:
            return topic
        if not current_topic:
            general = self.patterns.keywords.hits(
                question, self.patterns.keywords.general
            )
            return general[0] if general else self.patterns.general_topic
        return current_topic

    def _is_direct_reference(self, question: str) -> bool:
        return (
            self.patterns.implicit_reference.matches(question)
            or self.patterns.correction_intensity.matches(question)
            or self.patterns.intent.matches(question, "followup")
        )

    def _related_to_history(
        self,
        question: str,
        keywords: list[str],
        topic: str,
        history: list[QuestionHistoryItem],
    ) -> bool:
        if not history:
            return False
        if self._is_direct_reference(question):
            return True
        recent = history[-self.recent_window :]
        for item in recent:
            common = set(keywords) & set(self.extract_keywords(item_text(item)))
            if len(common) >= 2:
                return True
        return any(item.topic == topic for item in recent)

    def _reference_type(
        self, question: str, keywords: list[str], history: list[QuestionHistoryItem]
    ) -> ReferenceType:
        if self._is_direct_reference(question):
            return "direct"
        for item in history[-2:]:
            if set(keywords) & set(self.extract_keywords(item.question)):
                return "implicit"
        return "none"

    def _referenced_turn(
        self, keywords: list[str], history: list[QuestionHistoryItem]
    ) -> int | None:
        best_turn: int | None = None
        best_score = 0.0
        for item in reversed(history[-self.reference_window :]):
            score = overlap_ratio(keywords, self.extract_keywords(item_text(item)))
            if score > best_score and score > 0.3:
                best_turn, best_score = item.turn_index, score
        return best_turn

    def _topic_continuity(self, topic: str, history: list[QuestionHistoryItem]) -> float:
        score = 0.0
        weight = 1.0
        for item in reversed(history[-self.recent_window :]):
            if item.topic == topic:
                score += weight
            weight *= self.continuity_decay
        return min(score, 1.0)

    def _topic_start(self, topic: str, history: list[QuestionHistoryItem]) -> int:
        start = len(history)
        while start > 0 and history[start - 1].topic == topic:
            start -= 1
        return start

    def _confidence(
        self,
        topic: str,
        related: bool,
        reference_type: ReferenceType,
        keywords: list[str],
        history: list[QuestionHistoryItem],
    ) -> float:
        confidence = 0.5
        if topic != self.patterns.general_topic:
            confidence += 0.2
        if related:
            confidence += 0.15
        if reference_type == "direct":
            confidence += 0.2
        elif reference_type == "implicit":
            confidence += 0.1
        if len(keywords) >= 3:
            confidence += 0.1
        elif keywords:
            confidence += 0.05
        if len(history) >= 3:
            confidence += 0.1
        return clamp(confidence)

    def analyze_context(
        self,
        question: str,
        history: list[QuestionHistoryItem],
        current_topic: str | None = None,
    ) -> ContextAnalysis:
        """
        Decide the topic of a question and whether it starts a new one.

        Args:
            question (str): The incoming question.
            history (list[QuestionHistoryItem]): The session history, oldest first.
            current_topic (str | None, optional): The session's current topic. Defaults to the topic of the last turn.

        Returns:
            ContextAnalysis: Topic, shift flag, reference and continuity signals.
        """
        history = list(history or [])
        if current_topic is None:
            current_topic = history[-1].topic if history else ""
        try:
            keywords = self.extract_keywords(question)
            topic = self._detect_topic(question, current_topic)
            is_shift = bool(history) and topic != current_topic
            related = self._related_to_history(question, keywords, topic, history)
            reference_type = self._reference_type(question, keywords, history)
            analysis = ContextAnalysis(
                topic=topic,
                is_topic_shift=is_shift,
                topic_start_turn=(
                    len(history) if is_shift else self._topic_start(topic, history)
                ),
                related_to_history=related,
                reference_type=reference_type,
                referenced_turn=self._referenced_turn(keywords, history),
                keywords=keywords,
                topic_continuity=self._topic_continuity(topic, history),
                confidence=self._confidence(
                    topic, related, reference_type, keywords, history
                ),
            )
            if is_shift:
                logger.debug("Topic shift: {!r} -> {!r}", current_topic, topic)
            return analysis
        except Exception as e:
            logger.exception("Error analyzing context: {}", e)
            return ContextAnalysis(
                topic=current_topic or self.patterns.general_topic,
                topic_start_turn=len(history),
            )

    def calculate_relevance_score(
        self,
        question: str,
        item: QuestionHistoryItem,
        now: datetime | None = None,
    ) -> float:
        """
        Score how relevant a history item is to a question.

        Keyword overlap weighs 0.6, recency over the last 24 hours 0.2 and the
        item's own confidence 0.2.

        Args:
            question (str): The incoming question.
            item (QuestionHistoryItem): The history item to score.
            now (datetime | None, optional): Reference time. Defaults to now.

        Returns:
            float: Relevance in [0, 1]; 0 when either side has no keywords.
        """
        question_keywords = self.extract_keywords(question)
        item_keywords = self.extract_keywords(item_text(item))
        if not question_keywords or not item_keywords:
            return 0.0
        keyword_score = overlap_ratio(question_keywords, item_keywords)
        age = (now or utcnow()) - item.timestamp
        time_weight = max(0.0, 1 - age / timedelta(hours=24))
        return clamp(keyword_score * 0.6 + time_weight * 0.2 + item.confidence * 0.2)

    def analyze_complexity(
        self, question: str, topic: str | None = None
    ) -> ComplexityScore:
        """
        Estimate how complex a question is.

        Args:
            question (str): The incoming question.
            topic (str | None, optional): Topic whose keywords add to the score. Defaults to None.

        Returns:
            ComplexityScore: Score, contributing factors and whether research is required.
        """
        score = 0.0
        factors: list[str] = []

        if len(question) > 50:
            score += 10
            factors.append("long question")

        table = self.patterns.complexity
        for level in table.categories:
            matched: list[str] = []
            for rule in table.rules_for(level):
                match = rule.search(question)
                if match:
                    score += rule.weight
                    matched.append(match.group(0))
            if matched:
                factors.append(f"{level} complexity keywords: {', '.join(matched)}")

        if topic:
            topic_keywords = self.patterns.keywords.topics.get(topic, ())
            topic_hits = self.patterns.keywords.hits(question, topic_keywords)
            if len(topic_hits) >= 2:
                score += 10
                factors.append(f"topic keywords: {', '.join(topic_hits)}")

        if question.count("?") >= 2:
            score += 5
            factors.append("compound question")

        return ComplexityScore(
            score=score,
            factors=factors,
            threshold=self.complexity_threshold,
            requires_research=score >= self.complexity_threshold,
        )
