from datetime import timedelta

import pytest

from dialogstate.agents.context import ContextAnalyzer, overlap_ratio
from dialogstate.core.patterns import PatternBundle
from dialogstate.core.state.context import QuestionHistoryItem


@pytest.fixture
def analyzer(patterns: PatternBundle) -> ContextAnalyzer:
    """
    Fixture for a ContextAnalyzer over the English tables.

    Args:
        patterns (PatternBundle): The pattern bundle fixture.

    Returns:
        ContextAnalyzer: The analyzer.
    """
    return ContextAnalyzer(patterns)


def _history(topic: str, count: int) -> list[QuestionHistoryItem]:
    return [
        QuestionHistoryItem(
            turn_index=i,
            question=f"Which bird lays {i} eggs?",
            answer="Birds lay eggs in the nest.",
            topic=topic,
        )
        for i in range(count)
    ]


def test_overlap_ratio() -> None:
    """
    Test the keyword overlap ratio, including the empty case.
    """
    assert overlap_ratio([], []) == 0.0
    assert overlap_ratio(["bird", "egg"], ["bird", "egg", "nest"]) == pytest.approx(2 / 3)
    assert overlap_ratio(["bird"], ["rhino"]) == 0.0


def test_first_question_without_history(analyzer: ContextAnalyzer) -> None:
    """
    Test that a first question never counts as a topic shift.

    Args:
        analyzer (ContextAnalyzer): The analyzer fixture.
    """
    analysis = analyzer.analyze_context("Which birds eat fish?", [])
    assert analysis.topic == "wingspan"
    assert analysis.is_topic_shift is False
    assert analysis.topic_start_turn == 0
    assert analysis.related_to_history is False
    assert analysis.referenced_turn is None

    generic = analyzer.analyze_context("Hello there", [])
    assert generic.topic == "general"


def test_topic_shift_starts_new_span(analyzer: ContextAnalyzer) -> None:
    """
    Test that naming another topic shifts and starts the span at the new turn.

    Args:
        analyzer (ContextAnalyzer): The analyzer fixture.
    """
    history = _history("wingspan", 3)
    analysis = analyzer.analyze_context(
        "How does the rhino enclosure work?", history, current_topic="wingspan"
    )
    assert analysis.topic == "ark nova"
    assert analysis.is_topic_shift is True
    assert analysis.topic_start_turn == 3
    assert analysis.topic_continuity == 0.0


def test_ambiguous_question_continues_topic(analyzer: ContextAnalyzer) -> None:
    """
    Test that a question without topic keywords stays on the current topic.

    Args:
        analyzer (ContextAnalyzer): The analyzer fixture.
    """
    history = _history("wingspan", 3)
    analysis = analyzer.analyze_context("How many cards can I hold?", history)
    assert analysis.topic == "wingspan"
    assert analysis.is_topic_shift is False
    assert analysis.topic_start_turn == 0
    assert analysis.related_to_history is True
    assert analysis.topic_continuity == 1.0
    assert 0.0 <= analysis.confidence <= 1.0


def test_direct_reference(analyzer: ContextAnalyzer) -> None:
    """
    Test that an implicit reference marks the question as a direct reference.

    Args:
        analyzer (ContextAnalyzer): The analyzer fixture.
    """
    history = _history("wingspan", 2)
    analysis = analyzer.analyze_context("Can you explain that bird nest rule?", history)
    assert analysis.reference_type == "direct"
    assert analysis.related_to_history is True
    assert analysis.referenced_turn == 1


def test_relevance_score(analyzer: ContextAnalyzer) -> None:
    """
    Test relevance weighting of keyword overlap, recency and confidence.

    Args:
        analyzer (ContextAnalyzer): The analyzer fixture.
    """
    item = QuestionHistoryItem(
        turn_index=0,
        question="Which birds eat fish in wingspan?",
        answer="Birds with a fish food icon.",
        confidence=0.9,
    )
    score = analyzer.calculate_relevance_score(
        "What food do birds need?", item, now=item.timestamp
    )
    assert score == pytest.approx((2 / 3) * 0.6 + 0.2 + 0.9 * 0.2)

    stale = analyzer.calculate_relevance_score(
        "What food do birds need?", item, now=item.timestamp + timedelta(days=2)
    )
    assert stale == pytest.approx((2 / 3) * 0.6 + 0.9 * 0.2)

    assert analyzer.calculate_relevance_score("Hello there", item) == 0.0


def test_complexity(analyzer: ContextAnalyzer) -> None:
    """
    Test that detailed multi-part questions require research and small talk does not.

    Args:
        analyzer (ContextAnalyzer): The analyzer fixture.
    """
    complex_q = analyzer.analyze_complexity(
        "How exactly does the card effect work in this special case? Why?",
        topic="wingspan",
    )
    assert complex_q.requires_research is True
    assert complex_q.score >= complex_q.threshold
    assert "long question" in complex_q.factors
    assert "compound question" in complex_q.factors

    simple = analyzer.analyze_complexity("Hi")
    assert simple.score == 0.0
    assert simple.requires_research is False
    assert simple.factors == []


def test_internal_failure_keeps_current_topic(
    analyzer: ContextAnalyzer, monkeypatch: pytest.MonkeyPatch
) -> None:
    """
    Test that a failing analysis falls back to the current topic.

    Args:
        analyzer (ContextAnalyzer): The analyzer fixture.
        monkeypatch (pytest.MonkeyPatch): Fixture to break keyword extraction.
    """

    def broken(question: str) -> list[str]:
        raise RuntimeError("keyword table unavailable")

    monkeypatch.setattr(analyzer, "extract_keywords", broken)
    analysis = analyzer.analyze_context("Which birds eat fish?", _history("wingspan", 2))
    assert analysis.topic == "wingspan"
    assert analysis.topic_start_turn == 2
    assert analysis.is_topic_shift is False
    assert analysis.keywords == []

    empty = analyzer.analyze_context("Which birds eat fish?", [])
    assert empty.topic == analyzer.patterns.general_topic
