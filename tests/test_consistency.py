from datetime import timedelta
from typing import Callable

import pytest

from dialogstate.agents.consistency import ConsistencyValidator
from dialogstate.agents.policies import ResearchConfig, ResearchPolicy
from dialogstate.agents.types import ConsistencyCheck, CorrectionDetection
from dialogstate.core.patterns import PatternBundle
from dialogstate.core.state.context import ConversationContext, CorrectionIntensity

HistoryFactory = Callable[..., ConversationContext]


@pytest.fixture
def validator(patterns: PatternBundle) -> ConsistencyValidator:
    """
    Fixture for a ConsistencyValidator over the English tables.

    Args:
        patterns (PatternBundle): The pattern bundle fixture.

    Returns:
        ConsistencyValidator: The validator.
    """
    return ConsistencyValidator(patterns)


def test_possible_vs_impossible(
    validator: ConsistencyValidator, make_context: HistoryFactory
) -> None:
    """
    Test that opposite claims about the same action conflict.

    Args:
        validator (ConsistencyValidator): The validator fixture.
        make_context (HistoryFactory): The context builder fixture.
    """
    ctx = make_context(
        [
            ("How many birds can I play?", "One bird per turn."),
            ("Can I trade this action?", "This action is possible."),
        ]
    )
    check = validator.validate_consistency("This action is impossible.", ctx)
    assert check.is_consistent is False
    assert [c.turn_index for c in check.conflicting_answers] == [1]
    assert check.recommends_research is True
    assert check.error_type == "logical"
    assert check.confidence_level == "high"
    assert check.conflict_details is not None and "turn 1" in check.conflict_details
    assert check.to_dict()["conflicting_turns"] == [1]

    mirrored = validator.validate_consistency(
        "This action is possible.",
        make_context([("Can I trade this action?", "This action is impossible.")]),
    )
    assert mirrored.is_consistent is False
    assert mirrored.recommends_research is True


def test_unrelated_statements_do_not_conflict(
    validator: ConsistencyValidator, make_context: HistoryFactory
) -> None:
    """
    Test that opposite polarity about different things is not a conflict.

    Args:
        validator (ConsistencyValidator): The validator fixture.
        make_context (HistoryFactory): The context builder fixture.
    """
    ctx = make_context([("Can birds share food?", "Bird food is possible to share.")])
    check = validator.validate_consistency("A rhino enclosure is impossible to move.", ctx)
    assert check.is_consistent is True
    assert check.conflicting_answers == []
    assert check.recommends_research is False
    assert check.error_type is None
    assert check.confidence_level == "high"


def test_numeric_conflict(
    validator: ConsistencyValidator, make_context: HistoryFactory
) -> None:
    """
    Test that different numbers about the same keyword are a factual conflict.

    Args:
        validator (ConsistencyValidator): The validator fixture.
        make_context (HistoryFactory): The context builder fixture.
    """
    ctx = make_context(
        [("How many cards do I draw?", "You draw 2 cards each round.")], confidence=0.3
    )
    assert validator.has_number_conflict("You draw 3 cards.", "You draw 2 cards.")
    assert not validator.has_number_conflict("You draw 2 cards.", "You draw 2 cards.")

    check = validator.validate_consistency("You draw 3 cards each round.", ctx)
    assert check.is_consistent is False
    assert check.error_type == "factual"
    assert check.confidence_level == "low"

    both = validator.validate_consistency(
        "You draw 3 cards each round, and it is impossible to draw more.",
        make_context([("Can I draw more?", "You draw 2 cards each round; more is possible.")]),
    )
    assert both.error_type == "contextual"


def test_answer_confidence(validator: ConsistencyValidator) -> None:
    """
    Test the answer confidence heuristic.

    Args:
        validator (ConsistencyValidator): The validator fixture.
    """
    assert validator.assess_answer_confidence("Probably.") == pytest.approx(0.25)
    answer = "In Wingspan each bird card lays up to 3 eggs in its nest per round."
    base = validator.assess_answer_confidence(answer)
    assert base == pytest.approx(0.85)
    researched = validator.assess_answer_confidence(
        answer, research_data="The rulebook says a bird lays eggs in the nest."
    )
    assert researched == 1.0


def test_conflict_severity(
    validator: ConsistencyValidator, make_context: HistoryFactory
) -> None:
    """
    Test severity scoring from count, recency and answer confidence.

    Args:
        validator (ConsistencyValidator): The validator fixture.
        make_context (HistoryFactory): The context builder fixture.
    """
    assert validator.analyze_conflict_severity([]).severity == "low"

    fresh = make_context([("a", "x"), ("b", "y")], confidence=0.9).question_history
    high = validator.analyze_conflict_severity(fresh, now=fresh[-1].timestamp)
    assert (high.severity, high.score) == ("high", 55.0)

    stale = make_context([("a", "x"), ("b", "y")], confidence=0.5).question_history
    later = stale[-1].timestamp + timedelta(days=2)
    medium = validator.analyze_conflict_severity(stale, now=later)
    assert (medium.severity, medium.score) == ("medium", 20.0)
    low = validator.analyze_conflict_severity(stale[:1], now=later)
    assert (low.severity, low.score) == ("low", 10.0)


def test_research_policy() -> None:
    """
    Test research routing after corrections and consistency checks.
    """
    policy = ResearchPolicy()
    strong = CorrectionDetection(
        is_correction=True, intensity=CorrectionIntensity.STRONG, confidence=0.9
    )
    assert policy.after_correction(strong) == (True, "strong correction")
    weak = CorrectionDetection(
        is_correction=True, intensity=CorrectionIntensity.WEAK, confidence=0.4
    )
    assert policy.after_correction(weak)[0] is False
    assert policy.after_correction(CorrectionDetection(is_correction=False)) == (False, None)

    conflict = ConsistencyCheck(
        is_consistent=False, recommends_research=True, error_type="logical"
    )
    assert policy.after_consistency_check(conflict) == (True, "logical")
    assert policy.after_consistency_check(ConsistencyCheck(is_consistent=True)) == (
        False,
        None,
    )

    quiet = ResearchPolicy(ResearchConfig(research_on_inconsistency=False))
    assert quiet.after_consistency_check(conflict) == (False, None)


def test_internal_failure_is_consistent(
    validator: ConsistencyValidator,
    make_context: HistoryFactory,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    Test that a failing validation reports a consistent, medium-confidence answer.

    Args:
        validator (ConsistencyValidator): The validator fixture.
        make_context (HistoryFactory): The context builder fixture.
        monkeypatch (pytest.MonkeyPatch): Fixture to break the number check.
    """
    fallback = ConsistencyCheck(is_consistent=True, confidence_level="medium")
    no_context = validator.validate_consistency("You draw 3 cards.", None)  # type: ignore[arg-type]
    assert no_context == fallback

    def broken(first: str, second: str) -> bool:
        raise RuntimeError("pattern table unavailable")

    monkeypatch.setattr(validator, "has_number_conflict", broken)
    ctx = make_context([("How many cards do I draw?", "You draw 2 cards each round.")])
    assert validator.validate_consistency("You draw 3 cards each round.", ctx) == fallback
