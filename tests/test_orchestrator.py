import pytest

from dialogstate.agents.orchestrator import ConversationEngine, correction_pattern_key
from dialogstate.agents.policies import ResearchConfig, ResearchPolicy
from dialogstate.agents.recovery import ErrorRecoverySystem
from dialogstate.agents.types import CorrectionDetection, TurnStage
from dialogstate.core.error_patterns import ErrorPatternTable
from dialogstate.core.patterns import PatternBundle
from dialogstate.core.state.context import ConversationContext, CorrectionIntensity
from dialogstate.core.store import InMemoryContextStore
from dialogstate.core.turn_log import TurnLog
from dialogstate.utils.env_cfg import EngineConfig


class FailingStore(InMemoryContextStore):
    """Store whose every operation raises."""

    def get(self, session_id: str) -> ConversationContext | None:
        raise RuntimeError("store offline")

    def get_or_create(self, session_id: str) -> ConversationContext:
        raise RuntimeError("store offline")

    def append(self, session_id, item):
        raise RuntimeError("store offline")


def test_full_turn_flow(engine: ConversationEngine) -> None:
    """
    Test analyze, validate and finalize for a plain question.

    Args:
        engine (ConversationEngine): The engine fixture.
    """
    analysis = engine.analyze_turn("s1", "Which birds eat fish?")
    assert analysis.topic == "wingspan"
    assert analysis.recovery_recommendation is None
    assert analysis.research_requested is False
    assert analysis.stages == [
        TurnStage.RECEIVED,
        TurnStage.TOPIC_ANALYZED,
        TurnStage.INTENT_CLASSIFIED,
    ]

    check = engine.check_consistency("s1", "Birds with a fish icon eat fish.", analysis)
    assert check.is_consistent is True

    stored = engine.finalize_turn(
        "s1", "Which birds eat fish?", "Birds with a fish icon eat fish.", analysis
    )
    assert stored is not None
    assert stored.turn_index == 0
    assert stored.topic == "wingspan"
    assert stored.intent_analysis == analysis.intent_analysis
    assert 0.0 <= stored.confidence <= 1.0
    assert analysis.stages[-3:] == [
        TurnStage.ANSWER_PRODUCED,
        TurnStage.CONSISTENCY_CHECKED,
        TurnStage.HISTORY_APPENDED,
    ]
    assert analysis.to_dict()["stages"][-1] == "history_appended"


def test_correction_turn_learns_pattern(
    engine: ConversationEngine, error_patterns: ErrorPatternTable
) -> None:
    """
    Test that a confirmed correction requests research and escalates on repeat.

    Args:
        engine (ConversationEngine): The engine fixture.
        error_patterns (ErrorPatternTable): The error-pattern table fixture.
    """
    engine.finalize_turn("s1", "Can I trade this action?", "This action is possible.")

    analysis = engine.analyze_turn("s1", "That is completely wrong")
    assert analysis.topic == "action"
    assert analysis.intent_analysis.is_challenging_previous_answer is True
    assert analysis.intent_analysis.referenced_turn == 0
    assert TurnStage.CORRECTION_CONFIRMED in analysis.stages

    correction = analysis.correction
    assert correction is not None
    assert correction.intensity == CorrectionIntensity.STRONG
    assert analysis.research_requested is True

    recommendation = analysis.recovery_recommendation
    assert recommendation is not None
    assert recommendation.strategy is not None
    assert recommendation.strategy.strategy == "standard_correction"
    assert recommendation.reason == "strong correction"
    assert recommendation.message.endswith(engine.patterns.message("research_notice"))

    key = correction_pattern_key("action")
    assert key == "action:correction"
    pattern = error_patterns.get(key)
    assert pattern is not None and pattern.frequency == 1

    engine.analyze_turn("s1", "That is completely wrong")
    third = engine.analyze_turn("s1", "That is completely wrong")
    assert third.recovery_recommendation is not None
    assert third.recovery_recommendation.strategy is not None
    assert third.recovery_recommendation.strategy.strategy == "high_priority_research"

    check = engine.check_consistency("s1", "This action is impossible.", analysis)
    assert check.is_consistent is False
    assert check.recommends_research is True
    assert check.research_requested is True


def test_history_filters(engine: ConversationEngine) -> None:
    """
    Test filtering history by topic, research flag and limit.

    Args:
        engine (ConversationEngine): The engine fixture.
    """
    engine.finalize_turn("s1", "Which birds eat fish?", "Pelicans do.")
    engine.finalize_turn("s1", "How big is a rhino enclosure?", "Four spaces.", was_researched=True)
    engine.finalize_turn("s1", "Where do birds nest?", "In a habitat.", confidence=0.7)

    assert [h.turn_index for h in engine.get_history("s1")] == [0, 1, 2]
    assert [h.turn_index for h in engine.get_history("s1", topic="wingspan")] == [0, 2]
    assert [h.turn_index for h in engine.get_history("s1", was_researched=True)] == [1]
    assert [h.turn_index for h in engine.get_history("s1", limit=2)] == [1, 2]
    assert engine.get_history("s1", limit=0) == []
    assert engine.get_history("unknown") == []
    assert engine.get_history("s1")[2].confidence == 0.7

    relevant = engine.get_relevant_history("s1", "Do birds nest near fish?")
    assert [h.turn_index for h in relevant] == [2, 0, 1]
    assert [h.turn_index for h in engine.get_relevant_history("s1", "birds", limit=1)] == [0]


def test_empty_question_is_skipped(engine: ConversationEngine) -> None:
    """
    Test that an empty question is never recorded.

    Args:
        engine (ConversationEngine): The engine fixture.
    """
    assert engine.finalize_turn("s1", "   ", "answer") is None
    assert engine.get_history("s1") == []


def test_failures_degrade_to_defaults(patterns: PatternBundle) -> None:
    """
    Test that store failures never escape the engine.

    Args:
        patterns (PatternBundle): The pattern bundle fixture.
    """
    engine = ConversationEngine(store=FailingStore(), patterns=patterns)

    analysis = engine.analyze_turn("s1", "That is completely wrong")
    assert analysis.topic == patterns.general_topic
    assert analysis.recovery_recommendation is None
    assert analysis.stages == [TurnStage.RECEIVED]

    assert engine.check_consistency("s1", "anything").is_consistent is True
    assert engine.finalize_turn("s1", "q", "a") is None
    assert engine.get_history("s1") == []
    assert engine.get_relevant_history("s1", "birds") == []


def test_metrics_and_report(engine: ConversationEngine) -> None:
    """
    Test that analyzed turns feed the metrics and recovery report.

    Args:
        engine (ConversationEngine): The engine fixture.
    """
    first = engine.analyze_turn("s1", "Can I trade this action?")
    engine.finalize_turn(
        "s1", "Can I trade this action?", "This action is possible.", first, confidence=0.9
    )
    analysis = engine.analyze_turn("s1", "That is completely wrong")
    engine.finalize_turn("s1", "That is completely wrong", "Sorry.", analysis, confidence=0.3)

    metrics = engine.metrics()
    assert metrics.window == 2
    assert metrics.error_detection_rate == 0.5

    report = engine.recovery_report("s1")
    assert report.total_errors == 1
    assert report.errors_by_type == {"low_confidence_error": 1}


def test_from_env(error_patterns: ErrorPatternTable) -> None:
    """
    Test building an engine from explicit configuration.

    Args:
        error_patterns (ErrorPatternTable): The error-pattern table fixture.
    """
    config = EngineConfig(
        pattern_locale="ko",
        pattern_path=None,
        apology_strategy="round_robin",
        apology_seed=None,
        recent_window=4,
        reference_overlap_threshold=0.5,
        research_on_inconsistency=False,
    )
    engine = ConversationEngine.from_env(config, error_patterns=error_patterns)
    assert engine.patterns.locale == "ko"
    assert engine.recovery.error_patterns is error_patterns
    assert engine.policy.config.research_on_inconsistency is False
    assert engine.intent_recognizer.overlap_threshold == 0.5


def test_injected_empty_collaborators_are_kept(patterns: PatternBundle) -> None:
    """
    Test that an empty store and turn log passed in are the ones the engine uses.

    Args:
        patterns (PatternBundle): The pattern bundle fixture.
    """
    store = InMemoryContextStore()
    log = TurnLog()
    engine = ConversationEngine(store=store, turn_log=log, patterns=patterns)
    assert engine.store is store
    assert engine.turn_log is log

    analysis = engine.analyze_turn("s1", "Which birds eat fish?")
    engine.finalize_turn("s1", "Which birds eat fish?", "Pelicans do.", analysis)
    assert store.session_ids() == ["s1"]
    assert len(log) == 1


def test_finalize_without_analysis_learns_nothing(
    engine: ConversationEngine, error_patterns: ErrorPatternTable
) -> None:
    """
    Test that finalizing an unanalyzed correction does not count it again.

    Args:
        engine (ConversationEngine): The engine fixture.
        error_patterns (ErrorPatternTable): The error-pattern table fixture.
    """
    engine.finalize_turn("s1", "Can I trade this action?", "This action is possible.")
    engine.analyze_turn("s1", "That is completely wrong")
    key = correction_pattern_key("action")
    logged = len(engine.turn_log)

    stored = engine.finalize_turn("s1", "That is completely wrong", "Let me check again.")
    assert stored is not None
    assert stored.topic == "action"
    assert stored.intent_analysis is not None
    assert stored.intent_analysis.is_challenging_previous_answer is True

    pattern = error_patterns.get(key)
    assert pattern is not None and pattern.frequency == 1
    assert engine.recovery.suggest_recovery_strategy(key).strategy == "standard_correction"
    assert len(engine.turn_log) == logged


@pytest.mark.parametrize(
    "question",
    ["That doesn't seem right", "I'm not sure that's correct", "Not sure that is right"],
)
def test_medium_challenge_is_confirmed(engine: ConversationEngine, question: str) -> None:
    """
    Test that every medium challenge gets an apology and a research request.

    Args:
        engine (ConversationEngine): The engine fixture.
        question (str): A medium-intensity challenge.
    """
    engine.finalize_turn("s1", "Can I trade this action?", "This action is possible.")

    analysis = engine.analyze_turn("s1", question)
    assert analysis.intent_analysis.is_challenging_previous_answer is True
    correction = analysis.correction
    assert correction is not None
    assert correction.is_correction is True
    assert correction.intensity == CorrectionIntensity.MEDIUM
    assert analysis.research_requested is True
    assert analysis.recovery_recommendation is not None
    assert analysis.recovery_recommendation.message
    assert TurnStage.CORRECTION_CONFIRMED in analysis.stages


def test_unconfirmed_challenge_skips_confirmed_stage(
    engine: ConversationEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    """
    Test that a challenge the recovery tables reject is not marked confirmed.

    Args:
        engine (ConversationEngine): The engine fixture.
        monkeypatch (pytest.MonkeyPatch): Fixture to stub the recovery detector.
    """
    monkeypatch.setattr(
        ErrorRecoverySystem,
        "detect_user_correction",
        lambda self, question, intent_analysis=None: CorrectionDetection(
            is_correction=False
        ),
    )
    engine.finalize_turn("s1", "Can I trade this action?", "This action is possible.")

    analysis = engine.analyze_turn("s1", "That is completely wrong")
    assert analysis.intent_analysis.is_challenging_previous_answer is True
    assert analysis.recovery_recommendation is not None
    assert analysis.research_requested is False
    assert TurnStage.CORRECTION_CONFIRMED not in analysis.stages
    assert engine.metrics().error_detection_rate == 0.0


def test_research_switch_keeps_validator_verdict(
    patterns: PatternBundle, recovery: ErrorRecoverySystem
) -> None:
    """
    Test that disabling research on inconsistency leaves the conflict flag intact.

    Args:
        patterns (PatternBundle): The pattern bundle fixture.
        recovery (ErrorRecoverySystem): The recovery fixture.
    """
    engine = ConversationEngine(
        recovery=recovery,
        policy=ResearchPolicy(ResearchConfig(research_on_inconsistency=False)),
        patterns=patterns,
    )
    engine.finalize_turn("s1", "Can I trade this action?", "This action is possible.")

    check = engine.check_consistency("s1", "This action is impossible.")
    assert check.is_consistent is False
    assert check.recommends_research is True
    assert check.research_requested is False
    assert check.to_dict()["research_requested"] is False
