from typing import Callable

import pytest

from dialogstate.agents.orchestrator import ConversationEngine
from dialogstate.agents.recovery import ErrorRecoverySystem, RoundRobinTemplateSelector
from dialogstate.core.error_patterns import ErrorPatternTable
from dialogstate.core.patterns import PatternBundle, load_pattern_bundle
from dialogstate.core.state.context import ConversationContext, QuestionHistoryItem
from dialogstate.core.store import InMemoryContextStore

HistoryFactory = Callable[..., ConversationContext]


@pytest.fixture
def patterns() -> PatternBundle:
    """
    Fixture for the built-in English pattern bundle.

    Returns:
        PatternBundle: The bundle.
    """
    return load_pattern_bundle("en")


@pytest.fixture
def error_patterns() -> ErrorPatternTable:
    """
    Fixture for a fresh error-pattern table, isolated from the process-wide one.

    Returns:
        ErrorPatternTable: The table.
    """
    return ErrorPatternTable()


@pytest.fixture
def recovery(
    patterns: PatternBundle, error_patterns: ErrorPatternTable
) -> ErrorRecoverySystem:
    """
    Fixture for an ErrorRecoverySystem with deterministic apology selection.

    Args:
        patterns (PatternBundle): The pattern bundle fixture.
        error_patterns (ErrorPatternTable): The error-pattern table fixture.

    Returns:
        ErrorRecoverySystem: The recovery system.
    """
    return ErrorRecoverySystem(
        patterns,
        error_patterns=error_patterns,
        selector=RoundRobinTemplateSelector(),
    )


@pytest.fixture
def make_context() -> HistoryFactory:
    """
    Fixture for building contexts from (question, answer) pairs.

    Returns:
        HistoryFactory: Builder taking pairs plus optional topic and confidence.
    """

    def _make(
        pairs: list[tuple[str, str]],
        topic: str = "",
        confidence: float = 0.9,
        session_id: str = "s1",
    ) -> ConversationContext:
        history = [
            QuestionHistoryItem(
                turn_index=i,
                question=q,
                answer=a,
                topic=topic,
                confidence=confidence,
            )
            for i, (q, a) in enumerate(pairs)
        ]
        return ConversationContext(
            session_id=session_id,
            current_topic=topic,
            topic_start_turn=0,
            question_history=history,
        )

    return _make


@pytest.fixture
def engine(
    patterns: PatternBundle, recovery: ErrorRecoverySystem
) -> ConversationEngine:
    """
    Fixture for an engine over an in-memory store.

    Args:
        patterns (PatternBundle): The pattern bundle fixture.
        recovery (ErrorRecoverySystem): The recovery fixture.

    Returns:
        ConversationEngine: The engine.
    """
    return ConversationEngine(
        store=InMemoryContextStore(), recovery=recovery, patterns=patterns
    )
