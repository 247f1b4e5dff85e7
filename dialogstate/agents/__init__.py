"""Turn analysis package.

Provides lightweight interfaces and building blocks for topic tracking, intent
recognition, correction recovery and answer consistency checks.
"""

from dialogstate.agents.types import (
    ComplexityScore,
    ConsistencyCheck,
    ContextAnalysis,
    ContextualError,
    CorrectionDetection,
    RecoveryRecommendation,
    RecoveryReport,
    RecoveryStrategy,
    TurnAnalysis,
    TurnStage,
)
from dialogstate.agents.policies import ResearchConfig, ResearchPolicy
from dialogstate.agents.orchestrator import ConversationEngine
from dialogstate.agents.understanding import IntentRecognizer
from dialogstate.agents.context import ContextAnalyzer
from dialogstate.agents.recovery import (
    ErrorRecoverySystem,
    RandomTemplateSelector,
    RoundRobinTemplateSelector,
    TemplateSelector,
)
from dialogstate.agents.consistency import ConsistencyValidator

__all__ = [
    "ComplexityScore",
    "ConsistencyCheck",
    "ConsistencyValidator",
    "ContextAnalysis",
    "ContextAnalyzer",
    "ContextualError",
    "ConversationEngine",
    "CorrectionDetection",
    "ErrorRecoverySystem",
    "IntentRecognizer",
    "RandomTemplateSelector",
    "RecoveryRecommendation",
    "RecoveryReport",
    "RecoveryStrategy",
    "ResearchConfig",
    "ResearchPolicy",
    "RoundRobinTemplateSelector",
    "TemplateSelector",
    "TurnAnalysis",
    "TurnStage",
]
