"""Turn engine that routes topic tracking, intent recognition and recovery."""

from dataclasses import replace

from loguru import logger

from dialogstate.agents.consistency import ConsistencyValidator
from dialogstate.agents.context import ContextAnalyzer
from dialogstate.agents.policies import ResearchConfig, ResearchPolicy
from dialogstate.agents.recovery import ErrorRecoverySystem, build_template_selector
from dialogstate.agents.types import (
    ConsistencyAgent,
    ConsistencyCheck,
    ContextAnalysis,
    ContextAnalyzerAgent,
    IntentRecognizerAgent,
    RecoveryRecommendation,
    RecoveryReport,
    TurnAnalysis,
    TurnStage,
)
from dialogstate.agents.understanding import IntentRecognizer
from dialogstate.core.error_patterns import ErrorPatternTable
from dialogstate.core.patterns import PatternBundle, load_pattern_bundle
from dialogstate.core.state.context import (
    ConversationContext,
    IntentAnalysis,
    QuestionHistoryItem,
)
from dialogstate.core.store import ConversationContextStore, InMemoryContextStore
from dialogstate.core.turn_log import TrackingMetrics, TurnLog, TurnLogEntry
from dialogstate.utils.env_cfg import EngineConfig, load_engine_env


def correction_pattern_key(topic: str) -> str:
    return f"{topic}:correction"


class ConversationEngine:
    """
    Coordinate analyzers for one conversational turn.

    Every public method is total: analyzer failures are logged and replaced
    by safe defaults so a turn is never blocked.
    """

    def __init__(
        self,
        store: ConversationContextStore | None = None,
        context_analyzer: ContextAnalyzerAgent | None = None,
        intent_recognizer: IntentRecognizerAgent | None = None,
        recovery: ErrorRecoverySystem | None = None,
        validator: ConsistencyAgent | None = None,
        policy: ResearchPolicy | None = None,
        turn_log: TurnLog | None = None,
        patterns: PatternBundle | None = None,
    ) -> None:
        """
        Initialize the ConversationEngine.

        Args:
            store (ConversationContextStore | None, optional): Session context store. Defaults to an in-memory store.
            context_analyzer (ContextAnalyzerAgent | None, optional): Topic tracker. Defaults to None.
            intent_recognizer (IntentRecognizerAgent | None, optional): Intent classifier. Defaults to None.
            recovery (ErrorRecoverySystem | None, optional): Correction confirmation and recovery. Defaults to None.
            validator (ConsistencyAgent | None, optional): Answer consistency validator. Defaults to None.
            policy (ResearchPolicy | None, optional): Research routing policy. Defaults to None.
            turn_log (TurnLog | None, optional): Log of analyzed turns. Defaults to None.
            patterns (PatternBundle | None, optional): Tables shared by default analyzers. Defaults to the built-in English bundle.
        """
        self.patterns = patterns if patterns is not None else load_pattern_bundle()
        self.store = store if store is not None else InMemoryContextStore()
        self.context_analyzer = (
            context_analyzer if context_analyzer is not None else ContextAnalyzer(self.patterns)
        )
        self.intent_recognizer = (
            intent_recognizer
            if intent_recognizer is not None
            else IntentRecognizer(self.patterns)
        )
        self.recovery = recovery if recovery is not None else ErrorRecoverySystem(self.patterns)
        self.validator = (
            validator if validator is not None else ConsistencyValidator(self.patterns)
        )
        self.policy = policy if policy is not None else ResearchPolicy()
        self.turn_log = turn_log if turn_log is not None else TurnLog()

    @classmethod
    def from_env(
        cls,
        config: EngineConfig | None = None,
        store: ConversationContextStore | None = None,
        error_patterns: ErrorPatternTable | None = None,
    ) -> "ConversationEngine":
        """
        Build an engine from environment configuration.

        Args:
            config (EngineConfig | None, optional): Engine configuration. Defaults to ``load_engine_env()``.
            store (ConversationContextStore | None, optional): Session context store. Defaults to an in-memory store.
            error_patterns (ErrorPatternTable | None, optional): Error-pattern table. Defaults to the process-wide table.

        Returns:
            ConversationEngine: The configured engine.
        """
        cfg = config or load_engine_env()
        patterns = load_pattern_bundle(cfg.pattern_locale, cfg.pattern_path)
        return cls(
            store=store,
            context_analyzer=ContextAnalyzer(patterns, recent_window=cfg.recent_window),
            intent_recognizer=IntentRecognizer(
                patterns,
                recent_window=cfg.recent_window,
                overlap_threshold=cfg.reference_overlap_threshold,
            ),
            recovery=ErrorRecoverySystem(
                patterns,
                error_patterns=error_patterns,
                selector=build_template_selector(cfg.apology_strategy, cfg.apology_seed),
                recent_window=cfg.recent_window,
            ),
            validator=ConsistencyValidator(patterns),
            policy=ResearchPolicy(
                ResearchConfig(research_on_inconsistency=cfg.research_on_inconsistency)
            ),
            patterns=patterns,
        )

    def _context(self, session_id: str) -> ConversationContext:
        context = self.store.get(session_id)
        return context if context is not None else ConversationContext(session_id=session_id)

    def _classify(
        self,
        session_id: str,
        question: str,
        context: ConversationContext,
        stages: list[TurnStage],
    ) -> TurnAnalysis:
        # Side-effect free: no pattern learning and no turn log entry.
        ctx_analysis = self.context_analyzer.analyze_context(
            question, context.question_history, context.current_topic
        )
        stages.append(TurnStage.TOPIC_ANALYZED)

        intent = self.intent_recognizer.recognize_intent(question, context)
        stages.append(TurnStage.INTENT_CLASSIFIED)
        return TurnAnalysis(
            session_id=session_id,
            question=question,
            topic=ctx_analysis.topic,
            context_analysis=ctx_analysis,
            intent_analysis=intent,
            stages=stages,
        )

    def _recommend(
        self, question: str, topic: str, intent: IntentAnalysis, context: ConversationContext
    ) -> RecoveryRecommendation:
        correction = self.recovery.detect_user_correction(question, intent)
        strategy = None
        if correction.is_correction:
            key = correction_pattern_key(topic)
            self.recovery.learn_error_pattern(key, context)
            strategy = self.recovery.suggest_recovery_strategy(key, context)
        research, reason = self.policy.after_correction(correction)
        message = correction.suggested_response
        if research:
            message = " ".join(p for p in (message, self.recovery.request_correction()) if p)
        return RecoveryRecommendation(
            research_requested=research,
            correction=correction,
            strategy=strategy,
            message=message,
            reason=reason,
        )

    def analyze_turn(self, session_id: str, question: str) -> TurnAnalysis:
        """
        Analyze an incoming question before an answer is produced.

        Args:
            session_id (str): The session id.
            question (str): The incoming question.

        Returns:
            TurnAnalysis: Topic, intent and, for suspected corrections, a recovery recommendation.
        """
        stages = [TurnStage.RECEIVED]
        try:
            context = self.store.get_or_create(session_id)
            analysis = self._classify(session_id, question, context, stages)
            intent = analysis.intent_analysis

            confirmed = False
            if intent.is_challenging_previous_answer:
                recommendation = self._recommend(question, analysis.topic, intent, context)
                analysis.recovery_recommendation = recommendation
                confirmed = recommendation.correction.is_correction
                if confirmed:
                    stages.append(TurnStage.CORRECTION_CONFIRMED)

            self.turn_log.log(
                TurnLogEntry(
                    session_id=session_id,
                    turn=context.next_turn_index,
                    context_accuracy=analysis.context_analysis.confidence,
                    intent_recognized=intent.confidence > 0.5,
                    error_detected=confirmed,
                )
            )
            return analysis
        except Exception as e:
            logger.exception("Error analyzing turn for session {}: {}", session_id, e)
            topic = self.patterns.general_topic
            return TurnAnalysis(
                session_id=session_id,
                question=question,
                topic=topic,
                context_analysis=ContextAnalysis(topic=topic),
                intent_analysis=IntentAnalysis(),
                stages=stages,
            )

    def check_consistency(
        self,
        session_id: str,
        candidate_answer: str,
        analysis: TurnAnalysis | None = None,
    ) -> ConsistencyCheck:
        """
        Validate a produced answer against the session history.

        Args:
            session_id (str): The session id.
            candidate_answer (str): The answer produced by the backend.
            analysis (TurnAnalysis | None, optional): Analysis of the same turn; its stages are advanced. Defaults to None.

        Returns:
            ConsistencyCheck: The validation result.
        """
        if analysis is not None:
            analysis.stages.append(TurnStage.ANSWER_PRODUCED)
        try:
            check = self.validator.validate_consistency(
                candidate_answer, self._context(session_id)
            )
            research, _ = self.policy.after_consistency_check(check)
            check = replace(check, research_requested=research)
        except Exception as e:
            logger.exception("Error checking consistency for session {}: {}", session_id, e)
            check = ConsistencyCheck(is_consistent=True)
        if analysis is not None:
            analysis.stages.append(TurnStage.CONSISTENCY_CHECKED)
        return check

    def record_turn(
        self, session_id: str, item: QuestionHistoryItem
    ) -> QuestionHistoryItem | None:
        """
        Append a finalized turn to the session history.

        Args:
            session_id (str): The session id.
            item (QuestionHistoryItem): The finalized turn.

        Returns:
            QuestionHistoryItem | None: The item as stored, or None if the store failed.
        """
        try:
            return self.store.append(session_id, item)
        except Exception as e:
            logger.exception("Error recording turn for session {}: {}", session_id, e)
            return None

    def finalize_turn(
        self,
        session_id: str,
        question: str,
        answer: str,
        analysis: TurnAnalysis | None = None,
        was_researched: bool = False,
        confidence: float | None = None,
    ) -> QuestionHistoryItem | None:
        """
        Build a history item for an answered question and record it.

        Args:
            session_id (str): The session id.
            question (str): The question that was answered.
            answer (str): The produced answer.
            analysis (TurnAnalysis | None, optional): Analysis from ``analyze_turn``. Defaults to None.
            was_researched (bool, optional): Whether the answer used external research. Defaults to False.
            confidence (float | None, optional): Answer confidence. Defaults to a heuristic estimate.

        Returns:
            QuestionHistoryItem | None: The stored item, or None when skipped or failed.
        """
        if not question or not question.strip():
            logger.warning("Skipping empty question for session {}", session_id)
            return None
        try:
            context = self._context(session_id)
            if analysis is None:
                analysis = self._classify(
                    session_id, question, context, [TurnStage.RECEIVED]
                )
            if confidence is None:
                confidence = self.validator.assess_answer_confidence(answer)
            item = QuestionHistoryItem(
                turn_index=context.next_turn_index,
                question=question,
                answer=answer,
                topic=analysis.topic,
                confidence=min(max(confidence, 0.0), 1.0),
                was_researched=was_researched,
                intent_analysis=analysis.intent_analysis,
            )
        except Exception as e:
            logger.exception("Error finalizing turn for session {}: {}", session_id, e)
            return None
        stored = self.record_turn(session_id, item)
        if stored is not None:
            analysis.stages.append(TurnStage.HISTORY_APPENDED)
        return stored

    def get_history(
        self,
        session_id: str,
        topic: str | None = None,
        was_researched: bool | None = None,
        limit: int | None = None,
    ) -> list[QuestionHistoryItem]:
        """
        Return the session history, optionally filtered.

        Args:
            session_id (str): The session id.
            topic (str | None, optional): Only turns on this topic. Defaults to None.
            was_researched (bool | None, optional): Only turns with this research flag. Defaults to None.
            limit (int | None, optional): Keep only the most recent N matches. Defaults to None.

        Returns:
            list[QuestionHistoryItem]: Matching turns, oldest first.
        """
        try:
            items = self._context(session_id).question_history
        except Exception as e:
            logger.exception("Error loading history for session {}: {}", session_id, e)
            return []
        if topic is not None:
            items = [i for i in items if i.topic == topic]
        if was_researched is not None:
            items = [i for i in items if i.was_researched == was_researched]
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return list(items)

    def get_relevant_history(
        self, session_id: str, question: str, limit: int = 5
    ) -> list[QuestionHistoryItem]:
        """
        Return the turns most relevant to a question.

        Args:
            session_id (str): The session id.
            question (str): The incoming question.
            limit (int, optional): Maximum number of turns. Defaults to 5.

        Returns:
            list[QuestionHistoryItem]: Turns with a positive relevance score, most relevant first.
        """
        if not isinstance(self.context_analyzer, ContextAnalyzer):
            return self.get_history(session_id, limit=limit)[::-1]
        try:
            scored = [
                (self.context_analyzer.calculate_relevance_score(question, item), item)
                for item in self._context(session_id).question_history
            ]
        except Exception as e:
            logger.exception("Error scoring history for session {}: {}", session_id, e)
            return []
        ranked = sorted(
            (pair for pair in scored if pair[0] > 0),
            key=lambda pair: pair[0],
            reverse=True,
        )
        return [item for _, item in ranked[:limit]]

    def recovery_report(self, session_id: str) -> RecoveryReport:
        return self.recovery.generate_recovery_report(self._context(session_id))

    def metrics(self) -> TrackingMetrics:
        return self.turn_log.metrics()
