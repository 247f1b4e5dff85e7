"""Research routing policies."""

from dataclasses import dataclass

from dialogstate.agents.types import ConsistencyCheck, CorrectionDetection


@dataclass
class ResearchConfig:
    """
    Configuration for research routing.
    """

    correction_confidence_threshold: float = 0.5
    research_on_inconsistency: bool = True


@dataclass
class ResearchPolicy:
    """
    Decides whether the answer backend should re-query external knowledge.
    """

    def __init__(self, config: ResearchConfig | None = None) -> None:
        """
        Initialize the ResearchPolicy.

        Args:
            config (ResearchConfig | None, optional): Configuration for research routing. Defaults to None.
        """
        self.config = config or ResearchConfig()

    def after_correction(self, correction: CorrectionDetection) -> tuple[bool, str | None]:
        """
        Decide on research after a suspected correction.

        Args:
            correction (CorrectionDetection): The confirmed or rejected correction.

        Returns:
            tuple[bool, str | None]: Whether to research, and why.
        """
        if not correction.is_correction:
            return False, None
        if correction.confidence < self.config.correction_confidence_threshold:
            return False, "correction confidence below threshold"
        return True, f"{correction.intensity} correction"

    def after_consistency_check(self, check: ConsistencyCheck) -> tuple[bool, str | None]:
        """
        Decide on research after validating a candidate answer.

        Args:
            check (ConsistencyCheck): The validation result.

        Returns:
            tuple[bool, str | None]: Whether to research, and why.
        """
        if check.is_consistent or not self.config.research_on_inconsistency:
            return False, None
        if check.recommends_research:
            return True, check.error_type or "inconsistent answer"
        return False, None
