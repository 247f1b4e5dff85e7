import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EngineConfig:
    """
    Dataclass for dialogue engine configuration.
    """

    pattern_locale: str
    pattern_path: Path | None
    apology_strategy: str
    apology_seed: int | None
    recent_window: int
    reference_overlap_threshold: float
    research_on_inconsistency: bool


@dataclass(frozen=True)
class LogConfig:
    """
    Dataclass for logging configuration.
    """

    level: str
    file_level: str
    rotation: str
    retention: int
    serialize: bool
    diagnose: bool


@dataclass(frozen=True)
class PathConfig:
    """
    Dataclass for path configuration.
    """

    logs: Path
    session_store: str
    transcripts: Path
    results: Path


def load_engine_env() -> EngineConfig:
    """
    Loads engine configuration from environment variables or defaults.

    Returns:
        EngineConfig: Dataclass containing engine configuration.
        - pattern_locale (str): Built-in pattern table locale ("en" or "ko").
        - pattern_path (Path | None): JSON pattern bundle overriding the built-in tables.
        - apology_strategy (str): "random" or "round_robin" template selection.
        - apology_seed (int | None): Seed for random template selection.
        - recent_window (int): Number of recent turns scanned for references and contradictions.
        - reference_overlap_threshold (float): Minimum keyword overlap to bind a referenced answer.
        - research_on_inconsistency (bool): Whether a failed consistency check requests research.
    """
    pattern_path = os.getenv("PATTERN_TABLE_PATH")
    seed = os.getenv("APOLOGY_SEED")
    return EngineConfig(
        pattern_locale=os.getenv("PATTERN_LOCALE", "en").lower(),
        pattern_path=Path(pattern_path).expanduser() if pattern_path else None,
        apology_strategy=os.getenv("APOLOGY_STRATEGY", "random").lower(),
        apology_seed=int(seed) if seed else None,
        recent_window=int(os.getenv("RECENT_WINDOW", "3")),
        reference_overlap_threshold=float(
            os.getenv("REFERENCE_OVERLAP_THRESHOLD", "0.3")
        ),
        research_on_inconsistency=_as_bool(
            os.getenv("RESEARCH_ON_INCONSISTENCY"), True
        ),
    )


def load_log_env() -> LogConfig:
    """
    Loads logging configuration from environment variables or defaults.

    Returns:
        LogConfig: Dataclass containing logging configuration.
        - level (str): Level of the stderr sink.
        - file_level (str): Level of the log file sink.
        - rotation (str): Log file rotation policy.
        - retention (int): Number of rotated log files to keep.
        - serialize (bool): Whether the log file holds JSON records.
        - diagnose (bool): Whether tracebacks show variable values.
    """
    return LogConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        file_level=os.getenv("LOG_FILE_LEVEL", "DEBUG").upper(),
        rotation=os.getenv("LOG_ROTATION", "5 MB"),
        retention=int(os.getenv("LOG_RETENTION", "3")),
        serialize=_as_bool(os.getenv("LOG_SERIALIZE"), False),
        diagnose=_as_bool(os.getenv("LOG_DIAGNOSE"), False),
    )


def load_path_env() -> PathConfig:
    """
    Loads path configuration from environment variables or defaults.

    Returns:
        PathConfig: Dataclass containing path configuration.
        - logs (Path): Path to the log file.
        - session_store (str): SQLAlchemy URL of the session store.
        - transcripts (Path): Path to the JSONL transcript replayed by the CLI.
        - results (Path): Path to the results directory.
    """
    home_dir = Path.home()
    data_dir: Path = home_dir / "dialogstate"
    project_root: Path = Path(__file__).parents[2].resolve()

    return PathConfig(
        logs=Path(
            os.getenv("LOG_PATH", project_root / ".logs" / "dialogstate.log")
        ).expanduser(),
        session_store=os.getenv(
            "SESSION_STORE_URL", f"sqlite:///{data_dir / 'sessions.db'}"
        ),
        transcripts=Path(
            os.getenv("TRANSCRIPT_PATH", data_dir / "transcript.jsonl")
        ).expanduser(),
        results=Path(os.getenv("RESULTS_PATH", data_dir / "results")).expanduser(),
    )
