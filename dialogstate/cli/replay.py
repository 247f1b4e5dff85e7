import argparse
import json
import sys
from pathlib import Path
from time import time
from typing import Any

from dotenv import load_dotenv
from loguru import logger

from dialogstate.agents.orchestrator import ConversationEngine
from dialogstate.core.session_store import SqlContextStore
from dialogstate.core.store import ConversationContextStore, InMemoryContextStore
from dialogstate.utils.env_cfg import load_path_env
from dialogstate.utils.logging_cfg import setup_logging


def _store_output(filename: str, data: dict | list, output_path: str | Path) -> Path:
    """
    Stores the output data to a JSON file.

    Args:
        filename (str): The name of the output file (without extension).
        data (dict | list): The data to store.
        output_path (str | Path): The directory to store the output file.

    Returns:
        Path: The written file.
    """
    if not isinstance(output_path, Path):
        output_path = Path(output_path).expanduser()

    if not output_path.exists():
        logger.info("Creating output directory at {}", output_path)
        output_path.mkdir(parents=True, exist_ok=True)

    if isinstance(data, list):
        data = [item.to_dict() if hasattr(item, "to_dict") else item for item in data]

    target = output_path / f"{filename}.json"
    with open(target, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info("Results stored in {}", target)
    return target


def load_transcript(t_path: str | Path) -> list[dict[str, Any]]:
    """
    Loads turns from a JSONL transcript, one ``{"question", "answer"}`` object per line.

    Args:
        t_path (str | Path): The path to the transcript.

    Returns:
        list[dict[str, Any]]: The turns, in order.

    Raises:
        FileNotFoundError: If the transcript does not exist.
        ValueError: If a line is not a JSON object with a question and an answer.
    """
    if not isinstance(t_path, Path):
        t_path = Path(t_path).expanduser()

    if not t_path.exists():
        logger.error("FileNotFoundError: Transcript not found at {}", t_path)
        raise FileNotFoundError(f"Transcript not found at {t_path}")

    logger.info("Loading transcript from {}", t_path)
    turns: list[dict[str, Any]] = []
    with open(t_path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                turn = json.loads(line)
            except json.JSONDecodeError as e:
                logger.error("ValueError: Invalid JSON on line {}: {}", lineno, e)
                raise ValueError(f"Invalid JSON on line {lineno}: {e}") from e
            if not isinstance(turn, dict) or "question" not in turn or "answer" not in turn:
                logger.error("ValueError: Line {} needs a question and an answer", lineno)
                raise ValueError(f"Line {lineno} needs a question and an answer")
            turns.append(turn)
    return turns


def replay(
    engine: ConversationEngine, session_id: str, turns: list[dict[str, Any]]
) -> dict[str, Any]:
    """
    Replays a transcript through the engine, one turn at a time.

    Args:
        engine (ConversationEngine): The engine to replay through.
        session_id (str): The session to record the turns in.
        turns (list[dict[str, Any]]): The transcript turns.

    Returns:
        dict[str, Any]: Per-turn analyses, the recovery report and tracking metrics.
    """
    results: list[dict[str, Any]] = []
    with logger.contextualize(session_id=session_id):
        for index, turn in enumerate(turns):
            question = str(turn["question"])
            answer = str(turn["answer"])
            logger.info("Replaying turn {}: {}", index, question)

            analysis = engine.analyze_turn(session_id, question)
            check = engine.check_consistency(session_id, answer, analysis=analysis)
            was_researched = bool(
                turn.get("was_researched", analysis.research_requested)
            )
            confidence = turn.get("confidence")
            stored = engine.finalize_turn(
                session_id,
                question,
                answer,
                analysis=analysis,
                was_researched=was_researched,
                confidence=float(confidence) if confidence is not None else None,
            )
            results.append(
                {
                    "turn": stored.turn_index if stored else None,
                    "analysis": analysis.to_dict(),
                    "consistency": check.to_dict(),
                }
            )

    metrics = engine.metrics()
    return {
        "session_id": session_id,
        "turns": results,
        "recovery_report": engine.recovery_report(session_id).to_dict(),
        "metrics": {
            "context_tracking_accuracy": metrics.context_tracking_accuracy,
            "intent_recognition_rate": metrics.intent_recognition_rate,
            "error_detection_rate": metrics.error_detection_rate,
            "window": metrics.window,
        },
    }


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dialogstate-replay",
        description="Replay a JSONL transcript through the dialogue-state engine.",
    )
    parser.add_argument("transcript", nargs="?", help="JSONL transcript path")
    parser.add_argument("--session-id", default=None, help="Session id to record under")
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Record turns in the SQL session store instead of memory",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the CLI. Loads a transcript, replays it, and stores the results.
    """
    load_dotenv()
    setup_logging()
    args = _parse_args(argv)
    path_config = load_path_env()

    transcript = Path(args.transcript).expanduser() if args.transcript else path_config.transcripts
    turns = load_transcript(transcript)

    store: ConversationContextStore
    if args.persist:
        store = SqlContextStore(db_url=path_config.session_store)
    else:
        store = InMemoryContextStore()

    session_id = args.session_id or transcript.stem
    engine = ConversationEngine.from_env(store=store)
    result = replay(engine, session_id, turns)
    _store_output(
        filename=f"{int(time())}_{session_id}_replay",
        data=result,
        output_path=path_config.results,
    )
    logger.info("Replayed {} turns for session {}", len(turns), session_id)


if __name__ == "__main__":
    sys.path.append(str(Path(__file__).parents[2].resolve()))
    main()
