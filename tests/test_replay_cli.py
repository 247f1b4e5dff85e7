import json
from pathlib import Path

import pytest

import dialogstate.cli.replay as replay_cli
from dialogstate.agents.orchestrator import ConversationEngine


def _write_transcript(path: Path, turns: list[dict]) -> Path:
    path.write_text("\n".join(json.dumps(t) for t in turns) + "\n", encoding="utf-8")
    return path


TURNS = [
    {"question": "Can I trade this action?", "answer": "This action is possible.", "confidence": 0.9},
    {"question": "That is completely wrong", "answer": "This action is impossible."},
]


def test_store_output_writes_json(tmp_path: Path) -> None:
    """
    Test that _store_output writes the payload to a JSON file.

    Args:
        tmp_path (Path): The temporary path fixture.
    """
    payload = {"answer": "hi"}
    target = replay_cli._store_output("result", payload, output_path=tmp_path / "out")
    assert target == tmp_path / "out" / "result.json"
    assert json.loads(target.read_text()) == payload


def test_load_transcript_errors(tmp_path: Path) -> None:
    """
    Test that missing and malformed transcripts are rejected.

    Args:
        tmp_path (Path): The temporary path fixture.
    """
    with pytest.raises(FileNotFoundError):
        replay_cli.load_transcript(tmp_path / "missing.jsonl")

    broken = tmp_path / "broken.jsonl"
    broken.write_text('{"question": "q", "answer": "a"}\n{oops\n', encoding="utf-8")
    with pytest.raises(ValueError):
        replay_cli.load_transcript(broken)

    incomplete = _write_transcript(tmp_path / "incomplete.jsonl", [{"question": "q"}])
    with pytest.raises(ValueError):
        replay_cli.load_transcript(incomplete)


def test_load_transcript_skips_blank_lines(tmp_path: Path) -> None:
    """
    Test that blank lines between turns are ignored.

    Args:
        tmp_path (Path): The temporary path fixture.
    """
    path = tmp_path / "t.jsonl"
    path.write_text(
        json.dumps(TURNS[0]) + "\n\n" + json.dumps(TURNS[1]) + "\n", encoding="utf-8"
    )
    assert replay_cli.load_transcript(path) == TURNS


def test_replay_records_every_turn(engine: ConversationEngine) -> None:
    """
    Test that replay analyzes, validates and records each turn.

    Args:
        engine (ConversationEngine): The engine fixture.
    """
    result = replay_cli.replay(engine, "demo", TURNS)
    assert result["session_id"] == "demo"
    assert [t["turn"] for t in result["turns"]] == [0, 1]

    second = result["turns"][1]
    assert second["analysis"]["intent_analysis"]["is_challenging_previous_answer"] is True
    assert second["analysis"]["recovery_recommendation"]["research_requested"] is True
    assert second["consistency"]["is_consistent"] is False
    assert second["consistency"]["conflicting_turns"] == [0]
    assert second["consistency"]["research_requested"] is True
    assert result["metrics"]["window"] == 2

    history = engine.get_history("demo")
    assert history[1].was_researched is True


def test_main_writes_results(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Test that the CLI replays a transcript and writes a results file.

    Args:
        tmp_path (Path): The temporary path fixture.
        monkeypatch (pytest.MonkeyPatch): Fixture to override environment.
    """
    transcript = _write_transcript(tmp_path / "session.jsonl", TURNS)
    results = tmp_path / "results"
    monkeypatch.setenv("LOG_PATH", str(tmp_path / "logs" / "replay.log"))
    monkeypatch.setenv("RESULTS_PATH", str(results))
    monkeypatch.setenv("PATTERN_LOCALE", "en")
    monkeypatch.delenv("PATTERN_TABLE_PATH", raising=False)
    monkeypatch.setenv("APOLOGY_STRATEGY", "round_robin")

    replay_cli.main([str(transcript), "--session-id", "cli"])

    written = list(results.glob("*_cli_replay.json"))
    assert len(written) == 1
    payload = json.loads(written[0].read_text(encoding="utf-8"))
    assert payload["session_id"] == "cli"
    assert len(payload["turns"]) == 2
