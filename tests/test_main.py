from __future__ import annotations

import json
from pathlib import Path

import pytest

from puzzle_trainer.main import main, parse_args


SAMPLE_CSV = """PuzzleId,FEN,Moves,Rating,RatingDeviation,Popularity,NbPlays,Themes,GameUrl,OpeningTags
00sHx,q3k1nr/1pp1nQpp/3p4/1P2p3/4P3/B1PP1b2/B5PP/5K2 b k - 0 17,e8d7 a2e6 d7d8 f7f8,700,80,83,72,mate mateIn2 middlegame short,https://lichess.org/yyznGmXs/black#34,Italian_Game Italian_Game_Classical_Variation
00sJ9,r3r1k1/p4ppp/2p2n2/1p6/3P1qb1/2NQR3/PPB2PP1/R1B3K1 w - - 5 18,e3g3 e8e1 g1h2 e1c1 a1c1 f4h6 h2g1 h6c1,750,105,87,325,advantage attraction fork middlegame sacrifice veryLong,https://lichess.org/gyFeQsOE#35,French_Defense French_Defense_Exchange_Variation
"""


def _write_collection(tmp_path: Path) -> Path:
    path = tmp_path / "games.pgn"
    path.write_text(
        '[WhiteElo "1100"]\n\n1. e4 e5 2. Nf3 Nc6 *\n\n[WhiteElo "1300"]\n\n1. d4 d5 2. c4 e6 *\n',
        encoding="utf-8",
    )
    return path


def test_parse_args_defaults() -> None:
    args = parse_args(["play", "games.pgn"])
    assert args.command == "play"
    assert args.min_rating is None
    assert args.max_rating is None
    assert args.count == 1
    assert not args.in_order
    assert not args.progressive
    assert not args.adaptive
    assert args.k_factor == 32
    assert args.state_dir.endswith(".puzzle-trainer")


def test_bounds_command(tmp_path: Path, capsys) -> None:
    pgn = _write_collection(tmp_path)

    exit_code = main(["--state-dir", str(tmp_path / "state"), "bounds", str(pgn)])

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "1100-1300"


def test_bounds_command_reports_fallback(tmp_path: Path, capsys) -> None:
    exit_code = main(["--state-dir", str(tmp_path / "state"), "bounds", str(tmp_path / "missing.pgn")])

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "600-2800 (fallback)"


def test_play_saves_session_and_rating(tmp_path: Path, capsys) -> None:
    pgn = _write_collection(tmp_path)
    state_dir = tmp_path / "state"

    exit_code = main(["--state-dir", str(state_dir), "play", str(pgn), "--in-order", "--count", "3"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "rating=1100" in out
    assert "rating=1300" in out
    session = json.loads((state_dir / "session.json").read_text(encoding="utf-8"))
    assert len(session["puzzles"]) == 3
    assert (state_dir / "rating.json").exists()

    assert main(["--state-dir", str(state_dir), "rating"]) == 0
    assert "Rating: 1500 (max 1500)" in capsys.readouterr().out

    assert main(["--state-dir", str(state_dir), "clear-session"]) == 0
    session = json.loads((state_dir / "session.json").read_text(encoding="utf-8"))
    assert session["puzzles"] == []


def test_play_with_empty_window_fails(tmp_path: Path, capsys) -> None:
    pgn = _write_collection(tmp_path)

    exit_code = main(
        ["--state-dir", str(tmp_path / "state"), "play", str(pgn), "--min-rating", "2000", "--max-rating", "2100"]
    )

    assert exit_code == 1
    assert "No puzzle with a rating in [2000, 2100]" in capsys.readouterr().out


def test_import_csv_then_list(tmp_path: Path, capsys) -> None:
    csv_path = tmp_path / "lichess_db_puzzle.csv"
    csv_path.write_text(SAMPLE_CSV, encoding="utf-8")
    db_dir = tmp_path / "puzzles"

    exit_code = main(["import-csv", "--csv-path", str(csv_path), "--db-path", str(db_dir / "lichess.db3")])
    assert exit_code == 0
    assert "Wrote 2 puzzles" in capsys.readouterr().out

    pgn = _write_collection(tmp_path)
    assert main(["list", "--puzzle-dir", str(db_dir), "--collection", str(pgn)]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0].startswith("lichess.db3: 2 puzzles")
    assert lines[1].startswith("games: 2 puzzles")


def test_adaptive_and_progressive_are_exclusive(capsys) -> None:
    assert parse_args(["play", "games.pgn", "--adaptive"]).adaptive

    with pytest.raises(SystemExit):
        parse_args(["play", "games.pgn", "--adaptive", "--progressive"])
    capsys.readouterr()


def test_result_command_updates_saved_rating(tmp_path: Path, capsys) -> None:
    pgn = _write_collection(tmp_path)
    state_dir = tmp_path / "state"
    assert main(["--state-dir", str(state_dir), "play", str(pgn), "--in-order"]) == 0

    exit_code = main(["--state-dir", str(state_dir), "result", "incorrect"])

    assert exit_code == 0
    assert "Marked incorrect" in capsys.readouterr().out
    rating = json.loads((state_dir / "rating.json").read_text(encoding="utf-8"))
    assert rating["rating"] < 1500
    session = json.loads((state_dir / "session.json").read_text(encoding="utf-8"))
    assert session["puzzles"][0]["completion"] == "incorrect"


def test_move_command_solves_current_puzzle(tmp_path: Path, capsys) -> None:
    pgn = tmp_path / "mates.pgn"
    pgn.write_text(
        '[WhiteElo "1500"]\n[FEN "6k1/5ppp/8/8/8/8/5PPP/4R1K1 w - - 0 1"]\n\n1. Re8# 1-0\n',
        encoding="utf-8",
    )
    state_dir = tmp_path / "state"
    assert main(["--state-dir", str(state_dir), "play", str(pgn)]) == 0
    capsys.readouterr()

    exit_code = main(["--state-dir", str(state_dir), "move", "e1e8"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "e1e8: solved" in out
    assert "Rating: 1516" in out
    rating = json.loads((state_dir / "rating.json").read_text(encoding="utf-8"))
    assert rating["rating"] == 1516
    assert (state_dir / "solves.json").exists()


def test_wrong_move_marks_puzzle_incorrect(tmp_path: Path, capsys) -> None:
    pgn = tmp_path / "mates.pgn"
    pgn.write_text(
        '[WhiteElo "1500"]\n[FEN "6k1/5ppp/8/8/8/8/5PPP/4R1K1 w - - 0 1"]\n\n1. Re8# 1-0\n',
        encoding="utf-8",
    )
    state_dir = tmp_path / "state"
    assert main(["--state-dir", str(state_dir), "play", str(pgn)]) == 0
    capsys.readouterr()

    assert main(["--state-dir", str(state_dir), "move", "e1e7"]) == 0

    assert "e1e7: incorrect" in capsys.readouterr().out
    rating = json.loads((state_dir / "rating.json").read_text(encoding="utf-8"))
    assert rating["rating"] == 1484


def test_move_without_session_fails(tmp_path: Path, capsys) -> None:
    exit_code = main(["--state-dir", str(tmp_path / "state"), "move", "e2e4"])

    assert exit_code == 1
    assert "Error: No active puzzle" in capsys.readouterr().out
