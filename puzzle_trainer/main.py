from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from puzzle_trainer.config import TrainerConfig
from puzzle_trainer.errors import PuzzleError
from puzzle_trainer.native_store import create_database_from_csv
from puzzle_trainer.puzzles import Completion
from puzzle_trainer.rating import ELO_K_FACTOR
from puzzle_trainer.sources import PuzzleTrainer, list_puzzle_databases


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Serve chess puzzles from a puzzle database (.db3) or a PGN collection, "
            "filtered by rating, and track the player's puzzle rating."
        )
    )
    parser.add_argument(
        "--state-dir",
        default=str(Path.home() / ".puzzle-trainer"),
        help="Directory holding the saved rating, session and solve history",
    )
    parser.add_argument(
        "--k-factor",
        type=float,
        default=ELO_K_FACTOR,
        help="Elo K factor used for rating updates",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=False, help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    bounds = sub.add_parser("bounds", help="Show the rating range of a puzzle source")
    bounds.add_argument("source", help="Path to a .db3 database or .pgn collection")

    play = sub.add_parser("play", help="Generate puzzles and add them to the session")
    play.add_argument("source", help="Path to a .db3 database or .pgn collection")
    play.add_argument("--min-rating", type=int, default=None, help="Minimum rating (inclusive)")
    play.add_argument("--max-rating", type=int, default=None, help="Maximum rating (inclusive)")
    play.add_argument("--count", type=int, default=1, help="Number of puzzles to generate")
    play.add_argument(
        "--in-order",
        action="store_true",
        default=False,
        help="Serve puzzles in collection order instead of at random",
    )
    window_mode = play.add_mutually_exclusive_group()
    window_mode.add_argument(
        "--progressive",
        action="store_true",
        default=False,
        help="Move the rating window above the last puzzle after each one",
    )
    window_mode.add_argument(
        "--adaptive",
        action="store_true",
        default=False,
        help="Pick puzzles around the player's rating, easier after repeated failures",
    )

    move = sub.add_parser("move", help="Play moves in the current puzzle of the session")
    move.add_argument("uci", nargs="+", help="Moves in UCI notation, e.g. e2e4, played in turn")

    result = sub.add_parser("result", help="Mark the current puzzle of the session solved or failed")
    result.add_argument("outcome", choices=[Completion.CORRECT.value, Completion.INCORRECT.value])

    sub.add_parser("rating", help="Show the player's rating and solve streak")
    sub.add_parser("clear-session", help="Forget the puzzles of the current session")

    lst = sub.add_parser("list", help="List puzzle databases and collections")
    lst.add_argument("--puzzle-dir", default=None, help="Directory containing .db3 databases")
    lst.add_argument(
        "--collection",
        action="append",
        default=[],
        help="PGN puzzle collection. Can be specified multiple times.",
    )

    imp = sub.add_parser("import-csv", help="Build a .db3 database from a Lichess puzzle CSV")
    imp.add_argument("--csv-path", required=True, help="Path to lichess_db_puzzle.csv or .csv.zst")
    imp.add_argument("--db-path", required=True, help="Output .db3 path")
    imp.add_argument("--min-rating", type=int, default=None, help="Minimum rating (inclusive)")
    imp.add_argument("--max-rating", type=int, default=None, help="Maximum rating (inclusive)")

    return parser.parse_args(argv)


def _play(trainer: PuzzleTrainer, args: argparse.Namespace) -> int:
    bounds = trainer.load_rating_bounds(args.source)
    if bounds.fallback:
        print(f"Could not read {args.source}")
        return 1
    window = (
        args.min_rating if args.min_rating is not None else bounds.min_rating,
        args.max_rating if args.max_rating is not None else bounds.max_rating,
    )

    for _ in range(args.count):
        try:
            puzzle = trainer.next_puzzle(
                args.source,
                window,
                in_order=args.in_order,
                progressive=args.progressive,
                adaptive=args.adaptive,
            )
        except PuzzleError as exc:
            print(f"Error: {exc}")
            return 1
        index = trainer.session.current_index
        print(f"{index + 1:>3}. rating={puzzle.rating} fen={puzzle.fen}")
        print(f"     moves={' '.join(puzzle.moves)}")
        print(f"     position={trainer.session.board.fen()}")
    return 0


def _move(trainer: PuzzleTrainer, moves: Sequence[str]) -> int:
    for uci in moves:
        try:
            outcome = trainer.session.play_move(uci)
        except (IndexError, ValueError) as exc:
            print(f"Error: {exc}")
            return 1
        if not outcome.correct:
            print(f"{uci}: incorrect")
            return 0
        if outcome.solved:
            print(f"{uci}: solved")
            return 0
        print(f"{uci}: correct, reply {outcome.reply}")
    return 0


def _result(trainer: PuzzleTrainer, outcome: str) -> int:
    try:
        trainer.session.change_completion(Completion(outcome))
    except IndexError as exc:
        print(f"Error: {exc}")
        return 1
    print(f"Marked {outcome}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "import-csv":
        written = create_database_from_csv(args.csv_path, args.db_path, args.min_rating, args.max_rating)
        print(f"Wrote {written} puzzles to {args.db_path}")
        return 0

    if args.command == "list":
        for info in list_puzzle_databases(args.puzzle_dir, args.collection):
            print(f"{info.title}: {info.puzzle_count} puzzles ({info.storage_size} bytes) {info.path}")
        return 0

    trainer = PuzzleTrainer(TrainerConfig.from_args(args))

    if args.command == "bounds":
        bounds = trainer.load_rating_bounds(args.source)
        note = " (no puzzles)" if bounds.degenerate else " (fallback)" if bounds.fallback else ""
        print(f"{bounds.min_rating}-{bounds.max_rating}{note}")
        return 0

    if args.command == "rating":
        rating = trainer.player_rating
        summary = trainer.session.summary()
        print(f"Rating: {rating.rating:.0f} (max {rating.max_rating_ever_reached:.0f})")
        print(f"Streak: {trainer.solves.current_streak()} days")
        print(f"Session: {summary.correct} correct, {summary.incorrect} incorrect")
        return 0

    if args.command == "clear-session":
        trainer.session.clear_session()
        trainer.save_state()
        print("Session cleared")
        return 0

    if args.command == "move":
        exit_code = _move(trainer, args.uci)
    elif args.command == "result":
        exit_code = _result(trainer, args.outcome)
    else:
        exit_code = _play(trainer, args)
    if args.command != "play":
        print(f"Rating: {trainer.player_rating.rating:.0f}")
    trainer.save_state()
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
