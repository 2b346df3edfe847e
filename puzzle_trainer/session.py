"""The puzzles attempted in one sitting and the board they are played on."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import chess

from puzzle_trainer.rating import ELO_K_FACTOR, PlayerRating
from puzzle_trainer.puzzles import Completion, Puzzle
from puzzle_trainer.streak import SolveHistory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveResult:
    correct: bool
    solved: bool = False
    reply: Optional[str] = None


@dataclass(frozen=True)
class SessionSummary:
    correct: int
    incorrect: int
    average_correct_rating: Optional[float]
    average_incorrect_rating: Optional[float]


def _average(values: List[int]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class PuzzleSession:
    """Ordered puzzles of the current session plus a live board for the active one.

    Completion changes feed the player's rating. Clearing the session leaves
    the rating untouched.
    """

    def __init__(
        self,
        rating: Optional[PlayerRating] = None,
        k_factor: float = ELO_K_FACTOR,
        solves: Optional[SolveHistory] = None,
    ) -> None:
        self.rating = rating if rating is not None else PlayerRating()
        self.k_factor = k_factor
        self.solves = solves
        self.puzzles: List[Puzzle] = []
        self.current_index = 0
        self.board = chess.Board()
        self._ply = 0
        self._failed = False

    @property
    def current_puzzle(self) -> Optional[Puzzle]:
        if 0 <= self.current_index < len(self.puzzles):
            return self.puzzles[self.current_index]
        return None

    def set_up_board(self, puzzle: Puzzle) -> None:
        """Load the puzzle position, playing the opponent's first move when it has one."""

        self.board = chess.Board(puzzle.fen)
        self._ply = 0
        self._failed = False
        if puzzle.opponent_moves_first:
            logger.debug("Puzzle has an even number of moves; playing %s for the opponent", puzzle.moves[0])
            self.board.push_uci(puzzle.moves[0])
            self._ply = 1

    def add_puzzle(self, puzzle: Puzzle) -> None:
        self.puzzles.append(puzzle)
        self.current_index = len(self.puzzles) - 1
        logger.debug("Added puzzle rated %s (%d in session)", puzzle.rating, len(self.puzzles))
        self.set_up_board(puzzle)

    def select_puzzle(self, index: int) -> None:
        if not 0 <= index < len(self.puzzles):
            raise IndexError(f"No puzzle {index} in a session of {len(self.puzzles)}")
        self.current_index = index
        self.set_up_board(self.puzzles[index])

    def change_completion(self, completion: Completion) -> None:
        """Record an outcome for the active puzzle and update the player's rating.

        Every call with a rated puzzle moves the rating, including repeated
        calls for the same puzzle.
        """

        puzzle = self.current_puzzle
        if puzzle is None:
            raise IndexError("No active puzzle")
        puzzle.completion = Completion(completion)
        if puzzle.rating:
            self.rating.apply_result(puzzle.rating, puzzle.completion == Completion.CORRECT, self.k_factor)

    def clear_session(self) -> None:
        logger.debug("Clearing puzzle session of %d puzzles", len(self.puzzles))
        self.puzzles = []
        self.current_index = 0
        self.board = chess.Board()
        self._ply = 0
        self._failed = False

    def play_move(self, uci: str) -> MoveResult:
        """Check a move by the solver against the active puzzle's solution.

        The expected move, or any move that gives checkmate, is accepted and
        the opponent's reply is played. A wrong move leaves the board as it was
        and marks the puzzle incorrect, once per attempt.
        """

        puzzle = self.current_puzzle
        if puzzle is None:
            raise IndexError("No active puzzle")
        if self._ply >= len(puzzle.moves):
            raise ValueError("Puzzle already finished")

        move = chess.Move.from_uci(uci)
        if move not in self.board.legal_moves:
            raise ValueError(f"Illegal move {uci} in {self.board.fen()}")

        after = self.board.copy(stack=False)
        after.push(move)
        if move.uci() != puzzle.moves[self._ply] and not after.is_checkmate():
            if not self._failed:
                self._failed = True
                self.change_completion(Completion.INCORRECT)
            return MoveResult(correct=False)

        self.board.push(move)
        self._ply += 1
        if self._ply >= len(puzzle.moves) or self.board.is_checkmate():
            self._ply = len(puzzle.moves)
            if puzzle.completion == Completion.INCOMPLETE:
                self.change_completion(Completion.CORRECT)
                if self.solves is not None:
                    self.solves.record_solved()
            return MoveResult(correct=True, solved=True)

        reply = puzzle.moves[self._ply]
        self.board.push_uci(reply)
        self._ply += 1
        return MoveResult(correct=True, reply=reply)

    def recent_results(self) -> List[Completion]:
        return [p.completion for p in self.puzzles]

    def summary(self) -> SessionSummary:
        won = [p.rating for p in self.puzzles if p.completion == Completion.CORRECT]
        lost = [p.rating for p in self.puzzles if p.completion == Completion.INCORRECT]
        return SessionSummary(
            correct=len(won),
            incorrect=len(lost),
            average_correct_rating=_average(won),
            average_incorrect_rating=_average(lost),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "puzzles": [p.to_dict() for p in self.puzzles],
            "current_index": self.current_index,
        }

    def save(self, path: Union[str, Path]) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    def restore(self, path: Union[str, Path]) -> bool:
        """Reload puzzles saved by ``save``.

        Returns False when the file is missing or cannot be used. A file that
        cannot be used leaves the session empty.
        """

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            puzzles = [Puzzle.from_dict(p) for p in data.get("puzzles", [])]
            index = int(data.get("current_index", 0))
            self.puzzles = puzzles
            if puzzles:
                self.select_puzzle(min(max(index, 0), len(puzzles) - 1))
            else:
                self.clear_session()
        except FileNotFoundError:
            return False
        except (OSError, ValueError, KeyError, TypeError) as exc:
            # Includes positions or first moves that no longer set up a board.
            logger.warning("Ignoring unreadable session file %s: %s", path, exc)
            self.clear_session()
            return False
        return True
