from __future__ import annotations

import logging
from typing import List, Optional

import chess

from puzzle_trainer.errors import InvalidPositionError, InvalidRecordError
from puzzle_trainer.pgn_records import GameRecord
from puzzle_trainer.puzzles import Puzzle

logger = logging.getLogger(__name__)


def starting_fen(record: GameRecord) -> str:
    fen = (record.headers.get("FEN") or "").strip()
    return fen or chess.STARTING_FEN


def convert_sans(board: chess.Board, sans: List[str]) -> List[str]:
    """Replay SAN moves on ``board``, returning the UCI of each one that resolves.

    A move that does not resolve in the current position is dropped and not
    played, so later moves are tried against the position before it.
    """

    moves: List[str] = []
    for san in sans:
        try:
            move = board.parse_san(san)
        except ValueError:
            continue
        if not move:
            # Null moves ("--", "Z0") are not part of a solution.
            continue
        moves.append(move.uci())
        board.push(move)
    return moves


def extract_puzzle(record: GameRecord, rating: int, index: Optional[int] = None) -> Puzzle:
    """Build a puzzle from one game record.

    Raises InvalidPositionError when the FEN header cannot be parsed and
    InvalidRecordError when none of the record's moves resolve.
    """

    fen = starting_fen(record)
    try:
        board = chess.Board(fen)
    except ValueError as exc:
        logger.error("Record %s: could not parse starting position %r", index, fen)
        raise InvalidPositionError(fen) from exc

    sans = record.sans
    moves = convert_sans(board, sans)

    if len(moves) != len(sans):
        logger.warning(
            "Record %s: converted %d of %d moves from SAN to UCI",
            index,
            len(moves),
            len(sans),
        )
    if not moves:
        raise InvalidRecordError(f"Record {index}: no playable moves")

    return Puzzle(fen=fen, moves=moves, rating=rating)
