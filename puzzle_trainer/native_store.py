"""SQLite puzzle databases (``.db3``) with a native rating index.

The store owns its own filtering and batching: callers only ask for the next
puzzle within a rating window.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from puzzle_trainer.errors import NoPuzzlesInRangeError
from puzzle_trainer.puzzles import Puzzle, filter_puzzles_by_rating, iter_puzzles_csv, split_moves

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS puzzles (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    fen              TEXT NOT NULL,
    moves            TEXT NOT NULL,
    rating           INTEGER NOT NULL,
    rating_deviation INTEGER NOT NULL DEFAULT 0,
    popularity       INTEGER NOT NULL DEFAULT 0,
    nb_plays         INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_puzzles_rating ON puzzles(rating);
"""

_COLUMNS = "fen, moves, rating, rating_deviation, popularity, nb_plays"


@dataclass(frozen=True)
class PuzzleDatabaseInfo:
    title: str
    description: str
    puzzle_count: int
    storage_size: int
    path: str
    last_modified: Optional[float] = None


@dataclass
class _Batch:
    min_rating: int = 0
    max_rating: int = 0
    random: bool = True
    offset: int = 0
    counter: int = 0
    rows: List[Tuple] = field(default_factory=list)


def _row_to_puzzle(row: Tuple) -> Puzzle:
    return Puzzle(
        fen=row[0],
        moves=split_moves(row[1]),
        rating=row[2],
        rating_deviation=row[3],
        popularity=row[4],
        nb_plays=row[5],
    )


class NativePuzzleStore:
    """Puzzles served from a SQLite file in batches of ``cache_size`` rows.

    A batch is reloaded when the rating window or ordering mode changes, or
    once every row in it has been served. Sequential mode pages through the
    window by rating and wraps around at the end.
    """

    def __init__(self, path: str, cache_size: int = 20) -> None:
        self.path = path
        self.cache_size = cache_size
        self._batch = _Batch()

    def _connect(self) -> sqlite3.Connection:
        if not os.path.exists(self.path):
            raise FileNotFoundError(self.path)
        return sqlite3.connect(self.path)

    def count(self) -> int:
        with closing(self._connect()) as db:
            return db.execute("SELECT COUNT(*) FROM puzzles").fetchone()[0]

    def rating_bounds(self) -> Tuple[int, int]:
        with closing(self._connect()) as db:
            lo, hi = db.execute("SELECT MIN(rating), MAX(rating) FROM puzzles").fetchone()
        if lo is None:
            raise NoPuzzlesInRangeError(0, 0)
        return int(lo), int(hi)

    def _load_batch(self, db: sqlite3.Connection, min_rating: int, max_rating: int, random: bool, offset: int) -> List[Tuple]:
        if random:
            query = (
                f"SELECT {_COLUMNS} FROM puzzles WHERE rating >= ? AND rating <= ? "
                "ORDER BY RANDOM() LIMIT ?"
            )
            params: Tuple = (min_rating, max_rating, self.cache_size)
        else:
            query = (
                f"SELECT {_COLUMNS} FROM puzzles WHERE rating >= ? AND rating <= ? "
                "ORDER BY rating ASC, id ASC LIMIT ? OFFSET ?"
            )
            params = (min_rating, max_rating, self.cache_size, offset)
        return db.execute(query, params).fetchall()

    def query_puzzle(self, min_rating: int, max_rating: int, random: bool) -> Puzzle:
        batch = self._batch
        same_filter = (batch.min_rating, batch.max_rating, batch.random) == (min_rating, max_rating, random)
        if not batch.rows or not same_filter or batch.counter >= len(batch.rows):
            offset = batch.offset + len(batch.rows) if same_filter and not random else 0
            with closing(self._connect()) as db:
                rows = self._load_batch(db, min_rating, max_rating, random, offset)
                if not rows and offset > 0:
                    offset = 0
                    rows = self._load_batch(db, min_rating, max_rating, random, offset)
            batch = _Batch(min_rating, max_rating, random, offset, 0, rows)
            self._batch = batch
            logger.debug("Loaded %d puzzles from %s at offset %d", len(rows), self.path, offset)

        if batch.counter >= len(batch.rows):
            raise NoPuzzlesInRangeError(min_rating, max_rating)
        row = batch.rows[batch.counter]
        batch.counter += 1
        return _row_to_puzzle(row)

    def info(self) -> PuzzleDatabaseInfo:
        file_path = Path(self.path)
        return PuzzleDatabaseInfo(
            title=file_path.name,
            description="",
            puzzle_count=self.count(),
            storage_size=file_path.stat().st_size,
            path=str(file_path),
            last_modified=file_path.stat().st_mtime,
        )


def create_database_from_csv(
    csv_path: str,
    db_path: str,
    min_rating: Optional[int] = None,
    max_rating: Optional[int] = None,
) -> int:
    """Import a Lichess puzzle CSV (or .csv.zst) into a puzzle database.

    Returns the number of puzzles written.
    """

    puzzles = iter_puzzles_csv(csv_path)
    if min_rating is not None or max_rating is not None:
        puzzles = filter_puzzles_by_rating(
            puzzles,
            min_rating if min_rating is not None else 0,
            max_rating if max_rating is not None else 10_000,
        )

    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
    written = 0
    with closing(sqlite3.connect(db_path)) as db:
        db.executescript(SCHEMA)
        with db:
            for puzzle in puzzles:
                db.execute(
                    f"INSERT INTO puzzles ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        puzzle.fen,
                        " ".join(puzzle.moves),
                        puzzle.rating,
                        puzzle.rating_deviation,
                        puzzle.popularity,
                        puzzle.nb_plays,
                    ),
                )
                written += 1
    logger.info("Imported %d puzzles from %s into %s", written, csv_path, db_path)
    return written
