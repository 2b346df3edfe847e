"""Reading game collections: record enumeration, main-line SAN, and file metadata.

A collection is a PGN file (optionally .pgn.zst) read with ``chess.pgn``.
Moves are kept as SAN text rather than replayed here, so a move that does not
resolve can be dropped later without losing the rest of the line.
"""

from __future__ import annotations

import io
import itertools
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, TextIO

import chess
import chess.pgn

from puzzle_trainer.puzzles import open_text_stream

logger = logging.getLogger(__name__)


@dataclass
class GameRecord:
    """Headers and main-line SAN moves of one game, unvalidated."""

    headers: Dict[str, str] = field(default_factory=dict)
    sans: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class GameRecordVisitor(chess.pgn.BaseVisitor[GameRecord]):
    """Collects headers and main-line SAN without checking move legality.

    Every SAN token is answered with a null move so that parsing carries on
    past moves that would not resolve. Variations are skipped.
    """

    def begin_game(self) -> None:
        self.headers = chess.pgn.Headers({})
        self.sans: List[str] = []
        self.errors: List[str] = []

    def begin_headers(self) -> chess.pgn.Headers:
        return self.headers

    def visit_header(self, tagname: str, tagvalue: str) -> None:
        # A blank FEN means the standard starting position.
        if tagname == "FEN" and not tagvalue.strip():
            return
        self.headers[tagname] = tagvalue

    def begin_variation(self) -> chess.pgn.SkipType:
        return chess.pgn.SKIP

    def parse_san(self, board: chess.Board, san: str) -> chess.Move:
        self.sans.append(san)
        return chess.Move.null()

    def handle_error(self, error: Exception) -> None:
        logger.debug("PGN error: %s", error)
        self.errors.append(str(error))

    def result(self) -> GameRecord:
        return GameRecord(headers=dict(self.headers), sans=self.sans, errors=self.errors)


def read_record(handle: TextIO) -> Optional[GameRecord]:
    """Read the next game from an open PGN text stream, or None at end of file."""

    return chess.pgn.read_game(handle, Visitor=GameRecordVisitor)


def parse_record(pgn_text: str) -> GameRecord:
    record = read_record(io.StringIO(pgn_text))
    return record if record is not None else GameRecord()


def iter_records(path: str) -> Iterator[GameRecord]:
    """Yield every game of a collection, in file order."""

    with open_text_stream(path) as stream:
        while True:
            record = read_record(stream)
            if record is None:
                return
            yield record


def count_records(path: str) -> int:
    count = 0
    with open_text_stream(path) as stream:
        while chess.pgn.skip_game(stream):
            count += 1
    return count


def read_records(path: str, start_index: int, end_index: int) -> List[GameRecord]:
    """Return records ``start_index`` through ``end_index`` inclusive."""

    if end_index < start_index:
        return []
    return list(itertools.islice(iter_records(path), start_index, end_index + 1))


@dataclass(frozen=True)
class FileMetadata:
    last_modified: float
    size: int


def file_metadata(path: str) -> FileMetadata:
    stat = os.stat(path)
    return FileMetadata(last_modified=stat.st_mtime, size=stat.st_size)
