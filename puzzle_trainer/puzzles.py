from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Sequence


class Completion(str, Enum):
    INCOMPLETE = "incomplete"
    CORRECT = "correct"
    INCORRECT = "incorrect"


@dataclass
class Puzzle:
    """A single puzzle: a starting position and the full solution line.

    ``moves`` holds UCI strings and includes the opponent's replies. When the
    line has an even number of moves the first one is the opponent's, played
    before the solver is on move.
    """

    fen: str
    moves: List[str]
    rating: int = 0
    rating_deviation: int = 0
    popularity: int = 0
    nb_plays: int = 0
    completion: Completion = field(default=Completion.INCOMPLETE)

    def __post_init__(self) -> None:
        if not self.moves:
            raise ValueError("Puzzle needs at least one move")
        self.completion = Completion(self.completion)

    @property
    def opponent_moves_first(self) -> bool:
        return len(self.moves) % 2 == 0

    def fresh_copy(self) -> "Puzzle":
        return Puzzle(
            fen=self.fen,
            moves=list(self.moves),
            rating=self.rating,
            rating_deviation=self.rating_deviation,
            popularity=self.popularity,
            nb_plays=self.nb_plays,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fen": self.fen,
            "moves": list(self.moves),
            "rating": self.rating,
            "rating_deviation": self.rating_deviation,
            "popularity": self.popularity,
            "nb_plays": self.nb_plays,
            "completion": self.completion.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Puzzle":
        return cls(
            fen=data["fen"],
            moves=list(data["moves"]),
            rating=int(data.get("rating") or 0),
            rating_deviation=int(data.get("rating_deviation") or 0),
            popularity=int(data.get("popularity") or 0),
            nb_plays=int(data.get("nb_plays") or 0),
            completion=Completion(data.get("completion", Completion.INCOMPLETE.value)),
        )


def split_moves(moves_field: str) -> List[str]:
    """Split a whitespace-joined move string, normalizing promotion forms like e7e8=Q -> e7e8q."""

    moves: List[str] = []
    for token in moves_field.split():
        t = token.strip()
        if not t:
            continue
        if len(t) == 6 and t[4] == "=":
            t = t[:4] + t[5]
        moves.append(t.lower())
    return moves


def open_text_stream(path: str) -> io.TextIOBase:
    """Open a puzzle CSV or game collection for reading as UTF-8 text.

    ``*.zst`` inputs (Lichess dumps, compressed PGN) are decompressed while
    streaming; that needs the optional 'zstandard' package.
    """

    if not path.endswith(".zst"):
        return open(path, "r", encoding="utf-8", newline="")

    try:
        import zstandard  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(f"Cannot read {path}: install 'zstandard' or decompress the file first.") from exc

    raw = open(path, "rb")
    reader = zstandard.ZstdDecompressor().stream_reader(raw)
    return io.TextIOWrapper(reader, encoding="utf-8", newline="")


CSV_HEADERS = (
    "PuzzleId",
    "FEN",
    "Moves",
    "Rating",
    "RatingDeviation",
    "Popularity",
    "NbPlays",
)


def iter_puzzles_csv(
    path: str,
    required_columns: Sequence[str] = CSV_HEADERS,
) -> Iterator[Puzzle]:
    """Stream puzzles from a Lichess puzzle CSV (or .csv.zst), one at a time.

    Columns documented at https://database.lichess.org/#puzzles. Malformed
    rows are skipped.
    """

    with open_text_stream(path) as text_stream:
        reader = csv.reader(text_stream)
        try:
            header = next(reader)
        except StopIteration:
            return

        missing = [c for c in required_columns if c not in header]
        if missing:
            raise ValueError(f"CSV is missing required columns: {missing}")

        index_of: Dict[str, int] = {name: header.index(name) for name in required_columns}
        width = max(index_of.values()) + 1

        for row in reader:
            if not row or len(row) < width:
                continue
            try:
                yield Puzzle(
                    fen=row[index_of["FEN"]].strip(),
                    moves=split_moves(row[index_of["Moves"]]),
                    rating=int(row[index_of["Rating"]]),
                    rating_deviation=int(row[index_of["RatingDeviation"]]),
                    popularity=int(row[index_of["Popularity"]]),
                    nb_plays=int(row[index_of["NbPlays"]]),
                )
            except ValueError:
                continue


def filter_puzzles_by_rating(
    puzzles: Iterable[Puzzle], min_rating: int, max_rating: int
) -> Iterator[Puzzle]:
    for puzzle in puzzles:
        if min_rating <= puzzle.rating <= max_rating:
            yield puzzle
