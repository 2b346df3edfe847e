"""In-memory puzzle collections derived from game records.

A collection has no rating index of its own, so every record is read once,
given a rating, and kept as parsed headers and SAN. Puzzles are extracted from a
record the first time it is selected and kept on the record afterwards.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from puzzle_trainer.config import DEFAULT_RATING
from puzzle_trainer.errors import InvalidRecordError
from puzzle_trainer.extraction import extract_puzzle
from puzzle_trainer.pgn_records import GameRecord, count_records, read_records
from puzzle_trainer.puzzles import Completion, Puzzle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingBounds:
    min_rating: int
    max_rating: int
    # Set when the source has no records; range controls should be disabled.
    degenerate: bool = False
    # Set when loading failed and a conservative default was substituted.
    fallback: bool = False

    def as_tuple(self) -> Tuple[int, int]:
        return (self.min_rating, self.max_rating)


@dataclass
class CachedPuzzleRecord:
    record: GameRecord
    rating: int
    collection_index: int
    puzzle: Optional[Puzzle] = None
    # Set once extraction has failed; the record is not parsed again.
    unplayable: bool = False

    def materialize(self) -> Puzzle:
        """Return this record's puzzle, extracting it on first use."""

        if self.puzzle is not None:
            return self.puzzle
        if self.unplayable:
            raise InvalidRecordError(f"Record {self.collection_index} has no playable puzzle")
        try:
            extracted = extract_puzzle(self.record, self.rating, self.collection_index)
        except InvalidRecordError:
            self.unplayable = True
            raise
        # Keep whichever result was stored first.
        if self.puzzle is None:
            self.puzzle = extracted
        return self.puzzle


@dataclass
class SelectionState:
    filter_min_rating: int = 0
    filter_max_rating: int = 0
    random_mode: bool = False
    cursor: int = 0
    eligible_indices: List[int] = field(default_factory=list)

    def matches(self, min_rating: int, max_rating: int, random_mode: bool) -> bool:
        return (
            self.filter_min_rating == min_rating
            and self.filter_max_rating == max_rating
            and self.random_mode == random_mode
        )


@dataclass
class SourceCacheEntry:
    path: str
    records: List[CachedPuzzleRecord]
    bounds: RatingBounds
    selection: SelectionState = field(default_factory=SelectionState)

    def reset(self) -> None:
        """Forget selection progress and mark every extracted puzzle incomplete."""

        self.selection = SelectionState()
        for record in self.records:
            if record.puzzle is not None:
                record.puzzle.completion = Completion.INCOMPLETE

    def next_puzzle(
        self,
        min_rating: int,
        max_rating: int,
        random_mode: bool,
        rng: Optional[random.Random] = None,
    ) -> Optional[Puzzle]:
        """Select and materialize the next puzzle in range, or None if there is none.

        Records that cannot be turned into a puzzle are skipped, with a warning
        the first time only. At most one pass over the eligible set is made
        before giving up.
        """

        attempts = 0
        while True:
            index = select_next(self, min_rating, max_rating, random_mode, rng=rng)
            if index is None:
                return None
            record = self.records[index]
            if not record.unplayable:
                try:
                    return record.materialize()
                except InvalidRecordError as exc:
                    logger.warning("Skipping record %d of %s: %s", index, self.path, exc)
            attempts += 1
            if attempts >= len(self.selection.eligible_indices):
                return None


def record_rating(record: GameRecord, default: int = DEFAULT_RATING) -> int:
    """Rating declared by the record's WhiteElo header, else ``default``."""

    value = record.headers.get("WhiteElo", "").strip()
    try:
        rating = int(value)
    except ValueError:
        return default
    return rating if rating > 0 else default


def calculate_rating_bounds(records: List[CachedPuzzleRecord], default: int = DEFAULT_RATING) -> RatingBounds:
    if not records:
        return RatingBounds(default, default, degenerate=True)
    ratings = [r.rating for r in records]
    return RatingBounds(min(ratings), max(ratings))


def build_cache_entry(path: str, default_rating: int = DEFAULT_RATING) -> SourceCacheEntry:
    """Read every record of a collection and index it by rating."""

    count = count_records(path)
    games = read_records(path, 0, count - 1) if count > 0 else []
    records: List[CachedPuzzleRecord] = []
    for index, game in enumerate(games):
        records.append(
            CachedPuzzleRecord(
                record=game,
                rating=record_rating(game, default_rating),
                collection_index=index,
            )
        )

    bounds = calculate_rating_bounds(records, default_rating)
    logger.debug(
        "Indexed %s: %d records, ratings %d-%d",
        path,
        len(records),
        bounds.min_rating,
        bounds.max_rating,
    )
    return SourceCacheEntry(path=path, records=records, bounds=bounds)


def select_next(
    entry: SourceCacheEntry,
    min_rating: int,
    max_rating: int,
    random_mode: bool,
    rng: Optional[random.Random] = None,
) -> Optional[int]:
    """Pick the index of the next record to serve for a rating window.

    The eligible set is rebuilt only when the filter changes or the cursor
    has gone once around it. In sequential mode records are served in
    collection order; in random mode uniformly from the eligible set. The
    cursor advances on every call in both modes.
    """

    state = entry.selection
    if not state.matches(min_rating, max_rating, random_mode) or state.cursor >= len(state.eligible_indices):
        state = SelectionState(
            filter_min_rating=min_rating,
            filter_max_rating=max_rating,
            random_mode=random_mode,
            cursor=0,
            eligible_indices=[
                i for i, record in enumerate(entry.records) if min_rating <= record.rating <= max_rating
            ],
        )
        entry.selection = state

    eligible = state.eligible_indices
    if not eligible:
        return None

    if random_mode:
        index = (rng or random).choice(eligible)
    else:
        index = eligible[state.cursor % len(eligible)]
    state.cursor += 1
    logger.debug("Selected record %d (cursor %d of %d eligible)", index, state.cursor, len(eligible))
    return index


class CollectionRegistry:
    """One cache entry per collection path, owned by the application context."""

    def __init__(self) -> None:
        self._entries: Dict[str, SourceCacheEntry] = {}

    def get(self, path: str) -> Optional[SourceCacheEntry]:
        return self._entries.get(path)

    def put(self, entry: SourceCacheEntry) -> None:
        self._entries[entry.path] = entry

    def remove(self, path: str) -> None:
        self._entries.pop(path, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
