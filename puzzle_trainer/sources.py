from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from puzzle_trainer.collection import CollectionRegistry, RatingBounds, build_cache_entry
from puzzle_trainer.config import DEFAULT_RATING, TrainerConfig
from puzzle_trainer.errors import DatabaseNotInitializedError, NoPuzzlesInRangeError, PuzzleError, UnknownSourceError
from puzzle_trainer.native_store import NativePuzzleStore, PuzzleDatabaseInfo
from puzzle_trainer.pgn_records import count_records, file_metadata
from puzzle_trainer.puzzles import Puzzle
from puzzle_trainer.rating import PlayerRating, adaptive_puzzle_range, progressive_range
from puzzle_trainer.session import PuzzleSession
from puzzle_trainer.streak import SolveHistory

logger = logging.getLogger(__name__)

NATIVE_SUFFIXES = (".db3",)
COLLECTION_SUFFIXES = (".pgn", ".pgn.zst")


class SourceKind(str, Enum):
    NATIVE = "native"
    COLLECTION = "collection"


@dataclass(frozen=True)
class PuzzleSourceDescriptor:
    path: str
    kind: SourceKind

    @classmethod
    def from_path(cls, path: str) -> "PuzzleSourceDescriptor":
        lowered = path.lower()
        if lowered.endswith(NATIVE_SUFFIXES):
            return cls(path, SourceKind.NATIVE)
        if lowered.endswith(COLLECTION_SUFFIXES):
            return cls(path, SourceKind.COLLECTION)
        raise UnknownSourceError(path)


class NativeSource:
    """A puzzle database that filters and orders puzzles itself."""

    def __init__(self, descriptor: PuzzleSourceDescriptor, store: NativePuzzleStore) -> None:
        self.descriptor = descriptor
        self.store = store

    def load_bounds(self) -> RatingBounds:
        lo, hi = self.store.rating_bounds()
        return RatingBounds(lo, hi)

    def generate_next(self, min_rating: int, max_rating: int, random: bool) -> Puzzle:
        puzzle = self.store.query_puzzle(min_rating, max_rating, random)
        logger.debug("Native puzzle rated %d with %d moves", puzzle.rating, len(puzzle.moves))
        return puzzle


class CollectionSource:
    """A game collection turned into puzzles through the shared registry."""

    def __init__(
        self,
        descriptor: PuzzleSourceDescriptor,
        registry: CollectionRegistry,
        default_rating: int = DEFAULT_RATING,
    ) -> None:
        self.descriptor = descriptor
        self.registry = registry
        self.default_rating = default_rating

    def load_bounds(self) -> RatingBounds:
        entry = build_cache_entry(self.descriptor.path, self.default_rating)
        self.registry.put(entry)
        return entry.bounds

    def generate_next(self, min_rating: int, max_rating: int, random: bool) -> Puzzle:
        entry = self.registry.get(self.descriptor.path)
        if entry is None:
            raise DatabaseNotInitializedError(self.descriptor.path)
        puzzle = entry.next_puzzle(min_rating, max_rating, random)
        if puzzle is None:
            raise NoPuzzlesInRangeError(min_rating, max_rating)
        logger.debug("Collection puzzle rated %d with %d moves", puzzle.rating, len(puzzle.moves))
        # The cached puzzle keeps its own completion; sessions get a clean copy.
        return puzzle.fresh_copy()


PuzzleSource = Union[NativeSource, CollectionSource]


class PuzzleTrainer:
    """Application context: puzzle sources, the session, and the player's rating."""

    def __init__(self, config: Optional[TrainerConfig] = None, registry: Optional[CollectionRegistry] = None) -> None:
        self.config = config or TrainerConfig()
        self.registry = registry if registry is not None else CollectionRegistry()
        self._stores: Dict[str, NativePuzzleStore] = {}

        rating_path = self.config.rating_path
        if rating_path is not None:
            self.rating = PlayerRating.load(rating_path, self.config.default_player_rating)
        else:
            self.rating = PlayerRating(self.config.default_player_rating, self.config.default_player_rating)
        self.solves = SolveHistory(self.config.solves_path)
        self.session = PuzzleSession(self.rating, self.config.k_factor, self.solves)
        if self.config.session_path is not None:
            self.session.restore(self.config.session_path)

    @property
    def player_rating(self) -> PlayerRating:
        return self.rating

    def open_source(self, path: str) -> PuzzleSource:
        descriptor = PuzzleSourceDescriptor.from_path(path)
        if descriptor.kind == SourceKind.NATIVE:
            store = self._stores.get(path)
            if store is None:
                store = NativePuzzleStore(path, self.config.native_cache_size)
                self._stores[path] = store
            return NativeSource(descriptor, store)
        return CollectionSource(descriptor, self.registry, self.config.default_puzzle_rating)

    def load_rating_bounds(self, path: str) -> RatingBounds:
        """Rating bounds of a source, or the fallback range if it cannot be read."""

        try:
            bounds = self.open_source(path).load_bounds()
        except (OSError, UnicodeDecodeError, RuntimeError, sqlite3.Error, PuzzleError) as exc:
            logger.error("Failed to load puzzle rating range for %s: %s", path, exc)
            lo, hi = self.config.fallback_range
            return RatingBounds(lo, hi, fallback=True)
        logger.debug("Rating range for %s: %s", path, bounds)
        return bounds

    def generate_puzzle(self, path: str, rating_window: Tuple[int, int], in_order: bool) -> Puzzle:
        min_rating, max_rating = rating_window
        logger.debug("Generating puzzle from %s in [%d, %d], in_order=%s", path, min_rating, max_rating, in_order)
        return self.open_source(path).generate_next(min_rating, max_rating, not in_order)

    def next_puzzle(
        self,
        path: str,
        rating_window: Tuple[int, int],
        in_order: bool = False,
        progressive: bool = False,
        adaptive: bool = False,
    ) -> Puzzle:
        """Generate a puzzle and make it the active one in the session.

        In progressive mode the window is moved just above the rating of the
        puzzle currently on the board. In adaptive mode it is centred on the
        player's rating, and drops lower after a run of failed puzzles.
        Progressive mode wins when both apply.
        """

        window = rating_window
        current = self.session.current_puzzle
        if progressive and current is not None and current.rating:
            window = progressive_range(current.rating)
        elif adaptive:
            window = adaptive_puzzle_range(self.rating.rating, self.session.recent_results())
            logger.debug("Adaptive window for rating %s: %s", self.rating.rating, window)
        puzzle = self.generate_puzzle(path, window, in_order)
        self.session.add_puzzle(puzzle)
        return puzzle

    def clear_puzzle_cache(self, path: str) -> None:
        entry = self.registry.get(path)
        if entry is not None:
            logger.debug("Clearing puzzle cache for %s", path)
            entry.reset()

    def save_state(self) -> None:
        if self.config.rating_path is not None:
            self.rating.save(self.config.rating_path)
        if self.config.session_path is not None:
            self.session.save(self.config.session_path)


def _collection_title(path: Path) -> str:
    name = path.name
    for suffix in sorted(COLLECTION_SUFFIXES, key=len, reverse=True):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return path.stem


def list_puzzle_databases(
    puzzle_dir: Optional[Union[str, Path]] = None,
    collection_files: Iterable[Union[str, Path]] = (),
) -> List[PuzzleDatabaseInfo]:
    """Describe every .db3 database in ``puzzle_dir`` and every given collection file.

    Sources that cannot be read are logged and left out.
    """

    databases: List[PuzzleDatabaseInfo] = []
    if puzzle_dir is not None and Path(puzzle_dir).is_dir():
        for db_path in sorted(Path(puzzle_dir).glob("*.db3")):
            try:
                databases.append(NativePuzzleStore(str(db_path)).info())
            except (OSError, sqlite3.Error) as exc:
                logger.error("Error loading puzzle database %s: %s", db_path, exc)

    for file in collection_files:
        path = Path(file)
        try:
            meta = file_metadata(str(path))
            databases.append(
                PuzzleDatabaseInfo(
                    title=_collection_title(path),
                    description="Custom puzzle collection",
                    puzzle_count=count_records(str(path)),
                    storage_size=meta.size,
                    path=str(path),
                    last_modified=meta.last_modified,
                )
            )
        except (OSError, UnicodeDecodeError, RuntimeError) as exc:
            logger.error("Error loading puzzle collection %s: %s", path, exc)

    logger.debug("Found %d puzzle databases", len(databases))
    return databases
