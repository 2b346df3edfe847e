from __future__ import annotations


class PuzzleError(Exception):
    """Base class for puzzle source and session failures."""


class DatabaseNotInitializedError(PuzzleError):
    """A collection source was asked for a puzzle before its ratings were loaded."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Puzzle database not initialized: {path}")
        self.path = path


class NoPuzzlesInRangeError(PuzzleError):
    def __init__(self, min_rating: int, max_rating: int) -> None:
        super().__init__(f"No puzzle with a rating in [{min_rating}, {max_rating}]")
        self.min_rating = min_rating
        self.max_rating = max_rating


class UnknownSourceError(PuzzleError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Unsupported puzzle source: {path}")
        self.path = path


class InvalidRecordError(PuzzleError, ValueError):
    """A game record cannot be turned into a puzzle."""


class InvalidPositionError(InvalidRecordError):
    def __init__(self, fen: str) -> None:
        super().__init__(f"Invalid starting position: {fen!r}")
        self.fen = fen
