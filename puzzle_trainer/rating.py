"""Elo-style player rating updates and rating windows derived from them."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Tuple, Union

from puzzle_trainer.config import DEFAULT_RATING
from puzzle_trainer.puzzles import Completion

logger = logging.getLogger(__name__)

ELO_K_FACTOR = 32

PROGRESSIVE_MIN_PROB = 0.4
PROGRESSIVE_MAX_PROB = 0.6

ADAPTIVE_CONSECUTIVE_FAILURES = 3
ADAPTIVE_EASY_MIN_PROB = 0.6
ADAPTIVE_EASY_MAX_PROB = 0.8


def expected_score(player_rating: float, puzzle_rating: float) -> float:
    return 1 / (1 + 10 ** ((puzzle_rating - player_rating) / 400))


def update_elo(
    player_rating: float,
    puzzle_rating: float,
    solved: bool,
    k_factor: float = ELO_K_FACTOR,
) -> int:
    score = 1 if solved else 0
    expected = expected_score(player_rating, puzzle_rating)
    new_rating = player_rating + k_factor * (score - expected)
    logger.debug(
        "Elo: player %.0f vs puzzle %s, solved=%s, expected %.3f -> %.0f",
        player_rating,
        puzzle_rating,
        solved,
        expected,
        new_rating,
    )
    return round(new_rating)


@dataclass
class PlayerRating:
    rating: int = DEFAULT_RATING
    max_rating_ever_reached: int = DEFAULT_RATING

    def __post_init__(self) -> None:
        self.max_rating_ever_reached = max(self.max_rating_ever_reached, self.rating)

    def apply_result(self, puzzle_rating: float, solved: bool, k_factor: float = ELO_K_FACTOR) -> int:
        """Update the rating from one puzzle outcome and return the new rating."""

        old = self.rating
        self.rating = update_elo(old, puzzle_rating, solved, k_factor)
        if self.rating > self.max_rating_ever_reached:
            logger.debug("New maximum rating %.0f (was %.0f)", self.rating, self.max_rating_ever_reached)
            self.max_rating_ever_reached = self.rating
        logger.debug("Player rating %.0f -> %.0f", old, self.rating)
        return self.rating

    def to_dict(self) -> dict:
        return {"rating": self.rating, "max_rating_ever_reached": self.max_rating_ever_reached}

    @classmethod
    def load(cls, path: Union[str, Path], default: int = DEFAULT_RATING) -> "PlayerRating":
        """Load a saved rating; a missing or unreadable file gives a fresh rating."""

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls(
                rating=round(float(data["rating"])),
                max_rating_ever_reached=round(float(data.get("max_rating_ever_reached", data["rating"]))),
            )
        except FileNotFoundError:
            return cls(default, default)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable rating file %s: %s", path, exc)
            return cls(default, default)

    def save(self, path: Union[str, Path]) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)


def puzzle_range_for_probability(
    player_rating: float,
    min_prob: float = PROGRESSIVE_MIN_PROB,
    max_prob: float = PROGRESSIVE_MAX_PROB,
) -> Tuple[int, int]:
    """Rating window whose puzzles the player solves with probability in [min_prob, max_prob]."""

    def invert(expected: float) -> float:
        return player_rating + 400 * math.log10(1 / expected - 1)

    lower = round(invert(max_prob))
    upper = round(invert(min_prob))
    return lower, upper


def adaptive_probabilities(recent_results: Sequence[Completion]) -> Tuple[float, float]:
    """Make puzzles easier after a run of consecutive failures."""

    failures = 0
    for result in reversed(recent_results):
        if result == Completion.CORRECT:
            break
        failures += 1

    if failures >= ADAPTIVE_CONSECUTIVE_FAILURES:
        return ADAPTIVE_EASY_MIN_PROB, ADAPTIVE_EASY_MAX_PROB
    return PROGRESSIVE_MIN_PROB, PROGRESSIVE_MAX_PROB


def adaptive_puzzle_range(player_rating: float, recent_results: Sequence[Completion]) -> Tuple[int, int]:
    min_prob, max_prob = adaptive_probabilities(recent_results)
    return puzzle_range_for_probability(player_rating, min_prob, max_prob)


def progressive_range(last_puzzle_rating: int) -> Tuple[int, int]:
    return last_puzzle_rating + 50, last_puzzle_rating + 100
