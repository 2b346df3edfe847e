from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

DEFAULT_RATING = 1500
FALLBACK_RATING_RANGE: Tuple[int, int] = (600, 2800)


@dataclass(frozen=True)
class TrainerConfig:
    k_factor: float = 32
    default_player_rating: int = DEFAULT_RATING
    default_puzzle_rating: int = DEFAULT_RATING
    fallback_range: Tuple[int, int] = FALLBACK_RATING_RANGE
    native_cache_size: int = 20
    state_dir: Optional[str] = None

    @property
    def rating_path(self) -> Optional[Path]:
        return Path(self.state_dir) / "rating.json" if self.state_dir else None

    @property
    def session_path(self) -> Optional[Path]:
        return Path(self.state_dir) / "session.json" if self.state_dir else None

    @property
    def solves_path(self) -> Optional[Path]:
        return Path(self.state_dir) / "solves.json" if self.state_dir else None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "TrainerConfig":
        return cls(
            k_factor=args.k_factor,
            state_dir=args.state_dir,
        )
