from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class SolveHistory:
    """Puzzles solved per calendar day, optionally persisted to a JSON file.

    An unreadable file is treated as an empty history.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path else None
        self.solves: Dict[str, int] = self._read()

    def _read(self) -> Dict[str, int]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable solve history %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): int(v) for k, v in data.items() if isinstance(v, int)}

    def _write(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.solves, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not save solve history to %s: %s", self.path, exc)

    def record_solved(self, at: Optional[datetime] = None) -> None:
        key = (at or datetime.now()).date().isoformat()
        self.solves[key] = self.solves.get(key, 0) + 1
        self._write()

    def solved_on(self, day: date) -> int:
        return self.solves.get(day.isoformat(), 0)

    def current_streak(self, today: Optional[date] = None) -> int:
        """Consecutive days with at least one solve, ending today."""

        day = today or date.today()
        streak = 0
        while self.solved_on(day) > 0:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def history(self, days: int = 7, today: Optional[date] = None) -> List[Tuple[str, int]]:
        """(weekday, solves) for the last ``days`` days, oldest first."""

        end = today or date.today()
        out: List[Tuple[str, int]] = []
        for i in range(days - 1, -1, -1):
            day = end - timedelta(days=i)
            out.append((day.strftime("%a"), self.solved_on(day)))
        return out
