from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import List

from puzzle_trainer import collection
from puzzle_trainer.collection import (
    CachedPuzzleRecord,
    CollectionRegistry,
    SelectionState,
    SourceCacheEntry,
    build_cache_entry,
    calculate_rating_bounds,
    record_rating,
    select_next,
)
from puzzle_trainer.pgn_records import parse_record
from puzzle_trainer.puzzles import Completion


def _game(rating: int, moves: str = "1. e4 e5 2. Nf3 Nc6 *") -> str:
    return f'[Event "Rated {rating}"]\n[WhiteElo "{rating}"]\n\n{moves}\n\n'


def _write_collection(tmp_path: Path, ratings: List[int], name: str = "puzzles.pgn") -> Path:
    path = tmp_path / name
    path.write_text("".join(_game(r) for r in ratings), encoding="utf-8")
    return path


def _entry(ratings: List[int]) -> SourceCacheEntry:
    records = [
        CachedPuzzleRecord(record=parse_record(_game(r)), rating=r, collection_index=i)
        for i, r in enumerate(ratings)
    ]
    return SourceCacheEntry(path="memory.pgn", records=records, bounds=calculate_rating_bounds(records))


def test_build_cache_entry_reads_ratings_without_extracting(tmp_path: Path) -> None:
    path = tmp_path / "mixed.pgn"
    path.write_text(_game(1300) + '[Event "No rating"]\n\n1. d4 d5 *\n\n' + _game(1700), encoding="utf-8")

    entry = build_cache_entry(str(path))

    assert [r.rating for r in entry.records] == [1300, 1500, 1700]
    assert [r.collection_index for r in entry.records] == [0, 1, 2]
    assert all(r.puzzle is None for r in entry.records)
    assert entry.bounds.as_tuple() == (1300, 1700)
    assert not entry.bounds.degenerate


def test_empty_collection_bounds_are_degenerate(tmp_path: Path) -> None:
    path = tmp_path / "empty.pgn"
    path.write_text("", encoding="utf-8")

    entry = build_cache_entry(str(path))

    assert entry.records == []
    assert entry.bounds.as_tuple() == (1500, 1500)
    assert entry.bounds.degenerate


def test_record_rating_falls_back_to_default() -> None:
    assert record_rating(parse_record('[WhiteElo "1850"]\n\n1. e4 *')) == 1850
    assert record_rating(parse_record('[WhiteElo "?"]\n\n1. e4 *')) == 1500
    assert record_rating(parse_record('[WhiteElo "0"]\n\n1. e4 *')) == 1500
    assert record_rating(parse_record("1. e4 *"), default=1200) == 1200


def test_eligible_indices_match_window_inclusive() -> None:
    ratings = [900, 1000, 1100, 1250, 1500, 1501, 2000]
    entry = _entry(ratings)

    select_next(entry, 1000, 1500, False)

    eligible = entry.selection.eligible_indices
    assert eligible == [i for i, r in enumerate(ratings) if 1000 <= r <= 1500]
    assert 0 not in eligible and 5 not in eligible


def test_sequential_scenario() -> None:
    entry = _entry([1000, 1200, 1400, 1600])

    picks = [select_next(entry, 1100, 1500, False) for _ in range(3)]

    assert entry.selection.eligible_indices == [1, 2]
    assert picks == [1, 2, 1]


def test_sequential_mode_visits_each_eligible_index_once_per_cycle() -> None:
    ratings = [1000, 1100, 1200, 1300, 1400, 1500, 1600]
    entry = _entry(ratings)

    first = [select_next(entry, 1100, 1500, False) for _ in range(5)]
    second = [select_next(entry, 1100, 1500, False) for _ in range(5)]

    assert sorted(first) == [1, 2, 3, 4, 5]
    assert first == second


def test_filter_change_recomputes_and_resets_cursor() -> None:
    entry = _entry([1000, 1200, 1400, 1600])

    select_next(entry, 1100, 1500, False)
    select_next(entry, 1100, 1500, False)
    assert entry.selection.cursor == 2

    assert select_next(entry, 1300, 1700, False) == 2
    state = entry.selection
    assert (state.filter_min_rating, state.filter_max_rating, state.random_mode) == (1300, 1700, False)
    assert state.eligible_indices == [2, 3]
    assert state.cursor == 1


def test_random_mode_picks_from_window_and_advances_cursor() -> None:
    entry = _entry([1000, 1200, 1400, 1600])
    rng = random.Random(7)

    picks = [select_next(entry, 1100, 1500, True, rng=rng) for _ in range(2)]

    assert all(p in (1, 2) for p in picks)
    assert entry.selection.cursor == 2
    assert entry.selection.random_mode is True


def test_empty_window_returns_none() -> None:
    entry = _entry([1000, 1200])
    assert select_next(entry, 2000, 2500, False) is None
    assert entry.next_puzzle(2000, 2500, False) is None


def test_materialize_is_computed_once() -> None:
    entry = _entry([1200])
    record = entry.records[0]

    first = record.materialize()
    second = record.materialize()

    assert first is second
    assert first.moves == ["e2e4", "e7e5", "g1f3", "b8c6"]
    assert first.rating == 1200


def test_next_puzzle_skips_records_that_cannot_be_extracted() -> None:
    bad = CachedPuzzleRecord(record=parse_record('[FEN "broken"]\n\n1. e4 *'), rating=1200, collection_index=0)
    good = CachedPuzzleRecord(record=parse_record(_game(1300)), rating=1300, collection_index=1)
    entry = SourceCacheEntry("memory.pgn", [bad, good], calculate_rating_bounds([bad, good]))

    puzzle = entry.next_puzzle(1000, 1500, False)

    assert puzzle is good.puzzle
    assert bad.puzzle is None
    assert bad.unplayable


def test_unplayable_record_is_not_parsed_again(monkeypatch, caplog) -> None:
    bad = CachedPuzzleRecord(record=parse_record('[Event "Empty"]\n\n*'), rating=1200, collection_index=0)
    good = CachedPuzzleRecord(record=parse_record(_game(1300)), rating=1300, collection_index=1)
    entry = SourceCacheEntry("memory.pgn", [bad, good], calculate_rating_bounds([bad, good]))
    calls: List[int] = []
    real_extract = collection.extract_puzzle

    def counting_extract(record, rating, index=None):
        calls.append(index)
        return real_extract(record, rating, index)

    monkeypatch.setattr(collection, "extract_puzzle", counting_extract)

    with caplog.at_level(logging.WARNING, logger="puzzle_trainer.collection"):
        picks = [entry.next_puzzle(1000, 1500, False) for _ in range(4)]

    assert all(p is good.puzzle for p in picks)
    assert calls == [0, 1]
    assert len([r for r in caplog.records if "Skipping record 0" in r.getMessage()]) == 1


def test_reset_clears_selection_and_completion(tmp_path: Path) -> None:
    entry = build_cache_entry(str(_write_collection(tmp_path, [1000, 1200])))
    puzzle = entry.next_puzzle(900, 1300, False)
    assert puzzle is not None
    puzzle.completion = Completion.CORRECT

    entry.reset()

    assert entry.selection == SelectionState()
    assert entry.records[0].puzzle is puzzle
    assert puzzle.completion == Completion.INCOMPLETE


def test_registry_holds_one_entry_per_path() -> None:
    registry = CollectionRegistry()
    first = _entry([1000])
    second = _entry([1200])

    registry.put(first)
    registry.put(second)

    assert len(registry) == 1
    assert registry.get("memory.pgn") is second
    registry.clear()
    assert "memory.pgn" not in registry
