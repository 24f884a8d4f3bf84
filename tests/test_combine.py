from __future__ import annotations

from callset.analyze.combine import Accumulator, merge_results
from callset.report.models import MatchResult


def test_shared_file_functions_are_unioned() -> None:
    merged = merge_results([[MatchResult("f.go", ["a", "b"])], [MatchResult("f.go", ["c", "b"])]])
    assert merged == [MatchResult("f.go", ["a", "b", "c"])]


def test_disjoint_files_are_kept() -> None:
    merged = merge_results([[MatchResult("b.py", ["x"])], [MatchResult("a.py", ["y"])]])
    assert merged == [MatchResult("a.py", ["y"]), MatchResult("b.py", ["x"])]


def test_merge_is_order_independent() -> None:
    runs = [
        [MatchResult("f", ["a"]), MatchResult("g", ["z"])],
        [MatchResult("f", ["b"])],
        [MatchResult("g", ["y", "z"])],
    ]
    assert merge_results(runs) == merge_results(list(reversed(runs)))


def test_accumulator_empty() -> None:
    assert Accumulator().results() == []
