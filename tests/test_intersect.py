from __future__ import annotations

from callset.analyze.file_match import intersect


def test_equal_lists() -> None:
    a = ["abc", "bde", "xyz", "10"]
    assert intersect(a, list(a)) == ["10", "abc", "bde", "xyz"]


def test_one_list_contains_the_other() -> None:
    assert intersect(["abc", "bde", "xyz", "10"], ["10", "bde", "abc"]) == ["10", "abc", "bde"]
    assert intersect(["bde", "xyz"], ["abc", "bde", "xyz", "10"]) == ["bde", "xyz"]


def test_disjoint_lists() -> None:
    assert intersect(["jkl", "mno", "55"], ["abc", "bde", "xyz", "10"]) == []


def test_commutative_and_idempotent() -> None:
    a = ["b", "a", "c", "a"]
    b = ["c", "d", "a"]
    assert intersect(a, b) == intersect(b, a) == ["a", "c"]
    assert intersect(a, a) == ["a", "b", "c"]
