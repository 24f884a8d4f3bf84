from __future__ import annotations

from math import comb

import pytest

from callset.analyze.call_spec import CallSpec
from callset.analyze.subsets import enumerate_call_sets

SPECS = [CallSpec(package="p", func_name=name) for name in ("a", "b", "c", "d")]


def test_zero_and_full_size_keep_the_whole_set() -> None:
    assert enumerate_call_sets(SPECS, 0) == [tuple(SPECS)]
    assert enumerate_call_sets(SPECS, 4) == [tuple(SPECS)]
    assert enumerate_call_sets(SPECS, 9) == [tuple(SPECS)]


@pytest.mark.parametrize("k", [1, 2, 3])
def test_combination_count(k: int) -> None:
    groups = enumerate_call_sets(SPECS, k)
    assert len(groups) == comb(len(SPECS), k)
    assert len(set(groups)) == len(groups)
    assert all(len(set(group)) == k for group in groups)


def test_order_follows_original_positions() -> None:
    names = [[s.func_name for s in group] for group in enumerate_call_sets(SPECS, 2)]
    assert names == [["a", "b"], ["a", "c"], ["a", "d"], ["b", "c"], ["b", "d"], ["c", "d"]]


def test_negative_size_is_rejected() -> None:
    with pytest.raises(ValueError):
        enumerate_call_sets(SPECS, -1)
