from __future__ import annotations

from collections.abc import Sequence
from itertools import combinations

from callset.analyze.call_spec import CallSet, CallSpec


def enumerate_call_sets(call_set: Sequence[CallSpec], subset_size: int = 0) -> list[CallSet]:
    """Expand ``call_set`` into the call sets to evaluate.

    ``subset_size`` 0, or not smaller than the set, keeps the whole set as a
    single group. Otherwise every combination of ``subset_size`` specs is
    returned once, in lexicographic order of the original positions.
    """
    if subset_size < 0:
        raise ValueError(f"subset size must be >= 0, got {subset_size}")
    full = tuple(call_set)
    if subset_size == 0 or subset_size >= len(full):
        return [full]
    return [tuple(combo) for combo in combinations(full, subset_size)]
