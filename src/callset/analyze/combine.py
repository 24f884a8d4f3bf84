from __future__ import annotations

from collections.abc import Iterable

from callset.report.models import MatchResult


class Accumulator:
    """Merges match results by filename; functions are unioned per file."""

    def __init__(self) -> None:
        self._by_file: dict[str, set[str]] = {}

    def add(self, results: Iterable[MatchResult]) -> None:
        for result in results:
            self._by_file.setdefault(result.filename, set()).update(result.functions)

    def results(self) -> list[MatchResult]:
        return [
            MatchResult(filename=filename, functions=sorted(funcs))
            for filename, funcs in sorted(self._by_file.items())
        ]


def merge_results(runs: Iterable[Iterable[MatchResult]]) -> list[MatchResult]:
    acc = Accumulator()
    for run in runs:
        acc.add(run)
    return acc.results()
