from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from callset.analyze.call_spec import CallSet, CallSpec
from callset.analyze.combine import Accumulator
from callset.analyze.file_match import find_in_package
from callset.analyze.subsets import enumerate_call_sets
from callset.ir.models import IRPackage
from callset.report.models import MatchResult

log = logging.getLogger(__name__)


def _run(call_set: CallSet, package: IRPackage) -> list[MatchResult]:
    results = find_in_package(package, call_set)
    log.debug(
        "%s: %d file(s) match [%s]",
        package.path,
        len(results),
        ", ".join(str(spec) for spec in call_set),
    )
    return results


def find(
    packages: Sequence[IRPackage],
    call_set: Sequence[CallSpec],
    subset_size: int = 0,
    parallel_workers: int = 0,
) -> list[MatchResult]:
    """Find the functions calling every spec of ``call_set``, or of any subset of it.

    With ``subset_size`` > 0 a function qualifies when it calls all the members
    of at least one ``subset_size`` combination of ``call_set``. Results are
    grouped by file, files and functions sorted.
    """
    call_sets = enumerate_call_sets(call_set, subset_size)
    log.debug("Evaluating %d call set(s) over %d package(s).", len(call_sets), len(packages))
    acc = Accumulator()
    jobs = [(cs, pkg) for cs in call_sets for pkg in packages]

    if parallel_workers and parallel_workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=parallel_workers) as executor:
            futures = [executor.submit(_run, cs, pkg) for cs, pkg in jobs]
            try:
                for future in as_completed(futures):
                    acc.add(future.result())
            finally:
                for future in futures:
                    if not future.done():
                        future.cancel()
    else:
        for cs, pkg in jobs:
            acc.add(_run(cs, pkg))
    return acc.results()
