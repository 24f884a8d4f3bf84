from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from callset.analyze.call_spec import CallSpec, normalize
from callset.analyze.resolve import has_call
from callset.errors import LoaderError, ResolutionError
from callset.ir.models import IRModule, IRPackage
from callset.report.models import MatchResult

log = logging.getLogger(__name__)


def intersect(a: Iterable[str], b: Iterable[str]) -> list[str]:
    """Sorted, duplicate free intersection of two string collections."""
    left = sorted(a)
    right = sorted(b)
    out: list[str] = []
    i = j = 0
    while i < len(left) and j < len(right):
        if left[i] < right[j]:
            i += 1
        elif left[i] > right[j]:
            j += 1
        else:
            if not out or out[-1] != left[i]:
                out.append(left[i])
            i += 1
            j += 1
    return out


def funcs_with_call(unit: IRModule, spec: CallSpec) -> list[str]:
    """Identifiers of the functions in ``unit`` which call ``spec``.

    ``spec`` must be normalized against the unit's package.
    """
    names: list[str] = []
    for fn in unit.functions:
        if has_call(fn, spec, unit):
            names.append(fn.identifier)
    return names


def funcs_matching_call_set(unit: IRModule, call_set: Sequence[CallSpec]) -> MatchResult | None:
    """Find the functions of ``unit`` which call every member of ``call_set``."""
    func_names: list[str] | None = None
    for spec in call_set:
        # the unit must belong to the spec's package or import it, otherwise it cannot call it
        if spec.package != unit.package and not unit.imports.imports_package(spec.package):
            log.debug("%s doesn't import %s; skipping.", unit.file, spec.package)
            return None

        try:
            names = funcs_with_call(unit, normalize(spec, unit.package))
        except ResolutionError as e:
            raise e.with_file(unit.file) from e

        if not names:
            return None
        func_names = names if func_names is None else intersect(func_names, names)
        if not func_names:
            return None

    if not func_names:
        return None
    return MatchResult(filename=unit.file, functions=sorted(set(func_names)))


def find_in_package(package: IRPackage, call_set: Sequence[CallSpec]) -> list[MatchResult]:
    """Run :func:`funcs_matching_call_set` over every unit of ``package``.

    Raises :class:`LoaderError` if the package doesn't carry one syntax unit
    per source file.
    """
    if len(package.modules) != len(package.files):
        raise LoaderError(
            f"Package with parsed source files is required. Syntax files "
            f"({len(package.modules)}) != source files ({len(package.files)}): {package.path}"
        )
    out: list[MatchResult] = []
    for unit in package.modules:
        result = funcs_matching_call_set(unit, call_set)
        if result is not None:
            out.append(result)
    return out
