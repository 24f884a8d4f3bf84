from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from callset.errors import ResolutionError
from callset.ir.models import Expr


class TypeOracle(Protocol):
    """Static type information for the expressions of one compilation unit.

    Type references are rendered as ``<package path>.<type name>``, with a
    leading ``*`` for pointer types (``*net/http/cookiejar.Jar``).
    """

    def type_of(self, expr: Expr) -> str | None:
        """Declared type of ``expr``, or None when it carries no static type."""
        ...

    def fields_of(self, type_ref: str) -> Mapping[str, str | None] | None:
        """Field name -> declared type of a structural type, None for other types."""
        ...


class UnknownFields(dict):
    """Fields of a type only partially known: any field may exist, unlisted ones are untyped."""

    def __contains__(self, key: object) -> bool:
        return True

    def __missing__(self, key: str) -> None:
        return None


def remove_starting_star(val: str) -> str:
    if val.startswith("*"):
        return val[1:]
    return val


def strip_type_args(val: str) -> str:
    i = val.find("[")
    if i > 0:
        return val[:i]
    return val


def split_package_and_type(type_ref: str) -> tuple[str, str]:
    """Split ``net/http/cookiejar.Jar`` into ``("net/http/cookiejar", "Jar")``.

    The format is only loosely checked: an empty value or one without a
    package part raises :class:`ResolutionError`.
    """
    ref = strip_type_args(type_ref)
    i = ref.rfind(".")
    if not ref or i <= 0 or i == len(ref) - 1:
        raise ResolutionError(f"Invalid 'package_path.type' format. Got {type_ref!r}")
    return ref[:i], ref[i + 1 :]
