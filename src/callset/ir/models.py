from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from callset.analyze.oracle import TypeOracle


# Expression nodes compare by identity so oracles can key side tables on them.


@dataclass(frozen=True, eq=False)
class Expr:
    lineno: int = field(default=0, kw_only=True)

    def children(self) -> tuple[Expr, ...]:
        return ()


@dataclass(frozen=True, eq=False)
class Name(Expr):
    id: str
    bound: bool = False


@dataclass(frozen=True, eq=False)
class Attribute(Expr):
    value: Expr
    attr: str

    def children(self) -> tuple[Expr, ...]:
        return (self.value,)


@dataclass(frozen=True, eq=False)
class Call(Expr):
    func: Expr
    args: tuple[Expr, ...] = ()

    def children(self) -> tuple[Expr, ...]:
        return (self.func, *self.args)


@dataclass(frozen=True, eq=False)
class Node(Expr):
    kind: str
    items: tuple[Expr, ...] = ()

    def children(self) -> tuple[Expr, ...]:
        return self.items


@dataclass(frozen=True)
class Receiver:
    type_name: str
    pointer: bool = False


@dataclass(frozen=True)
class IRFunction:
    name: str
    body: Node
    receiver: Receiver | None = None
    lineno: int = 0

    @property
    def identifier(self) -> str:
        if self.receiver is None:
            return self.name
        star = "*" if self.receiver.pointer else ""
        return f"{star}{self.receiver.type_name}.{self.name}"


@dataclass(frozen=True)
class ImportTable:
    aliases: dict[str, tuple[str, ...]] = field(default_factory=dict)
    members: frozenset[str] = frozenset()
    packages: frozenset[str] = frozenset()

    def paths_for(self, alias: str) -> tuple[str, ...]:
        return self.aliases.get(alias, ())

    def is_member(self, alias: str) -> bool:
        return alias in self.members

    def all_paths(self) -> Iterator[str]:
        yield from self.packages
        for paths in self.aliases.values():
            yield from paths

    def imports_package(self, path: str) -> bool:
        for imported in self.all_paths():
            if path == imported or path.startswith(f"{imported}/"):
                return True
        return False


@dataclass(frozen=True)
class IRModule:
    """One compilation unit: a parsed source file and what it needs for matching."""

    file: str
    package: str
    language: str
    imports: ImportTable
    functions: list[IRFunction]
    oracle: TypeOracle


@dataclass(frozen=True)
class IRPackage:
    path: str
    language: str
    files: list[str]
    modules: list[IRModule]
