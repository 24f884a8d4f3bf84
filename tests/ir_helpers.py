from __future__ import annotations

from collections.abc import Mapping

from callset.ir.models import Expr, ImportTable, IRFunction, IRModule, Node


class FakeOracle:
    def __init__(
        self,
        types: Mapping[Expr, str] | None = None,
        fields: Mapping[str, Mapping[str, str | None]] | None = None,
    ) -> None:
        self.types = dict(types or {})
        self.fields = dict(fields or {})

    def type_of(self, expr: Expr) -> str | None:
        return self.types.get(expr)

    def fields_of(self, type_ref: str) -> Mapping[str, str | None] | None:
        return self.fields.get(type_ref.lstrip("*"))


class RaisingOracle:
    def type_of(self, expr: Expr) -> str | None:
        raise AssertionError(f"type_of called for {expr!r}")

    def fields_of(self, type_ref: str) -> Mapping[str, str | None] | None:
        raise AssertionError(f"fields_of called for {type_ref!r}")


def make_unit(
    functions: list[IRFunction],
    *,
    package: str = "example.com/app",
    imports: ImportTable | None = None,
    oracle: object | None = None,
    file: str = "app/main.go",
) -> IRModule:
    return IRModule(
        file=file,
        package=package,
        language="go",
        imports=imports or ImportTable(),
        functions=functions,
        oracle=oracle or FakeOracle(),
    )


def body(*items: Expr) -> Node:
    return Node("block", tuple(items))
