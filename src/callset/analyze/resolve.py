"""Single-call matching: does a function body call a given callable?

The body is walked once, pre-order. Every call expression reached is
classified by the shape of its callee and the walk never descends into a
call's own callee or arguments, so ``outer(inner())`` only ever tests
``outer``.
"""

from __future__ import annotations

import logging

from callset.analyze.call_spec import CallSpec
from callset.analyze.oracle import remove_starting_star, split_package_and_type
from callset.errors import ResolutionError
from callset.ir.models import Attribute, Call, Expr, IRFunction, IRModule, Name

log = logging.getLogger(__name__)


def _local_package(pkg: str, unit: IRModule) -> str:
    # Types declared in the unit's own package compare like a normalized spec.
    return "" if pkg == unit.package else pkg


def _typed_receiver_matches(type_ref: str, method: str, spec: CallSpec, unit: IRModule) -> bool:
    pkg, type_name = split_package_and_type(remove_starting_star(type_ref))
    return (
        spec.package == _local_package(pkg, unit)
        and spec.receiver == type_name
        and spec.func_name == method
    )


def _selector_chain(expr: Expr) -> list[str] | None:
    """Names of ``a.b.c`` from the root out, None if not rooted at an unbound name."""
    parts: list[str] = []
    while isinstance(expr, Attribute):
        parts.append(expr.attr)
        expr = expr.value
    if not isinstance(expr, Name) or expr.bound:
        return None
    parts.append(expr.id)
    parts.reverse()
    return parts


def _match_identifier(name: Name, spec: CallSpec, unit: IRModule) -> bool:
    if not spec.package and not spec.receiver and spec.func_name == name.id:
        return True
    if name.bound or spec.receiver or not unit.imports.is_member(name.id):
        return False
    target = f"{spec.package}/{spec.func_name}"
    return target in unit.imports.paths_for(name.id)


def _match_module_chain(chain: list[str], method: str, spec: CallSpec, unit: IRModule) -> bool:
    alias, *middle = chain
    for path in unit.imports.paths_for(alias):
        qualified = "/".join([path, *middle])
        if not spec.receiver:
            if spec.package == qualified and spec.func_name == method:
                return True
            continue
        if f"{spec.package}/{spec.receiver}" == qualified and spec.func_name == method:
            return True
    return False


def _match_field_selector(sel: Attribute, selx: Attribute, spec: CallSpec, unit: IRModule) -> bool:
    chain = _selector_chain(selx)
    if chain is not None and unit.imports.paths_for(chain[0]):
        return _match_module_chain(chain, sel.attr, spec, unit)

    typ = unit.oracle.type_of(selx.value)
    if typ is None:
        log.debug("%s:%d: no static type for the operand of %r", unit.file, sel.lineno, selx.attr)
        return False
    typ = remove_starting_star(typ)
    fields = unit.oracle.fields_of(typ)
    if fields is None:
        raise ResolutionError(f"Type {typ!r} is not a struct type, it has no field {selx.attr!r}")
    if selx.attr not in fields:
        raise ResolutionError(f"Type {typ!r} has no field {selx.attr!r}")
    field_type = fields[selx.attr]
    if field_type is None:
        log.debug("%s:%d: field %s.%s has no declared type", unit.file, sel.lineno, typ, selx.attr)
        return False
    return _typed_receiver_matches(field_type, sel.attr, spec, unit)


def _match_ident_selector(sel: Attribute, ident: Name, spec: CallSpec, unit: IRModule) -> bool:
    if not ident.bound:
        # ident is a package name
        paths = unit.imports.paths_for(ident.id)
        if not spec.receiver:
            return spec.package in paths and spec.func_name == sel.attr
        if unit.imports.is_member(ident.id):
            return f"{spec.package}/{spec.receiver}" in paths and spec.func_name == sel.attr
        return False

    typ = unit.oracle.type_of(ident)
    if typ is None:
        log.debug("%s:%d: no static type for %r", unit.file, sel.lineno, ident.id)
        return False
    return _typed_receiver_matches(typ, sel.attr, spec, unit)


def call_matches(call: Call, spec: CallSpec, unit: IRModule) -> bool:
    fun = call.func
    if isinstance(fun, Name):
        return _match_identifier(fun, spec, unit)
    if not isinstance(fun, Attribute):
        return False
    if isinstance(fun.value, Attribute):
        return _match_field_selector(fun, fun.value, spec, unit)
    if isinstance(fun.value, Name):
        return _match_ident_selector(fun, fun.value, spec, unit)
    return False


def has_call(function: IRFunction, spec: CallSpec, unit: IRModule) -> bool:
    """Return True if ``function`` calls ``spec`` somewhere in its body.

    ``spec`` must already be normalized against ``unit.package``. Raises
    :class:`ResolutionError` when a call's receiver cannot be classified.
    """
    stack: list[Expr] = [function.body]
    while stack:
        node = stack.pop()
        if isinstance(node, Call):
            if call_matches(node, spec, unit):
                return True
            continue
        stack.extend(reversed(node.children()))
    return False
