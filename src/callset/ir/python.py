from __future__ import annotations

import ast
import builtins
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from callset.analyze.oracle import UnknownFields, remove_starting_star, strip_type_args
from callset.errors import LoaderError
from callset.ir.models import (
    Attribute,
    Call,
    Expr,
    ImportTable,
    IRFunction,
    IRModule,
    IRPackage,
    Name,
    Node,
    Receiver,
)

log = logging.getLogger(__name__)

_BUILTIN_TYPES = {name for name, value in vars(builtins).items() if isinstance(value, type)}

_SKIPPED_NODES = (ast.expr_context, ast.boolop, ast.operator, ast.unaryop, ast.cmpop)

_FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)

_LITERAL_TYPES: dict[type[ast.AST], str] = {
    ast.List: "builtins.list",
    ast.ListComp: "builtins.list",
    ast.Dict: "builtins.dict",
    ast.DictComp: "builtins.dict",
    ast.Set: "builtins.set",
    ast.SetComp: "builtins.set",
    ast.Tuple: "builtins.tuple",
    ast.JoinedStr: "builtins.str",
}


def _attr_chain(node: ast.AST) -> list[str]:
    if isinstance(node, ast.Name):
        return [node.id]
    if isinstance(node, ast.Attribute):
        chain = _attr_chain(node.value)
        return [*chain, node.attr] if chain else []
    return []


def _path_to_ref(path: str) -> str | None:
    # "a/b/C" names the type C of package a/b
    pkg, _, name = path.rpartition("/")
    if not pkg or not name:
        return None
    return f"{pkg}.{name}"


def _decorator_names(node: ast.AST) -> set[str]:
    names: set[str] = set()
    for dec in getattr(node, "decorator_list", []):
        chain = _attr_chain(dec.func if isinstance(dec, ast.Call) else dec)
        if chain:
            names.add(chain[-1])
    return names


def module_path(path: Path) -> tuple[str, bool]:
    """Package path of a Python file (``pkg/sub/mod``) and whether it is a package ``__init__``."""
    is_package = path.name == "__init__.py"
    directory = path.parent
    parts = [] if is_package else [path.stem]
    if is_package:
        parts.insert(0, directory.name)
        directory = directory.parent
    while directory.name and (directory / "__init__.py").exists():
        parts.insert(0, directory.name)
        directory = directory.parent
    return "/".join(parts), is_package


def _resolve_relative(module: str | None, level: int, package: str, is_package: bool) -> str:
    base = package.split("/") if package else []
    if not is_package:
        base = base[:-1]
    up = level - 1
    if up:
        base = base[:-up] if up < len(base) else []
    if module:
        base = [*base, *module.split(".")]
    return "/".join(base)


def build_import_table(tree: ast.Module, package: str, is_package: bool) -> ImportTable:
    aliases: dict[str, list[str]] = {}
    members: set[str] = set()
    packages: set[str] = set()

    def bind(alias: str, path: str) -> None:
        paths = aliases.setdefault(alias, [])
        if path not in paths:
            paths.append(path)

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                path = alias.name.replace(".", "/")
                packages.add(path)
                if alias.asname:
                    bind(alias.asname, path)
                else:
                    top = alias.name.split(".")[0]
                    bind(top, top)
        elif isinstance(node, ast.ImportFrom):
            if node.level:
                source = _resolve_relative(node.module, node.level, package, is_package)
            else:
                source = (node.module or "").replace(".", "/")
            if source:
                packages.add(source)
            for alias in node.names:
                if alias.name == "*":
                    continue
                name = alias.asname or alias.name
                bind(name, f"{source}/{alias.name}" if source else alias.name)
                members.add(name)

    return ImportTable(
        aliases={alias: tuple(paths) for alias, paths in aliases.items()},
        members=frozenset(members),
        packages=frozenset(packages),
    )


@dataclass
class ClassInfo:
    bases: list[str] = field(default_factory=list)
    fields: dict[str, str | None] = field(default_factory=dict)
    # some base could not be resolved to a loaded class
    open: bool = False


class ClassRegistry:
    """Classes declared by the loaded modules, keyed by type reference.

    Only these are closed: other classes get :class:`UnknownFields`, builtins
    have no fields at all.
    """

    def __init__(self) -> None:
        self._classes: dict[str, ClassInfo] = {}

    def add(self, ref: str, info: ClassInfo) -> None:
        self._classes[ref] = info

    def __contains__(self, ref: object) -> bool:
        return ref in self._classes

    def fields_of(self, type_ref: str) -> dict[str, str | None] | None:
        ref = strip_type_args(remove_starting_star(type_ref))
        if ref not in self._classes:
            return None if ref.startswith("builtins.") else UnknownFields()
        out: dict[str, str | None] = {}
        if self._collect(ref, out, set()):
            return UnknownFields(out)
        return out

    def _collect(self, ref: str, out: dict[str, str | None], seen: set[str]) -> bool:
        info = self._classes.get(ref)
        if info is None:
            return not ref.startswith("builtins.")
        if ref in seen:
            return False
        seen.add(ref)
        is_open = info.open
        for base in reversed(info.bases):
            is_open = self._collect(base, out, seen) or is_open
        out.update(info.fields)
        return is_open


class PythonTypeOracle:
    def __init__(self, types: Mapping[Expr, str], classes: ClassRegistry) -> None:
        self._types = types
        self._classes = classes

    def type_of(self, expr: Expr) -> str | None:
        if isinstance(expr, Name):
            return self._types.get(expr)
        if isinstance(expr, Attribute):
            owner = self.type_of(expr.value)
            if owner is None:
                return None
            fields = self._classes.fields_of(owner)
            if fields is None:
                return None
            return fields.get(expr.attr)
        return None

    def fields_of(self, type_ref: str) -> Mapping[str, str | None] | None:
        return self._classes.fields_of(type_ref)


class _Scope:
    def __init__(self, parent: _Scope | None = None) -> None:
        self.parent = parent
        self.names: dict[str, str | None] = {}
        self._annotated: set[str] = set()

    def declare(self, name: str, type_ref: str | None = None, annotated: bool = False) -> None:
        if name in self._annotated:
            return
        if annotated:
            self._annotated.add(name)
            self.names[name] = type_ref
        elif self.names.get(name) is None:
            self.names[name] = type_ref

    def lookup(self, name: str) -> tuple[bool, str | None]:
        scope: _Scope | None = self
        while scope is not None:
            if name in scope.names:
                return True, scope.names[name]
            scope = scope.parent
        return False, None


class _FieldTable:
    def __init__(self) -> None:
        self.fields: dict[str, str | None] = {}
        self._annotated: set[str] = set()

    def declare(self, name: str, type_ref: str | None, annotated: bool) -> None:
        if name in self._annotated:
            return
        if annotated:
            self._annotated.add(name)
            self.fields[name] = type_ref
        elif self.fields.get(name) is None:
            self.fields[name] = type_ref


class _ModuleContext:
    """Resolves names and annotations of one module to type references."""

    def __init__(
        self,
        package: str,
        imports: ImportTable,
        local_classes: set[str],
        known_classes: set[str],
    ) -> None:
        self.package = package
        self.imports = imports
        self.local_classes = local_classes
        self.known_classes = known_classes

    def class_ref(self, name: str) -> str:
        return f"{self.package}.{name}"

    def ref_for_expr(self, node: ast.AST) -> str | None:
        if isinstance(node, ast.Name):
            if node.id in self.local_classes:
                return self.class_ref(node.id)
            paths = self.imports.paths_for(node.id)
            if paths and self.imports.is_member(node.id):
                return _path_to_ref(paths[0])
            if node.id in _BUILTIN_TYPES:
                return f"builtins.{node.id}"
            return None
        chain = _attr_chain(node)
        if len(chain) < 2:
            return None
        paths = self.imports.paths_for(chain[0])
        if not paths:
            return None
        return _path_to_ref("/".join([paths[0], *chain[1:]]))

    def annotation_type(self, node: ast.AST | None) -> str | None:
        if node is None:
            return None
        if isinstance(node, ast.Constant):
            if not isinstance(node.value, str):
                return None
            try:
                parsed = ast.parse(node.value, mode="eval")
            except SyntaxError:
                return None
            return self.annotation_type(parsed.body)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._single_member([node.left, node.right])
        if isinstance(node, ast.Subscript):
            base = self.ref_for_expr(node.value)
            items = list(node.slice.elts) if isinstance(node.slice, ast.Tuple) else [node.slice]
            if base == "typing.Optional":
                return self.annotation_type(node.slice)
            if base == "typing.Union":
                return self._single_member(items)
            if base == "typing.Annotated" and items:
                return self.annotation_type(items[0])
            return base
        return self.ref_for_expr(node)

    def _single_member(self, items: Iterable[ast.AST]) -> str | None:
        """Type of a union that is ``X | None``; None for any other union."""
        flat: list[ast.AST] = []
        pending = list(items)
        while pending:
            item = pending.pop(0)
            if isinstance(item, ast.BinOp) and isinstance(item.op, ast.BitOr):
                pending[:0] = [item.left, item.right]
                continue
            if isinstance(item, ast.Constant) and item.value is None:
                continue
            if isinstance(item, ast.Name) and item.id == "None":
                continue
            flat.append(item)
        if len(flat) != 1:
            return None
        return self.annotation_type(flat[0])

    def is_class_ref(self, ref: str) -> bool:
        if ref in self.known_classes:
            return True
        pkg, _, name = ref.rpartition(".")
        return pkg == "builtins" or bool(name and name[0].isupper())

    def value_type(self, node: ast.AST | None, scope: _Scope | None = None) -> str | None:
        if node is None:
            return None
        literal = _LITERAL_TYPES.get(type(node))
        if literal:
            return literal
        if isinstance(node, ast.Constant):
            name = type(node.value).__name__
            if node.value is None or node.value is Ellipsis or name not in _BUILTIN_TYPES:
                return None
            return f"builtins.{name}"
        if isinstance(node, ast.Call):
            ref = self.ref_for_expr(node.func)
            if ref and self.is_class_ref(ref):
                return ref
            return None
        if isinstance(node, ast.Name) and scope is not None:
            return scope.lookup(node.id)[1]
        return None

    def declare_params(self, args: ast.arguments, scope: _Scope, self_type: str | None) -> None:
        positional = [*args.posonlyargs, *args.args]
        for i, arg in enumerate([*positional, *args.kwonlyargs]):
            type_ref = self.annotation_type(arg.annotation)
            if type_ref is None and i == 0 and self_type and positional:
                type_ref = self_type
            scope.declare(arg.arg, type_ref, annotated=type_ref is not None)
        if args.vararg:
            scope.declare(args.vararg.arg, "builtins.tuple", annotated=True)
        if args.kwarg:
            scope.declare(args.kwarg.arg, "builtins.dict", annotated=True)

    def _declare_targets(self, target: ast.AST, scope: _Scope) -> None:
        for node in ast.walk(target):
            if isinstance(node, ast.Name):
                scope.declare(node.id)

    def collect_declarations(self, body: Iterable[ast.AST], scope: _Scope) -> None:
        """Declare every name bound in ``body`` without entering nested scopes."""
        stack = list(reversed(list(body)))
        while stack:
            node = stack.pop()
            if isinstance(node, (*_FUNCTION_NODES, ast.ClassDef)):
                scope.declare(node.name)
                continue
            if isinstance(node, ast.Lambda):
                continue
            if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
                scope.declare(node.target.id, self.annotation_type(node.annotation), annotated=True)
            elif isinstance(node, ast.Assign):
                value_type = self.value_type(node.value, scope)
                for target in node.targets:
                    if isinstance(target, ast.Name):
                        scope.declare(target.id, value_type)
                    else:
                        self._declare_targets(target, scope)
            elif isinstance(node, ast.NamedExpr):
                scope.declare(node.target.id, self.value_type(node.value, scope))
            elif isinstance(node, (ast.For, ast.AsyncFor, ast.comprehension)):
                self._declare_targets(node.target, scope)
            elif isinstance(node, ast.AugAssign) and isinstance(node.target, ast.Name):
                scope.declare(node.target.id)
            elif isinstance(node, ast.withitem) and node.optional_vars is not None:
                self._declare_targets(node.optional_vars, scope)
            elif isinstance(node, ast.ExceptHandler) and node.name:
                scope.declare(node.name)
            elif isinstance(node, (ast.Global, ast.Nonlocal)):
                for name in node.names:
                    scope.declare(name)
            elif isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name:
                scope.declare(node.name)
            stack.extend(reversed(list(ast.iter_child_nodes(node))))

    def module_scope(self, tree: ast.Module) -> _Scope:
        scope = _Scope()
        self.collect_declarations(tree.body, scope)
        for name in self.local_classes:
            scope.declare(name, self.class_ref(name), annotated=True)
        return scope

    def class_info(self, cls: ast.ClassDef) -> ClassInfo:
        refs = [self.ref_for_expr(b) for b in cls.bases]
        bases = [ref for ref in refs if ref]
        table = _FieldTable()
        table.declare("__class__", None, False)
        for stmt in cls.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                table.declare(stmt.target.id, self.annotation_type(stmt.annotation), True)
            elif isinstance(stmt, ast.Assign):
                value_type = self.value_type(stmt.value)
                for target in stmt.targets:
                    if isinstance(target, ast.Name):
                        table.declare(target.id, value_type, False)
            elif isinstance(stmt, _FUNCTION_NODES):
                if "property" in _decorator_names(stmt) or "cached_property" in _decorator_names(stmt):
                    table.declare(stmt.name, self.annotation_type(stmt.returns), True)
                else:
                    self._collect_instance_fields(stmt, table)
                    table.declare(stmt.name, None, False)
            elif isinstance(stmt, ast.ClassDef):
                table.declare(stmt.name, None, False)
        return ClassInfo(bases=bases, fields=table.fields, open=len(bases) != len(refs))

    def _collect_instance_fields(self, method: ast.FunctionDef | ast.AsyncFunctionDef, table: _FieldTable) -> None:
        positional = [*method.args.posonlyargs, *method.args.args]
        if not positional or "staticmethod" in _decorator_names(method):
            return
        self_name = positional[0].arg
        params = _Scope()
        self.declare_params(method.args, params, None)

        def is_self_attr(target: ast.AST) -> bool:
            return (
                isinstance(target, ast.Attribute)
                and isinstance(target.value, ast.Name)
                and target.value.id == self_name
            )

        for node in ast.walk(method):
            if isinstance(node, ast.AnnAssign) and is_self_attr(node.target):
                table.declare(node.target.attr, self.annotation_type(node.annotation), True)
            elif isinstance(node, ast.Assign):
                value_type = self.value_type(node.value, params)
                for target in node.targets:
                    if is_self_attr(target):
                        table.declare(target.attr, value_type, False)


class _Translator:
    """Turns Python syntax into the language neutral IR, recording declared types."""

    def __init__(self, ctx: _ModuleContext) -> None:
        self._ctx = ctx
        self.types: dict[Expr, str] = {}

    def function_body(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        parent: _Scope,
        self_type: str | None,
    ) -> Node:
        scope = _Scope(parent)
        self._ctx.declare_params(node.args, scope, self_type)
        self._ctx.collect_declarations(node.body, scope)
        return Node("body", tuple(self.expr(stmt, scope) for stmt in node.body), lineno=node.lineno)

    def expr(self, node: ast.AST, scope: _Scope) -> Expr:
        lineno = int(getattr(node, "lineno", 0))
        if isinstance(node, ast.Call):
            args = [*node.args, *(kw.value for kw in node.keywords)]
            return Call(
                self.expr(node.func, scope),
                tuple(self.expr(a, scope) for a in args),
                lineno=lineno,
            )
        if isinstance(node, ast.Attribute):
            return Attribute(self.expr(node.value, scope), node.attr, lineno=lineno)
        if isinstance(node, ast.Name):
            bound, type_ref = scope.lookup(node.id)
            name = Name(node.id, bound=bound, lineno=lineno)
            if type_ref:
                self.types[name] = type_ref
            return name
        if isinstance(node, (*_FUNCTION_NODES, ast.Lambda)):
            return self._nested_function(node, scope)
        items = tuple(
            self.expr(child, scope)
            for child in ast.iter_child_nodes(node)
            if not isinstance(child, _SKIPPED_NODES)
        )
        return Node(type(node).__name__, items, lineno=lineno)

    def _nested_function(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef | ast.Lambda,
        scope: _Scope,
    ) -> Node:
        outer = [
            *getattr(node, "decorator_list", []),
            *node.args.defaults,
            *(d for d in node.args.kw_defaults if d is not None),
        ]
        items = [self.expr(item, scope) for item in outer]
        inner = _Scope(scope)
        self._ctx.declare_params(node.args, inner, None)
        body = node.body if isinstance(node.body, list) else [node.body]
        self._ctx.collect_declarations(body, inner)
        items.extend(self.expr(stmt, inner) for stmt in body)
        return Node(type(node).__name__, tuple(items), lineno=int(getattr(node, "lineno", 0)))


@dataclass
class _ParsedFile:
    rel: str
    tree: ast.Module
    package: str
    is_package: bool


def _relative_path(root: Path, path: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def _parse(root: Path, path: Path) -> _ParsedFile:
    rel = _relative_path(root, path)
    try:
        src = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LoaderError(f"Cannot read {rel}: {e}") from e
    try:
        tree = ast.parse(src, filename=rel)
    except SyntaxError as e:
        raise LoaderError(f"Cannot parse {rel}: {e}") from e
    package, is_package = module_path(path.resolve())
    return _ParsedFile(rel=rel, tree=tree, package=package, is_package=is_package)


def _top_level_classes(tree: ast.Module) -> list[ast.ClassDef]:
    return [stmt for stmt in tree.body if isinstance(stmt, ast.ClassDef)]


def _build_module(parsed: _ParsedFile, ctx: _ModuleContext, registry: ClassRegistry) -> IRModule:
    translator = _Translator(ctx)
    scope = ctx.module_scope(parsed.tree)
    functions: list[IRFunction] = []
    for stmt in parsed.tree.body:
        if isinstance(stmt, _FUNCTION_NODES):
            functions.append(
                IRFunction(
                    name=stmt.name,
                    body=translator.function_body(stmt, scope, None),
                    lineno=stmt.lineno,
                )
            )
        elif isinstance(stmt, ast.ClassDef):
            cls_ref = ctx.class_ref(stmt.name)
            for item in stmt.body:
                if not isinstance(item, _FUNCTION_NODES):
                    continue
                self_type = None if "staticmethod" in _decorator_names(item) else cls_ref
                functions.append(
                    IRFunction(
                        name=item.name,
                        body=translator.function_body(item, scope, self_type),
                        receiver=Receiver(stmt.name),
                        lineno=item.lineno,
                    )
                )
    return IRModule(
        file=parsed.rel,
        package=parsed.package,
        language="python",
        imports=ctx.imports,
        functions=functions,
        oracle=PythonTypeOracle(translator.types, registry),
    )


class PythonLoader:
    language = "python"

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() == ".py"

    def load(self, root: Path, files: list[Path]) -> list[IRPackage]:
        """Parse ``files`` into one single-module package each.

        Classes of every loaded file are visible to the type oracle of every
        other one.
        """
        parsed = [_parse(root, path) for path in files]
        known_classes = {
            f"{p.package}.{cls.name}" for p in parsed for cls in _top_level_classes(p.tree)
        }
        registry = ClassRegistry()
        contexts: list[_ModuleContext] = []
        for p in parsed:
            classes = _top_level_classes(p.tree)
            ctx = _ModuleContext(
                package=p.package,
                imports=build_import_table(p.tree, p.package, p.is_package),
                local_classes={cls.name for cls in classes},
                known_classes=known_classes,
            )
            for cls in classes:
                registry.add(ctx.class_ref(cls.name), ctx.class_info(cls))
            contexts.append(ctx)

        packages: list[IRPackage] = []
        for p, ctx in zip(parsed, contexts):
            unit = _build_module(p, ctx, registry)
            log.debug("Loaded %s as %s (%d functions).", p.rel, p.package, len(unit.functions))
            packages.append(
                IRPackage(path=p.package, language=self.language, files=[p.rel], modules=[unit])
            )
        return packages
