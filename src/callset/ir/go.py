from __future__ import annotations

import logging
import re
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

try:
    from tree_sitter import Node as TSNode  # type: ignore
    from tree_sitter_languages import get_parser  # type: ignore

    _TS_AVAILABLE = True
except Exception:
    TSNode = object  # type: ignore
    get_parser = None  # type: ignore
    _TS_AVAILABLE = False

TS_AVAILABLE = _TS_AVAILABLE
UNAVAILABLE_REASON = None if _TS_AVAILABLE else "tree_sitter_languages not installed"

log = logging.getLogger(__name__)

_FUNCTION_NODES = {
    "function_declaration",
    "method_declaration",
}

# Predeclared types live in Go's "builtin" pseudo package.
_UNIVERSE_TYPES = {
    "any",
    "bool",
    "byte",
    "comparable",
    "complex64",
    "complex128",
    "error",
    "float32",
    "float64",
    "int",
    "int8",
    "int16",
    "int32",
    "int64",
    "rune",
    "string",
    "uint",
    "uint8",
    "uint16",
    "uint32",
    "uint64",
    "uintptr",
}

_LITERAL_TYPES = {
    "interpreted_string_literal": "builtin.string",
    "raw_string_literal": "builtin.string",
    "int_literal": "builtin.int",
    "float_literal": "builtin.float64",
    "imaginary_literal": "builtin.complex128",
    "rune_literal": "builtin.rune",
    "true": "builtin.bool",
    "false": "builtin.bool",
}

_MODULE_RE = re.compile(r"^\s*module\s+(\S+)", re.MULTILINE)


def _node_text(src: bytes, node: TSNode) -> str:
    return src[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _children_of_type(node: TSNode, *types: str) -> list[TSNode]:
    return [child for child in node.children if child.type in types]


def module_root(directory: Path) -> tuple[Path, str] | None:
    """Closest go.mod above ``directory``: its directory and module path."""
    for candidate in [directory, *directory.parents]:
        go_mod = candidate / "go.mod"
        if not go_mod.is_file():
            continue
        try:
            match = _MODULE_RE.search(go_mod.read_text(encoding="utf-8"))
        except OSError as e:
            raise LoaderError(f"Cannot read {go_mod}: {e}") from e
        if match:
            return candidate, match.group(1)
    return None


def package_path(directory: Path, package_name: str) -> str:
    found = module_root(directory)
    if found is None:
        return package_name
    root, module = found
    rel = directory.relative_to(root).as_posix()
    return module if rel == "." else f"{module}/{rel}"


@dataclass
class _StructInfo:
    fields: dict[str, str | None] = field(default_factory=dict)
    embedded: list[str] = field(default_factory=list)


class StructRegistry:
    """Named types of the loaded packages: structs and their fields, and type definitions."""

    def __init__(self) -> None:
        self._structs: dict[str, _StructInfo] = {}
        self._definitions: dict[str, str] = {}
        self._packages: set[str] = {"builtin"}

    def add_package(self, path: str) -> None:
        self._packages.add(path)

    def add_struct(self, ref: str, info: _StructInfo) -> None:
        self._structs[ref] = info

    def add_definition(self, ref: str, underlying: str) -> None:
        self._definitions[ref] = underlying

    def _underlying(self, ref: str) -> str:
        seen: set[str] = set()
        while ref in self._definitions and ref not in seen:
            seen.add(ref)
            ref = strip_type_args(remove_starting_star(self._definitions[ref]))
        return ref

    def _is_loaded(self, ref: str) -> bool:
        pkg, _, _ = ref.rpartition(".")
        return not pkg or pkg in self._packages

    def fields_of(self, type_ref: str) -> dict[str, str | None] | None:
        """Fields of a struct type, promoted fields included.

        Types of packages that were not loaded get :class:`UnknownFields`.
        """
        ref = self._underlying(strip_type_args(remove_starting_star(type_ref)))
        if ref not in self._structs:
            return None if self._is_loaded(ref) else UnknownFields()
        out: dict[str, str | None] = {}
        if self._collect(ref, out, set()):
            return UnknownFields(out)
        return out

    def _collect(self, ref: str, out: dict[str, str | None], seen: set[str]) -> bool:
        info = self._structs.get(ref)
        if info is None:
            return not self._is_loaded(ref)
        if ref in seen:
            return False
        seen.add(ref)
        for name, type_ref in info.fields.items():
            out.setdefault(name, type_ref)
        is_open = False
        # promoted fields of embedded structs
        for embedded in info.embedded:
            base = self._underlying(strip_type_args(remove_starting_star(embedded)))
            is_open = self._collect(base, out, seen) or is_open
        return is_open


class GoTypeOracle:
    def __init__(self, types: Mapping[Expr, str], structs: StructRegistry) -> None:
        self._types = types
        self._structs = structs

    def type_of(self, expr: Expr) -> str | None:
        if isinstance(expr, Name):
            return self._types.get(expr)
        if isinstance(expr, Attribute):
            owner = self.type_of(expr.value)
            if owner is None:
                return None
            fields = self._structs.fields_of(owner)
            if fields is None:
                return None
            return fields.get(expr.attr)
        return None

    def fields_of(self, type_ref: str) -> Mapping[str, str | None] | None:
        return self._structs.fields_of(type_ref)


@dataclass
class _GoFile:
    rel: str
    src: bytes
    root: TSNode
    package_name: str


class _PackageContext:
    """Type rendering for the files of one Go package."""

    def __init__(self, path: str, local_types: set[str]) -> None:
        self.path = path
        self.local_types = local_types
        self.results: dict[str, str | None] = {}
        self.globals: dict[str, str | None] = {}

    def type_name(self, name: str) -> str | None:
        if name in self.local_types:
            return f"{self.path}.{name}"
        if name in _UNIVERSE_TYPES:
            return f"builtin.{name}"
        return None

    def render(self, node: TSNode | None, src: bytes, imports: ImportTable) -> str | None:
        if node is None:
            return None
        t = node.type
        if t in {"type_identifier", "identifier"}:
            return self.type_name(_node_text(src, node))
        if t in {"qualified_type", "selector_expression"}:
            # new(pkg.T) parses its argument as an expression
            pkg = node.child_by_field_name("package" if t == "qualified_type" else "operand")
            name = node.child_by_field_name("name" if t == "qualified_type" else "field")
            if pkg is None or name is None:
                return None
            paths = imports.paths_for(_node_text(src, pkg))
            if not paths:
                return None
            return f"{paths[0]}.{_node_text(src, name)}"
        if t == "pointer_type":
            inner = self.render(node.named_children[0] if node.named_children else None, src, imports)
            return f"*{inner}" if inner else None
        if t == "generic_type":
            return self.render(node.child_by_field_name("type"), src, imports)
        if t == "parenthesized_type":
            return self.render(node.named_children[0] if node.named_children else None, src, imports)
        if t == "slice_type":
            elem = self.render(node.child_by_field_name("element"), src, imports)
            return f"[]{elem}" if elem else None
        if t == "map_type":
            key = self.render(node.child_by_field_name("key"), src, imports)
            value = self.render(node.child_by_field_name("value"), src, imports)
            return f"map[{key}]{value}" if key and value else None
        return None

    def value_type(self, node: TSNode | None, src: bytes, imports: ImportTable, scope: dict[str, str | None]) -> str | None:
        if node is None:
            return None
        t = node.type
        if t in _LITERAL_TYPES:
            return _LITERAL_TYPES[t]
        if t == "composite_literal":
            return self.render(node.child_by_field_name("type"), src, imports)
        if t == "unary_expression":
            operator = node.child_by_field_name("operator")
            operand = node.child_by_field_name("operand")
            if operator is not None and _node_text(src, operator) == "&":
                inner = self.value_type(operand, src, imports, scope)
                return f"*{inner}" if inner and operand is not None and operand.type == "composite_literal" else None
            return None
        if t == "parenthesized_expression" and node.named_children:
            return self.value_type(node.named_children[0], src, imports, scope)
        if t == "identifier":
            name = _node_text(src, node)
            if name in scope:
                return scope[name]
            return self.globals.get(name)
        if t == "call_expression":
            fn = node.child_by_field_name("function")
            args = node.child_by_field_name("arguments")
            if fn is None:
                return None
            if fn.type == "identifier":
                name = _node_text(src, fn)
                if name == "new" and args is not None and args.named_children:
                    inner = self.render(args.named_children[0], src, imports)
                    return f"*{inner}" if inner else None
                if name in self.results:
                    return self.results[name]
                if name in self.local_types:
                    return self.type_name(name)
        return None


def _import_table(file: _GoFile) -> ImportTable:
    aliases: dict[str, list[str]] = {}
    packages: set[str] = set()
    for decl in _children_of_type(file.root, "import_declaration"):
        specs = _children_of_type(decl, "import_spec")
        for spec_list in _children_of_type(decl, "import_spec_list"):
            specs.extend(_children_of_type(spec_list, "import_spec"))
        for spec in specs:
            path_node = spec.child_by_field_name("path")
            if path_node is None:
                continue
            path = _node_text(file.src, path_node).strip('"`')
            packages.add(path)
            name_node = spec.child_by_field_name("name")
            alias = _node_text(file.src, name_node) if name_node is not None else path.rsplit("/", 1)[-1]
            if alias in {"_", "."}:
                continue
            aliases.setdefault(alias, []).append(path)
    return ImportTable(
        aliases={alias: tuple(paths) for alias, paths in aliases.items()},
        packages=frozenset(packages),
    )


def _identifiers(node: TSNode, src: bytes, *types: str) -> list[str]:
    return [_node_text(src, child) for child in node.children if child.type in types]


def _first_result(node: TSNode, src: bytes, ctx: _PackageContext, imports: ImportTable) -> str | None:
    result = node.child_by_field_name("result")
    if result is None:
        return None
    if result.type == "parameter_list":
        decls = _children_of_type(result, "parameter_declaration")
        if not decls:
            return None
        return ctx.render(decls[0].child_by_field_name("type"), src, imports)
    return ctx.render(result, src, imports)


def _receiver(node: TSNode, src: bytes) -> Receiver | None:
    receiver = node.child_by_field_name("receiver")
    if receiver is None:
        return None
    for decl in _children_of_type(receiver, "parameter_declaration"):
        type_node = decl.child_by_field_name("type")
        pointer = False
        if type_node is not None and type_node.type == "pointer_type":
            pointer = True
            type_node = type_node.named_children[0] if type_node.named_children else None
        if type_node is not None and type_node.type == "generic_type":
            type_node = type_node.child_by_field_name("type")
        if type_node is not None:
            return Receiver(_node_text(src, type_node), pointer=pointer)
    return None


class _FunctionTranslator:
    """Builds the IR of one declaration body, recording the declared type of identifiers."""

    def __init__(self, file: _GoFile, ctx: _PackageContext, imports: ImportTable, types: dict[Expr, str]) -> None:
        self._file = file
        self._ctx = ctx
        self._imports = imports
        self._types = types
        self._scope: dict[str, str | None] = {}

    def _declare(self, name: str, type_ref: str | None) -> None:
        if name == "_":
            return
        if self._scope.get(name) is None:
            self._scope[name] = type_ref

    def _declare_params(self, params: TSNode | None) -> None:
        if params is None:
            return
        src = self._file.src
        for decl in params.children:
            if decl.type not in {"parameter_declaration", "variadic_parameter_declaration"}:
                continue
            type_ref = self._ctx.render(decl.child_by_field_name("type"), src, self._imports)
            if type_ref and decl.type == "variadic_parameter_declaration":
                type_ref = f"[]{type_ref}"
            for name in _identifiers(decl, src, "identifier"):
                self._declare(name, type_ref)

    def _collect(self, node: TSNode) -> None:
        src = self._file.src
        stack = [node]
        while stack:
            current = stack.pop()
            t = current.type
            if t == "var_spec":
                type_node = current.child_by_field_name("type")
                values = current.child_by_field_name("value")
                names = _identifiers(current, src, "identifier")
                declared = self._ctx.render(type_node, src, self._imports)
                value_nodes = values.named_children if values is not None else []
                for i, name in enumerate(names):
                    type_ref = declared
                    if type_ref is None and len(value_nodes) == len(names):
                        type_ref = self._ctx.value_type(value_nodes[i], src, self._imports, self._scope)
                    self._declare(name, type_ref)
            elif t in {"short_var_declaration", "range_clause"}:
                self._short_var(current, is_range=t == "range_clause")
            elif t == "const_spec":
                for name in _identifiers(current, src, "identifier"):
                    self._declare(name, None)
            elif t == "type_switch_statement":
                alias = current.child_by_field_name("alias")
                if alias is not None:
                    for name in _identifiers(alias, src, "identifier"):
                        self._declare(name, None)
            elif t == "func_literal":
                self._declare_params(current.child_by_field_name("parameters"))
            stack.extend(reversed(current.children))

    def _short_var(self, node: TSNode, is_range: bool) -> None:
        src = self._file.src
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None:
            return
        names = [_node_text(src, c) for c in left.named_children if c.type == "identifier"]
        if is_range:
            container = self._ctx.value_type(right, src, self._imports, self._scope)
            elem = container[2:] if container and container.startswith("[]") else None
            for i, name in enumerate(names):
                self._declare(name, "builtin.int" if i == 0 and elem else elem if i == 1 else None)
            return
        values = right.named_children if right is not None else []
        for i, name in enumerate(names):
            type_ref = None
            if len(values) == len(names):
                type_ref = self._ctx.value_type(values[i], src, self._imports, self._scope)
            elif i == 0 and len(values) == 1:
                type_ref = self._ctx.value_type(values[0], src, self._imports, self._scope)
            self._declare(name, type_ref)

    def translate(self, decl: TSNode) -> Node:
        self._declare_params(decl.child_by_field_name("receiver"))
        self._declare_params(decl.child_by_field_name("parameters"))
        result = decl.child_by_field_name("result")
        if result is not None and result.type == "parameter_list":
            self._declare_params(result)
        body = decl.child_by_field_name("body")
        if body is None:
            return Node("block", lineno=int(decl.start_point[0]) + 1)
        self._collect(body)
        return Node(
            "block",
            tuple(self.expr(child) for child in body.named_children),
            lineno=int(body.start_point[0]) + 1,
        )

    def expr(self, node: TSNode) -> Expr:
        src = self._file.src
        lineno = int(node.start_point[0]) + 1
        t = node.type
        if t == "call_expression":
            fn = node.child_by_field_name("function")
            args = node.child_by_field_name("arguments")
            return Call(
                self.expr(fn) if fn is not None else Node("missing", lineno=lineno),
                tuple(self.expr(a) for a in args.named_children) if args is not None else (),
                lineno=lineno,
            )
        if t == "selector_expression":
            operand = node.child_by_field_name("operand")
            field_node = node.child_by_field_name("field")
            if operand is not None and field_node is not None:
                return Attribute(self.expr(operand), _node_text(src, field_node), lineno=lineno)
        if t == "identifier":
            name = _node_text(src, node)
            if name in self._scope:
                ident = Name(name, bound=True, lineno=lineno)
                type_ref = self._scope[name]
            else:
                ident = Name(name, bound=name in self._ctx.globals, lineno=lineno)
                type_ref = self._ctx.globals.get(name)
            if type_ref:
                self._types[ident] = type_ref
            return ident
        return Node(t, tuple(self.expr(child) for child in node.named_children), lineno=lineno)


def _parse(root: Path, path: Path) -> _GoFile:
    try:
        rel = path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        rel = path.as_posix()
    if not TS_AVAILABLE or get_parser is None:
        raise LoaderError(f"Cannot load {rel}: {UNAVAILABLE_REASON}")
    try:
        src = path.read_bytes()
    except OSError as e:
        raise LoaderError(f"Cannot read {rel}: {e}") from e
    try:
        tree = get_parser("go").parse(src)
    except Exception as e:
        raise LoaderError(f"Cannot parse {rel}: {e}") from e
    if tree.root_node.has_error:
        raise LoaderError(f"Cannot parse {rel}: syntax errors")
    package_name = ""
    for clause in _children_of_type(tree.root_node, "package_clause"):
        for child in clause.named_children:
            package_name = _node_text(src, child)
    return _GoFile(rel=rel, src=src, root=tree.root_node, package_name=package_name)


def _type_specs(file: _GoFile) -> Iterable[TSNode]:
    for decl in _children_of_type(file.root, "type_declaration"):
        yield from _children_of_type(decl, "type_spec")


def _register_types(
    files: list[_GoFile],
    imports: list[ImportTable],
    ctx: _PackageContext,
    registry: StructRegistry,
) -> None:
    for file, table in zip(files, imports):
        for spec in _type_specs(file):
            name_node = spec.child_by_field_name("name")
            type_node = spec.child_by_field_name("type")
            if name_node is None or type_node is None:
                continue
            ref = f"{ctx.path}.{_node_text(file.src, name_node)}"
            if type_node.type != "struct_type":
                underlying = ctx.render(type_node, file.src, table)
                if underlying:
                    registry.add_definition(ref, underlying)
                continue
            info = _StructInfo()
            for list_node in _children_of_type(type_node, "field_declaration_list"):
                for decl in _children_of_type(list_node, "field_declaration"):
                    _register_field(decl, file, table, ctx, info)
            registry.add_struct(ref, info)


def _register_field(
    decl: TSNode,
    file: _GoFile,
    imports: ImportTable,
    ctx: _PackageContext,
    info: _StructInfo,
) -> None:
    type_node = decl.child_by_field_name("type")
    type_ref = ctx.render(type_node, file.src, imports)
    names = _identifiers(decl, file.src, "field_identifier")
    if names:
        for name in names:
            info.fields[name] = type_ref
        return
    if type_node is None:
        return
    # embedded field, named after its type
    base = type_node
    if base.type == "generic_type":
        base = base.child_by_field_name("type") or base
    if base.type == "qualified_type":
        base = base.child_by_field_name("name") or base
    if any(child.type == "*" for child in decl.children) and type_ref:
        type_ref = f"*{type_ref}"
    info.fields[_node_text(file.src, base)] = type_ref
    if type_ref:
        info.embedded.append(type_ref)


def _register_globals(files: list[_GoFile], imports: list[ImportTable], ctx: _PackageContext) -> None:
    for file, table in zip(files, imports):
        for decl in _children_of_type(file.root, "function_declaration"):
            name_node = decl.child_by_field_name("name")
            if name_node is not None:
                ctx.results[_node_text(file.src, name_node)] = _first_result(decl, file.src, ctx, table)
    for file, table in zip(files, imports):
        for decl in file.root.children:
            if decl.type not in {"var_declaration", "const_declaration"}:
                continue
            specs = _children_of_type(decl, "var_spec", "const_spec")
            for spec_list in _children_of_type(decl, "var_spec_list"):
                specs.extend(_children_of_type(spec_list, "var_spec"))
            for spec in specs:
                declared = ctx.render(spec.child_by_field_name("type"), file.src, table)
                values = spec.child_by_field_name("value")
                value_nodes = values.named_children if values is not None else []
                names = _identifiers(spec, file.src, "identifier")
                for i, name in enumerate(names):
                    type_ref = declared
                    if type_ref is None and len(value_nodes) == len(names):
                        type_ref = ctx.value_type(value_nodes[i], file.src, table, {})
                    ctx.globals[name] = type_ref
    for name in ctx.results:
        ctx.globals.setdefault(name, None)


def _build_module(
    file: _GoFile,
    imports: ImportTable,
    ctx: _PackageContext,
    registry: StructRegistry,
) -> IRModule:
    types: dict[Expr, str] = {}
    functions: list[IRFunction] = []
    for decl in file.root.children:
        if decl.type not in _FUNCTION_NODES:
            continue
        name_node = decl.child_by_field_name("name")
        if name_node is None:
            continue
        body = _FunctionTranslator(file, ctx, imports, types).translate(decl)
        functions.append(
            IRFunction(
                name=_node_text(file.src, name_node),
                body=body,
                receiver=_receiver(decl, file.src) if decl.type == "method_declaration" else None,
                lineno=int(decl.start_point[0]) + 1,
            )
        )
    return IRModule(
        file=file.rel,
        package=ctx.path,
        language="go",
        imports=imports,
        functions=functions,
        oracle=GoTypeOracle(types, registry),
    )


class GoLoader:
    language = "go"

    def __init__(self, include_tests: bool = False) -> None:
        self.include_tests = include_tests

    def supports(self, path: Path) -> bool:
        if path.suffix.lower() != ".go":
            return False
        return self.include_tests or not path.name.endswith("_test.go")

    def load(self, root: Path, files: list[Path]) -> list[IRPackage]:
        """Load ``files`` grouped by directory, one package per directory."""
        by_dir: dict[Path, list[Path]] = {}
        for path in files:
            by_dir.setdefault(path.resolve().parent, []).append(path)

        groups: list[tuple[str, list[_GoFile]]] = []
        for directory, paths in by_dir.items():
            by_name: dict[str, list[_GoFile]] = {}
            for p in paths:
                go_file = _parse(root, p)
                by_name.setdefault(go_file.package_name or directory.name, []).append(go_file)
            # an external test package "x_test" sits next to package "x"
            primary = sorted(name for name in by_name if not name.endswith("_test") or name[:-5] not in by_name)
            if len(primary) > 1:
                raise LoaderError(f"Found packages {', '.join(primary)} in {directory}")
            base = package_path(directory, primary[0] if primary else directory.name)
            for name, go_files in sorted(by_name.items()):
                groups.append((base if name in primary else f"{base}_test", go_files))

        registry = StructRegistry()
        for path, _ in groups:
            registry.add_package(path)
        prepared: list[tuple[_PackageContext, list[_GoFile], list[ImportTable]]] = []
        for path, go_files in groups:
            local_types = {
                _node_text(f.src, name)
                for f in go_files
                for spec in _type_specs(f)
                if (name := spec.child_by_field_name("name")) is not None
            }
            ctx = _PackageContext(path, local_types)
            tables = [_import_table(f) for f in go_files]
            _register_types(go_files, tables, ctx, registry)
            _register_globals(go_files, tables, ctx)
            prepared.append((ctx, go_files, tables))

        packages: list[IRPackage] = []
        for ctx, go_files, tables in prepared:
            modules = [_build_module(f, t, ctx, registry) for f, t in zip(go_files, tables)]
            log.debug("Loaded Go package %s (%d files).", ctx.path, len(modules))
            packages.append(
                IRPackage(
                    path=ctx.path,
                    language=self.language,
                    files=[f.rel for f in go_files],
                    modules=modules,
                )
            )
        return packages


__all__ = ["TS_AVAILABLE", "UNAVAILABLE_REASON", "GoLoader", "GoTypeOracle", "package_path"]
