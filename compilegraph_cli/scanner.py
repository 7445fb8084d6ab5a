"""Pattern matching over parsed Elixir files.

Each query walks one file's syntax tree with a :class:`ScopedVisitor`,
which keeps the alias/import/require state and the enclosing module path
in step with the traversal, and collects the expressions of one class:

* module-scope ``import`` / ``require`` declarations,
* struct literals and struct definitions,
* macro invocations (anywhere outside ``quote``),
* function invocations outside any function body (compile time) or
  inside one (runtime),
* plain references to a module name.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from .errors import ModuleNotFound, SourceFileNotFound
from .models import LineSpan, ModuleExports
from .parser import parse_file, read_source, scan_module_names
from .resolver import NameResolver
from .syntax import (
    Alias,
    AliasDecl,
    BinaryOp,
    Block,
    Call,
    Fn,
    FunctionDef,
    ImportDecl,
    ModuleAttr,
    ModuleDef,
    Node,
    RemoteCall,
    RequireDecl,
    Struct,
    StructDef,
    UseDecl,
    expr_lines_span,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
Signature = Tuple[str, int]

# Attribute values that are never executed
SKIPPED_ATTRS = {
    "spec", "type", "typep", "opaque", "callback", "macrocallback",
    "doc", "moduledoc", "typedoc", "impl", "behaviour",
}


@dataclass
class Match:
    """One expression found by a scan."""

    node: Node
    module: str
    lines_span: LineSpan
    in_function: bool = False


# ======================================================================
# Scoped traversal
# ======================================================================

class ScopedVisitor:
    """Walks a tree keeping name bindings and the module path current.

    Subclasses override the ``on_*`` hooks; ``visit_*`` methods handle
    scoping and should call ``super()`` when overridden.
    """

    def __init__(self) -> None:
        self.resolver = NameResolver()
        self.module_stack: List[str] = []
        self.function_depth = 0
        self._piped: Set[int] = set()

    @property
    def current_module(self) -> Optional[str]:
        return self.module_stack[-1] if self.module_stack else None

    @property
    def in_function(self) -> bool:
        return self.function_depth > 0

    @contextmanager
    def scope(self, module: Optional[str] = None) -> Iterator[None]:
        saved = self.resolver
        self.resolver = saved.child(module)
        try:
            yield
        finally:
            self.resolver = saved

    def visit(self, node: Optional[Node]) -> None:
        if node is None:
            return
        method = getattr(self, "visit_" + type(node).__name__, None)
        if method is None:
            self.generic_visit(node)
        else:
            method(node)

    def generic_visit(self, node: Node) -> None:
        for child in node.children():
            self.visit(child)

    def arity(self, call: Call) -> int:
        """Call arity, counting the left side of ``|>`` as an argument."""
        return call.arity + (1 if id(call) in self._piped else 0)

    def resolve(self, alias: Alias) -> str:
        return self.resolver.resolve(alias.dotted)

    def receiver_module(self, call: RemoteCall) -> Optional[str]:
        if isinstance(call.receiver, Alias):
            return self.resolve(call.receiver)
        return None

    # -- hooks ------------------------------------------------------------

    def on_module(self, name: str, node: ModuleDef) -> None:
        pass

    def on_call(self, call: Call) -> None:
        pass

    def on_alias(self, node: Alias) -> None:
        pass

    # -- scoping ----------------------------------------------------------

    def module_name(self, alias: Alias) -> str:
        head = alias.parts[0]
        if head == "__MODULE__" or self.resolver.lookup(head) is not None:
            return self.resolve(alias)
        if self.module_stack:
            return f"{self.module_stack[-1]}.{alias.dotted}"
        return alias.dotted

    def visit_ModuleDef(self, node: ModuleDef) -> None:
        full = self.module_name(node.name)
        head = node.name.parts[0]
        if self.module_stack and head != "__MODULE__" and self.resolver.lookup(head) is None:
            self.resolver.bind(head, f"{self.module_stack[-1]}.{head}")
        self.on_module(full, node)
        self.module_stack.append(full)
        # Function bodies of an enclosing module do not reach in here
        saved_depth, self.function_depth = self.function_depth, 0
        try:
            with self.scope(module=full):
                for expr in node.body:
                    self.visit(expr)
        finally:
            self.function_depth = saved_depth
            self.module_stack.pop()

    def visit_FunctionDef(self, node: FunctionDef) -> None:
        self.function_depth += 1
        try:
            with self.scope():
                self.generic_visit(node)
        finally:
            self.function_depth -= 1

    def visit_Fn(self, node: Fn) -> None:
        for clause in node.clauses:
            with self.scope():
                self.visit(clause)

    def visit_AliasDecl(self, node: AliasDecl) -> None:
        for target in node.targets:
            self.resolver.alias(self.resolve(target), node.as_name)

    def visit_ImportDecl(self, node: ImportDecl) -> None:
        self.resolver.add_import(self.resolve(node.target), node.only, node.except_)

    def visit_RequireDecl(self, node: RequireDecl) -> None:
        self.resolver.add_require(self.resolve(node.target), node.as_name)

    def visit_UseDecl(self, node: UseDecl) -> None:
        self.generic_visit(node)
        self.resolver.add_require(self.resolve(node.target))

    def visit_ModuleAttr(self, node: ModuleAttr) -> None:
        if node.name not in SKIPPED_ATTRS:
            self.generic_visit(node)

    def visit_BinaryOp(self, node: BinaryOp) -> None:
        if node.op == "|>" and isinstance(node.right, Call):
            self._piped.add(id(node.right))
        self.generic_visit(node)

    def visit_Alias(self, node: Alias) -> None:
        self.on_alias(node)

    def visit_Call(self, node: Call) -> None:
        if node.name == "quote":
            return
        self.on_call(node)
        for arg in node.args:
            self.visit(arg)
        if node.do_block is not None:
            with self.scope():
                self.visit(node.do_block)

    def visit_RemoteCall(self, node: RemoteCall) -> None:
        self.visit(node.receiver)
        self.visit_Call(node)


# ======================================================================
# Collectors
# ======================================================================

class _ModuleCollector(ScopedVisitor):
    def __init__(self) -> None:
        super().__init__()
        self.modules: List[Tuple[str, ModuleDef]] = []

    def on_module(self, name: str, node: ModuleDef) -> None:
        self.modules.append((name, node))


class _DeclCollector(ScopedVisitor):
    """``import`` or ``require`` declarations owned by one module."""

    def __init__(self, module: str, decl_type: type) -> None:
        super().__init__()
        self.target = module
        self.decl_type = decl_type
        self.found = False
        self.matches: List[Match] = []

    def on_module(self, name: str, node: ModuleDef) -> None:
        if name == self.target:
            self.found = True

    def visit(self, node: Optional[Node]) -> None:
        if isinstance(node, self.decl_type) and self.current_module == self.target:
            self.matches.append(Match(
                node, self.resolve(node.target), expr_lines_span(node), self.in_function,
            ))
        super().visit(node)


class _StructUsageCollector(ScopedVisitor):
    def __init__(self, names: Set[str]) -> None:
        super().__init__()
        self.names = names
        self.matches: List[Match] = []

    def visit_Struct(self, node: Struct) -> None:
        if isinstance(node.name, Alias):
            name = self.resolve(node.name)
            if name in self.names:
                self.matches.append(Match(node, name, expr_lines_span(node), self.in_function))
        self.generic_visit(node)


class _StructDefCollector(ScopedVisitor):
    def __init__(self) -> None:
        super().__init__()
        self.matches: List[Match] = []

    def visit_StructDef(self, node: StructDef) -> None:
        if self.current_module is not None:
            self.matches.append(Match(node, self.current_module, expr_lines_span(node)))
        self.generic_visit(node)


class _InvocationCollector(ScopedVisitor):
    """Calls to ``module`` whose (name, arity) is in ``signatures``.

    ``where`` selects calls outside function bodies ("compile"), inside
    them ("runtime") or anywhere ("any").
    """

    def __init__(self, module: str, signatures: Iterable[Signature],
                 macros: bool, where: str = "any") -> None:
        super().__init__()
        self.target = module
        self.signatures = set(signatures)
        self.macros = macros
        self.where = where
        self.matches: List[Match] = []

    def _wanted_here(self) -> bool:
        if self.where == "compile":
            return not self.in_function
        if self.where == "runtime":
            return self.in_function
        return True

    def _record(self, node: Node) -> None:
        self.matches.append(Match(node, self.target, expr_lines_span(node), self.in_function))

    def on_call(self, call: Call) -> None:
        if not self._wanted_here():
            return
        signature = (call.name, self.arity(call))
        if signature not in self.signatures:
            return
        if isinstance(call, RemoteCall):
            if self.receiver_module(call) != self.target:
                return
            if self.macros and not self.resolver.is_required(self.target):
                return
            self._record(call)
        elif self.resolver.is_imported(self.target, call.name, signature[1], self.macros):
            self._record(call)

    def visit_UseDecl(self, node: UseDecl) -> None:
        if self.macros and self._wanted_here() and self.resolve(node.target) == self.target:
            self._record(node)
        super().visit_UseDecl(node)


class _ReferenceCollector(ScopedVisitor):
    """Module names mentioned in expressions (not in declarations)."""

    def __init__(self, module: Optional[str] = None) -> None:
        super().__init__()
        self.target = module
        self.matches: List[Match] = []
        self.names: List[str] = []

    def on_alias(self, node: Alias) -> None:
        self._note(node, self.resolve(node))

    def visit_Struct(self, node: Struct) -> None:
        # A struct literal depends on the struct's shape, not on the module
        if isinstance(node.name, Alias):
            self._note_decl(node, node.name)
        else:
            self.visit(node.name)
        for field_node in node.fields:
            self.visit(field_node)

    def _note(self, node: Node, name: str) -> None:
        if self.target is None:
            if name not in self.names:
                self.names.append(name)
        elif name == self.target:
            self.matches.append(Match(node, name, expr_lines_span(node), self.in_function))

    def _note_decl(self, node: Node, target: Alias) -> None:
        if self.target is None:
            self._note(node, self.resolve(target))

    def visit_AliasDecl(self, node: AliasDecl) -> None:
        for target in node.targets:
            self._note_decl(node, target)
        super().visit_AliasDecl(node)

    def visit_ImportDecl(self, node: ImportDecl) -> None:
        self._note_decl(node, node.target)
        super().visit_ImportDecl(node)

    def visit_RequireDecl(self, node: RequireDecl) -> None:
        self._note_decl(node, node.target)
        super().visit_RequireDecl(node)

    def visit_UseDecl(self, node: UseDecl) -> None:
        self._note_decl(node, node.target)
        super().visit_UseDecl(node)


class _ExportCollector(ScopedVisitor):
    def __init__(self, module: str) -> None:
        super().__init__()
        self.target = module
        self.found = False
        self.functions: Set[Signature] = set()
        self.macros: Set[Signature] = set()

    def on_module(self, name: str, node: ModuleDef) -> None:
        if name == self.target:
            self.found = True

    def visit_FunctionDef(self, node: FunctionDef) -> None:
        if self.current_module == self.target and not self.in_function and node.public:
            bucket = self.macros if node.is_macro else self.functions
            bucket.update((node.name, arity) for arity in node.arities())
        super().visit_FunctionDef(node)

    def visit_StructDef(self, node: StructDef) -> None:
        if self.current_module == self.target:
            self.functions.update({("__struct__", 0), ("__struct__", 1)})
        self.generic_visit(node)


# ======================================================================
# Public scanner
# ======================================================================

class AstScanner:
    """Runs the expression queries against source files.

    Parsed trees are memoised per file, keyed on modification time and
    size, so one graph build parses each file once.
    """

    def __init__(self) -> None:
        self._trees: Dict[str, Tuple[Tuple[int, int], Block]] = {}
        self._lock = threading.Lock()

    def load(self, file_path: PathLike) -> Block:
        key = str(file_path)
        try:
            stat = Path(file_path).stat()
        except OSError as exc:
            raise SourceFileNotFound(file_path) from exc
        stamp = (stat.st_mtime_ns, stat.st_size)

        with self._lock:
            cached = self._trees.get(key)
        if cached is not None and cached[0] == stamp:
            return cached[1]

        tree = parse_file(file_path)
        with self._lock:
            self._trees[key] = (stamp, tree)
        logger.debug("Parsed %s", key)
        return tree

    def clear(self) -> None:
        with self._lock:
            self._trees.clear()

    def _run(self, visitor: ScopedVisitor, file_path: PathLike) -> ScopedVisitor:
        visitor.visit(self.load(file_path))
        return visitor

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def declared_modules(self, file_path: PathLike) -> List[str]:
        collector = self._run(_ModuleCollector(), file_path)
        return [name for name, _ in collector.modules]

    def recover_modules(self, file_path: PathLike) -> List[str]:
        """Module names of a file that does not parse, read from its tokens."""
        return scan_module_names(read_source(file_path), str(file_path))

    def defmodule_expr(self, file_path: PathLike, module: str) -> ModuleDef:
        collector = self._run(_ModuleCollector(), file_path)
        for name, node in collector.modules:
            if name == module:
                return node
        raise ModuleNotFound(file_path, module)

    def module_exports(self, file_path: PathLike, module: str) -> ModuleExports:
        collector = self._run(_ExportCollector(module), file_path)
        if not collector.found:
            raise ModuleNotFound(file_path, module)
        return ModuleExports(frozenset(collector.functions), frozenset(collector.macros))

    def scan_module_exprs(self, file_path: PathLike, module: str, kind: str) -> List[Match]:
        """``import`` or ``require`` declarations of ``module``.

        Declarations inside the module's function bodies count; those of
        nested modules belong to the nested module.
        """
        decl_types = {"import": ImportDecl, "require": RequireDecl}
        if kind not in decl_types:
            raise ValueError(f"unsupported declaration kind: {kind!r}")
        collector = self._run(_DeclCollector(module, decl_types[kind]), file_path)
        if not collector.found:
            raise ModuleNotFound(file_path, module)
        return collector.matches

    # ------------------------------------------------------------------
    # Structs
    # ------------------------------------------------------------------

    def struct_exprs(self, file_path: PathLike, struct_names: Iterable[str]) -> List[Match]:
        """Struct literals (``%Mod{}``) whose resolved name is in ``struct_names``."""
        collector = self._run(_StructUsageCollector(set(struct_names)), file_path)
        return collector.matches

    def struct_defs(self, file_path: PathLike) -> List[Match]:
        """``defstruct`` statements, each tagged with its owning module."""
        return self._run(_StructDefCollector(), file_path).matches

    # ------------------------------------------------------------------
    # Invocations
    # ------------------------------------------------------------------

    def macro_exprs(self, file_path: PathLike, module: str,
                    macros: Iterable[Signature]) -> List[Match]:
        collector = _InvocationCollector(module, macros, macros=True)
        return self._run(collector, file_path).matches

    def compile_invocation_exprs(self, file_path: PathLike, module: str,
                                 functions: Iterable[Signature]) -> List[Match]:
        collector = _InvocationCollector(module, functions, macros=False, where="compile")
        return self._run(collector, file_path).matches

    def runtime_invocation_exprs(self, file_path: PathLike, module: str,
                                 functions: Iterable[Signature]) -> List[Match]:
        collector = _InvocationCollector(module, functions, macros=False, where="runtime")
        return self._run(collector, file_path).matches

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def reference_exprs(self, file_path: PathLike, module: str) -> List[Match]:
        return self._run(_ReferenceCollector(module), file_path).matches

    def referenced_modules(self, file_path: PathLike) -> List[str]:
        collector = self._run(_ReferenceCollector(), file_path)
        return collector.names
