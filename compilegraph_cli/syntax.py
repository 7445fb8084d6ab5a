"""Syntax tree produced by :mod:`compilegraph_cli.parser`.

Every node records the line it starts on. Calls and struct literals also
record ``end_line``, the line of the last token of their head, so a
construct spread over several lines can be highlighted as a whole.

Special forms (``defmodule``, ``def``, ``alias``, ``import``, ``require``,
``use``, ``defstruct``, ``@attr``) get their own node types; everything
else is a generic call, operator or literal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union

from .models import LineSpan


@dataclass
class Node:
    line: int

    @property
    def end_line(self) -> int:
        return self.line

    def children(self) -> Iterator["Node"]:
        return iter(())


@dataclass
class Block(Node):
    exprs: List[Node] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        return iter(self.exprs)


@dataclass
class Literal(Node):
    kind: str = "nil"
    value: str = ""


@dataclass
class Var(Node):
    name: str = ""


@dataclass
class Alias(Node):
    parts: Tuple[str, ...] = ()

    @property
    def dotted(self) -> str:
        return ".".join(self.parts)


@dataclass
class MultiAlias(Node):
    """``Base.{A, B.C}``; only meaningful as the target of ``alias``."""

    base: Alias = None  # type: ignore[assignment]
    items: List[Alias] = field(default_factory=list)

    def expand(self) -> List[Alias]:
        return [Alias(item.line, self.base.parts + item.parts) for item in self.items]


@dataclass
class KeywordList(Node):
    pairs: List[Tuple[str, Node]] = field(default_factory=list)

    def get(self, key: str) -> Optional[Node]:
        for k, v in self.pairs:
            if k == key:
                return v
        return None

    def children(self) -> Iterator[Node]:
        return (v for _, v in self.pairs)


@dataclass
class ListExpr(Node):
    items: List[Node] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        return iter(self.items)


@dataclass
class TupleExpr(ListExpr):
    pass


@dataclass
class MapExpr(ListExpr):
    pass


@dataclass
class Bitstring(ListExpr):
    pass


@dataclass
class Struct(Node):
    name: Node = None  # type: ignore[assignment]
    fields: List[Node] = field(default_factory=list)
    last_line: int = 0

    @property
    def end_line(self) -> int:
        return max(self.line, self.last_line)

    def children(self) -> Iterator[Node]:
        yield self.name
        yield from self.fields


@dataclass
class BinaryOp(Node):
    op: str = ""
    left: Node = None  # type: ignore[assignment]
    right: Node = None  # type: ignore[assignment]

    def children(self) -> Iterator[Node]:
        yield self.left
        yield self.right


@dataclass
class UnaryOp(Node):
    op: str = ""
    operand: Node = None  # type: ignore[assignment]

    def children(self) -> Iterator[Node]:
        yield self.operand


@dataclass
class Access(Node):
    target: Node = None  # type: ignore[assignment]
    key: Node = None  # type: ignore[assignment]

    def children(self) -> Iterator[Node]:
        yield self.target
        yield self.key


@dataclass
class Clause(Node):
    """``patterns -> body`` inside ``fn``, ``case`` and friends."""

    patterns: List[Node] = field(default_factory=list)
    body: List[Node] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        yield from self.patterns
        yield from self.body


@dataclass
class DoBlock(Node):
    """``do ... end`` with optional ``else``/``after``/``rescue``/``catch``."""

    sections: List[Tuple[str, List[Node]]] = field(default_factory=list)

    def section(self, name: str) -> List[Node]:
        for key, body in self.sections:
            if key == name:
                return body
        return []

    def children(self) -> Iterator[Node]:
        for _, body in self.sections:
            yield from body


@dataclass
class Call(Node):
    """Local call ``name(args)``, ``name args`` or ``name do ... end``."""

    name: str = ""
    args: List[Node] = field(default_factory=list)
    parens: bool = False
    do_block: Optional[DoBlock] = None
    last_line: int = 0

    @property
    def arity(self) -> int:
        return len(self.args) + (1 if self.do_block is not None else 0)

    @property
    def end_line(self) -> int:
        return max(self.line, self.last_line)

    def children(self) -> Iterator[Node]:
        yield from self.args
        if self.do_block is not None:
            yield self.do_block


@dataclass
class RemoteCall(Call):
    """``receiver.name(args)``; ``receiver`` is usually an :class:`Alias`."""

    receiver: Node = None  # type: ignore[assignment]

    def children(self) -> Iterator[Node]:
        yield self.receiver
        yield from super().children()


@dataclass
class AnonCall(Node):
    """``fun.(args)``"""

    fun: Node = None  # type: ignore[assignment]
    args: List[Node] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        yield self.fun
        yield from self.args


@dataclass
class Capture(Node):
    """``&Mod.fun/arity`` or ``&fun/arity``."""

    receiver: Optional[Node] = None
    name: str = ""
    arity: int = 0

    def children(self) -> Iterator[Node]:
        if self.receiver is not None:
            yield self.receiver


@dataclass
class Fn(Node):
    clauses: List[Clause] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        return iter(self.clauses)


@dataclass
class ModuleDef(Node):
    name: Alias = None  # type: ignore[assignment]
    body: List[Node] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        return iter(self.body)


@dataclass
class FunctionDef(Node):
    """``def``, ``defp``, ``defmacro``, ``defmacrop``, ``defguard(p)``."""

    kind: str = "def"
    name: str = ""
    params: List[Node] = field(default_factory=list)
    guard: Optional[Node] = None
    body: List[Node] = field(default_factory=list)

    @property
    def public(self) -> bool:
        return not self.kind.endswith("p")

    @property
    def is_macro(self) -> bool:
        return self.kind in ("defmacro", "defmacrop", "defguard", "defguardp")

    def arities(self) -> List[int]:
        """Every arity this definition answers to, defaults expanded."""
        required = sum(1 for p in self.params if not _is_default_param(p))
        return list(range(required, len(self.params) + 1))

    def children(self) -> Iterator[Node]:
        yield from self.params
        if self.guard is not None:
            yield self.guard
        yield from self.body


def _is_default_param(param: Node) -> bool:
    return isinstance(param, BinaryOp) and param.op == "\\\\"


@dataclass
class AliasDecl(Node):
    targets: List[Alias] = field(default_factory=list)
    as_name: Optional[str] = None


@dataclass
class ImportDecl(Node):
    target: Alias = None  # type: ignore[assignment]
    # Either a list of (name, arity) pairs or one of "functions" / "macros"
    only: Optional[Union[List[Tuple[str, int]], str]] = None
    except_: List[Tuple[str, int]] = field(default_factory=list)


@dataclass
class RequireDecl(Node):
    target: Alias = None  # type: ignore[assignment]
    as_name: Optional[str] = None


@dataclass
class UseDecl(Node):
    target: Alias = None  # type: ignore[assignment]
    args: List[Node] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        return iter(self.args)


@dataclass
class StructDef(Node):
    fields: List[Node] = field(default_factory=list)

    def children(self) -> Iterator[Node]:
        return iter(self.fields)


@dataclass
class ModuleAttr(Node):
    name: str = ""
    value: Optional[Node] = None

    def children(self) -> Iterator[Node]:
        if self.value is not None:
            yield self.value


def expr_lines_span(node: Node) -> LineSpan:
    """Return the ``(start, end)`` line span of an expression."""
    return (node.line, node.end_line)
