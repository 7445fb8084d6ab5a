"""Core data models shared by the graph builder, closure engine and explainer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

LineSpan = Tuple[int, int]


class DependencyKind(str, Enum):
    """Strength of the dependency of one unit on another."""

    COMPILE = "compile"
    EXPORTS = "exports"
    RUNTIME = "runtime"

    @property
    def strength(self) -> int:
        return _KIND_STRENGTH[self]


_KIND_STRENGTH = {
    DependencyKind.COMPILE: 3,
    DependencyKind.EXPORTS: 2,
    DependencyKind.RUNTIME: 1,
}


class RecompileReason(str, Enum):
    """Why a change in one unit forces (or may force) another to recompile.

    Members are declared in priority order: when several paths connect the
    same pair of units, the earliest reason wins.
    """

    COMPILE = "compile"
    EXPORTS_THEN_COMPILE = "exports_then_compile"
    EXPORTS = "exports"
    COMPILE_THEN_RUNTIME = "compile_then_runtime"

    @property
    def priority(self) -> int:
        return list(RecompileReason).index(self)

    @property
    def guaranteed(self) -> bool:
        """True when recompilation happens whatever the dependency changed."""
        return self in (RecompileReason.COMPILE, RecompileReason.COMPILE_THEN_RUNTIME)


class CauseKind(str, Enum):
    STRUCT_USAGE = "struct_usage"
    MACRO = "macro"
    COMPILE_TIME_INVOCATION = "compile_time_invocation"
    IMPORT = "import"
    RUNTIME_INVOCATION = "runtime_invocation"


@dataclass(frozen=True)
class Unit:
    """A compiled source file: one vertex of the graph."""

    unit_id: str
    modules: Tuple[str, ...]
    source_path: str


@dataclass(frozen=True, order=True)
class Edge:
    """``src`` depends on ``dst``."""

    src: str
    dst: str
    kind: DependencyKind

    def to_list(self) -> List[str]:
        return [self.kind.value, self.src, self.dst]


# Hops from the recompiling unit outwards to the unit whose change causes it
CausalPath = Tuple[Edge, ...]


@dataclass
class UnitRecord:
    """One compiled unit as reported by a manifest reader.

    ``references`` lists the module names the compiled metadata says this
    unit refers to; ``None`` means the manifest does not know.
    """

    unit_id: str
    modules: List[str]
    source_path: str
    references: Optional[List[str]] = None


@dataclass(frozen=True)
class ModuleExports:
    functions: FrozenSet[Tuple[str, int]] = frozenset()
    macros: FrozenSet[Tuple[str, int]] = frozenset()


@dataclass(frozen=True)
class Cause:
    """A source expression responsible for one edge of the graph."""

    kind: CauseKind
    origin_file: str
    lines_span: LineSpan


@dataclass
class CodeSnippet:
    content: str
    lines_span: LineSpan
    highlight: LineSpan

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "lines_span": list(self.lines_span),
            "highlight": list(self.highlight),
        }


@dataclass
class ExplanationEntry:
    """One step of a recompile explanation, ready for display."""

    type: DependencyKind
    source: str
    sink: str
    snippets: List[CodeSnippet] = field(default_factory=list)
    intermediates: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type.value,
            "source": self.source,
            "sink": self.sink,
            "snippets": [s.to_dict() for s in self.snippets],
        }
        if self.type is DependencyKind.RUNTIME:
            payload["intermediates"] = list(self.intermediates)
        return payload


@dataclass
class RecompileDependency:
    unit_id: str
    reason: RecompileReason
    path: CausalPath

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": f"{self.unit_id}_{self.reason.value}",
            "path": self.unit_id,
            "reason": self.reason.value,
            "dependency_chain": [hop.to_list() for hop in self.path],
        }


@dataclass
class VertexSummary:
    """Overview of one unit: its outgoing edges and full recompile set."""

    unit_id: str
    out_edges: List[Edge]
    recompile_dependencies: List[RecompileDependency] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.unit_id,
            "path": self.unit_id,
            "edges": [edge.to_list() for edge in self.out_edges],
            "recompile_dependencies": [d.to_dict() for d in self.recompile_dependencies],
        }
