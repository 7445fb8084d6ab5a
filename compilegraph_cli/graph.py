"""Typed dependency graph between compiled units and its builder."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

from .causes import CauseExtractor
from .errors import CompileGraphError
from .manifest import Manifest
from .models import DependencyKind, Edge, UnitRecord, Unit, VertexSummary
from .scanner import AstScanner

logger = logging.getLogger(__name__)


class Graph:
    """Units and the typed ``depends on`` edges between them.

    A pair of units may be joined by several edges of different kinds;
    self references are dropped.
    """

    def __init__(self, units: Iterable[Unit] = (), edges: Iterable[Edge] = ()) -> None:
        self._units: Dict[str, Unit] = {}
        self._modules: Dict[str, str] = {}
        self._out: Dict[str, Set[Edge]] = {}
        self._in: Dict[str, Set[Edge]] = {}
        for unit in units:
            self.add_unit(unit)
        for edge in edges:
            self.add_edge(edge.src, edge.dst, edge.kind)

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._units

    def add_unit(self, unit: Unit) -> None:
        self._units[unit.unit_id] = unit
        self._out.setdefault(unit.unit_id, set())
        self._in.setdefault(unit.unit_id, set())
        for module in unit.modules:
            owner = self._modules.setdefault(module, unit.unit_id)
            if owner != unit.unit_id:
                logger.warning("Module %s is declared by both %s and %s", module, owner, unit.unit_id)

    def add_edge(self, src: str, dst: str, kind: DependencyKind) -> Optional[Edge]:
        if src == dst:
            return None
        if src not in self._units or dst not in self._units:
            raise KeyError(f"edge between unknown units: {src} -> {dst}")
        edge = Edge(src, dst, DependencyKind(kind))
        self._out[src].add(edge)
        self._in[dst].add(edge)
        return edge

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def units(self) -> List[Unit]:
        return [self._units[k] for k in sorted(self._units)]

    @property
    def edges(self) -> List[Edge]:
        return sorted(e for edges in self._out.values() for e in edges)

    def unit(self, unit_id: str) -> Unit:
        return self._units[unit_id]

    def unit_for_module(self, module: str) -> Optional[Unit]:
        unit_id = self._modules.get(module)
        return self._units[unit_id] if unit_id is not None else None

    def out_edges(self, unit_id: str) -> List[Edge]:
        return sorted(self._out.get(unit_id, ()))

    def in_edges(self, unit_id: str) -> List[Edge]:
        return sorted(self._in.get(unit_id, ()))

    def edge_kinds(self, src: str, dst: str) -> Set[DependencyKind]:
        return {e.kind for e in self._out.get(src, ()) if e.dst == dst}

    def strongest_kind(self, src: str, dst: str) -> Optional[DependencyKind]:
        kinds = self.edge_kinds(src, dst)
        return max(kinds, key=lambda k: k.strength) if kinds else None


class GraphBuilder:
    """Builds a :class:`Graph` from a manifest's compiled-unit records.

    For every pair of units where the first may refer to the second, the
    first unit's source is scanned once per dependency kind; each kind with
    at least one cause becomes an edge.
    """

    def __init__(self, manifest: Manifest, scanner: Optional[AstScanner] = None) -> None:
        self.manifest = manifest
        self.scanner = scanner or manifest.scanner

    def build(self) -> Graph:
        records = self.manifest.list_compiled_units()
        graph = Graph(Unit(r.unit_id, tuple(r.modules), r.source_path) for r in records)
        if not records:
            logger.warning("No compiled units found; the graph is empty")
            return graph

        extractor = CauseExtractor(graph, self.manifest, self.scanner)
        for record in records:
            self._add_edges_from(graph, extractor, record)

        logger.info("Built graph: %d units, %d edges", len(graph), len(graph.edges))
        return graph

    def _candidates(self, graph: Graph, record: UnitRecord) -> List[Unit]:
        if record.references is None:
            return [u for u in graph.units if u.unit_id != record.unit_id]
        targets: Dict[str, Unit] = {}
        for module in record.references:
            unit = graph.unit_for_module(module)
            if unit is not None and unit.unit_id != record.unit_id:
                targets[unit.unit_id] = unit
        return [targets[k] for k in sorted(targets)]

    def _add_edges_from(self, graph: Graph, extractor: CauseExtractor, record: UnitRecord) -> None:
        source = graph.unit(record.unit_id)
        for target in self._candidates(graph, record):
            try:
                kinds = {
                    kind for kind in DependencyKind
                    if extractor.find_causes(source, target, kind)
                }
            except CompileGraphError as exc:
                logger.warning("Skipping dependencies of %s: %s", source.unit_id, exc)
                return
            if not kinds and record.references is not None:
                # Declared by the compiler but forcing nothing
                kinds = {DependencyKind.RUNTIME}
            for kind in kinds:
                graph.add_edge(source.unit_id, target.unit_id, kind)


def summarize(graph: Graph) -> List[VertexSummary]:
    """Every unit with its outgoing edges, sorted by unit id."""
    return [VertexSummary(u.unit_id, graph.out_edges(u.unit_id)) for u in graph.units]
