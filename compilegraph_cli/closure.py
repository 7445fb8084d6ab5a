"""Recompile dependencies: which units force a given unit to recompile, and why.

Paths are searched breadth first from the queried unit along its outgoing
edges. Each path prefix is tracked by a small state machine over the edge
kinds seen so far::

    start --compile--> C   --compile--> C
                       C   --runtime--> CR  --runtime--> CR
    start --exports--> E   --compile--> EC  --compile--> EC

Prefixes that fall off the machine can never qualify and are pruned. The
state a path ends in gives its reason; for each target the best reason
wins, then the shortest path, then the smallest sequence of unit ids.

The search runs over ``(unit, state, anchor)`` keys, where ``anchor`` is the
first hop of an exports path. The machine only moves forward, so a shortest
walk reaching a key never repeats a unit once the queried unit and the
anchor are excluded. Each layer is expanded in id-sequence order, so the
first walk reaching a key is also the smallest.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Union

from . import config
from .graph import Graph
from .models import CausalPath, DependencyKind, Edge, RecompileReason

logger = logging.getLogger(__name__)

Dependencies = Dict[RecompileReason, List[Tuple[str, CausalPath]]]

_START, _C, _CR, _E, _EC = "start", "C", "CR", "E", "EC"

_TRANSITIONS: Dict[Tuple[str, DependencyKind], str] = {
    (_START, DependencyKind.COMPILE): _C,
    (_START, DependencyKind.EXPORTS): _E,
    (_C, DependencyKind.COMPILE): _C,
    (_C, DependencyKind.RUNTIME): _CR,
    (_CR, DependencyKind.RUNTIME): _CR,
    (_E, DependencyKind.COMPILE): _EC,
    (_EC, DependencyKind.COMPILE): _EC,
}

_REASONS: Dict[str, RecompileReason] = {
    _C: RecompileReason.COMPILE,
    _EC: RecompileReason.EXPORTS_THEN_COMPILE,
    _E: RecompileReason.EXPORTS,
    _CR: RecompileReason.COMPILE_THEN_RUNTIME,
}

_Rank = Tuple[int, int, Tuple[str, ...]]
_Key = Tuple[str, str, Optional[str]]


def classify_path(path: CausalPath) -> Optional[RecompileReason]:
    """Reason implied by the kinds along ``path``, or None."""
    state = _START
    for edge in path:
        state = _TRANSITIONS.get((state, edge.kind))
        if state is None:
            return None
    return _REASONS.get(state)


def is_guaranteed(reason: Union[RecompileReason, str]) -> bool:
    return RecompileReason(reason).guaranteed


def recompile_dependencies(
    graph: Graph,
    vertex: str,
    max_depth: Optional[int] = None,
    max_paths: int = config.MAX_PATHS,
) -> Dependencies:
    """Units whose change forces ``vertex`` to recompile, grouped by reason.

    Every reason is present in the result, in priority order; each value
    lists ``(unit_id, path)`` sorted by unit id. No unit appears under two
    reasons.

    Raises:
        KeyError: ``vertex`` is not a unit of ``graph``.
    """
    graph.unit(vertex)
    depth_limit = max_depth or len(graph)

    best: Dict[str, Tuple[_Rank, RecompileReason, CausalPath]] = {}
    start: _Key = (vertex, _START, None)
    discovered = {start}
    frontier: List[Tuple[_Key, CausalPath]] = [(start, ())]
    expansions = 0

    for _ in range(depth_limit):
        frontier.sort(key=lambda item: _unit_ids(vertex, item[1]))
        next_frontier: List[Tuple[_Key, CausalPath]] = []
        for (node, state, anchor), path in frontier:
            for edge in graph.out_edges(node):
                key = _step(vertex, state, anchor, edge)
                if key is None or key in discovered:
                    continue
                expansions += 1
                if expansions > max_paths:
                    logger.warning(
                        "Stopped searching recompile paths of %s after %d expansions",
                        vertex, max_paths,
                    )
                    return _group(best)
                discovered.add(key)
                new_path = path + (edge,)
                next_frontier.append((key, new_path))
                _record(best, vertex, key[1], new_path)
        frontier = next_frontier
        if not frontier:
            break
    else:
        pending = (
            _step(vertex, state, anchor, edge)
            for (node, state, anchor), _ in frontier
            for edge in graph.out_edges(node)
        )
        if any(key is not None and key not in discovered for key in pending):
            logger.warning("Recompile paths of %s were cut at depth %d", vertex, depth_limit)
    return _group(best)


def _step(vertex: str, state: str, anchor: Optional[str], edge: Edge) -> Optional[_Key]:
    next_state = _TRANSITIONS.get((state, edge.kind))
    if next_state is None or edge.dst == vertex or edge.dst == anchor:
        return None
    if next_state == _E:
        anchor = edge.dst
    return edge.dst, next_state, anchor


def _unit_ids(vertex: str, path: CausalPath) -> Tuple[str, ...]:
    return (vertex,) + tuple(e.dst for e in path)


def _record(best: Dict[str, Tuple[_Rank, RecompileReason, CausalPath]],
            vertex: str, state: str, path: CausalPath) -> None:
    reason = _REASONS[state]
    target = path[-1].dst
    rank = (reason.priority, len(path), _unit_ids(vertex, path))
    current = best.get(target)
    if current is None or rank < current[0]:
        best[target] = (rank, reason, path)


def _group(best: Dict[str, Tuple[_Rank, RecompileReason, CausalPath]]) -> Dependencies:
    grouped: Dependencies = {reason: [] for reason in RecompileReason}
    for target in sorted(best):
        _, reason, path = best[target]
        grouped[reason].append((target, path))
    return grouped
