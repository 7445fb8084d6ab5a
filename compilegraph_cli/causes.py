"""Locate the source expressions responsible for one dependency edge."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Set, Tuple, Union

from .errors import CompileGraphError, ModuleNotFound
from .models import Cause, CauseKind, DependencyKind, Unit
from .scanner import AstScanner, Match

if TYPE_CHECKING:
    from .graph import Graph
    from .manifest import Manifest

logger = logging.getLogger(__name__)

Found = List[Tuple[CauseKind, Match]]


class CauseExtractor:
    """Maps an edge ``(source, sink, kind)`` back to expressions in ``source``.

    ``find_causes`` raises on unreadable or malformed files and is what the
    graph builder uses to classify edges; ``dependency_causes`` is the
    forgiving entry point for explanations and never raises.
    """

    def __init__(self, graph: "Graph", manifest: "Manifest", scanner: AstScanner) -> None:
        self.graph = graph
        self.manifest = manifest
        self.scanner = scanner

    def dependency_causes(
        self,
        source: str,
        sink: str,
        kind: Union[DependencyKind, str],
    ) -> List[Cause]:
        try:
            kind = DependencyKind(kind)
            source_unit = self.graph.unit(source)
            sink_unit = self.graph.unit(sink)
        except (KeyError, ValueError):
            logger.debug("No causes for unknown edge %s -> %s (%s)", source, sink, kind)
            return []
        try:
            return self.find_causes(source_unit, sink_unit, kind)
        except CompileGraphError as exc:
            logger.warning("Cannot scan %s for %s: %s", source, sink, exc)
            return []

    def find_causes(self, source: Unit, sink: Unit, kind: DependencyKind) -> List[Cause]:
        if kind is DependencyKind.COMPILE:
            found = self._compile_causes(source, sink)
        elif kind is DependencyKind.EXPORTS:
            found = self._exports_causes(source, sink)
        else:
            found = self._runtime_causes(source, sink)

        causes = {Cause(k, source.source_path, m.lines_span) for k, m in found}
        return sorted(causes, key=lambda c: (c.lines_span, c.kind.value))

    # ------------------------------------------------------------------

    def _compile_causes(self, source: Unit, sink: Unit) -> Found:
        found: Found = []
        for module in sink.modules:
            exports = self.manifest.list_module_exports(module)
            for match in self.scanner.macro_exprs(source.source_path, module, exports.macros):
                found.append((CauseKind.MACRO, match))
            for match in self.scanner.compile_invocation_exprs(
                source.source_path, module, exports.functions
            ):
                found.append((CauseKind.COMPILE_TIME_INVOCATION, match))
        return found

    def _exports_causes(self, source: Unit, sink: Unit) -> Found:
        found: Found = []
        structs = self.struct_modules(sink)
        if structs:
            for match in self.scanner.struct_exprs(source.source_path, structs):
                found.append((CauseKind.STRUCT_USAGE, match))
        for match in self._imports(source):
            if match.module in sink.modules:
                found.append((CauseKind.IMPORT, match))
        return found

    def _runtime_causes(self, source: Unit, sink: Unit) -> Found:
        found: Found = []
        for module in sink.modules:
            exports = self.manifest.list_module_exports(module)
            invocations = self.scanner.runtime_invocation_exprs(
                source.source_path, module, exports.functions
            )
            found.extend((CauseKind.RUNTIME_INVOCATION, m) for m in invocations)
            found.extend(
                (CauseKind.RUNTIME_INVOCATION, m)
                for m in self.scanner.reference_exprs(source.source_path, module)
                if m.in_function
            )
        return found

    def _imports(self, unit: Unit) -> List[Match]:
        matches: List[Match] = []
        for module in unit.modules:
            try:
                matches.extend(self.scanner.scan_module_exprs(unit.source_path, module, "import"))
            except ModuleNotFound as exc:
                logger.warning("%s", exc)
        return matches

    def struct_modules(self, unit: Unit) -> Set[str]:
        """Modules of ``unit`` that define a struct."""
        try:
            defs = self.scanner.struct_defs(unit.source_path)
        except CompileGraphError as exc:
            logger.warning("Cannot read struct definitions of %s: %s", unit.unit_id, exc)
            return set()
        return {m.module for m in defs if m.module in unit.modules}
