"""Analysis session: the public entry point used by the CLI and by callers."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from .cache import PathCache
from .causes import CauseExtractor
from .closure import Dependencies, recompile_dependencies
from .config_manager import AnalysisSettings
from .explain import explain
from .graph import Graph, GraphBuilder, summarize
from .manifest import Manifest, open_manifest
from .models import (
    Cause,
    DependencyKind,
    ExplanationEntry,
    RecompileDependency,
    RecompileReason,
    VertexSummary,
)

logger = logging.getLogger(__name__)


class AnalysisSession:
    """Builds the graph once and answers queries against it.

    Each call to :meth:`build_graph_summary` starts a new generation: a new
    graph and a fresh :class:`PathCache`, filled on a background thread
    unless disabled. Explanations read whichever generation is current.
    """

    def __init__(self, manifest: Manifest, settings: Optional[AnalysisSettings] = None) -> None:
        self.manifest = manifest
        self.settings = settings or AnalysisSettings()
        self.scanner = manifest.scanner
        self._generation = 0
        self._graph: Optional[Graph] = None
        self._extractor: Optional[CauseExtractor] = None
        self._dependencies: Dict[str, Dependencies] = {}
        self._cache = PathCache(self._generation)

    @classmethod
    def for_project(
        cls,
        project: Union[str, Path],
        manifest_file: Optional[Union[str, Path]] = None,
        settings: Optional[AnalysisSettings] = None,
    ) -> "AnalysisSession":
        return cls(open_manifest(project, manifest_file), settings)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @property
    def graph(self) -> Graph:
        if self._graph is None:
            self.build_graph_summary(background=False)
        assert self._graph is not None
        return self._graph

    @property
    def cache(self) -> PathCache:
        return self._cache

    def build_graph_summary(self, background: Optional[bool] = None) -> List[VertexSummary]:
        """Build the graph and every unit's recompile dependencies."""
        if background is None:
            background = self.settings.background_cache

        graph = GraphBuilder(self.manifest, self.scanner).build()
        dependencies = {
            unit.unit_id: recompile_dependencies(
                graph,
                unit.unit_id,
                max_depth=self.settings.max_path_depth,
                max_paths=self.settings.max_paths,
            )
            for unit in graph.units
        }

        summaries = summarize(graph)
        for summary in summaries:
            summary.recompile_dependencies = _flatten(dependencies[summary.unit_id])

        self._generation += 1
        cache = PathCache(self._generation)
        self._graph = graph
        self._extractor = CauseExtractor(graph, self.manifest, self.scanner)
        self._dependencies = dependencies
        self._cache = cache

        items = list(dependencies.items())
        if background:
            threading.Thread(
                target=cache.populate,
                args=(items,),
                name=f"compilegraph-cache-{self._generation}",
                daemon=True,
            ).start()
        else:
            cache.populate(items)
        return summaries

    def wait_until_cached(self, timeout: Optional[float] = None) -> bool:
        return self._cache.wait(timeout)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def recompile_dependencies(self, unit_id: str) -> List[RecompileDependency]:
        """Recompile dependencies of one unit.

        Raises:
            KeyError: ``unit_id`` is not part of the graph.
        """
        graph = self.graph
        if unit_id not in self._dependencies:
            self._dependencies[unit_id] = recompile_dependencies(
                graph, unit_id, self.settings.max_path_depth, self.settings.max_paths,
            )
        return _flatten(self._dependencies[unit_id])

    def dependency_causes(
        self,
        source: str,
        sink: str,
        kind: Union[DependencyKind, str],
    ) -> List[Cause]:
        if self._extractor is None:
            self.build_graph_summary(background=False)
        assert self._extractor is not None
        return self._extractor.dependency_causes(source, sink, kind)

    def explain_dependency(
        self,
        source: str,
        sink: str,
        reason: Union[RecompileReason, str],
    ) -> List[ExplanationEntry]:
        """Why ``sink`` recompiles when ``source`` changes.

        Returns an empty list when the path is not cached, either because
        background population has not reached it yet or because no such
        dependency exists.
        """
        path = self._cache.get(sink, source, reason)
        if path is None or self._extractor is None:
            logger.debug("No cached path for %s <- %s (%s)", sink, source, reason)
            return []
        return explain(path, self._extractor, self.settings.snippet_padding)


def _flatten(dependencies: Dependencies) -> List[RecompileDependency]:
    flat = [
        RecompileDependency(unit_id, reason, path)
        for reason, entries in dependencies.items()
        for unit_id, path in entries
    ]
    return sorted(flat, key=lambda d: f"{d.unit_id}_{d.reason.value}")
