"""Causal paths of one graph build, looked up by explanation queries."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Optional, Tuple, Union

from .closure import Dependencies
from .models import CausalPath, RecompileReason

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, RecompileReason]


class PathCache:
    """Maps ``(sink, source, reason)`` to the winning causal path.

    ``sink`` is the unit that recompiles and ``source`` the unit whose
    change causes it. A cache belongs to one build generation: a rebuild
    replaces it rather than updating it. One writer fills it while any
    number of readers look up keys; a missing key simply means "not known
    (yet)".
    """

    def __init__(self, generation: int = 0) -> None:
        self.generation = generation
        self._paths: Dict[CacheKey, CausalPath] = {}
        self._ready = threading.Event()

    def __len__(self) -> int:
        return len(self._paths)

    def put(self, sink: str, source: str, reason: RecompileReason, path: CausalPath) -> None:
        self._paths[(sink, source, RecompileReason(reason))] = path

    def get(self, sink: str, source: str,
            reason: Union[RecompileReason, str]) -> Optional[CausalPath]:
        try:
            reason = RecompileReason(reason)
        except ValueError:
            return None
        return self._paths.get((sink, source, reason))

    def populate(self, dependencies: Iterable[Tuple[str, Dependencies]]) -> None:
        """Store every path of every vertex, then mark the cache ready."""
        for sink, by_reason in dependencies:
            for reason, entries in by_reason.items():
                for source, path in entries:
                    self.put(sink, source, reason, path)
        logger.debug("Path cache generation %d holds %d paths", self.generation, len(self))
        self._ready.set()

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)
