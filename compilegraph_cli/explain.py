"""Turn a causal path into display-ready explanation entries."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from . import config
from .causes import CauseExtractor
from .models import Cause, CausalPath, CodeSnippet, DependencyKind, Edge, ExplanationEntry

logger = logging.getLogger(__name__)

# Closes every path so a trailing run of runtime hops is flushed
END_OF_PATH: Optional[Edge] = None


def extract_snippet(cause: Cause, padding: int = config.SNIPPET_PADDING) -> CodeSnippet:
    """Read the lines around ``cause``, clamped to the file.

    Raises:
        OSError: the origin file cannot be read.
    """
    start, end = cause.lines_span
    lines = Path(cause.origin_file).read_text(encoding="utf-8", errors="replace").splitlines(keepends=True)
    first = max(start - padding, 1)
    last = max(min(end + padding, len(lines)), first)
    return CodeSnippet(
        content="".join(lines[first - 1:last]),
        lines_span=(first, last),
        highlight=(start, end),
    )


def explain(
    path: CausalPath,
    extractor: CauseExtractor,
    padding: int = config.SNIPPET_PADDING,
) -> List[ExplanationEntry]:
    """One entry per compile/exports hop; runtime runs collapse into one entry."""
    entries: List[ExplanationEntry] = []
    runtime_run: List[Edge] = []

    for hop in list(path) + [END_OF_PATH]:
        if hop is not None and hop.kind is DependencyKind.RUNTIME:
            runtime_run.append(hop)
            continue

        if runtime_run:
            entries.append(ExplanationEntry(
                type=DependencyKind.RUNTIME,
                source=runtime_run[0].src,
                sink=runtime_run[-1].dst,
                intermediates=[h.dst for h in runtime_run[:-1]],
            ))
            runtime_run = []

        if hop is END_OF_PATH:
            break

        snippets: List[CodeSnippet] = []
        for cause in extractor.dependency_causes(hop.src, hop.dst, hop.kind):
            try:
                snippets.append(extract_snippet(cause, padding))
            except OSError as exc:
                logger.warning("Cannot read %s: %s", cause.origin_file, exc)
        entries.append(ExplanationEntry(hop.kind, hop.src, hop.dst, snippets))

    return entries
