"""Tests for code snippets and explanation assembly."""

from pathlib import Path

import pytest

from compilegraph_cli.explain import explain, extract_snippet
from compilegraph_cli.models import Cause, CauseKind, DependencyKind, Edge

C, E, R = DependencyKind.COMPILE, DependencyKind.EXPORTS, DependencyKind.RUNTIME


class FakeExtractor:
    """Returns canned causes and records every edge it was asked about."""

    def __init__(self, causes=None):
        self.causes = causes or {}
        self.calls = []

    def dependency_causes(self, source, sink, kind):
        self.calls.append((source, sink, kind))
        return self.causes.get((source, sink, kind), [])


@pytest.fixture
def source_file(temp_dir: Path) -> Path:
    path = temp_dir / "lib" / "long.ex"
    path.parent.mkdir(parents=True)
    path.write_text("".join(f"line {n}\n" for n in range(1, 31)))
    return path


def test_snippet_pads_around_cause(source_file: Path):
    snippet = extract_snippet(Cause(CauseKind.MACRO, str(source_file), (20, 20)), padding=5)
    assert snippet.lines_span == (15, 25)
    assert snippet.highlight == (20, 20)
    assert snippet.content.splitlines()[0] == "line 15"
    assert snippet.content.splitlines()[-1] == "line 25"


def test_snippet_clamps_to_file(temp_dir: Path):
    path = temp_dir / "short.ex"
    path.write_text("".join(f"line {n}\n" for n in range(1, 23)))

    tail = extract_snippet(Cause(CauseKind.IMPORT, str(path), (20, 21)), padding=5)
    assert tail.lines_span == (15, 22)

    head = extract_snippet(Cause(CauseKind.IMPORT, str(path), (2, 2)), padding=5)
    assert head.lines_span == (1, 7)
    assert head.content.startswith("line 1\n")


def test_snippet_missing_file_raises(temp_dir: Path):
    with pytest.raises(OSError):
        extract_snippet(Cause(CauseKind.MACRO, str(temp_dir / "gone.ex"), (1, 1)))


def test_compile_hop_gets_snippets(source_file: Path):
    cause = Cause(CauseKind.COMPILE_TIME_INVOCATION, str(source_file), (10, 10))
    extractor = FakeExtractor({("a", "b", C): [cause]})

    (entry,) = explain((Edge("a", "b", C),), extractor, padding=2)
    assert entry.type is C
    assert (entry.source, entry.sink) == ("a", "b")
    assert [s.lines_span for s in entry.snippets] == [(8, 12)]


def test_runtime_run_is_merged():
    """Test that consecutive runtime hops collapse into one entry."""
    path = (
        Edge("a", "b", C),
        Edge("b", "c", R),
        Edge("c", "d", R),
        Edge("d", "e", R),
    )
    extractor = FakeExtractor()
    entries = explain(path, extractor)

    assert [(e.type, e.source, e.sink) for e in entries] == [(C, "a", "b"), (R, "b", "e")]
    assert entries[1].intermediates == ["c", "d"]
    assert entries[1].snippets == []
    # Runtime hops are never scanned
    assert extractor.calls == [("a", "b", C)]


def test_single_runtime_hop_has_no_intermediates():
    entries = explain((Edge("a", "b", C), Edge("b", "c", R)), FakeExtractor())
    assert [(e.source, e.sink) for e in entries] == [("a", "b"), ("b", "c")]
    assert entries[1].intermediates == []
    assert entries[1].to_dict()["intermediates"] == []
    assert "intermediates" not in entries[0].to_dict()


def test_exports_then_compile_entries():
    entries = explain((Edge("a", "b", E), Edge("b", "c", C), Edge("c", "d", C)), FakeExtractor())
    assert [(e.type, e.source, e.sink) for e in entries] == [
        (E, "a", "b"),
        (C, "b", "c"),
        (C, "c", "d"),
    ]


def test_unreadable_cause_file_is_skipped(temp_dir: Path, source_file: Path):
    causes = [
        Cause(CauseKind.MACRO, str(temp_dir / "gone.ex"), (1, 1)),
        Cause(CauseKind.MACRO, str(source_file), (3, 3)),
    ]
    (entry,) = explain((Edge("a", "b", C),), FakeExtractor({("a", "b", C): causes}), padding=0)
    assert [s.lines_span for s in entry.snippets] == [(3, 3)]


def test_empty_path():
    assert explain((), FakeExtractor()) == []
