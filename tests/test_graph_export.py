"""Tests for DOT and HTML graph export."""

import json
from pathlib import Path

from compilegraph_cli.graph import Graph
from compilegraph_cli.graph_export import export_dot, export_html
from compilegraph_cli.models import DependencyKind, Edge, Unit


def _graph() -> Graph:
    units = [
        Unit("lib/a.ex", ("A",), "/p/lib/a.ex"),
        Unit("lib/b.ex", ("B",), "/p/lib/b.ex"),
        Unit("lib/c.ex", ("C",), "/p/lib/c.ex"),
        Unit("lib/d.ex", ("D", "D.Inner"), "/p/lib/d.ex"),
    ]
    edges = [
        Edge("lib/a.ex", "lib/b.ex", DependencyKind.COMPILE),
        Edge("lib/b.ex", "lib/c.ex", DependencyKind.RUNTIME),
        Edge("lib/c.ex", "lib/d.ex", DependencyKind.EXPORTS),
    ]
    return Graph(units, edges)


def test_export_dot(temp_dir: Path):
    """Test that every unit and typed edge is written."""
    out = temp_dir / "graph.dot"
    export_dot(_graph(), out)
    text = out.read_text()

    assert text.startswith("digraph CompileGraph {")
    assert '"lib/d.ex" [label="lib/d.ex\\nD, D.Inner"];' in text
    assert '"lib/a.ex" -> "lib/b.ex" [label="compile"' in text
    assert 'label="runtime", color="#7f7f7f", style=dotted' in text
    assert text.count("->") == 3


def test_export_dot_focus(temp_dir: Path):
    """Test that focus keeps matching units and their neighbours."""
    out = temp_dir / "graph.dot"
    export_dot(_graph(), out, focus="a.ex")
    text = out.read_text()

    assert '"lib/a.ex" [' in text and '"lib/b.ex" [' in text
    assert '"lib/c.ex" [' not in text
    assert text.count("->") == 1


def test_export_dot_unknown_focus_keeps_everything(temp_dir: Path):
    out = temp_dir / "graph.dot"
    export_dot(_graph(), out, focus="zzz")
    assert out.read_text().count("->") == 3


def test_export_html(temp_dir: Path):
    out = temp_dir / "graph.html"
    export_html(_graph(), out, focus="c.ex")
    text = out.read_text()

    assert "<title>CompileGraph Export: c.ex</title>" in text
    payload = text.split("const graph = ", 1)[1].split(";\n", 1)[0]
    data = json.loads(payload)
    assert [n["id"] for n in data["nodes"]] == ["lib/b.ex", "lib/c.ex", "lib/d.ex"]
    assert {e["kind"] for e in data["edges"]} == {"runtime", "exports"}


def test_export_html_escapes_script_close(temp_dir: Path):
    graph = Graph([Unit("lib/</script>.ex", ("X",), "x.ex")])
    out = temp_dir / "graph.html"
    export_html(graph, out)
    assert "lib/</script>.ex" not in out.read_text()
