"""Graph export helpers for DOT and simple standalone HTML outputs."""

from __future__ import annotations

import html
import json
from pathlib import Path
from typing import Dict, List

from .graph import Graph
from .models import DependencyKind

_DOT_STYLE: Dict[str, str] = {
    DependencyKind.COMPILE.value: 'color="#d62728", penwidth=2',
    DependencyKind.EXPORTS.value: 'color="#1f77b4", style=dashed',
    DependencyKind.RUNTIME.value: 'color="#7f7f7f", style=dotted',
}


def export_dot(graph: Graph, output_file: Path, focus: str = "") -> None:
    units = {u.unit_id: u for u in graph.units}
    edges = [_edge_row(e) for e in graph.edges]

    selected = _focused_subgraph(units, edges, focus)

    lines = ["digraph CompileGraph {"]
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box];")

    for unit_id in selected["nodes"]:
        label = unit_id + "\\n" + ", ".join(units[unit_id].modules)
        lines.append(f'  "{_esc(unit_id)}" [label="{_esc(label)}"];')

    for edge in selected["edges"]:
        lines.append(
            f'  "{_esc(edge["src"])}" -> "{_esc(edge["dst"])}" '
            f'[label="{edge["kind"]}", {_DOT_STYLE[edge["kind"]]}];'
        )

    lines.append("}")
    output_file.write_text("\n".join(lines) + "\n", encoding="utf-8")


def export_html(graph: Graph, output_file: Path, focus: str = "") -> None:
    """Export the graph as a standalone page listing units and typed edges."""
    units = {u.unit_id: u for u in graph.units}
    edges = [_edge_row(e) for e in graph.edges]

    selected = _focused_subgraph(units, edges, focus)
    graph_payload = {
        "nodes": [
            {
                "id": unit_id,
                "label": ", ".join(units[unit_id].modules) or unit_id,
                "title": units[unit_id].source_path,
            }
            for unit_id in selected["nodes"]
        ],
        "edges": selected["edges"],
    }
    output_file.write_text(_html_page(graph_payload, focus), encoding="utf-8")


def _html_page(graph_payload: dict, focus: str) -> str:
    title = "CompileGraph Export" + (f": {html.escape(focus)}" if focus else "")
    # "</" must not close the script element early
    data = json.dumps(graph_payload).replace("</", "<\\/")
    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>{title}</title>
  <style>
    body {{ font-family: ui-monospace, SFMono-Regular, Menlo, monospace; margin: 20px; }}
    #container {{ display: grid; grid-template-columns: 1fr 1fr; gap: 18px; }}
    .panel {{ border: 1px solid #ddd; border-radius: 8px; padding: 10px; }}
    ul {{ list-style: none; padding: 0; margin: 0; }}
    li {{ margin: 4px 0; }}
    .compile {{ color: #d62728; }}
    .exports {{ color: #1f77b4; }}
    .runtime {{ color: #7f7f7f; }}
  </style>
</head>
<body>
  <h1>{title}</h1>
  <div id="container">
    <div class="panel">
      <h2>Units</h2>
      <ul id="nodes"></ul>
    </div>
    <div class="panel">
      <h2>Dependencies</h2>
      <ul id="edges"></ul>
    </div>
  </div>
  <script>
    const graph = {data};
    const nodesEl = document.getElementById('nodes');
    const edgesEl = document.getElementById('edges');
    graph.nodes.forEach(n => {{
      const li = document.createElement('li');
      li.textContent = `${{n.id}} (${{n.label}})`;
      nodesEl.appendChild(li);
    }});
    graph.edges.forEach(e => {{
      const li = document.createElement('li');
      li.className = e.kind;
      li.textContent = `${{e.src}} --${{e.kind}}--> ${{e.dst}}`;
      edgesEl.appendChild(li);
    }});
  </script>
</body>
</html>
"""


def _edge_row(edge) -> dict:
    return {"src": edge.src, "dst": edge.dst, "kind": edge.kind.value}


def _focused_subgraph(units: Dict[str, object], edges: List[dict], focus: str) -> Dict[str, List]:
    if not focus:
        return {"nodes": sorted(units), "edges": edges}

    focus_ids = {unit_id for unit_id in units if focus in unit_id}
    if not focus_ids:
        return {"nodes": sorted(units), "edges": edges}

    edge_subset = [e for e in edges if e["src"] in focus_ids or e["dst"] in focus_ids]
    node_subset = set(focus_ids)
    for e in edge_subset:
        node_subset.add(e["src"])
        node_subset.add(e["dst"])
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
