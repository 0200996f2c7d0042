"""
Graph exporter: function graphs -> styled Graphviz DOT.

Each function becomes a `cluster_*` subgraph labeled with its name. When
several source files are exported together every file gets an outer cluster
labeled with its module path. Output order is fixed (units as given,
functions in source order, nodes by id, edges by source id then label), so
unchanged input always produces byte-identical DOT.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import graphviz

from .aggregator import AggregateResult
from .config import DEFAULT_STYLE, SUPPORTED_STYLES
from .flow_graph import CFGEdge, CFGNode, FunctionGraph

logger = logging.getLogger(__name__)


class RenderError(Exception):
    """Raised when Graphviz cannot render the DOT description."""


GRAPH_ATTR = {
    "rankdir": "TB",
    "nodesep": "0.6",
    "ranksep": "0.7",
    "compound": "true",
    "newrank": "true",
}
NODE_ATTR = {
    "fontname": "Arial",
    "fontsize": "12",
    "margin": "0.2,0.1",
}
EDGE_ATTR = {
    "fontname": "Arial",
    "fontsize": "10",
    "arrowsize": "0.8",
}

# kind -> (shape, style, fillcolor)
NODE_THEMES = {
    "default": {
        "start": ("oval", "filled", "lightgreen"),
        "end": ("oval", "filled", "lightpink"),
        "block": ("box", "filled", "lightblue"),
        "condition": ("diamond", "filled", "lightyellow"),
        "loop": ("hexagon", "filled", "lightgray"),
        "merge": ("point", "filled", "black"),
    },
    "c-style": {
        "start": ("oval", "filled", "#d5e8d4"),
        "end": ("oval", "filled", "#f8cecc"),
        "block": ("box", "rounded,filled", "white"),
        "condition": ("diamond", "filled", "#fff2cc"),
        "loop": ("hexagon", "filled", "#dae8fc"),
        "merge": ("point", "filled", "black"),
    },
}

# kind -> (color, style)
EDGE_STYLES = {
    "true": ("darkgreen", "solid"),
    "false": ("red", "solid"),
    "loop_back": ("blue", "dashed"),
    "loop_exit": ("red", "dashed"),
    "break": ("red", "dashed"),
    "continue": ("blue", "dotted"),
    "return": ("purple", "solid"),
}

EDGE_LABELS = {
    "true": "true",
    "false": "false",
    "default": "_",
    "loop_body": "body",
    "loop_back": "next",
    "loop_exit": "exit",
    "break": "break",
    "continue": "continue",
    "return": "return",
    "fallthrough": "",
}


@dataclass
class StyledNode:
    id: str
    label: str
    shape: str
    style: str
    fillcolor: str


@dataclass
class StyledEdge:
    source: str
    target: str
    label: str
    color: str
    style: str


def node_label(node: CFGNode) -> str:
    """Plain-text label for a node (not yet escaped for DOT)."""
    if node.kind == "start":
        return f"Start: {node.text}"
    if node.kind == "end":
        return f"End: {node.text}"
    if node.kind == "condition":
        return node.text or ""
    if node.kind == "loop":
        label = node.loop_kind or "loop"
        if node.text:
            label += f" {node.text}"
        if node.label:
            label = f"{node.label}: {label}"
        return label
    return "\n".join(node.lines)


def edge_label(edge: CFGEdge) -> str:
    """Plain-text annotation for an edge."""
    if edge.kind == "case":
        return edge.text or ""
    label = EDGE_LABELS.get(edge.kind, edge.kind)
    if edge.kind == "return" and edge.text:
        return edge.text
    if edge.kind in ("break", "continue") and edge.text:
        label += f" {edge.text}"
    return label


def _dot_label(text: str, left_justify: bool = False) -> str:
    lines = [graphviz.escape(line) for line in text.split("\n")]
    if left_justify:
        return graphviz.nohtml("\\l".join(lines) + "\\l")
    return graphviz.nohtml("\\n".join(lines))


def style_graph(graph: FunctionGraph, prefix: str, style: str = DEFAULT_STYLE) -> tuple[list[StyledNode], list[StyledEdge]]:
    """Map a function graph to styled DOT nodes and edges."""
    if style not in SUPPORTED_STYLES:
        raise ValueError(f"Unsupported style: {style}")
    theme = NODE_THEMES[style]

    nodes = []
    for node in sorted(graph.nodes, key=lambda n: n.id):
        theme_key = "merge" if node.is_merge_point else node.kind
        shape, node_style, fillcolor = theme[theme_key]
        label = "" if node.is_merge_point else _dot_label(node_label(node), node.kind == "block")
        nodes.append(StyledNode(f"{prefix}n{node.id}", label, shape, node_style, fillcolor))

    edges = []
    for edge in graph.sorted_edges():
        color, edge_style = EDGE_STYLES.get(edge.kind, ("black", "solid"))
        edges.append(
            StyledEdge(
                f"{prefix}n{edge.source_id}",
                f"{prefix}n{edge.target_id}",
                _dot_label(edge_label(edge)),
                color,
                edge_style,
            )
        )
    return nodes, edges


def _add_function(parent: graphviz.Digraph, graph: FunctionGraph, prefix: str, style: str):
    nodes, edges = style_graph(graph, prefix, style)
    with parent.subgraph(name=f"cluster_{prefix.rstrip('_')}") as cluster:
        cluster.attr(label=_dot_label(graph.name), style="rounded", color="gray")
        for node in nodes:
            attrs = {"shape": node.shape, "style": node.style, "fillcolor": node.fillcolor}
            if node.shape == "point":
                attrs["width"] = "0.1"
            cluster.node(node.id, node.label, **attrs)
        for edge in edges:
            cluster.edge(edge.source, edge.target, label=edge.label, color=edge.color, style=edge.style)


def to_digraph(
    results: list[AggregateResult],
    style: str = DEFAULT_STYLE,
    module_names: list[str] | None = None,
) -> graphviz.Digraph:
    """Build the Graphviz description of every function graph."""
    dot = graphviz.Digraph(
        name="G",
        graph_attr=GRAPH_ATTR,
        node_attr=NODE_ATTR,
        edge_attr=EDGE_ATTR,
    )
    grouped = len(results) > 1
    for u, result in enumerate(results):
        if not grouped:
            for f, graph in enumerate(result.graphs):
                _add_function(dot, graph, f"f{f}_", style)
            continue
        title = module_names[u] if module_names else str(result.path or f"unit {u}")
        with dot.subgraph(name=f"cluster_m{u}") as module:
            module.attr(label=_dot_label(title), style="dashed", color="gray40")
            for f, graph in enumerate(result.graphs):
                _add_function(module, graph, f"m{u}_f{f}_", style)
    return dot


def to_dot(
    results: list[AggregateResult] | AggregateResult,
    style: str = DEFAULT_STYLE,
    module_names: list[str] | None = None,
) -> str:
    """Serialize function graphs to DOT text."""
    if isinstance(results, AggregateResult):
        results = [results]
    return to_digraph(results, style, module_names).source


def render(dot_source: str, fmt: str) -> bytes:
    """Lay out DOT text with the Graphviz `dot` executable."""
    try:
        return graphviz.Source(dot_source).pipe(format=fmt)
    except graphviz.ExecutableNotFound as e:
        raise RenderError("Failed to execute dot command. Is Graphviz installed?") from e
    except graphviz.CalledProcessError as e:
        raise RenderError(f"dot command failed: {e}") from e


def write_output(dot_source: str, output: str | Path, fmt: str) -> Path:
    """Write DOT text, or its rendering, to the output path."""
    output = Path(output)
    if fmt == "dot":
        output.write_text(dot_source, encoding="utf-8")
    else:
        output.write_bytes(render(dot_source, fmt))
    logger.debug(f"Wrote {fmt} output to {output}")
    return output
