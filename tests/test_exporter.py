"""Tests for DOT export of function graphs."""

import shutil

import pytest

from cargo_graph.aggregator import AggregateResult
from cargo_graph.block_merger import merge_blocks
from cargo_graph.cfg_builder import build_cfg
from cargo_graph.exporter import (
    RenderError,
    edge_label,
    node_label,
    render,
    style_graph,
    to_dot,
    write_output,
)
from cargo_graph.flow_graph import CFGEdge, CFGNode
from cargo_graph.tree_walker import (
    Branch,
    Break,
    EventStream,
    Loop,
    Match,
    MatchArm,
    Return,
    Statement,
)


def body(*events):
    return EventStream.of(events)


def fib_graph():
    return merge_blocks(
        build_cfg(
            body(
                Branch("n <= 1", body(Return("return n"))),
                Statement("let mut a = 0;"),
                Statement("let mut b = 1;"),
                Loop(
                    "for",
                    body(Statement("let t = a + b;"), Statement("a = b;"), Statement("b = t;")),
                    header="_ in 2..=n",
                ),
                Statement("b"),
            ),
            "fib",
        )
    )


def result_of(*graphs, path=None):
    return AggregateResult(graphs=list(graphs), path=path)


# =============================================================================
# Labels
# =============================================================================


def test_node_labels():
    assert node_label(CFGNode(0, "start", text="fib")) == "Start: fib"
    assert node_label(CFGNode(1, "end", text="fib")) == "End: fib"
    assert node_label(CFGNode(2, "condition", text="n <= 1", branch="if")) == "n <= 1"
    assert node_label(CFGNode(3, "loop", text="i < n", loop_kind="while")) == "while i < n"
    assert node_label(CFGNode(4, "loop", loop_kind="loop", label="'outer")) == "'outer: loop"
    assert node_label(CFGNode(5, "block", lines=["a();", "b();"])) == "a();\nb();"


def test_edge_labels():
    assert edge_label(CFGEdge(0, 1, "true")) == "true"
    assert edge_label(CFGEdge(0, 1, "case", "Some(v)")) == "Some(v)"
    assert edge_label(CFGEdge(0, 1, "default")) == "_"
    assert edge_label(CFGEdge(0, 1, "break", "'outer")) == "break 'outer"
    assert edge_label(CFGEdge(0, 1, "return", "?")) == "?"
    assert edge_label(CFGEdge(0, 1, "fallthrough")) == ""


# =============================================================================
# Styling
# =============================================================================


def test_shapes_per_node_kind():
    nodes, _ = style_graph(fib_graph(), "f0_", style="default")
    shapes = {n.id: n.shape for n in nodes}

    assert shapes["f0_n0"] == "oval"
    assert shapes["f0_n1"] == "oval"
    assert "diamond" in shapes.values()
    assert "hexagon" in shapes.values()
    assert "box" in shapes.values()


def test_merge_point_is_a_dot():
    graph = build_cfg(body(Loop("loop", body())), "spin")
    nodes, _ = style_graph(graph, "f0_")

    merge = [n for n in nodes if n.shape == "point"]
    assert len(merge) == 1
    assert merge[0].label == ""


def test_unknown_style_rejected():
    with pytest.raises(ValueError):
        style_graph(fib_graph(), "f0_", style="neon")


# =============================================================================
# DOT output
# =============================================================================


def test_dot_has_one_cluster_per_function():
    other = build_cfg(body(Statement("x();")), "other")
    dot = to_dot(result_of(fib_graph(), other))

    assert dot.startswith("digraph G {")
    assert "subgraph cluster_f0 {" in dot
    assert "subgraph cluster_f1 {" in dot
    assert "label=fib" in dot
    assert "label=other" in dot
    assert "cluster_m0" not in dot


def test_dot_contains_styled_nodes_and_edges():
    dot = to_dot(result_of(fib_graph()))

    assert 'label="Start: fib"' in dot
    assert "shape=diamond" in dot
    assert "shape=hexagon" in dot
    assert "label=true" in dot
    assert "label=false" in dot
    assert "label=next" in dot
    assert "style=dashed" in dot
    assert "f0_n2 -> f0_n1" in dot


def test_dot_output_is_byte_identical():
    first = to_dot(result_of(fib_graph()))
    second = to_dot(result_of(fib_graph()))

    assert first == second


def test_quotes_and_backslashes_are_escaped():
    graph = build_cfg(body(Statement('println!("a\\n{}", x);')), "show")
    dot = to_dot(result_of(graph))

    # every quote inside a label is escaped
    label_line = next(line for line in dot.splitlines() if "println" in line)
    assert '\\"a' in label_line
    assert "\\\\n" in label_line


def test_blocks_are_left_justified():
    dot = to_dot(result_of(fib_graph()))

    assert "let mut a = 0;\\llet mut b = 1;\\l" in dot


def test_case_edges_show_patterns():
    graph = build_cfg(
        body(
            Match(
                "opt",
                (
                    MatchArm("Some(v)", body(Statement("v"))),
                    MatchArm("_", body(Statement("0")), is_wildcard=True),
                ),
            )
        ),
        "unwrap_or_zero",
    )
    dot = to_dot(result_of(graph))

    assert 'label="Some(v)"' in dot
    assert "label=_" in dot


def test_several_units_get_module_clusters(tmp_path):
    a = result_of(fib_graph(), path=tmp_path / "a.rs")
    b = result_of(build_cfg(body(Statement("b();")), "b"), path=tmp_path / "b.rs")
    dot = to_dot([a, b], module_names=["src::a", "src::b"])

    assert "subgraph cluster_m0 {" in dot
    assert "subgraph cluster_m1 {" in dot
    assert "subgraph cluster_m0_f0 {" in dot
    assert 'label="src::a"' in dot
    assert dot.index("cluster_m0") < dot.index("cluster_m1")


def test_labeled_break_edge_in_dot():
    inner = Loop("loop", body(Statement("step();"), Break("'outer")))
    graph = build_cfg(body(Loop("loop", body(inner), label="'outer")), "nested")
    dot = to_dot(result_of(graph))

    assert "break 'outer" in dot
    assert "'outer: loop" in dot


# =============================================================================
# Writing and rendering
# =============================================================================


def test_write_dot_output(tmp_path):
    dot = to_dot(result_of(fib_graph()))
    out = write_output(dot, tmp_path / "fib.dot", "dot")

    assert out.read_text(encoding="utf-8") == dot


@pytest.mark.skipif(shutil.which("dot") is None, reason="Graphviz dot executable not installed")
def test_render_svg():
    svg = render(to_dot(result_of(fib_graph())), "svg")

    assert b"<svg" in svg


def test_render_without_graphviz_raises_render_error(monkeypatch):
    monkeypatch.setenv("PATH", "")

    with pytest.raises(RenderError):
        render(to_dot(result_of(fib_graph())), "svg")
