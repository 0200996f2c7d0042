"""Tests for collapsing straight-line block chains."""

import copy

from cargo_graph.block_merger import merge_blocks
from cargo_graph.cfg_builder import build_cfg
from cargo_graph.flow_graph import CFGEdge, CFGNode, FunctionGraph
from cargo_graph.tree_walker import Branch, Break, EventStream, Loop, Statement


def body(*events):
    return EventStream.of(events)


def test_chain_collapses_into_one_block():
    graph = build_cfg(body(Statement("a();"), Statement("b();"), Statement("c();")), "f")
    merged = merge_blocks(graph)

    blocks = merged.nodes_of_kind("block")
    assert len(blocks) == 1
    assert blocks[0].lines == ["a();", "b();", "c();"]
    assert merged.successors(merged.entry_id) == [blocks[0].id]
    assert merged.successors(blocks[0].id) == [merged.exit_id]
    assert merged.check_invariants() == []


def test_merge_is_idempotent():
    events = body(
        Statement("let x = 1;"),
        Statement("let y = 2;"),
        Branch("x < y", body(Statement("swap();"), Statement("log();"))),
        Loop("while", body(Statement("x += 1;"), Statement("y -= 1;")), header="x < y"),
        Statement("x"),
    )
    once = merge_blocks(build_cfg(events, "f"))
    twice = merge_blocks(copy.deepcopy(once))

    assert once.to_dict() == twice.to_dict()


def test_blocks_are_not_merged_across_conditions():
    graph = build_cfg(
        body(
            Statement("before();"),
            Branch("c", body(Statement("then();"))),
            Statement("after();"),
        ),
        "f",
    )
    merged = merge_blocks(graph)

    assert [b.lines for b in merged.nodes_of_kind("block")] == [["before();"], ["then();"], ["after();"]]
    assert len(merged.nodes_of_kind("condition")) == 1


def test_join_point_with_several_predecessors_survives():
    graph = build_cfg(
        body(
            Branch("c", body(Statement("a();")), body(Statement("b();"))),
            Statement("join();"),
            Statement("tail();"),
        ),
        "f",
    )
    merged = merge_blocks(graph)

    join = merged.nodes_of_kind("block")[-1]
    assert join.lines == ["join();", "tail();"]
    assert merged.in_degree(join.id) == 2


def test_loop_exit_block_keeps_its_id():
    graph = build_cfg(
        body(
            Loop("loop", body(Statement("a();"), Break())),
            Statement("after();"),
            Statement("more();"),
        ),
        "f",
    )
    loop = graph.nodes_of_kind("loop")[0]
    exit_id = graph.loop_exits[loop.id]

    merged = merge_blocks(graph)

    assert merged.node(exit_id).lines == ["after();", "more();"]
    assert merged.check_invariants() == []


def test_block_with_question_mark_is_a_chain_end():
    graph = build_cfg(
        body(Statement("let v = parse(s)?;", propagates=True), Statement("v + 1")),
        "f",
    )
    merged = merge_blocks(graph)

    assert [b.lines for b in merged.nodes_of_kind("block")] == [["let v = parse(s)?;"], ["v + 1"]]


def test_merge_points_are_left_alone():
    graph = build_cfg(
        body(Loop("loop", body(Branch("c", body(Statement("a();")))))),
        "f",
    )
    merged = merge_blocks(graph)

    merge_points = [n for n in merged.nodes if n.is_merge_point]
    assert len(merge_points) == 1
    assert merged.check_invariants() == []


def test_self_loop_is_never_contracted():
    graph = FunctionGraph(
        name="odd",
        nodes=[CFGNode(0, "start"), CFGNode(1, "end"), CFGNode(2, "block", lines=["spin();"])],
        edges=[CFGEdge(0, 2, "fallthrough"), CFGEdge(2, 2, "fallthrough")],
    )

    merged = merge_blocks(graph)

    assert [n.id for n in merged.nodes] == [0, 1, 2]
    assert len(merged.edges) == 2
