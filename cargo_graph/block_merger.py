"""
Block merger: collapse straight-line chains of blocks.

The builder allocates one block per statement. Here every `fallthrough`
edge u -> v between two blocks where u has a single successor and v a
single predecessor is contracted: v's lines are appended to u, v's outgoing
edges are re-sourced at u and v disappears. Start, end, condition and loop
nodes are never touched.
"""

import logging

from .flow_graph import FunctionGraph

logger = logging.getLogger(__name__)


def _mergeable_successor(graph: FunctionGraph, node_id: int, kinds: dict[int, str]) -> int | None:
    """Return the block that can be folded into node_id, if any."""
    out = graph.out_edges(node_id)
    if len(out) != 1 or out[0].kind != "fallthrough":
        return None
    target = out[0].target_id
    if target == node_id or kinds.get(target) != "block":
        return None
    if graph.in_degree(target) != 1:
        return None
    return target


def merge_blocks(graph: FunctionGraph) -> FunctionGraph:
    """Collapse maximal block chains in place and return the graph.

    Idempotent: a merged graph has no remaining candidate edge.
    """
    kinds = {node.id: node.kind for node in graph.nodes}
    nodes = graph.node_map()
    removed: set[int] = set()

    for node in list(graph.nodes):
        if node.kind != "block" or node.id in removed:
            continue
        while True:
            target = _mergeable_successor(graph, node.id, kinds)
            if target is None:
                break
            absorbed = nodes[target]
            node.lines.extend(absorbed.lines)
            graph.edges = [e for e in graph.edges if e.source_id != node.id]
            for edge in graph.edges:
                if edge.source_id == target:
                    edge.source_id = node.id
            removed.add(target)
            del kinds[target]

    if removed:
        # loop and labeled-block exits are entered through loop_exit, break or
        # several edges, so they are always chain heads and their ids survive
        graph.nodes = [n for n in graph.nodes if n.id not in removed]
        logger.debug(f"Merged {len(removed)} blocks in {graph.name}")
    return graph
