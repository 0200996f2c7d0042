"""
Control flow graph data model.

Nodes live in a per-function arena and are addressed by integer id; edges
are (source id, target id, kind) records, so loop back-edges never create
reference cycles between Python objects.
"""

from collections import deque
from dataclasses import dataclass, field

NODE_KINDS = ("start", "end", "block", "condition", "loop")

# Edges that leave a decision point; they keep their label when the path
# they start is wired straight into a jump target.
BRANCH_EDGE_KINDS = frozenset({"true", "false", "case", "default", "loop_body", "loop_exit"})
JUMP_EDGE_KINDS = frozenset({"return", "break", "continue", "loop_back"})
EDGE_KINDS = BRANCH_EDGE_KINDS | JUMP_EDGE_KINDS | {"fallthrough"}


@dataclass
class CFGNode:
    """
    Node of a function's control flow graph.

    Kinds:
    - "start" / "end": function entry and the single canonical exit
    - "block": merged run of statements; no lines means a merge point
    - "condition": if/else (branch="if") or match (branch="match")
    - "loop": loop header, loop_kind is "while", "for" or "loop"
    """

    id: int
    kind: str
    lines: list[str] = field(default_factory=list)
    text: str | None = None  # condition expression or loop header
    branch: str | None = None
    loop_kind: str | None = None
    label: str | None = None  # loop label like "'outer"

    @property
    def is_merge_point(self) -> bool:
        return self.kind == "block" and not self.lines

    def to_dict(self) -> dict:
        d = {"id": self.id, "kind": self.kind}
        if self.lines:
            d["lines"] = list(self.lines)
        if self.text is not None:
            d["text"] = self.text
        if self.branch:
            d["branch"] = self.branch
        if self.loop_kind:
            d["loop_kind"] = self.loop_kind
        if self.label:
            d["label"] = self.label
        return d


@dataclass
class CFGEdge:
    """
    Directed, labeled control transfer.

    Edge kinds:
    - "true" / "false": if/else outcomes
    - "case" (text = arm pattern) / "default": match arms
    - "loop_body" / "loop_exit": loop header enters body / leaves the loop
    - "loop_back": end of loop body back to the header
    - "break" / "continue" (text = loop label, if any)
    - "fallthrough": plain sequential continuation
    - "return": jump to the function exit (text "?" for error propagation)
    """

    source_id: int
    target_id: int
    kind: str
    text: str | None = None

    def sort_key(self) -> tuple:
        return (self.source_id, self.kind, self.text or "", self.target_id)

    def to_dict(self) -> dict:
        d = {"from": self.source_id, "to": self.target_id, "kind": self.kind}
        if self.text is not None:
            d["text"] = self.text
        return d


@dataclass
class FunctionGraph:
    """Control flow graph for one function."""

    name: str
    is_test: bool = False
    nodes: list[CFGNode] = field(default_factory=list)
    edges: list[CFGEdge] = field(default_factory=list)
    entry_id: int = 0
    exit_id: int = 1
    loop_exits: dict[int, int] = field(default_factory=dict)  # header id -> exit id
    block_exits: dict[int, str] = field(default_factory=dict)  # exit id -> block label
    line: int = 0

    def node(self, node_id: int) -> CFGNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def node_map(self) -> dict[int, CFGNode]:
        return {node.id: node for node in self.nodes}

    def nodes_of_kind(self, kind: str) -> list[CFGNode]:
        return [node for node in self.nodes if node.kind == kind]

    def out_edges(self, node_id: int) -> list[CFGEdge]:
        return [e for e in self.edges if e.source_id == node_id]

    def in_edges(self, node_id: int) -> list[CFGEdge]:
        return [e for e in self.edges if e.target_id == node_id]

    def out_degree(self, node_id: int) -> int:
        return len(self.out_edges(node_id))

    def in_degree(self, node_id: int) -> int:
        return len(self.in_edges(node_id))

    def successors(self, node_id: int) -> list[int]:
        return [e.target_id for e in self.out_edges(node_id)]

    def sorted_edges(self) -> list[CFGEdge]:
        return sorted(self.edges, key=CFGEdge.sort_key)

    def reachable_from(self, node_id: int) -> set[int]:
        seen = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for target in self.successors(current):
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return seen

    def to_dict(self) -> dict:
        d = {
            "function": self.name,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.sorted_edges()],
            "entry": self.entry_id,
            "exit": self.exit_id,
        }
        if self.is_test:
            d["is_test"] = True
        if self.loop_exits:
            d["loop_exits"] = {str(k): v for k, v in sorted(self.loop_exits.items())}
        if self.block_exits:
            d["block_exits"] = {str(k): v for k, v in sorted(self.block_exits.items())}
        return d

    def check_invariants(self) -> list[str]:
        """Return a description of every violated structural invariant."""
        problems = []
        nodes = self.node_map()

        for edge in self.edges:
            if edge.source_id not in nodes or edge.target_id not in nodes:
                problems.append(f"edge {edge.source_id}->{edge.target_id} references a missing node")
            if edge.kind not in EDGE_KINDS:
                problems.append(f"edge {edge.source_id}->{edge.target_id} has unknown kind {edge.kind!r}")

        starts = self.nodes_of_kind("start")
        ends = self.nodes_of_kind("end")
        if len(starts) != 1 or starts[0].id != self.entry_id:
            problems.append("expected exactly one start node at entry_id")
        if len(ends) != 1 or ends[0].id != self.exit_id:
            problems.append("expected exactly one end node at exit_id")
        if self.in_degree(self.entry_id) != 0 or self.out_degree(self.entry_id) != 1:
            problems.append("start must have in-degree 0 and out-degree 1")
        if self.out_degree(self.exit_id) != 0:
            problems.append("end must have out-degree 0")

        reachable = self.reachable_from(self.entry_id)
        for node in self.nodes:
            if node.id != self.entry_id and self.in_degree(node.id) == 0:
                problems.append(f"node {node.id} ({node.kind}) has no predecessor")
            if node.id not in reachable:
                problems.append(f"node {node.id} ({node.kind}) is unreachable from start")

            # `?` in a condition or loop header adds a return edge on the side
            out = [e for e in self.out_edges(node.id) if e.kind != "return"]
            if node.kind == "condition":
                kinds = sorted(e.kind for e in out)
                # single-arm (irrefutable) matches keep their one case edge
                minimum = 1 if node.branch == "match" else 2
                if len(out) < minimum:
                    problems.append(f"condition {node.id} has out-degree {len(out)}")
                if node.branch == "if" and kinds != ["false", "true"]:
                    problems.append(f"if condition {node.id} has edges {kinds}")
                if node.branch == "match":
                    if any(k not in ("case", "default") for k in kinds):
                        problems.append(f"match condition {node.id} has edges {kinds}")
                    if kinds.count("default") > 1:
                        problems.append(f"match condition {node.id} has several default edges")
            elif node.kind == "loop":
                exits = [e for e in out if e.kind == "loop_exit"]
                backs = [e for e in self.in_edges(node.id) if e.kind == "loop_back"]
                if len(exits) != 1:
                    problems.append(f"loop {node.id} has {len(exits)} loop_exit edges")
                elif self.loop_exits.get(node.id) != exits[0].target_id:
                    problems.append(f"loop {node.id} exit is not recorded")
                if len(backs) > 1:
                    problems.append(f"loop {node.id} has {len(backs)} loop_back edges")
                if sum(1 for e in out if e.kind == "loop_body") != 1:
                    problems.append(f"loop {node.id} must have one loop_body edge")

        exit_ids = set(self.loop_exits.values()) | set(self.block_exits)
        for edge in self.edges:
            if edge.kind == "break" and edge.target_id not in exit_ids:
                problems.append(f"break {edge.source_id}->{edge.target_id} misses every loop and block exit")
            if edge.kind == "continue" and nodes.get(edge.target_id, CFGNode(-1, "")).kind != "loop":
                problems.append(f"continue {edge.source_id}->{edge.target_id} does not target a loop")

        return problems
