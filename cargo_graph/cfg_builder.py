"""
CFG builder: control events -> FunctionGraph.

The cursor is a frontier, the list of edges still waiting for a target:
(source id, edge kind, edge text). Every node the builder allocates receives
the whole frontier, so the merge point after an if/else or a match is simply
the next node. An empty frontier means the current path has already jumped
away (return, break, continue) and whatever follows is dead code.

Loop contexts collect pending `break` edges; they are released into the
frontier after the loop together with the header's `loop_exit` edge, and the
node that finally receives them is recorded as the loop's exit. Labeled
blocks (`'a: { ... }`) get a context without a header: `continue` and
unlabeled `break` skip it, and its breaks meet the block's own fallthrough
in an exit node recorded in `block_exits`.
"""

import logging
from dataclasses import dataclass, field

from .flow_graph import CFGEdge, CFGNode, FunctionGraph
from .tree_walker import (
    Branch,
    Break,
    Continue,
    EventStream,
    Loop,
    Match,
    Nested,
    Return,
    Statement,
)

logger = logging.getLogger(__name__)


class UnresolvedLabelError(Exception):
    """Raised for a break/continue with no matching enclosing loop or block."""
    def __init__(self, function_name: str, label: str | None, statement: str):
        self.function_name = function_name
        self.label = label
        self.statement = statement
        if label and statement == "break":
            reason = f"`{statement} {label}` does not name an enclosing loop or labeled block"
        elif label:
            reason = f"`{statement} {label}` does not name an enclosing loop"
        else:
            reason = f"`{statement}` outside of a loop"
        self.reason = reason
        super().__init__(f"{function_name}: {reason}")


@dataclass
class LoopContext:
    header_id: int | None  # None for a labeled block
    label: str | None = None
    breaks: list[tuple] = field(default_factory=list)  # pending exit edges


class CFGBuilder:
    """Build the control flow graph of one function."""

    def __init__(self, function_name: str, is_test: bool = False, line: int = 0):
        self.graph = FunctionGraph(name=function_name, is_test=is_test, line=line)
        self.next_id = 0

    def new_node(self, kind: str, **attrs) -> CFGNode:
        """Create a new node and add it to the graph."""
        node = CFGNode(id=self.next_id, kind=kind, **attrs)
        self.graph.nodes.append(node)
        self.next_id += 1
        return node

    def add_edge(self, source_id: int, target_id: int, kind: str, text: str | None = None):
        """Add an edge between nodes."""
        self.graph.edges.append(CFGEdge(source_id, target_id, kind, text))
        if kind == "loop_exit":
            self.graph.loop_exits[source_id] = target_id

    def build(self, events: EventStream) -> FunctionGraph:
        """Build the CFG from the function body's event stream."""
        start = self.new_node("start", text=self.graph.name)
        end = self.new_node("end", text=self.graph.name)
        self.graph.entry_id = start.id
        self.graph.exit_id = end.id

        frontier = self._walk(events, [(start.id, "fallthrough", None)], ())
        # Implicit return at end of function
        self._connect(frontier, end.id)
        return self.graph

    def _connect(self, frontier: list, target_id: int, kind: str = "fallthrough", text: str | None = None):
        """Wire every pending edge to target.

        Entries coming out of a decision point keep their own label;
        plain fallthrough entries take the given kind.
        """
        for source_id, entry_kind, entry_text in frontier:
            if entry_kind == "fallthrough":
                self.add_edge(source_id, target_id, kind, text)
            else:
                self.add_edge(source_id, target_id, entry_kind, entry_text)

    def _walk(self, events, frontier: list, loops: tuple) -> list:
        for event in events:
            if not frontier:
                # Unreachable after return/break/continue
                break
            frontier = self._visit(event, frontier, loops)
        return frontier

    def _visit(self, event, frontier: list, loops: tuple) -> list:
        if isinstance(event, Statement):
            return self._visit_statement(event, frontier)
        elif isinstance(event, Branch):
            return self._visit_branch(event, frontier, loops)
        elif isinstance(event, Match):
            return self._visit_match(event, frontier, loops)
        elif isinstance(event, Loop):
            return self._visit_loop(event, frontier, loops)
        elif isinstance(event, Return):
            self._connect(frontier, self.graph.exit_id, "return")
            return []
        elif isinstance(event, Break):
            context = self._resolve(loops, event.label, "break")
            for source_id, entry_kind, entry_text in frontier:
                if entry_kind == "fallthrough":
                    context.breaks.append((source_id, "break", event.label))
                else:
                    context.breaks.append((source_id, entry_kind, entry_text))
            return []
        elif isinstance(event, Continue):
            context = self._resolve(loops, event.label, "continue")
            self._connect(frontier, context.header_id, "continue", event.label)
            return []
        elif isinstance(event, Nested):
            if event.label is None:
                return self._walk(event.body, frontier, loops)
            return self._visit_labeled_block(event, frontier, loops)
        raise TypeError(f"Unknown control event: {event!r}")

    def _propagate(self, node_id: int, propagates: bool):
        if propagates:
            # `?` may leave the function early
            self.add_edge(node_id, self.graph.exit_id, "return", "?")

    def _visit_statement(self, event: Statement, frontier: list) -> list:
        block = self.new_node("block", lines=[event.text])
        self._connect(frontier, block.id)
        self._propagate(block.id, event.propagates)
        return [(block.id, "fallthrough", None)]

    def _visit_labeled_block(self, event: Nested, frontier: list, loops: tuple) -> list:
        context = LoopContext(None, event.label)
        after = self._walk(event.body, frontier, loops + (context,))
        if not context.breaks:
            return after

        # Fallthrough and every `break 'label` meet here
        exit_node = self.new_node("block")
        self._connect(after + context.breaks, exit_node.id)
        self.graph.block_exits[exit_node.id] = event.label
        return [(exit_node.id, "fallthrough", None)]

    def _visit_branch(self, event: Branch, frontier: list, loops: tuple) -> list:
        condition = self.new_node("condition", text=event.condition, branch="if")
        self._connect(frontier, condition.id)
        self._propagate(condition.id, event.propagates)

        after_then = self._walk(event.then_body, [(condition.id, "true", None)], loops)
        after_else = [(condition.id, "false", None)]
        if event.else_body is not None:
            after_else = self._walk(event.else_body, after_else, loops)
        return after_then + after_else

    def _visit_match(self, event: Match, frontier: list, loops: tuple) -> list:
        if not event.arms:
            return self._visit_statement(Statement(f"match {event.scrutinee} {{}}"), frontier)

        condition = self.new_node("condition", text=f"match {event.scrutinee}", branch="match")
        self._connect(frontier, condition.id)
        self._propagate(condition.id, event.propagates)

        after = []
        has_default = False
        for arm in event.arms:
            if arm.is_wildcard and not has_default:
                has_default = True
                entry = (condition.id, "default", None)
            else:
                entry = (condition.id, "case", arm.pattern)
            after.extend(self._walk(arm.body, [entry], loops))
        return after

    def _visit_loop(self, event: Loop, frontier: list, loops: tuple) -> list:
        header = self.new_node(
            "loop", text=event.header, loop_kind=event.loop_kind, label=event.label
        )
        self._connect(frontier, header.id)
        self._propagate(header.id, event.propagates)

        context = LoopContext(header.id, event.label)
        tail = self._walk(event.body, [(header.id, "loop_body", None)], loops + (context,))

        if len(tail) == 1 and tail[0][1] == "fallthrough":
            self.add_edge(tail[0][0], header.id, "loop_back")
        elif tail:
            # Several paths (or none at all) reach the end of the body;
            # join them so the header gets a single back edge
            merge = self.new_node("block")
            self._connect(tail, merge.id)
            self.add_edge(merge.id, header.id, "loop_back")

        return [(header.id, "loop_exit", None)] + context.breaks

    def _resolve(self, loops: tuple, label: str | None, statement: str) -> LoopContext:
        for context in reversed(loops):
            if context.header_id is None and (label is None or statement == "continue"):
                # labeled blocks only answer `break 'label`
                continue
            if label is None or context.label == label:
                return context
        raise UnresolvedLabelError(self.graph.name, label, statement)


def build_cfg(events: EventStream, function_name: str, is_test: bool = False, line: int = 0) -> FunctionGraph:
    """Build an (unmerged) control flow graph from a body's events."""
    builder = CFGBuilder(function_name, is_test=is_test, line=line)
    graph = builder.build(events)
    logger.debug(f"Built CFG for {function_name}: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
    return graph
