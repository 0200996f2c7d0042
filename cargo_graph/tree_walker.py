"""
Tree walker: Rust function bodies -> control events.

The walker turns the statements of a tree-sitter `block` into a stream of
events the CFG builder understands:

- Statement: plain sequential code (also the fallback for anything unknown)
- Branch: if / else, `let ... else`
- Match: match with one arm per pattern
- Loop: while / for / loop, with optional label
- Return, Break, Continue: jumps
- Nested: a bare `{ ... }`, `unsafe { ... }` or labeled `'a: { ... }` block

Nested bodies stay nested: a Branch holds EventStreams for its arms instead
of having them spliced into the parent stream, so the builder can recurse on
structure. Streams are lazy and restartable; iterating twice walks the tree
twice.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator


class EventStream:
    """Lazy, restartable sequence of control events."""

    def __init__(self, factory: Callable[[], Iterator]):
        self._factory = factory

    def __iter__(self) -> Iterator:
        return self._factory()

    @classmethod
    def of(cls, events: Iterable = ()) -> "EventStream":
        """Stream over an already materialized list of events."""
        events = tuple(events)
        return cls(lambda: iter(events))


@dataclass(frozen=True)
class Statement:
    text: str
    propagates: bool = False  # contains the `?` operator


@dataclass(frozen=True)
class Branch:
    condition: str
    then_body: EventStream
    else_body: EventStream | None = None
    propagates: bool = False  # `?` in the condition


@dataclass(frozen=True)
class MatchArm:
    pattern: str
    body: EventStream
    is_wildcard: bool = False


@dataclass(frozen=True)
class Match:
    scrutinee: str
    arms: tuple[MatchArm, ...] = field(default_factory=tuple)
    propagates: bool = False  # `?` in the scrutinee


@dataclass(frozen=True)
class Loop:
    loop_kind: str  # "while", "for", "loop"
    body: EventStream
    header: str | None = None  # condition / "pat in iter"; None for `loop`
    label: str | None = None  # "'outer"
    propagates: bool = False  # `?` in the header


@dataclass(frozen=True)
class Return:
    text: str = "return"


@dataclass(frozen=True)
class Break:
    label: str | None = None


@dataclass(frozen=True)
class Continue:
    label: str | None = None


@dataclass(frozen=True)
class Nested:
    body: EventStream
    label: str | None = None  # labeled block, target of `break 'label`


def squash(text: str) -> str:
    """Collapse runs of whitespace (including newlines) to one space."""
    return " ".join(text.split())


class TreeWalker:
    """Walk tree-sitter-rust nodes of one source unit."""

    LOOP_TYPES = {
        "while_expression": "while",
        "for_expression": "for",
        "loop_expression": "loop",
    }
    # Declarations inside a body are not control flow
    ITEM_TYPES = {
        "function_item",
        "function_signature_item",
        "struct_item",
        "enum_item",
        "union_item",
        "impl_item",
        "trait_item",
        "mod_item",
        "use_declaration",
        "const_item",
        "static_item",
        "type_item",
        "macro_definition",
        "extern_crate_declaration",
        "foreign_mod_item",
    }
    SKIP_TYPES = {
        "line_comment",
        "block_comment",
        "empty_statement",
        "attribute_item",
        "inner_attribute_item",
        "label",
    }
    # `?` inside these belongs to another function body
    TRY_BARRIERS = {"closure_expression", "async_block", "function_item"}

    def __init__(self, unit):
        self.unit = unit

    def text(self, node) -> str:
        return squash(self.unit.text(node))

    def body(self, block) -> EventStream:
        """Event stream for the statements of a `block` node."""
        return EventStream(lambda: self._walk_block(block))

    def _expression_stream(self, expr) -> EventStream:
        return EventStream(lambda: self._walk_expression(expr, expr))

    def _walk_block(self, block):
        for child in block.named_children:
            if child.type in self.SKIP_TYPES or child.type in self.ITEM_TYPES:
                continue
            yield from self._walk_statement(child)

    def _walk_statement(self, node):
        if node.type == "expression_statement":
            expr = None
            for child in node.named_children:
                if child.type not in self.SKIP_TYPES:
                    expr = child
                    break
            if expr is not None:
                yield from self._walk_expression(expr, node)
        elif node.type == "let_declaration":
            yield self._let(node)
        else:
            yield from self._walk_expression(node, node)

    def _walk_expression(self, expr, statement):
        kind = expr.type
        if kind == "if_expression":
            yield self._branch(expr)
        elif kind == "match_expression":
            yield self._match(expr)
        elif kind in self.LOOP_TYPES:
            yield self._loop(expr)
        elif kind == "return_expression":
            yield Return(self.text(expr))
        elif kind == "break_expression":
            yield Break(self._label(expr))
        elif kind == "continue_expression":
            yield Continue(self._label(expr))
        elif kind == "block":
            yield Nested(self.body(expr), label=self._label(expr))
        elif kind == "unsafe_block":
            inner = self._find_child_by_type(expr, {"block"})
            if inner is not None:
                yield Nested(self.body(inner))
            else:
                yield self._statement(statement)
        else:
            # Control flow inside a larger expression (`let v = match ..`,
            # `foo(if c { a } else { b })`) stays part of the statement text
            yield self._statement(statement)

    def _statement(self, node) -> Statement:
        return Statement(self.text(node), propagates=self._contains_try(node))

    def _contains_try(self, node) -> bool:
        if node is None:
            return False
        stack = [node]
        while stack:
            current = stack.pop()
            if current.type == "try_expression":
                return True
            stack.extend(c for c in current.named_children if c.type not in self.TRY_BARRIERS)
        return False

    def _find_child_by_type(self, node, types: set[str]):
        """Find first child matching any of the given types."""
        for child in node.children:
            if child.type in types:
                return child
        return None

    def _label(self, node) -> str | None:
        label = self._find_child_by_type(node, {"label"})
        return self.unit.text(label) if label is not None else None

    def _let(self, node):
        """`let` statements; `let PAT = EXPR else { ... };` is a branch."""
        alternative = node.child_by_field_name("alternative")
        if alternative is None:
            return self._statement(node)
        pattern = node.child_by_field_name("pattern")
        value = node.child_by_field_name("value")
        condition = "let"
        if pattern is not None:
            condition += f" {self.text(pattern)}"
        if value is not None:
            condition += f" = {self.text(value)}"
        return Branch(
            condition,
            EventStream.of(),
            self.body(alternative),
            propagates=self._contains_try(value),
        )

    def _branch(self, node) -> Branch:
        condition_node = node.child_by_field_name("condition")
        condition = self.text(condition_node) if condition_node is not None else "<condition>"

        consequence = node.child_by_field_name("consequence")
        then_body = self.body(consequence) if consequence is not None else EventStream.of()

        else_body = None
        alternative = node.child_by_field_name("alternative")
        if alternative is not None:
            # else_clause wraps either a block or another if_expression
            inner = self._find_child_by_type(alternative, {"block", "if_expression"})
            if inner is not None and inner.type == "block":
                else_body = self.body(inner)
            elif inner is not None:
                else_body = self._expression_stream(inner)
        return Branch(condition, then_body, else_body, propagates=self._contains_try(condition_node))

    def _match(self, node) -> Match:
        value = node.child_by_field_name("value")
        scrutinee = self.text(value) if value is not None else "<value>"
        arms = []
        match_block = node.child_by_field_name("body")
        if match_block is not None:
            for arm in match_block.named_children:
                if arm.type not in ("match_arm", "last_match_arm"):
                    continue
                pattern_node = arm.child_by_field_name("pattern")
                pattern = self.text(pattern_node) if pattern_node is not None else "_"
                arm_value = arm.child_by_field_name("value")
                body = (
                    self._expression_stream(arm_value)
                    if arm_value is not None
                    else EventStream.of()
                )
                arms.append(MatchArm(pattern, body, is_wildcard=pattern == "_"))
        return Match(scrutinee, tuple(arms), propagates=self._contains_try(value))

    def _loop(self, node) -> Loop:
        loop_kind = self.LOOP_TYPES[node.type]
        header = None
        header_node = None
        if loop_kind == "while":
            condition = node.child_by_field_name("condition")
            header_node = condition
            header = self.text(condition) if condition is not None else "<condition>"
        elif loop_kind == "for":
            pattern = node.child_by_field_name("pattern")
            value = node.child_by_field_name("value")
            header_node = value
            if pattern is not None and value is not None:
                header = f"{self.text(pattern)} in {self.text(value)}"

        body = node.child_by_field_name("body")
        if body is None:
            body = self._find_child_by_type(node, {"block"})
        stream = self.body(body) if body is not None else EventStream.of()
        return Loop(
            loop_kind,
            stream,
            header=header,
            label=self._label(node),
            propagates=self._contains_try(header_node),
        )
