"""
Rust syntax provider built on tree-sitter.

Parses a source unit and hands out the function items found in it: the
(qualified) name, whether the function is a test, and the body node that the
tree walker turns into control events. Nothing in here knows about graphs.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .config import MAX_FILE_SIZE

logger = logging.getLogger(__name__)

TREE_SITTER_RUST_AVAILABLE = False
try:
    from tree_sitter import Language, Parser
    import tree_sitter_rust

    TREE_SITTER_RUST_AVAILABLE = True
except ImportError:
    pass


class FileTooLargeError(Exception):
    """Raised when a file exceeds MAX_FILE_SIZE."""
    def __init__(self, file_path: Path, size: int, limit: int):
        self.file_path = file_path
        self.size = size
        self.limit = limit
        super().__init__(
            f"File {file_path} is {size:,} bytes, exceeds limit of {limit:,} bytes. "
            f"Set CARGO_GRAPH_MAX_FILE_SIZE environment variable to increase limit."
        )


class ParseError(Exception):
    """Raised when the Rust source does not parse cleanly."""
    def __init__(self, file_path: Path | None, line: int, column: int, message: str):
        self.file_path = file_path
        self.line = line
        self.column = column
        location = f"{file_path or '<source>'}:{line}:{column}"
        super().__init__(f"Failed to parse {location}: {message}")


@dataclass
class FunctionItem:
    """A function found in a source unit."""

    name: str  # qualified, e.g. "Parser::parse" or "tests::it_works"
    is_test: bool
    body: object  # tree-sitter block node
    line: int  # 1-based line of the `fn` keyword


@dataclass
class SourceUnit:
    """A parsed Rust file (or snippet)."""

    source: bytes
    tree: object
    path: Path | None = None
    functions: list[FunctionItem] = field(default_factory=list)

    def text(self, node) -> str:
        """Get source text for a node."""
        return self.source[node.start_byte : node.end_byte].decode("utf-8")


def _get_ts_parser():
    """Create a tree-sitter parser for Rust."""
    if not TREE_SITTER_RUST_AVAILABLE:
        raise ImportError("tree-sitter-rust not available")

    parser = Parser()
    parser.language = Language(tree_sitter_rust.language())
    return parser


def _first_error(node):
    """First ERROR or MISSING node in document order."""
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "ERROR" or current.is_missing:
            return current
        stack.extend(reversed([c for c in current.children if c.has_error or c.is_missing]))
    return None


def parse_source(source: str, file_path: Path | None = None) -> SourceUnit:
    """Parse Rust source text and collect its function items.

    Raises:
        ParseError: If the parse tree contains syntax errors.
    """
    source_bytes = source.encode("utf-8")
    parser = _get_ts_parser()
    tree = parser.parse(source_bytes)

    root = tree.root_node
    if root.has_error:
        bad = _first_error(root) or root
        row, column = bad.start_point[0] + 1, bad.start_point[1] + 1
        if bad.is_missing:
            message = f"missing `{bad.type}`"
        else:
            snippet = source_bytes[bad.start_byte : bad.end_byte].decode("utf-8", errors="replace")
            message = f"unexpected `{' '.join(snippet.split())[:40]}`"
        raise ParseError(file_path, row, column, message)

    unit = SourceUnit(source=source_bytes, tree=tree, path=file_path)
    unit.functions = collect_functions(unit)
    return unit


def read_source_file(file_path: str | Path) -> str:
    """Read a Rust file, refusing files larger than MAX_FILE_SIZE."""
    file_path = Path(file_path)
    file_size = file_path.stat().st_size
    if file_size > MAX_FILE_SIZE:
        raise FileTooLargeError(file_path, file_size, MAX_FILE_SIZE)

    data = file_path.read_bytes()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning(f"{file_path} is not valid UTF-8, decoding with replacement")
        return data.decode("utf-8", errors="replace")


def parse_file(file_path: str | Path) -> SourceUnit:
    """Read and parse a Rust file."""
    file_path = Path(file_path)
    return parse_source(read_source_file(file_path), file_path)


# =============================================================================
# Function item discovery
# =============================================================================


def _attribute_path(unit: SourceUnit, attr_item) -> tuple[str, str]:
    """Return (path, arguments) of an attribute item like `#[cfg(test)]`."""
    for child in attr_item.named_children:
        if child.type != "attribute":
            continue
        if not child.named_children:
            return unit.text(child), ""
        path = unit.text(child.named_children[0])
        arguments = child.child_by_field_name("arguments")
        args = "".join(unit.text(arguments).split()) if arguments is not None else ""
        return path, args
    return "", ""


def _is_test_marker(unit: SourceUnit, attrs: list) -> bool:
    """`#[test]`, `#[tokio::test]`, `#[async_std::test]`, ..."""
    for attr in attrs:
        path, _ = _attribute_path(unit, attr)
        if path == "test" or path.endswith("::test"):
            return True
    return False


def _is_cfg_test(unit: SourceUnit, attrs: list) -> bool:
    for attr in attrs:
        path, args = _attribute_path(unit, attr)
        if path == "cfg" and args == "(test)":
            return True
    return False


def collect_functions(unit: SourceUnit) -> list[FunctionItem]:
    """Find every function with a body, in source order.

    Free functions, methods of `impl` and `trait` blocks, functions in inline
    modules and functions nested inside other function bodies are all
    reported. Names are qualified with the enclosing module / type / function.
    The tree is walked with an explicit stack, so deeply nested code does not
    hit the interpreter's recursion limit.
    """
    items: list[FunctionItem] = []
    stack = [(unit.tree.root_node, [], False)]
    while stack:
        node, scope, in_test = stack.pop()
        nested = _scan_items(unit, node, scope, in_test, items)
        stack.extend(reversed(nested))
    items.sort(key=lambda item: item.body.start_byte)
    return items


def _scan_items(unit: SourceUnit, node, scope: list[str], in_test: bool, items: list) -> list[tuple]:
    """Record the functions among node's children; return the nodes to descend into."""
    nested = []
    attrs = []
    for child in node.children:
        if child.type == "attribute_item":
            attrs.append(child)
            continue
        if child.type in ("line_comment", "block_comment", "inner_attribute_item"):
            continue

        is_test = in_test or _is_test_marker(unit, attrs)
        cfg_test = in_test or _is_cfg_test(unit, attrs)
        attrs = []

        if child.type == "function_item":
            name_node = child.child_by_field_name("name")
            body = child.child_by_field_name("body")
            if name_node is None or body is None:
                continue
            name = unit.text(name_node)
            items.append(
                FunctionItem(
                    name="::".join(scope + [name]),
                    is_test=is_test or cfg_test,
                    body=body,
                    line=child.start_point[0] + 1,
                )
            )
            # helpers declared inside a test are test code too
            nested.append((body, scope + [name], is_test or cfg_test))
        elif child.type in ("mod_item", "trait_item"):
            name_node = child.child_by_field_name("name")
            body = child.child_by_field_name("body")
            if body is not None:
                prefix = [unit.text(name_node)] if name_node is not None else []
                nested.append((body, scope + prefix, cfg_test))
        elif child.type == "impl_item":
            type_node = child.child_by_field_name("type")
            body = child.child_by_field_name("body")
            if body is not None:
                prefix = [unit.text(type_node)] if type_node is not None else []
                nested.append((body, scope + prefix, cfg_test))
        elif child.named_child_count:
            nested.append((child, scope, in_test))
    return nested
