"""cargo-graph: control flow graphs of Rust functions."""

__version__ = "0.3.0"

from .aggregator import AggregateResult, FunctionError, analyze_file, analyze_source, build_function_graphs
from .block_merger import merge_blocks
from .cfg_builder import UnresolvedLabelError, build_cfg
from .config import GraphConfig
from .exporter import to_dot
from .flow_graph import CFGEdge, CFGNode, FunctionGraph
from .rust_syntax import ParseError, parse_source

__all__ = [
    "AggregateResult",
    "CFGEdge",
    "CFGNode",
    "FunctionError",
    "FunctionGraph",
    "GraphConfig",
    "ParseError",
    "UnresolvedLabelError",
    "analyze_file",
    "analyze_source",
    "build_cfg",
    "build_function_graphs",
    "merge_blocks",
    "parse_source",
    "to_dot",
]
