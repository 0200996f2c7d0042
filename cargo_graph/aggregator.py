"""
Function aggregator: one merged control flow graph per function.

Runs walker -> builder -> merger for every function item of a parsed unit,
drops test functions unless asked to keep them, and records structural
errors per function (unresolved labels, bodies nested deeper than the
interpreter can follow) instead of failing the whole unit.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .block_merger import merge_blocks
from .cfg_builder import UnresolvedLabelError, build_cfg
from .config import GraphConfig
from .flow_graph import FunctionGraph
from .rust_syntax import SourceUnit, parse_file, parse_source
from .tree_walker import TreeWalker

logger = logging.getLogger(__name__)


@dataclass
class FunctionError:
    """A function whose graph could not be built."""

    function: str
    reason: str
    line: int = 0

    def __str__(self) -> str:
        return f"{self.function}: {self.reason}"


@dataclass
class AggregateResult:
    """Graphs of one source unit, in source order."""

    graphs: list[FunctionGraph] = field(default_factory=list)
    errors: list[FunctionError] = field(default_factory=list)
    skipped_tests: list[str] = field(default_factory=list)
    path: Path | None = None

    def graph(self, name: str) -> FunctionGraph:
        for graph in self.graphs:
            if graph.name == name:
                return graph
        raise KeyError(name)

    def to_dict(self) -> dict:
        d = {"functions": [g.to_dict() for g in self.graphs]}
        if self.path is not None:
            d["file"] = str(self.path)
        if self.errors:
            d["errors"] = [{"function": e.function, "reason": e.reason} for e in self.errors]
        return d


def build_function_graphs(unit: SourceUnit, include_tests: bool = False) -> AggregateResult:
    """Build the merged CFG of every function item in a parsed unit."""
    result = AggregateResult(path=unit.path)
    walker = TreeWalker(unit)

    for item in unit.functions:
        if item.is_test and not include_tests:
            logger.debug(f"Skipping test function {item.name}")
            result.skipped_tests.append(item.name)
            continue
        try:
            graph = build_cfg(walker.body(item.body), item.name, is_test=item.is_test, line=item.line)
        except UnresolvedLabelError as e:
            # reported to the user by the caller through result.errors
            logger.debug(f"Skipping {item.name} (line {item.line}): {e.reason}")
            result.errors.append(FunctionError(item.name, e.reason, item.line))
            continue
        except RecursionError:
            reason = "control flow is nested too deeply to graph"
            logger.debug(f"Skipping {item.name} (line {item.line}): {reason}")
            result.errors.append(FunctionError(item.name, reason, item.line))
            continue
        result.graphs.append(merge_blocks(graph))

    # collect_functions walks in source order already; keep it explicit
    result.graphs.sort(key=lambda g: g.line)
    return result


def analyze_source(source: str, path: Path | None = None, config: GraphConfig | None = None) -> AggregateResult:
    """Parse Rust source and build its function graphs."""
    config = config or GraphConfig()
    unit = parse_source(source, path)
    return build_function_graphs(unit, include_tests=config.include_tests)


def analyze_file(path: str | Path, config: GraphConfig | None = None) -> AggregateResult:
    """Parse a Rust file and build its function graphs."""
    config = config or GraphConfig()
    unit = parse_file(path)
    return build_function_graphs(unit, include_tests=config.include_tests)
