"""Run configuration for cargo-graph.

Limits that guard the parser are read from the environment once at import,
everything else travels in a GraphConfig built by the CLI (or by callers of
the library API).
"""

import os
from dataclasses import dataclass

# tree-sitter memory usage is ~10-200x file size; override with
# CARGO_GRAPH_MAX_FILE_SIZE
DEFAULT_MAX_FILE_SIZE = 5_000_000  # 5MB
MAX_FILE_SIZE = int(os.environ.get("CARGO_GRAPH_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE))

SUPPORTED_STYLES = ("default", "c-style")
SUPPORTED_FORMATS = ("dot", "svg", "png")

DEFAULT_STYLE = "c-style"
DEFAULT_RENDER_FORMAT = "svg"

# Name of the per-crate ignore file (gitignore syntax)
IGNORE_FILE_NAME = ".cargographignore"


@dataclass
class GraphConfig:
    """Options for one cargo-graph run."""

    include_tests: bool = False
    style: str = DEFAULT_STYLE
    output_format: str | None = None  # None: infer from output path

    def __post_init__(self):
        if self.style not in SUPPORTED_STYLES:
            raise ValueError(f"Unsupported style: {self.style}")
        if self.output_format is not None and self.output_format not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported output format: {self.output_format}")
