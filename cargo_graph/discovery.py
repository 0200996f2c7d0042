"""Crate discovery and source file selection.

Finds the crate root (nearest Cargo.toml upward) and lists the Rust files to
graph. Files are filtered with gitignore-style patterns via pathspec:

1. .cargographignore in the crate root, if present
2. Default patterns otherwise (build output, tests, VCS metadata)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .config import IGNORE_FILE_NAME

if TYPE_CHECKING:
    from pathspec import PathSpec

logger = logging.getLogger(__name__)

# Default .cargographignore template
DEFAULT_TEMPLATE = """\
# cargo-graph ignore patterns (gitignore syntax)
# Docs: https://git-scm.com/docs/gitignore

# Build output
target/

# Integration tests, benches and examples are not part of the crate graph
tests/
benches/
examples/

# Version control
.git/
.hg/
.svn/
"""


class CrateNotFoundError(Exception):
    """Raised when no Cargo.toml exists in any parent directory."""
    def __init__(self, start: Path):
        self.start = start
        super().__init__(f"Could not find Cargo.toml in {start} or any parent directory")


def find_crate_root(start: str | Path | None = None) -> Path:
    """Return the nearest directory at or above start holding a Cargo.toml."""
    start_path = Path(start or Path.cwd()).resolve()
    if start_path.is_file():
        start_path = start_path.parent
    for directory in (start_path, *start_path.parents):
        if (directory / "Cargo.toml").is_file():
            return directory
    raise CrateNotFoundError(start_path)


def load_ignore_patterns(crate_root: str | Path) -> "PathSpec":
    """Load ignore patterns from .cargographignore, or the defaults.

    Args:
        crate_root: Root directory of the crate

    Returns:
        PathSpec matcher for checking if files should be ignored
    """
    import pathspec

    ignore_path = Path(crate_root) / IGNORE_FILE_NAME
    if ignore_path.exists():
        patterns = ignore_path.read_text().splitlines()
    else:
        patterns = DEFAULT_TEMPLATE.splitlines()
    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


def should_ignore(file_path: Path, crate_root: Path, spec: "PathSpec") -> bool:
    try:
        rel_path = file_path.relative_to(crate_root)
    except ValueError:
        # File is not under crate_root, use as-is
        rel_path = file_path
    return spec.match_file(rel_path.as_posix())


def find_rust_files(crate_root: str | Path, respect_ignore: bool = True) -> list[Path]:
    """List `.rs` files under crate_root in sorted order.

    Args:
        crate_root: Directory to scan
        respect_ignore: If False, skip pattern filtering

    Returns:
        Sorted list of Rust source files
    """
    root = Path(crate_root)
    files = sorted(p for p in root.rglob("*.rs") if p.is_file())
    if not respect_ignore:
        return files

    spec = load_ignore_patterns(root)
    kept = [f for f in files if not should_ignore(f, root, spec)]
    logger.debug(f"Found {len(kept)} Rust files under {root} ({len(files) - len(kept)} ignored)")
    return kept


def module_name(file_path: str | Path, crate_root: str | Path) -> str:
    """`src/passes/builder.rs` -> `src::passes::builder`."""
    file_path = Path(file_path)
    try:
        rel_path = file_path.relative_to(crate_root)
    except ValueError:
        return file_path.stem
    return "::".join(rel_path.with_suffix("").parts)
