"""
Command line interface: `cargo-graph [graph] [PATH] [options]`.

Also works as a cargo subcommand (`cargo graph ...`), in which case cargo
passes the subcommand name as the first argument.
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .aggregator import AggregateResult, analyze_file
from .config import (
    DEFAULT_RENDER_FORMAT,
    DEFAULT_STYLE,
    SUPPORTED_FORMATS,
    SUPPORTED_STYLES,
    GraphConfig,
)
from .discovery import CrateNotFoundError, find_crate_root, find_rust_files, module_name
from .exporter import RenderError, render, to_dot, write_output
from .rust_syntax import FileTooLargeError, ParseError

logger = logging.getLogger("cargo_graph")


class InputError(Exception):
    """Raised when the input cannot be located or nothing could be analyzed."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cargo-graph",
        description="Draw control flow graphs of Rust functions with Graphviz.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        help="Rust source file or directory (default: the crate containing the current directory)",
    )
    parser.add_argument("-o", "--output", type=Path, help="Output file (default: DOT on standard output)")
    parser.add_argument(
        "-f",
        "--format",
        choices=SUPPORTED_FORMATS,
        help="Output format (default: from the output suffix, else svg)",
    )
    parser.add_argument("-s", "--style", choices=SUPPORTED_STYLES, default=DEFAULT_STYLE, help="Flowchart style")
    parser.add_argument("--include-tests", action="store_true", help="Also graph #[test] functions")
    parser.add_argument("--no-ignore", action="store_true", help="Do not apply .cargographignore patterns")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def collect_results(path: Path | None, config: GraphConfig, respect_ignore: bool = True) -> tuple[list[AggregateResult], list[str]]:
    """Analyze a single file, a directory, or the current crate.

    A single file that fails to parse, or holds no function to graph, is
    fatal. When scanning a directory, files that fail are skipped with a
    warning and only an empty result is an error.
    """
    if path is not None and path.is_file():
        result = analyze_file(path, config)
        if not result.graphs and not result.errors:
            raise InputError(f"No functions to graph in {path}")
        return [result], [path.stem]

    if path is None:
        root = find_crate_root()
    elif path.is_dir():
        root = path
    else:
        raise InputError(f"Input path does not exist: {path}")

    results, names = [], []
    for file_path in find_rust_files(root, respect_ignore=respect_ignore):
        try:
            result = analyze_file(file_path, config)
        except (ParseError, FileTooLargeError, OSError) as e:
            logger.warning(f"Failed to analyze {file_path}: {e}")
            continue
        if result.graphs or result.errors:
            results.append(result)
            names.append(module_name(file_path, root))

    if not results:
        raise InputError(f"No Rust files found under {root} or all analyses failed")
    return results, names


def _output_format(args) -> str:
    if args.format:
        return args.format
    if args.output is not None:
        suffix = args.output.suffix.lstrip(".").lower()
        if suffix in SUPPORTED_FORMATS:
            return suffix
        return DEFAULT_RENDER_FORMAT
    return "dot"


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0] == "graph":
        argv = argv[1:]
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    config = GraphConfig(include_tests=args.include_tests, style=args.style, output_format=_output_format(args))

    try:
        results, names = collect_results(args.path, config, respect_ignore=not args.no_ignore)
    except (InputError, CrateNotFoundError, ParseError, FileTooLargeError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: cannot read {args.path}: {e}", file=sys.stderr)
        return 1

    for result in results:
        for error in result.errors:
            print(f"warning: {error.function}: {error.reason}", file=sys.stderr)

    dot_source = to_dot(results, style=config.style, module_names=names)

    try:
        if args.output is None:
            if config.output_format == "dot":
                sys.stdout.write(dot_source)
            else:
                sys.stdout.buffer.write(render(dot_source, config.output_format))
        else:
            write_output(dot_source, args.output, config.output_format)
            print(f"Flow chart saved to: {args.output}", file=sys.stderr)
    except RenderError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: cannot write {args.output}: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
