"""Pytest configuration and fixtures."""

import pytest


@pytest.fixture
def analyze():
    """Parse Rust source and build its function graphs."""
    pytest.importorskip("tree_sitter_rust")
    from cargo_graph.aggregator import analyze_source
    from cargo_graph.config import GraphConfig

    def _analyze(source: str, include_tests: bool = False):
        return analyze_source(source, config=GraphConfig(include_tests=include_tests))

    return _analyze


@pytest.fixture
def rust_crate(tmp_path):
    """A small crate on disk: Cargo.toml, src/ and the usual noise."""
    (tmp_path / "Cargo.toml").write_text('[package]\nname = "demo"\nversion = "0.1.0"\n')
    src = tmp_path / "src"
    (src / "passes").mkdir(parents=True)
    (src / "main.rs").write_text(
        "fn main() {\n    let x = 1;\n    if x > 0 {\n        println!(\"pos\");\n    }\n}\n"
    )
    (src / "passes" / "builder.rs").write_text(
        "pub fn build(n: u32) -> u32 {\n    let mut i = 0;\n    while i < n {\n        i += 1;\n    }\n    i\n}\n"
    )
    (tmp_path / "target" / "debug").mkdir(parents=True)
    (tmp_path / "target" / "debug" / "build.rs").write_text("fn generated() {}\n")
    (tmp_path / "tests").mkdir()
    (tmp_path / "tests" / "it.rs").write_text("#[test]\nfn it_works() {}\n")
    return tmp_path
