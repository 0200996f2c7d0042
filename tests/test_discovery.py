"""Tests for crate root discovery and .cargographignore handling."""

import pytest

from cargo_graph.discovery import (
    CrateNotFoundError,
    find_crate_root,
    find_rust_files,
    load_ignore_patterns,
    module_name,
    should_ignore,
)


def test_find_crate_root_from_nested_directory(rust_crate):
    assert find_crate_root(rust_crate / "src" / "passes") == rust_crate.resolve()


def test_find_crate_root_from_file(rust_crate):
    assert find_crate_root(rust_crate / "src" / "main.rs") == rust_crate.resolve()


def test_find_crate_root_missing(tmp_path):
    lonely = tmp_path / "not_a_crate"
    lonely.mkdir()

    with pytest.raises(CrateNotFoundError) as excinfo:
        find_crate_root(lonely)

    assert "Cargo.toml" in str(excinfo.value)


def test_default_patterns_skip_build_output_and_tests(rust_crate):
    files = find_rust_files(rust_crate)

    assert [f.relative_to(rust_crate).as_posix() for f in files] == [
        "src/main.rs",
        "src/passes/builder.rs",
    ]


def test_no_ignore_lists_everything(rust_crate):
    files = find_rust_files(rust_crate, respect_ignore=False)

    assert [f.relative_to(rust_crate).as_posix() for f in files] == [
        "src/main.rs",
        "src/passes/builder.rs",
        "target/debug/build.rs",
        "tests/it.rs",
    ]


def test_custom_ignore_file_replaces_defaults(rust_crate):
    (rust_crate / ".cargographignore").write_text("# only skip passes\nsrc/passes/\n")

    files = find_rust_files(rust_crate)

    assert [f.relative_to(rust_crate).as_posix() for f in files] == [
        "src/main.rs",
        "target/debug/build.rs",
        "tests/it.rs",
    ]


def test_negated_pattern(rust_crate):
    (rust_crate / ".cargographignore").write_text("target/\ntests/*\n!tests/it.rs\n")

    spec = load_ignore_patterns(rust_crate)

    assert should_ignore(rust_crate / "target" / "debug" / "build.rs", rust_crate, spec)
    assert not should_ignore(rust_crate / "tests" / "it.rs", rust_crate, spec)
    assert not should_ignore(rust_crate / "src" / "main.rs", rust_crate, spec)


def test_module_name(rust_crate):
    assert module_name(rust_crate / "src" / "passes" / "builder.rs", rust_crate) == "src::passes::builder"
    assert module_name("/elsewhere/lib.rs", rust_crate) == "lib"
