"""
Shared fixtures for cargo-bitbake tests.
Builds throwaway Cargo projects and isolates configuration lookup.
"""

import io
import logging
import textwrap
from pathlib import Path

import pytest
from rich.console import Console

from cargo_bitbake.cli_config import reset_config
from cargo_bitbake.error_handling import Diagnostics
from cargo_bitbake.git import ProjectRepo

CRATES_IO_INDEX = "registry+https://github.com/rust-lang/crates.io-index"
GIT_COMMIT = "0123456789abcdef0123456789abcdef01234567"

DEMO_MANIFEST = """\
[package]
name = "demo"
version = "0.1.0"
description = "A demo crate"
homepage = "https://example.com/demo"
license = "MIT"
"""

DEMO_LOCKFILE = f"""\
version = 3

[[package]]
name = "demo"
version = "0.1.0"
dependencies = ["serde", "gitdep", "localdep"]

[[package]]
name = "gitdep"
version = "0.2.0"
source = "git+https://github.com/example/gitdep?branch=master#{GIT_COMMIT}"

[[package]]
name = "localdep"
version = "0.0.1"

[[package]]
name = "serde"
version = "1.0.100"
source = "{CRATES_IO_INDEX}"
checksum = "abc123"
"""


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Run every test from an empty directory with no config file or env overrides."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in (
        "CARGO_BITBAKE_REPRODUCIBLE",
        "CARGO_BITBAKE_NO_CHECKSUMS",
        "CARGO_BITBAKE_LEGACY_OVERRIDES",
        "CARGO_BITBAKE_OUTPUT_DIR",
        "CARGO_BITBAKE_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield workdir
    reset_config()


@pytest.fixture(autouse=True)
def fresh_error_logger():
    """Drop the error log handler after each test; CliRunner closes the stream it was bound to."""
    yield
    logger = logging.getLogger("cargo_bitbake")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


@pytest.fixture
def write_project(tmp_path):
    """Factory writing a Cargo project and returning its manifest path."""

    def _write(
        manifest: str = DEMO_MANIFEST,
        lockfile: str = DEMO_LOCKFILE,
        files: dict = None,
        directory: str = "demo",
    ) -> Path:
        root = tmp_path / directory
        root.mkdir(parents=True, exist_ok=True)
        (root / "Cargo.toml").write_text(textwrap.dedent(manifest))
        if lockfile is not None:
            (root / "Cargo.lock").write_text(textwrap.dedent(lockfile))
        for name, content in (files if files is not None else {"LICENSE": "MIT License\n"}).items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return root / "Cargo.toml"

    return _write


@pytest.fixture
def demo_manifest(write_project):
    """The default demo project."""
    return write_project()


@pytest.fixture
def untagged_repo():
    """Checkout state of a project that is not at a tag."""
    return ProjectRepo(
        uri="git://github.com/example/demo.git;protocol=https;branch=main",
        branch="main",
        rev="0123456789abcdef",
        tag=False,
    )


@pytest.fixture
def diagnostics():
    """Diagnostics context printing into a buffer."""
    return Diagnostics(console=Console(file=io.StringIO(), width=200))
