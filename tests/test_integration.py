"""
Integration tests for cargo-bitbake.
Tests recipe generation against real project layouts on disk.
"""

import hashlib
from pathlib import Path
from unittest.mock import patch

import pytest

from cargo_bitbake.error_handling import LockfileError, ManifestError, MetadataError, RepositoryError
from cargo_bitbake.git import ProjectRepo
from cargo_bitbake.package_info import PackageInfo
from cargo_bitbake.recipe import RecipeOptions, generate_recipe
from conftest import CRATES_IO_INDEX, DEMO_LOCKFILE, GIT_COMMIT

WORKSPACE_MANIFEST = """\
[workspace]
members = ["crates/demo"]

[workspace.package]
version = "2.3.4"
license = "MIT/Apache-2.0"
repository = "https://github.com/example/workspace"
"""

MEMBER_MANIFEST = """\
[package]
name = "demo"
version = { workspace = true }
license = { workspace = true }
repository = { workspace = true }
description = "Workspace member"
"""


def _tagged(path):
    return ProjectRepo(
        uri="git://github.com/example/demo.git;protocol=https;nobranch=1",
        rev=GIT_COMMIT,
        tag=True,
    )


class TestWorkspaceMembers:
    """Test packages living below a workspace root."""

    @pytest.fixture
    def member_manifest(self, write_project):
        write_project(manifest=WORKSPACE_MANIFEST, lockfile=DEMO_LOCKFILE, files={}, directory="ws")
        return write_project(
            manifest=MEMBER_MANIFEST,
            lockfile=None,
            files={"LICENSE-MIT": "mit", "LICENSE-APACHE": "apache"},
            directory="ws/crates/demo",
        )

    def test_package_info(self, member_manifest, tmp_path):
        """Test workspace inheritance and the relative directory."""
        info = PackageInfo.load(member_manifest)

        metadata = info.package()
        assert metadata.version == "2.3.4"
        assert metadata.license == "MIT/Apache-2.0"
        assert info.workspace_root == (tmp_path / "ws").resolve()
        assert info.rel_dir() == Path("crates/demo")
        assert info.lockfile_path() == (tmp_path / "ws" / "Cargo.lock").resolve()

    def test_member_recipe(self, member_manifest, diagnostics, isolated_environment):
        recipe_path = generate_recipe(RecipeOptions(manifest_path=member_manifest), diagnostics, _tagged)

        assert recipe_path == Path("demo_2.3.4.bb")
        content = (isolated_environment / recipe_path).read_text()
        assert 'CARGO_SRC_DIR = "crates/demo"' in content
        assert f"    file://crates/demo/LICENSE-MIT;md5={hashlib.md5(b'mit').hexdigest()} \\\n" in content
        assert f"    file://crates/demo/LICENSE-APACHE;md5={hashlib.md5(b'apache').hexdigest()} \\\n" in content
        assert 'LICENSE = "MIT | Apache-2.0"' in content
        assert 'HOMEPAGE = "https://github.com/example/workspace"' in content
        assert "PV:append" not in content

    def test_virtual_manifest_is_rejected(self, member_manifest, tmp_path, diagnostics):
        with pytest.raises(ManifestError):
            generate_recipe(RecipeOptions(manifest_path=tmp_path / "ws" / "Cargo.toml"), diagnostics, _tagged)

    def test_missing_workspace_value(self, write_project, diagnostics):
        write_project(manifest="[workspace]\nmembers = [\"crates/demo\"]\n", files={}, directory="ws")
        manifest = write_project(manifest=MEMBER_MANIFEST, lockfile=None, directory="ws/crates/demo")

        with pytest.raises(ManifestError):
            PackageInfo.load(manifest).package()


class TestMetadataHandling:
    """Test recipes for incomplete manifests."""

    def test_missing_homepage_and_repository(self, write_project, diagnostics, isolated_environment):
        """Test that generation fails without writing anything."""
        manifest = write_project(manifest='[package]\nname = "demo"\nversion = "0.1.0"\nlicense = "MIT"\n')

        with pytest.raises(MetadataError):
            generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

        assert list(isolated_environment.iterdir()) == []

    def test_closed_license(self, write_project, diagnostics, isolated_environment):
        manifest = write_project(
            manifest='[package]\nname = "demo"\nversion = "0.1.0"\nhomepage = "https://example.com"\n',
            files={},
        )

        generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

        content = (isolated_environment / "demo_0.1.0.bb").read_text()
        assert 'LICENSE = "CLOSED"' in content
        assert 'LIC_FILES_CHKSUM = " \\\n    "\n' in content
        assert "Assuming CLOSED license" in diagnostics.warnings

    def test_license_file_field(self, write_project, diagnostics, isolated_environment):
        manifest = write_project(
            manifest=(
                '[package]\nname = "demo"\nversion = "0.1.0"\n'
                'homepage = "https://example.com"\nlicense-file = "docs/COPYING"\n'
            ),
            files={"docs/COPYING": "terms"},
        )

        generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

        content = (isolated_environment / "demo_0.1.0.bb").read_text()
        assert f"    file://docs/COPYING;md5={hashlib.md5(b'terms').hexdigest()} \\\n" in content
        assert 'LICENSE = "docs/COPYING"' in content

    def test_underscore_warning(self, write_project, diagnostics, isolated_environment):
        manifest = write_project(
            manifest=(
                '[package]\nname = "demo_crate"\nversion = "0.1.0"\n'
                'homepage = "https://example.com"\nlicense = "MIT"\n'
            ),
        )

        generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

        assert "Package name contains an underscore" in diagnostics.warnings
        assert (isolated_environment / "demo_crate_0.1.0.bb").is_file()


class TestProjectRepository:
    """Test how the project's checkout shapes the recipe."""

    def test_introspection_failure(self, demo_manifest, diagnostics, isolated_environment):
        """Test that a project outside any checkout still gets a recipe."""

        def failing(path):
            raise RepositoryError("Unable to determine git repo for this project")

        generate_recipe(RecipeOptions(manifest_path=demo_manifest), diagnostics, failing)

        content = (isolated_environment / "demo_0.1.0.bb").read_text()
        assert 'SRC_URI += ""' in content
        assert 'SRCREV = ""' in content
        assert "AUTOINC" not in content
        assert "Unable to determine git repo for this project" in diagnostics.warnings

    def test_default_introspection(self, demo_manifest, diagnostics, untagged_repo):
        with patch("cargo_bitbake.git.ProjectRepo.discover", return_value=untagged_repo) as discover:
            generate_recipe(RecipeOptions(manifest_path=demo_manifest), diagnostics)

        discover.assert_called_once_with(demo_manifest.parent.resolve())


class TestLockfiles:
    """Test the supported Cargo.lock layouts."""

    def test_version_1_metadata_checksums(self, write_project, diagnostics, isolated_environment):
        lockfile = f"""\
        [[package]]
        name = "demo"
        version = "0.1.0"

        [[package]]
        name = "libc"
        version = "0.2.50"
        source = "{CRATES_IO_INDEX}"

        [metadata]
        "checksum libc 0.2.50 ({CRATES_IO_INDEX})" = "feedface"
        """
        manifest = write_project(lockfile=lockfile)

        generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

        content = (isolated_environment / "demo_0.1.0.bb").read_text()
        assert "    crate-archive://crates.io/libc/0.2.50;sha256sum=feedface;libc-0.2.50.sha256sum=feedface \\\n" in content

    def test_sparse_and_alternate_registries(self, write_project, diagnostics, isolated_environment):
        lockfile = """\
        version = 3

        [[package]]
        name = "demo"
        version = "0.1.0"

        [[package]]
        name = "anyhow"
        version = "1.0.0"
        source = "sparse+https://index.crates.io/"

        [[package]]
        name = "internal"
        version = "0.3.0"
        source = "registry+https://registry.example.com/index"
        """
        manifest = write_project(lockfile=lockfile)

        generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

        content = (isolated_environment / "demo_0.1.0.bb").read_text()
        assert "    crate-archive://crates.io/anyhow/1.0.0 \\\n" in content
        assert "    crate-archive://registry.example.com/internal/0.3.0 \\\n" in content

    def test_missing_lockfile_runs_cargo(self, write_project, diagnostics):
        """Test that a missing Cargo.lock is generated, and cargo failures are fatal."""
        manifest = write_project(lockfile=None)

        with patch("cargo_bitbake.package_info.subprocess.run", side_effect=FileNotFoundError("cargo")) as run:
            with pytest.raises(LockfileError):
                generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

        command = run.call_args[0][0]
        assert command[:2] == ["cargo", "generate-lockfile"]

    def test_manifest_with_invalid_utf8(self, write_project, diagnostics):
        """Test that undecodable bytes surface as a manifest error."""
        manifest = write_project()
        manifest.write_bytes(b'[package]\nname = "demo"\nversion = "0.1.0"\ndescription = "\xff\xfe"\n')

        with pytest.raises(ManifestError, match="invalid UTF-8"):
            generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

    def test_lockfile_with_invalid_utf8(self, write_project, diagnostics):
        manifest = write_project()
        (manifest.parent / "Cargo.lock").write_bytes(b'version = 3\n\n[[package]]\nname = "\xff"\n')

        with pytest.raises(LockfileError, match="invalid UTF-8"):
            generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)

    def test_invalid_lockfile(self, write_project, diagnostics):
        manifest = write_project(lockfile="[[package]\nname =")

        with pytest.raises(LockfileError):
            generate_recipe(RecipeOptions(manifest_path=manifest), diagnostics, _tagged)
