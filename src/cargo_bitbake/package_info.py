"""
Cargo project state for the package a recipe is generated for.

Reads the package manifest (Cargo.toml) and the resolved dependency graph
recorded in Cargo.lock, and decodes every lockfile source locator into a
closed source descriptor.
"""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit, urlunsplit

import toml

from .dependency import (
    Branch,
    DefaultBranch,
    GitReference,
    GitSource,
    OtherSource,
    PathSource,
    RegistrySource,
    ResolvedPackage,
    Rev,
    SourceDescriptor,
    Tag,
)
from .error_handling import LockfileError, ManifestError

CRATES_IO_HOST = "crates.io"

CRATES_IO_INDEXES = {
    "https://github.com/rust-lang/crates.io-index",
    "https://index.crates.io",
}

MANIFEST_NAME = "Cargo.toml"
LOCKFILE_NAME = "Cargo.lock"

PackageKey = Tuple[str, str, Optional[str]]


def _read_toml(path: Path, error_cls) -> Dict[str, Any]:
    """
    Read and decode a TOML file.

    Args:
        path: File to read
        error_cls: Exception class raised on failure

    Returns:
        Dict[str, Any]: Decoded document

    Raises:
        error_cls: If the file cannot be read or is not valid TOML
    """
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise error_cls(f"{path} contains invalid UTF-8 characters") from e
    except OSError as e:
        raise error_cls(f"Unable to read {path}: {e}") from e

    try:
        return toml.loads(content)
    except toml.TomlDecodeError as e:
        raise error_cls(f"Invalid TOML format in {path}: {e}") from e


def find_root_manifest(start: Optional[Path] = None) -> Path:
    """
    Locate the Cargo.toml governing ``start``.

    ``start`` may be a manifest file or a directory; directories are searched
    upward until a Cargo.toml is found.

    Raises:
        ManifestError: If no manifest exists
    """
    start = Path(start) if start is not None else Path.cwd()

    if start.is_file():
        if start.name != MANIFEST_NAME:
            raise ManifestError(f"The manifest-path must be a path to a {MANIFEST_NAME} file: {start}")
        return start.resolve()

    if not start.exists():
        raise ManifestError(f"manifest path `{start}` does not exist")

    for directory in [start.resolve(), *start.resolve().parents]:
        candidate = directory / MANIFEST_NAME
        if candidate.is_file():
            return candidate

    raise ManifestError(f"could not find `{MANIFEST_NAME}` in `{start}` or any parent directory")


def find_workspace_root(manifest: Path) -> Path:
    """Directory of the nearest manifest (itself included) declaring a workspace."""
    for directory in [manifest.parent, *manifest.parent.parents]:
        candidate = directory / MANIFEST_NAME
        if not candidate.is_file():
            continue
        try:
            data = _read_toml(candidate, ManifestError)
        except ManifestError:
            if candidate == manifest:
                raise
            continue
        if "workspace" in data:
            return directory
    return manifest.parent


def parse_git_locator(locator: str) -> GitSource:
    """
    Decode a ``git+`` lockfile locator.

    ``git+https://host/repo?branch=dev#<commit>`` becomes a git source whose
    reference is the query parameter and whose precise commit is the fragment.
    """
    parts = urlsplit(locator[len("git+"):])
    query = parse_qs(parts.query)
    precise = parts.fragment or None

    reference: GitReference
    if "tag" in query:
        reference = Tag(query["tag"][0])
    elif "rev" in query:
        reference = Rev(query["rev"][0])
    elif "branch" in query:
        reference = Branch(query["branch"][0])
    else:
        reference = DefaultBranch()

    url = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    return GitSource(url=url, reference=reference, precise=precise)


def registry_host(index_url: str) -> str:
    """Host a registry index URL publishes crates under."""
    if index_url.rstrip("/") in CRATES_IO_INDEXES:
        return CRATES_IO_HOST
    return urlsplit(index_url).hostname or index_url


def parse_source(locator: Optional[str]) -> SourceDescriptor:
    """
    Classify a Cargo.lock ``source`` value.

    Args:
        locator: The raw ``source`` string, or None when the lockfile has none

    Returns:
        SourceDescriptor: The decoded source
    """
    if locator is None:
        return PathSource()
    if locator.startswith("registry+"):
        return RegistrySource(host=registry_host(locator[len("registry+"):]))
    if locator.startswith("sparse+"):
        return RegistrySource(host=registry_host(locator[len("sparse+"):]))
    if locator.startswith("git+"):
        return parse_git_locator(locator)
    return OtherSource(url=locator)


@dataclass(frozen=True)
class PackageMetadata:
    """Manifest fields of the package being packaged."""

    name: str
    version: str
    description: Optional[str] = None
    homepage: Optional[str] = None
    repository: Optional[str] = None
    license: Optional[str] = None
    license_file: Optional[str] = None


@dataclass(frozen=True)
class Resolve:
    """Snapshot of a resolved dependency graph."""

    packages: Tuple[ResolvedPackage, ...] = ()
    checksums: Dict[PackageKey, str] = field(default_factory=dict)
    identities: FrozenSet[PackageKey] = frozenset()

    def __iter__(self) -> Iterator[ResolvedPackage]:
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def checksum(self, package: ResolvedPackage) -> Optional[str]:
        """
        Content digest recorded for a package.

        Raises:
            KeyError: If the package is not part of this resolve
        """
        if package.identity not in self.identities:
            raise KeyError(f"{package.name} {package.version} is not part of the resolve")
        if package.checksum:
            return package.checksum
        return self.checksums.get(package.identity)


def parse_lockfile(data: Dict[str, Any]) -> Resolve:
    """
    Build a resolve snapshot from a decoded Cargo.lock.

    Handles both the per-package ``checksum`` key of lockfile v2 and later and
    the ``[metadata]`` checksum table of lockfile v1.
    """
    checksums: Dict[PackageKey, str] = {}
    for key, value in (data.get("metadata") or {}).items():
        if not key.startswith("checksum ") or value == "<none>":
            continue
        fields = key[len("checksum "):].split(" ", 2)
        if len(fields) == 3:
            name, version, source = fields
            checksums[(name, version, source.strip("()"))] = value

    packages: List[ResolvedPackage] = []
    for entry in data.get("package", []):
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name", "")).strip()
        version = str(entry.get("version", "")).strip()
        if not name:
            continue
        locator = entry.get("source")
        packages.append(
            ResolvedPackage(
                name=name,
                version=version,
                source=parse_source(locator),
                checksum=entry.get("checksum"),
                locator=locator,
            )
        )

    return Resolve(
        packages=tuple(packages),
        checksums=checksums,
        identities=frozenset(package.identity for package in packages),
    )


class PackageInfo:
    """Represents the package we are trying to generate a recipe for."""

    def __init__(self, current_manifest: Path, workspace_root: Path):
        self.current_manifest = current_manifest
        self.workspace_root = workspace_root
        self._manifest = _read_toml(current_manifest, ManifestError)
        workspace_manifest = workspace_root / MANIFEST_NAME
        if workspace_manifest == current_manifest or not workspace_manifest.is_file():
            self._workspace = self._manifest.get("workspace", {})
        else:
            self._workspace = _read_toml(workspace_manifest, ManifestError).get("workspace", {})

    @classmethod
    def load(cls, manifest_path: Optional[Path] = None) -> "PackageInfo":
        """
        Create package info from ``manifest_path``, defaulting to the
        current directory.
        """
        root = find_root_manifest(manifest_path)
        return cls(root, find_workspace_root(root))

    @property
    def crate_root(self) -> Path:
        """Directory holding the package's Cargo.toml."""
        return self.current_manifest.parent

    def _field(self, package: Dict[str, Any], key: str) -> Optional[str]:
        value = package.get(key)
        if isinstance(value, dict) and value.get("workspace") is True:
            inherited = self._workspace.get("package", {}).get(key)
            if inherited is None:
                raise ManifestError(
                    f"`{key}` is inherited from the workspace but "
                    f"`workspace.package.{key}` is not set"
                )
            value = inherited
        if value is None:
            return None
        return str(value)

    def package(self) -> PackageMetadata:
        """
        Provides the current package we are working with.

        Raises:
            ManifestError: If the manifest is virtual or lacks a name
        """
        package = self._manifest.get("package")
        if not isinstance(package, dict):
            raise ManifestError(
                f"{self.current_manifest} is a virtual manifest, "
                "point --manifest-path at a member package"
            )
        name = self._field(package, "name")
        if not name:
            raise ManifestError(f"No package.name set in {self.current_manifest}")

        return PackageMetadata(
            name=name,
            version=self._field(package, "version") or "0.0.0",
            description=self._field(package, "description"),
            homepage=self._field(package, "homepage"),
            repository=self._field(package, "repository"),
            license=self._field(package, "license"),
            license_file=self._field(package, "license-file"),
        )

    def lockfile_path(self) -> Path:
        return self.workspace_root / LOCKFILE_NAME

    def generate_lockfile(self) -> None:
        """
        Run ``cargo generate-lockfile`` for the workspace.

        Raises:
            LockfileError: If cargo is unavailable or fails
        """
        command = [
            "cargo",
            "generate-lockfile",
            "--manifest-path",
            str(self.workspace_root / MANIFEST_NAME),
        ]
        try:
            result = subprocess.run(command, capture_output=True, text=True, check=False)
        except OSError as e:
            raise LockfileError(f"No {LOCKFILE_NAME} found and cargo could not be run: {e}") from e
        if result.returncode != 0:
            raise LockfileError(
                f"cargo generate-lockfile failed: {result.stderr.strip() or result.returncode}"
            )

    def resolve(self) -> Resolve:
        """
        Resolve the packages necessary for the workspace, generating a
        Cargo.lock when none exists.
        """
        lockfile = self.lockfile_path()
        if not lockfile.is_file():
            self.generate_lockfile()
        return parse_lockfile(_read_toml(lockfile, LockfileError))

    def rel_dir(self) -> Path:
        """
        Packages that are part of a workspace live in a subdirectory of the
        workspace root; this is that relative directory.
        """
        try:
            return self.crate_root.relative_to(self.workspace_root)
        except ValueError as e:
            raise ManifestError(
                f"Unable to determine if {MANIFEST_NAME} is in a sub directory of {self.workspace_root}"
            ) from e
