"""Resolved dependency data model shared by every translation step."""

from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Tag:
    """Git reference pinned to a tag."""

    name: str

    def __str__(self) -> str:
        return f"tag={self.name}"


@dataclass(frozen=True)
class Rev:
    """Git reference pinned to a commit id, full or abbreviated."""

    rev: str

    def __str__(self) -> str:
        return f"rev={self.rev}"


@dataclass(frozen=True)
class Branch:
    """Git reference following a named branch."""

    name: str

    def __str__(self) -> str:
        return f"branch={self.name}"


@dataclass(frozen=True)
class DefaultBranch:
    """Git reference with no explicit tag, rev or branch."""

    def __str__(self) -> str:
        return "default branch"


GitReference = Union[Tag, Rev, Branch, DefaultBranch]


@dataclass(frozen=True)
class RegistrySource:
    """Package downloaded from a crate registry."""

    host: str


@dataclass(frozen=True)
class PathSource:
    """Package living inside the tree being packaged."""


@dataclass(frozen=True)
class GitSource:
    """Package checked out from a git repository."""

    url: str
    reference: GitReference
    precise: Optional[str] = None


@dataclass(frozen=True)
class OtherSource:
    """Package with a source locator that is none of the above."""

    url: str


SourceDescriptor = Union[RegistrySource, PathSource, GitSource, OtherSource]


def source_kind(source: SourceDescriptor) -> str:
    """Short label of a source descriptor, used in logs."""
    if isinstance(source, RegistrySource):
        return "registry"
    if isinstance(source, PathSource):
        return "path"
    if isinstance(source, GitSource):
        return "git"
    if isinstance(source, OtherSource):
        return "other"
    raise TypeError(f"Unknown source descriptor: {source!r}")


@dataclass(frozen=True)
class ResolvedPackage:
    """One package of the resolved dependency graph."""

    name: str
    version: str
    source: SourceDescriptor
    checksum: Optional[str] = None
    locator: Optional[str] = None

    @property
    def identity(self) -> Tuple[str, str, Optional[str]]:
        """Name, version and raw source locator; unique within one resolve."""
        return (self.name, self.version, self.locator)
