"""
Translation of resolved dependencies into BitBake SRC_URI entries.

Each dependency is classified by its source descriptor and rendered into one
SRC_URI line. Git dependencies additionally pin a revision and contribute
three side-variable lines. The results are folded into an immutable
accumulator so that ordering and per-dependency output stay independently
testable.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from .dependency import (
    Branch,
    DefaultBranch,
    GitSource,
    OtherSource,
    PathSource,
    RegistrySource,
    ResolvedPackage,
    Rev,
    Tag,
    source_kind,
)
from .error_handling import Diagnostics, RevisionError
from .git import git_to_yocto_git_url
from .structured_logging import log_dependency_translated

CRATE_SCHEME = "crate-archive"
AUTOREV = "${AUTOREV}"
DEFAULT_HISTORICAL_BRANCH = "master"
FULL_COMMIT_LENGTH = 40

LINE_INDENT = "    "
CONTINUATION = " \\\n"

ChecksumLookup = Callable[[ResolvedPackage], Optional[str]]


@dataclass(frozen=True)
class TranslationOptions:
    """Policy switches for one translation pass."""

    reproducible: bool = False
    checksums: bool = True


@dataclass(frozen=True)
class RecipeSourceEntry:
    """Output of translating one dependency."""

    name: str
    line: Optional[str] = None
    extras: Tuple[str, ...] = ()
    revision: Optional[str] = None


@dataclass(frozen=True)
class SourceUriAccumulator:
    """Formatted lines and side variables collected so far."""

    lines: Tuple[str, ...] = ()
    extras: Tuple[str, ...] = ()

    def add(self, entry: RecipeSourceEntry) -> "SourceUriAccumulator":
        """Return a new accumulator that also holds ``entry``."""
        lines = self.lines + (entry.line,) if entry.line is not None else self.lines
        return SourceUriAccumulator(lines=lines, extras=self.extras + entry.extras)

    def sorted_lines(self) -> Tuple[str, ...]:
        return tuple(sorted(set(self.lines)))

    def src_uri(self) -> str:
        """Sorted, deduplicated SRC_URI block with continuation markers."""
        return "".join(f"{LINE_INDENT}{line}{CONTINUATION}" for line in self.sorted_lines())

    def src_uri_extras(self) -> str:
        """Side variables in dependency encounter order."""
        return "\n".join(self.extras)


def checksum_annotation(package: ResolvedPackage, lookup: Optional[ChecksumLookup]) -> str:
    """
    Checksum suffix for a registry SRC_URI entry.

    A missing digest or a failed lookup yields an empty suffix.
    """
    if lookup is None:
        return ""
    try:
        digest = lookup(package)
    except LookupError:
        return ""
    if not digest:
        return ""
    return f";sha256sum={digest};{package.name}-{package.version}.sha256sum={digest}"


def resolve_git_revision(package: ResolvedPackage, source: GitSource, reproducible: bool) -> str:
    """
    Choose the revision a git dependency is pinned to.

    Args:
        package: The dependency
        source: Its git source descriptor
        reproducible: Prefer the commit locked in Cargo.lock over the
            requested reference

    Returns:
        str: A tag, a full commit id, a branch name or ``${AUTOREV}``

    Raises:
        RevisionError: If the reference is an abbreviated commit id and no
            locked commit is available
    """
    if reproducible and source.precise:
        return source.precise

    reference = source.reference
    if isinstance(reference, Tag):
        return reference.name
    if isinstance(reference, Rev):
        if len(reference.rev) == FULL_COMMIT_LENGTH:
            return reference.rev
        # abbreviated ids are not valid fetch targets
        if source.precise:
            return source.precise
        raise RevisionError(package.name, str(reference))
    if isinstance(reference, Branch):
        if reference.name == DEFAULT_HISTORICAL_BRANCH:
            return AUTOREV
        # other branches are pinned by name and can move between fetches
        return reference.name
    if isinstance(reference, DefaultBranch):
        return AUTOREV
    raise TypeError(f"Unknown git reference: {reference!r}")


def git_side_variables(name: str, revision: str) -> Tuple[str, str, str]:
    """SRCREV_FORMAT, SRCREV and cargo path lines for one git dependency."""
    return (
        f'SRCREV_FORMAT .= "_{name}"',
        f'SRCREV_{name} = "{revision}"',
        f'EXTRA_OECARGO_PATHS += "${{WORKDIR}}/{name}"',
    )


def translate_dependency(
    package: ResolvedPackage,
    options: TranslationOptions,
    checksum_lookup: Optional[ChecksumLookup] = None,
) -> RecipeSourceEntry:
    """
    Render one resolved dependency.

    Raises:
        RevisionError: For git dependencies without a fetchable revision
    """
    source = package.source

    if isinstance(source, RegistrySource):
        line = f"{CRATE_SCHEME}://{source.host}/{package.name}/{package.version}"
        if options.checksums:
            line += checksum_annotation(package, checksum_lookup)
        return RecipeSourceEntry(name=package.name, line=line)

    if isinstance(source, PathSource):
        return RecipeSourceEntry(name=package.name)

    if isinstance(source, GitSource):
        revision = resolve_git_revision(package, source, options.reproducible)
        return RecipeSourceEntry(
            name=package.name,
            line=git_to_yocto_git_url(source.url, package.name),
            extras=git_side_variables(package.name, revision),
            revision=revision,
        )

    if isinstance(source, OtherSource):
        return RecipeSourceEntry(name=package.name, line=source.url)

    raise TypeError(f"Unknown source descriptor: {source!r}")


def translate_dependencies(
    packages: Iterable[ResolvedPackage],
    self_name: str,
    options: TranslationOptions,
    checksum_lookup: Optional[ChecksumLookup] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> SourceUriAccumulator:
    """
    Fold every dependency except the packaged one into an accumulator.

    Args:
        packages: Resolved packages in resolver order
        self_name: Name of the package being packaged
        options: Translation policy
        checksum_lookup: Digest lookup for registry packages
        diagnostics: Diagnostics context for verbose output

    Returns:
        SourceUriAccumulator: All rendered lines and side variables

    Raises:
        RevisionError: On the first git dependency without a fetchable revision
    """
    accumulator = SourceUriAccumulator()
    for package in packages:
        if package.name == self_name:
            continue
        entry = translate_dependency(package, options, checksum_lookup)
        log_dependency_translated(package.name, package.version, source_kind(package.source), entry.revision)
        if diagnostics is not None:
            diagnostics.debug(f"{package.name} {package.version}: {entry.line or 'skipped (path)'}", level=2)
        accumulator = accumulator.add(entry)
    return accumulator
