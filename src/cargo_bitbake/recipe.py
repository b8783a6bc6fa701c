"""
BitBake recipe assembly.

Combines the translated dependency sources, the project's own checkout
state and the manifest metadata into a ``<name>_<version>.bb`` file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple

from . import license as license_mod
from .error_handling import Diagnostics, ErrorCategory, MetadataError, RecipeWriteError, RepositoryError
from .git import ProjectRepo
from .package_info import PackageInfo, PackageMetadata
from .source_uri import TranslationOptions, translate_dependencies
from .structured_logging import log_generation_start, log_project_repo_defaulted, log_recipe_written

__version__ = "0.1.0"

RECIPE_EXTENSION = "bb"
AUTOINC_PREFIX_LENGTH = 10

BITBAKE_TEMPLATE = """\
# Auto-Generated by cargo-bitbake {cargo_bitbake_ver}
#
inherit cargo

# If this is git based prefer versioned ones if they exist
# DEFAULT_PREFERENCE = "-1"

# how to get {name} could be as easy as but default to a git checkout:
# SRC_URI += "crate-archive://crates.io/{name}/{version}"
SRC_URI += "{project_src_uri}"
SRCREV = "{project_src_rev}"
S = "${{WORKDIR}}/git"
CARGO_SRC_DIR = "{project_rel_dir}"
{git_srcpv}

# please note if you have entries that do not begin with crate-archive://
# you must change them to how that package can be fetched
SRC_URI += " \\
{src_uri}"

{src_uri_extras}

# FIXME: update generateme with the real MD5 of the license file
LIC_FILES_CHKSUM = " \\
{lic_files}"

SUMMARY = "{summary}"
HOMEPAGE = "{homepage}"
LICENSE = "{license}"

# includes this file if it exists but does not fail
# this is useful for anything you may want to override from
# what cargo-bitbake generates.
include {name}-${{PV}}.inc
include {name}.inc
"""


@dataclass(frozen=True)
class RecipeOptions:
    """Everything the command line controls about one generation run."""

    reproducible: bool = False
    checksums: bool = True
    legacy_overrides: bool = False
    manifest_path: Optional[Path] = None
    output_dir: Optional[Path] = None


@dataclass(frozen=True)
class OutputRecipe:
    """Values substituted into the recipe template."""

    name: str
    version: str
    summary: str
    homepage: str
    license: str
    lic_files: Tuple[str, ...]
    src_uri: str
    src_uri_extras: str
    git_srcpv: str
    project_rel_dir: str
    project_src_uri: str
    project_src_rev: str

    @property
    def filename(self) -> str:
        return f"{self.name}_{self.version}.{RECIPE_EXTENSION}"

    def render(self) -> str:
        return BITBAKE_TEMPLATE.format(
            name=self.name,
            version=self.version,
            summary=self.summary,
            homepage=self.homepage,
            license=self.license,
            lic_files="".join(f"    {line}" for line in self.lic_files),
            src_uri=self.src_uri,
            src_uri_extras=self.src_uri_extras,
            project_rel_dir=self.project_rel_dir,
            project_src_uri=self.project_src_uri,
            project_src_rev=self.project_src_rev,
            git_srcpv=self.git_srcpv,
            cargo_bitbake_ver=__version__,
        )


def version_stability_directive(project_repo: ProjectRepo, legacy_overrides: bool) -> str:
    """
    PV append directive for untagged checkouts.

    A tagged checkout already makes the version unique. Otherwise a commit
    prefix is folded into PV so that the sstate cache is invalidated when the
    commit changes.
    """
    if project_repo.tag or len(project_repo.rev) <= AUTOINC_PREFIX_LENGTH:
        return ""
    pv_append_key = "PV_append" if legacy_overrides else "PV:append"
    # ${SRCPV} cannot be used here, see meta-rust/meta-rust#136
    return f'{pv_append_key} = ".AUTOINC+{project_repo.rev[:AUTOINC_PREFIX_LENGTH]}"'


def recipe_summary(metadata: PackageMetadata, diagnostics: Diagnostics) -> str:
    """Package description used as SUMMARY, falling back to the name."""
    if metadata.description is None:
        diagnostics.warn(
            "No package.description set in your Cargo.toml, using package.name",
            ErrorCategory.METADATA,
            "recipe",
            "recipe_summary",
        )
        return metadata.name
    return metadata.description.strip().replace("\n", " \\\n")


def recipe_homepage(metadata: PackageMetadata, diagnostics: Diagnostics) -> str:
    """
    Package homepage, or its source code location.

    Raises:
        MetadataError: If neither homepage nor repository is set
    """
    if metadata.homepage is not None:
        return metadata.homepage.strip()
    diagnostics.warn(
        "No package.homepage set in your Cargo.toml, trying package.repository",
        ErrorCategory.METADATA,
        "recipe",
        "recipe_homepage",
    )
    if metadata.repository is None:
        raise MetadataError("No package.repository set in your Cargo.toml")
    return metadata.repository.strip()


def recipe_license(metadata: PackageMetadata, diagnostics: Diagnostics) -> Tuple[str, bool]:
    """
    Raw license expression, falling back to the license file, then CLOSED.

    Returns:
        Tuple[str, bool]: The license and whether it names a license file
    """
    if metadata.license is not None:
        return metadata.license, False
    diagnostics.warn(
        "No package.license set in your Cargo.toml, trying package.license_file",
        ErrorCategory.METADATA,
        "recipe",
        "recipe_license",
    )
    if metadata.license_file is not None:
        return metadata.license_file, True
    diagnostics.warn("No package.license_file set in your Cargo.toml", ErrorCategory.METADATA, "recipe", "recipe_license")
    diagnostics.warn(f"Assuming {license_mod.CLOSED_LICENSE} license", ErrorCategory.METADATA, "recipe", "recipe_license")
    return license_mod.CLOSED_LICENSE, False


def license_files(
    crate_root: Path, rel_dir: Path, license_expr: str, is_file: bool, diagnostics: Diagnostics
) -> Tuple[str, ...]:
    """LIC_FILES_CHKSUM entries, one per license alternative."""
    licenses = [license_expr] if is_file else license_mod.split_license(license_expr)
    single_license = len(licenses) == 1
    return tuple(
        license_mod.file(crate_root, rel_dir, lic, single_license, diagnostics) for lic in licenses
    )


def discover_project_repo(
    path: Path,
    diagnostics: Diagnostics,
    introspect: Optional[Callable[[Path], ProjectRepo]] = None,
) -> ProjectRepo:
    """Project checkout state, or empty defaults with a warning."""
    try:
        return (introspect or ProjectRepo.discover)(path)
    except RepositoryError as e:
        log_project_repo_defaulted(str(e))
        diagnostics.warn(str(e), ErrorCategory.REPOSITORY, "recipe", "discover_project_repo", exception=e)
        return ProjectRepo()


def build_recipe(
    info: PackageInfo,
    options: RecipeOptions,
    diagnostics: Diagnostics,
    introspect: Optional[Callable[[Path], ProjectRepo]] = None,
) -> OutputRecipe:
    """
    Compute every recipe field without touching the output file.

    Raises:
        BitbakeError: On any fatal condition
    """
    metadata = info.package()

    if "_" in metadata.name:
        diagnostics.warn("Package name contains an underscore", ErrorCategory.METADATA, "recipe", "build_recipe")

    resolve = info.resolve()
    log_generation_start(metadata.name, metadata.version, len(resolve))
    diagnostics.debug(f"Resolved {len(resolve)} packages from {info.lockfile_path()}")

    sources = translate_dependencies(
        resolve,
        metadata.name,
        TranslationOptions(reproducible=options.reproducible, checksums=options.checksums),
        resolve.checksum,
        diagnostics,
    )

    summary = recipe_summary(metadata, diagnostics)
    homepage = recipe_homepage(metadata, diagnostics)
    license_expr, license_is_file = recipe_license(metadata, diagnostics)

    rel_dir = info.rel_dir()
    lic_files = license_files(info.crate_root, rel_dir, license_expr, license_is_file, diagnostics)

    project_repo = discover_project_repo(info.crate_root, diagnostics, introspect)

    return OutputRecipe(
        name=metadata.name,
        version=metadata.version,
        summary=summary,
        homepage=homepage,
        license=license_expr.strip() if license_is_file else license_mod.yocto_license(license_expr),
        lic_files=lic_files,
        src_uri=sources.src_uri(),
        src_uri_extras=sources.src_uri_extras(),
        git_srcpv=version_stability_directive(project_repo, options.legacy_overrides),
        project_rel_dir="" if rel_dir == Path(".") else rel_dir.as_posix(),
        project_src_uri=project_repo.uri,
        project_src_rev=project_repo.rev,
    )


def write_recipe(recipe: OutputRecipe, output_dir: Optional[Path] = None) -> Path:
    """
    Write the rendered recipe in one call.

    Raises:
        RecipeWriteError: If the file cannot be opened or written
    """
    content = recipe.render()
    recipe_path = (output_dir or Path(".")) / recipe.filename
    try:
        with open(recipe_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
    except OSError as e:
        raise RecipeWriteError(f"Unable to write bitbake recipe file {recipe_path} with: {e}") from e
    return recipe_path


def generate_recipe(
    options: RecipeOptions,
    diagnostics: Diagnostics,
    introspect: Optional[Callable[[Path], ProjectRepo]] = None,
) -> Path:
    """
    Generate the BitBake recipe for the package at ``options.manifest_path``.

    Returns:
        Path: The written recipe

    Raises:
        BitbakeError: On any fatal condition; nothing is written in that case
    """
    info = PackageInfo.load(options.manifest_path)
    recipe = build_recipe(info, options, diagnostics, introspect)
    recipe_path = write_recipe(recipe, options.output_dir)
    log_recipe_written(str(recipe_path), len(recipe.src_uri.splitlines()))
    return recipe_path
