"""License helpers for LIC_FILES_CHKSUM and LICENSE."""

import hashlib
import re
from pathlib import Path
from typing import List, Optional

from .error_handling import Diagnostics, ErrorCategory

CLOSED_LICENSE = "CLOSED"

_ALTERNATIVE_SEPARATOR = re.compile(r"\s*/\s*|\s+OR\s+")


def split_license(license_expr: str) -> List[str]:
    """Split a license expression into its alternatives."""
    return [part.strip() for part in _ALTERNATIVE_SEPARATOR.split(license_expr.strip()) if part.strip()]


def yocto_license(license_expr: str) -> str:
    """LICENSE value: alternatives joined the way BitBake expects."""
    return " | ".join(split_license(license_expr))


def _candidates(license_id: str, single_license: bool) -> List[str]:
    names = [
        f"LICENSE-{license_id}",
        f"LICENSE.{license_id}",
        f"LICENSE-{license_id}.md",
        f"LICENSE-{license_id}.txt",
        f"LICENSE-{license_id.split('-')[0].upper()}",
    ]
    if single_license:
        names += ["LICENSE", "LICENSE.md", "LICENSE.txt", "COPYING", license_id]
    return names


def _find_license_file(crate_root: Path, license_id: str, single_license: bool) -> Optional[str]:
    for name in _candidates(license_id, single_license):
        try:
            if (crate_root / name).is_file():
                return name
        except OSError:
            continue
    return None


def file(
    crate_root: Path,
    rel_dir: Path,
    license_id: str,
    single_license: bool,
    diagnostics: Optional[Diagnostics] = None,
) -> str:
    """
    One LIC_FILES_CHKSUM entry for a license.

    Args:
        crate_root: Directory holding Cargo.toml
        rel_dir: Package directory relative to the repository checkout
        license_id: License identifier or license file path
        single_license: Whether this is the only license of the package
        diagnostics: Receives a warning when no file is found

    Returns:
        str: ``file://<path>;md5=<digest> \\`` plus newline, or an empty
        string for closed source packages
    """
    license_id = license_id.strip()
    if license_id == CLOSED_LICENSE:
        return ""

    found = _find_license_file(crate_root, license_id, single_license)
    if found is None:
        if diagnostics is not None:
            diagnostics.warn(
                f"Please update LIC_FILES_CHKSUM for {license_id}, no license file was found",
                ErrorCategory.METADATA,
                "license",
                "file",
            )
        return f"file://{license_id};md5=generateme \\\n"

    digest = hashlib.md5((crate_root / found).read_bytes()).hexdigest()
    return f"file://{(rel_dir / found).as_posix()};md5={digest} \\\n"
