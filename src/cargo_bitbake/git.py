"""
Git helpers: rewriting remotes into BitBake fetch URLs and introspecting
the project's own checkout.
"""

import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit

from .error_handling import GitUrlError, RepositoryError

# git@github.com:owner/repo.git
SSH_STYLE_REMOTE = re.compile(r"\A(?:(?P<user>[^@/:]+)@)?(?P<host>[^:/]+):(?P<path>[^/].*)\Z")


class GitPrefix(Enum):
    """Fetcher a git URL is handed to."""

    GIT = "git"
    GIT_SUBMODULE = "gitsm"

    def __str__(self) -> str:
        return self.value


def git_to_yocto_git_url(url: str, name: Optional[str] = None, prefix: GitPrefix = GitPrefix.GIT) -> str:
    """
    Rewrite a git remote into the BitBake git fetcher form.

    Args:
        url: Remote URL as cargo or git records it
        name: Dependency name; tags the URL so several git fetches in one
            recipe stay apart, and names the checkout directory
        prefix: Fetcher to use

    Returns:
        str: ``<prefix>://<host><path>;protocol=<scheme>[;...]``

    Raises:
        GitUrlError: If the remote cannot be parsed
    """
    if url.startswith("git+"):
        url = url[len("git+"):]

    if "://" not in url:
        match = SSH_STYLE_REMOTE.match(url)
        if not match:
            raise GitUrlError(f"Unable to parse git remote '{url}'")
        user = f"{match.group('user')}@" if match.group("user") else ""
        url = f"ssh://{user}{match.group('host')}/{match.group('path')}"

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise GitUrlError(f"Unable to parse git remote '{url}': {e}") from e

    if not parts.scheme:
        raise GitUrlError(f"Unable to parse git remote '{url}'")

    if parts.scheme == "file":
        location = parts.path
    else:
        if not parts.hostname:
            raise GitUrlError(f"Git remote '{url}' has no host")
        location = parts.hostname
        if parts.username:
            location = f"{parts.username}@{location}"
        if port:
            location = f"{location}:{port}"
        location += parts.path

    yocto_url = f"{prefix}://{location};protocol={parts.scheme}"
    if name:
        yocto_url += f";nobranch=1;name={name};destsuffix={name}"
    return yocto_url


def _git(args: List[str], cwd: Path, check: bool = True) -> Optional[str]:
    """
    Run a git command and return its stripped stdout.

    Returns None instead of raising when ``check`` is false and git fails.
    """
    try:
        result = subprocess.run(
            ["git", *args], cwd=cwd, capture_output=True, text=True, check=False
        )
    except OSError as e:
        raise RepositoryError(f"Unable to run git: {e}") from e

    if result.returncode != 0:
        if check:
            raise RepositoryError(
                f"Unable to determine git repo for this project: "
                f"git {' '.join(args)} failed: {result.stderr.strip()}"
            )
        return None
    return result.stdout.strip()


@dataclass(frozen=True)
class ProjectRepo:
    """Checkout state of the project being packaged."""

    uri: str = ""
    branch: str = ""
    rev: str = ""
    tag: bool = False

    @classmethod
    def discover(cls, path: Path) -> "ProjectRepo":
        """
        Introspect the git checkout containing ``path``.

        Raises:
            RepositoryError: If there is no usable checkout or remote
        """
        toplevel = Path(_git(["rev-parse", "--show-toplevel"], path))

        remotes = (_git(["remote"], toplevel) or "").split()
        if not remotes:
            raise RepositoryError(f"Unable to find a git remote for {toplevel}")
        remote = "origin" if "origin" in remotes else remotes[0]
        remote_url = _git(["remote", "get-url", remote], toplevel)

        rev = _git(["rev-parse", "HEAD"], toplevel)
        tag = _git(["describe", "--tags", "--exact-match", "HEAD"], toplevel, check=False) is not None
        branch = _git(["symbolic-ref", "--short", "-q", "HEAD"], toplevel, check=False) or ""

        prefix = GitPrefix.GIT_SUBMODULE if (toplevel / ".gitmodules").is_file() else GitPrefix.GIT
        try:
            uri = git_to_yocto_git_url(remote_url, None, prefix)
        except GitUrlError as e:
            raise RepositoryError(str(e)) from e
        uri += f";branch={branch}" if branch else ";nobranch=1"

        return cls(uri=uri, branch=branch, rev=rev, tag=tag)
