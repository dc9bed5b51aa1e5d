"""Git working tree access via the git CLI."""

from __future__ import annotations

import logging
import subprocess
from typing import TYPE_CHECKING

from pkgsources.errors import NoVersionControlContext

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class GitRepository:
    """Wraps the git operations the reconciliation engine needs.

    All file names are relative to ``root``, which must lie inside a git
    working tree.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def _run(
        self, *args: str, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command in the project directory."""
        return subprocess.run(
            ["git", *args],
            cwd=self.root,
            check=check,
            capture_output=True,
            text=True,
        )

    def ensure_context(self) -> None:
        """Check that ``root`` is inside a git working tree.

        Raises:
            NoVersionControlContext: If git is missing or ``root`` is not
                inside a working tree.
        """
        try:
            result = self._run(
                "rev-parse", "--is-inside-work-tree", check=False
            )
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise NoVersionControlContext(
                f"Cannot run git in {self.root}: {exc}"
            ) from exc
        if result.returncode != 0 or result.stdout.strip() != "true":
            raise NoVersionControlContext(
                f"{self.root} is not inside a git working tree"
            )

    def tracked_files(self) -> set[str]:
        """Return the names of all files in the git index under ``root``."""
        result = self._run("ls-files", "-z")
        return {name for name in result.stdout.split("\0") if name}

    def worktree_files(self) -> set[str]:
        """Return tracked plus untracked, non-ignored files under ``root``."""
        result = self._run(
            "ls-files", "-z", "--cached", "--others", "--exclude-standard"
        )
        return {name for name in result.stdout.split("\0") if name}

    def add(self, name: str) -> None:
        """Start tracking (or stage changes to) *name*."""
        self._run("add", "--", name)
        logger.debug("git add %s", name)

    def remove_from_index(self, name: str) -> None:
        """Stop tracking *name* but leave it on disk."""
        self._run("rm", "--cached", "--quiet", "--", name)
        logger.debug("git rm --cached %s", name)

    def remove(self, name: str) -> None:
        """Remove *name* from the index and the working tree."""
        self._run("rm", "--force", "--quiet", "--", name)
        logger.debug("git rm %s", name)
