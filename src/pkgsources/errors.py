"""Exception types for pkgsources.

Convention:
- Fatal errors (``ManifestCorrupt``, ``NoVersionControlContext``) are raised
  out of the engine before anything is mutated; the CLI reports them and
  exits non-zero.
- Per-file errors (``SourceNotFound``, ``SourceReadError``,
  ``OracleUnknown``) are caught by the engine and recorded as issues in the
  run report so the remaining files are still processed.
"""

from __future__ import annotations


class PkgSourcesError(Exception):
    """Base class for all pkgsources errors."""


class SourceNotFound(PkgSourcesError):
    """A declared source file does not exist in the working tree."""

    def __init__(self, name: str) -> None:
        super().__init__(f"no such file: {name}")
        self.name = name


class SourceReadError(PkgSourcesError):
    """A source file exists but could not be read or hashed."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"cannot read {name}: {reason}")
        self.name = name


class OracleUnknown(PkgSourcesError):
    """The blob store existence check gave no usable answer."""

    def __init__(self, digest: str, reason: str) -> None:
        super().__init__(f"existence check for {digest} failed: {reason}")
        self.digest = digest
        self.reason = reason


class ManifestCorrupt(PkgSourcesError):
    """The manifest file exists but cannot be parsed."""


class NoVersionControlContext(PkgSourcesError):
    """The project directory is not inside a git working tree."""


class StoreError(PkgSourcesError):
    """An upload to or download from the blob store failed."""
