"""Manifest persistence layer.

The manifest is a JSON object stored at a fixed project-relative path
(``sources.json`` by default) that maps each binary source file name to the
SHA-1 digest under which it lives in the blob store::

    {
      "foo-1.2.tar.gz": "3b1f0c7e0c3d2f5a9e8b6c4d2a1f0e9d8c7b6a59"
    }

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file in the same
  directory then calls ``os.replace()`` so a crash never leaves a
  half-written manifest behind.
* **Deterministic output** -- keys are sorted and indentation is fixed, so
  an unchanged manifest is rewritten byte-for-byte identical and git sees
  no diff.
* **Plain dict** -- callers mutate the mapping freely during a run and
  persist once at the end.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pkgsources.errors import ManifestCorrupt
from pkgsources.validators import validate_digest, validate_source_name

logger = logging.getLogger(__name__)


class ManifestStore:
    """Load and save the file-name to digest mapping of one project.

    Args:
        path: Absolute path of the manifest file.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict[str, str]:
        """Load the manifest from disk.

        Returns:
            The name-to-digest mapping. An absent file yields ``{}``.

        Raises:
            ManifestCorrupt: If the file exists but is not a JSON object of
                valid source names to 40-character hex digests.
        """
        if not self._path.exists():
            logger.debug("No manifest at %s, starting empty", self._path)
            return {}

        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ManifestCorrupt(
                f"Cannot parse manifest {self._path}: {exc}"
            ) from exc

        return self._validate(data)

    def save(self, manifest: dict[str, str]) -> None:
        """Persist *manifest* to disk atomically.

        Writes to a temporary file in the manifest's directory then
        atomically replaces the target.
        """
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=str(directory), prefix=".manifest-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(self.serialize(manifest))
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug(
            "Saved manifest %s (%d entries)", self._path, len(manifest)
        )

    @staticmethod
    def serialize(manifest: dict[str, str]) -> str:
        """Return the canonical text form of *manifest*."""
        return json.dumps(manifest, indent=2, sort_keys=True) + "\n"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(self, data: object) -> dict[str, str]:
        if not isinstance(data, dict):
            raise ManifestCorrupt(
                f"Manifest {self._path} must contain a JSON object, "
                f"got {type(data).__name__}"
            )
        for name, value in data.items():
            ok, reason = validate_source_name(name)
            if not ok:
                raise ManifestCorrupt(f"Manifest {self._path}: {reason}")
            ok, reason = validate_digest(value)
            if not ok:
                raise ManifestCorrupt(
                    f"Manifest {self._path}: entry {name!r}: {reason}"
                )
        return dict(data)
