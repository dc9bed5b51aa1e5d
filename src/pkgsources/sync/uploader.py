"""Upload driver: pushes queued source files to the blob store.

The reconciliation engine only decides *what* needs uploading; this module
does the transfers, one file at a time, and reports each outcome as a
``SourceResult`` so a single failed upload never stops the rest.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from pkgsources.errors import StoreError
from pkgsources.sync.models import SourceAction, SourceResult
from pkgsources.sync.store import BlobStoreClient

logger = logging.getLogger(__name__)


def upload_pending(
    store: BlobStoreClient,
    source_root: Path,
    manifest: dict[str, str],
    names: Iterable[str],
) -> list[SourceResult]:
    """Upload every file in *names* under its manifest digest.

    Args:
        store: Blob store client.
        source_root: Project directory the names are relative to.
        manifest: Name-to-digest mapping (already saved by the engine).
        names: Upload queue, in order.

    Returns:
        One ``UPLOAD`` result per name.
    """
    results: list[SourceResult] = []
    for name in names:
        digest = manifest.get(name)
        if digest is None:
            results.append(
                _failed(name, None, "not recorded in the manifest")
            )
            continue

        path = source_root / name
        if not path.is_file():
            results.append(_failed(name, digest, "no such file"))
            continue

        try:
            store.upload(path, name, digest)
        except StoreError as exc:
            results.append(_failed(name, digest, str(exc)))
            continue

        logger.info("Uploaded %s", name)
        results.append(
            SourceResult(
                name=name, action=SourceAction.UPLOAD, digest=digest
            )
        )
    return results


def _failed(name: str, digest: str | None, error: str) -> SourceResult:
    logger.error("Upload of %s failed: %s", name, error)
    return SourceResult(
        name=name,
        action=SourceAction.UPLOAD,
        success=False,
        digest=digest,
        error=error,
    )
