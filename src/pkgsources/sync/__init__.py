"""Source reconciliation engine.

Public API for keeping a package project's sources consistent across the
git working tree, the manifest file, and the remote blob store.

Architecture
------------
Text sources (patches, spec fragments) live in git. Binary sources
(tarballs, images) live in a content-addressed blob store, and the
manifest maps each of their names to its SHA-1 digest. The engine
classifies every declared source, keeps the manifest and git tracking in
line with that classification, and reports which blobs the store still
lacks.

Modules:

- ``engine``    -- ``ReconcileEngine``: declared-sources and full-tree runs,
  fetch.
- ``manifest``  -- ``ManifestStore``: load/save the manifest atomically.
- ``store``     -- ``BlobStoreClient``: existence checks and transfers.
- ``vcs``       -- ``GitRepository``: git index and working tree access.
- ``uploader``  -- ``upload_pending``: pushes the upload queue.
- ``models``    -- ``FileKind``, ``RemoteStatus``, ``SourceAction``,
  ``IssueKind``, ``SourceResult``, ``ReconcileIssue``, ``ReconcileReport``.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from pkgsources.config import Config
    from pkgsources.sync import (
        BlobStoreClient, GitRepository, ReconcileEngine,
        format_reconcile_report,
    )

    root = Path("mypkg").resolve()
    config = Config(store_url="https://sources.example.com/pkgs/mypkg")

    with BlobStoreClient(config) as store:
        engine = ReconcileEngine(GitRepository(root), store, root)
        report = engine.run(["mypkg-1.0.tar.gz", "fix-build.patch"])
        report = engine.upload(report)
        print(format_reconcile_report(report))
"""

from .engine import ReconcileEngine
from .manifest import ManifestStore
from .models import (
    FileKind,
    IssueKind,
    ReconcileIssue,
    ReconcileReport,
    RemoteStatus,
    SourceAction,
    SourceResult,
)
from .reporter import (
    format_dry_run_preview,
    format_reconcile_report,
    report_to_json,
)
from .store import BlobStoreClient
from .uploader import upload_pending
from .vcs import GitRepository

__all__ = [
    "BlobStoreClient",
    "FileKind",
    "GitRepository",
    "IssueKind",
    "ManifestStore",
    "ReconcileEngine",
    "ReconcileIssue",
    "ReconcileReport",
    "RemoteStatus",
    "SourceAction",
    "SourceResult",
    "format_dry_run_preview",
    "format_reconcile_report",
    "report_to_json",
    "upload_pending",
]
