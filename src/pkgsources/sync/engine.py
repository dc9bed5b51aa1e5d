"""Source reconciliation engine.

The ``ReconcileEngine`` converges three places that hold a project's
sources: the git working tree, the manifest file, and the blob store.
A declared-sources run:

1. Prunes manifest entries whose names are no longer declared.
2. Resolves the remaining manifest entries: re-checks their content and
   asks the store whether their digest is present.
3. Classifies newly declared sources: text files are added to git, binary
   files are hashed, recorded in the manifest and checked against the store.
4. Saves the manifest atomically and makes sure git tracks it.
5. Removes stale tracked files: binaries leave the git index, undeclared
   files leave the index and the working tree.
6. Returns a ``ReconcileReport`` with every action, every per-file issue,
   and the upload queue.

Error handling is per-file: a missing or unreadable source, a failed
existence check, or a failed git command is recorded as an issue and the
run carries on. Only a corrupt manifest or a missing git context aborts,
and both are detected before anything is mutated.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path

from pkgsources.config import DEFAULT_MANIFEST_NAME, UNKNOWN_POLICIES
from pkgsources.content import FileKind, classify, digest
from pkgsources.errors import (
    OracleUnknown,
    SourceNotFound,
    SourceReadError,
    StoreError,
)
from pkgsources.sync.manifest import ManifestStore
from pkgsources.sync.models import (
    IssueKind,
    ReconcileIssue,
    ReconcileReport,
    RemoteStatus,
    SourceAction,
    SourceResult,
)
from pkgsources.sync.store import BlobStoreClient
from pkgsources.sync.uploader import upload_pending
from pkgsources.sync.vcs import GitRepository
from pkgsources.validators import validate_source_name

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Run:
    """Mutable accumulator for one engine run."""

    def __init__(self, dry_run: bool) -> None:
        self.dry_run = dry_run
        self.results: list[SourceResult] = []
        self.issues: list[ReconcileIssue] = []
        self.queue: list[str] = []
        # Binary names confirmed to exist in the store during this run.
        self.present: set[str] = set()

    def record(
        self,
        name: str,
        action: SourceAction,
        digest: str | None = None,
        success: bool = True,
        error: str | None = None,
    ) -> None:
        self.results.append(
            SourceResult(
                name=name,
                action=action,
                success=success,
                digest=digest,
                error=error,
            )
        )

    def warn(
        self,
        name: str,
        kind: IssueKind,
        message: str,
        level: int = logging.WARNING,
    ) -> None:
        logger.log(level, "%s: %s", name, message)
        self.issues.append(
            ReconcileIssue(name=name, kind=kind, message=message)
        )

    def enqueue(self, name: str, digest: str) -> None:
        if name in self.queue:
            return
        self.queue.append(name)
        self.record(name, SourceAction.QUEUE_UPLOAD, digest=digest)


class ReconcileEngine:
    """Reconcile declared sources with git, the manifest, and the store.

    Args:
        vcs: Git working tree the project lives in.
        store: Blob store client (existence checks and transfers).
        source_root: Absolute path of the project directory.
        manifest_name: Project-relative manifest file name.
        unknown_policy: ``"enqueue"`` queues a file whose existence check
            failed, ``"skip"`` only warns about it.
    """

    def __init__(
        self,
        vcs: GitRepository,
        store: BlobStoreClient,
        source_root: Path,
        manifest_name: str = DEFAULT_MANIFEST_NAME,
        unknown_policy: str = "enqueue",
    ) -> None:
        if unknown_policy not in UNKNOWN_POLICIES:
            raise ValueError(f"Unknown policy: {unknown_policy!r}")
        self.vcs = vcs
        self.store = store
        self.source_root = source_root
        self.manifest_name = manifest_name
        self.unknown_policy = unknown_policy
        self.manifest_store = ManifestStore(source_root / manifest_name)

    # ------------------------------------------------------------------
    # Declared-sources reconciliation
    # ------------------------------------------------------------------

    def run(
        self,
        declared: Sequence[str],
        keep: Iterable[str] = (),
        dry_run: bool = False,
    ) -> ReconcileReport:
        """Reconcile the project against the declared source list.

        Args:
            declared: Declared source names, in spec order.
            keep: Extra tracked names that must never be removed
                (e.g. the spec file itself).
            dry_run: If ``True``, report actions without applying them.

        Raises:
            NoVersionControlContext: If the project is not in a git tree.
            ManifestCorrupt: If the manifest exists but cannot be parsed.
        """
        started_at = _now()
        self.vcs.ensure_context()
        manifest = self.manifest_store.load()
        original = dict(manifest)
        tracked = self.vcs.tracked_files()
        run = _Run(dry_run)

        sources = self._declared_names(declared, run)
        declared_set = set(sources)

        # Step 1: prune entries that are no longer declared
        for name in sorted(manifest):
            if name not in declared_set:
                removed = manifest.pop(name)
                logger.info("Removed %s from manifest", name)
                run.record(
                    name, SourceAction.PRUNE_FROM_MANIFEST, digest=removed
                )

        # Step 2: resolve entries still in the manifest
        for name in sources:
            if name in manifest:
                self._resolve_entry(name, manifest, tracked, run)

        # Step 3: classify sources that were not in the manifest
        for name in sources:
            if name not in original:
                self._process_new(name, manifest, tracked, run)

        # Step 4: persist the manifest and keep it under version control
        self._persist(manifest, original, tracked, run)

        # Step 5: drop stale tracked files
        effective = declared_set | {self.manifest_name} | set(keep)
        for name in sorted(tracked):
            if name in effective:
                if name in manifest:
                    self._vcs_action(
                        name, SourceAction.REMOVE_FROM_INDEX, run
                    )
            else:
                self._vcs_action(name, SourceAction.REMOVE_FROM_TREE, run)

        return self._report(run, "declared", started_at)

    # ------------------------------------------------------------------
    # Full-tree conversion
    # ------------------------------------------------------------------

    def run_full_tree(
        self, upload: bool = True, dry_run: bool = False
    ) -> ReconcileReport:
        """Convert the whole working tree into a text-only tree.

        Every file in the working tree (tracked or not, ignored files
        excluded) is classified. Text files are tracked in git; binary
        files are recorded in the manifest, uploaded if the store lacks
        them, and once confirmed present in the store they leave the git
        index and are deleted locally.

        Args:
            upload: Upload queued binaries during the run. Without it,
                only binaries already in the store are deleted locally.
            dry_run: If ``True``, report actions without applying them.
        """
        started_at = _now()
        self.vcs.ensure_context()
        manifest = self.manifest_store.load()
        original = dict(manifest)
        tracked = self.vcs.tracked_files()
        run = _Run(dry_run)

        files = sorted(
            name
            for name in self.vcs.worktree_files()
            if name != self.manifest_name
            and (self.source_root / name).is_file()
        )

        for name in sorted(manifest):
            self._resolve_entry(name, manifest, tracked, run)

        for name in files:
            if name not in original:
                self._process_new(name, manifest, tracked, run)

        if upload and run.queue and not dry_run:
            for result in upload_pending(
                self.store, self.source_root, manifest, run.queue
            ):
                run.results.append(result)
                if result.success:
                    run.present.add(result.name)
                else:
                    run.issues.append(
                        ReconcileIssue(
                            name=result.name,
                            kind=IssueKind.STORE_ERROR,
                            message=result.error or "upload failed",
                        )
                    )

        self._persist(manifest, original, tracked, run)

        for name in sorted(manifest):
            path = self.source_root / name
            if name not in run.present or not path.is_file():
                continue
            if name in tracked:
                if not self._vcs_action(
                    name, SourceAction.REMOVE_FROM_INDEX, run
                ):
                    continue
            if not dry_run:
                try:
                    path.unlink()
                except OSError as exc:
                    run.warn(
                        name,
                        IssueKind.IO_ERROR,
                        f"cannot delete local copy: {exc}",
                        logging.ERROR,
                    )
                    continue
                logger.info("Deleted local copy of %s", name)
            else:
                logger.info("Would delete local copy of %s", name)
            run.record(
                name, SourceAction.DELETE_LOCAL, digest=manifest[name]
            )

        return self._report(run, "full_tree", started_at)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def upload(self, report: ReconcileReport) -> ReconcileReport:
        """Upload the queue of a completed run and return the extended report.

        Dry-run reports and empty queues are returned unchanged.
        """
        if report.dry_run or not report.upload_queue:
            return report

        manifest = self.manifest_store.load()
        uploads = upload_pending(
            self.store, self.source_root, manifest, report.upload_queue
        )
        issues = [
            ReconcileIssue(
                name=r.name,
                kind=IssueKind.STORE_ERROR,
                message=r.error or "upload failed",
            )
            for r in uploads
            if not r.success
        ]
        return report.model_copy(
            update={
                "results": [*report.results, *uploads],
                "issues": [*report.issues, *issues],
                "completed_at": _now(),
            }
        )

    def fetch(
        self,
        sources: Sequence[tuple[str, str | None]],
        dry_run: bool = False,
    ) -> ReconcileReport:
        """Download declared sources that are missing from the working tree.

        A source with a manifest entry is fetched from the blob store and
        verified against its digest; otherwise its upstream URL is used.
        Files already on disk are left alone.

        Args:
            sources: ``(name, upstream_url)`` pairs in spec order.
            dry_run: If ``True``, report downloads without performing them.

        Raises:
            ManifestCorrupt: If the manifest exists but cannot be parsed.
        """
        started_at = _now()
        manifest = self.manifest_store.load()
        run = _Run(dry_run)

        for name, url in sources:
            ok, reason = validate_source_name(name)
            if not ok:
                run.warn(name, IssueKind.INVALID_NAME, reason)
                continue
            if name == self.manifest_name:
                continue

            path = self.source_root / name
            if path.exists():
                logger.debug("%s already present, not fetching", name)
                continue

            blob = manifest.get(name)
            if blob is None and not url:
                run.warn(
                    name,
                    IssueKind.NOT_FOUND,
                    "not in the manifest and no upstream URL",
                    logging.ERROR,
                )
                continue

            if dry_run:
                run.record(name, SourceAction.DOWNLOAD, digest=blob)
                continue

            try:
                if blob is not None:
                    self.store.download(blob, path)
                else:
                    blob = self.store.download_url(url, path)
            except StoreError as exc:
                run.warn(
                    name, IssueKind.STORE_ERROR, str(exc), logging.ERROR
                )
                run.record(
                    name,
                    SourceAction.DOWNLOAD,
                    digest=blob,
                    success=False,
                    error=str(exc),
                )
                continue
            run.record(name, SourceAction.DOWNLOAD, digest=blob)

        return self._report(run, "fetch", started_at)

    # ------------------------------------------------------------------
    # Per-file steps
    # ------------------------------------------------------------------

    def _declared_names(
        self, declared: Sequence[str], run: _Run
    ) -> list[str]:
        """Validate and de-duplicate declared names, keeping spec order."""
        names: list[str] = []
        seen: set[str] = set()
        for name in declared:
            if name in seen or name == self.manifest_name:
                continue
            seen.add(name)
            ok, reason = validate_source_name(name)
            if not ok:
                run.warn(name, IssueKind.INVALID_NAME, reason)
                continue
            names.append(name)
        return names

    def _resolve_entry(
        self,
        name: str,
        manifest: dict[str, str],
        tracked: set[str],
        run: _Run,
    ) -> None:
        """Re-check a manifest entry and query the store for it.

        A local copy that now classifies as text leaves the manifest and is
        handled as a text source. A local binary copy with new content
        updates the entry. Without a local copy the stored digest is used.
        """
        path = self.source_root / name
        if path.is_file():
            try:
                kind = classify(path)
                if kind == FileKind.TEXT:
                    removed = manifest.pop(name)
                    logger.info(
                        "%s is now a text file, moving it to git", name
                    )
                    run.record(
                        name,
                        SourceAction.PRUNE_FROM_MANIFEST,
                        digest=removed,
                    )
                    self._track_text(name, tracked, run)
                    return
                current = digest(path)
            except (SourceNotFound, SourceReadError) as exc:
                run.warn(name, _issue_kind(exc), str(exc))
            else:
                if current != manifest[name]:
                    logger.info("%s changed, updating its digest", name)
                    manifest[name] = current
                    run.record(
                        name, SourceAction.UPDATE_MANIFEST, digest=current
                    )

        self._check_remote(name, manifest[name], run)

    def _process_new(
        self,
        name: str,
        manifest: dict[str, str],
        tracked: set[str],
        run: _Run,
    ) -> None:
        """Classify a source that has no manifest entry."""
        path = self.source_root / name
        if not path.is_file():
            run.warn(
                name,
                IssueKind.NOT_FOUND,
                f"no such file: {name}",
                logging.ERROR,
            )
            return

        try:
            if classify(path) == FileKind.TEXT:
                self._track_text(name, tracked, run)
                return
            blob = digest(path)
        except (SourceNotFound, SourceReadError) as exc:
            run.warn(name, _issue_kind(exc), str(exc), logging.ERROR)
            return

        manifest[name] = blob
        logger.info("Added %s to manifest (%s)", name, blob)
        run.record(name, SourceAction.ADD_TO_MANIFEST, digest=blob)
        self._check_remote(name, blob, run)

    def _track_text(self, name: str, tracked: set[str], run: _Run) -> None:
        if name not in tracked:
            self._vcs_action(name, SourceAction.ADD_TO_VCS, run)

    def _check_remote(self, name: str, blob: str, run: _Run) -> None:
        """Query the store for *blob* and queue *name* when it is needed."""
        status, reason = self.store.check(blob)
        if status == RemoteStatus.PRESENT:
            run.present.add(name)
            return
        if status == RemoteStatus.ABSENT:
            run.enqueue(name, blob)
            return

        queued = self.unknown_policy == "enqueue"
        unknown = OracleUnknown(blob, reason)
        run.warn(
            name,
            IssueKind.ORACLE_UNKNOWN,
            f"{unknown}; "
            + ("queued for upload" if queued else "not queued for upload"),
        )
        if queued:
            run.enqueue(name, blob)

    def _vcs_action(
        self, name: str, action: SourceAction, run: _Run
    ) -> bool:
        """Apply one git mutation, recording the outcome."""
        if not run.dry_run:
            operation = {
                SourceAction.ADD_TO_VCS: self.vcs.add,
                SourceAction.REMOVE_FROM_INDEX: self.vcs.remove_from_index,
                SourceAction.REMOVE_FROM_TREE: self.vcs.remove,
            }[action]
            try:
                operation(name)
            except subprocess.CalledProcessError as exc:
                message = (
                    exc.stderr.strip() if exc.stderr else str(exc)
                )
                run.warn(name, IssueKind.VCS_ERROR, message, logging.ERROR)
                run.record(name, action, success=False, error=message)
                return False
        logger.info("%s: %s", action.value.replace("_", " "), name)
        run.record(name, action)
        return True

    def _persist(
        self,
        manifest: dict[str, str],
        original: dict[str, str],
        tracked: set[str],
        run: _Run,
    ) -> None:
        """Save the manifest and make sure git tracks it."""
        if not run.dry_run:
            self.manifest_store.save(manifest)

        # A changed manifest that git already tracks is staged again.
        if self.manifest_name not in tracked or manifest != original:
            self._vcs_action(self.manifest_name, SourceAction.ADD_TO_VCS, run)

    def _report(
        self, run: _Run, mode: str, started_at: str
    ) -> ReconcileReport:
        return ReconcileReport(
            project=str(self.source_root),
            mode=mode,
            dry_run=run.dry_run,
            results=run.results,
            issues=run.issues,
            upload_queue=run.queue,
            started_at=started_at,
            completed_at=_now(),
        )


def _issue_kind(exc: Exception) -> IssueKind:
    if isinstance(exc, SourceNotFound):
        return IssueKind.NOT_FOUND
    return IssueKind.IO_ERROR
