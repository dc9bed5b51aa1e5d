"""Pydantic models for the source reconciliation engine.

Defines the data contracts shared by the sync modules:

- ``RemoteStatus``: Tri-state answer of a blob store existence check.
- ``SourceAction``: Enum of the mutations a run can perform.
- ``IssueKind``: Categories of per-file problems.
- ``SourceResult``: One action applied (or planned) for one file.
- ``ReconcileIssue``: One non-fatal per-file problem.
- ``ReconcileReport``: Aggregate results for a full run.

``FileKind`` lives in ``pkgsources.content`` and is re-exported here.
All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from pkgsources.content import FileKind

__all__ = [
    "FileKind",
    "IssueKind",
    "ReconcileIssue",
    "ReconcileReport",
    "RemoteStatus",
    "SourceAction",
    "SourceResult",
]


class RemoteStatus(str, Enum):
    """Result of asking the blob store whether a digest exists."""

    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class SourceAction(str, Enum):
    """Possible actions for a single source file."""

    ADD_TO_VCS = "add_to_vcs"
    REMOVE_FROM_INDEX = "remove_from_index"
    REMOVE_FROM_TREE = "remove_from_tree"
    ADD_TO_MANIFEST = "add_to_manifest"
    UPDATE_MANIFEST = "update_manifest"
    PRUNE_FROM_MANIFEST = "prune_from_manifest"
    QUEUE_UPLOAD = "queue_upload"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE_LOCAL = "delete_local"


# Actions that only describe work for later and change nothing themselves.
PLANNING_ACTIONS = frozenset({SourceAction.QUEUE_UPLOAD})


class IssueKind(str, Enum):
    """Categories of non-fatal per-file problems."""

    INVALID_NAME = "invalid_name"
    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"
    ORACLE_UNKNOWN = "oracle_unknown"
    VCS_ERROR = "vcs_error"
    STORE_ERROR = "store_error"


class SourceResult(BaseModel):
    """One action for one file.

    Attributes:
        name: Project-relative file name.
        action: Action that was performed (or planned, in a dry run).
        success: Whether the action succeeded.
        digest: Content digest, for manifest and store actions.
        error: Error message if the action failed.
    """

    name: str
    action: SourceAction
    success: bool = True
    digest: str | None = None
    error: str | None = None

    model_config = {"frozen": True}


class ReconcileIssue(BaseModel):
    """A per-file problem that did not stop the run.

    Attributes:
        name: Project-relative file name.
        kind: Problem category.
        message: Human-readable description.
    """

    name: str
    kind: IssueKind
    message: str

    model_config = {"frozen": True}


class ReconcileReport(BaseModel):
    """Aggregate report for one reconciliation run.

    Attributes:
        project: Project directory the run operated on.
        mode: ``"declared"``, ``"full_tree"`` or ``"fetch"``.
        dry_run: Whether this was a dry run (no changes applied).
        results: Individual actions in the order they happened.
        issues: Non-fatal per-file problems.
        upload_queue: File names that need uploading, in order.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
    """

    project: str
    mode: str = "declared"
    dry_run: bool = False
    results: list[SourceResult] = []
    issues: list[ReconcileIssue] = []
    upload_queue: list[str] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def with_action(self, action: SourceAction) -> list[SourceResult]:
        """Results whose action is *action*."""
        return [r for r in self.results if r.action == action]

    @property
    def added_to_vcs(self) -> list[SourceResult]:
        return self.with_action(SourceAction.ADD_TO_VCS)

    @property
    def removed_from_index(self) -> list[SourceResult]:
        return self.with_action(SourceAction.REMOVE_FROM_INDEX)

    @property
    def removed_from_tree(self) -> list[SourceResult]:
        return self.with_action(SourceAction.REMOVE_FROM_TREE)

    @property
    def manifest_added(self) -> list[SourceResult]:
        return self.with_action(SourceAction.ADD_TO_MANIFEST)

    @property
    def manifest_updated(self) -> list[SourceResult]:
        return self.with_action(SourceAction.UPDATE_MANIFEST)

    @property
    def manifest_pruned(self) -> list[SourceResult]:
        return self.with_action(SourceAction.PRUNE_FROM_MANIFEST)

    @property
    def uploaded(self) -> list[SourceResult]:
        return [
            r
            for r in self.with_action(SourceAction.UPLOAD)
            if r.success
        ]

    @property
    def downloaded(self) -> list[SourceResult]:
        return [
            r
            for r in self.with_action(SourceAction.DOWNLOAD)
            if r.success
        ]

    @property
    def deleted_local(self) -> list[SourceResult]:
        return self.with_action(SourceAction.DELETE_LOCAL)

    @property
    def failures(self) -> list[SourceResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def mutations(self) -> list[SourceResult]:
        """Results that changed git, the manifest, the tree, or the store."""
        return [
            r for r in self.results if r.action not in PLANNING_ACTIONS
        ]

    def summary(self) -> str:
        """Format a short human-readable summary of the run.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            f"Reconcile report for '{self.project}'"
            + (" (dry run)" if self.dry_run else ""),
            f"  Added to git:      {len(self.added_to_vcs)}",
            f"  Untracked:         {len(self.removed_from_index)}",
            f"  Removed:           {len(self.removed_from_tree)}",
            f"  Manifest added:    {len(self.manifest_added)}",
            f"  Manifest updated:  {len(self.manifest_updated)}",
            f"  Manifest pruned:   {len(self.manifest_pruned)}",
            f"  Upload queue:      {len(self.upload_queue)}",
            f"  Warnings:          {len(self.issues)}",
            f"  Failures:          {len(self.failures)}",
        ]
        return "\n".join(lines)
