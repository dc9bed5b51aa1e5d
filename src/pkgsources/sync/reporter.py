"""Reconcile report formatting functions.

Provides human-readable and machine-readable output for engine runs:

- ``format_reconcile_report`` -- full post-run summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ReconcileReport

from .models import SourceAction

_SECTION_TITLES: dict[SourceAction, str] = {
    SourceAction.ADD_TO_VCS: "Added to git:",
    SourceAction.REMOVE_FROM_INDEX: "Removed from git index (kept on disk):",
    SourceAction.REMOVE_FROM_TREE: "Removed from git and working tree:",
    SourceAction.ADD_TO_MANIFEST: "Added to manifest:",
    SourceAction.UPDATE_MANIFEST: "Updated in manifest:",
    SourceAction.PRUNE_FROM_MANIFEST: "Removed from manifest:",
    SourceAction.UPLOAD: "Uploaded:",
    SourceAction.DOWNLOAD: "Downloaded:",
    SourceAction.DELETE_LOCAL: "Deleted local copy (stored remotely):",
}


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_reconcile_report(report: ReconcileReport) -> str:
    """Format a complete run report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sources of {report.project}"
    if report.mode == "full_tree":
        header += " (full tree)"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append("")

    for action, title in _SECTION_TITLES.items():
        done = [r for r in report.with_action(action) if r.success]
        if not done:
            continue
        lines.append(title)
        for r in done:
            suffix = f"  {r.digest}" if r.digest else ""
            lines.append(f"  {r.name}{suffix}")
        lines.append("")

    if report.upload_queue:
        lines.append("Needs upload:")
        for name in report.upload_queue:
            lines.append(f"  {name}")
        lines.append("")

    if report.issues:
        lines.append("Warnings:")
        for issue in report.issues:
            lines.append(f"  {issue.name}: {issue.message}")
        lines.append("")

    if report.failures:
        lines.append("Failed:")
        for r in report.failures:
            lines.append(f"  {r.name} ({r.action.value}): {r.error}")
        lines.append("")

    if not report.mutations and not report.upload_queue:
        lines.append("Nothing to do, sources are consistent.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: ReconcileReport) -> str:
    """Format a dry-run preview grouped by action type.

    Each proposed action is shown as ``[ACTION]`` followed by file names.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Project: {report.project}")
    lines.append("")

    groups: dict[SourceAction, list[str]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(r.name)

    for action in SourceAction:
        if action not in groups:
            continue
        label = action.value.upper().replace("_", " ")
        lines.append(f"[{label}]")
        for name in groups[action]:
            lines.append(f"  {name}")
        lines.append("")

    if report.issues:
        lines.append("[WARNINGS]")
        for issue in report.issues:
            lines.append(f"  {issue.name}: {issue.message}")
        lines.append("")

    if not groups:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: ReconcileReport) -> dict:
    """Convert a report to a structured dict for JSON serialisation.

    Args:
        report: The run report.

    Returns:
        Dict with run info, counts, per-result details, and issues.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "name": r.name,
            "action": r.action.value,
            "success": r.success,
        }
        if r.digest:
            entry["digest"] = r.digest
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "project": report.project,
        "mode": report.mode,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "added_to_vcs": len(report.added_to_vcs),
            "removed_from_index": len(report.removed_from_index),
            "removed_from_tree": len(report.removed_from_tree),
            "manifest_added": len(report.manifest_added),
            "manifest_updated": len(report.manifest_updated),
            "manifest_pruned": len(report.manifest_pruned),
            "uploaded": len(report.uploaded),
            "downloaded": len(report.downloaded),
            "deleted_local": len(report.deleted_local),
            "queued": len(report.upload_queue),
            "issues": len(report.issues),
            "failures": len(report.failures),
        },
        "upload_queue": list(report.upload_queue),
        "results": results_list,
        "issues": [
            {
                "name": i.name,
                "kind": i.kind.value,
                "message": i.message,
            }
            for i in report.issues
        ],
    }
