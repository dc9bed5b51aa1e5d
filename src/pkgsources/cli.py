"""Command-line entry point for pkgsources."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from pkgsources import __version__
from pkgsources.config import load_config
from pkgsources.config_loader import (
    discover_config_files,
    ensure_config,
    load_hierarchical_config,
)
from pkgsources.config_schema import UnifiedConfig, build_config, to_fallbacks
from pkgsources.errors import PkgSourcesError
from pkgsources.logger import setup_logging
from pkgsources.specfile import find_spec_file, read_spec_sources, source_name
from pkgsources.sync import (
    BlobStoreClient,
    GitRepository,
    ReconcileEngine,
    ReconcileReport,
    format_dry_run_preview,
    format_reconcile_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

_EPILOG = """
Examples:
  # Reconcile the sources declared in the project's spec file and upload
  # whatever the store is missing
  pkgsources sync

  # Show what sync would do without changing anything
  pkgsources status

  # Reconcile an explicit source list instead of reading a spec file
  pkgsources --source foo-1.2.tar.gz --source fix-build.patch sync

  # Move every binary file of a working tree into the blob store
  pkgsources --dir ./mypkg import-tree

  # Download declared sources that are missing locally
  pkgsources fetch

  # Create a starter .pkgsources/config.yml
  pkgsources init-config

Store settings come from (highest first): command-line options,
PKGSOURCES_* environment variables, a .env file, then config.yml.
Reports go to stdout, log messages to stderr.
"""

# Commands that reconcile or fetch the declared source list.
_DECLARED_COMMANDS = ("sync", "status", "fetch")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkgsources",
        description="Keep package sources consistent across git, "
        "the source manifest, and the blob store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_EPILOG,
    )

    parser.add_argument(
        "--dir",
        default=".",
        help="Project directory (default: current directory)",
    )
    parser.add_argument(
        "--spec",
        help="Spec file to read declared sources from "
        "(default: the only *.spec file in the project directory)",
    )
    parser.add_argument(
        "--source",
        action="append",
        metavar="NAME_OR_URL",
        help="Declared source file name or URL; repeat for several. "
        "Overrides reading the spec file.",
    )
    parser.add_argument(
        "--store-url",
        help="Override blob store URL (takes precedence over "
        "PKGSOURCES_STORE_URL env var and config files)",
    )
    parser.add_argument(
        "--username",
        help="Override store username",
    )
    parser.add_argument(
        "--password",
        help="Override store password"
        " (visible in process list -- prefer PKGSOURCES_PASSWORD env var)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--manifest",
        help="Manifest file name (default: sources.json)",
    )
    parser.add_argument(
        "--log-file",
        help="Also append log records to this file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pkgsources version {__version__}",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser(
        "sync", help="Reconcile declared sources and upload missing blobs"
    )
    sync.add_argument(
        "--no-upload",
        action="store_true",
        help="Only report the upload queue, do not upload",
    )

    commands.add_parser(
        "status", help="Show what sync would do (dry run)"
    )

    import_tree = commands.add_parser(
        "import-tree",
        help="Move every binary file of the working tree to the store",
    )
    import_tree.add_argument(
        "--no-upload",
        action="store_true",
        help="Do not upload; only binaries already stored are removed",
    )
    import_tree.add_argument(
        "--dry-run",
        action="store_true",
        help="Report actions without applying them",
    )

    fetch = commands.add_parser(
        "fetch", help="Download declared sources missing from the tree"
    )
    fetch.add_argument(
        "--dry-run",
        action="store_true",
        help="Report downloads without performing them",
    )

    commands.add_parser(
        "init-config", help="Create a starter .pkgsources/config.yml"
    )

    return parser


def _project_relative(path: Path, project_dir: Path) -> str | None:
    try:
        return path.resolve().relative_to(project_dir).as_posix()
    except ValueError:
        return None


def _declared_sources(
    args: argparse.Namespace, project_dir: Path, unified: UnifiedConfig
) -> tuple[list[tuple[str, str | None]], list[str]]:
    """Return ``(sources, keep)`` for the declared-source commands.

    The spec file and any project config files are always kept, even
    when ``--source`` replaces the declared list.

    Raises:
        PkgSourcesError: If no spec file can be found.
        OSError: If the spec file cannot be read.
    """
    keep = list(unified.sources.keep)
    for path in discover_config_files(project_dir):
        relative = _project_relative(path, project_dir)
        if relative is not None:
            keep.append(relative)

    spec = Path(args.spec) if args.spec else find_spec_file(project_dir)
    if spec is not None:
        relative = _project_relative(spec, project_dir)
        if relative is not None:
            keep.append(relative)

    if args.source:
        return [source_name(s) for s in args.source], keep

    if spec is None:
        raise PkgSourcesError(
            f"No spec file found in {project_dir}; pass --spec or --source"
        )
    return read_spec_sources(spec.resolve()), keep


def _print_report(report: ReconcileReport, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_reconcile_report(report))


def main(argv: list[str] | None = None) -> int:
    """Run one command and return the process exit status."""
    args = build_parser().parse_args(argv)
    project_dir = Path(args.dir).resolve()

    load_dotenv()

    if args.command == "init-config":
        setup_logging(debug=args.debug, log_file=args.log_file)
        path = ensure_config(project_dir)
        print(path)
        return 0

    try:
        unified = build_config(load_hierarchical_config(project_dir))
    except (yaml.YAMLError, ValidationError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        default_level=unified.logging.level,
    )

    try:
        config = load_config(
            store_url=args.store_url,
            username=args.username,
            password=args.password,
            insecure=args.insecure,
            debug=args.debug,
            manifest_name=args.manifest,
            yaml_fallbacks=to_fallbacks(unified),
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    sources: list[tuple[str, str | None]] = []
    keep: list[str] = []
    if args.command in _DECLARED_COMMANDS:
        try:
            sources, keep = _declared_sources(args, project_dir, unified)
        except (PkgSourcesError, OSError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    names = [name for name, _ in sources]

    with BlobStoreClient(config) as store:
        engine = ReconcileEngine(
            GitRepository(project_dir),
            store,
            project_dir,
            manifest_name=config.manifest_name,
            unknown_policy=config.unknown_policy,
        )
        try:
            if args.command == "sync":
                report = engine.run(names, keep=keep)
                if not args.no_upload:
                    report = engine.upload(report)
            elif args.command == "status":
                report = engine.run(names, keep=keep, dry_run=True)
            elif args.command == "import-tree":
                report = engine.run_full_tree(
                    upload=not args.no_upload, dry_run=args.dry_run
                )
            else:
                report = engine.fetch(sources, dry_run=args.dry_run)
        except PkgSourcesError as exc:
            logger.debug("Run aborted", exc_info=True)
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    _print_report(report, args.json)
    logger.debug("\n%s", report.summary())
    return 1 if report.failures else 0


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
