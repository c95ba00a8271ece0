"""
Module: cli
Purpose: Command-line interface entry point.
"""

import argparse
import os
import sys
from typing import Sequence

from . import detection, duplicates, import_engine, index, library, reporting, stats
from .cli_formatter import CLIFormatter, detect_terminal_capabilities
from .confirmation import confirm, is_interactive
from .exceptions import ConfirmationRequired, MediaHubError
from .models.importresult import COLLISION_POLICIES, STATUS_FAILED, STATUS_SKIPPED, ImportOptions
from .models.library import SOURCE_MEDIA_TYPES
from .models.snapshot import Snapshot
from .pipeline import (
    STATE_APPLIED,
    STATE_CANCELLED,
    STATE_DRY_RUN,
    STATE_NOTHING_TO_DO,
    StageReport,
    create_operation,
    run_staged_operation,
)
from .utils import (
    EXECUTOR_ENV,
    LIBRARY_ENV,
    MAX_WORKERS,
    WORKERS_ENV,
    configure_executor_mode,
    configure_workers,
    format_timestamp,
    human_readable_size,
    resolve_library_path,
)

MAX_LISTED_ITEMS = 20
CANCELLED_MESSAGE = "Operation cancelled."

_RUN_LOG_PATH: str | None = None


def _ensure_run_log_path() -> str:
    """
    Guarantee mediahub.log exists and return its absolute path.
    """
    global _RUN_LOG_PATH
    if _RUN_LOG_PATH:
        return _RUN_LOG_PATH
    _RUN_LOG_PATH = reporting.ensure_log_initialized()
    return _RUN_LOG_PATH


def _current_log_path() -> str:
    if _RUN_LOG_PATH:
        return _RUN_LOG_PATH
    return os.path.abspath(reporting.LOG_FILE_NAME)


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got '{value}'.") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got '{value}'.")
    return parsed


def _percent(value: float) -> str:
    return f"{value * 100:.2f}%"


def _emit_json(payload) -> None:
    sys.stdout.write(reporting.dumps(payload) + "\n")


def _confirmation_prompt(formatter: CLIFormatter):
    def _ask(message: str) -> str:
        return input(formatter.prompt(message))

    return _ask


def _render_failure_summary(
    formatter: CLIFormatter,
    *,
    status: str,
    reason: str,
    remediation: list[str],
    files_changed: str = "None",
    json_output: bool = False,
) -> None:
    log_path = _current_log_path()
    if json_output:
        _emit_json(
            {
                "status": status.lower(),
                "error": reason,
                "files_changed": files_changed,
                "remediation": remediation,
                "log": log_path,
            }
        )
        return
    formatter.failure_summary(
        title="STOP/BLOCKED" if status.upper() == "BLOCKED" else f"{status.upper()} SUMMARY",
        reason=reason,
        files_changed=files_changed,
        log_hint=formatter.link(log_path, "mediahub.log"),
        remediation=remediation,
    )


def _render_snapshot(formatter: CLIFormatter, snapshot: Snapshot) -> None:
    formatter.kv("Total entries", f"{snapshot.total_entries:,}")
    formatter.kv("With hash", f"{snapshot.entries_with_hash:,}")
    formatter.kv("Missing hash", f"{snapshot.entries_missing_hash:,}")
    formatter.kv("Hash coverage", formatter.coverage_bar(snapshot.hash_coverage))


def _gate_for_json(args) -> bool | None:
    """JSON output never prompts; it behaves like a non-interactive run."""
    if args.json:
        return False
    return is_interactive()


# --------------------------------------------------------------------- library
def _library_create_flow(args, formatter: CLIFormatter) -> int:
    metadata = library.create_library(args.path)
    if args.json:
        _emit_json(metadata.to_dict())
        return 0
    formatter.success("Library created")
    formatter.kv("Path", metadata.root_path)
    formatter.kv("Library ID", metadata.library_id)
    formatter.muted(f"Tip: export {LIBRARY_ENV}={metadata.root_path}")
    return 0


def _library_status_flow(args, formatter: CLIFormatter, root: str) -> int:
    metadata = library.open_library(root)
    statistics = stats.library_statistics(root)
    sources = library.list_sources(root)
    if args.json:
        payload = {"library": metadata.to_dict(), "statistics": statistics.to_dict(), "sources": len(sources)}
        _emit_json(payload)
        return 0
    formatter.section("Library status")
    formatter.kv("Library", root)
    formatter.kv("Library ID", metadata.library_id)
    formatter.kv("Attached sources", str(len(sources)))
    _render_snapshot(formatter, statistics.snapshot)
    formatter.kv("Total size", human_readable_size(statistics.total_size))
    formatter.section("By year", icon=None)
    for year, count in sorted(statistics.by_year.items()):
        formatter.kv(year, f"{count:,}")
    formatter.section("By media type", icon=None)
    for kind, count in sorted(statistics.by_media_type.items()):
        formatter.kv(kind, f"{count:,}")
    return 0


# ---------------------------------------------------------------------- source
def _source_attach_flow(args, formatter: CLIFormatter, root: str) -> int:
    source = library.attach_source(root, args.path, media_types=args.media_types)
    if args.json:
        _emit_json(source.to_dict())
        return 0
    formatter.success("Source attached")
    formatter.kv("Source ID", source.source_id)
    formatter.kv("Path", source.path)
    formatter.kv("Media types", source.effective_media_types)
    formatter.muted(f"Next: mediahub detect {source.source_id}")
    return 0


def _source_list_flow(args, formatter: CLIFormatter, root: str) -> int:
    library.open_library(root)
    sources = library.list_sources(root)
    if args.json:
        _emit_json([source.to_dict() for source in sources])
        return 0
    if not sources:
        formatter.line("No sources attached.")
        return 0
    formatter.section("Attached sources")
    for source in sources:
        last = format_timestamp(source.last_detected_at) if source.last_detected_at else "never"
        formatter.bullet(
            f"{source.source_id}  {source.path}  [{source.effective_media_types}]  (last detection: {last})"
        )
    return 0


# ---------------------------------------------------------------------- detect
def _detect_flow(args, formatter: CLIFormatter, root: str) -> int:
    result = detection.run_detection(root, args.source_id)
    if args.json:
        _emit_json(result.to_dict())
        return 0
    formatter.section("Detection")
    formatter.kv("Source", result.source_id)
    formatter.kv("Scanned", f"{result.summary.total_scanned:,}")
    formatter.kv("New", f"{result.summary.new_items:,}")
    formatter.kv("Known", f"{result.summary.known_items:,}")
    if result.hash_coverage is not None:
        formatter.kv("Library hash coverage", _percent(result.hash_coverage))
    new_items = result.new_candidates
    for candidate in new_items[:MAX_LISTED_ITEMS]:
        formatter.bullet(f"{formatter.label('NEW', level='success')} {candidate.item.path}")
    if len(new_items) > MAX_LISTED_ITEMS:
        formatter.muted(f"... and {len(new_items) - MAX_LISTED_ITEMS} more")
    if new_items:
        formatter.muted(f"Next: mediahub import {result.source_id} --all --dry-run")
    return 0


# ---------------------------------------------------------------------- import
def _render_import_items(formatter: CLIFormatter, items, *, preview: bool) -> None:
    labels = {
        "imported": ("WOULD IMPORT" if preview else "IMPORTED", "success"),
        "skipped": ("WOULD SKIP" if preview else "SKIPPED", "warn"),
        "failed": ("WOULD FAIL" if preview else "FAILED", "error"),
    }
    listed = 0
    for item in items:
        if not preview and item.status not in (STATUS_SKIPPED, STATUS_FAILED):
            continue
        if listed >= MAX_LISTED_ITEMS:
            formatter.muted("... more items in the import result file")
            break
        text, level = labels[item.status]
        target = f" -> {item.destination_path}" if item.destination_path else ""
        reason = f" ({item.reason})" if item.reason else ""
        formatter.bullet(f"{formatter.label(text, level=level)} {item.source_path}{target}{reason}")
        listed += 1


def _import_flow(args, formatter: CLIFormatter, root: str) -> int:
    if not args.all:
        raise MediaHubError("Select items to import with --all.")
    options = ImportOptions(collision_policy=args.collision_policy)
    operation = create_operation("import", library_root=root, source_id=args.source_id, options=options)
    report = run_staged_operation(
        operation,
        dry_run=args.dry_run,
        yes=args.yes,
        interactive=_gate_for_json(args),
        prompt=_confirmation_prompt(formatter),
        announce=formatter.line,
    )
    selection = report.selection
    if report.state == STATE_DRY_RUN:
        preview = import_engine.preview_import(root, selection.detection, selection.items, options)
        if args.json:
            _emit_json(
                {
                    "dry_run": True,
                    "source_id": args.source_id,
                    "collision_policy": options.collision_policy,
                    "items": [item.to_dict() for item in preview],
                }
            )
            return 0
        formatter.section("Import preview (dry run)")
        formatter.kv("Source", selection.source.path)
        formatter.kv("Items", f"{selection.candidate_count:,}")
        _render_import_items(formatter, preview, preview=True)
        formatter.muted("Dry run: no files copied, nothing recorded.")
        return 0
    if report.state == STATE_NOTHING_TO_DO:
        if args.json:
            _emit_json({"dry_run": False, "status": "nothing_to_do", "source_id": args.source_id})
        else:
            formatter.line("No new items to import.")
        return 0
    if report.state == STATE_CANCELLED:
        formatter.line(CANCELLED_MESSAGE)
        return 0

    applied = report.applied
    result = applied.result
    if args.json:
        payload = result.to_dict()
        payload.update(
            {
                "dry_run": False,
                "status": "degraded" if applied.degraded else "applied",
                "tracking_updated": applied.tracking_updated,
                "index_entries_added": applied.index_entries_added,
                "errors": applied.errors,
            }
        )
        _emit_json(payload)
        return 0
    formatter.section("Import")
    formatter.kv("Total", f"{result.summary.total:,}")
    formatter.kv("Imported", f"{result.summary.imported:,}")
    formatter.kv("Skipped", f"{result.summary.skipped:,}")
    formatter.kv("Failed", f"{result.summary.failed:,}")
    _render_import_items(formatter, result.items, preview=False)
    if applied.degraded:
        formatter.frame(
            "DEGRADED",
            ["Imported files are safe; tracking is stale."] + applied.errors,
        )
    elif result.summary.failed:
        formatter.warning(f"{result.summary.failed} item(s) failed; see mediahub.log.")
    else:
        formatter.success("Import complete")
    return 0


# ----------------------------------------------------------------------- index
def _index_hash_flow(args, formatter: CLIFormatter, root: str) -> int:
    operation = create_operation("index-hash", library_root=root, limit=args.limit)
    report = run_staged_operation(
        operation,
        dry_run=args.dry_run,
        yes=args.yes,
        interactive=_gate_for_json(args),
        prompt=_confirmation_prompt(formatter),
        announce=formatter.line,
    )
    if args.json:
        _emit_json(_index_hash_payload(root, report))
        return 0
    selection = report.selection
    if report.state == STATE_CANCELLED:
        formatter.line(CANCELLED_MESSAGE)
        return 0
    if report.state in (STATE_DRY_RUN, STATE_NOTHING_TO_DO):
        title = "Hash coverage (dry run)" if report.state == STATE_DRY_RUN else "Hash coverage"
        formatter.section(title)
        formatter.kv("Library", root)
        _render_snapshot(formatter, selection.snapshot)
        count = f"{selection.candidate_count:,}"
        if selection.limit is not None:
            count += f" (limited to {selection.limit})"
        formatter.kv("Files to hash", count)
        formatter.kv("Missing files", f"{selection.missing_files_count:,}")
        if report.state == STATE_DRY_RUN:
            formatter.muted("Dry run: no hashes computed, index unchanged.")
        else:
            formatter.success("Nothing to do: every indexed file already has a hash.")
        return 0

    outcome = report.outcome
    applied = report.applied
    formatter.section("Hash coverage")
    formatter.kv("Hashes computed", f"{outcome.computed_count:,}")
    formatter.kv("Failures", f"{outcome.failure_count:,}")
    formatter.kv("Entries updated", f"{applied.entries_updated:,}")
    formatter.kv("Index updated", "yes" if applied.index_updated else "no")
    formatter.kv(
        "Coverage",
        f"{_percent(applied.before.hash_coverage)} -> {_percent(report.after.hash_coverage)}",
    )
    if outcome.failure_count:
        formatter.warning(f"{outcome.failure_count} file(s) could not be hashed; see mediahub.log.")
    return 0


def _index_hash_payload(root: str, report: StageReport) -> dict:
    selection = report.selection
    payload = {
        "library": root,
        "dry_run": report.state == STATE_DRY_RUN,
        "status": report.state,
        "candidate_count": selection.candidate_count,
        "missing_files_count": selection.missing_files_count,
        "limit": selection.limit,
        "statistics": selection.snapshot.to_dict(),
    }
    if report.state == STATE_DRY_RUN:
        payload["candidates"] = list(selection.candidates)
    if report.state == STATE_APPLIED:
        payload.update(
            {
                "hashes_computed": report.outcome.computed_count,
                "hash_failures": report.outcome.failure_count,
                "entries_updated": report.applied.entries_updated,
                "index_updated": report.applied.index_updated,
                "before": report.applied.before.to_dict(),
                "after": report.after.to_dict(),
            }
        )
    return payload


def _index_rebuild_flow(args, formatter: CLIFormatter, root: str) -> int:
    library.open_library(root)
    proceed = confirm(
        f"Rebuild the index for {root}? [yes/no]: ",
        yes=args.yes,
        interactive=_gate_for_json(args),
        prompt=_confirmation_prompt(formatter),
    )
    if not proceed:
        formatter.line(CANCELLED_MESSAGE)
        return 0
    rebuilt = index.rebuild_index(root)
    snapshot = index.snapshot_of(rebuilt)
    if args.json:
        _emit_json({"library": root, "statistics": snapshot.to_dict()})
        return 0
    formatter.success("Index rebuilt")
    _render_snapshot(formatter, snapshot)
    return 0


# ------------------------------------------------------------------ duplicates
def _duplicates_flow(args, formatter: CLIFormatter, root: str) -> int:
    library.open_library(root)
    report = duplicates.analyze_duplicates(root)
    if args.json:
        _emit_json({"library": root, **report.to_dict()})
        return 0
    if args.csv:
        duplicates.write_duplicates_csv(report, sys.stdout)
        return 0
    formatter.section("Duplicate report")
    formatter.kv("Library", root)
    formatter.kv("Duplicate groups", f"{report.duplicate_groups:,}")
    formatter.kv("Duplicate files", f"{report.total_duplicate_files:,}")
    formatter.kv("Duplicate size", human_readable_size(report.total_duplicate_size))
    formatter.kv("Potential savings", human_readable_size(report.potential_savings))
    if report.entries_without_hash:
        formatter.warning(
            f"{report.entries_without_hash:,} indexed files have no hash and were not compared. "
            "Run 'mediahub index hash' first."
        )
    if not report.groups:
        formatter.line("No duplicates found.")
        return 0
    for group in report.groups[:MAX_LISTED_ITEMS]:
        formatter.section(
            f"{group.hash[:12]}  {group.file_count} files, {human_readable_size(group.total_size)}",
            icon=None,
        )
        for item in group.files:
            formatter.bullet(item.path)
    hidden = report.duplicate_groups - MAX_LISTED_ITEMS
    if hidden > 0:
        formatter.muted(f"... {hidden} more groups (use --json for the full list)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediahub",
        description="MediaHub CLI. Preview first, confirm, then change the library atomically.",
    )
    parser.add_argument(
        "--library",
        default=None,
        help=f"Library root. Also configurable via ${LIBRARY_ENV}.",
    )
    parser.add_argument(
        "--executor",
        choices=["auto", "process", "thread"],
        default=None,
        help=f"Executor mode for hashing: auto (default), process, or thread. Also configurable via ${EXECUTOR_ENV}.",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int,
        default=None,
        help=f"Worker count for hashing (1-{MAX_WORKERS}). Also configurable via ${WORKERS_ENV}.",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors.")
    parser.add_argument(
        "--plain",
        action="store_true",
        help="Plain mode: ASCII-only separators, no ANSI colors.",
    )
    parser.add_argument(
        "--theme",
        choices=["light", "dark"],
        default=None,
        help="Theme palette: light (default) or dark.",
    )
    parser.add_argument("--verbose", action="store_true", help="Print extra diagnostics.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    library_parser = subparsers.add_parser("library", help="Create or inspect a library")
    library_sub = library_parser.add_subparsers(dest="library_command", required=True)
    create_parser = library_sub.add_parser("create", help="Initialize a new library")
    create_parser.add_argument("path", help="Library root directory")
    create_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    status_parser = library_sub.add_parser("status", help="Show index statistics")
    status_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    source_parser = subparsers.add_parser("source", help="Manage attached sources")
    source_sub = source_parser.add_subparsers(dest="source_command", required=True)
    attach_parser = source_sub.add_parser("attach", help="Attach a folder as a source")
    attach_parser.add_argument("path", help="Source folder")
    attach_parser.add_argument(
        "--media-types",
        choices=list(SOURCE_MEDIA_TYPES),
        default=None,
        help="Media kinds to scan from this source (default: both)",
    )
    attach_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    list_parser = source_sub.add_parser("list", help="List attached sources")
    list_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    detect_parser = subparsers.add_parser(
        "detect",
        help="Scan a source for new items (read-only)",
        description="Detect is read-only for the source and the library files; it records a detection result.",
    )
    detect_parser.add_argument("source_id", help="Source identifier")
    detect_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    import_parser = subparsers.add_parser(
        "import",
        help="Import new items from the latest detection",
        description=(
            "Import copies the latest detection's new items into YYYY/MM folders.\n"
            "Use --dry-run to preview. Without --yes an interactive confirmation is required."
        ),
    )
    import_parser.add_argument("source_id", help="Source identifier")
    import_parser.add_argument("--all", action="store_true", help="Import all new items")
    import_parser.add_argument("--dry-run", action="store_true", help="Preview only; no changes")
    import_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    import_parser.add_argument(
        "--collision-policy",
        choices=list(COLLISION_POLICIES),
        default="skip",
        help="What to do when a destination already exists (default: skip)",
    )
    import_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    index_parser = subparsers.add_parser("index", help="Maintain the library index")
    index_sub = index_parser.add_subparsers(dest="index_command", required=True)
    hash_parser = index_sub.add_parser(
        "hash",
        help="Compute missing content hashes",
        description="Compute SHA-256 hashes for index entries that lack one and update the index atomically.",
    )
    hash_parser.add_argument("--dry-run", action="store_true", help="Preview only; no hashing")
    hash_parser.add_argument("--limit", type=_positive_int, default=None, help="Process at most N files")
    hash_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    hash_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    rebuild_parser = index_sub.add_parser("rebuild", help="Rescan library files into the index")
    rebuild_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    rebuild_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    duplicates_parser = subparsers.add_parser(
        "duplicates",
        help="Report indexed files that share a content hash (read-only)",
        description="Groups index entries by SHA-256. Files without a hash are not compared.",
    )
    duplicates_output = duplicates_parser.add_mutually_exclusive_group()
    duplicates_output.add_argument("--json", action="store_true", help="Emit JSON output")
    duplicates_output.add_argument("--csv", action="store_true", help="Emit one CSV row per duplicate file")
    return parser


def _dispatch(args, formatter: CLIFormatter) -> int:
    if args.command == "library" and args.library_command == "create":
        return _library_create_flow(args, formatter)
    root, source = resolve_library_path(args.library)
    formatter.verbose(f"Library {root} (from {source})")
    if args.command == "library":
        return _library_status_flow(args, formatter, root)
    if args.command == "source":
        if args.source_command == "attach":
            return _source_attach_flow(args, formatter, root)
        return _source_list_flow(args, formatter, root)
    if args.command == "detect":
        return _detect_flow(args, formatter, root)
    if args.command == "import":
        return _import_flow(args, formatter, root)
    if args.command == "duplicates":
        return _duplicates_flow(args, formatter, root)
    if args.index_command == "hash":
        return _index_hash_flow(args, formatter, root)
    return _index_rebuild_flow(args, formatter, root)


def main(argv: Sequence[str] | None = None):
    """
    Argument parser entry point.

    Args:
        argv: Arguments without the program name; defaults to sys.argv.

    Raises:
        SystemExit: With code 1 on failure and 2 when confirmation is required.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    formatter_config = detect_terminal_capabilities(
        plain_mode=args.plain,
        no_color_flag=args.no_color,
        stdout_isatty=sys.stdout.isatty(),
        theme_preference=args.theme,
    )
    formatter_config.verbose = args.verbose
    formatter = CLIFormatter(formatter_config)
    json_output = getattr(args, "json", False)

    _ensure_run_log_path()
    mode, mode_source = configure_executor_mode(args.executor)
    workers, workers_source = configure_workers(args.workers)
    formatter.verbose(f"Hashing executor: {mode} ({mode_source}), workers: {workers} ({workers_source})")

    command_label = " ".join(
        part
        for part in (
            args.command,
            getattr(args, "library_command", None),
            getattr(args, "source_command", None),
            getattr(args, "index_command", None),
        )
        if part
    )
    try:
        reporting.write_log([f"[INFO] Command {command_label} started"])
        exit_code = _dispatch(args, formatter)
    except KeyboardInterrupt:
        reporting.write_log(["[WARNING] Operation aborted via Ctrl+C"])
        _render_failure_summary(
            formatter,
            status="ABORTED",
            reason="Interrupted by user (Ctrl+C).",
            files_changed="Unknown; committed index is never partially written",
            remediation=["Re-run the command when ready."],
            json_output=json_output,
        )
        sys.exit(1)
    except ConfirmationRequired as exc:
        reporting.write_log([f"[WARNING] {exc}"])
        _render_failure_summary(
            formatter,
            status="BLOCKED",
            reason=str(exc),
            remediation=["Re-run with --yes, or run interactively to confirm."],
            json_output=json_output,
        )
        sys.exit(2)
    except MediaHubError as exc:
        reporting.write_log([f"[ERROR] {exc}"])
        _render_failure_summary(
            formatter,
            status="FAILED",
            reason=str(exc),
            files_changed="None; the committed index and library files are unchanged",
            remediation=[
                "Review the error message and mediahub.log for details.",
                "Address the reported issue, then rerun the command.",
            ],
            json_output=json_output,
        )
        sys.exit(1)
    reporting.write_log([f"[INFO] Command {command_label} finished"])
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
