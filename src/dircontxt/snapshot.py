from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .clipboard import copy_to_clipboard
from .compare import diff_snapshots
from .config import AppConfig, OutputMode, global_ignore_path, load_app_config
from .errors import ArchiveFormatError, ArchiveReadError
from .excludes import load_ignore_rules
from .models import DiffReport, DirNode, iter_files
from .reader import open_archive
from .render import render_diff, render_snapshot_text, write_text_file
from .scanner import LocalScanner, ProgressCallback
from .versioning import FIRST_VERSION, OutputPaths, next_version, parse_version_from_file
from .writer import write_archive

logger = logging.getLogger(__name__)


@dataclass
class SnapshotResult:
    target: Path
    version: str
    previous_version: str | None
    paths: OutputPaths
    files: int
    content_bytes: int
    report: DiffReport | None = None
    scan_errors: list[tuple[Path, OSError]] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    copied_to_clipboard: bool = False


def _previous_version(paths: OutputPaths) -> str | None:
    if not paths.archive.exists():
        if paths.snapshot.exists():
            logger.warning(
                "Found %s but its archive %s is missing; starting a new snapshot",
                paths.snapshot,
                paths.archive,
            )
        return None
    if not paths.snapshot.exists():
        return None
    version = parse_version_from_file(paths.snapshot)
    if version is None:
        logger.error("Could not parse version, starting over with %s", FIRST_VERSION)
        return FIRST_VERSION
    return version


def _diff_against_previous(archive_path: Path, new_root: DirNode) -> DiffReport | None:
    try:
        with open_archive(archive_path) as archive:
            return diff_snapshots(archive, new_root)
    except (ArchiveFormatError, ArchiveReadError) as exc:
        logger.error("Cannot read previous archive %s: %s. Old state ignored.", archive_path, exc)
        return None


def _remove_stale(path: Path | None) -> None:
    if path is not None and path.exists():
        path.unlink()
        logger.info("Removed %s", path)


def take_snapshot(
    target: Path,
    *,
    clipboard: bool = False,
    config: AppConfig | None = None,
    global_ignore: Path | None = None,
    progress_cb: ProgressCallback | None = None,
) -> SnapshotResult:
    """Capture ``target``, diff it against the previous capture and write outputs."""
    target = target.expanduser().resolve()
    config = config if config is not None else load_app_config()
    global_ignore = global_ignore if global_ignore is not None else global_ignore_path()

    previous_version = _previous_version(OutputPaths.for_target(target))
    version = next_version(previous_version) if previous_version else FIRST_VERSION
    paths = OutputPaths.for_target(target, version)
    logger.info("Snapshot version for %s: %s", target, version)

    rules = load_ignore_rules(target, paths.names, global_ignore)
    scanner = LocalScanner(target)
    new_root = scanner.scan(rules, progress_cb=progress_cb)

    report = None
    if previous_version is not None:
        logger.info("Comparing with %s", previous_version)
        report = _diff_against_previous(paths.archive, new_root)

    content_bytes = write_archive(paths.archive, new_root)
    result = SnapshotResult(
        target=target,
        version=version,
        previous_version=previous_version,
        paths=paths,
        files=sum(1 for _ in iter_files(new_root)),
        content_bytes=content_bytes,
        report=report,
        scan_errors=list(scanner.errors),
        written=[paths.archive],
    )

    if clipboard:
        with open_archive(paths.archive) as archive:
            text = render_snapshot_text(archive, version)
        try:
            copy_to_clipboard(text)
        finally:
            paths.archive.unlink(missing_ok=True)
            result.written.remove(paths.archive)
        result.copied_to_clipboard = True
        return result

    if config.output_mode == OutputMode.BINARY:
        logger.info("Binary-only mode, skipping text output")
        _remove_stale(paths.snapshot)
        _remove_stale(paths.diff)
        return result

    with open_archive(paths.archive) as archive:
        if report is not None and report.has_changes and paths.diff is not None:
            with open(paths.diff, "w", encoding="utf-8", newline="\n") as fh:
                render_diff(fh, report, archive, previous_version or FIRST_VERSION, version)
            result.written.append(paths.diff)
            logger.info("Wrote diff %s", paths.diff)
        elif report is not None:
            logger.info("No changes since %s", previous_version)
        write_text_file(paths.snapshot, render_snapshot_text(archive, version))
        result.written.append(paths.snapshot)
    logger.info("Wrote snapshot %s", paths.snapshot)
    return result
