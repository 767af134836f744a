from __future__ import annotations

import logging
from typing import BinaryIO

from .config import VERIFY_CHUNK_SIZE
from .errors import ArchiveReadError
from .models import (
    ChangeType,
    DiffReport,
    DirNode,
    FileNode,
    Node,
    index_by_path,
    iter_nodes,
)
from .reader import Archive

logger = logging.getLogger(__name__)


def _is_modified(old: Node, new: Node) -> bool:
    if old.node_type != new.node_type:
        return True
    if isinstance(old, FileNode) and isinstance(new, FileNode):
        return old.size != new.size or old.mtime != new.mtime
    # Directory timestamps are not trusted; children are compared instead.
    return False


def _compare_dirs(old_root: DirNode, new_root: DirNode, report: DiffReport) -> None:
    # Frames hold the index of the next new-side child; entries stay in depth-first order.
    pending: list[tuple[DirNode, DirNode, int]] = [(old_root, new_root, 0)]
    while pending:
        old_dir, new_dir, index = pending.pop()
        if index < len(new_dir.children):
            pending.append((old_dir, new_dir, index + 1))
            new_child = new_dir.children[index]
            old_child = old_dir.find_child(new_child.relpath)
            if old_child is None:
                report.add(ChangeType.ADDED, new_child)
                continue
            if _is_modified(old_child, new_child):
                report.add(ChangeType.MODIFIED, new_child)
            if isinstance(old_child, DirNode) and isinstance(new_child, DirNode):
                pending.append((old_child, new_child, 0))
            continue

        for old_child in old_dir.children:
            if new_dir.find_child(old_child.relpath) is None:
                report.add(ChangeType.REMOVED, old_child)


def _report_whole_tree(root: Node, change: ChangeType, report: DiffReport) -> None:
    for node in iter_nodes(root):
        if node is not root:
            report.add(change, node)


def compare_trees(old_root: DirNode | None, new_root: DirNode | None) -> DiffReport:
    """Structural diff of two snapshots based on type, size and mtime."""
    report = DiffReport()
    if old_root is None and new_root is None:
        return report
    if old_root is None:
        _report_whole_tree(new_root, ChangeType.ADDED, report)
    elif new_root is None:
        _report_whole_tree(old_root, ChangeType.REMOVED, report)
    else:
        _compare_dirs(old_root, new_root, report)
    return report


def _read_exactly(fp: BinaryIO, size: int) -> bytes:
    parts = []
    remaining = size
    while remaining > 0:
        chunk = fp.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


def same_content(
    archive: Archive,
    old_node: FileNode,
    new_node: FileNode,
    chunk_size: int = VERIFY_CHUNK_SIZE,
) -> bool:
    """Compare archived bytes with the live file, chunk by chunk.

    Any I/O failure counts as "different" so the change is kept.
    """
    if new_node.disk_path is None:
        return False
    try:
        with open(new_node.disk_path, "rb") as disk:
            for archived in archive.iter_chunks(old_node, chunk_size):
                if _read_exactly(disk, len(archived)) != archived:
                    return False
            return disk.read(1) == b""
    except (OSError, ArchiveReadError) as exc:
        logger.warning("Cannot verify content of %s: %s", new_node.relpath, exc)
        return False


def verify_modified(
    report: DiffReport,
    archive: Archive,
    new_root: DirNode,
    chunk_size: int = VERIFY_CHUNK_SIZE,
) -> DiffReport:
    """Drop Modified files whose bytes turn out identical (touch-only changes)."""
    old_index = index_by_path(archive.root)
    new_index = index_by_path(new_root)
    verified = DiffReport()
    suppressed = 0
    for entry in report.entries:
        if entry.change == ChangeType.MODIFIED:
            old_node = old_index.get(entry.relpath)
            new_node = new_index.get(entry.relpath)
            if (
                isinstance(old_node, FileNode)
                and isinstance(new_node, FileNode)
                and old_node.size == new_node.size
                and same_content(archive, old_node, new_node, chunk_size)
            ):
                logger.debug("Content unchanged for %s, ignoring mtime change", entry.relpath)
                suppressed += 1
                continue
        verified.entries.append(entry)
    if suppressed:
        logger.info("Suppressed %d metadata-only changes", suppressed)
    return verified


def diff_snapshots(
    archive: Archive | None,
    new_root: DirNode,
    chunk_size: int = VERIFY_CHUNK_SIZE,
) -> DiffReport:
    if archive is None:
        return compare_trees(None, new_root)
    report = compare_trees(archive.root, new_root)
    return verify_modified(report, archive, new_root, chunk_size)
