from __future__ import annotations

import io
import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import TextIO

from .errors import ArchiveReadError
from .models import (
    ChangeType,
    DiffReport,
    DirNode,
    FileNode,
    Node,
    index_by_path,
    iter_files,
    iter_nodes,
)
from .reader import Archive
from .text_utils import decode_content, normalize_text
from .versioning import snapshot_header

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 512
BINARY_NON_PRINTABLE_RATIO = 0.20

BINARY_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff", ".ico",
        ".mp3", ".wav", ".aac", ".ogg", ".flac", ".mp4", ".mov",
        ".avi", ".mkv", ".webm", ".exe", ".dll", ".so", ".dylib",
        ".o", ".a", ".lib", ".zip", ".gz", ".tar", ".bz2",
        ".rar", ".7z", ".pdf", ".doc", ".docx", ".xls", ".xlsx",
        ".ppt", ".pptx", ".bin", ".dat", ".iso", ".img", ".class",
        ".jar", ".pyc", ".sqlite", ".db",
    }
)  # fmt: skip

INSTRUCTIONS = """<INSTRUCTIONS>
1. Manifest: The "DIRECTORY_TREE" section below lists all files and directories.
   - Each entry: [TYPE] RELATIVE_PATH (ID:UNIQUE_ID, MOD:UNIX_TIMESTAMP, SIZE:BYTES)
   - TYPE is [D] for directory, [F] for file.
   - SIZE is for files only.
   - Binary files may be noted with (CONTENT:BINARY_HINT or CONTENT:BINARY_PLACEHOLDER).
2. Content Access: To read a specific file:
   - Find its UNIQUE_ID from the DIRECTORY_TREE.
   - Search for the marker: <FILE_CONTENT_START ID="UNIQUE_ID">
   - The content is between this marker and <FILE_CONTENT_END ID="UNIQUE_ID">
</INSTRUCTIONS>
"""

_PRINTABLE = frozenset(range(0x20, 0x7F)) | {0x09, 0x0A, 0x0D}


def is_likely_binary(data: bytes) -> bool:
    sample = data[:BINARY_SNIFF_BYTES]
    if not sample:
        return False
    if b"\x00" in sample:
        return True
    non_printable = sum(1 for byte in sample if byte not in _PRINTABLE)
    return non_printable / len(sample) > BINARY_NON_PRINTABLE_RATIO


def has_binary_extension(relpath: str) -> bool:
    return PurePosixPath(relpath).suffix.lower() in BINARY_EXTENSIONS


def assign_display_ids(root: DirNode) -> None:
    """Give every node a manifest ID: ROOT, then D###/F### in pre-order."""
    root.display_id = "ROOT"
    for counter, node in enumerate(iter_nodes(root)):
        if node is not root:
            node.display_id = f"{node.node_type.label}{counter:03d}"


def _write_manifest(out: TextIO, root: DirNode) -> None:
    pending: list[tuple[Node, int]] = [(root, 0)]
    while pending:
        node, depth = pending.pop()
        indent = "  " * depth
        path = normalize_text(node.relpath)
        if isinstance(node, DirNode):
            out.write(f"{indent}[D] {path} (ID:{node.display_id}, MOD:{node.mtime})\n")
            pending.extend((child, depth + 1) for child in reversed(node.children))
            continue
        hint = ", CONTENT:BINARY_HINT" if has_binary_extension(node.relpath) else ""
        out.write(
            f"{indent}[F] {path} (ID:{node.display_id}, MOD:{node.mtime}, SIZE:{node.size}{hint})\n"
        )


def _write_body(out: TextIO, archive: Archive, node: FileNode) -> None:
    if node.size == 0:
        return
    try:
        data = archive.read(node)
    except ArchiveReadError as exc:
        logger.error("Cannot read %s from %s: %s", node.relpath, archive.path, exc)
        out.write("[ERROR: Could not read file content from .dircontxt binary]\n")
        return
    if is_likely_binary(data):
        out.write(f"[BINARY CONTENT PLACEHOLDER - Size: {node.size} bytes]\n")
        return
    text = decode_content(data)
    out.write(text)
    if not text.endswith("\n"):
        out.write("\n")


def _write_content_block(out: TextIO, archive: Archive, node: FileNode) -> None:
    path = normalize_text(node.relpath)
    if node.display_id:
        out.write(f'\n<FILE_CONTENT_START ID="{node.display_id}" PATH="{path}">\n')
        _write_body(out, archive, node)
        out.write(f'</FILE_CONTENT_END ID="{node.display_id}">\n')
    else:
        out.write(f'\n<FILE_CONTENT_START PATH="{path}">\n')
        _write_body(out, archive, node)
        out.write(f'</FILE_CONTENT_END PATH="{path}">\n')


def render_snapshot(out: TextIO, archive: Archive, version: str) -> None:
    root = archive.root
    assign_display_ids(root)
    out.write(f"{snapshot_header(version)}\n\n")
    out.write(INSTRUCTIONS)
    out.write("\n<DIRECTORY_TREE>\n")
    _write_manifest(out, root)
    out.write("</DIRECTORY_TREE>\n")
    for node in iter_files(root):
        _write_content_block(out, archive, node)
    out.write("\n[END_DIRCONTXT_LLM_SNAPSHOT]\n")


def render_diff(
    out: TextIO,
    report: DiffReport,
    archive: Archive,
    old_version: str,
    new_version: str,
) -> None:
    """Change summary plus the current bodies of added and modified files."""
    out.write(f"[DIRCONTXT_LLM_DIFF_{old_version}_TO_{new_version}]\n\n")
    out.write("<CHANGE_SUMMARY>\n")
    for entry in report.entries:
        out.write(
            f"[{entry.change.value.upper()}] [{entry.node_type.label}] "
            f"{normalize_text(entry.relpath)}\n"
        )
    out.write("</CHANGE_SUMMARY>\n")

    index = index_by_path(archive.root)
    for entry in report.entries:
        if entry.change == ChangeType.REMOVED:
            continue
        node = index.get(entry.relpath)
        if isinstance(node, FileNode):
            _write_content_block(out, archive, node)
    out.write("\n[END_DIRCONTXT_LLM_DIFF]\n")


def render_snapshot_text(archive: Archive, version: str) -> str:
    buffer = io.StringIO()
    render_snapshot(buffer, archive, version)
    return buffer.getvalue()


def write_text_file(path: Path, text: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
