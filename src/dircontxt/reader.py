from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .config import ARCHIVE_SIGNATURE, MAX_PATH_LEN, VERIFY_CHUNK_SIZE
from .errors import ArchiveFormatError, ArchiveReadError
from .models import DirNode, FileNode, Node, NodeType, iter_files
from .writer import DIR_FIELDS, FILE_FIELDS, NODE_PREFIX, decode_mtime

logger = logging.getLogger(__name__)


def _read_exact(fp: BinaryIO, size: int, what: str) -> bytes:
    data = fp.read(size)
    if len(data) != size:
        raise ArchiveFormatError(
            f"Unexpected end of archive while reading {what} "
            f"(wanted {size} bytes, got {len(data)})"
        )
    return data


def _read_record(fp: BinaryIO) -> tuple[Node, int]:
    """Read one node record; returns the node and its declared child count."""
    kind, path_len = NODE_PREFIX.unpack(_read_exact(fp, NODE_PREFIX.size, "node kind"))
    if path_len > MAX_PATH_LEN:
        raise ArchiveFormatError(f"Path length {path_len} exceeds {MAX_PATH_LEN}")
    relpath = _read_exact(fp, path_len, "node path").decode("utf-8", "surrogateescape")

    if kind == NodeType.FILE:
        mtime, offset, size = FILE_FIELDS.unpack(
            _read_exact(fp, FILE_FIELDS.size, f"file record for {relpath!r}")
        )
        return FileNode(relpath=relpath, mtime=decode_mtime(mtime), offset=offset, size=size), 0
    if kind == NodeType.DIR:
        mtime, child_count = DIR_FIELDS.unpack(
            _read_exact(fp, DIR_FIELDS.size, f"directory record for {relpath!r}")
        )
        return DirNode(relpath=relpath, mtime=decode_mtime(mtime)), child_count
    raise ArchiveFormatError(f"Unknown node kind {kind} for {relpath!r}")


def _check_child(parent: DirNode, node: Node, seen: set[str]) -> None:
    prefix = f"{parent.relpath}/" if parent.relpath else ""
    name = node.relpath[len(prefix) :]
    if not node.relpath.startswith(prefix) or not name or "/" in name or name in {".", ".."}:
        raise ArchiveFormatError(
            f"Entry {node.relpath!r} is not a direct child of {parent.relpath!r}"
        )
    if name in seen:
        raise ArchiveFormatError(f"Duplicate entry {node.relpath!r} under {parent.relpath!r}")
    seen.add(name)


def parse_header(fp: BinaryIO) -> tuple[DirNode, int]:
    signature = fp.read(len(ARCHIVE_SIGNATURE))
    if signature != ARCHIVE_SIGNATURE:
        raise ArchiveFormatError(
            f"Invalid archive signature {signature!r}, expected {ARCHIVE_SIGNATURE!r}"
        )
    root, child_count = _read_record(fp)
    if not isinstance(root, DirNode):
        raise ArchiveFormatError("Archive root is not a directory")
    if root.relpath:
        raise ArchiveFormatError(f"Archive root has a non-empty path {root.relpath!r}")

    # Records are pre-order; each open directory tracks how many children remain.
    pending: list[tuple[DirNode, int, set[str]]] = [(root, child_count, set())]
    while pending:
        parent, remaining, seen = pending.pop()
        if remaining == 0:
            continue
        pending.append((parent, remaining - 1, seen))
        node, child_count = _read_record(fp)
        _check_child(parent, node, seen)
        parent.children.append(node)
        if isinstance(node, DirNode):
            pending.append((node, child_count, set()))
    return root, fp.tell()


def _open(path: Path) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as exc:
        raise ArchiveReadError(f"Cannot open archive {path}: {exc}") from exc


def _check_bounds(root: DirNode, content_length: int) -> None:
    for node in iter_files(root):
        if node.offset + node.size > content_length:
            raise ArchiveFormatError(
                f"Content of {node.relpath!r} ({node.offset}+{node.size}) lies "
                f"outside the {content_length}-byte content section"
            )


def read_header(path: Path) -> tuple[DirNode, int]:
    """Parse the archive tree without touching file contents.

    Returns the root and the absolute offset where the content section starts.
    """
    with _open(path) as fp:
        root, data_offset = parse_header(fp)
        content_length = os.fstat(fp.fileno()).st_size - data_offset
    _check_bounds(root, content_length)
    logger.debug("Parsed header of %s, content starts at %d", path, data_offset)
    return root, data_offset


def read_file_content(
    fp: BinaryIO,
    data_offset: int,
    node: Node,
    capacity: int | None = None,
) -> bytes:
    if not isinstance(node, FileNode):
        raise ArchiveReadError(f"{node.relpath!r} is not a file")
    if capacity is not None and capacity < node.size:
        raise ArchiveReadError(
            f"Buffer too small for {node.relpath!r}: need {node.size}, got {capacity}"
        )
    try:
        fp.seek(data_offset + node.offset)
        data = fp.read(node.size)
    except OSError as exc:
        raise ArchiveReadError(f"Cannot read content of {node.relpath!r}: {exc}") from exc
    if len(data) != node.size:
        raise ArchiveReadError(
            f"Short read for {node.relpath!r}: expected {node.size} bytes, got {len(data)}"
        )
    return data


@dataclass
class Archive:
    path: Path
    fp: BinaryIO
    root: DirNode
    data_offset: int

    @property
    def content_length(self) -> int:
        return os.fstat(self.fp.fileno()).st_size - self.data_offset

    def read(self, node: Node) -> bytes:
        return read_file_content(self.fp, self.data_offset, node)

    def iter_chunks(
        self, node: FileNode, chunk_size: int = VERIFY_CHUNK_SIZE
    ) -> Iterator[bytes]:
        remaining = node.size
        position = self.data_offset + node.offset
        while remaining > 0:
            self.fp.seek(position)
            chunk = self.fp.read(min(chunk_size, remaining))
            if not chunk:
                raise ArchiveReadError(f"Unexpected end of content for {node.relpath!r}")
            remaining -= len(chunk)
            position += len(chunk)
            yield chunk


@contextmanager
def open_archive(path: Path) -> Iterator[Archive]:
    path = Path(path)
    with _open(path) as fp:
        root, data_offset = parse_header(fp)
        archive = Archive(path=path, fp=fp, root=root, data_offset=data_offset)
        _check_bounds(root, archive.content_length)
        yield archive
