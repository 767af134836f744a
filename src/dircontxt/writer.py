from __future__ import annotations

import logging
import os
import shutil
import struct
import tempfile
from pathlib import Path
from typing import BinaryIO

from .config import ARCHIVE_SIGNATURE, MAX_PATH_LEN
from .errors import ArchiveWriteError
from .models import DirNode, FileNode, Node, iter_files, iter_nodes

logger = logging.getLogger(__name__)

# kind:u8, path_len:u16
NODE_PREFIX = struct.Struct("<BH")
# mtime:u64, offset:u64, size:u64
FILE_FIELDS = struct.Struct("<QQQ")
# mtime:u64, child_count:u32
DIR_FIELDS = struct.Struct("<QI")

COPY_BUFFER_SIZE = 1024 * 1024

_U64_MASK = (1 << 64) - 1
_I64_SIGN = 1 << 63


def encode_mtime(mtime: int) -> int:
    """Two's-complement u64 so pre-1970 timestamps fit the unsigned field."""
    return mtime & _U64_MASK


def decode_mtime(raw: int) -> int:
    return raw - (1 << 64) if raw & _I64_SIGN else raw


def encode_path(relpath: str) -> bytes:
    return relpath.encode("utf-8", "surrogateescape")


def _copy_file_into(node: FileNode, data_stream: BinaryIO) -> int:
    if node.disk_path is None:
        logger.error("No source for %s, recording it as empty", node.relpath)
        return 0
    copied = 0
    try:
        with open(node.disk_path, "rb") as src:
            while chunk := src.read(COPY_BUFFER_SIZE):
                data_stream.write(chunk)
                copied += len(chunk)
    except OSError as exc:
        logger.error("Cannot read %s: %s. Recording it as empty.", node.disk_path, exc)
        data_stream.seek(-copied, os.SEEK_CUR)
        data_stream.truncate()
        return 0
    return copied


def collect_content(root: DirNode, data_stream: BinaryIO) -> int:
    """Pass 1: stream file bytes in pre-order and annotate offsets and sizes."""
    for node in iter_files(root):
        node.offset = data_stream.tell()
        node.size = _copy_file_into(node, data_stream)
        logger.debug("Stored %s at offset %d (%d bytes)", node.relpath, node.offset, node.size)
    return data_stream.tell()


def serialize_node(node: Node) -> bytes:
    path_bytes = encode_path(node.relpath)
    if len(path_bytes) > MAX_PATH_LEN:
        raise ArchiveWriteError(
            f"Path {node.relpath!r} is {len(path_bytes)} bytes, limit is {MAX_PATH_LEN}"
        )
    prefix = NODE_PREFIX.pack(int(node.node_type), len(path_bytes)) + path_bytes
    if isinstance(node, FileNode):
        return prefix + FILE_FIELDS.pack(encode_mtime(node.mtime), node.offset, node.size)
    return prefix + DIR_FIELDS.pack(encode_mtime(node.mtime), len(node.children))


def serialize_header(root: DirNode, header_stream: BinaryIO) -> None:
    """Pass 2: one record per node in pre-order; children follow their directory."""
    for node in iter_nodes(root):
        header_stream.write(serialize_node(node))


def write_archive(path: Path, root: DirNode) -> int:
    """Write ``root`` to ``path`` and return the content section length.

    The destination is replaced only once the whole archive has been
    assembled next to it.
    """
    if not isinstance(root, DirNode):
        raise ArchiveWriteError("Archive root must be a directory")

    path = Path(path)
    with tempfile.TemporaryFile() as data_stream, tempfile.TemporaryFile() as header_stream:
        logger.info("Pass 1: collecting file content")
        try:
            content_length = collect_content(root, data_stream)
        except OSError as exc:
            raise ArchiveWriteError(f"Cannot buffer file content: {exc}") from exc
        logger.info("Pass 1 complete: %d bytes of content", content_length)

        logger.info("Pass 2: serializing header")
        try:
            serialize_header(root, header_stream)
        except OSError as exc:
            raise ArchiveWriteError(f"Cannot buffer archive header: {exc}") from exc

        _assemble(path, header_stream, data_stream)

    logger.info("Wrote archive %s", path)
    return content_length


def _assemble(path: Path, header_stream: BinaryIO, data_stream: BinaryIO) -> None:
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
    except OSError as exc:
        raise ArchiveWriteError(f"Cannot create archive next to {path}: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as out:
            out.write(ARCHIVE_SIGNATURE)
            header_stream.seek(0)
            shutil.copyfileobj(header_stream, out)
            data_stream.seek(0)
            shutil.copyfileobj(data_stream, out)
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise ArchiveWriteError(f"Cannot write archive {path}: {exc}") from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
