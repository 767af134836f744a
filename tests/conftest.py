from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from dircontxt.models import DirNode, FileNode, Node


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch) -> Path:
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("dircontxt")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def mk_file(
    relpath: str,
    *,
    mtime: int = 0,
    size: int = 0,
    offset: int = 0,
    disk_path: Path | None = None,
) -> FileNode:
    return FileNode(
        relpath=relpath,
        mtime=mtime,
        offset=offset,
        size=size,
        disk_path=disk_path,
    )


def mk_dir(relpath: str, *children: Node, mtime: int = 0) -> DirNode:
    return DirNode(relpath=relpath, mtime=mtime, children=list(children))


def write_files(root: Path, files: dict[str, str | bytes]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for relpath, content in files.items():
        path = root / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def set_mtime(path: Path, mtime: int) -> None:
    os.utime(path, (mtime, mtime))


DEEP_LEVELS = 1100


@pytest.fixture
def deep_tree(tmp_path) -> Iterator[Path]:
    """``deep/a/a/.../a/f.txt``, deeper than the interpreter's recursion limit."""
    root = tmp_path / "deep"
    root.mkdir()
    leaf = root
    for _ in range(DEEP_LEVELS):
        leaf = leaf / "a"
        leaf.mkdir()
    (leaf / "f.txt").write_text("bottom\n", encoding="utf-8")
    yield root
    (leaf / "f.txt").unlink(missing_ok=True)
    while leaf != root:
        leaf.rmdir()
        leaf = leaf.parent
