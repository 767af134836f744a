from __future__ import annotations

import logging
import os
import stat
import time
from collections.abc import Callable
from pathlib import Path

from .errors import WalkError
from .excludes import IgnoreRules
from .models import DirNode, FileNode, child_relpath

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


class LocalScanner:
    def __init__(self, root: Path) -> None:
        self.root = root.expanduser().resolve()
        self.errors: list[tuple[Path, OSError]] = []
        self._dirs_scanned = 0
        self._files_seen = 0
        self._last_progress = 0.0

    def scan(
        self,
        rules: IgnoreRules | None = None,
        progress_cb: ProgressCallback | None = None,
    ) -> DirNode:
        """Walk the root depth-first and return the in-memory tree.

        File contents are not read; each node records its ``disk_path`` and
        the stat size for the writer and the diff engine.
        """
        try:
            st = self.root.stat()
        except OSError as exc:
            raise WalkError(f"Cannot stat target directory {self.root}: {exc}") from exc
        if not stat.S_ISDIR(st.st_mode):
            raise WalkError(f"Target path {self.root} is not a directory")

        rules = rules if rules is not None else IgnoreRules()
        self.errors = []
        self._dirs_scanned = 0
        self._files_seen = 0

        root_node = DirNode(relpath="", mtime=int(st.st_mtime), disk_path=self.root)
        logger.info("Scanning %s", self.root)
        try:
            entries = self._list_dir(self.root)
        except OSError as exc:
            raise WalkError(f"Cannot open target directory {self.root}: {exc}") from exc
        self._walk(root_node, entries, rules, progress_cb)

        if progress_cb is not None:
            progress_cb("", self._dirs_scanned, self._files_seen)
        logger.info(
            "Scan finished: %d directories, %d files, %d errors",
            self._dirs_scanned,
            self._files_seen,
            len(self.errors),
        )
        return root_node

    def _list_dir(self, path: Path) -> list[os.DirEntry[str]]:
        with os.scandir(path) as it:
            return list(it)

    def _walk(
        self,
        root_node: DirNode,
        root_entries: list[os.DirEntry[str]],
        rules: IgnoreRules,
        progress_cb: ProgressCallback | None,
    ) -> None:
        # Explicit stack: depth is bounded by the filesystem, not the interpreter.
        pending: list[tuple[DirNode, list[os.DirEntry[str]] | None]] = [(root_node, root_entries)]
        while pending:
            parent, entries = pending.pop()
            if entries is None:
                try:
                    entries = self._list_dir(parent.disk_path)
                except OSError as exc:
                    logger.error("Cannot open directory %s: %s", parent.disk_path, exc)
                    self.errors.append((parent.disk_path, exc))
                    continue
            self._dirs_scanned += 1
            self._report(parent.relpath, progress_cb)

            subdirs: list[DirNode] = []
            for entry in entries:
                name = entry.name
                if name in {".", ".."}:
                    continue
                relpath = child_relpath(parent.relpath, name)
                disk_path = Path(entry.path)
                try:
                    st = entry.stat(follow_symlinks=False)
                except OSError as exc:
                    logger.error("Cannot stat %s: %s. Skipping.", disk_path, exc)
                    self.errors.append((disk_path, exc))
                    continue

                is_dir = stat.S_ISDIR(st.st_mode)
                if not is_dir and not stat.S_ISREG(st.st_mode):
                    logger.debug("Skipping special entry %s", disk_path)
                    continue

                match_path = f"{relpath}/" if is_dir else relpath
                if rules.is_ignored(match_path, name, is_dir):
                    logger.debug("Ignoring %s", relpath)
                    continue

                if not is_dir:
                    self._files_seen += 1
                    parent.add_child(
                        FileNode(
                            relpath=relpath,
                            mtime=int(st.st_mtime),
                            size=st.st_size,
                            disk_path=disk_path,
                        )
                    )
                    continue

                child = DirNode(relpath=relpath, mtime=int(st.st_mtime), disk_path=disk_path)
                parent.add_child(child)
                subdirs.append(child)

            # Reversed so the first subdirectory is walked next.
            pending.extend((child, None) for child in reversed(subdirs))

    def _report(self, relpath: str, progress_cb: ProgressCallback | None) -> None:
        if progress_cb is None:
            return
        now = time.monotonic()
        if (now - self._last_progress) >= 0.2:
            progress_cb(relpath, self._dirs_scanned, self._files_seen)
            self._last_progress = now
