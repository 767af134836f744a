from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .config import ARCHIVE_SUFFIX, SNAPSHOT_SUFFIX

logger = logging.getLogger(__name__)

FIRST_VERSION = "V1"
SNAPSHOT_HEADER_PREFIX = "[DIRCONTXT_LLM_SNAPSHOT_"
SNAPSHOT_HEADER_SUFFIX = "]"

_MINOR_RE = re.compile(r"^V(\d+)\.(\d+)")
_MAJOR_RE = re.compile(r"^V(\d+)")


def snapshot_header(version: str) -> str:
    return f"{SNAPSHOT_HEADER_PREFIX}{version}{SNAPSHOT_HEADER_SUFFIX}"


def parse_version_from_file(path: Path) -> str | None:
    """Extract ``V1.2`` from a snapshot file's first line."""
    try:
        with open(path, encoding="utf-8", errors="replace") as fh:
            first_line = fh.readline().strip()
    except OSError:
        return None

    if first_line.startswith(SNAPSHOT_HEADER_PREFIX):
        rest = first_line[len(SNAPSHOT_HEADER_PREFIX) :]
        end = rest.find(SNAPSHOT_HEADER_SUFFIX)
        if end > 0:
            return rest[:end]
    logger.error("Cannot parse version header from %s", path)
    return None


def next_version(old_version: str) -> str:
    match = _MINOR_RE.match(old_version)
    if match:
        return f"V{int(match.group(1))}.{int(match.group(2)) + 1}"
    match = _MAJOR_RE.match(old_version)
    if match:
        return f"V{int(match.group(1))}.1"
    logger.error("Unrecognized version format %r, restarting at %s", old_version, FIRST_VERSION)
    return FIRST_VERSION


@dataclass(frozen=True)
class OutputPaths:
    archive: Path
    snapshot: Path
    diff: Path | None

    @classmethod
    def for_target(cls, target: Path, version: str = "") -> OutputPaths:
        """Artifacts live next to the target directory, named after it."""
        name = target.name or "root"
        parent = target.parent
        diff = None
        if "." in version:
            diff = parent / f"{name}.llmcontext-{version}-diff.txt"
        return cls(
            archive=parent / f"{name}{ARCHIVE_SUFFIX}",
            snapshot=parent / f"{name}{SNAPSHOT_SUFFIX}",
            diff=diff,
        )

    @property
    def names(self) -> tuple[str, ...]:
        return (self.archive.name, self.snapshot.name)
