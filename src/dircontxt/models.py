from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path, PurePosixPath
from typing import ClassVar


class NodeType(IntEnum):
    # Values are the on-disk kind tags.
    FILE = 0
    DIR = 1

    @property
    def label(self) -> str:
        return "F" if self is NodeType.FILE else "D"


@dataclass
class FileNode:
    relpath: str
    mtime: int
    offset: int = 0
    size: int = 0
    disk_path: Path | None = None
    display_id: str | None = None

    node_type: ClassVar[NodeType] = NodeType.FILE

    @property
    def name(self) -> str:
        return PurePosixPath(self.relpath).name


@dataclass
class DirNode:
    relpath: str
    mtime: int
    children: list[Node] = field(default_factory=list)
    disk_path: Path | None = None
    display_id: str | None = None

    node_type: ClassVar[NodeType] = NodeType.DIR

    @property
    def name(self) -> str:
        return PurePosixPath(self.relpath).name

    def add_child(self, node: Node) -> None:
        if self.find_child(node.relpath) is not None:
            raise ValueError(f"duplicate entry {node.relpath!r} under {self.relpath!r}")
        self.children.append(node)

    def find_child(self, relpath: str) -> Node | None:
        for child in self.children:
            if child.relpath == relpath:
                return child
        return None


Node = FileNode | DirNode


def child_relpath(parent_relpath: str, name: str) -> str:
    return name if not parent_relpath else f"{parent_relpath}/{name}"


def iter_nodes(root: Node) -> Iterator[Node]:
    """Yield ``root`` and every descendant in pre-order."""
    stack: list[Node] = [root]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, DirNode):
            stack.extend(reversed(node.children))


def iter_files(root: Node) -> Iterator[FileNode]:
    for node in iter_nodes(root):
        if isinstance(node, FileNode):
            yield node


def index_by_path(root: Node) -> dict[str, Node]:
    return {node.relpath: node for node in iter_nodes(root)}


class RuleKind(str, Enum):
    BASENAME = "basename"
    FULL_PATH = "full_path"
    PATH_PREFIX = "path_prefix"
    NAME_SUFFIX = "name_suffix"


@dataclass(frozen=True)
class IgnoreRule:
    pattern: str
    kind: RuleKind
    dir_only: bool = False
    negated: bool = False


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class DiffEntry:
    change: ChangeType
    node_type: NodeType
    relpath: str


@dataclass
class DiffReport:
    entries: list[DiffEntry] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.entries)

    def add(self, change: ChangeType, node: Node) -> None:
        self.entries.append(DiffEntry(change, node.node_type, node.relpath))

    def by_change(self, change: ChangeType) -> list[DiffEntry]:
        return [entry for entry in self.entries if entry.change == change]

    def counts(self) -> dict[ChangeType, int]:
        counts = {change: 0 for change in ChangeType}
        for entry in self.entries:
            counts[entry.change] += 1
        return counts
