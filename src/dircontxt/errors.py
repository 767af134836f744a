from __future__ import annotations


class DircontxtError(Exception):
    """Base class for fatal snapshot errors."""


class WalkError(DircontxtError):
    pass


class ArchiveWriteError(DircontxtError):
    pass


class ArchiveFormatError(DircontxtError):
    """The archive header is malformed or truncated."""


class ArchiveReadError(DircontxtError):
    pass


class ClipboardError(DircontxtError):
    pass
