from __future__ import annotations

from pathlib import Path


class ArchiveError(RuntimeError):
    """Base class for failures while exporting a tree to an archive."""


class TreeReadError(ArchiveError):
    pass


class StoreLayoutError(ArchiveError):
    pass


class EncodeError(ArchiveError):
    pass


class ContentNotFound(ArchiveError):
    def __init__(self, key: str, candidates: list[Path] | tuple[Path, ...] = (), path: str | None = None) -> None:
        self.key = key
        self.candidates = tuple(candidates)
        self.path = path
        where = f" for {path!r}" if path else ""
        super().__init__(f"content file not found{where}: {key!r}")
