from __future__ import annotations

import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal


EntryKind = Literal["tree", "blob"]


@dataclass(slots=True)
class TreeEntry:
    name: str
    kind: EntryKind
    tree: Any

    @property
    def is_dir(self) -> bool:
        return self.kind == "tree"


@dataclass(slots=True)
class Plain:
    pass


@dataclass(slots=True)
class Pointer:
    key: str


@dataclass(slots=True)
class Symlink:
    target: str


Classification = Plain | Pointer | Symlink


@dataclass(slots=True)
class ResolvedContent:
    path: Path
    mode: int
    size: int


@dataclass(slots=True)
class StoreLayout:
    repo_root: Path
    bare: bool
    objects_dir: Path


@dataclass(slots=True)
class ArchiveEntry:
    path: str
    mode: int
    size: int | None
    link_target: str | None = None

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)


@dataclass(slots=True)
class ExportResult:
    target: Path
    archive_format: str
    file_count: int = 0
    directory_count: int = 0
    total_bytes: int = 0
    annexed_paths: list[str] = field(default_factory=list)
    skipped_paths: list[str] = field(default_factory=list)
