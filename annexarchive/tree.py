from __future__ import annotations

import logging
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Protocol

import pygit2

from annexarchive.errors import TreeReadError
from annexarchive.models import TreeEntry


logger = logging.getLogger(__name__)


class TreeProvider(Protocol):
    def list_entries(self, tree: Any) -> list[TreeEntry]: ...

    def sub_tree(self, tree: Any, name: str) -> Any: ...

    def blob(self, entry: TreeEntry) -> Any: ...

    def is_symlink(self, blob: Any) -> bool: ...

    def open_content(self, blob: Any) -> BinaryIO: ...

    def size(self, blob: Any) -> int: ...


@dataclass(slots=True)
class GitBlob:
    name: str
    blob: pygit2.Blob
    filemode: int


class GitTreeProvider:
    """Tree provider over a pygit2 repository, listing entries in git order."""

    def __init__(self, repo: pygit2.Repository) -> None:
        self.repo = repo

    def list_entries(self, tree: pygit2.Tree) -> list[TreeEntry]:
        entries: list[TreeEntry] = []
        try:
            for obj in tree:
                if obj.type_str == "tree":
                    entries.append(TreeEntry(name=obj.name, kind="tree", tree=tree))
                elif obj.type_str == "blob":
                    entries.append(TreeEntry(name=obj.name, kind="blob", tree=tree))
                else:
                    # Submodule commits have no content in this repository.
                    logger.debug("Skipping %s entry %s", obj.type_str, obj.name)
        except (pygit2.GitError, KeyError, ValueError) as exc:
            raise TreeReadError(f"failed to list tree {tree.id}: {exc}") from exc
        return entries

    def sub_tree(self, tree: pygit2.Tree, name: str) -> pygit2.Tree:
        try:
            obj = tree[name]
            if obj.type_str != "tree":
                raise TreeReadError(f"{name!r} is not a tree in {tree.id}")
            return self.repo[obj.id]
        except (pygit2.GitError, KeyError, ValueError) as exc:
            raise TreeReadError(f"failed to read sub-tree {name!r} of {tree.id}: {exc}") from exc

    def blob(self, entry: TreeEntry) -> GitBlob:
        try:
            obj = entry.tree[entry.name]
            blob = self.repo[obj.id]
        except (pygit2.GitError, KeyError, ValueError) as exc:
            raise TreeReadError(f"failed to read blob {entry.name!r}: {exc}") from exc
        if not isinstance(blob, pygit2.Blob):
            raise TreeReadError(f"{entry.name!r} is not a blob")
        return GitBlob(name=entry.name, blob=blob, filemode=int(obj.filemode))

    def is_symlink(self, blob: GitBlob) -> bool:
        return stat.S_ISLNK(blob.filemode)

    def open_content(self, blob: GitBlob) -> BinaryIO:
        return pygit2.BlobIO(blob.blob)

    def size(self, blob: GitBlob) -> int:
        return int(blob.blob.size)


def open_repository(path: str | Path) -> pygit2.Repository:
    try:
        return pygit2.Repository(str(path))
    except pygit2.GitError as exc:
        raise TreeReadError(f"{path} does not appear to be a git repository") from exc


def resolve_commit(repo: pygit2.Repository, ref: str = "HEAD") -> pygit2.Commit:
    try:
        return repo.revparse_single(ref).peel(pygit2.Commit)
    except (KeyError, ValueError, pygit2.GitError) as exc:
        raise TreeReadError(f"failed to resolve {ref!r} to a commit: {exc}") from exc


def repository_root(repo: pygit2.Repository) -> Path:
    return Path(repo.workdir) if repo.workdir else Path(repo.path)
