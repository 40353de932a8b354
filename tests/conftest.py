from __future__ import annotations

import hashlib
import io
import stat
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pygit2
import pytest

from annexarchive.errors import TreeReadError
from annexarchive.keypath import hashdir_mixed
from annexarchive.models import StoreLayout, TreeEntry


# ---------------------------------------------------------------------------
# In-memory tree provider
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class FakeBlob:
    data: bytes
    symlink: bool = False


@dataclass(eq=False)
class FakeTree:
    children: dict[str, "FakeTree | FakeBlob"] = field(default_factory=dict)
    broken: bool = False


class TrackingStream(io.BytesIO):
    def __init__(self, data: bytes) -> None:
        super().__init__(data)
        self.bytes_read = 0

    def read(self, size: int | None = -1) -> bytes:
        data = super().read(size)
        self.bytes_read += len(data)
        return data


class FakeProvider:
    def __init__(self) -> None:
        self.streams: list[TrackingStream] = []

    def list_entries(self, tree: FakeTree) -> list[TreeEntry]:
        if tree.broken:
            raise TreeReadError("listing failed")
        return [
            TreeEntry(name=name, kind="tree" if isinstance(child, FakeTree) else "blob", tree=tree)
            for name, child in tree.children.items()
        ]

    def sub_tree(self, tree: FakeTree, name: str) -> FakeTree:
        return tree.children[name]  # type: ignore[return-value]

    def blob(self, entry: TreeEntry) -> FakeBlob:
        return entry.tree.children[entry.name]

    def is_symlink(self, blob: FakeBlob) -> bool:
        return blob.symlink

    def open_content(self, blob: FakeBlob) -> TrackingStream:
        stream = TrackingStream(blob.data)
        self.streams.append(stream)
        return stream

    def size(self, blob: FakeBlob) -> int:
        return len(blob.data)


def link(target: str) -> FakeBlob:
    return FakeBlob(target.encode(), symlink=True)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


# ---------------------------------------------------------------------------
# Annex content store
# ---------------------------------------------------------------------------

def annex_key(data: bytes, suffix: str = ".dat") -> str:
    return f"SHA256E-s{len(data)}--{hashlib.sha256(data).hexdigest()}{suffix}"


def put_object(
    objects_dir: Path,
    key: str,
    data: bytes,
    *,
    mode: int = 0o444,
    scheme: Callable[[str], str] = hashdir_mixed,
) -> Path:
    path = objects_dir / scheme(key) / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    path.chmod(mode)
    return path


@pytest.fixture
def store(tmp_path: Path) -> StoreLayout:
    root = tmp_path / "repo"
    objects_dir = root / ".git" / "annex" / "objects"
    objects_dir.mkdir(parents=True)
    return StoreLayout(repo_root=root, bare=False, objects_dir=objects_dir)


# ---------------------------------------------------------------------------
# Real git repositories
# ---------------------------------------------------------------------------

@dataclass
class GitLink:
    target: str


def _write_tree(repo: pygit2.Repository, node: dict) -> pygit2.Oid:
    builder = repo.TreeBuilder()
    for name, value in node.items():
        if isinstance(value, dict):
            builder.insert(name, _write_tree(repo, value), pygit2.GIT_FILEMODE_TREE)
        elif isinstance(value, GitLink):
            builder.insert(name, repo.create_blob(value.target.encode()), pygit2.GIT_FILEMODE_LINK)
        else:
            builder.insert(name, repo.create_blob(value), pygit2.GIT_FILEMODE_BLOB)
    return builder.write()


def commit_tree(repo: pygit2.Repository, files: dict, message: str = "Add files") -> pygit2.Oid:
    signature = pygit2.Signature("Archive Tests", "tests@example.org")
    tree_id = _write_tree(repo, files)
    parents = [] if repo.head_is_unborn else [repo.head.target]
    return repo.create_commit("HEAD", signature, signature, message, tree_id, parents)


@pytest.fixture
def make_git_repo(tmp_path: Path):
    def _make(files: dict, *, name: str = "repo", bare: bool = False) -> pygit2.Repository:
        path = tmp_path / name
        repo = pygit2.init_repository(str(path), bare=bare)
        commit_tree(repo, files)
        return repo

    return _make


# ---------------------------------------------------------------------------
# Archive readers
# ---------------------------------------------------------------------------

@dataclass
class ExtractedEntry:
    mode: int
    data: bytes | None = None
    link_target: str | None = None
    is_dir: bool = False


def read_zip(path: Path) -> dict[str, ExtractedEntry]:
    entries: dict[str, ExtractedEntry] = {}
    with zipfile.ZipFile(path) as zf:
        for info in zf.infolist():
            mode = info.external_attr >> 16
            if info.is_dir():
                entries[info.filename] = ExtractedEntry(mode=mode, is_dir=True)
            elif stat.S_ISLNK(mode):
                entries[info.filename] = ExtractedEntry(mode=mode, link_target=zf.read(info).decode())
            else:
                entries[info.filename] = ExtractedEntry(mode=mode, data=zf.read(info))
    return entries


def read_tar(path: Path) -> dict[str, ExtractedEntry]:
    entries: dict[str, ExtractedEntry] = {}
    with tarfile.open(path, "r:gz") as tf:
        for member in tf.getmembers():
            if member.isdir():
                entries[member.name] = ExtractedEntry(mode=member.mode, is_dir=True)
            elif member.issym():
                entries[member.name] = ExtractedEntry(mode=member.mode, link_target=member.linkname)
            else:
                fh = tf.extractfile(member)
                assert fh is not None
                entries[member.name] = ExtractedEntry(mode=member.mode, data=fh.read())
    return entries


READERS = {"zip": read_zip, "tar": read_tar}
