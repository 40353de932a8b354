from __future__ import annotations

import stat
from pathlib import Path

import pytest

from conftest import READERS, GitLink, annex_key, commit_tree, put_object

from annexarchive.errors import ContentNotFound, TreeReadError
from annexarchive.exporter import export_repository
from annexarchive.keypath import hashdir_lower, hashdir_mixed
from annexarchive.tree import GitTreeProvider, open_repository, resolve_commit


README = b"readme\n"
UNLOCKED = b"unlocked annexed content\n" * 1000
LOCKED = b"locked annexed content\n" * 2000
UNLOCKED_KEY = annex_key(UNLOCKED, ".dat")
LOCKED_KEY = annex_key(LOCKED, ".bin")


def _files() -> dict:
    return {
        "README": README,
        "unlocked.dat": f"/annex/objects/{UNLOCKED_KEY}\n".encode(),
        "locked.bin": GitLink(f".git/annex/objects/{hashdir_mixed(LOCKED_KEY)}/{LOCKED_KEY}"),
        "link.lnk": GitLink("README"),
        "sub": {"nested.txt": b"nested\n"},
    }


@pytest.fixture
def annex_repo(make_git_repo):
    repo = make_git_repo(_files())
    objects_dir = Path(repo.workdir) / ".git" / "annex" / "objects"
    put_object(objects_dir, UNLOCKED_KEY, UNLOCKED, mode=0o444)
    put_object(objects_dir, LOCKED_KEY, LOCKED, mode=0o640)
    return repo


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

def test_provider_lists_entries_in_git_order(annex_repo):
    provider = GitTreeProvider(annex_repo)
    tree = resolve_commit(annex_repo).tree
    entries = provider.list_entries(tree)

    assert [entry.name for entry in entries] == ["README", "link.lnk", "locked.bin", "sub", "unlocked.dat"]
    assert [entry.is_dir for entry in entries] == [False, False, False, True, False]


def test_provider_blob_access(annex_repo):
    provider = GitTreeProvider(annex_repo)
    tree = resolve_commit(annex_repo).tree
    by_name = {entry.name: entry for entry in provider.list_entries(tree)}

    readme = provider.blob(by_name["README"])
    assert provider.is_symlink(readme) is False
    assert provider.size(readme) == len(README)
    with provider.open_content(readme) as stream:
        assert stream.read() == README

    assert provider.is_symlink(provider.blob(by_name["link.lnk"])) is True

    sub = provider.sub_tree(tree, "sub")
    assert [entry.name for entry in provider.list_entries(sub)] == ["nested.txt"]


def test_sub_tree_rejects_blob(annex_repo):
    provider = GitTreeProvider(annex_repo)
    with pytest.raises(TreeReadError):
        provider.sub_tree(resolve_commit(annex_repo).tree, "README")


def test_open_repository_rejects_plain_directory(tmp_path):
    with pytest.raises(TreeReadError):
        open_repository(tmp_path)


def test_resolve_unknown_ref(annex_repo):
    with pytest.raises(TreeReadError):
        resolve_commit(annex_repo, "no-such-branch")


# ---------------------------------------------------------------------------
# Repository export
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("archive_format", ["zip", "tar"])
def test_export_non_bare_repository(annex_repo, tmp_path, archive_format):
    target = tmp_path / f"export.{archive_format}"
    result = export_repository(annex_repo.workdir, archive_format=archive_format, target=target)

    entries = READERS[archive_format](target)
    assert entries["README"].data == README
    assert entries["unlocked.dat"].data == UNLOCKED
    assert stat.S_IMODE(entries["unlocked.dat"].mode) == 0o444
    assert entries["locked.bin"].data == LOCKED
    assert stat.S_IMODE(entries["locked.bin"].mode) == 0o640
    assert entries["link.lnk"].link_target == "README"
    assert entries["sub/nested.txt"].data == b"nested\n"
    assert sorted(result.annexed_paths) == ["locked.bin", "unlocked.dat"]


def test_default_target_is_next_to_repository(annex_repo, tmp_path):
    commit_id = str(resolve_commit(annex_repo).id)
    result = export_repository(annex_repo.workdir)

    expected = tmp_path.resolve() / f"{commit_id[:6]}.zip"
    assert result.target == expected
    assert expected.is_file()


def test_directory_target_receives_default_name(annex_repo, tmp_path):
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    commit_id = str(resolve_commit(annex_repo).id)

    result = export_repository(annex_repo.workdir, archive_format="tar", target=out_dir)

    assert result.target == out_dir / f"{commit_id[:6]}.tar.gz"
    assert result.target.is_file()


def test_export_older_ref(annex_repo, tmp_path):
    first = str(resolve_commit(annex_repo).id)
    commit_tree(annex_repo, {"README": b"second version\n"}, message="Replace tree")
    target = tmp_path / "old.zip"
    export_repository(annex_repo.workdir, ref=first, target=target)

    assert READERS["zip"](target)["README"].data == README


def test_export_bare_repository(make_git_repo, tmp_path):
    repo = make_git_repo(
        {"README": README, "unlocked.dat": f"/annex/objects/{UNLOCKED_KEY}\n".encode()},
        name="bare.git",
        bare=True,
    )
    put_object(Path(repo.path) / "annex" / "objects", UNLOCKED_KEY, UNLOCKED, scheme=hashdir_lower)
    target = tmp_path / "bare.tar.gz"

    result = export_repository(repo.path, archive_format="tar", target=target)

    entries = READERS["tar"](target)
    assert entries["unlocked.dat"].data == UNLOCKED
    assert result.annexed_paths == ["unlocked.dat"]


def test_missing_object_in_repository(make_git_repo, tmp_path):
    repo = make_git_repo({"unlocked.dat": f"/annex/objects/{UNLOCKED_KEY}\n".encode()})
    target = tmp_path / "missing.zip"
    with pytest.raises(ContentNotFound):
        export_repository(repo.workdir, target=target)
    assert not target.exists()


def test_export_bad_ref(annex_repo, tmp_path):
    with pytest.raises(TreeReadError):
        export_repository(annex_repo.workdir, ref="refs/heads/nope", target=tmp_path / "x.zip")
    assert not (tmp_path / "x.zip").exists()


def test_document_mentioning_annex_path_is_plain(make_git_repo, tmp_path):
    notes = b"Objects in /annex/objects are big.\nSee docs.\n"
    repo = make_git_repo({"NOTES.md": notes})
    target = tmp_path / "notes.zip"

    result = export_repository(repo.workdir, target=target)

    assert READERS["zip"](target)["NOTES.md"].data == notes
    assert result.annexed_paths == []
