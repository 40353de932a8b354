from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from annexarchive.errors import ContentNotFound, StoreLayoutError
from annexarchive.keypath import candidate_locations
from annexarchive.models import ResolvedContent, StoreLayout


logger = logging.getLogger(__name__)

ANNEX_OBJECTS_DIR = Path("annex") / "objects"


def _gitdir_from_file(dotgit: Path) -> Path:
    # Worktrees and submodules carry a `gitdir: <path>` pointer file.
    text = dotgit.read_text(encoding="utf-8").strip()
    if not text.startswith("gitdir:"):
        raise StoreLayoutError(f"unrecognised .git file: {dotgit}")
    gitdir = Path(text.split(":", 1)[1].strip())
    if not gitdir.is_absolute():
        gitdir = dotgit.parent / gitdir
    return gitdir.resolve()


def detect_store_layout(repo_root: str | Path) -> StoreLayout:
    root = Path(repo_root).resolve()
    dotgit = root / ".git"
    if dotgit.is_dir():
        return StoreLayout(repo_root=root, bare=False, objects_dir=dotgit / ANNEX_OBJECTS_DIR)
    if dotgit.is_file():
        gitdir = _gitdir_from_file(dotgit)
        return StoreLayout(repo_root=root, bare=False, objects_dir=gitdir / ANNEX_OBJECTS_DIR)
    if (root / "HEAD").is_file() and (root / "objects").is_dir():
        return StoreLayout(repo_root=root, bare=True, objects_dir=root / ANNEX_OBJECTS_DIR)
    raise StoreLayoutError(f"{root} is neither a bare nor a non-bare git repository")


class ContentLocator:
    """Resolves annex keys to object files inside one repository's store."""

    def __init__(self, layout: StoreLayout) -> None:
        self.layout = layout

    def candidates(self, key: str) -> list[Path]:
        return [
            self.layout.objects_dir / Path(location) / key
            for _, location in candidate_locations(key)
        ]

    def locate(self, key: str) -> ResolvedContent:
        if not key or "/" in key or key in {".", ".."}:
            raise ContentNotFound(key)

        probed = self.candidates(key)
        for path in probed:
            try:
                st = os.stat(path)
            except (FileNotFoundError, NotADirectoryError):
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            logger.debug("Resolved %s to %s", key, path)
            return ResolvedContent(path=path, mode=stat.S_IMODE(st.st_mode), size=st.st_size)

        raise ContentNotFound(key, probed)
