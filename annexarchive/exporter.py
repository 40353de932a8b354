from __future__ import annotations

import logging
import os
import stat
import time
from pathlib import Path
from typing import Any, BinaryIO, Literal

from annexarchive.detector import classify
from annexarchive.encoders import (
    ARCHIVE_FORMATS,
    CHUNK_SIZE,
    DEFAULT_FILE_MODE,
    ArchiveEncoder,
    open_encoder,
)
from annexarchive.errors import ArchiveError, ContentNotFound
from annexarchive.filters import PathFilter
from annexarchive.locator import ContentLocator, detect_store_layout
from annexarchive.models import ArchiveEntry, ExportResult, Pointer, StoreLayout, Symlink
from annexarchive.transfer_ui import ExportProgressUI, ProgressFileReader
from annexarchive.tree import (
    GitTreeProvider,
    TreeProvider,
    open_repository,
    repository_root,
    resolve_commit,
)
from annexarchive.walker import walk_tree


logger = logging.getLogger(__name__)

MissingPolicy = Literal["strict", "skip"]
MISSING_POLICIES = ("strict", "skip")
PARTIAL_SUFFIX = ".partial"


def _check_format(archive_format: str) -> None:
    if archive_format not in ARCHIVE_FORMATS:
        raise ValueError(
            f"Unsupported archive type {archive_format!r}. Use one of: {', '.join(ARCHIVE_FORMATS)}."
        )


def default_archive_name(commit_id: str, archive_format: str) -> str:
    _check_format(archive_format)
    return f"{commit_id[:6]}{ARCHIVE_FORMATS[archive_format]}"


class Exporter:
    """Writes one tree into one archive, replacing annex references by their content.

    Missing annex content aborts the export by default (``missing="strict"``).
    With ``missing="skip"`` the entry is left out, a warning is logged and the
    path is reported in ``ExportResult.skipped_paths``.

    The archive is written next to the target under a ``.partial`` name and
    only renamed into place once the encoder closed cleanly, so a failed
    export never leaves a truncated archive at ``target``.
    """

    def __init__(
        self,
        provider: TreeProvider,
        layout: StoreLayout,
        *,
        missing: MissingPolicy = "strict",
        path_filter: PathFilter | None = None,
        progress: ExportProgressUI | None = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        if missing not in MISSING_POLICIES:
            raise ValueError(f"Invalid missing-content policy {missing!r}. Use 'strict' or 'skip'.")
        self.provider = provider
        self.layout = layout
        self.locator = ContentLocator(layout)
        self.missing = missing
        self.path_filter = path_filter or PathFilter()
        self.progress = progress
        self.chunk_size = chunk_size

    def export(self, tree: Any, target: str | Path, archive_format: str = "zip") -> ExportResult:
        _check_format(archive_format)
        target = Path(target)
        partial = target.with_name(target.name + PARTIAL_SUFFIX)
        result = ExportResult(target=target, archive_format=archive_format)
        exported_at = time.time()

        logger.info("Exporting to %s (%s)", target, archive_format)
        try:
            with open_encoder(
                archive_format, partial, mtime=exported_at, chunk_size=self.chunk_size
            ) as encoder:

                def _on_directory(path: str) -> None:
                    if encoder.supports_directories and self.path_filter.matches(path, is_dir=True):
                        encoder.write_directory(path)
                        result.directory_count += 1

                def _on_blob(path: str, blob: Any) -> None:
                    self._add_blob(encoder, path, blob, result)

                walk_tree(self.provider, tree, _on_blob, _on_directory)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        os.replace(partial, target)
        logger.info(
            "Wrote %d file(s), %d directories, %d byte(s) to %s",
            result.file_count,
            result.directory_count,
            result.total_bytes,
            target,
        )
        return result

    def _add_blob(self, encoder: ArchiveEncoder, path: str, blob: Any, result: ExportResult) -> None:
        if not self.path_filter.matches(path):
            logger.debug("Filtered out %s", path)
            return

        classification = classify(self.provider, blob)

        if isinstance(classification, Symlink):
            target = classification.target
            entry = ArchiveEntry(
                path=path,
                mode=stat.S_IFLNK | DEFAULT_FILE_MODE,
                size=len(target.encode("utf-8", errors="surrogateescape")),
                link_target=target,
            )
            logger.debug("%s: symlink -> %s", path, target)
            self._write(encoder, entry, None, result)
            return

        if isinstance(classification, Pointer):
            key = classification.key
            try:
                content = self.locator.locate(key)
            except ContentNotFound as exc:
                if self.missing == "skip":
                    logger.warning("Skipping %s: content file not found for key %s", path, key)
                    result.skipped_paths.append(path)
                    return
                raise ContentNotFound(key, exc.candidates, path=path) from exc

            logger.debug("%s: annexed %s -> %s", path, key, content.path)
            entry = ArchiveEntry(path=path, mode=stat.S_IFREG | content.mode, size=content.size)
            try:
                stream = content.path.open("rb")
            except OSError as exc:
                raise ArchiveError(f"failed to open content file {content.path}: {exc}") from exc
            with stream:
                self._write(encoder, entry, stream, result)
            result.annexed_paths.append(path)
            return

        entry = ArchiveEntry(
            path=path,
            mode=stat.S_IFREG | DEFAULT_FILE_MODE,
            size=self.provider.size(blob),
        )
        with self.provider.open_content(blob) as stream:
            self._write(encoder, entry, stream, result)

    def _write(
        self,
        encoder: ArchiveEncoder,
        entry: ArchiveEntry,
        stream: BinaryIO | None,
        result: ExportResult,
    ) -> None:
        handle = None
        if self.progress is not None and stream is not None:
            handle = self.progress.add_entry(action="Adding", path=entry.path, total_bytes=entry.size)
            stream = ProgressFileReader(stream, progress=self.progress, handle=handle)

        try:
            written = encoder.write_entry(entry, stream)
        except ArchiveError:
            if handle is not None:
                self.progress.fail(handle)
            raise

        if handle is not None:
            self.progress.complete(handle, written)
        result.file_count += 1
        result.total_bytes += written


def export_repository(
    repo_path: str | Path,
    *,
    ref: str = "HEAD",
    archive_format: str = "zip",
    target: str | Path | None = None,
    missing: MissingPolicy = "strict",
    path_filter: PathFilter | None = None,
    progress: ExportProgressUI | None = None,
    chunk_size: int = CHUNK_SIZE,
) -> ExportResult:
    """Export ``ref`` of the repository at ``repo_path``.

    Without an explicit ``target`` the archive is named after the first six
    characters of the commit id and placed in the repository's parent
    directory. A ``target`` that is an existing directory receives the archive
    under that default name.
    """
    _check_format(archive_format)
    repo = open_repository(repo_path)
    root = repository_root(repo)
    layout = detect_store_layout(root)
    commit = resolve_commit(repo, ref)

    archive_name = default_archive_name(str(commit.id), archive_format)
    if target is None:
        target = root.resolve().parent / archive_name
    elif Path(target).is_dir():
        target = Path(target) / archive_name

    exporter = Exporter(
        GitTreeProvider(repo),
        layout,
        missing=missing,
        path_filter=path_filter,
        progress=progress,
        chunk_size=chunk_size,
    )
    return exporter.export(commit.tree, target, archive_format)
