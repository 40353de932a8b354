from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from annexarchive.encoders import ZipEncoder
from annexarchive.errors import ArchiveError
from annexarchive.exporter import PARTIAL_SUFFIX
from annexarchive.filters import PathFilter, build_path_filter
from annexarchive.models import ArchiveEntry, ExportResult


logger = logging.getLogger(__name__)


def _add_directory(
    encoder: ZipEncoder,
    root: Path,
    directory: Path,
    path_filter: PathFilter,
    result: ExportResult,
    skip: frozenset[Path],
) -> None:
    for child in sorted(directory.iterdir(), key=lambda p: p.name):
        if child in skip:
            continue
        relative_path = child.relative_to(root).as_posix()
        st = child.lstat()
        if not path_filter.matches(relative_path, is_dir=stat.S_ISDIR(st.st_mode)):
            logger.debug("Excluded %s", relative_path)
            continue

        if stat.S_ISLNK(st.st_mode):
            target = os.readlink(child)
            encoder.write_entry(
                ArchiveEntry(
                    path=relative_path,
                    mode=st.st_mode,
                    size=len(os.fsencode(target)),
                    link_target=target,
                )
            )
            result.file_count += 1
        elif stat.S_ISDIR(st.st_mode):
            encoder.write_directory(relative_path)
            result.directory_count += 1
            _add_directory(encoder, root, child, path_filter, result, skip)
        elif stat.S_ISREG(st.st_mode):
            entry = ArchiveEntry(path=relative_path, mode=st.st_mode, size=st.st_size)
            with child.open("rb") as stream:
                result.total_bytes += encoder.write_entry(entry, stream)
            result.file_count += 1
        else:
            logger.debug("Skipping special file %s", relative_path)


def make_zip(
    source: str | Path,
    target: str | Path,
    exclude: list[str] | tuple[str, ...] = (),
) -> ExportResult:
    """Zip the directory ``source`` into ``target``.

    Directories whose name appears in ``exclude`` are left out together with
    everything below them, at any depth. Archive paths are relative to
    ``source``. The zip is built under a ``.partial`` name and moved onto
    ``target`` only when complete, so a failure leaves an existing ``target``
    as it was.
    """
    root = Path(source).resolve()
    if not root.is_dir():
        raise ArchiveError(f"{root} does not appear to be a directory")

    target = Path(target).resolve()
    path_filter = build_path_filter(exclude_names=exclude)
    result = ExportResult(target=target, archive_format="zip")

    partial = target.with_name(target.name + PARTIAL_SUFFIX)
    try:
        with ZipEncoder(partial) as encoder:
            _add_directory(encoder, root, root, path_filter, result, frozenset({target, partial}))
    except BaseException:
        partial.unlink(missing_ok=True)
        raise

    os.replace(partial, target)
    return result
