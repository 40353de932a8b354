"""Streaming archive writers.

Each encoder owns its target file and the format writers stacked on top of
it. They are acquired through an ``ExitStack`` and released in reverse order
exactly once, whether the export finishes or fails half way.
"""

from __future__ import annotations

import gzip
import stat
import tarfile
import time
import zipfile
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO

from annexarchive.errors import EncodeError
from annexarchive.models import ArchiveEntry


CHUNK_SIZE = 10240
DEFAULT_FILE_MODE = 0o660
DIRECTORY_MODE = 0o755
MSDOS_DIRECTORY_FLAG = 0x10
UNIX_CREATE_SYSTEM = 3

ARCHIVE_FORMATS = {
    "zip": ".zip",
    "tar": ".tar.gz",
}


class ArchiveEncoder:
    supports_directories = False

    def __init__(
        self,
        target: str | Path,
        *,
        mtime: float | None = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self.target = Path(target)
        self.mtime = time.time() if mtime is None else mtime
        self.chunk_size = chunk_size
        self._stack = ExitStack()
        self._closed = False
        try:
            self._open(self._stack)
        except OSError as exc:
            self._stack.close()
            raise EncodeError(f"failed to create archive {self.target}: {exc}") from exc

    def _open(self, stack: ExitStack) -> None:
        raise NotImplementedError

    def write_entry(self, entry: ArchiveEntry, stream: BinaryIO | None = None) -> int:
        raise NotImplementedError

    def write_directory(self, path: str) -> None:
        return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._stack.close()
        except OSError as exc:
            raise EncodeError(f"failed to finalize archive {self.target}: {exc}") from exc

    def __enter__(self) -> "ArchiveEncoder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._closed:
            return
        if exc_type is None:
            self.close()
            return
        self._closed = True
        self._stack.__exit__(exc_type, exc, tb)


class ZipEncoder(ArchiveEncoder):
    supports_directories = True

    def _open(self, stack: ExitStack) -> None:
        fh = stack.enter_context(self.target.open("wb"))
        self._zip = stack.enter_context(zipfile.ZipFile(fh, mode="w", compression=zipfile.ZIP_DEFLATED))
        self._date_time = time.localtime(self.mtime)[:6]

    def _info(self, name: str, mode: int) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(name, date_time=self._date_time)
        info.create_system = UNIX_CREATE_SYSTEM
        info.external_attr = mode << 16
        return info

    def write_directory(self, path: str) -> None:
        info = self._info(path.rstrip("/") + "/", stat.S_IFDIR | DIRECTORY_MODE)
        info.external_attr |= MSDOS_DIRECTORY_FLAG
        try:
            self._zip.writestr(info, b"")
        except OSError as exc:
            raise EncodeError(f"failed to write directory {path!r}: {exc}") from exc

    def write_entry(self, entry: ArchiveEntry, stream: BinaryIO | None = None) -> int:
        if entry.is_symlink:
            info = self._info(entry.path, stat.S_IFLNK | stat.S_IMODE(entry.mode))
            data = (entry.link_target or "").encode("utf-8", errors="surrogateescape")
            try:
                self._zip.writestr(info, data, compress_type=zipfile.ZIP_STORED)
            except OSError as exc:
                raise EncodeError(f"failed to write symlink {entry.path!r}: {exc}") from exc
            return len(data)

        if stream is None:
            raise EncodeError(f"no content stream for {entry.path!r}")

        info = self._info(entry.path, stat.S_IFREG | stat.S_IMODE(entry.mode))
        info.compress_type = zipfile.ZIP_DEFLATED
        if entry.size is not None:
            # Only a zip64 hint; the real size is taken from the stream.
            info.file_size = entry.size
        written = 0
        try:
            with self._zip.open(info, mode="w", force_zip64=entry.size is None) as dst:
                while True:
                    chunk = stream.read(self.chunk_size)
                    if not chunk:
                        break
                    dst.write(chunk)
                    written += len(chunk)
        except (OSError, zipfile.LargeZipFile) as exc:
            raise EncodeError(f"failed to write {entry.path!r}: {exc}") from exc
        return written


class TarGzEncoder(ArchiveEncoder):
    def _open(self, stack: ExitStack) -> None:
        fh = stack.enter_context(self.target.open("wb"))
        gz = stack.enter_context(gzip.GzipFile(fileobj=fh, mode="wb", mtime=int(self.mtime)))
        self._tar = stack.enter_context(
            tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT, copybufsize=self.chunk_size)
        )

    def _info(self, entry: ArchiveEntry) -> tarfile.TarInfo:
        info = tarfile.TarInfo(entry.path)
        info.mtime = int(self.mtime)
        info.mode = stat.S_IMODE(entry.mode)
        return info

    def write_entry(self, entry: ArchiveEntry, stream: BinaryIO | None = None) -> int:
        info = self._info(entry)
        if entry.is_symlink:
            info.type = tarfile.SYMTYPE
            info.linkname = entry.link_target or ""
            try:
                self._tar.addfile(info)
            except OSError as exc:
                raise EncodeError(f"failed to write symlink {entry.path!r}: {exc}") from exc
            return 0

        if entry.size is None:
            raise EncodeError(f"size of {entry.path!r} must be known before writing a tar header")
        if stream is None:
            raise EncodeError(f"no content stream for {entry.path!r}")

        info.type = tarfile.REGTYPE
        info.size = entry.size
        try:
            self._tar.addfile(info, stream)
        except OSError as exc:
            raise EncodeError(f"failed to write {entry.path!r}: {exc}") from exc
        return entry.size


ENCODERS: dict[str, type[ArchiveEncoder]] = {
    "zip": ZipEncoder,
    "tar": TarGzEncoder,
}


def open_encoder(
    archive_format: str,
    target: str | Path,
    *,
    mtime: float | None = None,
    chunk_size: int = CHUNK_SIZE,
) -> ArchiveEncoder:
    try:
        encoder_cls = ENCODERS[archive_format]
    except KeyError:
        raise ValueError(
            f"Unsupported archive type {archive_format!r}. Use one of: {', '.join(ENCODERS)}."
        ) from None
    return encoder_cls(target, mtime=mtime, chunk_size=chunk_size)
