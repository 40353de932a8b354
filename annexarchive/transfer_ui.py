from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)


@dataclass(slots=True)
class EntryTaskHandle:
    task_id: TaskID
    path: str
    total: int | None


def _shorten_path(path: str, max_len: int = 64) -> str:
    if len(path) <= max_len:
        return path
    keep = max_len - 3
    head = keep // 2
    return f"{path[:head]}...{path[-(keep - head):]}"


class ExportProgressUI:
    """Progress for a single export.

    One summary row counts archived entries and bytes; one transient row per
    entry shows the file currently being copied into the archive.
    """

    def __init__(self, console: Console | None = None, *, transient: bool = False) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            DownloadColumn(binary_units=True),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            TextColumn("[dim]{task.fields[note]}"),
            console=console,
            transient=transient,
        )
        self._summary: TaskID | None = None
        self._done = 0
        self._failed = 0

    def __enter__(self) -> "ExportProgressUI":
        self._progress.start()
        self._summary = self._progress.add_task("[bold]Archiving", total=None, note="")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._progress.stop()

    def _update_summary(self, **fields) -> None:
        if self._summary is not None:
            self._progress.update(self._summary, **fields)

    def add_entry(self, *, action: str, path: str, total_bytes: int | None) -> EntryTaskHandle:
        task_id = self._progress.add_task(
            f"{action} {_shorten_path(path)}",
            total=total_bytes,
            note="",
        )
        return EntryTaskHandle(task_id=task_id, path=path, total=total_bytes)

    def advance(self, handle: EntryTaskHandle, delta: int) -> None:
        if delta <= 0:
            return
        self._progress.advance(handle.task_id, delta)
        if self._summary is not None:
            self._progress.advance(self._summary, delta)

    def complete(self, handle: EntryTaskHandle, total_bytes: int | None = None) -> None:
        self._done += 1
        self._progress.remove_task(handle.task_id)
        self._update_summary(note=f"{self._done} entries")

    def fail(self, handle: EntryTaskHandle, message: str = "failed") -> None:
        self._failed += 1
        self._progress.update(handle.task_id, note=f"[red]{message}")
        self._update_summary(note=f"{self._done} entries, {self._failed} failed")


class ProgressFileReader:
    """Read-only stream wrapper that reports each chunk to an ``ExportProgressUI``."""

    def __init__(
        self,
        file_obj: BinaryIO,
        *,
        progress: ExportProgressUI,
        handle: EntryTaskHandle,
    ) -> None:
        self._file = file_obj
        self._progress = progress
        self._handle = handle

    def read(self, size: int = -1) -> bytes:
        chunk = self._file.read(size)
        if chunk:
            self._progress.advance(self._handle, len(chunk))
        return chunk

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "ProgressFileReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
