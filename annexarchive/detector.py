"""Classify tree blobs as plain content, annex pointers, or symlinks.

Only a bounded prefix of a regular blob is inspected so classification costs
the same for a 10 byte README and a multi-gigabyte file committed directly.
"""

from __future__ import annotations

import logging
from typing import Any, BinaryIO

from annexarchive.models import Classification, Plain, Pointer, Symlink
from annexarchive.tree import TreeProvider


logger = logging.getLogger(__name__)

ANNEX_MARKER = "/annex/objects"
PREFIX_BYTES = 32
MAX_POINTER_BYTES = 8192


def parse_key(text: str) -> str:
    return text.strip().rsplit("/", 1)[-1].strip()


def _stub_key(text: str) -> str:
    # A pointer is a single line: the marker path followed by a key without spaces.
    stripped = text.strip()
    if "\n" in stripped:
        return ""
    key = parse_key(stripped)
    if any(char.isspace() for char in key):
        return ""
    return key


def _read_bounded(stream: BinaryIO, limit: int) -> bytes:
    chunks: list[bytes] = []
    remaining = limit
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="surrogateescape")


def classify(provider: TreeProvider, blob: Any) -> Classification:
    if provider.is_symlink(blob):
        with provider.open_content(blob) as stream:
            target = _decode(_read_bounded(stream, MAX_POINTER_BYTES))
        if ANNEX_MARKER in target:
            key = _stub_key(target)
            if key:
                return Pointer(key)
        return Symlink(target)

    if provider.size(blob) > MAX_POINTER_BYTES:
        return Plain()

    with provider.open_content(blob) as stream:
        prefix = _read_bounded(stream, PREFIX_BYTES)
        if ANNEX_MARKER.encode() not in prefix:
            return Plain()
        rest = _read_bounded(stream, MAX_POINTER_BYTES - len(prefix))

    key = _stub_key(_decode(prefix + rest))
    if not key:
        logger.debug("Annex marker without a one-line key, treating blob as plain content")
        return Plain()
    return Pointer(key)
