"""Content key to object-store location mapping.

git-annex places every object under a two level hash directory derived from
the MD5 digest of the key. Two layouts exist: the lower-case hex layout used
by bare repositories and recent versions, and the legacy mixed-case layout
used by older non-bare repositories. A store can hold objects written with
either layout, so callers should try every scheme in ``HASH_SCHEMES``.
"""

from __future__ import annotations

import hashlib
from typing import Callable, Iterator


MIXED_CASE_LETTERS = "0123456789zqjxkmvwgpfZQJXKMVWGPF"


def _md5(key: str) -> bytes:
    return hashlib.md5(key.encode("utf-8")).digest()


def hashdir_lower(key: str) -> str:
    digest = _md5(key).hex()
    return f"{digest[0:3]}/{digest[3:6]}/{key}"


def _encode_word(word: int) -> list[str]:
    letters = [MIXED_CASE_LETTERS[0]] * 4
    for index in range(4):
        letters[index] = MIXED_CASE_LETTERS[word & 31]
        word >>= 6
        if word == 0:
            break
    return letters


def hashdir_mixed(key: str) -> str:
    word = int.from_bytes(_md5(key)[:4], "little")
    letters = _encode_word(word)
    return f"{letters[1]}{letters[0]}/{letters[3]}{letters[2]}/{key}"


HashScheme = Callable[[str], str]

# Newer layout first.
HASH_SCHEMES: tuple[tuple[str, HashScheme], ...] = (
    ("lower", hashdir_lower),
    ("mixed", hashdir_mixed),
)


def candidate_locations(key: str) -> Iterator[tuple[str, str]]:
    for name, scheme in HASH_SCHEMES:
        yield name, scheme(key)
