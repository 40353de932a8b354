from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable


def _clean(pattern: str) -> str:
    cleaned = pattern.strip().replace("\\", "/")
    return cleaned[2:] if cleaned.startswith("./") else cleaned


def _glob_hit(path: str, pattern: str) -> bool:
    if pattern.endswith("/"):
        # Directory prefix: the directory itself and everything below it.
        directory = pattern.rstrip("/")
        return path == directory or path.startswith(pattern)
    return PurePosixPath(path).match(pattern)


@dataclass(slots=True)
class PathFilter:
    """Selects archive paths by glob and drops whole directories by name.

    Exclusion wins over inclusion. ``exclude_names`` only ever matches
    directory components, so a file called like an excluded directory stays.
    """

    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    exclude_names: frozenset[str] = frozenset()

    def _inside_excluded_directory(self, path: str, is_dir: bool) -> bool:
        parts = PurePosixPath(path).parts
        directories = parts if is_dir else parts[:-1]
        return not self.exclude_names.isdisjoint(directories)

    def matches(self, path: str, *, is_dir: bool = False) -> bool:
        if self.exclude_names and self._inside_excluded_directory(path, is_dir):
            return False
        if any(_glob_hit(path, pattern) for pattern in self.exclude_patterns):
            return False
        if not self.include_patterns:
            return True
        return any(_glob_hit(path, pattern) for pattern in self.include_patterns)


def _patterns(raw: Iterable[str] | None) -> tuple[str, ...]:
    return tuple(cleaned for cleaned in map(_clean, raw or ()) if cleaned)


def build_path_filter(
    include_patterns: Iterable[str] | None = None,
    exclude_patterns: Iterable[str] | None = None,
    exclude_names: Iterable[str] | None = None,
) -> PathFilter:
    names = frozenset(name.strip().strip("/") for name in exclude_names or () if name.strip())
    return PathFilter(
        include_patterns=_patterns(include_patterns),
        exclude_patterns=_patterns(exclude_patterns),
        exclude_names=names,
    )
