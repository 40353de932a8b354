from __future__ import annotations

from typing import Any, Callable

from annexarchive.tree import TreeProvider


BlobVisitor = Callable[[str, Any], None]
DirectoryVisitor = Callable[[str], None]


def _join(prefix: str, name: str) -> str:
    return f"{prefix}/{name}" if prefix else name


def walk_tree(
    provider: TreeProvider,
    tree: Any,
    on_blob: BlobVisitor,
    on_directory: DirectoryVisitor | None = None,
    prefix: str = "",
) -> None:
    """Depth-first walk in the provider's listing order.

    ``on_directory`` sees every directory before its children, so empty
    directories are reported too. Provider errors propagate unchanged.
    """
    for entry in provider.list_entries(tree):
        path = _join(prefix, entry.name)
        if entry.is_dir:
            if on_directory is not None:
                on_directory(path)
            subtree = provider.sub_tree(tree, entry.name)
            walk_tree(provider, subtree, on_blob, on_directory, path)
        else:
            on_blob(path, provider.blob(entry))
