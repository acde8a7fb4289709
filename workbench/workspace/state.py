"""Engine-owned workspace map and tree."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from workbench.models.tree import DirectoryNode
from workbench.workspace import tree as vtree


class WorkspaceState:
    """Holds the authoritative path->content map and the tree derived from it.

    Only the executor mutates this object. Readers get ``snapshot_map()``
    (a read-only copy) and ``tree`` (immutable nodes).
    """

    def __init__(self) -> None:
        self._files: dict[str, str] = {}
        self._tree: DirectoryNode = vtree.empty_tree()
        self._version = 0

    @property
    def tree(self) -> DirectoryNode:
        return self._tree

    @property
    def version(self) -> int:
        return self._version

    def snapshot_map(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self._files))

    def get_file_content(self, path: str) -> str:
        return self._files.get(vtree.normalize_path(path), "")

    def has_file(self, path: str) -> bool:
        return vtree.normalize_path(path) in self._files

    def apply_write(self, path: str, content: str) -> None:
        normalized = vtree.normalize_path(path)
        self._tree = vtree.insert(self._tree, normalized, content)
        self._files[normalized] = content
        self._version += 1

    def apply_delete(self, path: str) -> None:
        normalized = vtree.normalize_path(path)
        prefix = normalized.rstrip("/") + "/"
        for key in [key for key in self._files if key == normalized or key.startswith(prefix)]:
            del self._files[key]
        self._tree = vtree.remove(self._tree, normalized)
        self._version += 1

    def replace_all(self, files: Mapping[str, str]) -> None:
        normalized = {vtree.normalize_path(path): content for path, content in files.items()}
        self._tree = vtree.rebuild(normalized)
        self._files = normalized
        self._version += 1
