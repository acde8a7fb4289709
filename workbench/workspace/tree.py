"""Persistent tree mirroring the flat workspace map.

Every update returns a new root. Only the directories on the path to the
changed node are rebuilt; untouched branches are shared with the previous
tree, so snapshots handed to observers stay valid after later mutations.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterator, Mapping, Optional

from workbench.errors import TreeCollision
from workbench.models.tree import DirectoryNode, FileNode, TreeNode

ROOT_PATH = "/"


def empty_tree() -> DirectoryNode:
    return DirectoryNode(path=ROOT_PATH, name=ROOT_PATH)


def normalize_path(path: str) -> str:
    segments = [segment for segment in path.strip().replace("\\", "/").split("/") if segment not in ("", ".")]
    if ".." in segments:
        raise ValueError(f"Path must not contain '..': {path}")
    return ROOT_PATH + "/".join(segments)


def _segments(path: str) -> list[str]:
    normalized = normalize_path(path)
    if normalized == ROOT_PATH:
        return []
    return normalized[1:].split("/")


def _child_path(parent: DirectoryNode, name: str) -> str:
    if parent.path == ROOT_PATH:
        return ROOT_PATH + name
    return f"{parent.path}/{name}"


def _index_of(children: tuple[TreeNode, ...], name: str) -> Optional[int]:
    for index, child in enumerate(children):
        if child.name == name:
            return index
    return None


def insert(tree: DirectoryNode, path: str, content: str) -> DirectoryNode:
    """Return a tree with a file at ``path``, creating parent directories.

    An existing file at the same path is replaced in its current position.
    A file and a directory never share a path; that raises ``TreeCollision``.
    """

    segments = _segments(path)
    if not segments:
        raise TreeCollision("Cannot place a file at the workspace root")
    return _insert(tree, segments, content)


def _insert(node: DirectoryNode, segments: list[str], content: str) -> DirectoryNode:
    name = segments[0]
    child_path = _child_path(node, name)
    index = _index_of(node.children, name)
    existing = node.children[index] if index is not None else None

    if len(segments) == 1:
        if isinstance(existing, DirectoryNode):
            raise TreeCollision(f"Cannot write file over directory: {child_path}")
        updated: TreeNode = FileNode(path=child_path, name=name, content=content)
        if existing == updated:
            return node
    else:
        if isinstance(existing, FileNode):
            raise TreeCollision(f"Cannot create directory over file: {child_path}")
        directory = existing or DirectoryNode(path=child_path, name=name)
        updated = _insert(directory, segments[1:], content)
        if updated is existing:
            return node

    children = list(node.children)
    if index is None:
        children.append(updated)
    else:
        children[index] = updated
    return replace(node, children=tuple(children))


def remove(tree: DirectoryNode, path: str) -> DirectoryNode:
    """Return a tree without the node at ``path``; emptied parents are kept."""

    segments = _segments(path)
    if not segments:
        return empty_tree()
    return _remove(tree, segments)


def _remove(node: DirectoryNode, segments: list[str]) -> DirectoryNode:
    index = _index_of(node.children, segments[0])
    if index is None:
        return node
    child = node.children[index]
    children = list(node.children)
    if len(segments) == 1:
        del children[index]
    else:
        if not isinstance(child, DirectoryNode):
            return node
        updated = _remove(child, segments[1:])
        if updated is child:
            return node
        children[index] = updated
    return replace(node, children=tuple(children))


def rebuild(workspace_map: Mapping[str, str]) -> DirectoryNode:
    tree = empty_tree()
    for path in sorted(workspace_map):
        tree = insert(tree, path, workspace_map[path])
    return tree


def find(tree: DirectoryNode, path: str) -> Optional[TreeNode]:
    node: TreeNode = tree
    for name in _segments(path):
        if not isinstance(node, DirectoryNode):
            return None
        index = _index_of(node.children, name)
        if index is None:
            return None
        node = node.children[index]
    return node


def iter_files(tree: DirectoryNode) -> Iterator[FileNode]:
    for child in tree.children:
        if isinstance(child, FileNode):
            yield child
        else:
            yield from iter_files(child)


def sorted_children(node: DirectoryNode) -> list[TreeNode]:
    """Display order: directories first, then files, each alphabetical."""

    return sorted(node.children, key=lambda child: (isinstance(child, FileNode), child.name.lower(), child.name))


def canonical(node: DirectoryNode) -> DirectoryNode:
    children = tuple(
        canonical(child) if isinstance(child, DirectoryNode) else child
        for child in sorted(node.children, key=lambda child: child.name)
    )
    return replace(node, children=children)


def to_dict(node: TreeNode, include_content: bool = False) -> dict[str, Any]:
    if isinstance(node, FileNode):
        payload: dict[str, Any] = {"type": "file", "path": node.path, "name": node.name}
        if include_content:
            payload["content"] = node.content
        return payload
    return {
        "type": "directory",
        "path": node.path,
        "name": node.name,
        "children": [to_dict(child, include_content) for child in sorted_children(node)],
    }
