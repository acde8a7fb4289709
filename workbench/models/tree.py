"""Node types for the mirrored workspace tree."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class FileNode:
    path: str
    name: str
    content: str
    type: str = field(default="file", init=False)


@dataclass(frozen=True)
class DirectoryNode:
    path: str
    name: str
    children: tuple[TreeNode, ...] = ()
    type: str = field(default="directory", init=False)


TreeNode = Union[FileNode, DirectoryNode]
