"""Shared data models for the workbench engine."""

from workbench.models.actions import (
    Action,
    ActionResult,
    ActionStatus,
    CreateOrUpdateFile,
    DeletePath,
    RunCommand,
    parse_action,
)
from workbench.models.sandbox import FileEntry, ProcessResult, RuntimeEvent, RuntimeHandle
from workbench.models.tree import DirectoryNode, FileNode, TreeNode

__all__ = [
    "Action",
    "ActionResult",
    "ActionStatus",
    "CreateOrUpdateFile",
    "DeletePath",
    "DirectoryNode",
    "FileEntry",
    "FileNode",
    "ProcessResult",
    "RunCommand",
    "RuntimeEvent",
    "RuntimeHandle",
    "TreeNode",
    "parse_action",
]
