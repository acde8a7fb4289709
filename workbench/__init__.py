"""Sandboxed workspace synchronization and action execution."""

from workbench.runtime.bridge import RuntimeBridge
from workbench.workspace.executor import ActionExecutor
from workbench.workspace.state import WorkspaceState

__all__ = ["ActionExecutor", "RuntimeBridge", "WorkspaceState"]
