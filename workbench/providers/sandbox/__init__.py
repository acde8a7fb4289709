"""Sandbox provider implementations and interfaces."""

from workbench.providers.sandbox.base import ProcessHandle, SandboxProvider
from workbench.providers.sandbox.local import LocalProvider

__all__ = ["LocalProvider", "ProcessHandle", "SandboxProvider"]
