"""Provider package for sandbox integrations."""

from workbench.providers.sandbox import LocalProvider, ProcessHandle, SandboxProvider

__all__ = ["LocalProvider", "ProcessHandle", "SandboxProvider"]
