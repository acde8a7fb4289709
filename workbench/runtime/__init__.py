"""Sandbox runtime bridge and process streaming."""

from workbench.runtime.bridge import RuntimeBridge
from workbench.runtime.stream import ProcessStream

__all__ = ["ProcessStream", "RuntimeBridge"]
