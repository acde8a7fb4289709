"""Workspace error taxonomy and message normalization."""

from __future__ import annotations

import re
import traceback

_INTERNAL_FRAME_PATTERNS = (
    re.compile(r"[/\\](site|dist)-packages[/\\]"),
    re.compile(r"[/\\]asyncio[/\\]"),
    re.compile(r"[/\\]workbench[/\\]providers[/\\]"),
)


class WorkspaceError(Exception):
    """Base class for failures raised by the workspace engine."""


class BootFailure(WorkspaceError):
    pass


class EnvironmentUnsupported(BootFailure):
    def __init__(self, message: str, remediation: str) -> None:
        super().__init__(message)
        self.remediation = remediation


class WriteFailure(WorkspaceError):
    pass


class DeleteFailure(WorkspaceError):
    pass


class ProcessFailure(WorkspaceError):
    pass


class InvalidAction(WorkspaceError):
    pass


class TreeCollision(WorkspaceError, ValueError):
    pass


def error_message(error: BaseException) -> str:
    message = str(error).strip()
    if message:
        return message
    return type(error).__name__


def clean_stack_trace(error: BaseException) -> str:
    """Format ``error`` with library, asyncio and provider frames removed."""

    message_line = f"{type(error).__name__}: {error_message(error)}"
    if error.__traceback__ is None:
        return message_line
    frames = traceback.format_tb(error.__traceback__)
    kept = [
        frame
        for frame in frames
        if not any(pattern.search(frame) for pattern in _INTERNAL_FRAME_PATTERNS)
    ]
    if not kept:
        return message_line
    return "".join(kept).rstrip("\n") + "\n" + message_line
