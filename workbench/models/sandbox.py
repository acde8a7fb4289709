"""Data models for sandbox interactions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RuntimeHandle:
    sandbox_id: str
    booted_at: float


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    output: str
    duration_ms: int


@dataclass(frozen=True)
class FileEntry:
    name: str
    is_dir: bool
    size: int
    mod_time: Optional[float]
    is_file: bool = False


@dataclass(frozen=True)
class RuntimeEvent:
    kind: str
    sandbox_id: str
    port: Optional[int] = None
    url: Optional[str] = None
    exit_code: Optional[int] = None
    command: Optional[str] = None
