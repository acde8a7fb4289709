"""Sandbox provider interface."""

from __future__ import annotations

from typing import AsyncIterator, Protocol, Sequence

from workbench.models.sandbox import FileEntry


class ProcessHandle(Protocol):
    @property
    def output(self) -> AsyncIterator[str]:
        ...

    async def wait(self) -> int:
        ...

    def kill(self) -> None:
        ...


class SandboxProvider(Protocol):
    def check_environment(self) -> None:
        ...

    async def create_sandbox(
        self,
        name: str,
        env: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> str:
        ...

    async def delete_sandbox(self, sandbox_id: str) -> None:
        ...

    async def read_file(self, sandbox_id: str, path: str) -> bytes:
        ...

    async def write_file(self, sandbox_id: str, path: str, data: bytes) -> None:
        ...

    async def mkdir(self, sandbox_id: str, path: str) -> None:
        ...

    async def remove(self, sandbox_id: str, path: str, recursive: bool = False) -> None:
        ...

    async def list_files(self, sandbox_id: str, path: str) -> Sequence[FileEntry]:
        ...

    async def spawn(
        self,
        sandbox_id: str,
        command: str,
        cwd: str | None = None,
    ) -> ProcessHandle:
        ...

    def get_preview_link(self, sandbox_id: str, port: int) -> str | None:
        ...
