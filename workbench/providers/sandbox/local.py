"""Local sandbox provider implementation."""

from __future__ import annotations

import asyncio
import codecs
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import posixpath
import shutil
import signal
import stat
import tempfile
from typing import AsyncIterator, Sequence
from uuid import uuid4

from workbench.errors import EnvironmentUnsupported
from workbench.models.sandbox import FileEntry
from workbench.providers.sandbox.base import ProcessHandle, SandboxProvider

logger = logging.getLogger(__name__)

_READ_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class _SandboxRecord:
    sandbox_id: str
    root: Path
    env: dict[str, str] | None = None


class LocalProcess(ProcessHandle):
    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def output(self) -> AsyncIterator[str]:
        return self._read_output()

    async def _read_output(self) -> AsyncIterator[str]:
        stream = self._process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_SIZE)
            if not chunk:
                tail = self._decoder.decode(b"", final=True)
                if tail:
                    yield tail
                return
            text = self._decoder.decode(chunk)
            if text:
                yield text

    async def wait(self) -> int:
        return await self._process.wait()

    def kill(self) -> None:
        # The shell runs in its own session; kill the whole group so
        # grandchildren do not keep the output pipe open.
        try:
            os.killpg(self._process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as exc:
            logger.warning("could not kill process group %s: %s", self._process.pid, exc)


class LocalProvider(SandboxProvider):
    def __init__(
        self,
        base_dir: str | None = None,
        shell: Sequence[str] = ("bash", "-lc"),
    ) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path(
            tempfile.mkdtemp(prefix="workbench-local-")
        )
        self._shell = tuple(shell)
        self._sandboxes: dict[str, _SandboxRecord] = {}

    def check_environment(self) -> None:
        if os.name != "posix":
            raise EnvironmentUnsupported(
                "The local sandbox requires a POSIX host.",
                "Run the workspace service on Linux or macOS, or configure a remote sandbox provider.",
            )
        if shutil.which(self._shell[0]) is None:
            raise EnvironmentUnsupported(
                f"Shell '{self._shell[0]}' was not found on PATH.",
                "Install the shell or point WORKBENCH_SHELL at an available one (for example '/bin/sh -c').",
            )
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise EnvironmentUnsupported(
                f"Sandbox base directory {self._base_dir} is not usable: {exc.strerror or exc}",
                "Set WORKBENCH_BASE_DIR to a writable directory.",
            ) from exc
        if not os.access(self._base_dir, os.W_OK | os.X_OK):
            raise EnvironmentUnsupported(
                f"Sandbox base directory {self._base_dir} is not writable.",
                "Set WORKBENCH_BASE_DIR to a writable directory.",
            )

    async def create_sandbox(
        self,
        name: str,
        env: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> str:
        sandbox_id = f"{name}-{uuid4().hex[:8]}"
        root = self._base_dir / sandbox_id
        root.mkdir(parents=True, exist_ok=False)
        self._sandboxes[sandbox_id] = _SandboxRecord(
            sandbox_id=sandbox_id, root=root, env=dict(env) if env else None
        )
        return sandbox_id

    async def delete_sandbox(self, sandbox_id: str) -> None:
        record = self._get_record(sandbox_id)
        await asyncio.to_thread(shutil.rmtree, record.root, ignore_errors=True)
        self._sandboxes.pop(sandbox_id, None)

    async def read_file(self, sandbox_id: str, path: str) -> bytes:
        target = self._resolve_path(sandbox_id, path)
        return await asyncio.to_thread(target.read_bytes)

    async def write_file(self, sandbox_id: str, path: str, data: bytes) -> None:
        target = self._resolve_path(sandbox_id, path)
        await asyncio.to_thread(_write_bytes, target, data, path)

    async def mkdir(self, sandbox_id: str, path: str) -> None:
        await asyncio.to_thread(self._resolve_path(sandbox_id, path).mkdir)

    async def remove(self, sandbox_id: str, path: str, recursive: bool = False) -> None:
        root = self._get_record(sandbox_id).root.resolve()
        target = self._lexical_path(sandbox_id, path)
        if target == root:
            raise ValueError("Refusing to remove the sandbox root")
        await asyncio.to_thread(_remove_path, target, path, recursive)

    async def list_files(self, sandbox_id: str, path: str) -> Sequence[FileEntry]:
        target = self._resolve_path(sandbox_id, path)
        return await asyncio.to_thread(_list_entries, target)

    async def spawn(
        self,
        sandbox_id: str,
        command: str,
        cwd: str | None = None,
    ) -> LocalProcess:
        record = self._get_record(sandbox_id)
        workdir = self._resolve_path(sandbox_id, cwd) if cwd else record.root
        if not workdir.is_dir():
            raise NotADirectoryError(f"Working directory does not exist: {cwd}")
        process = await asyncio.create_subprocess_exec(
            *self._shell,
            command,
            cwd=workdir,
            env=self._merge_env(record.env),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True,
        )
        return LocalProcess(process)

    def get_preview_link(self, sandbox_id: str, port: int) -> str | None:
        self._get_record(sandbox_id)
        return f"http://localhost:{port}"

    def _get_record(self, sandbox_id: str) -> _SandboxRecord:
        if sandbox_id not in self._sandboxes:
            raise KeyError(f"Unknown sandbox id: {sandbox_id}")
        return self._sandboxes[sandbox_id]

    def _resolve_path(self, sandbox_id: str, path: str) -> Path:
        root = self._get_record(sandbox_id).root.resolve()
        resolved = (root / path.lstrip("/")).resolve()
        if root != resolved and root not in resolved.parents:
            raise ValueError(f"Path escapes sandbox: {path}")
        return resolved

    def _lexical_path(self, sandbox_id: str, path: str) -> Path:
        # Resolves the parent only, so a link is addressed rather than its target.
        relative = path.strip("/")
        name = posixpath.basename(relative)
        if not relative or name in (".", ".."):
            return self._resolve_path(sandbox_id, path)
        parent = self._resolve_path(sandbox_id, posixpath.dirname(relative))
        return parent / name

    def _merge_env(self, env: dict[str, str] | None) -> dict[str, str]:
        merged = os.environ.copy()
        if env:
            merged.update(env)
        return merged


def _write_bytes(target: Path, data: bytes, path: str) -> None:
    if target.is_dir():
        raise IsADirectoryError(f"Is a directory: {path}")
    with target.open("wb") as handle:
        handle.write(data)


def _remove_path(target: Path, path: str, recursive: bool) -> None:
    if not target.exists() and not target.is_symlink():
        raise FileNotFoundError(f"No such file or directory: {path}")
    if target.is_dir() and not target.is_symlink():
        if recursive:
            shutil.rmtree(target)
        else:
            target.rmdir()
    else:
        target.unlink()


def _list_entries(target: Path) -> list[FileEntry]:
    # lstat so links are reported as themselves and never followed.
    entries: list[FileEntry] = []
    for entry in sorted(target.iterdir()):
        stat_info = entry.lstat()
        entries.append(
            FileEntry(
                name=entry.name,
                is_dir=stat.S_ISDIR(stat_info.st_mode),
                size=stat_info.st_size,
                mod_time=stat_info.st_mtime,
                is_file=stat.S_ISREG(stat_info.st_mode),
            )
        )
    return entries
