"""Runtime bridge over a sandbox provider.

The bridge owns the single sandbox handle for a workspace session. ``boot``
is idempotent and shares one in-flight attempt between concurrent callers;
``teardown`` kills the active process and resets the bridge so the next
``boot`` starts a fresh sandbox. At most one process stream is active at a
time: spawning a new one kills the previous one first.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
import time
from typing import Optional

from workbench.config import WorkspaceConfig
from workbench.errors import (
    BootFailure,
    DeleteFailure,
    EnvironmentUnsupported,
    ProcessFailure,
    WorkspaceError,
    WriteFailure,
    clean_stack_trace,
    error_message,
)
from workbench.models.sandbox import FileEntry, ProcessResult, RuntimeEvent, RuntimeHandle
from workbench.providers.sandbox.base import SandboxProvider
from workbench.runtime.stream import OutputObserver, ProcessStream
from workbench.workspace.tree import ROOT_PATH, normalize_path

logger = logging.getLogger(__name__)

_SERVER_URL_PATTERN = re.compile(r"https?://(?:localhost|127\.0\.0\.1|0\.0\.0\.0):(\d{2,5})")


class RuntimeBridge:
    def __init__(
        self,
        provider: SandboxProvider,
        config: WorkspaceConfig | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or WorkspaceConfig()
        self._handle: Optional[RuntimeHandle] = None
        self._boot_task: Optional[asyncio.Future[RuntimeHandle]] = None
        self._generation = 0
        self._active: Optional[ProcessStream] = None
        self.events: asyncio.Queue[RuntimeEvent] = asyncio.Queue(
            maxsize=max(1, self._config.event_queue_size)
        )
        self.last_error: Optional[str] = None

    @property
    def handle(self) -> Optional[RuntimeHandle]:
        return self._handle

    @property
    def is_booted(self) -> bool:
        return self._handle is not None

    @property
    def generation(self) -> int:
        """Incremented by every teardown."""
        return self._generation

    @property
    def active_process(self) -> Optional[ProcessStream]:
        if self._active is not None and not self._active.done:
            return self._active
        return None

    async def boot(self) -> RuntimeHandle:
        if self._handle is not None:
            logger.debug("returning existing sandbox %s", self._handle.sandbox_id)
            return self._handle
        if self._boot_task is None:
            logger.info("sandbox boot requested: %s", self._config.sandbox_name)
            self._boot_task = asyncio.ensure_future(self._boot(self._generation))
        else:
            logger.debug("sandbox boot already in progress")
        return await asyncio.shield(self._boot_task)

    async def _boot(self, generation: int) -> RuntimeHandle:
        sandbox_id: Optional[str] = None
        try:
            self._provider.check_environment()
            sandbox_id = await self._provider.create_sandbox(self._config.sandbox_name)
            handle = RuntimeHandle(sandbox_id=sandbox_id, booted_at=time.time())
            if self._config.seed_files:
                for path, content in sorted(self._config.starter_files.items()):
                    await self._write(handle, normalize_path(path), content)
            if generation != self._generation:
                raise BootFailure("Sandbox was torn down while booting")
        except EnvironmentUnsupported as exc:
            self._boot_failed(exc, generation)
            raise
        except Exception as exc:
            if sandbox_id is not None:
                await self._discard_sandbox(sandbox_id)
            self._boot_failed(exc, generation)
            if isinstance(exc, BootFailure):
                raise
            raise BootFailure(f"Sandbox failed to boot: {error_message(exc)}") from exc
        self._handle = handle
        self._boot_task = None
        self.last_error = None
        logger.info("sandbox boot completed: %s", sandbox_id)
        self._publish(RuntimeEvent(kind="booted", sandbox_id=sandbox_id))
        return handle

    def _boot_failed(self, exc: BaseException, generation: int) -> None:
        if generation == self._generation:
            self._boot_task = None
        self.last_error = error_message(exc)
        logger.error("sandbox boot failed: %s", clean_stack_trace(exc))

    async def _discard_sandbox(self, sandbox_id: str) -> None:
        try:
            await self._provider.delete_sandbox(sandbox_id)
        except Exception:
            logger.warning("could not discard sandbox %s after failed boot", sandbox_id, exc_info=True)

    async def teardown(self) -> None:
        self._generation += 1
        self.kill_active()
        self._boot_task = None
        self.last_error = None
        handle, self._handle = self._handle, None
        if handle is None:
            logger.debug("no active sandbox to tear down")
            return
        logger.info("tearing down sandbox %s", handle.sandbox_id)
        try:
            await self._provider.delete_sandbox(handle.sandbox_id)
        except Exception as exc:
            raise WorkspaceError(
                f"Sandbox teardown failed: {error_message(exc)}"
            ) from exc
        self._publish(RuntimeEvent(kind="torn-down", sandbox_id=handle.sandbox_id))
        logger.info("teardown completed: %s", handle.sandbox_id)

    async def read_file(self, path: str) -> str:
        handle = await self.boot()
        normalized = normalize_path(path)
        try:
            data = await self._provider.read_file(handle.sandbox_id, normalized)
        except Exception as exc:
            raise WorkspaceError(f"Failed to read {normalized}: {error_message(exc)}") from exc
        return data.decode("utf-8", errors="replace")

    async def write_file(self, path: str, content: str) -> None:
        handle = await self.boot()
        await self._write(handle, normalize_path(path), content)

    async def _write(self, handle: RuntimeHandle, path: str, content: str) -> None:
        parent = posixpath.dirname(path)
        if parent != ROOT_PATH:
            await self._ensure_directory(handle, parent)
        try:
            await self._provider.write_file(handle.sandbox_id, path, content.encode("utf-8"))
        except Exception as exc:
            raise WriteFailure(f"Failed to write {path}: {error_message(exc)}") from exc

    async def mkdir(self, path: str) -> None:
        handle = await self.boot()
        await self._mkdir(handle, normalize_path(path))

    async def _mkdir(self, handle: RuntimeHandle, path: str) -> None:
        try:
            await self._provider.mkdir(handle.sandbox_id, path)
        except FileExistsError:
            pass
        except Exception as exc:
            raise WriteFailure(f"Failed to create directory {path}: {error_message(exc)}") from exc

    async def ensure_directory(self, path: str) -> None:
        handle = await self.boot()
        await self._ensure_directory(handle, normalize_path(path))

    async def _ensure_directory(self, handle: RuntimeHandle, path: str) -> None:
        current = ""
        for segment in path.strip("/").split("/"):
            if not segment:
                continue
            current = f"{current}/{segment}"
            await self._mkdir(handle, current)

    async def remove(self, path: str, recursive: bool = True) -> None:
        handle = await self.boot()
        normalized = normalize_path(path)
        try:
            await self._provider.remove(handle.sandbox_id, normalized, recursive=recursive)
        except Exception as exc:
            raise DeleteFailure(f"Failed to delete {normalized}: {error_message(exc)}") from exc

    async def list_directory(self, path: str = ROOT_PATH) -> list[FileEntry]:
        handle = await self.boot()
        normalized = normalize_path(path)
        try:
            return list(await self._provider.list_files(handle.sandbox_id, normalized))
        except Exception as exc:
            raise WorkspaceError(f"Failed to list {normalized}: {error_message(exc)}") from exc

    async def read_all_files(self, base: str = ROOT_PATH) -> dict[str, str]:
        """Walk the sandbox and return a fresh path->content map."""

        files: dict[str, str] = {}
        ignored = self._config.ignored_directories

        async def walk(directory: str) -> None:
            for entry in await self.list_directory(directory):
                if entry.name in ignored:
                    continue
                full_path = posixpath.join(directory, entry.name)
                if entry.is_dir:
                    await walk(full_path)
                elif not entry.is_file:
                    logger.debug("skipping non-regular entry %s", full_path)
                else:
                    try:
                        files[full_path] = await self.read_file(full_path)
                    except WorkspaceError as exc:
                        logger.warning("skipping unreadable file %s: %s", full_path, exc)

        await walk(normalize_path(base))
        return files

    async def spawn(
        self,
        command: str,
        cwd: str | None = None,
        on_output: Optional[OutputObserver] = None,
    ) -> ProcessStream:
        handle = await self.boot()
        self.kill_active()
        workdir = normalize_path(cwd) if cwd else None
        try:
            process = await self._provider.spawn(handle.sandbox_id, command, cwd=workdir)
        except Exception as exc:
            raise ProcessFailure(f"Failed to start '{command}': {error_message(exc)}") from exc
        stream = ProcessStream(process, command, on_output)
        stream.add_observer(self._server_watcher(handle, stream))
        self._active = stream
        logger.info("process started in %s: %s", workdir or ROOT_PATH, command)
        self._publish(RuntimeEvent(kind="process-started", sandbox_id=handle.sandbox_id, command=command))
        return stream

    async def run_command(
        self,
        command: str,
        cwd: str | None = None,
        on_output: Optional[OutputObserver] = None,
    ) -> ProcessResult:
        stream = await self.spawn(command, cwd=cwd, on_output=on_output)
        result = await stream.run()
        sandbox_id = self._handle.sandbox_id if self._handle else ""
        self._publish(
            RuntimeEvent(
                kind="process-exited",
                sandbox_id=sandbox_id,
                exit_code=result.exit_code,
                command=command,
            )
        )
        if result.exit_code != 0 and not stream.killed:
            self._publish(
                RuntimeEvent(
                    kind="server-crash",
                    sandbox_id=sandbox_id,
                    exit_code=result.exit_code,
                    command=command,
                )
            )
        return result

    def kill_active(self) -> None:
        stream, self._active = self._active, None
        if stream is not None:
            stream.kill()

    def get_preview_link(self, port: int) -> str | None:
        if self._handle is None:
            return None
        return self._provider.get_preview_link(self._handle.sandbox_id, port)

    def drain_events(self) -> list[RuntimeEvent]:
        events: list[RuntimeEvent] = []
        while not self.events.empty():
            events.append(self.events.get_nowait())
        return events

    def _server_watcher(self, handle: RuntimeHandle, stream: ProcessStream) -> OutputObserver:
        announced: set[int] = set()

        def watch(chunk: str) -> None:
            for match in _SERVER_URL_PATTERN.finditer(chunk):
                port = int(match.group(1))
                if port in announced:
                    continue
                announced.add(port)
                url = self._provider.get_preview_link(handle.sandbox_id, port)
                logger.info("server ready on port %s: %s", port, url)
                self._publish(
                    RuntimeEvent(
                        kind="server-ready",
                        sandbox_id=handle.sandbox_id,
                        port=port,
                        url=url,
                        command=stream.command,
                    )
                )

        return watch

    def _publish(self, event: RuntimeEvent) -> None:
        if self.events.full():
            dropped = self.events.get_nowait()
            logger.warning("event queue full, dropping %s event", dropped.kind)
        self.events.put_nowait(event)

