"""Sequential executor for assistant action batches."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from workbench.errors import InvalidAction, clean_stack_trace, error_message
from workbench.models.actions import (
    ActionResult,
    ActionStatus,
    CreateOrUpdateFile,
    DeletePath,
    RunCommand,
    parse_action,
)
from workbench.runtime.bridge import RuntimeBridge
from workbench.runtime.stream import OutputObserver
from workbench.workspace.state import WorkspaceState

logger = logging.getLogger(__name__)

UpdateObserver = Callable[[ActionResult], Union[None, Awaitable[None]]]


class ActionExecutor:
    """Applies actions one at a time and reports each status transition.

    A failing action is recorded as ``error`` and the batch moves on to the
    next action; nothing is rolled back. Once the batch is done the map and
    tree are rebuilt from the sandbox, since commands can touch files the
    executor never saw.
    """

    def __init__(self, bridge: RuntimeBridge, state: WorkspaceState | None = None) -> None:
        self._bridge = bridge
        self.state = state or WorkspaceState()
        self._lock = asyncio.Lock()

    @property
    def bridge(self) -> RuntimeBridge:
        return self._bridge

    async def boot(self) -> None:
        await self._bridge.boot()
        await self.refresh()

    async def apply(
        self,
        actions: Iterable[Any],
        on_update: Optional[UpdateObserver] = None,
        on_output: Optional[OutputObserver] = None,
    ) -> list[ActionResult]:
        async with self._lock:
            if not self._bridge.is_booted:
                await self._bridge.boot()
                await self._refresh()
            generation = self._bridge.generation
            entries = list(actions)
            logger.info("applying batch of %d actions", len(entries))
            results: list[ActionResult] = []
            for index, raw in enumerate(entries):
                if self._bridge.generation != generation:
                    results.append(await self._abandon(index, raw, on_update))
                else:
                    results.append(await self._apply_one(index, raw, on_update, on_output))
            if self._bridge.generation != generation:
                logger.info("workspace torn down during batch, skipping refresh")
                if not self._bridge.is_booted:
                    self.state.replace_all({})
            else:
                try:
                    await self._refresh()
                except Exception as exc:
                    logger.error("workspace refresh after batch failed: %s", clean_stack_trace(exc))
            failed = sum(1 for result in results if result.status is ActionStatus.ERROR)
            logger.info("batch finished: %d succeeded, %d failed", len(results) - failed, failed)
            return results

    async def teardown(self) -> None:
        await self._bridge.teardown()
        self.state.replace_all({})

    async def refresh(self) -> None:
        """Rebuild the map and tree from a fresh scan of the sandbox."""

        async with self._lock:
            await self._refresh()

    async def write_file(self, path: str, content: str) -> None:
        async with self._lock:
            await self._bridge.write_file(path, content)
            self.state.apply_write(path, content)
            await self._refresh()

    async def _refresh(self) -> None:
        files = await self._bridge.read_all_files()
        self.state.replace_all(files)
        logger.debug("workspace rebuilt with %d files", len(files))

    async def _apply_one(
        self,
        index: int,
        raw: Any,
        on_update: Optional[UpdateObserver],
        on_output: Optional[OutputObserver],
    ) -> ActionResult:
        try:
            action = parse_action(raw)
        except InvalidAction as exc:
            logger.warning("rejected action %d: %s", index, exc)
            result = ActionResult(index=index, raw=raw if isinstance(raw, dict) else None)
            await _notify(on_update, result)
            result = result.transition(ActionStatus.ERROR, message=error_message(exc))
            await _notify(on_update, result)
            return result

        result = ActionResult(index=index, action=action)
        await _notify(on_update, result)
        try:
            if isinstance(action, CreateOrUpdateFile):
                await self._bridge.write_file(action.path, action.content)
                self.state.apply_write(action.path, action.content)
                result = result.transition(ActionStatus.SUCCESS, message="File written")
            elif isinstance(action, DeletePath):
                await self._bridge.remove(action.path, recursive=True)
                self.state.apply_delete(action.path)
                result = result.transition(ActionStatus.SUCCESS, message="Deleted path")
            elif isinstance(action, RunCommand):
                result = await self._run_command(result, action, on_output)
        except Exception as exc:
            logger.warning("action %d (%s) failed: %s", index, action.type, clean_stack_trace(exc))
            result = result.transition(ActionStatus.ERROR, message=error_message(exc))
        await _notify(on_update, result)
        return result

    async def _abandon(self, index: int, raw: Any, on_update: Optional[UpdateObserver]) -> ActionResult:
        try:
            result = ActionResult(index=index, action=parse_action(raw))
        except InvalidAction:
            result = ActionResult(index=index, raw=raw if isinstance(raw, dict) else None)
        await _notify(on_update, result)
        result = result.transition(ActionStatus.ERROR, message="Workspace was torn down")
        await _notify(on_update, result)
        return result

    async def _run_command(
        self,
        result: ActionResult,
        action: RunCommand,
        on_output: Optional[OutputObserver],
    ) -> ActionResult:
        process = await self._bridge.run_command(action.command, cwd=action.cwd, on_output=on_output)
        status = ActionStatus.SUCCESS if process.exit_code == 0 else ActionStatus.ERROR
        return result.transition(
            status,
            message=f"Exited with code {process.exit_code}",
            output=process.output,
            exit_code=process.exit_code,
        )


async def _notify(observer: Optional[UpdateObserver], result: ActionResult) -> None:
    if observer is None:
        return
    try:
        maybe_awaitable = observer(result)
        if inspect.isawaitable(maybe_awaitable):
            await maybe_awaitable
    except Exception:
        logger.warning("action observer failed for action %d", result.index, exc_info=True)
