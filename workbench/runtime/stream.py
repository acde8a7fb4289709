"""Incremental output reader for one spawned sandbox process."""

from __future__ import annotations

import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from workbench.models.sandbox import ProcessResult
from workbench.providers.sandbox.base import ProcessHandle

logger = logging.getLogger(__name__)

OutputObserver = Callable[[str], Union[None, Awaitable[None]]]


class ProcessStream:
    """Accumulates a process's output and forwards each chunk as it arrives.

    A non-zero exit code is reported in the ``ProcessResult``; it is not an
    error at this layer.
    """

    def __init__(
        self,
        handle: ProcessHandle,
        command: str,
        on_output: Optional[OutputObserver] = None,
    ) -> None:
        self._handle = handle
        self.command = command
        self._observers: list[OutputObserver] = [on_output] if on_output else []
        self._chunks: list[str] = []
        self._started = time.monotonic()
        self._result: Optional[ProcessResult] = None
        self._killed = False

    @property
    def output(self) -> str:
        return "".join(self._chunks)

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def killed(self) -> bool:
        return self._killed

    @property
    def result(self) -> Optional[ProcessResult]:
        return self._result

    def add_observer(self, observer: OutputObserver) -> None:
        self._observers.append(observer)

    async def run(self) -> ProcessResult:
        if self._result is not None:
            return self._result
        async for chunk in self._handle.output:
            self._chunks.append(chunk)
            await self._notify(chunk)
        exit_code = await self._handle.wait()
        self._result = ProcessResult(
            exit_code=exit_code,
            output=self.output,
            duration_ms=int((time.monotonic() - self._started) * 1000),
        )
        logger.debug("process exited with code %s: %s", exit_code, self.command)
        return self._result

    def kill(self) -> None:
        if self._killed:
            return
        self._killed = True
        logger.info("killing process: %s", self.command)
        self._handle.kill()

    async def _notify(self, chunk: str) -> None:
        for observer in list(self._observers):
            try:
                maybe_awaitable = observer(chunk)
                if inspect.isawaitable(maybe_awaitable):
                    await maybe_awaitable
            except Exception:
                logger.warning("output observer failed for %s", self.command, exc_info=True)
