from __future__ import annotations

from dataclasses import asdict
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from workbench.config import WorkspaceConfig, configure_logging, load_config
from workbench.errors import BootFailure, EnvironmentUnsupported, WorkspaceError, error_message
from workbench.providers.sandbox import LocalProvider, SandboxProvider
from workbench.runtime.bridge import RuntimeBridge
from workbench.workspace import tree as vtree
from workbench.workspace.executor import ActionExecutor
from workbench.workspace.summary import build_context_summary, build_project_summary

logger = logging.getLogger(__name__)


class ActionBatch(BaseModel):
    actions: List[Dict[str, Any]]


class FileWrite(BaseModel):
    path: str
    content: str


def http_error(
    kind: str,
    message: str,
    *,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"kind": kind, "message": message, "details": details or {}},
    )


def _boot_error(exc: BootFailure) -> HTTPException:
    logger.warning("workspace boot failed: %s", error_message(exc))
    if isinstance(exc, EnvironmentUnsupported):
        return http_error(
            "environment_unsupported",
            error_message(exc),
            status_code=503,
            details={"remediation": exc.remediation},
        )
    return http_error("boot_failed", error_message(exc), status_code=503)


def _executor(request: Request) -> ActionExecutor:
    return request.app.state.executor


def _tree_payload(executor: ActionExecutor) -> Dict[str, Any]:
    return vtree.to_dict(executor.state.tree)


def create_app(
    config: WorkspaceConfig | None = None,
    provider: SandboxProvider | None = None,
) -> FastAPI:
    config = config or load_config()
    provider = provider or LocalProvider(base_dir=config.base_dir, shell=config.shell)
    app = FastAPI(title="workbench")
    app.state.config = config
    app.state.executor = ActionExecutor(RuntimeBridge(provider, config))

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "ok"}

    @app.post("/workspace/boot")
    async def boot_workspace(request: Request) -> dict:
        executor = _executor(request)
        try:
            await executor.boot()
        except BootFailure as exc:
            raise _boot_error(exc) from exc
        handle = executor.bridge.handle
        return {
            "sandbox_id": handle.sandbox_id if handle else None,
            "files": len(executor.state.snapshot_map()),
        }

    @app.delete("/workspace")
    async def teardown_workspace(request: Request) -> dict:
        executor = _executor(request)
        try:
            await executor.teardown()
        except WorkspaceError as exc:
            raise http_error("teardown_failed", error_message(exc), status_code=500) from exc
        return {"status": "torn-down"}

    @app.get("/workspace/status")
    def workspace_status(request: Request) -> dict:
        bridge = _executor(request).bridge
        active = bridge.active_process
        return {
            "booted": bridge.is_booted,
            "sandbox_id": bridge.handle.sandbox_id if bridge.handle else None,
            "error": bridge.last_error,
            "active_command": active.command if active else None,
        }

    @app.get("/workspace/tree")
    def workspace_tree(request: Request) -> dict:
        return _tree_payload(_executor(request))

    @app.get("/workspace/files")
    def workspace_files(request: Request) -> list:
        executor = _executor(request)
        summary = build_project_summary(
            executor.state.snapshot_map(), preview_chars=request.app.state.config.preview_chars
        )
        return [asdict(item) for item in summary.files]

    @app.get("/workspace/files/content")
    def file_content(request: Request, path: str) -> dict:
        state = _executor(request).state
        if not state.has_file(path):
            raise http_error("not_found", f"No such file: {path}", status_code=404)
        return {"path": vtree.normalize_path(path), "content": state.get_file_content(path)}

    @app.put("/workspace/files")
    async def save_file(request: Request, body: FileWrite) -> dict:
        executor = _executor(request)
        try:
            await executor.write_file(body.path, body.content)
        except BootFailure as exc:
            raise _boot_error(exc) from exc
        except (WorkspaceError, ValueError) as exc:
            raise http_error("write_failed", error_message(exc), status_code=400) from exc
        return {"path": vtree.normalize_path(body.path), "tree": _tree_payload(executor)}

    @app.get("/workspace/summary")
    def workspace_summary(request: Request) -> dict:
        executor = _executor(request)
        summary = build_project_summary(
            executor.state.snapshot_map(), preview_chars=request.app.state.config.preview_chars
        )
        return {
            "files": [asdict(item) for item in summary.files],
            "dependencies": summary.dependencies,
            "context": build_context_summary(summary),
        }

    @app.post("/workspace/actions")
    async def apply_actions(request: Request, batch: ActionBatch) -> dict:
        executor = _executor(request)
        terminal: List[str] = []
        try:
            results = await executor.apply(batch.actions, on_output=terminal.append)
        except BootFailure as exc:
            raise _boot_error(exc) from exc
        return {
            "results": [result.to_payload() for result in results],
            "terminal": "".join(terminal),
            "tree": _tree_payload(executor),
        }

    @app.post("/workspace/refresh")
    async def refresh_workspace(request: Request) -> dict:
        executor = _executor(request)
        try:
            await executor.refresh()
        except BootFailure as exc:
            raise _boot_error(exc) from exc
        except WorkspaceError as exc:
            raise http_error("refresh_failed", error_message(exc), status_code=500) from exc
        return _tree_payload(executor)

    @app.post("/workspace/process/kill")
    async def kill_process(request: Request) -> dict:
        bridge = _executor(request).bridge
        active = bridge.active_process
        bridge.kill_active()
        return {"killed": active.command if active else None}

    @app.get("/workspace/events")
    async def workspace_events(request: Request) -> list:
        return [asdict(event) for event in _executor(request).bridge.drain_events()]

    return app


def build_default_app() -> FastAPI:
    config = load_config()
    configure_logging(config.log_level)
    return create_app(config)


app = build_default_app()
