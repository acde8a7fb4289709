"""Workspace configuration loaded from YAML with environment overrides."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
import logging
import os
from pathlib import Path
import shlex
from typing import Any, Mapping

import yaml

DEFAULT_CONFIG_PATH = "config/workspace.yaml"

DEFAULT_IGNORED_DIRECTORIES = frozenset({"node_modules", ".git", ".cache", ".pnpm-store"})

STARTER_FILES: dict[str, str] = {
    "/package.json": json.dumps(
        {
            "name": "workbench-project",
            "version": "1.0.0",
            "private": True,
            "type": "module",
            "scripts": {
                "dev": "vite --host",
                "build": "vite build",
                "preview": "vite preview --host",
            },
            "dependencies": {},
            "devDependencies": {},
        },
        indent=2,
    ),
    "/README.md": (
        "# Welcome to the workbench workspace\n\n"
        "- Ask the assistant to scaffold a project\n"
        "- Run commands such as `npm install` or `npm run dev`\n"
        "- Open the preview once a dev server boots\n"
    ),
    "/src/index.js": "console.log('Hello from the workbench sandbox!');\n",
}


@dataclass(frozen=True)
class WorkspaceConfig:
    base_dir: str | None = None
    sandbox_name: str = "workspace"
    shell: tuple[str, ...] = ("bash", "-lc")
    ignored_directories: frozenset[str] = DEFAULT_IGNORED_DIRECTORIES
    seed_files: bool = True
    starter_files: dict[str, str] = field(default_factory=lambda: dict(STARTER_FILES))
    preview_chars: int = 280
    event_queue_size: int = 100
    log_level: str = "INFO"


def load_config(path: str | os.PathLike[str] = DEFAULT_CONFIG_PATH) -> WorkspaceConfig:
    config_path = Path(path)
    data: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        section = loaded.get("workspace", {}) if isinstance(loaded, dict) else {}
        if not isinstance(section, dict):
            raise ValueError(f"'workspace' section in {config_path} must be a mapping")
        data = section
    config = _from_mapping(data)
    return _apply_env(config, os.environ)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _from_mapping(data: dict[str, Any]) -> WorkspaceConfig:
    config = WorkspaceConfig()
    updates: dict[str, Any] = {}
    if "base_dir" in data:
        updates["base_dir"] = str(data["base_dir"]) if data["base_dir"] else None
    if "sandbox_name" in data:
        updates["sandbox_name"] = str(data["sandbox_name"])
    if "shell" in data:
        updates["shell"] = _parse_shell(data["shell"])
    if "ignored_directories" in data:
        updates["ignored_directories"] = frozenset(str(name) for name in data["ignored_directories"])
    if "seed_files" in data:
        updates["seed_files"] = bool(data["seed_files"])
    if "starter_files" in data:
        starters = data["starter_files"] or {}
        if not isinstance(starters, dict):
            raise ValueError("starter_files must map paths to contents")
        updates["starter_files"] = {str(key): str(value) for key, value in starters.items()}
    if "preview_chars" in data:
        updates["preview_chars"] = int(data["preview_chars"])
    if "event_queue_size" in data:
        updates["event_queue_size"] = int(data["event_queue_size"])
    if "log_level" in data:
        updates["log_level"] = str(data["log_level"])
    return replace(config, **updates)


def _apply_env(config: WorkspaceConfig, env: Mapping[str, str]) -> WorkspaceConfig:
    updates: dict[str, Any] = {}
    if env.get("WORKBENCH_BASE_DIR"):
        updates["base_dir"] = env["WORKBENCH_BASE_DIR"]
    if env.get("WORKBENCH_SHELL"):
        updates["shell"] = _parse_shell(env["WORKBENCH_SHELL"])
    if env.get("WORKBENCH_LOG_LEVEL"):
        updates["log_level"] = env["WORKBENCH_LOG_LEVEL"]
    if env.get("WORKBENCH_SEED_FILES"):
        updates["seed_files"] = env["WORKBENCH_SEED_FILES"].strip().lower() in {"1", "true", "yes", "on"}
    return replace(config, **updates) if updates else config


def _parse_shell(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        parts = tuple(shlex.split(value))
    else:
        parts = tuple(str(part) for part in value)
    if not parts:
        raise ValueError("shell must name an executable")
    return parts
