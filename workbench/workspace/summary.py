"""Project summaries handed to the prompt-construction layer."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import Mapping

from workbench.workspace.tree import normalize_path

logger = logging.getLogger(__name__)

PACKAGE_MANIFEST = "/package.json"


@dataclass(frozen=True)
class FileSummary:
    path: str
    size: int
    preview: str


@dataclass(frozen=True)
class ProjectSummary:
    files: list[FileSummary] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)


def build_file_summaries(files: Mapping[str, str], preview_chars: int = 280) -> list[FileSummary]:
    return [
        FileSummary(path=path, size=len(content), preview=content[:preview_chars])
        for path, content in sorted(files.items())
    ]


def parse_dependencies(manifest: str | None) -> list[str]:
    """Return ``name@version`` entries from a package manifest.

    Runtime dependencies come first, then dev dependencies. A missing or
    unparsable manifest yields an empty list.
    """

    if not manifest:
        return []
    try:
        package = json.loads(manifest)
    except json.JSONDecodeError as exc:
        logger.warning("failed to parse package manifest: %s", exc)
        return []
    if not isinstance(package, dict):
        return []
    dependencies: list[str] = []
    for key in ("dependencies", "devDependencies"):
        section = package.get(key)
        if isinstance(section, dict):
            dependencies.extend(f"{name}@{version}" for name, version in section.items())
    return dependencies


def build_project_summary(
    files: Mapping[str, str],
    preview_chars: int = 280,
    manifest_path: str = PACKAGE_MANIFEST,
) -> ProjectSummary:
    return ProjectSummary(
        files=build_file_summaries(files, preview_chars),
        dependencies=parse_dependencies(files.get(normalize_path(manifest_path))),
    )


def build_context_summary(summary: ProjectSummary, limit: int = 20) -> str:
    dependency_list = (
        ", ".join(summary.dependencies)
        if summary.dependencies
        else "No dependencies installed yet."
    )
    file_summary = "\n\n".join(
        f"• {item.path} ({item.size} chars)\n{item.preview.replace('```', '')}"
        for item in summary.files[:limit]
    )
    return (
        f"Current dependencies: {dependency_list}\n\n"
        f"Important files:\n{file_summary or 'No project files yet.'}"
    )
