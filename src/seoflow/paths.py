"""Path helpers for the seoflow workspace and exports."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

__all__ = [
    "DEFAULT_STATE_PATH",
    "DEFAULT_EXPORT_ROOT",
    "WorkspacePathConfig",
    "resolve_state_path",
    "resolve_export_path",
    "ensure_directory",
]

DEFAULT_STATE_PATH = Path(os.getenv("SEOFLOW_STATE_PATH", ".seoflow")) / "state.json"
DEFAULT_EXPORT_ROOT = Path(os.getenv("SEOFLOW_EXPORT_ROOT", "exports"))


def _normalise(path: Path | str) -> Path:
    return Path(path).expanduser()


def ensure_directory(path: Path | str) -> Path:
    resolved = _normalise(path)
    resolved.mkdir(parents=True, exist_ok=True)
    return resolved


def resolve_state_path(path: Path | str | None = None) -> Path:
    """State file location; a directory argument gets ``state.json`` appended."""

    candidate = _normalise(path or DEFAULT_STATE_PATH)
    if candidate.is_dir():
        candidate = candidate / "state.json"
    return candidate


def resolve_export_path(path: Path | str | None = None, *, create: bool = True) -> Path:
    candidate = _normalise(path or DEFAULT_EXPORT_ROOT)
    if create:
        candidate.mkdir(parents=True, exist_ok=True)
    return candidate


@dataclass(slots=True)
class WorkspacePathConfig:
    state_path: Path = DEFAULT_STATE_PATH
    export_root: Path = DEFAULT_EXPORT_ROOT
    create_exports: bool = True

    def expanded(self) -> "WorkspacePathConfig":
        return replace(
            self,
            state_path=resolve_state_path(self.state_path),
            export_root=_normalise(self.export_root),
        )

    def ensure(self) -> "WorkspacePathConfig":
        resolved = self.expanded()
        resolved.state_path.parent.mkdir(parents=True, exist_ok=True)
        if self.create_exports:
            resolved.export_root.mkdir(parents=True, exist_ok=True)
        return resolved
