"""JSON persistence for the workspace: store, selections and preferences."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping

from ..errors import StateFileError

__all__ = ["DEFAULT_STORAGE_KEY", "Preferences", "WorkspaceSnapshot", "StateFile"]

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "app-storage"
LANGUAGES = ("en", "vi")
THEMES = ("light", "dark")


@dataclass(slots=True)
class Preferences:
    """User preferences saved alongside the pipeline state."""

    language: str = "en"
    theme: str = "light"
    user_name: str = ""

    def __post_init__(self) -> None:
        if self.language not in LANGUAGES:
            raise ValueError(f"Unsupported language '{self.language}'; expected one of {LANGUAGES}")
        if self.theme not in THEMES:
            raise ValueError(f"Unsupported theme '{self.theme}'; expected one of {THEMES}")

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "Preferences":
        payload = payload or {}
        try:
            return cls(
                language=str(payload.get("language", "en")),
                theme=str(payload.get("theme", "light")),
                user_name=str(payload.get("user_name", payload.get("userName", ""))),
            )
        except ValueError:
            logger.warning("Saved preferences are invalid; using defaults")
            return cls()


@dataclass(slots=True)
class WorkspaceSnapshot:
    """Everything persisted under the storage key."""

    store: dict[str, Any] = field(default_factory=dict)
    selections: dict[str, Any] = field(default_factory=dict)
    preferences: Preferences = field(default_factory=Preferences)

    def to_dict(self) -> dict[str, Any]:
        return {
            "store": self.store,
            "selections": self.selections,
            "preferences": self.preferences.to_dict(),
        }


class StateFile:
    """Reads and rewrites the whole state document on every save."""

    def __init__(self, path: Path | str, *, storage_key: str = DEFAULT_STORAGE_KEY, encoding: str = "utf-8") -> None:
        self.path = Path(path).expanduser()
        self.storage_key = storage_key
        self.encoding = encoding

    def load(self) -> WorkspaceSnapshot:
        """Return the saved snapshot, or a fresh one when the file is missing or unreadable."""

        if not self.path.exists():
            logger.info("No saved state at %s; starting fresh", self.path)
            return WorkspaceSnapshot()
        try:
            document = json.loads(self.path.read_text(encoding=self.encoding))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read saved state %s (%s); starting fresh", self.path, exc)
            return WorkspaceSnapshot()

        payload = document.get(self.storage_key) if isinstance(document, dict) else None
        if not isinstance(payload, dict):
            logger.warning("Saved state %s has no '%s' entry; starting fresh", self.path, self.storage_key)
            return WorkspaceSnapshot()
        return WorkspaceSnapshot(
            store=payload.get("store") or {},
            selections=payload.get("selections") or {},
            preferences=Preferences.from_dict(payload.get("preferences")),
        )

    def save(self, snapshot: WorkspaceSnapshot) -> Path:
        document = {self.storage_key: snapshot.to_dict()}
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding=self.encoding)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StateFileError(f"Failed to write state file {self.path}: {exc}") from exc
        return self.path
