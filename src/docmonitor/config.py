"""Application configuration defaults."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from docmonitor.errors import ConfigError

LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME = "appsettings.json"


def _default_watched_folders() -> List[Path]:
    return [Path.home() / "Documents" / "Monitor"]


@dataclass(slots=True)
class AppConfig:
    index_dir: Path = Path("data/index")
    watched_folders: List[Path] = field(default_factory=_default_watched_folders)
    debounce_seconds: float = 0.5
    max_results: int = 20
    default_fields: tuple[str, ...] = ("filename", "content")

    def __post_init__(self) -> None:
        self.index_dir = Path(self.index_dir)
        if not self.watched_folders:
            self.watched_folders = _default_watched_folders()
        self.watched_folders = [Path(folder).expanduser() for folder in self.watched_folders]

    @classmethod
    def from_file(cls, path: Path | None = None) -> "AppConfig":
        """Load ``appsettings.json``; a missing file yields the defaults.

        Recognised keys: ``MonitoredFolders`` (list of paths), ``IndexPath``,
        ``DebounceMilliseconds`` and ``MaxResults``.
        """
        path = Path(path) if path is not None else Path.cwd() / CONFIG_FILENAME
        if not path.exists():
            LOGGER.debug("No configuration file at %s, using defaults", path)
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(f"Cannot read configuration {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration {path} must contain a JSON object")

        config = cls()
        folders = [value for value in data.get("MonitoredFolders") or [] if value]
        if folders:
            config.watched_folders = [Path(value).expanduser() for value in folders]
        if data.get("IndexPath"):
            config.index_dir = Path(data["IndexPath"])
        try:
            if "DebounceMilliseconds" in data:
                config.debounce_seconds = int(data["DebounceMilliseconds"]) / 1000.0
            if "MaxResults" in data:
                config.max_results = int(data["MaxResults"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric setting in {path}: {exc}") from exc
        return config

    def resolve_index_dir(self, base_dir: Path | None = None) -> Path:
        if self.index_dir.is_absolute() or base_dir is None:
            return self.index_dir
        return base_dir / self.index_dir

    def ensure_folders(self) -> List[Path]:
        """Create missing watched folders; returns the ones that were created."""
        created = []
        for folder in self.watched_folders:
            if not folder.exists():
                folder.mkdir(parents=True, exist_ok=True)
                created.append(folder)
        return created
