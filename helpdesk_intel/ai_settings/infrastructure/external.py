"""
AI Settings External Integrations
=================================

- YAML settings file with watchdog hot reload
- Static in-process provider
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from helpdesk_intel.ai_settings.application import ISettingsProvider
from helpdesk_intel.ai_settings.domain import AISettings
from helpdesk_intel.core import ConfigurationException
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SettingsFileHandler(FileSystemEventHandler):
    """Watchdog event handler for AI settings file changes."""

    def __init__(self, manager: "AISettingsManager", path: Path):
        self.manager = manager
        self.path = path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.path.resolve():
            logger.info("AI settings file changed", extra={"path": event.src_path})
            self.manager.reload()


class AISettingsManager(ISettingsProvider):
    """
    Thread-safe AI settings store with hot-reload support.

    A reload swaps the whole snapshot; readers never observe a partially
    updated configuration. A file that fails validation is ignored and the
    previous snapshot stays active.
    """

    def __init__(self):
        self._settings: Optional[AISettings] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> AISettings:
        """Initial settings load."""
        self._path = path
        loaded = self._load_from_file(path)
        with self._lock:
            self._settings = loaded
        return loaded

    def _load_from_file(self, path: Path) -> AISettings:
        if not path.exists():
            logger.warning("AI settings file not found, using defaults", extra={"path": str(path)})
            return AISettings()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        try:
            return AISettings.model_validate(data)
        except ValidationError as e:
            raise ConfigurationException(
                f"Invalid AI settings file {path}",
                {"errors": e.errors(include_url=False)}
            )

    def reload(self) -> bool:
        """Reload settings from file."""
        if self._path is None:
            return False

        try:
            new_settings = self._load_from_file(self._path)
        except (ConfigurationException, yaml.YAMLError, OSError) as e:
            logger.error("Failed to reload AI settings", extra={"error": str(e)})
            return False

        with self._lock:
            self._settings = new_settings
        logger.info("AI settings reloaded", extra={"version": new_settings.version})
        return True

    def save(self, new_settings: AISettings) -> AISettings:
        """Persist a replacement snapshot and make it active."""
        if self._path is not None:
            with open(self._path, "w") as f:
                yaml.safe_dump(new_settings.model_dump(mode="json"), f, sort_keys=False)

        with self._lock:
            self._settings = new_settings
        logger.info("AI settings saved", extra={"version": new_settings.version})
        return new_settings

    def start_watching(self) -> None:
        """
        Start watching the settings file for changes.

        Skips watching if the file doesn't exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Settings not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "AI settings file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                SettingsFileHandler(self, self._path),
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching AI settings file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static settings", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def snapshot(self) -> AISettings:
        with self._lock:
            if self._settings is None:
                raise RuntimeError("AI settings not loaded")
            return self._settings


class StaticSettingsProvider(ISettingsProvider):
    """Provider holding a fixed snapshot, replaceable in-process."""

    def __init__(self, settings: Optional[AISettings] = None):
        self._settings = settings or AISettings()
        self._lock = threading.Lock()

    def snapshot(self) -> AISettings:
        with self._lock:
            return self._settings

    def save(self, new_settings: AISettings) -> AISettings:
        with self._lock:
            self._settings = new_settings
        return new_settings
