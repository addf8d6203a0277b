import contextlib
import json
import logging
import os
import re
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from .constants import APP_NAME, SETTINGS_FILE

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if re.match(r"^-?\d+$", text):
        return int(text)
    match = re.match(r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", text)
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def parse_minutes(value: int | str) -> int:
    """Converts an interval to whole minutes.

    Bare numbers are taken as minutes; suffixed strings ('1hr', '90s') go
    through `parse_time`.
    """
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if re.match(r"^-?\d+$", text):
        return int(text)
    return parse_time(text) // 60


def parse_bool(value: bool | str) -> bool:
    """Accepts real booleans and the usual textual spellings."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean '{value}'")


@dataclass
class Settings:
    """User-facing synchronization settings.

    Attributes:
        commit_message (str): Commit message template (supports placeholders).
        commit_date_format (str): strftime pattern used for `{{date}}`.
        auto_sync_interval (int): Minutes between backups. Zero or less disables.
        pull_on_startup (bool): Whether the daemon pulls once when it starts.
        disable_push (bool): Commit only; never push to the remote.
        disable_notifications (bool): Suppress desktop notifications.
        remote_name (str): The git remote to push to.
        branch (str | None): Branch to push. None means the current branch.
        git_timeout (int): Seconds before a git call is abandoned.
        max_log_size (int): Max bytes for the log file before rotation.
    """

    commit_message: str = "vault backup: {{date}}"
    commit_date_format: str = "%Y-%m-%d %H:%M:%S"
    auto_sync_interval: int = 0
    pull_on_startup: bool = False
    disable_push: bool = True
    disable_notifications: bool = False
    remote_name: str = "origin"
    branch: str | None = None
    git_timeout: int = 120
    max_log_size: int = 5 * 1024 * 1024

    @property
    def auto_sync_enabled(self) -> bool:
        return self.auto_sync_interval > 0


# Keys whose raw values are routed through a parser before assignment.
_PARSERS = {
    "auto_sync_interval": parse_minutes,
    "git_timeout": parse_time,
    "max_log_size": parse_size,
    "pull_on_startup": parse_bool,
    "disable_push": parse_bool,
    "disable_notifications": parse_bool,
}


def coerce_value(key: str, value: Any) -> Any:
    """Converts a raw value for `key` into the type the field expects.

    Raises:
        KeyError: If `key` is not a settings field.
        ValueError: If the value cannot be parsed.
    """
    if key not in {f.name for f in fields(Settings)}:
        raise KeyError(key)
    if key in _PARSERS:
        return _PARSERS[key](value)
    if key == "branch":
        return value or None
    if not isinstance(value, str):
        raise ValueError(f"Expected a string, got {type(value).__name__}")
    return value


class SettingsStore:
    """Loads, holds and persists the settings record.

    The record is read once, merged over the defaults, and written back in
    full (atomically) after every field change.

    Attributes:
        path (Path): The JSON file backing the store.
        settings (Settings): The live settings record.
    """

    def __init__(self, path: Path = SETTINGS_FILE):
        self.path = path
        self.settings = Settings()

    @classmethod
    def load(cls, path: Path | None = None) -> "SettingsStore":
        """Creates a store and merges any persisted settings over the defaults.

        Args:
            path (Path | None): Alternate settings file. Defaults to SETTINGS_FILE.

        Returns:
            SettingsStore: The populated store.
        """
        store = cls(path or SETTINGS_FILE)
        if store.path.exists():
            store._merge_from_file(store.path)
        return store

    def read(self) -> Settings | None:
        """Reads the settings file afresh, without touching the live record.

        Used to pick up edits made by another process. A file that is
        missing, empty or malformed yields None so the caller can keep
        what it has.

        Returns:
            Settings | None: The file's settings merged over the defaults.
        """
        if not self.path.exists():
            logger.warning(f"Settings file {self.path} disappeared.")
            return None
        fresh = type(self)(self.path)
        if not fresh._merge_from_file(self.path):
            return None
        return fresh.settings

    def _merge_from_file(self, path: Path) -> bool:
        try:
            text = path.read_text()
        except OSError as e:
            logger.warning(f"Failed to load settings from {path}: {e}")
            return False

        if not text.strip():
            logger.warning(f"Settings file {path} is empty.")
            return False

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Settings syntax error in {path}: {e}")
            return False

        if not isinstance(data, dict):
            logger.error(f"Settings file {path} does not contain an object.")
            return False

        self.settings = self._update_dataclass(self.settings, data)
        return True

    @staticmethod
    def _update_dataclass(instance: Settings, updates: dict) -> Settings:
        """Updates the record, warning on invalid keys and unparseable values."""
        valid_keys = {f.name for f in fields(instance)}

        invalid_keys = set(updates.keys()) - valid_keys
        if invalid_keys:
            logger.warning(
                f"Unknown settings keys: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        filtered_updates = {}
        for k, v in updates.items():
            if k not in valid_keys:
                continue
            try:
                filtered_updates[k] = coerce_value(k, v)
            except ValueError as e:
                logger.warning(f"Settings error in {k}: {e}. Falling back to default.")

        return replace(instance, **filtered_updates)

    def update(self, key: str, value: Any) -> Any:
        """Sets a single field and persists the whole record.

        Args:
            key (str): The settings field name.
            value (Any): The raw value (human-readable forms accepted).

        Returns:
            Any: The coerced value that was stored.

        Raises:
            KeyError: If `key` is not a settings field.
            ValueError: If the value cannot be parsed.
        """
        coerced = coerce_value(key, value)
        self.settings = replace(self.settings, **{key: coerced})
        self.save()
        return coerced

    def save(self) -> None:
        """Persists the settings record to disk atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.path.with_suffix(".tmp")

        try:
            with open(tmp_file, "w") as f:
                json.dump(asdict(self.settings), f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_file, self.path)
        except OSError as e:
            logger.error(f"Failed to write settings to {self.path}: {e}")
            if tmp_file.exists():
                with contextlib.suppress(OSError):
                    tmp_file.unlink()
            raise
