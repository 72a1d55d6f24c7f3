"""JSON persistence for :class:`Settings`.

The file lives at ``$SKYTRACE_HOME/settings.json`` (default
``~/.skytrace``). It may hold feed credentials, so it is written with
owner-only permissions.

Loading is forgiving: an unreadable file yields defaults, and a bad
credential pair (only one half present, or a username Basic auth cannot
carry) is dropped on its own so the rest of the file still applies.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .schema import Settings

logger = logging.getLogger(__name__)

_FILE_MODE = 0o600


def _credentials_usable(data: dict[str, Any]) -> bool:
    user = data.get("username")
    password = data.get("password")
    if not user and not password:
        return True
    if not (isinstance(user, str) and isinstance(password, str)):
        return False
    return bool(user) and bool(password) and ":" not in user


class SettingsStore:
    """Load and save :class:`Settings` under the SkyTrace home directory."""

    @staticmethod
    def settings_path() -> Path:
        home = os.environ.get("SKYTRACE_HOME")
        base = Path(home) if home else Path("~/.skytrace")
        return base.expanduser() / "settings.json"

    @classmethod
    def ensure_home(cls) -> Path:
        path = cls.settings_path().parent
        path.mkdir(parents=True, exist_ok=True)
        return path

    @classmethod
    def load(cls) -> Settings:
        """Return the persisted settings, or defaults when missing or invalid."""
        path = cls.settings_path()
        if not path.exists():
            return Settings()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable settings at %s", path, exc_info=True)
            return Settings()
        if not isinstance(data, dict):
            logger.warning("Ignoring settings at %s: expected a JSON object", path)
            return Settings()
        if not _credentials_usable(data):
            logger.warning("Dropping incomplete or invalid credentials from %s", path)
            data = {k: v for k, v in data.items() if k not in ("username", "password")}
        try:
            return Settings.model_validate(data)
        except ValidationError:
            logger.warning("Ignoring invalid settings at %s", path, exc_info=True)
            return Settings()

    @classmethod
    def save(cls, settings: Settings) -> Path:
        """Write *settings* atomically and return the file path."""
        path = cls.settings_path()
        cls.ensure_home()
        tmp = path.with_suffix(".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(settings.model_dump_json(indent=2))
        os.replace(tmp, path)
        return path
