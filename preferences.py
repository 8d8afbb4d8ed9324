"""
preferences.py – JSON key-value preference store.

User preferences such as "conceal tokens" live in a small JSON document in
the user-data directory, separate from config.json so that a reset can wipe
them without touching application configuration.
"""

import asyncio
import json
import logging
import os
from typing import Optional

from config import APP_NAME
from errors import StoreAccessError

logger = logging.getLogger(APP_NAME)


class JsonPreferenceStore:
    """
    Key-value store persisted as one JSON object.

    Parameters
    ----------
    config : AppConfig
        Provides ``preferences_path``.
    """

    def __init__(self, config) -> None:
        self.config = config

    def _read(self) -> dict:
        path = self.config.preferences_path
        if not os.path.exists(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise StoreAccessError("Could not read preferences", exc) from exc
        if not isinstance(data, dict):
            raise StoreAccessError("Preferences file does not hold a JSON object")
        return data

    def _write(self, data: dict) -> None:
        path = self.config.preferences_path
        tmp = path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp, path)
        except OSError as exc:
            raise StoreAccessError("Could not write preferences", exc) from exc

    async def get(self, key: str) -> Optional[object]:
        """Return the value stored under *key*, or None when it is absent."""
        data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, value) -> None:
        """Store *value* under *key*."""
        def _update() -> None:
            data = self._read()
            data[key] = value
            self._write(data)

        await asyncio.to_thread(_update)

    async def clear(self) -> None:
        """Remove every preference. Clearing an empty store is a no-op."""
        await asyncio.to_thread(self._clear_sync)

    def _clear_sync(self) -> None:
        try:
            os.remove(self.config.preferences_path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StoreAccessError("Could not clear preferences", exc) from exc
        logger.info("Preferences cleared")
