"""Listener bind settings storage."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..errors import ValidationError
from ..models.bindings import HttpBindings
from ..payloads.validator import validate_bindings

logger = logging.getLogger(__name__)

HTTP_SETTINGS_KEY = "httpBindings"

BindingsListener = Callable[[HttpBindings], Awaitable[None]]


class SettingsStore:
    """Holds the current bind address and port.

    A save is applied in three steps: validate, notify listeners (the
    listener manager rebinds here), then commit and persist. If any
    listener raises, the previous bindings stay in effect and nothing is
    written to disk.

    Attributes:
        storage_path: Path to the settings JSON file
    """

    def __init__(
        self,
        storage_path: Path,
        defaults: HttpBindings | None = None,
        override: HttpBindings | None = None,
    ) -> None:
        """Initialize settings store.

        Args:
            storage_path: Path to the settings JSON file
            defaults: Bindings used when the file is missing or unreadable
            override: Bindings for this run that take precedence over the
                file (command line flags); persisted only by a later save
        """
        self.storage_path = storage_path
        self._bindings = defaults or HttpBindings()
        self._listeners: list[BindingsListener] = []
        self._save_lock = asyncio.Lock()

        self._load_persistent()
        if override is not None:
            self._bindings = override

    def get_bindings(self) -> HttpBindings:
        """Current bindings."""
        return self._bindings

    def subscribe(self, listener: BindingsListener) -> None:
        """Register a coroutine called with the new bindings before they are committed."""
        self._listeners.append(listener)

    async def save_bindings(self, raw: dict[str, Any] | HttpBindings) -> HttpBindings:
        """Validate, apply and persist new bindings.

        Args:
            raw: Mapping with bindAddress and port, or HttpBindings

        Returns:
            The committed bindings

        Raises:
            ValidationError: If the address is blank or the port out of range
            BindError: If a listener could not be rebound (raised by subscribers)
        """
        if isinstance(raw, HttpBindings):
            raw = raw.to_dict()
        result = validate_bindings(raw)
        if isinstance(result, ValidationError):
            logger.warning(f"[SettingsStore] Rejected bindings: {result}")
            raise result

        async with self._save_lock:
            for listener in self._listeners:
                await listener(result)

            self._bindings = result
            self._save_persistent()

        logger.info(f"[SettingsStore] Saved bindings {result}")
        return result

    def _load_persistent(self) -> None:
        """Load bindings from JSON file."""
        if not self.storage_path.exists():
            return

        try:
            with open(self.storage_path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"[SettingsStore] Failed to read {self.storage_path}: {e}")
            return

        stored = data.get(HTTP_SETTINGS_KEY) if isinstance(data, dict) else None
        if stored is None:
            return

        result = validate_bindings(stored)
        if isinstance(result, ValidationError):
            logger.error(f"[SettingsStore] Ignoring stored bindings: {result}")
            return
        self._bindings = result

    def _save_persistent(self) -> None:
        """Save bindings to JSON file, keeping any other keys."""
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)

        data: dict[str, Any] = {}
        if self.storage_path.exists():
            try:
                with open(self.storage_path) as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    data = loaded
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"[SettingsStore] Overwriting unreadable {self.storage_path}: {e}")

        data[HTTP_SETTINGS_KEY] = self._bindings.to_dict()
        with open(self.storage_path, "w") as f:
            json.dump(data, f, indent=2)
