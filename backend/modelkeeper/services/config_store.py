from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from modelkeeper.models.model_config import ModelConfig, ModelConfigUpdate
from modelkeeper.services.json_store import read_json, write_json_atomic

logger = logging.getLogger(__name__)

ConfigListener = Callable[[ModelConfig, ModelConfig], Awaitable[None] | None]


class ConfigStore:
    """Persisted user model selection plus tuning knobs.

    The in-memory config is authoritative for the life of the process. A
    failed write is logged and the next run simply starts from the old file.
    """

    def __init__(self, path: Path):
        self.path = path
        self._config = ModelConfig()
        self._listeners: list[ConfigListener] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    async def load(self) -> ModelConfig:
        self._loaded = True
        try:
            raw = await read_json(self.path)
        except FileNotFoundError:
            return self._config
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable model config %s: %s", self.path, e)
            return self._config

        if not isinstance(raw, dict):
            logger.warning("Ignoring model config %s: expected an object", self.path)
            return self._config

        known = set(ModelConfig.model_fields)
        unknown = sorted(set(raw) - known)
        if unknown:
            logger.warning("Ignoring unknown model config keys: %s", ", ".join(unknown))
        merged = {**self._config.model_dump(), **{k: v for k, v in raw.items() if k in known}}
        try:
            self._config = ModelConfig.model_validate(merged)
        except ValidationError as e:
            logger.warning("Ignoring invalid model config %s: %s", self.path, e)
        return self._config

    async def ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    def get_config(self) -> ModelConfig:
        return self._config.model_copy()

    def add_listener(self, listener: ConfigListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def set_config(
        self, partial: ModelConfigUpdate | Mapping[str, Any]
    ) -> ModelConfig:
        if not isinstance(partial, ModelConfigUpdate):
            partial = ModelConfigUpdate.model_validate(dict(partial))
        changes = partial.model_dump(exclude_unset=True)

        async with self._lock:
            await self.ensure_loaded()
            old = self._config
            new = ModelConfig.model_validate({**old.model_dump(), **changes})
            self._config = new
            await self._save()

        for listener in list(self._listeners):
            try:
                result = listener(old, new)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Model config listener failed")
        return new.model_copy()

    async def _save(self) -> None:
        try:
            await write_json_atomic(self.path, self._config.model_dump(mode="json"))
        except OSError as e:
            logger.error("Failed to save model config %s: %s", self.path, e)
