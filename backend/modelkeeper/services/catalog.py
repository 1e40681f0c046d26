from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pydantic import ValidationError

from modelkeeper.models.asset import AssetDescriptor
from modelkeeper.services.errors import DuplicateAssetError, UnknownAssetError
from modelkeeper.services.json_store import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class AssetCatalog:
    """The list of downloadable model files, backed by a JSON document.

    The document looks like ``{"models": [{...descriptor...}, ...]}``. A
    missing or malformed file leaves the catalog empty and records the
    reason in ``load_error``; callers decide how loudly to report it.
    """

    def __init__(self, path: Path, model_root: Path):
        self.path = path
        self.model_root = model_root
        self._descriptors: list[AssetDescriptor] = []
        self.load_error: str | None = None
        self._write_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self):
        return iter(list(self._descriptors))

    def __contains__(self, asset_id: object) -> bool:
        return any(d.id == asset_id for d in self._descriptors)

    @property
    def descriptors(self) -> list[AssetDescriptor]:
        return list(self._descriptors)

    async def load(self) -> list[AssetDescriptor]:
        try:
            raw = await read_json(self.path)
            entries = raw.get("models") if isinstance(raw, dict) else None
            if not isinstance(entries, list):
                raise ValueError("expected a top-level 'models' list")
            descriptors = [AssetDescriptor.model_validate(e) for e in entries]
        except (OSError, ValueError, ValidationError) as e:
            logger.error("Failed to load model catalog %s: %s", self.path, e)
            self.load_error = str(e)
            self._descriptors = []
            return []

        self.load_error = None
        self._descriptors = _dedupe(descriptors)
        logger.debug("Loaded %d model descriptors from %s", len(self._descriptors), self.path)
        return self.descriptors

    async def ensure_loaded(self) -> None:
        if not self._descriptors:
            await self.load()

    def get(self, asset_id: str) -> AssetDescriptor | None:
        return next((d for d in self._descriptors if d.id == asset_id), None)

    def require(self, asset_id: str) -> AssetDescriptor:
        descriptor = self.get(asset_id)
        if descriptor is None:
            raise UnknownAssetError(asset_id)
        return descriptor

    def path_for(self, descriptor: AssetDescriptor) -> Path:
        return self.model_root / descriptor.relative_path

    def resolve_path(self, asset_id: str) -> Path:
        return self.path_for(self.require(asset_id))

    async def add(self, descriptor: AssetDescriptor) -> None:
        """Register a custom model and persist it back to the catalog file.

        A failed write is logged; the in-memory addition is kept so the
        model is usable for the rest of this process.
        """
        async with self._write_lock:
            if self.get(descriptor.id) is not None:
                raise DuplicateAssetError(f"Model id already registered: {descriptor.id}")
            if any(d.relative_path == descriptor.relative_path for d in self._descriptors):
                raise DuplicateAssetError(
                    f"Another model already targets {descriptor.relative_path}"
                )
            self._descriptors.append(descriptor)

            try:
                try:
                    raw = await read_json(self.path)
                except FileNotFoundError:
                    raw = {}
                if not isinstance(raw, dict):
                    raw = {}
                if not isinstance(raw.get("models"), list):
                    raw["models"] = []
                raw["models"].append(descriptor.model_dump(mode="json", exclude_none=True))
                await write_json_atomic(self.path, raw, indent=4)
            except (OSError, ValueError) as e:
                logger.error("Failed to save new model %s to %s: %s", descriptor.id, self.path, e)


def _dedupe(descriptors: list[AssetDescriptor]) -> list[AssetDescriptor]:
    seen_ids: set[str] = set()
    seen_paths: set[str] = set()
    result = []
    for d in descriptors:
        if d.id in seen_ids or d.relative_path in seen_paths:
            logger.warning("Skipping duplicate catalog entry %s (%s)", d.id, d.relative_path)
            continue
        seen_ids.add(d.id)
        seen_paths.add(d.relative_path)
        result.append(d)
    return result
