from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from modelkeeper.config import Settings, settings as default_settings
from modelkeeper.models.asset import AssetDescriptor, AssetRole, StatusSummary
from modelkeeper.models.model_config import (
    DEFAULT_ROLE_IDS,
    ROLE_FIELDS,
    ModelConfig,
    ModelConfigUpdate,
)
from modelkeeper.models.preset import PresetId, PresetsConfig
from modelkeeper.services.backend_client import SETTING_KEYS, BackendClient
from modelkeeper.services.catalog import AssetCatalog
from modelkeeper.services.config_store import ConfigStore
from modelkeeper.services.events import EventSink
from modelkeeper.services.model_downloader import DownloadEngine
from modelkeeper.services.presets import PresetResolver
from modelkeeper.services.status_prober import summarize
from modelkeeper.services.task_registry import CampaignGuard
from modelkeeper.services.transports import Transport, select_transport

logger = logging.getLogger(__name__)

# Keys the backend expects for each role's model file
_BACKEND_PATH_KEYS: dict[AssetRole, str] = {
    AssetRole.VISION: "vlm_model",
    AssetRole.EMBEDDING: "embedding_model",
    AssetRole.RERANKER: "rerank_model",
    AssetRole.SPEECH: "whisper_model",
    AssetRole.COMPLETION: "completion_model",
}


class ModelManager:
    """Entry point for model asset status, downloads, config and presets."""

    def __init__(
        self,
        model_root: Path,
        catalog_path: Path,
        presets_path: Path,
        user_config_path: Path | None = None,
        *,
        events: EventSink | None = None,
        transport_factory: Callable[[], Transport] = select_transport,
        backend: BackendClient | None = None,
        base_log_level: str = "INFO",
    ):
        self.model_root = model_root
        self.catalog = AssetCatalog(catalog_path, model_root)
        self.config_store = ConfigStore(
            user_config_path or model_root / default_settings.user_config_filename
        )
        self.presets = PresetResolver(presets_path)
        self.events = events or EventSink()
        self.backend = backend or BackendClient(None)
        self.engine = DownloadEngine(
            self.catalog, self.events, self.get_status, transport_factory
        )
        self.base_log_level = base_log_level
        self._guard: CampaignGuard[StatusSummary] = CampaignGuard()
        self.config_store.add_listener(self._on_config_changed)

    @classmethod
    def from_settings(cls, s: Settings = default_settings) -> ModelManager:
        return cls(
            s.models_dir,
            s.catalog_path,
            s.presets_path,
            s.models_dir / s.user_config_filename,
            backend=BackendClient(s.backend_url),
            base_log_level=s.log_level,
        )

    async def initialize(self) -> None:
        await self.config_store.load()
        await self.catalog.load()
        await self.presets.load()
        logger.info(
            "Model root %s, catalog %s (%d models)",
            self.model_root, self.catalog.path, len(self.catalog),
        )

    # --- Role selection ---

    def resolve_role_id(self, role: AssetRole, config: ModelConfig | None = None) -> str | None:
        config = config or self.config_store.get_config()
        asset_id = getattr(config, ROLE_FIELDS[role])
        if asset_id and asset_id in self.catalog:
            return asset_id
        default_id = DEFAULT_ROLE_IDS[role]
        if asset_id and asset_id != default_id:
            logger.debug("Unknown %s model %r, using default %r", role.value, asset_id, default_id)
        return default_id

    def selected_ids(self, config: ModelConfig | None = None) -> set[str]:
        config = config or self.config_store.get_config()
        selected: set[str] = set()
        for role in AssetRole:
            asset_id = self.resolve_role_id(role, config)
            if asset_id is None:
                continue
            selected.add(asset_id)
            descriptor = self.catalog.get(asset_id)
            if descriptor is not None and descriptor.mmproj_id:
                selected.add(descriptor.mmproj_id)
        return selected

    # --- Status ---

    async def get_status(self) -> StatusSummary:
        await self.config_store.ensure_loaded()
        await self.catalog.ensure_loaded()
        return summarize(self.catalog, self.model_root, self.selected_ids())

    def get_descriptor(self, asset_id: str) -> AssetDescriptor | None:
        return self.catalog.get(asset_id)

    def get_model_path(self, asset_id: str) -> Path:
        return self.catalog.resolve_path(asset_id)

    async def add_model(self, descriptor: AssetDescriptor) -> AssetDescriptor:
        await self.catalog.ensure_loaded()
        await self.catalog.add(descriptor)
        return descriptor

    # --- Downloads (single-flight) ---

    async def download_missing(self, ids: Iterable[str] | None = None) -> StatusSummary:
        ids = list(ids) if ids is not None else None
        return await self._guard.run(
            "download-missing", lambda: self.engine.perform_download(ids)
        )

    async def download_selected_models(self) -> StatusSummary:
        await self.config_store.ensure_loaded()
        await self.catalog.ensure_loaded()
        return await self.download_missing(sorted(self.selected_ids()))

    def start_download_missing(
        self, ids: Iterable[str] | None = None
    ) -> tuple[asyncio.Task[StatusSummary], bool]:
        ids = list(ids) if ids is not None else None
        return self._guard.start(
            "download-missing", lambda: self.engine.perform_download(ids)
        )

    async def start_download_selected(self) -> tuple[asyncio.Task[StatusSummary], bool]:
        await self.config_store.ensure_loaded()
        await self.catalog.ensure_loaded()
        return self.start_download_missing(sorted(self.selected_ids()))

    async def redownload_asset(self, asset_id: str) -> StatusSummary:
        active = self._guard.get_task()
        if active is not None and not active.done():
            return await asyncio.shield(active)
        descriptor = await self._require(asset_id)
        return await self._guard.run(
            f"redownload-{asset_id}",
            lambda: self.engine.perform_single_asset_download(descriptor),
        )

    async def start_redownload(
        self, asset_id: str
    ) -> tuple[asyncio.Task[StatusSummary], bool]:
        descriptor = await self._require(asset_id)
        return self._guard.start(
            f"redownload-{asset_id}",
            lambda: self.engine.perform_single_asset_download(descriptor),
        )

    def cancel_download(self) -> bool:
        return self._guard.cancel()

    def is_downloading(self) -> bool:
        return self._guard.is_running()

    async def _require(self, asset_id: str) -> AssetDescriptor:
        await self.catalog.ensure_loaded()
        return self.catalog.require(asset_id)

    # --- Config ---

    def get_config(self) -> ModelConfig:
        return self.config_store.get_config()

    async def set_config(
        self, partial: ModelConfigUpdate | Mapping[str, Any]
    ) -> ModelConfig:
        await self.catalog.ensure_loaded()
        return await self.config_store.set_config(partial)

    # --- Presets ---

    async def get_presets(self) -> PresetsConfig | None:
        return await self.presets.get_presets()

    async def get_recommended_preset(self) -> PresetId:
        return await self.presets.get_recommended_preset()

    async def apply_preset(self, preset_id: PresetId | str) -> ModelConfig:
        """Select the preset's models. Downloading them is left to the caller."""
        preset = await self.presets.get_preset(preset_id)
        logger.info("Applying preset %s", preset.label)
        return await self.set_config(
            ModelConfigUpdate(
                active_model_id=preset.models.vlm,
                active_embedding_model_id=preset.models.embedding,
                active_reranker_model_id=preset.models.reranker,
                active_audio_model_id=preset.models.whisper,
            )
        )

    # --- Config change side effects ---

    async def _on_config_changed(self, old: ModelConfig, new: ModelConfig) -> None:
        if old.debug_mode != new.debug_mode:
            level = "DEBUG" if new.debug_mode else self.base_log_level
            logging.getLogger("modelkeeper").setLevel(level)

        changed_settings = {
            key: getattr(new, key)
            for key in SETTING_KEYS
            if getattr(old, key) != getattr(new, key)
        }
        if changed_settings:
            await self.backend.update_settings(changed_settings)

        paths = self._changed_model_paths(old, new)
        if paths:
            await self.backend.update_model_paths(paths)

    def _changed_model_paths(self, old: ModelConfig, new: ModelConfig) -> dict[str, str | None]:
        paths: dict[str, str | None] = {}
        for role, key in _BACKEND_PATH_KEYS.items():
            new_id = self.resolve_role_id(role, new)
            if new_id is None or new_id == self.resolve_role_id(role, old):
                continue
            descriptor = self.catalog.get(new_id)
            if descriptor is None:
                continue
            paths[key] = str(self.catalog.path_for(descriptor))
            if role is AssetRole.VISION:
                mmproj = self.catalog.get(descriptor.mmproj_id) if descriptor.mmproj_id else None
                paths["vlm_mmproj"] = str(self.catalog.path_for(mmproj)) if mmproj else None
        return paths
