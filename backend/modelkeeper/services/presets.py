from __future__ import annotations

import logging
import platform
from pathlib import Path

import psutil
from pydantic import ValidationError

from modelkeeper.models.preset import Preset, PresetId, PresetsConfig
from modelkeeper.services.errors import UnknownPresetError
from modelkeeper.services.json_store import read_json

logger = logging.getLogger(__name__)

_GB = 1024 ** 3

# Recommendation when no preset file could be loaded
FALLBACK_PRESET = PresetId.ECO


class PresetResolver:
    def __init__(self, path: Path):
        self.path = path
        self._config: PresetsConfig | None = None

    async def load(self) -> PresetsConfig | None:
        try:
            self._config = PresetsConfig.model_validate(await read_json(self.path))
        except (OSError, ValueError, ValidationError) as e:
            logger.error("Failed to load presets %s: %s", self.path, e)
            self._config = None
        return self._config

    async def get_presets(self) -> PresetsConfig | None:
        if self._config is None:
            await self.load()
        return self._config

    async def get_preset(self, preset_id: PresetId | str) -> Preset:
        config = await self.get_presets()
        try:
            key = PresetId(preset_id)
        except ValueError:
            raise UnknownPresetError(str(preset_id)) from None
        if config is None or key not in config.presets:
            raise UnknownPresetError(key.value)
        return config.presets[key]

    async def get_recommended_preset(
        self,
        total_memory: int | None = None,
        system: str | None = None,
    ) -> PresetId:
        """Recommend a preset from host RAM.

        macOS shares memory with the GPU, so RAM thresholds apply directly.
        Elsewhere there is no portable VRAM query; half of system RAM stands
        in for VRAM, and the CPU-only preset is the floor.
        """
        config = await self.get_presets()
        if config is None:
            return FALLBACK_PRESET

        if total_memory is None:
            total_memory = psutil.virtual_memory().total
        if system is None:
            system = platform.system()
        ram_gb = total_memory / _GB
        rules = config.auto_select_rules

        if system == "Darwin":
            for rule in sorted(rules.mac.ram_thresholds, key=lambda r: r.min_gb, reverse=True):
                if ram_gb >= rule.min_gb:
                    return rule.preset
            return FALLBACK_PRESET

        vram_gb = ram_gb / 2
        for rule in sorted(rules.windows.vram_thresholds, key=lambda r: r.min_gb, reverse=True):
            if vram_gb >= rule.min_gb:
                return rule.preset
        return rules.windows.cpu_only_preset
