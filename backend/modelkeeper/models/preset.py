from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PresetId(str, Enum):
    ECO = "eco"
    BALANCED = "balanced"
    PRO = "pro"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PresetModels(_CamelModel):
    vlm: str
    embedding: str
    reranker: str
    whisper: str


class Preset(_CamelModel):
    label: str
    description: str = ""
    models: PresetModels
    estimated_vram: str = Field(default="", alias="estimatedVram")
    estimated_download_size: str = Field(default="", alias="estimatedDownloadSize")


class Threshold(_CamelModel):
    min_gb: float = Field(alias="minGB")
    preset: PresetId


class MacRules(_CamelModel):
    ram_thresholds: list[Threshold] = Field(default_factory=list, alias="ramThresholds")


class WindowsRules(_CamelModel):
    vram_thresholds: list[Threshold] = Field(default_factory=list, alias="vramThresholds")
    cpu_only_preset: PresetId = Field(default=PresetId.ECO, alias="cpuOnlyPreset")


class AutoSelectRules(_CamelModel):
    mac: MacRules = Field(default_factory=MacRules)
    windows: WindowsRules = Field(default_factory=WindowsRules)


class PresetsConfig(_CamelModel):
    presets: dict[PresetId, Preset]
    auto_select_rules: AutoSelectRules = Field(
        default_factory=AutoSelectRules, alias="autoSelectRules"
    )
