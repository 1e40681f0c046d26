from modelkeeper.models.asset import (
    AssetDescriptor,
    AssetRole,
    AssetStatus,
    StatusSummary,
)
from modelkeeper.models.events import DownloadEvent, DownloadState
from modelkeeper.models.model_config import (
    DEFAULT_ROLE_IDS,
    ROLE_FIELDS,
    ModelConfig,
    ModelConfigUpdate,
)
from modelkeeper.models.preset import (
    AutoSelectRules,
    Preset,
    PresetId,
    PresetModels,
    PresetsConfig,
    Threshold,
)

__all__ = [
    "AssetDescriptor",
    "AssetRole",
    "AssetStatus",
    "AutoSelectRules",
    "DEFAULT_ROLE_IDS",
    "DownloadEvent",
    "DownloadState",
    "ModelConfig",
    "ModelConfigUpdate",
    "Preset",
    "PresetId",
    "PresetModels",
    "PresetsConfig",
    "ROLE_FIELDS",
    "StatusSummary",
    "Threshold",
]
