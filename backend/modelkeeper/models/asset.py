from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath

from pydantic import AliasChoices, BaseModel, Field, field_validator


class AssetRole(str, Enum):
    EMBEDDING = "embedding"
    RERANKER = "reranker"
    VISION = "vision"
    COMPLETION = "completion"
    SPEECH = "speech"


class AssetDescriptor(BaseModel):
    id: str = Field(min_length=1)
    label: str
    relative_path: str = Field(
        validation_alias=AliasChoices("relative_path", "relativePath")
    )
    url: str
    role: AssetRole = Field(validation_alias=AliasChoices("role", "type"))
    optional: bool = False
    mmproj_id: str | None = Field(
        default=None, validation_alias=AliasChoices("mmproj_id", "mmprojId")
    )

    @field_validator("role", mode="before")
    @classmethod
    def _legacy_role_names(cls, value):
        # Older catalogs spell the vision role "vlm"
        return AssetRole.VISION if value == "vlm" else value

    @field_validator("relative_path")
    @classmethod
    def _stay_under_root(cls, value: str) -> str:
        posix, windows = PurePosixPath(value), PureWindowsPath(value)
        if not value or posix.is_absolute() or windows.is_absolute() or windows.drive:
            raise ValueError(f"relative_path must be relative: {value!r}")
        if ".." in posix.parts or ".." in windows.parts:
            raise ValueError(f"relative_path must not leave the model root: {value!r}")
        return value


class AssetStatus(BaseModel):
    id: str
    label: str
    path: str
    exists: bool
    size_bytes: int | None = None  # None = absent or unreadable
    optional: bool = False
    mmproj_id: str | None = None


class StatusSummary(BaseModel):
    assets: list[AssetStatus]
    ready: bool
    missing: list[str]
    last_checked_at: datetime
