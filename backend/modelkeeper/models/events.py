from enum import Enum

from pydantic import BaseModel

from modelkeeper.models.asset import AssetStatus


class DownloadState(str, Enum):
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    ERROR = "error"


class DownloadEvent(BaseModel):
    state: DownloadState
    asset_id: str | None = None  # None = campaign-level event
    percent: int | None = None  # None = remote did not report a length
    message: str | None = None
    statuses: list[AssetStatus] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (DownloadState.COMPLETED, DownloadState.ERROR)
