from __future__ import annotations


class ModelKeeperError(Exception):
    """Base class for errors raised by the model asset services."""


class UnknownAssetError(ModelKeeperError, KeyError):
    def __init__(self, asset_id: str):
        super().__init__(f"Unknown model asset: {asset_id}")
        self.asset_id = asset_id

    def __str__(self) -> str:
        return self.args[0]


class DuplicateAssetError(ModelKeeperError, ValueError):
    """Raised when a registered descriptor reuses an id or destination path."""


class UnknownPresetError(ModelKeeperError, KeyError):
    def __init__(self, preset_id: str):
        super().__init__(f"Unknown preset: {preset_id}")
        self.preset_id = preset_id

    def __str__(self) -> str:
        return self.args[0]


class DownloadError(ModelKeeperError):
    """A transfer failed for a reason other than a transport-level exception."""


class HttpStatusError(DownloadError):
    def __init__(self, status_code: int, url: str):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.url = url


class TooManyRedirectsError(DownloadError):
    def __init__(self, url: str):
        super().__init__("Too many redirects")
        self.url = url


class EmptyResponseError(DownloadError):
    def __init__(self, url: str):
        super().__init__("Empty response body")
        self.url = url
