from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

import aiofiles.os

from modelkeeper.models.asset import AssetDescriptor, AssetStatus, StatusSummary
from modelkeeper.models.events import DownloadEvent, DownloadState
from modelkeeper.services.catalog import AssetCatalog
from modelkeeper.services.events import EventSink
from modelkeeper.services.transports import (
    ProgressCallback,
    Transport,
    discard,
    select_transport,
    temp_path_for,
)

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


class DownloadEngine:
    """Downloads missing catalog assets one after another.

    Campaign-level semantics: an empty work set is success, the first failed
    asset fails the whole campaign (after an ``error`` event), and every
    finished asset is announced with a fresh status snapshot.
    """

    def __init__(
        self,
        catalog: AssetCatalog,
        events: EventSink,
        get_status: Callable[[], Awaitable[StatusSummary]],
        transport_factory: Callable[[], Transport] = select_transport,
    ):
        self.catalog = catalog
        self.events = events
        self._get_status = get_status
        self._transport_factory = transport_factory

    def _emit(
        self,
        state: DownloadState,
        message: str,
        *,
        asset_id: str | None = None,
        percent: int | None = None,
        statuses: list[AssetStatus] | None = None,
    ) -> None:
        self.events.publish(
            DownloadEvent(
                state=state,
                asset_id=asset_id,
                percent=percent,
                message=message,
                statuses=statuses,
            )
        )

    async def perform_download(self, ids: Iterable[str] | None = None) -> StatusSummary:
        await aiofiles.os.makedirs(self.catalog.model_root, exist_ok=True)
        await self.catalog.ensure_loaded()

        status = await self._get_status()
        present = {a.id for a in status.assets if a.exists}
        wanted = set(ids) if ids is not None else None
        to_download = [
            d for d in self.catalog
            if d.id not in present and (wanted is None or d.id in wanted)
        ]
        logger.info(
            "Catalog has %d descriptors; downloading %s into %s",
            len(self.catalog),
            [d.id for d in to_download],
            self.catalog.model_root,
        )

        if not to_download:
            if len(self.catalog) == 0:
                msg = f"No model descriptors found. Check catalog path: {self.catalog.path}"
                logger.error(msg)
                self._emit(DownloadState.ERROR, msg, statuses=status.assets)
            else:
                self._emit(
                    DownloadState.COMPLETED, "All models ready.",
                    percent=100, statuses=status.assets,
                )
            return status

        self._emit(DownloadState.DOWNLOADING, "Starting download...", percent=0)
        transport = self._transport_factory()

        for descriptor in to_download:
            try:
                await self.download_descriptor(descriptor, transport)
            except asyncio.CancelledError:
                self._emit(
                    DownloadState.ERROR, f"Download of {descriptor.label} cancelled.",
                    asset_id=descriptor.id,
                )
                raise
            except Exception as e:
                logger.error("Failed to download %s: %s", descriptor.id, e)
                self._emit(
                    DownloadState.ERROR, f"Failed to download {descriptor.label}: {e}",
                    asset_id=descriptor.id,
                )
                raise

            current = await self._get_status()
            self._emit(
                DownloadState.DOWNLOADING, f"{descriptor.label} downloaded.",
                asset_id=descriptor.id, statuses=current.assets,
            )

        final = await self._get_status()
        self._emit(
            DownloadState.COMPLETED, "All downloads finished.",
            percent=100, statuses=final.assets,
        )
        return final

    async def perform_single_asset_download(self, descriptor: AssetDescriptor) -> StatusSummary:
        await aiofiles.os.makedirs(self.catalog.model_root, exist_ok=True)
        self._emit(
            DownloadState.DOWNLOADING, f"Preparing to redownload {descriptor.label}...",
            asset_id=descriptor.id, percent=0,
        )
        await self.remove_asset_files(descriptor)
        try:
            await self.download_descriptor(descriptor)
        except asyncio.CancelledError:
            self._emit(
                DownloadState.ERROR, f"Redownload of {descriptor.label} cancelled.",
                asset_id=descriptor.id,
            )
            raise
        except Exception as e:
            logger.error("Failed to redownload %s: %s", descriptor.id, e)
            self._emit(
                DownloadState.ERROR, f"Failed to redownload {descriptor.label}: {e}",
                asset_id=descriptor.id,
            )
            raise

        final = await self._get_status()
        self._emit(
            DownloadState.COMPLETED, f"{descriptor.label} refreshed.",
            asset_id=descriptor.id, percent=100, statuses=final.assets,
        )
        return final

    async def download_descriptor(
        self, descriptor: AssetDescriptor, transport: Transport | None = None
    ) -> None:
        dest_path = self.catalog.path_for(descriptor)
        await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
        if transport is None:
            transport = self._transport_factory()
        self._emit(
            DownloadState.DOWNLOADING, f"Connecting to {descriptor.id}...",
            asset_id=descriptor.id,
        )
        await transport.download_file(
            descriptor.url, dest_path, self._progress_reporter(descriptor.id)
        )
        logger.info("Downloaded %s to %s", descriptor.id, dest_path)

    async def remove_asset_files(self, descriptor: AssetDescriptor) -> None:
        dest_path = self.catalog.path_for(descriptor)
        self._emit(
            DownloadState.DOWNLOADING, f"Removing existing {descriptor.label}...",
            asset_id=descriptor.id,
        )
        try:
            await aiofiles.os.remove(dest_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove existing asset %s: %s", descriptor.id, e)
        await discard(temp_path_for(dest_path))

    def _progress_reporter(self, asset_id: str) -> ProgressCallback:
        last: tuple[int | None, int] | None = None

        def report(downloaded: int, total: int | None) -> None:
            nonlocal last
            percent = round(downloaded / total * 100) if total else None
            downloaded_mb = round(downloaded / _MB)
            # One event per visible change, not per chunk
            if (percent, downloaded_mb) == last:
                return
            last = (percent, downloaded_mb)
            if total:
                message = f"Downloading {asset_id} ({downloaded_mb}MB / {round(total / _MB)}MB)"
            else:
                message = f"Downloading {asset_id} ({downloaded_mb}MB)"
            self._emit(
                DownloadState.DOWNLOADING, message, asset_id=asset_id, percent=percent
            )

        return report
