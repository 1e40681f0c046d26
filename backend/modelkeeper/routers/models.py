import asyncio
import json

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from modelkeeper.models.asset import AssetDescriptor, StatusSummary
from modelkeeper.models.events import DownloadEvent
from modelkeeper.models.model_config import ModelConfig, ModelConfigUpdate
from modelkeeper.models.preset import PresetsConfig
from modelkeeper.services.errors import (
    DownloadError,
    DuplicateAssetError,
    UnknownAssetError,
    UnknownPresetError,
)
from modelkeeper.services.model_manager import ModelManager

router = APIRouter()


class DownloadRequest(BaseModel):
    ids: list[str] | None = None  # None = everything not yet downloaded


def get_manager(request: Request) -> ModelManager:
    manager = getattr(request.app.state, "model_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Model manager not initialized")
    return manager


async def _await_campaign(task: asyncio.Task[StatusSummary]) -> StatusSummary:
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        # Only a cancelled campaign maps to 409; a cancelled request propagates
        if not task.cancelled():
            raise
        raise HTTPException(status_code=409, detail="Download cancelled") from None
    except (DownloadError, httpx.HTTPError, OSError) as e:
        raise HTTPException(status_code=502, detail=f"Download failed: {e}") from e


# --- Status ---


@router.get("/status", response_model=StatusSummary)
async def get_status(manager: ModelManager = Depends(get_manager)):
    return await manager.get_status()


# --- Downloads ---


@router.post("/download")
async def download_missing(
    body: DownloadRequest | None = None,
    wait: bool = False,
    manager: ModelManager = Depends(get_manager),
):
    ids = body.ids if body else None
    task, started = manager.start_download_missing(ids)
    if wait:
        return await _await_campaign(task)
    if not started:
        raise HTTPException(status_code=409, detail="Download already in progress")
    return {"status": "started"}


@router.post("/download/selected")
async def download_selected(
    wait: bool = False, manager: ModelManager = Depends(get_manager)
):
    task, started = await manager.start_download_selected()
    if wait:
        return await _await_campaign(task)
    if not started:
        raise HTTPException(status_code=409, detail="Download already in progress")
    return {"status": "started"}


@router.post("/download/cancel")
async def cancel_download(manager: ModelManager = Depends(get_manager)):
    if not manager.cancel_download():
        raise HTTPException(status_code=400, detail="No download in progress")
    return {"status": "cancelling"}


@router.get("/download/status", response_model=DownloadEvent | None)
async def get_download_status(manager: ModelManager = Depends(get_manager)):
    """Single poll endpoint (fallback if SSE is problematic)."""
    return manager.events.last_event


@router.get("/download/progress")
async def download_progress_sse(manager: ModelManager = Depends(get_manager)):
    """SSE stream of download events, closed after a completed/error event."""
    queue: asyncio.Queue[DownloadEvent] = asyncio.Queue()
    unsubscribe = manager.events.subscribe(queue.put_nowait)

    async def event_generator():
        try:
            while True:
                event = await queue.get()
                yield f"data: {json.dumps(event.model_dump(mode='json'))}\n\n"
                if event.is_terminal:
                    break
        finally:
            unsubscribe()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# --- Config ---


@router.get("/config", response_model=ModelConfig)
async def get_config(manager: ModelManager = Depends(get_manager)):
    return manager.get_config()


@router.patch("/config", response_model=ModelConfig)
async def update_config(
    body: ModelConfigUpdate, manager: ModelManager = Depends(get_manager)
):
    return await manager.set_config(body)


# --- Presets ---


@router.get("/presets", response_model=PresetsConfig | None)
async def list_presets(manager: ModelManager = Depends(get_manager)):
    return await manager.get_presets()


@router.get("/presets/recommended")
async def recommended_preset(manager: ModelManager = Depends(get_manager)):
    return {"preset": await manager.get_recommended_preset()}


@router.post("/presets/{preset_id}/apply", response_model=ModelConfig)
async def apply_preset(preset_id: str, manager: ModelManager = Depends(get_manager)):
    try:
        return await manager.apply_preset(preset_id)
    except UnknownPresetError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


# --- Catalog ---


@router.post("/", response_model=AssetDescriptor, status_code=201)
async def add_model(
    body: AssetDescriptor, manager: ModelManager = Depends(get_manager)
):
    try:
        return await manager.add_model(body)
    except DuplicateAssetError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.get("/{asset_id}/path")
async def get_model_path(asset_id: str, manager: ModelManager = Depends(get_manager)):
    try:
        return {"id": asset_id, "path": str(manager.get_model_path(asset_id))}
    except UnknownAssetError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.post("/{asset_id}/redownload")
async def redownload_asset(
    asset_id: str, wait: bool = False, manager: ModelManager = Depends(get_manager)
):
    try:
        task, started = await manager.start_redownload(asset_id)
    except UnknownAssetError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    if wait:
        # A running campaign is joined instead of starting a second transfer
        return await _await_campaign(task)
    if not started:
        raise HTTPException(status_code=409, detail="Download already in progress")
    return {"status": "started", "model_id": asset_id}
