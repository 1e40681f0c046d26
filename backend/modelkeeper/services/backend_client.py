"""
Best-effort notifications to the dependent AI backend.

The backend may not be running yet (or at all); every call here logs and
swallows failures so a config change never fails because of it.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# ModelConfig knobs the backend mirrors, under the backend's own names
SETTING_KEYS = (
    "vision_max_pixels",
    "video_max_pixels",
    "search_result_limit",
    "qa_context_limit",
    "max_snippet_length",
    "summary_max_tokens",
    "embed_batch_size",
    "embed_batch_delay_ms",
    "vision_batch_delay_ms",
    "pdf_one_chunk_per_page",
)


class BackendClient:
    def __init__(
        self,
        base_url: str | None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    async def _send(self, method: str, endpoint: str, payload: dict[str, Any]) -> bool:
        if not self.enabled or not payload:
            return False
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                res = await client.request(method, endpoint, json=payload)
                res.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Backend %s %s failed (backend may not be running): %s", method, endpoint, e
            )
            return False
        return True

    async def update_settings(self, settings: dict[str, Any]) -> bool:
        return await self._send("PATCH", "/settings/", settings)

    async def update_model_paths(self, paths: dict[str, str | None]) -> bool:
        """Tell the backend which files to load, e.g. ``{"vlm_model": ...}``."""
        return await self._send("POST", "/models/config", paths)
