from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CampaignGuard(Generic[T]):
    """Single-flight slot for download campaigns.

    At most one campaign task exists at a time. Callers arriving while it
    runs await that same task and get the same result object (or the same
    exception). The slot is cleared once the task settles either way, so a
    failed campaign can be retried by the next call.
    """

    def __init__(self) -> None:
        self._active: asyncio.Task[T] | None = None

    def get_task(self) -> asyncio.Task[T] | None:
        return self._active

    def is_running(self) -> bool:
        task = self._active
        return task is not None and not task.done()

    def start(
        self, name: str, factory: Callable[[], Coroutine[Any, Any, T]]
    ) -> tuple[asyncio.Task[T], bool]:
        """Return the running campaign, or start one from *factory*.

        The flag is True when this call created the task.
        """
        if self.is_running():
            return self._active, False  # type: ignore[return-value]
        task = asyncio.create_task(factory(), name=name)
        self._active = task
        task.add_done_callback(self._release)
        return task, True

    async def run(self, name: str, factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
        task, _ = self.start(name, factory)
        # Shielded so one impatient caller cannot cancel everyone's campaign
        return await asyncio.shield(task)

    def cancel(self) -> bool:
        if not self.is_running():
            return False
        logger.info("Cancelling campaign %s", self._active.get_name())  # type: ignore[union-attr]
        return self._active.cancel()  # type: ignore[union-attr]

    def _release(self, task: asyncio.Task[T]) -> None:
        if self._active is task:
            self._active = None
        if task.cancelled():
            logger.info("Campaign %s cancelled", task.get_name())
        elif task.exception() is not None:
            logger.error("Campaign %s failed: %s", task.get_name(), task.exception())
