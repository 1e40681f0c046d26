from __future__ import annotations

import logging
from collections.abc import Callable

from modelkeeper.models.events import DownloadEvent

logger = logging.getLogger(__name__)

Listener = Callable[[DownloadEvent], None]


class EventSink:
    """Publish point for download progress events.

    Listeners are plain callables invoked synchronously, in registration
    order, on the thread that publishes. A failing listener is logged and
    skipped so one broken UI surface cannot stall a campaign.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self.last_event: DownloadEvent | None = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: DownloadEvent) -> None:
        self.last_event = event
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Download event listener failed")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
