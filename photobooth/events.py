
"""
Pipeline events and a small publish/subscribe bus.

The coordinator publishes these events for the collaborators outside the
core (display, slideshow, kiosk UI). Handlers run synchronously on the
publishing thread; a failing handler is logged and does not affect the
pipeline or the other handlers.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, DefaultDict, List, Type

from .camera.base import CapturedPhoto


@dataclass(frozen=True)
class OriginalCaptured:
    photo: CapturedPhoto
    path: Path
    theme_name: str
    timestamp: int


@dataclass(frozen=True)
class ProcessingStarted:
    theme_name: str


@dataclass(frozen=True)
class ThemedReady:
    original_path: Path
    themed_path: Path
    theme_name: str


@dataclass(frozen=True)
class PipelineFailed:
    message: str


Handler = Callable[[Any], None]


class EventBus:
    """Dispatches events to handlers subscribed by event type."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[type, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def subscribe(self, event_type: Type[Any], handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[event_type]:
                    self._handlers[event_type].remove(handler)
        return unsubscribe

    def publish(self, event: Any) -> None:
        with self._lock:
            handlers = list(self._handlers[type(event)])
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                self.logger.exception('Handler for %s failed', type(event).__name__)
