
"""
End-to-end booth pipeline: countdown, capture, persist, transform, persist.

:class:`PipelineCoordinator` guarantees that at most one run is active. The
active flag lives on the dispatcher thread; a run itself executes on a
worker thread so that HTTP calls and backoff pauses never block the
dispatcher, which keeps answering status queries and rejecting triggers.

Every stage failure is converted into one :class:`~photobooth.errors.PipelineError`
and reported once through a :class:`~photobooth.events.PipelineFailed` event.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .camera.base import CapturedPhoto
from .camera.capture import CaptureController
from .camera.manager import DeviceManager
from .dispatch import Dispatcher
from .errors import (
    ConfigurationError,
    DeviceNotAuthorized,
    DeviceNotReady,
    PhotoBoothError,
    PipelineError,
    to_pipeline_error,
)
from .events import EventBus, OriginalCaptured, PipelineFailed, ProcessingStarted, ThemedReady
from .storage import PhotoStore
from .themes import PhotoTheme, build_edit_prompt
from .transform.client import TransformClient

Countdown = Callable[[int], None]


@dataclass(frozen=True)
class PipelineResult:
    theme_name: Optional[str] = None
    original_path: Optional[Path] = None
    themed_path: Optional[Path] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class StatusSummary:
    camera: str
    transform: str
    theme: str
    pipeline_active: bool

    @property
    def overall(self) -> str:
        if self.camera == 'ready' and self.transform == 'ready' and self.theme == 'ready':
            return 'ready'
        return 'error'

    def describe(self) -> str:
        return (
            f'Camera: {self.camera}, Transform: {self.transform}, Theme: {self.theme}, '
            f'Active: {self.pipeline_active}, Overall: {self.overall}'
        )


class PipelineCoordinator:
    """Runs capture → transform → persistence, one run at a time."""

    def __init__(
        self,
        device_manager: DeviceManager,
        capture_controller: CaptureController,
        transform_client: TransformClient,
        dispatcher: Dispatcher,
        store: PhotoStore,
        bus: Optional[EventBus] = None,
        countdown: Optional[Countdown] = None,
        countdown_seconds: int = 3,
        capture_timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.device_manager = device_manager
        self.capture_controller = capture_controller
        self.transform_client = transform_client
        self.dispatcher = dispatcher
        self.store = store
        self.bus = bus or EventBus()
        self.countdown = countdown
        self.countdown_seconds = countdown_seconds
        self.capture_timeout = capture_timeout
        self.clock = clock
        self.selected_theme: Optional[PhotoTheme] = None
        self._active = False
        self.logger = logging.getLogger(__name__)

    @property
    def is_active(self) -> bool:
        return self._active

    def select_theme(self, theme: Optional[PhotoTheme]) -> None:
        self.selected_theme = theme
        if theme is not None:
            self.logger.info('Selected theme: %s', theme.name)

    def status(self) -> StatusSummary:
        """Read-only readiness summary; safe to call while a run is active."""
        dm = self.device_manager
        if not dm.is_authorized:
            camera = 'pending' if not dm.authorization_status.is_terminal else 'error'
        elif dm.state.is_error:
            camera = 'error'
        else:
            camera = 'ready' if dm.is_ready else 'warning'
        return StatusSummary(
            camera=camera,
            transform='ready' if self.transform_client.is_configured else 'error',
            theme='ready' if self.selected_theme is not None else 'error',
            pipeline_active=self._active,
        )

    # Single-flight bookkeeping, dispatcher thread only

    def _try_begin(self) -> bool:
        if self._active:
            self.logger.warning('Pipeline already running; trigger ignored')
            return False
        self._active = True
        return True

    def _finish(self) -> None:
        self._active = False

    def start(self) -> Optional[Future]:
        """Trigger a run in the background.

        Returns:
            A future resolving to a :class:`PipelineResult`, or ``None`` when a
            run is already active (nothing else happens in that case).
        """
        if not self.dispatcher.call(self._try_begin):
            return None
        future: Future = Future()
        thread = threading.Thread(name='PipelineRun', target=self._run_worker, args=(future,))
        thread.daemon = True
        thread.start()
        return future

    def run(self) -> Optional[PipelineResult]:
        """Trigger a run and wait for it; ``None`` if one was already active."""
        future = self.start()
        if future is None:
            return None
        return future.result()

    def _run_worker(self, future: Future) -> None:
        try:
            result = self._execute()
        except BaseException as exc:
            self._release()
            future.set_exception(exc)
            raise
        self._release()
        future.set_result(result)

    def _release(self) -> None:
        try:
            self.dispatcher.call(self._finish)
        except RuntimeError:
            # coordination thread already stopped
            self._finish()

    # Stages, worker thread

    def _check_ready(self) -> None:
        dm = self.device_manager
        if not dm.is_authorized:
            raise DeviceNotAuthorized('Camera access not authorized')
        if not dm.is_ready:
            raise DeviceNotReady(f'Camera not ready (state {dm.state})')
        if not self.transform_client.is_configured:
            raise ConfigurationError('Image-edit service is missing its API key or endpoint')

    def _capture(self) -> CapturedPhoto:
        future = self.dispatcher.call(self.capture_controller.capture_photo)
        try:
            return future.result(timeout=self.capture_timeout)
        except concurrent.futures.TimeoutError:
            self.logger.error('No photo after %.0fs; abandoning capture', self.capture_timeout)
            self.dispatcher.call(self.capture_controller.abandon, future)
            return future.result()

    def _execute(self) -> PipelineResult:
        theme = self.selected_theme
        theme_name = theme.name if theme else None
        try:
            if theme is None:
                raise PipelineError('Please select a theme first')
            self.dispatcher.call(self._check_ready)

            if self.countdown is not None:
                self.countdown(self.countdown_seconds)

            photo = self._capture()
            timestamp = int(self.clock())
            original_path = self.store.save_original(photo.data, timestamp)
            self.bus.publish(OriginalCaptured(photo=photo, path=original_path,
                                              theme_name=theme.name, timestamp=timestamp))

            self.logger.info('Starting image generation for theme: %s', theme.name)
            self.bus.publish(ProcessingStarted(theme_name=theme.name))
            result = self.transform_client.transform(photo.data, build_edit_prompt(theme))
            if not result.ok:
                raise result.error

            themed_path = self.store.save_themed(result.image, timestamp)
            self.bus.publish(ThemedReady(original_path=original_path, themed_path=themed_path,
                                         theme_name=theme.name))
            self.logger.info('Pipeline complete: %s', themed_path)
            return PipelineResult(theme_name=theme.name, original_path=original_path, themed_path=themed_path)
        except Exception as exc:
            error = to_pipeline_error(exc)
            if isinstance(exc, PhotoBoothError):
                self.logger.error('Pipeline failed: %s', exc)
            else:
                self.logger.exception('Pipeline failed unexpectedly: %s', exc)
            self.bus.publish(PipelineFailed(message=error.message))
            return PipelineResult(theme_name=theme_name, error=error)
