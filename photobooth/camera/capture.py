
"""
Single-shot photo capture on top of :class:`~photobooth.camera.manager.DeviceManager`.

The hardware reports a finished photo through a callback on its own thread.
:class:`CaptureController` turns that into a :class:`~concurrent.futures.Future`:
``capture_photo`` registers a one-shot future, triggers the hardware, and the
callback resolves the future exactly once after hopping back onto the
dispatcher thread. Decoding and cropping to the booth's 3:2 landscape format
happen on the callback thread since they touch no shared state.
"""

from __future__ import annotations

import functools
import io
import logging
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from PIL import Image

from ..dispatch import Dispatcher
from ..errors import (
    CaptureBusy,
    CaptureDecodeError,
    CaptureError,
    CaptureFailed,
    CaptureOutputUnavailable,
    DeviceNotReady,
)
from .base import CapturedPhoto
from .manager import DeviceManager

TARGET_ASPECT_RATIO = 1536 / 1024  # 3:2 landscape, matches the edit API output size
JPEG_QUALITY = 90

logger = logging.getLogger(__name__)


def crop_box(width: int, height: int, ratio: float = TARGET_ASPECT_RATIO) -> Tuple[int, int, int, int]:
    """Centered ``(left, top, right, bottom)`` box of aspect ``ratio`` inside ``width`` x ``height``."""
    if width / height > ratio:
        # wider than target: keep full height
        crop_w, crop_h = int(height * ratio), height
    else:
        crop_w, crop_h = width, int(width / ratio)
    left = (width - crop_w) // 2
    top = (height - crop_h) // 2
    return left, top, left + crop_w, top + crop_h


def normalize_photo(data: bytes, ratio: float = TARGET_ASPECT_RATIO) -> CapturedPhoto:
    """Decode raw sensor output and crop it to ``ratio``.

    Raises:
        CaptureDecodeError: if ``data`` is not a decodable image.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise CaptureDecodeError(f'Could not decode captured photo: {exc}') from exc

    width, height = img.size
    logger.debug('Raw captured image: %d x %d', width, height)
    try:
        cropped = img.crop(crop_box(width, height, ratio))
        if cropped.mode != 'RGB':
            cropped = cropped.convert('RGB')
        buf = io.BytesIO()
        cropped.save(buf, format='JPEG', quality=JPEG_QUALITY)
    except (OSError, ValueError) as exc:
        logger.warning('Cropping failed, keeping uncropped photo: %s', exc)
        return CapturedPhoto(data=data, width=width, height=height)

    logger.debug('Cropped to 3:2 aspect ratio: %d x %d', cropped.width, cropped.height)
    return CapturedPhoto(data=buf.getvalue(), width=cropped.width, height=cropped.height)


@dataclass(frozen=True)
class CaptureSucceeded:
    photo: CapturedPhoto


@dataclass(frozen=True)
class CaptureFailure:
    error: CaptureError


CaptureOutcome = Union[CaptureSucceeded, CaptureFailure]


def build_outcome(data: Optional[bytes], error: Optional[BaseException]) -> CaptureOutcome:
    """Turn a raw hardware callback into a tagged outcome."""
    if error is not None:
        return CaptureFailure(CaptureFailed(error))
    if not data:
        return CaptureFailure(CaptureDecodeError('Could not get image data from photo'))
    try:
        return CaptureSucceeded(normalize_photo(data))
    except CaptureError as exc:
        return CaptureFailure(exc)


class CaptureController:
    """Bridges the hardware photo callback into one future per capture."""

    def __init__(self, device_manager: DeviceManager, dispatcher: Dispatcher) -> None:
        self.device_manager = device_manager
        self.dispatcher = dispatcher
        self._pending: Optional[Future] = None
        self.logger = logging.getLogger(__name__)

    @property
    def is_capturing(self) -> bool:
        return self._pending is not None

    def capture_photo(self) -> Future:
        """Take one photo. Must be called on the dispatcher thread.

        Returns:
            A future resolving to a :class:`CapturedPhoto` or failing with a
            :class:`~photobooth.errors.CaptureError`.

        Raises:
            CaptureBusy: if a capture is already in progress.
            CaptureOutputUnavailable: if the session has no photo output.
            DeviceNotReady: if the camera is not connected and running.
        """
        dm = self.device_manager
        if self._pending is not None:
            self.logger.warning('Capture already in progress')
            raise CaptureBusy('A capture is already in progress')
        if dm.photo_output is None:
            self.logger.error('Photo output not available')
            raise CaptureOutputUnavailable('Photo output not available')
        if not (dm.is_connected and dm.is_running):
            self.logger.error('Camera not ready for capture')
            raise DeviceNotReady('Camera not ready for capture')

        future: Future = Future()
        self._pending = future
        self.logger.info('Capturing photo...')
        try:
            dm.trigger_capture(functools.partial(self._on_photo_ready, future))
        except CaptureError:
            self._pending = None
            raise
        return future

    def _on_photo_ready(self, future: Future, data: Optional[bytes], error: Optional[BaseException]) -> None:
        # hardware thread
        outcome = build_outcome(data, error)
        try:
            self.dispatcher.submit(self._resolve, future, outcome)
        except RuntimeError as exc:
            self.logger.error('Dropping capture result: %s', exc)

    def _resolve(self, future: Future, outcome: CaptureOutcome) -> None:
        if self._pending is not future or future.done():
            self.logger.warning('Ignoring duplicate capture result')
            return
        self._pending = None
        if isinstance(outcome, CaptureSucceeded):
            self.logger.info('Photo captured successfully, size: %d bytes', len(outcome.photo.data))
            future.set_result(outcome.photo)
        else:
            self.logger.error('Photo capture error: %s', outcome.error)
            future.set_exception(outcome.error)

    def abandon(self, future: Future, reason: str = 'capture timed out') -> None:
        """Give up on a pending capture so the next one can start."""
        if self._pending is not future:
            return
        self._pending = None
        if not future.done():
            future.set_exception(CaptureFailed(TimeoutError(reason)))
