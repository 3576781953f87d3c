
"""
Error taxonomy for the photo booth.

Every component raises a subclass of :class:`PhotoBoothError`. The pipeline
coordinator converts whatever reaches it into a single :class:`PipelineError`
carrying a message suitable for showing on the kiosk screen (see
:func:`to_pipeline_error`). Technical detail stays in the logs.
"""

from __future__ import annotations

from typing import Optional


class PhotoBoothError(Exception):
    """Base class for all photo booth errors."""

    user_message = 'Something went wrong. Please try again.'


class ConfigurationError(PhotoBoothError):
    """A credential or endpoint setting is missing. Never retried."""

    user_message = 'The photo booth is not configured. Please ask staff for help.'


# Device errors

class DeviceError(PhotoBoothError):
    user_message = 'The camera is not available. Please check the camera connection.'


class DeviceNotAuthorized(DeviceError):
    user_message = 'Camera access is not authorized. Please enable camera access.'


class DeviceNotReady(DeviceError):
    user_message = 'Camera is not ready for capture. Please check the camera connection.'


class DeviceSetupFailed(DeviceError):
    user_message = 'Failed to configure the camera session.'


class DeviceNotFound(DeviceSetupFailed):
    """The requested device id was not part of the last discovery."""

    user_message = 'Camera not found. Please connect a camera and try again.'


class InvalidTransition(DeviceError):
    """A session state change that the state machine does not allow."""


# Capture errors

class CaptureError(PhotoBoothError):
    user_message = 'Photo capture failed. Please try again.'


class CaptureOutputUnavailable(CaptureError):
    user_message = 'Photo capture is not available. Please restart the camera.'


class CaptureFailed(CaptureError):
    """The hardware reported an error while taking the photo."""

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(f'Photo capture failed: {cause}' if cause else 'Photo capture failed')


class CaptureDecodeError(CaptureError):
    user_message = 'Failed to process the captured photo.'


class CaptureBusy(CaptureError):
    user_message = 'A photo is already being taken.'


# Transform errors

class TransformError(PhotoBoothError):
    user_message = 'Image generation failed. Please try again.'


class NetworkFailure(TransformError):
    pass


class APIError(TransformError):
    """The edit endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = '') -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f'API request failed with HTTP {status_code}')


class MalformedResponse(TransformError):
    pass


class ImageDecodeError(TransformError):
    pass


class RetriesExhausted(TransformError):
    """All attempts failed; ``last_error`` is the error of the final attempt."""

    def __init__(self, last_error: TransformError, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f'Gave up after {attempts} attempts: {last_error}')


class StorageError(PhotoBoothError):
    user_message = 'Failed to save the photo.'


class PipelineError(PhotoBoothError):
    """Unified, user-facing error emitted by the pipeline coordinator."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


def to_pipeline_error(exc: BaseException) -> PipelineError:
    """Convert any exception raised by a pipeline stage into a PipelineError."""
    if isinstance(exc, PipelineError):
        return exc
    if isinstance(exc, RetriesExhausted) and isinstance(exc.last_error, APIError):
        code = exc.last_error.status_code
        if code == 401:
            return PipelineError('Authentication with the image service failed. Please ask staff for help.', exc)
        if code == 429:
            return PipelineError('The image service is busy right now. Please try again in a moment.', exc)
    if isinstance(exc, PhotoBoothError):
        return PipelineError(exc.user_message, exc)
    return PipelineError(PhotoBoothError.user_message, exc)
