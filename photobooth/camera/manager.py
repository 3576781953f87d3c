
"""
Camera discovery, selection and capture session lifecycle.

:class:`DeviceManager` owns the one :class:`~photobooth.camera.base.CaptureSession`
of the booth. It asks the backend for permission, merges the backend's
enumeration strategies into ``available_cameras``, picks a camera by kind
(Continuity first, then external, then built-in) and rebuilds the session
graph inside a configuration transaction whenever the selection changes.

All methods are expected to run on the pipeline's coordination context
(:class:`photobooth.dispatch.Dispatcher`); the manager itself takes no locks.
Listeners registered with :meth:`DeviceManager.subscribe` are told about every
session state change.
"""

from __future__ import annotations

import logging
from typing import Callable, List, NamedTuple, Optional

from ..errors import (
    CaptureFailed,
    CaptureOutputUnavailable,
    DeviceNotAuthorized,
    DeviceNotFound,
    DeviceSetupFailed,
)
from . import state as st
from .base import (
    AuthorizationStatus,
    CameraBackend,
    CameraDevice,
    CaptureCallback,
    CaptureSession,
    DeviceInput,
    DeviceKind,
    PhotoOutput,
)

NO_CAMERA_REASON = 'no camera found'

# Auto-selection order, first match wins
SELECTION_PRIORITY = (DeviceKind.CONTINUITY, DeviceKind.EXTERNAL, DeviceKind.BUILTIN)

class SessionFlags(NamedTuple):
    connected: bool
    running: bool


def choose_device(devices: List[CameraDevice]) -> Optional[CameraDevice]:
    """Pick the preferred device by kind, regardless of list position."""
    for kind in SELECTION_PRIORITY:
        for device in devices:
            if device.kind is kind:
                return device
    return None


def merge_devices(primary: List[CameraDevice], secondary: List[CameraDevice]) -> List[CameraDevice]:
    """Append devices from ``secondary`` whose id is not already in ``primary``."""
    merged = list(primary)
    seen = {device.id for device in merged}
    for device in secondary:
        if device.id not in seen:
            merged.append(device)
            seen.add(device.id)
    return merged


class DeviceManager:
    """Authorizes, enumerates, selects and runs exactly one capture device."""

    def __init__(self, backend: CameraBackend) -> None:
        self.backend = backend
        self.available_cameras: List[CameraDevice] = []
        self.selected_device: Optional[CameraDevice] = None
        self.photo_output: Optional[PhotoOutput] = None
        self.is_connected = False
        self.authorization_status = AuthorizationStatus.NOT_DETERMINED
        self._session_state = st.SessionModel(on_change=self._notify)
        self._session: Optional[CaptureSession] = None
        self._listeners: List[st.StateListener] = []
        self.logger = logging.getLogger(__name__)

    # State

    @property
    def state(self) -> st.SessionState:
        return self._session_state.snapshot

    @property
    def is_running(self) -> bool:
        return self._session is not None and self._session.is_running

    @property
    def is_authorized(self) -> bool:
        return self.authorization_status is AuthorizationStatus.AUTHORIZED

    @property
    def is_ready(self) -> bool:
        return self.is_authorized and self.is_connected and self.is_running

    @property
    def flags(self) -> SessionFlags:
        return SessionFlags(connected=self.is_connected, running=self.is_running)

    def subscribe(self, listener: st.StateListener) -> Callable[[], None]:
        """Register ``listener(old, new)``; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _apply(self, kind: st.SessionEventKind, reason: Optional[str] = None) -> None:
        self._session_state.fire(st.SessionEvent(kind, reason))

    def _notify(self, old: st.SessionState, new: st.SessionState) -> None:
        # after_state_change of the session machine
        self.logger.debug('Session state %s -> %s', old, new)
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                self.logger.exception('Session state listener failed')

    # Authorization

    def request_permission(self) -> AuthorizationStatus:
        """Ask for camera access; fails closed and never re-asks after a final answer."""
        if self.authorization_status.is_terminal:
            return self.authorization_status

        try:
            status = self.backend.authorization_status()
            if not status.is_terminal:
                self.logger.info('Requesting camera access...')
                granted = self.backend.request_access()
                status = AuthorizationStatus.AUTHORIZED if granted else AuthorizationStatus.DENIED
        except Exception as exc:
            self.logger.error('Camera permission request failed: %s', exc)
            status = AuthorizationStatus.NOT_DETERMINED

        self.authorization_status = status
        if status is AuthorizationStatus.AUTHORIZED:
            self.logger.info('Camera access granted')
            if self.state.status is st.SessionStatus.UNAUTHORIZED:
                self._apply(st.SessionEventKind.PERMISSION_GRANTED)
        else:
            self.logger.warning('Camera access not authorized (%s)', status.value)
            if self.state.status is st.SessionStatus.UNAUTHORIZED:
                self._apply(st.SessionEventKind.PERMISSION_DENIED)
        return status

    # Discovery

    def _enumerate(self, strategy: Callable[[], List[CameraDevice]], label: str) -> List[CameraDevice]:
        try:
            return list(strategy())
        except Exception as exc:
            self.logger.error('%s camera enumeration failed: %s', label, exc)
            return []

    def discover_devices(self) -> List[CameraDevice]:
        """Refresh ``available_cameras`` and auto-select the preferred camera.

        Raises:
            DeviceNotAuthorized: if camera access has not been granted.
        """
        if not self.is_authorized:
            raise DeviceNotAuthorized('Camera access not authorized')

        self.logger.info('Discovering available cameras...')
        full = self._enumerate(self.backend.enumerate, 'Full-capability')
        default = self._enumerate(self.backend.enumerate_default, 'Default')
        self.available_cameras = merge_devices(full, default)
        self.logger.info('Found %d cameras', len(self.available_cameras))
        for camera in self.available_cameras:
            self.logger.debug('Camera: %s (id=%s, kind=%s)', camera.display_name, camera.id, camera.kind.value)

        self._auto_select()
        return list(self.available_cameras)

    def _auto_select(self) -> None:
        device = choose_device(self.available_cameras)
        if device is None:
            self.logger.error('No camera found')
            if self._session is not None:
                self._teardown(self._session)
            self.selected_device = None
            self._apply(st.SessionEventKind.FAILED, NO_CAMERA_REASON)
            return

        if self.selected_device == device and self.is_connected:
            self.logger.debug('Camera %s already selected', device.display_name)
            return

        try:
            self.select_device(device.id)
        except DeviceSetupFailed as exc:
            self.logger.warning('Auto-selection of %s failed: %s', device.display_name, exc)
            return
        self.logger.info('Auto-selected %s camera: %s', device.kind.value, device.display_name)

    # Selection

    def _close_input(self, device_input: DeviceInput) -> None:
        try:
            self.backend.close(device_input)
        except Exception as exc:
            self.logger.warning('Failed to close %s: %s', device_input.device.display_name, exc)

    def _clear_graph(self, session: CaptureSession) -> None:
        for device_input in list(session.inputs):
            session.remove_input(device_input)
            self._close_input(device_input)
            self.logger.debug('Removed existing video input')
        for output in list(session.outputs):
            session.remove_output(output)
        self.photo_output = None
        self.is_connected = False

    def _teardown(self, session: CaptureSession) -> None:
        with session.configuration():
            self._clear_graph(session)
        session.stop_running()

    def select_device(self, device_id: str) -> CameraDevice:
        """Rebuild the session around ``device_id``.

        Raises:
            DeviceNotAuthorized: if camera access has not been granted.
            DeviceNotFound: if ``device_id`` was not in the last discovery.
            DeviceSetupFailed: if the device input could not be added.
        """
        if not self.is_authorized:
            raise DeviceNotAuthorized('Camera access not authorized')
        device = next((d for d in self.available_cameras if d.id == device_id), None)
        if device is None:
            self.logger.error('Attempted to select unavailable camera: %s', device_id)
            raise DeviceNotFound(f'Camera {device_id} is not available')

        if self._session is None:
            self._session = self.backend.create_session()
        session = self._session
        was_running = session.is_running

        self.logger.info('Configuring session for camera: %s', device.display_name)
        self._apply(st.SessionEventKind.CONFIGURE)
        try:
            with session.configuration():
                self._clear_graph(session)
                device_input = self.backend.open(device.id)
                if not session.can_add_input(device_input):
                    self._close_input(device_input)
                    raise RuntimeError('Cannot add device input to session')
                session.add_input(device_input)
                output = PhotoOutput()
                session.add_output(output)
        except Exception as exc:
            reason = f'failed to set up {device.display_name}: {exc}'
            self.logger.error('Session configuration failed: %s', reason)
            self._teardown(session)
            self.selected_device = None
            self._apply(st.SessionEventKind.FAILED, reason)
            raise DeviceSetupFailed(reason) from exc

        self.selected_device = device
        self.photo_output = output
        self.is_connected = True
        self._apply(st.SessionEventKind.COMMITTED)
        self.logger.info('Added new video input: %s', device.display_name)
        if was_running:
            self.start_session()
        return device

    # Session

    def start_session(self) -> SessionFlags:
        session = self._session
        if session is None:
            self.logger.error('Capture session not available')
            return self.flags
        if self.state.is_error:
            self.logger.error('Cannot start session in state %s', self.state)
            return self.flags

        if session.is_running:
            self.logger.debug('Capture session already running')
        else:
            self.logger.info('Starting camera session...')
            session.start_running()
            if session.is_running:
                self.logger.info('Camera session started successfully')
            else:
                self.logger.error('Failed to start camera session')
        if session.is_running and self.state.status in (st.SessionStatus.IDLE, st.SessionStatus.RUNNING):
            self._apply(st.SessionEventKind.STARTED)
        return self.flags

    def stop_session(self) -> SessionFlags:
        session = self._session
        if session is None:
            return self.flags
        if session.is_running:
            self.logger.info('Stopping camera session...')
            session.stop_running()
        if self.state.status in (st.SessionStatus.IDLE, st.SessionStatus.RUNNING, st.SessionStatus.ERROR):
            self._apply(st.SessionEventKind.STOPPED)
        return self.flags

    # Capture

    def trigger_capture(self, callback: CaptureCallback) -> None:
        """Issue one hardware capture; ``callback`` fires on the hardware's thread.

        Raises:
            CaptureOutputUnavailable: if no photo output is configured.
            CaptureFailed: if the hardware refuses the request.
        """
        if self.photo_output is None:
            raise CaptureOutputUnavailable('Photo output not available')
        try:
            self.photo_output.capture_photo(callback)
        except Exception as exc:
            raise CaptureFailed(exc) from exc
