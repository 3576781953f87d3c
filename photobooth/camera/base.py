
"""
Camera backend abstractions for the photo booth.

A camera backend is the narrow platform seam used by
:class:`photobooth.camera.manager.DeviceManager`. It is responsible for
authorisation, enumerating capture devices, opening and closing device
inputs, and creating a :class:`CaptureSession`.

The session itself is platform independent: it holds the inputs and outputs
that make up the capture graph and only allows structural changes inside a
begin/commit configuration block. A :class:`PhotoOutput` attached to a
session forwards capture requests to the connected :class:`DeviceInput`,
whose backend-specific ``capture_still`` delivers the result through a
callback on whatever thread the hardware uses.

Implementations may use synthetic data for development/testing
(:mod:`photobooth.camera.mock_camera`) or real hardware on a Raspberry Pi
(:mod:`photobooth.camera.rpi_camera`).
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

# callback(data, error): exactly one of the two is set
CaptureCallback = Callable[[Optional[bytes], Optional[BaseException]], None]


class DeviceKind(enum.Enum):
    """Kind of capture device; drives auto-selection priority."""

    BUILTIN = 'builtin'
    CONTINUITY = 'continuity'
    EXTERNAL = 'external'


class AuthorizationStatus(enum.Enum):
    NOT_DETERMINED = 'not_determined'
    AUTHORIZED = 'authorized'
    DENIED = 'denied'

    @property
    def is_terminal(self) -> bool:
        return self is not AuthorizationStatus.NOT_DETERMINED


@dataclass(frozen=True)
class CameraDevice:
    """Immutable snapshot of a device returned by discovery."""

    id: str
    display_name: str
    kind: DeviceKind
    is_connected: bool = True


@dataclass(frozen=True)
class CapturedPhoto:
    """A single photo, normalised and ready to hand to the pipeline."""

    data: bytes
    width: int
    height: int


class DeviceInput:
    """An opened capture device that can take still photos."""

    def __init__(self, device: CameraDevice) -> None:
        self.device = device

    def capture_still(self, callback: CaptureCallback) -> None:
        """Start one still capture and report through ``callback``.

        The callback may be invoked on any thread, possibly before this
        method returns.

        Raises:
            NotImplementedError: if not implemented by subclass.
        """
        raise NotImplementedError('capture_still must be implemented by subclasses')


class PhotoOutput:
    """Photo endpoint of a capture session."""

    def __init__(self) -> None:
        self.session: Optional[CaptureSession] = None

    def capture_photo(self, callback: CaptureCallback) -> None:
        if self.session is None or not self.session.inputs:
            raise RuntimeError('Photo output is not connected to a device input')
        self.session.inputs[0].capture_still(callback)


class CaptureSession:
    """Capture graph of inputs and outputs.

    Inputs and outputs may only be added or removed between
    :meth:`begin_configuration` and :meth:`commit_configuration`; the
    :meth:`configuration` context manager wraps both and always commits.
    """

    def __init__(self) -> None:
        self.inputs: List[DeviceInput] = []
        self.outputs: List[PhotoOutput] = []
        self._configuring = False
        self._running = False
        self.logger = logging.getLogger(__name__)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_configuring(self) -> bool:
        return self._configuring

    def begin_configuration(self) -> None:
        if self._configuring:
            raise RuntimeError('Configuration already in progress')
        self._configuring = True

    def commit_configuration(self) -> None:
        if not self._configuring:
            raise RuntimeError('No configuration in progress')
        self._configuring = False

    @contextmanager
    def configuration(self) -> Iterator['CaptureSession']:
        self.begin_configuration()
        try:
            yield self
        finally:
            self.commit_configuration()

    def _require_configuring(self) -> None:
        if not self._configuring:
            raise RuntimeError('Session changes require begin_configuration()')

    def can_add_input(self, device_input: DeviceInput) -> bool:
        # a single video input at a time
        return not self.inputs

    def add_input(self, device_input: DeviceInput) -> None:
        self._require_configuring()
        if not self.can_add_input(device_input):
            raise RuntimeError(f'Cannot add input for {device_input.device.display_name}')
        self.inputs.append(device_input)

    def remove_input(self, device_input: DeviceInput) -> None:
        self._require_configuring()
        self.inputs.remove(device_input)

    def add_output(self, output: PhotoOutput) -> None:
        self._require_configuring()
        output.session = self
        self.outputs.append(output)

    def remove_output(self, output: PhotoOutput) -> None:
        self._require_configuring()
        self.outputs.remove(output)
        output.session = None

    def start_running(self) -> None:
        self._running = True

    def stop_running(self) -> None:
        self._running = False


class CameraBackend:
    """Abstract base class for camera backends."""

    def authorization_status(self) -> AuthorizationStatus:
        """Current platform authorisation without prompting."""
        return AuthorizationStatus.NOT_DETERMINED

    def request_access(self) -> bool:
        """Ask the platform for camera access. Returns True when granted.

        Raises:
            NotImplementedError: if not implemented by subclass.
        """
        raise NotImplementedError('request_access must be implemented by subclasses')

    def enumerate(self) -> List[CameraDevice]:
        """Full-capability enumeration of every device the backend knows.

        Raises:
            NotImplementedError: if not implemented by subclass.
        """
        raise NotImplementedError('enumerate must be implemented by subclasses')

    def enumerate_default(self) -> List[CameraDevice]:
        """Devices reported by the platform's default lookup, if it has one."""
        return []

    def open(self, device_id: str) -> DeviceInput:
        """Open a device input for ``device_id``.

        Raises:
            NotImplementedError: if not implemented by subclass.
        """
        raise NotImplementedError('open must be implemented by subclasses')

    def close(self, device_input: DeviceInput) -> None:
        """Release a device input returned by :meth:`open`."""

    def create_session(self) -> CaptureSession:
        return CaptureSession()
