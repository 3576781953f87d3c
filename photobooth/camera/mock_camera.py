
"""
Mock camera backend for development and testing on machines without a physical camera.

This implementation creates synthetic photos using the Pillow library. Each
photo is filled with a solid color and annotated with the device name and a
running capture number. Captures are delivered from a background thread,
like real hardware delivers them.

Usage:

```python
from photobooth.camera.mock_camera import MockCamera
cam = MockCamera(image_width=4000, image_height=3000)
devices = cam.enumerate()
```
"""

from __future__ import annotations

import io
import random
import threading
from typing import Iterable, List, Optional

from PIL import Image, ImageDraw, ImageFont

from .base import (
    AuthorizationStatus,
    CameraBackend,
    CameraDevice,
    CaptureCallback,
    DeviceInput,
    DeviceKind,
)

DEFAULT_DEVICES = (
    CameraDevice(id='mock-facetime', display_name='Mock FaceTime HD Camera', kind=DeviceKind.BUILTIN),
    CameraDevice(id='mock-iphone', display_name='Mock iPhone Camera', kind=DeviceKind.CONTINUITY),
)


class MockDeviceInput(DeviceInput):
    """Device input that renders a synthetic JPEG on each capture."""

    def __init__(self, device: CameraDevice, backend: 'MockCamera') -> None:
        super().__init__(device)
        self.backend = backend

    def _render(self, index: int) -> bytes:
        r, g, b = [random.randint(0, 255) for _ in range(3)]
        img = Image.new('RGB', (self.backend.image_width, self.backend.image_height), color=(r, g, b))
        if self.backend.font:
            draw = ImageDraw.Draw(img)
            text = f'{self.device.display_name}\nCapture {index}'
            draw.text((10, 10), text, fill=(255 - r, 255 - g, 255 - b), font=self.backend.font)
        buf = io.BytesIO()
        img.save(buf, format='JPEG', quality=90)
        return buf.getvalue()

    def _deliver(self, callback: CaptureCallback, index: int) -> None:
        backend = self.backend
        if backend.capture_error is not None:
            callback(None, backend.capture_error)
        elif backend.capture_data is not None:
            callback(backend.capture_data, None)
        else:
            callback(self._render(index), None)

    def capture_still(self, callback: CaptureCallback) -> None:
        with self.backend._lock:
            self.backend.capture_calls += 1
            index = self.backend.capture_calls
        if self.backend.capture_delay is None:
            return  # never completes, like a hung device
        timer = threading.Timer(self.backend.capture_delay, self._deliver, args=(callback, index))
        timer.name = 'MockCapture'
        timer.daemon = True
        timer.start()


class MockCamera(CameraBackend):
    """Mock camera backend that generates synthetic photos.

    Args:
        devices: Devices returned by the full-capability enumeration.
        default_devices: Devices returned by the default enumeration.
        grant_access: Whether :meth:`request_access` grants access.
        failing_devices: Device ids whose :meth:`open` raises.
        capture_delay: Seconds before a capture completes; ``None`` never completes.
    """

    def __init__(
        self,
        devices: Optional[Iterable[CameraDevice]] = None,
        default_devices: Iterable[CameraDevice] = (),
        grant_access: bool = True,
        failing_devices: Iterable[str] = (),
        image_width: int = 640,
        image_height: int = 480,
        capture_delay: Optional[float] = 0.01,
    ) -> None:
        self.devices: List[CameraDevice] = list(DEFAULT_DEVICES if devices is None else devices)
        self.default_devices: List[CameraDevice] = list(default_devices)
        self.grant_access = grant_access
        self.failing_devices = set(failing_devices)
        self.image_width = image_width
        self.image_height = image_height
        self.capture_delay = capture_delay
        # Overrides for the next captures
        self.capture_error: Optional[BaseException] = None
        self.capture_data: Optional[bytes] = None

        self.capture_calls = 0
        self.access_requests = 0
        self.opened: List[str] = []
        self.closed: List[str] = []
        self._status = AuthorizationStatus.NOT_DETERMINED
        self._lock = threading.Lock()
        try:
            self.font = ImageFont.load_default()
        except OSError:
            self.font = None

    def authorization_status(self) -> AuthorizationStatus:
        return self._status

    def request_access(self) -> bool:
        self.access_requests += 1
        self._status = AuthorizationStatus.AUTHORIZED if self.grant_access else AuthorizationStatus.DENIED
        return self.grant_access

    def enumerate(self) -> List[CameraDevice]:
        return list(self.devices)

    def enumerate_default(self) -> List[CameraDevice]:
        return list(self.default_devices)

    def open(self, device_id: str) -> DeviceInput:
        if device_id in self.failing_devices:
            raise RuntimeError(f'Device {device_id} is busy')
        known = {d.id: d for d in self.devices + self.default_devices}
        if device_id not in known:
            raise RuntimeError(f'Device {device_id} disappeared')
        self.opened.append(device_id)
        return MockDeviceInput(known[device_id], self)

    def close(self, device_input: DeviceInput) -> None:
        self.closed.append(device_input.device.id)
