
"""
Raspberry Pi camera backend.

This backend uses the libcamera command line tools available on Raspberry Pi
OS. Cameras are listed with ``rpicam-hello --list-cameras`` and stills are
captured with ``rpicam-still``, writing the JPEG to stdout. Older images ship
the same tools under the ``libcamera-*`` names; both are tried.

Sensors attached over CSI are reported as built-in cameras and USB (UVC)
cameras as external ones.

Note: To use this backend, ensure that libcamera is installed and the camera
is enabled on your Raspberry Pi. If the tools are not available (e.g., when
running on macOS), access is reported as denied and enumeration is empty.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import threading
from typing import Dict, List, Optional, Sequence, Tuple

from .base import (
    AuthorizationStatus,
    CameraBackend,
    CameraDevice,
    CaptureCallback,
    DeviceInput,
    DeviceKind,
)

LIST_TOOLS = ('rpicam-hello', 'libcamera-hello')
STILL_TOOLS = ('rpicam-still', 'libcamera-still')

# "0 : imx477 [4056x3040 12-bit RGGB] (/base/soc/i2c0mux/i2c@1/imx477@1a)"
_CAMERA_LINE = re.compile(r'^\s*(\d+)\s*:\s*(\S+)\s*\[[^\]]*\]\s*\(([^)]*)\)')


def _find_tool(candidates: Sequence[str]) -> Optional[str]:
    for name in candidates:
        path = shutil.which(name)
        if path:
            return path
    return None


def parse_camera_list(output: str) -> List[CameraDevice]:
    """Parse ``--list-cameras`` output into devices keyed by sensor path."""
    devices: List[CameraDevice] = []
    for line in output.splitlines():
        match = _CAMERA_LINE.match(line)
        if not match:
            continue
        index, model, path = match.groups()
        kind = DeviceKind.EXTERNAL if 'usb' in path.lower() else DeviceKind.BUILTIN
        devices.append(CameraDevice(
            id=path,
            display_name=f'{model} (camera {index})',
            kind=kind,
        ))
    return devices


class LibcameraInput(DeviceInput):
    """Device input that shells out to the still-capture tool."""

    def __init__(self, device: CameraDevice, index: int, tool: str,
                 image_width: int, image_height: int, quality: int, timeout: float) -> None:
        super().__init__(device)
        self.index = index
        self.tool = tool
        self.image_width = image_width
        self.image_height = image_height
        self.quality = quality
        self.timeout = timeout

    def _command(self) -> List[str]:
        return [
            self.tool,
            '-n',                        # no preview
            '--camera', str(self.index),
            '--width', str(self.image_width),
            '--height', str(self.image_height),
            '--quality', str(self.quality),
            '--encoding', 'jpg',
            '--immediate',
            '-o', '-',
        ]

    def _run(self, callback: CaptureCallback) -> None:
        try:
            result = subprocess.run(self._command(), check=True, stdout=subprocess.PIPE,
                                    stderr=subprocess.PIPE, timeout=self.timeout)
        except subprocess.CalledProcessError as exc:
            callback(None, RuntimeError(f'{self.tool} failed: {exc.stderr.decode(errors="replace").strip()}'))
            return
        except (OSError, subprocess.TimeoutExpired) as exc:
            callback(None, exc)
            return
        if not result.stdout:
            callback(None, RuntimeError(f'{self.tool} produced no image data'))
            return
        callback(result.stdout, None)

    def capture_still(self, callback: CaptureCallback) -> None:
        thread = threading.Thread(name='LibcameraCapture', target=self._run, args=(callback,))
        thread.daemon = True
        thread.start()


class LibcameraBackend(CameraBackend):
    """Camera backend using libcamera tools on Raspberry Pi."""

    def __init__(self, image_width: int = 4056, image_height: int = 3040, quality: int = 90,
                 capture_timeout: float = 30.0) -> None:
        self.image_width = image_width
        self.image_height = image_height
        self.quality = quality
        self.capture_timeout = capture_timeout
        self.logger = logging.getLogger(__name__)
        self._devices: Dict[str, Tuple[int, CameraDevice]] = {}
        self._status = AuthorizationStatus.NOT_DETERMINED

    def authorization_status(self) -> AuthorizationStatus:
        return self._status

    def request_access(self) -> bool:
        # There is no permission prompt on Linux; access means the tools are usable.
        granted = _find_tool(STILL_TOOLS) is not None and _find_tool(LIST_TOOLS) is not None
        self._status = AuthorizationStatus.AUTHORIZED if granted else AuthorizationStatus.DENIED
        if not granted:
            self.logger.warning('libcamera tools not found; camera access unavailable')
        return granted

    def enumerate(self) -> List[CameraDevice]:
        tool = _find_tool(LIST_TOOLS)
        if tool is None:
            return []
        try:
            result = subprocess.run([tool, '--list-cameras'], check=True, stdout=subprocess.PIPE,
                                    stderr=subprocess.PIPE, timeout=10)
        except subprocess.CalledProcessError as exc:
            raise RuntimeError(f'{tool} --list-cameras failed: {exc.stderr.decode(errors="replace").strip()}')
        # Some builds print the list on stderr
        output = result.stdout.decode(errors='replace') + result.stderr.decode(errors='replace')
        devices = parse_camera_list(output)
        self._devices = {device.id: (idx, device) for idx, device in enumerate(devices)}
        return devices

    def open(self, device_id: str) -> DeviceInput:
        if device_id not in self._devices:
            raise RuntimeError(f'Unknown libcamera device: {device_id}')
        tool = _find_tool(STILL_TOOLS)
        if tool is None:
            raise NotImplementedError('rpicam-still is not available on this system')
        index, device = self._devices[device_id]
        return LibcameraInput(device, index, tool, self.image_width, self.image_height,
                              self.quality, self.capture_timeout)
