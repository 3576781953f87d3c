
"""
Main orchestration for the photo booth kiosk.

This script wires the camera backend, device manager, capture controller,
image-edit client, photo store and pipeline coordinator together, prepares
the camera (permission, discovery, session start) and then runs the booth:
every press of Enter starts a countdown, takes a photo and turns it into a
themed picture. The components are configurable via a YAML configuration
file (see :mod:`photobooth.config`).

Usage:

```bash
python -m photobooth.main --config config/booth.yaml
python -m photobooth.main --config config/booth.yaml --theme 2 --once
```
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Optional

from .camera.base import CameraBackend
from .camera.capture import CaptureController
from .camera.manager import DeviceManager
from .camera.mock_camera import MockCamera
from .camera.rpi_camera import LibcameraBackend
from .camera.state import SessionState
from .config import Config
from .dispatch import Dispatcher
from .errors import PhotoBoothError
from .events import EventBus, OriginalCaptured, PipelineFailed, ProcessingStarted, ThemedReady
from .pipeline import PipelineCoordinator, PipelineResult
from .storage import PhotoStore
from .themes import ThemeCatalog
from .transform.client import TransformClient


class PhotoBoothKiosk:
    """Main controller for photo booth operations."""

    def __init__(self, config: Config, camera: Optional[CameraBackend] = None,
                 transform_client: Optional[TransformClient] = None) -> None:
        self.config = config
        # Ensure directories exist
        config.ensure_paths()

        self._stop_event = threading.Event()
        self.dispatcher = Dispatcher()
        self.camera: CameraBackend = camera or self._init_camera()
        self.device_manager = DeviceManager(self.camera)
        self.capture_controller = CaptureController(self.device_manager, self.dispatcher)
        self.transform_client = transform_client or TransformClient.from_config(config)
        self.store = PhotoStore(config.booth_dir)
        self.bus = EventBus()
        self.themes = ThemeCatalog.from_config(config.themes)
        self.coordinator = PipelineCoordinator(
            device_manager=self.device_manager,
            capture_controller=self.capture_controller,
            transform_client=self.transform_client,
            dispatcher=self.dispatcher,
            store=self.store,
            bus=self.bus,
            countdown=self.countdown,
            countdown_seconds=config.countdown_seconds,
            capture_timeout=config.capture_timeout,
        )
        self._subscribe_console()

    def _init_camera(self) -> CameraBackend:
        """Instantiate the camera backend based on configuration."""
        if self.config.camera_backend == 'mock':
            return MockCamera(image_width=4000, image_height=3000)
        elif self.config.camera_backend == 'rpi':
            return LibcameraBackend(capture_timeout=self.config.capture_timeout)
        else:
            raise ValueError(f'Unknown camera backend: {self.config.camera_backend}')

    def _subscribe_console(self) -> None:
        self.bus.subscribe(OriginalCaptured, lambda e: logging.info('Original saved: %s', e.path))
        self.bus.subscribe(ProcessingStarted, lambda e: logging.info('Creating %s picture...', e.theme_name))
        self.bus.subscribe(ThemedReady, lambda e: logging.info('Themed picture ready: %s', e.themed_path))
        self.bus.subscribe(PipelineFailed, lambda e: logging.error('Booth error: %s', e.message))
        self.device_manager.subscribe(self._log_camera_state)

    def _log_camera_state(self, old: SessionState, new: SessionState) -> None:
        if new.is_error:
            logging.error('Camera session %s -> %s', old, new)
        else:
            logging.info('Camera session %s -> %s', old, new)

    def countdown(self, seconds: int) -> None:
        """Console stand-in for the on-screen countdown."""
        for remaining in range(seconds, 0, -1):
            logging.info('%d...', remaining)
            if self._stop_event.wait(1.0):
                break

    def select_theme(self, theme_id: Optional[int]) -> None:
        theme = self.themes.get(theme_id) if theme_id is not None else None
        if theme is None:
            if theme_id is not None:
                logging.warning('Theme %s not available; using the first enabled theme', theme_id)
            theme = self.themes.enabled[0]
        self.coordinator.select_theme(theme)

    def _setup_camera(self) -> None:
        self.device_manager.request_permission()
        if not self.device_manager.is_authorized:
            logging.warning('Camera access not authorized')
            return
        self.device_manager.discover_devices()
        self.device_manager.start_session()

    def refresh_cameras(self) -> None:
        """Stop the camera session and run permission, discovery and start again.

        Picks up a camera that was plugged in after :meth:`setup` and recovers a
        session that ended in the error state.
        """
        def refresh() -> None:
            self.device_manager.stop_session()
            self._setup_camera()

        logging.info('Refreshing cameras...')
        try:
            self.dispatcher.call(refresh)
        except PhotoBoothError as exc:
            logging.error('Camera refresh failed: %s', exc)

    def setup(self) -> None:
        """Start the dispatcher and bring the camera up on it."""
        self.dispatcher.start()
        try:
            self.dispatcher.call(self._setup_camera)
        except PhotoBoothError as exc:
            logging.error('Camera setup failed: %s', exc)
        self.select_theme(self.config.theme_id)
        logging.info(self.coordinator.status().describe())

    def trigger(self) -> Optional[PipelineResult]:
        status = self.coordinator.status()
        if status.camera != 'ready' and not status.pipeline_active:
            self.refresh_cameras()
        result = self.coordinator.run()
        if result is None:
            logging.info('A photo is already being processed')
        return result

    def run_interactive(self) -> None:
        """Run one pipeline per line read from stdin until EOF or stop."""
        print('Press Enter to take a photo (Ctrl+D to quit)')
        while not self._stop_event.is_set():
            line = sys.stdin.readline()
            if not line:
                break
            self.trigger()

    def stop(self) -> None:
        """Stop the camera session and background threads."""
        self._stop_event.set()
        self.transform_client.close()
        if self.dispatcher.is_running:
            try:
                self.dispatcher.call(self.device_manager.stop_session)
            except Exception as exc:
                logging.error('Failed to stop camera session: %s', exc)
        self.dispatcher.stop()


def setup_logging(log_file: str) -> None:
    """Configure logging to file and console."""
    logger = logging.getLogger()
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(threadName)s - %(message)s'
    )
    # File handler
    fh = logging.FileHandler(log_file)
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    # Console handler
    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(formatter)
    logger.addHandler(ch)


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Photo booth kiosk')
    parser.add_argument('--config', '-c', type=str, required=True, help='Path to YAML configuration file')
    parser.add_argument('--theme', type=int, default=None, help='Theme id to use (overrides the config)')
    parser.add_argument('--once', action='store_true', help='Take a single photo and exit')
    return parser.parse_args(argv)


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    config = Config.from_yaml(args.config)
    if args.theme is not None:
        config.theme_id = args.theme
    config.ensure_paths()
    setup_logging(config.log_file)

    kiosk = PhotoBoothKiosk(config)

    def handle_sigterm(signum, frame):
        logging.info('Shutting down...')
        kiosk.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_sigterm)
    signal.signal(signal.SIGTERM, handle_sigterm)
    kiosk.setup()
    try:
        if args.once:
            result = kiosk.trigger()
            return 0 if result is not None and result.ok else 1
        kiosk.run_interactive()
    finally:
        kiosk.stop()
    return 0


if __name__ == '__main__':
    sys.exit(main())
