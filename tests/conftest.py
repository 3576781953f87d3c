import pytest

from helpers import BUILTIN, CONTINUITY
from photobooth.camera.capture import CaptureController
from photobooth.camera.manager import DeviceManager
from photobooth.camera.mock_camera import MockCamera
from photobooth.dispatch import Dispatcher


@pytest.fixture
def dispatcher():
    d = Dispatcher(name='TestCoordinator')
    d.start()
    yield d
    d.stop()


@pytest.fixture
def camera():
    return MockCamera(devices=[BUILTIN, CONTINUITY], image_width=600, image_height=450, capture_delay=0.0)


@pytest.fixture
def manager(camera):
    dm = DeviceManager(camera)
    dm.request_permission()
    dm.discover_devices()
    dm.start_session()
    return dm


@pytest.fixture
def controller(manager, dispatcher):
    return CaptureController(manager, dispatcher)
