"""Test doubles shared by the test modules."""

import io
import json
import threading
from typing import Any, List, Optional

from PIL import Image

from photobooth.camera.base import CameraDevice, DeviceKind


def make_image(width: int, height: int, fmt: str = 'JPEG', color=(200, 40, 90)) -> bytes:
    buf = io.BytesIO()
    Image.new('RGB', (width, height), color=color).save(buf, format=fmt)
    return buf.getvalue()


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, content: bytes = b'', text: Optional[str] = None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        if text is None:
            text = json.dumps(json_data) if json_data is not None else content.decode('latin-1')
        self.text = text

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json


def edit_ok(url: str = 'https://images.example/out.png') -> FakeResponse:
    return FakeResponse(200, {'data': [{'url': url}]})


def image_ok(width: int = 96, height: int = 64) -> FakeResponse:
    return FakeResponse(200, content=make_image(width, height, fmt='PNG'))


class FakeSession:
    """Scripted stand-in for requests.Session.

    ``posts`` and ``gets`` are consumed in order; an exception instance is
    raised instead of returned. ``on_post`` runs before each POST answer.
    """

    def __init__(self, posts: Optional[List[Any]] = None, gets: Optional[List[Any]] = None, on_post=None):
        self.posts = list(posts or [])
        self.gets = list(gets or [])
        self.on_post = on_post
        self.post_calls: List[dict] = []
        self.get_calls: List[dict] = []
        self.closed = False
        self._lock = threading.Lock()

    def _next(self, queue: List[Any]):
        with self._lock:
            item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url, **kwargs):
        self.post_calls.append(dict(kwargs, url=url))
        if self.on_post is not None:
            self.on_post(url, kwargs)
        return self._next(self.posts)

    def get(self, url, **kwargs):
        self.get_calls.append(dict(kwargs, url=url))
        return self._next(self.gets)

    def close(self):
        self.closed = True


BUILTIN = CameraDevice(id='builtin-0', display_name='FaceTime HD Camera', kind=DeviceKind.BUILTIN)
EXTERNAL = CameraDevice(id='usb-0', display_name='Logitech Brio', kind=DeviceKind.EXTERNAL)
CONTINUITY = CameraDevice(id='iphone-0', display_name="Sam's iPhone Camera", kind=DeviceKind.CONTINUITY)
