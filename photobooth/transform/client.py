
"""
Image-edit client for the photo booth.

This module provides a ``TransformClient`` class that encapsulates HTTP
communication with the remote image-edit service. One call of
:meth:`TransformClient.transform` is one logical edit, made of up to
``max_attempts`` single attempts with a growing pause between them.

The API endpoints are assumed to be:

- POST ``{scheme}://{host}:{port}/v1/images/edits`` as ``multipart/form-data``
  with the parts ``model``, ``prompt``, ``size`` and ``image`` (PNG, in that
  order) and an ``Authorization: Bearer <key>`` header.
  The server responds with JSON ``{ "data": [ { "url": ... } ] }``.

- GET ``<url>`` returns the generated image.
"""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

import requests
from PIL import Image

from ..errors import (
    APIError,
    ConfigurationError,
    ImageDecodeError,
    MalformedResponse,
    NetworkFailure,
    RetriesExhausted,
    TransformError,
)

DEFAULT_MODEL = 'gpt-image-1'
DEFAULT_SIZE = '1536x1024'
EDIT_PATH = '/v1/images/edits'
MAX_LOGGED_BODY = 500
MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # edit API limit per input image


@dataclass(frozen=True)
class TransformRequest:
    image_bytes: bytes
    prompt_text: str
    target_size: str


@dataclass(frozen=True)
class TransformResult:
    """Outcome of one transform call: themed image bytes or an error, never both."""

    image: Optional[bytes] = None
    error: Optional[TransformError] = None
    attempts: int = 0

    def __post_init__(self) -> None:
        if (self.image is None) == (self.error is None):
            raise ValueError('TransformResult needs exactly one of image or error')

    @property
    def ok(self) -> bool:
        return self.image is not None


@dataclass
class RetryState:
    attempt: int = 0
    last_error: Optional[TransformError] = None


def to_png(image_bytes: bytes) -> bytes:
    """Re-encode any decodable image as PNG for upload.

    Raises:
        ImageDecodeError: if the image cannot be decoded or the PNG exceeds
            ``MAX_UPLOAD_BYTES``.
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
        buf = io.BytesIO()
        img.save(buf, format='PNG')
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f'Could not encode input image as PNG: {exc}') from exc
    png = buf.getvalue()
    if len(png) > MAX_UPLOAD_BYTES:
        raise ImageDecodeError(f'Image too large: {len(png)} bytes (max: {MAX_UPLOAD_BYTES} bytes)')
    return png


def build_multipart(model: str, prompt: str, size: str, png: bytes) -> List[Tuple[str, Tuple[Any, ...]]]:
    """Ordered multipart fields for ``requests``; ``None`` filenames make plain text parts."""
    return [
        ('model', (None, model)),
        ('prompt', (None, prompt.encode('utf-8'))),
        ('size', (None, size)),
        ('image', ('image.png', png, 'image/png')),
    ]


def parse_image_url(payload: Any) -> str:
    """Extract ``data[0].url`` from a decoded edit response.

    Raises:
        MalformedResponse: if any link of the chain is missing or mistyped.
    """
    if not isinstance(payload, dict):
        raise MalformedResponse('Response is not a JSON object')
    data = payload.get('data')
    if not isinstance(data, list) or not data:
        raise MalformedResponse('Response has no data array')
    first = data[0]
    if not isinstance(first, dict):
        raise MalformedResponse('First data element is not an object')
    url = first.get('url')
    if not isinstance(url, str) or not url:
        raise MalformedResponse('First data element has no url')
    return url


class TransformClient:
    """HTTP client for the remote image-edit call, with retries."""

    def __init__(
        self,
        api_key: Optional[str],
        host: Optional[str] = 'api.openai.com',
        port: Optional[int] = 443,
        scheme: Optional[str] = 'https',
        model: str = DEFAULT_MODEL,
        size: str = DEFAULT_SIZE,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        timeout: Optional[float] = 120,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f'max_attempts must be at least 1, got {max_attempts}')
        self.api_key = api_key
        self.host = host
        self.port = port
        self.scheme = scheme
        self.model = model
        self.size = size
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.timeout = timeout
        self.session = session or requests.Session()
        self._stop_event = threading.Event()
        self._sleep = sleep or self._stop_event.wait
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> 'TransformClient':
        return cls(
            api_key=config.api_key,
            host=config.api_host,
            port=config.api_port,
            scheme=config.api_scheme,
            model=config.model,
            size=config.image_size,
            max_attempts=config.max_attempts,
            timeout=config.request_timeout,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.host and self.port and self.scheme)

    @property
    def endpoint(self) -> str:
        return f'{self.scheme}://{self.host}:{self.port}{EDIT_PATH}'

    def close(self) -> None:
        """Wake any backoff sleep and release the HTTP session."""
        self._stop_event.set()
        self.session.close()

    def transform(self, image_bytes: bytes, prompt_text: str) -> TransformResult:
        """Run one edit with retries.

        Returns:
            A successful result, a ``ConfigurationError`` result when the
            client is not configured, or a ``RetriesExhausted`` result wrapping
            the last attempt's error.
        """
        if not self.is_configured:
            self.logger.error('Image-edit service not configured')
            return TransformResult(error=ConfigurationError('API key or endpoint missing'))

        self.logger.debug('Using API key: %s...', self.api_key[:7])
        request = TransformRequest(image_bytes=image_bytes, prompt_text=prompt_text, target_size=self.size)
        state = RetryState()
        while state.attempt < self.max_attempts:
            state.attempt += 1
            try:
                image = self._attempt(request)
            except TransformError as exc:
                state.last_error = exc
                self.logger.warning('Edit attempt %d/%d failed: %s', state.attempt, self.max_attempts, exc)
            else:
                self.logger.info('Edit succeeded on attempt %d', state.attempt)
                return TransformResult(image=image, attempts=state.attempt)

            if state.attempt < self.max_attempts:
                delay = self.backoff_seconds * state.attempt
                self.logger.info('Retrying in %.0fs...', delay)
                self._sleep(delay)
                if self._stop_event.is_set():
                    break

        if state.last_error is None:
            return TransformResult(error=ConfigurationError('No edit attempt was made'))
        self.logger.error('All %d edit attempts failed', state.attempt)
        return TransformResult(error=RetriesExhausted(state.last_error, state.attempt), attempts=state.attempt)

    def _attempt(self, request: TransformRequest) -> bytes:
        """One POST + download round trip. Raises a TransformError subclass on failure."""
        png = to_png(request.image_bytes)
        self.logger.debug('Image data prepared: %d bytes', len(png))
        files = build_multipart(self.model, request.prompt_text, request.target_size, png)
        headers = {'Authorization': f'Bearer {self.api_key}'}

        self.logger.info('Sending edit request to %s', self.endpoint)
        try:
            response = self.session.post(self.endpoint, headers=headers, files=files, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkFailure(f'Edit request failed: {exc}') from exc
        if not 200 <= response.status_code < 300:
            body = response.text[:MAX_LOGGED_BODY]
            self.logger.error('Edit request returned HTTP %d: %s', response.status_code, body)
            raise APIError(response.status_code, body)

        try:
            payload = response.json()
        except ValueError as exc:
            self.logger.debug('Response was: %s', response.text[:200])
            raise MalformedResponse('Response body is not JSON') from exc
        url = parse_image_url(payload)

        self.logger.info('Downloading generated image...')
        try:
            download = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkFailure(f'Image download failed: {exc}') from exc
        if not 200 <= download.status_code < 300:
            self.logger.error('Image download returned HTTP %d', download.status_code)
            raise APIError(download.status_code, download.text[:MAX_LOGGED_BODY])

        content = download.content
        try:
            Image.open(io.BytesIO(content)).verify()
        except (OSError, ValueError, SyntaxError) as exc:
            raise ImageDecodeError(f'Downloaded image could not be decoded: {exc}') from exc
        return content
