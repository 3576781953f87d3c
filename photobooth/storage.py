
"""
On-disk photo pairs.

Each booth session produces ``original_<ts>.jpg`` and ``themed_<ts>.jpg`` in
the booth directory, where ``<ts>`` is the same integer unix timestamp for
both files. The slideshow pairs files by that exact string.
"""

from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import Tuple, Union

from PIL import Image

from .errors import StorageError

JPEG_QUALITY = 85


def pair_names(timestamp: int) -> Tuple[str, str]:
    return f'original_{timestamp}.jpg', f'themed_{timestamp}.jpg'


class PhotoStore:
    """Writes original/themed JPEG pairs into ``booth_dir``."""

    def __init__(self, booth_dir: Union[str, Path]) -> None:
        self.booth_dir = Path(booth_dir)
        self.logger = logging.getLogger(__name__)

    def pair_paths(self, timestamp: int) -> Tuple[Path, Path]:
        original, themed = pair_names(timestamp)
        return self.booth_dir / original, self.booth_dir / themed

    def _write_jpeg(self, data: bytes, path: Path) -> Path:
        try:
            img = Image.open(io.BytesIO(data))
            if img.mode != 'RGB':
                img = img.convert('RGB')
            buf = io.BytesIO()
            img.save(buf, format='JPEG', quality=JPEG_QUALITY)
        except (OSError, ValueError) as exc:
            self.logger.error('Failed to convert image to JPEG: %s', exc)
            raise StorageError(f'Could not encode {path.name}: {exc}') from exc

        tmp = path.with_suffix('.jpg.tmp')
        try:
            os.makedirs(self.booth_dir, exist_ok=True)
            with open(tmp, 'wb') as f:
                f.write(buf.getvalue())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as exc:
            self.logger.error('Failed to save %s: %s', path, exc)
            raise StorageError(f'Could not write {path}: {exc}') from exc
        self.logger.info('Image saved to: %s', path)
        return path

    def save_original(self, data: bytes, timestamp: int) -> Path:
        return self._write_jpeg(data, self.pair_paths(timestamp)[0])

    def save_themed(self, data: bytes, timestamp: int) -> Path:
        return self._write_jpeg(data, self.pair_paths(timestamp)[1])
