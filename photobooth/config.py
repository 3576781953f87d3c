
"""
Configuration management for the photo booth.

This module defines a dataclass ``Config`` that holds configuration for the
booth. It can be loaded from a YAML file or constructed manually. The
configuration covers the image-edit service endpoint and credential, output
paths, capture settings, retry policy and the theme list.

Example YAML configuration (config/booth.yaml):

```yaml
api_host: "api.openai.com"
api_port: 443
api_scheme: "https"
booth_dir: "~/Pictures/booth"
camera_backend: "rpi"       # "mock" on development machines
countdown_seconds: 3
max_attempts: 3
request_timeout: 120        # seconds per HTTP request
log_file: "./booth_data/booth.log"
theme_id: 1
themes:
  - id: 1
    name: "Studio Ghibli"
    prompt: "Transform this photo into Studio Ghibli anime style"
    category: "anime"
```

The API key is normally supplied through the ``OPENAI_KEY`` environment
variable rather than the file. ``OPENAI_HOST``, ``OPENAI_PORT`` and
``OPENAI_SCHEME`` override the endpoint settings in the same way.

Using the ``Config.from_yaml`` method simplifies loading configuration:

```python
from photobooth.config import Config
config = Config.from_yaml('config/booth.yaml')
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

ENV_OVERRIDES = {
    'OPENAI_KEY': 'api_key',
    'OPENAI_HOST': 'api_host',
    'OPENAI_PORT': 'api_port',
    'OPENAI_SCHEME': 'api_scheme',
}


@dataclass
class Config:
    """Configuration settings for the photo booth."""

    api_key: Optional[str] = None
    api_host: str = 'api.openai.com'
    api_port: int = 443
    api_scheme: str = 'https'
    model: str = 'gpt-image-1'
    image_size: str = '1536x1024'
    booth_dir: str = './booth'
    camera_backend: str = 'mock'
    countdown_seconds: int = 3
    capture_timeout: float = 30.0  # seconds
    max_attempts: int = 3
    request_timeout: float = 120.0  # seconds
    log_file: str = './booth.log'
    theme_id: Optional[int] = None
    themes: List[Dict[str, Any]] = field(default_factory=list)

    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: str, environ: Optional[Mapping[str, str]] = None) -> 'Config':
        """Load configuration from a YAML file, then apply environment overrides.

        Raises:
            FileNotFoundError: if the YAML file cannot be found.
            yaml.YAMLError: if the YAML file is invalid.
            ValueError: if a value has the wrong type.
        """
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f'Configuration root must be a mapping: {path}')
        return cls.from_dict(data, environ=environ)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> 'Config':
        env = os.environ if environ is None else environ
        merged = dict(data)
        for env_key, attr in ENV_OVERRIDES.items():
            if env.get(env_key):
                merged[attr] = env[env_key]

        theme_id = merged.get('theme_id')
        max_attempts = int(merged.get('max_attempts', 3))
        if max_attempts < 1:
            raise ValueError(f'max_attempts must be at least 1, got {max_attempts}')
        return cls(
            api_key=merged.get('api_key'),
            api_host=merged.get('api_host', 'api.openai.com'),
            api_port=int(merged.get('api_port', 443)),
            api_scheme=merged.get('api_scheme', 'https'),
            model=merged.get('model', 'gpt-image-1'),
            image_size=merged.get('image_size', '1536x1024'),
            booth_dir=os.path.expanduser(merged.get('booth_dir', './booth')),
            camera_backend=merged.get('camera_backend', 'mock'),
            countdown_seconds=int(merged.get('countdown_seconds', 3)),
            capture_timeout=float(merged.get('capture_timeout', 30.0)),
            max_attempts=max_attempts,
            request_timeout=float(merged.get('request_timeout', 120.0)),
            log_file=merged.get('log_file', './booth.log'),
            theme_id=int(theme_id) if theme_id is not None else None,
            themes=list(merged.get('themes') or []),
            extra={k: v for k, v in merged.items() if k not in cls.__annotations__},
        )

    @property
    def is_transform_configured(self) -> bool:
        return bool(self.api_key and self.api_host and self.api_port and self.api_scheme)

    def ensure_paths(self) -> None:
        """Ensure that the booth and log directories exist.

        Creates directories as needed. This method is idempotent.
        """
        os.makedirs(self.booth_dir, exist_ok=True)

        # Create directory for log file
        log_dir = os.path.dirname(self.log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)
