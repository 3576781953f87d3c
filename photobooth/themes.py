
"""
Theme catalog.

Themes come from the ``themes`` list of the YAML configuration::

    themes:
      - id: 1
        name: "Studio Ghibli"
        prompt: "Transform this photo into Studio Ghibli anime style ..."
        category: "anime"
        enabled: true

A catalog that fails validation is replaced by a small built-in fallback so
that the booth always has something to offer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhotoTheme:
    id: int
    name: str
    prompt: str
    enabled: bool = True
    category: str = 'general'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PhotoTheme':
        return cls(
            id=int(data['id']),
            name=str(data['name']),
            prompt=str(data['prompt']),
            enabled=bool(data.get('enabled', True)),
            category=str(data.get('category', 'general')),
        )


class ThemeConfigurationError(ValueError):
    pass


FALLBACK_THEMES = (
    PhotoTheme(1, 'Studio Ghibli', 'Transform this photo into Studio Ghibli anime style with soft watercolor '
               'backgrounds, whimsical characters, and magical atmosphere like Spirited Away or My Neighbor Totoro',
               category='anime'),
    PhotoTheme(2, 'Simpsons', 'Transform this photo into The Simpsons cartoon style with yellow skin, big eyes, '
               'overbite, and the iconic Springfield art style', category='tv_cartoon'),
    PhotoTheme(3, 'Rick and Morty', 'Transform this photo into Rick and Morty animation style with exaggerated '
               'features, drooling mouths, unibrows, and sci-fi elements', category='tv_cartoon'),
)


def validate_themes(themes: List[PhotoTheme]) -> None:
    """Raise ThemeConfigurationError if the theme list is unusable."""
    if not themes:
        raise ThemeConfigurationError('No themes configured')
    ids = [t.id for t in themes]
    if len(ids) != len(set(ids)):
        raise ThemeConfigurationError('Duplicate theme ids')
    for theme in themes:
        if theme.id <= 0:
            raise ThemeConfigurationError(f'Theme id must be positive: {theme.id}')
        if not theme.name or not theme.prompt or not theme.category:
            raise ThemeConfigurationError(f'Theme {theme.id} is missing name, prompt or category')
    if not any(t.enabled for t in themes):
        raise ThemeConfigurationError('No enabled themes')


class ThemeCatalog:
    """Validated, read-only set of themes."""

    def __init__(self, themes: Iterable[PhotoTheme], is_fallback: bool = False) -> None:
        self.themes: List[PhotoTheme] = list(themes)
        self.is_fallback = is_fallback

    @classmethod
    def fallback(cls) -> 'ThemeCatalog':
        return cls(FALLBACK_THEMES, is_fallback=True)

    @classmethod
    def from_config(cls, entries: Optional[Iterable[Dict[str, Any]]]) -> 'ThemeCatalog':
        """Build a catalog from raw config entries, falling back on any problem."""
        try:
            themes = [PhotoTheme.from_dict(e) for e in (entries or [])]
            validate_themes(themes)
        except (KeyError, TypeError, ValueError) as exc:
            logger.error('Failed to load theme configuration: %s', exc)
            logger.warning('Loading fallback default theme configuration')
            return cls.fallback()
        logger.info('Loaded %d themes (%d enabled)', len(themes), sum(t.enabled for t in themes))
        return cls(themes)

    @property
    def enabled(self) -> List[PhotoTheme]:
        return [t for t in self.themes if t.enabled]

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled)

    def get(self, theme_id: int) -> Optional[PhotoTheme]:
        """Enabled theme with ``theme_id``, if any."""
        return next((t for t in self.enabled if t.id == theme_id), None)

    def categories(self) -> List[str]:
        return sorted({t.category for t in self.enabled})

    def by_category(self, category: str) -> List[PhotoTheme]:
        return [t for t in self.enabled if t.category == category]


def build_edit_prompt(theme: PhotoTheme) -> str:
    """Prompt text sent to the edit API for ``theme``."""
    return (
        f'Transform this photo into {theme.name} style while preserving the exact same people, faces, '
        f'poses, and composition from the original photo. {theme.prompt}\n\n'
        'IMPORTANT: Keep all the people exactly as they appear in the original photo - same faces, '
        'same expressions, same positioning. Only change the art style, not the people or their appearance.'
    )
