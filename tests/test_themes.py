import pytest

from photobooth.themes import (
    FALLBACK_THEMES,
    PhotoTheme,
    ThemeCatalog,
    ThemeConfigurationError,
    build_edit_prompt,
    validate_themes,
)

ENTRIES = [
    {'id': 1, 'name': 'Studio Ghibli', 'prompt': 'soft watercolor', 'category': 'anime'},
    {'id': 2, 'name': 'Simpsons', 'prompt': 'yellow skin', 'category': 'tv_cartoon'},
    {'id': 3, 'name': 'Film Noir', 'prompt': 'black and white', 'category': 'film', 'enabled': False},
]


def test_catalog_from_config():
    catalog = ThemeCatalog.from_config(ENTRIES)

    assert not catalog.is_fallback
    assert [t.id for t in catalog.enabled] == [1, 2]
    assert catalog.categories() == ['anime', 'tv_cartoon']
    assert [t.name for t in catalog.by_category('anime')] == ['Studio Ghibli']
    assert catalog.get(2).name == 'Simpsons'
    assert catalog.get(3) is None
    assert catalog.is_configured


@pytest.mark.parametrize('entries', [
    None,
    [],
    [{'id': 1, 'name': 'No prompt'}],
    [dict(ENTRIES[0]), dict(ENTRIES[0])],
    [dict(ENTRIES[2])],
    [{'id': 'abc', 'name': 'x', 'prompt': 'y'}],
])
def test_bad_config_falls_back(entries):
    catalog = ThemeCatalog.from_config(entries)
    assert catalog.is_fallback
    assert catalog.themes == list(FALLBACK_THEMES)


def test_theme_defaults():
    theme = PhotoTheme.from_dict({'id': '4', 'name': 'Lego', 'prompt': 'bricks'})
    assert theme == PhotoTheme(4, 'Lego', 'bricks', enabled=True, category='general')


def test_validate_rejects_non_positive_id():
    with pytest.raises(ThemeConfigurationError):
        validate_themes([PhotoTheme(0, 'Zero', 'p')])


def test_fallback_catalog_is_valid():
    validate_themes(list(FALLBACK_THEMES))


def test_edit_prompt_preserves_people():
    theme = FALLBACK_THEMES[1]
    prompt = build_edit_prompt(theme)
    assert prompt.startswith('Transform this photo into Simpsons style')
    assert theme.prompt in prompt
    assert 'same faces' in prompt
