"""
Color palettes for locally generated diagram output.

Each Mermaid theme maps to four color roles used by the SVG template.
Unknown theme names fall back to the default palette.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Theme(str, Enum):
    """Mermaid built-in theme names."""
    DEFAULT = "default"
    DARK = "dark"
    FOREST = "forest"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class ThemePalette:
    """A named color palette for consistent diagram styling."""
    node_color: str
    stroke_color: str
    edge_color: str
    text_color: str


THEMES: Mapping[str, ThemePalette] = MappingProxyType({
    Theme.DEFAULT.value: ThemePalette(
        node_color="#fff", stroke_color="#333", edge_color="#333", text_color="#333",
    ),
    Theme.DARK.value: ThemePalette(
        node_color="#2d2d30", stroke_color="#d4d4d4", edge_color="#d4d4d4", text_color="#d4d4d4",
    ),
    Theme.FOREST.value: ThemePalette(
        node_color="#f9f9f9", stroke_color="#4a5d23", edge_color="#4a5d23", text_color="#2d3748",
    ),
    Theme.NEUTRAL.value: ThemePalette(
        node_color="#f8f9fa", stroke_color="#6c757d", edge_color="#6c757d", text_color="#495057",
    ),
})


def normalize_theme(theme: object) -> str:
    """Return the canonical theme name, or ``"default"`` when unrecognized."""
    if isinstance(theme, Theme):
        return theme.value
    if isinstance(theme, str) and theme.strip().lower() in THEMES:
        return theme.strip().lower()
    return Theme.DEFAULT.value


def get_palette(theme: object) -> ThemePalette:
    """Look up the palette for *theme*; never raises."""
    return THEMES[normalize_theme(theme)]
