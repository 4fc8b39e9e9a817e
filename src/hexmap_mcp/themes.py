"""
Theme definitions for Hexmap-MCP.

Provides light and dark colour palettes for rendering hex maps.
Each theme defines colours for:
- Map background
- Text (placeholders, popup body, muted hints)
- Node styles per category (core / on / off)
- The popup panel and its inputs and buttons
- The inline error banner
"""

from __future__ import annotations
from dataclasses import dataclass, field

from .models import NodeStyle, StyleCategory


@dataclass
class ThemePalette:
    """Colour palette for a theme."""

    # Map
    background: str

    # Text
    text_color: str
    muted_text_color: str

    # Node colours per category
    node_styles: dict[str, NodeStyle] = field(default_factory=dict)

    # Connector opacity (0=transparent, 255=opaque)
    line_alpha: int = 102

    # Popup panel
    popup_fill: str = "#ffffff"
    popup_border: str = "#d0d7de"
    input_fill: str = "#f6f8fa"
    input_border: str = "#d0d7de"
    accent: str = "#2563eb"
    accent_text: str = "#ffffff"
    toggle_on: str = "#1a7f37"
    toggle_off: str = "#d0d7de"

    # Errors
    error_color: str = "#cf222e"

    def node_style(self, category: StyleCategory) -> NodeStyle:
        return self.node_styles[category]


# Dashboard palette (light theme) - default
LIGHT_THEME = ThemePalette(
    background="#ffffff",
    text_color="#1f2328",
    muted_text_color="#656d76",
    node_styles={
        "core": NodeStyle(fill_color="#c7dbf5", label_color="#1e40af", line_color="#93bbf0"),
        "on":   NodeStyle(fill_color="#c6f0d2", label_color="#15803d", line_color="#93bbf0"),
        "off":  NodeStyle(fill_color="#e8eaed", label_color="#6b7280", line_color="#c8cdd3"),
    },
)


# Catppuccin Mocha (dark theme)
DARK_THEME = ThemePalette(
    background="#11111b",
    text_color="#cdd6f4",
    muted_text_color="#6c7086",
    node_styles={
        "core": NodeStyle(fill_color="#1e3a5f", label_color="#89b4fa", line_color="#74c7ec"),
        "on":   NodeStyle(fill_color="#1f3d2c", label_color="#a6e3a1", line_color="#74c7ec"),
        "off":  NodeStyle(fill_color="#313244", label_color="#9399b2", line_color="#585b70"),
    },
    line_alpha=140,
    popup_fill="#1e1e2e",
    popup_border="#45475a",
    input_fill="#181825",
    input_border="#45475a",
    accent="#89b4fa",
    accent_text="#11111b",
    toggle_on="#a6e3a1",
    toggle_off="#45475a",
    error_color="#f38ba8",
)


# Theme registry
THEMES: dict[str, ThemePalette] = {
    "light": LIGHT_THEME,
    "dark": DARK_THEME,
}


def get_theme(name: str) -> ThemePalette:
    """Get a theme palette by name.

    Args:
        name: Theme name ("light" or "dark")

    Returns:
        ThemePalette for the requested theme

    Raises:
        ValueError: If theme name is not recognized
    """
    if name not in THEMES:
        valid = ", ".join(THEMES.keys())
        raise ValueError(f"Unknown theme '{name}'. Valid themes: {valid}")
    return THEMES[name]
