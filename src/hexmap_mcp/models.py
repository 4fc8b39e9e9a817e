"""
Data models for Hexmap-MCP — the hex map ontology.

A hex map is a flat, ordered list of configuration modules laid out on a
hexagonal grid.  The first module always sits at the origin; every other
module spirals outward ring by ring:

    LayoutState
    ├── nodes      — one LayoutNode per Module, in module order
    ├── hex_size   — the circumradius R chosen to fit the viewport
    └── popup      — PopupClosed or PopupOpen(module_name, anchor)

Coordinates come in two flavours:

    AxialCoord — (q, r) address of a hexagon, independent of pixels
    PixelPoint — (x, y) on the rendering surface, always derived from an
                 AxialCoord plus a hex size and never stored on its own

Each node carries a **style category** computed from its module:

    core — the server module (cannot be toggled)
    on   — an enabled module
    off  — a disabled module

Layout models are frozen.  A popup transition produces a new LayoutState
instead of mutating the current one, so a renderer always receives a
complete, consistent description.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


StyleCategory = Literal["core", "on", "off"]


# ---------------------------------------------------------------------------
# Module (external, read-only)
# ---------------------------------------------------------------------------

class Module(BaseModel):
    """A configuration module as delivered by the config API.

    The API marks the server section with ``is_server``; it is accepted as
    an alias of ``is_core``.  ``settings`` keeps the order it arrived in.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str
    enabled: bool = False
    is_core: bool = Field(default=False, alias="is_server")
    settings: dict[str, Any] = Field(default_factory=dict)

    @property
    def category(self) -> StyleCategory:
        if self.is_core:
            return "core"
        return "on" if self.enabled else "off"

    def get_label(self) -> str:
        """Display label: the module name with underscores shown as spaces."""
        return self.name.replace("_", " ")


# ---------------------------------------------------------------------------
# Coordinates
# ---------------------------------------------------------------------------

class AxialCoord(BaseModel):
    """An axial hex coordinate.  Equal and hashable by its (q, r) pair."""
    model_config = ConfigDict(frozen=True)

    q: int
    r: int

    @property
    def ring(self) -> int:
        """Hex distance from the origin."""
        return max(abs(self.q), abs(self.r), abs(self.q + self.r))

    def __add__(self, other: AxialCoord) -> AxialCoord:
        return AxialCoord(q=self.q + other.q, r=self.r + other.r)

    def scale(self, k: int) -> AxialCoord:
        return AxialCoord(q=self.q * k, r=self.r * k)


class PixelPoint(BaseModel):
    """A point on the rendering surface, in pixels."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float

    def offset(self, dx: float, dy: float) -> PixelPoint:
        return PixelPoint(x=self.x + dx, y=self.y + dy)


class Viewport(BaseModel):
    """Reported size of the drawing surface."""
    model_config = ConfigDict(frozen=True)

    width: float
    height: float

    def is_ready(self, threshold: float) -> bool:
        """A surface is usable once both sides exceed ``threshold``."""
        return self.width > threshold and self.height > threshold


# ---------------------------------------------------------------------------
# Styling
# ---------------------------------------------------------------------------

class NodeStyle(BaseModel):
    """Visual styling for one style category.

    Attributes:
        fill_color:  Interior of the hexagon.
        label_color: Colour of the name and status text.
        line_color:  Colour of the connector drawn from the origin.
    """
    fill_color: str
    label_color: str
    line_color: str


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

class LayoutNode(BaseModel):
    """One module placed on the map."""
    model_config = ConfigDict(frozen=True)

    module: Module
    coord: AxialCoord
    center: PixelPoint

    @property
    def name(self) -> str:
        return self.module.name

    @property
    def category(self) -> StyleCategory:
        return self.module.category


class PopupClosed(BaseModel):
    """No popup is shown."""
    model_config = ConfigDict(frozen=True)

    is_open: Literal[False] = False


class PopupOpen(BaseModel):
    """The edit popup for ``module_name`` is shown.

    ``anchor`` is the centre of the clicked node, ``position`` the top-left
    corner of the popup rectangle after overflow correction.
    """
    model_config = ConfigDict(frozen=True)

    is_open: Literal[True] = True
    module_name: str
    anchor: PixelPoint
    position: PixelPoint
    width: float
    height: float

    def contains(self, point: PixelPoint) -> bool:
        return (
            self.position.x <= point.x <= self.position.x + self.width
            and self.position.y <= point.y <= self.position.y + self.height
        )


PopupState = Union[PopupClosed, PopupOpen]


class LayoutState(BaseModel):
    """The complete, immutable description of one laid-out hex map.

    ``offset`` is the translation that was applied to centre the projected
    layout in the viewport; node centres already include it.
    """
    model_config = ConfigDict(frozen=True)

    nodes: tuple[LayoutNode, ...]
    hex_size: float
    viewport: Viewport
    offset: PixelPoint = PixelPoint(x=0.0, y=0.0)
    popup: PopupState = Field(default_factory=PopupClosed)

    def get_node(self, name: str) -> Optional[LayoutNode]:
        """Look up a node by module name."""
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def module_names(self) -> list[str]:
        return [node.name for node in self.nodes]

    def with_popup(self, popup: PopupState) -> LayoutState:
        """Return a copy of this state with a different popup."""
        return self.model_copy(update={"popup": popup})


# ---------------------------------------------------------------------------
# Frames handed to the renderer
# ---------------------------------------------------------------------------

FrameKind = Literal["layout", "empty", "loading", "unavailable", "error"]


class RenderFrame(BaseModel):
    """Everything a renderer needs for one full redraw.

    ``kind`` selects what is drawn:

        layout      — ``state`` is drawn; ``message`` (if any) is shown as
                      an inline error banner above it
        empty       — "no configuration" placeholder
        loading     — the surface is not ready yet
        unavailable — the surface never became ready
        error       — geometry failed and there is no previous state
    """
    model_config = ConfigDict(frozen=True)

    kind: FrameKind
    viewport: Viewport
    state: Optional[LayoutState] = None
    message: Optional[str] = None
    generation: int = 0
