"""
Hexagonal grid geometry for Hexmap-MCP.

Four pure building blocks turn a module count and a viewport into pixels:

  1. Position generation — N distinct axial coordinates in a deterministic
     spiral, ring by ring, starting at the origin.
  2. Projection — axial coordinate + hex size → pixel centre, with a fixed
     gap between neighbouring hexagons.
  3. Size fitting — first-fit-decreasing search for the largest hex size
     whose whole layout fits the viewport with padding.
  4. Popup placement — anchor a popup beside a node, flipping to the left
     and clamping vertically so it stays on screen.

Hexagons are drawn with a vertex at the top and bottom, so a hexagon of
circumradius R spans ``sqrt(3) * R`` horizontally and ``2 * R`` vertically.

Constants:
  - Hex sizes from 56px down to 18px in steps of 2px
  - 18% extra spacing between adjacent hexagons
  - 80px padding around the whole layout
  - Popups are 280 x 300 and keep 10px from the viewport edge
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from .models import AxialCoord, LayoutNode, PixelPoint


# --- Sizing constants ---

HEX_SIZE_MAX = 56
HEX_SIZE_MIN = 18
HEX_SIZE_STEP = 2

GAP_FRACTION = 0.18
LAYOUT_PADDING = 80

# --- Popup constants ---

POPUP_WIDTH = 280
POPUP_HEIGHT = 300
POPUP_OFFSET_X = 24
POPUP_OFFSET_Y = 50
POPUP_MARGIN = 10

SQRT3 = math.sqrt(3)

# Canonical axial unit vectors, counter-clockwise from east.
DIRECTIONS: tuple[AxialCoord, ...] = (
    AxialCoord(q=1, r=0),
    AxialCoord(q=1, r=-1),
    AxialCoord(q=0, r=-1),
    AxialCoord(q=-1, r=0),
    AxialCoord(q=-1, r=1),
    AxialCoord(q=0, r=1),
)

ORIGIN = AxialCoord(q=0, r=0)


@dataclass(frozen=True)
class SizeRange:
    """Closed range of candidate hex sizes, searched from the top down."""
    minimum: float = HEX_SIZE_MIN
    maximum: float = HEX_SIZE_MAX
    step: float = HEX_SIZE_STEP

    def __post_init__(self):
        if self.minimum <= 0:
            raise ValueError(f"Hex size minimum must be positive, got {self.minimum}")
        if self.minimum >= self.maximum:
            raise ValueError(
                f"Hex size minimum ({self.minimum}) must be below maximum ({self.maximum})"
            )
        if self.step <= 0:
            raise ValueError(f"Hex size step must be positive, got {self.step}")

    def candidates(self) -> list[float]:
        """Sizes from ``maximum`` down to ``minimum`` (inclusive when on-step)."""
        sizes = []
        size = self.maximum
        while size >= self.minimum:
            sizes.append(size)
            size -= self.step
        return sizes


DEFAULT_SIZE_RANGE = SizeRange()


@dataclass
class BoundingBox:
    """Axis-aligned bounds of a set of hexagons."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> PixelPoint:
        return PixelPoint(x=(self.min_x + self.max_x) / 2, y=(self.min_y + self.max_y) / 2)


# ---------------------------------------------------------------------------
# Position generation
# ---------------------------------------------------------------------------

def hex_ring(radius: int) -> list[AxialCoord]:
    """Return the ``6 * radius`` coordinates at distance ``radius``, in walk order.

    The walk starts ``radius`` steps along direction 4 and then takes
    ``radius`` steps along each of the six directions in turn.
    """
    if radius < 0:
        raise ValueError(f"Ring radius must be >= 0, got {radius}")
    if radius == 0:
        return [ORIGIN]

    ring = []
    current = DIRECTIONS[4].scale(radius)
    for direction in DIRECTIONS:
        for _ in range(radius):
            ring.append(current)
            current = current + direction
    return ring


def generate_positions(count: int) -> list[AxialCoord]:
    """
    Generate ``count`` distinct axial coordinates spiralling out from the origin.

    Steps:
    1. Seed with the origin
    2. Walk ring 1, 2, 3, ... in turn
    3. Sort each ring by descending q, then ascending |r| (stable, so ties
       keep walk order)
    4. Append until ``count`` is reached; the rest of the last ring is dropped
    """
    if count < 1:
        raise ValueError(f"Position count must be >= 1, got {count}")

    positions = [ORIGIN]
    radius = 1
    while len(positions) < count:
        ring = sorted(hex_ring(radius), key=lambda c: (-c.q, abs(c.r)))
        for coord in ring:
            if len(positions) >= count:
                break
            positions.append(coord)
        radius += 1
    return positions


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def project(coord: AxialCoord, hex_size: float, gap_fraction: float = GAP_FRACTION) -> PixelPoint:
    """Map an axial coordinate to the pixel centre of its hexagon.

    Neighbouring centres sit ``sqrt(3) * R * (1 + gap_fraction)`` apart.
    """
    if hex_size <= 0:
        raise ValueError(f"Hex size must be positive, got {hex_size}")
    spacing = hex_size * (1 + gap_fraction)
    return PixelPoint(
        x=spacing * SQRT3 * (coord.q + coord.r / 2),
        y=spacing * 1.5 * coord.r,
    )


def hex_corners(center: PixelPoint, hex_size: float) -> list[tuple[float, float]]:
    """Six polygon vertices of a hexagon, starting at the upper-right one."""
    corners = []
    for i in range(6):
        angle = math.pi / 3 * i - math.pi / 6
        corners.append((
            center.x + hex_size * math.cos(angle),
            center.y + hex_size * math.sin(angle),
        ))
    return corners


def layout_bounds(centers: Sequence[PixelPoint], hex_size: float) -> BoundingBox:
    """Bounding box of the hexagons drawn around ``centers``."""
    if not centers:
        raise ValueError("Cannot compute bounds of an empty layout")
    half_width = SQRT3 * hex_size / 2
    bounds = BoundingBox(math.inf, math.inf, -math.inf, -math.inf)
    for c in centers:
        bounds.min_x = min(bounds.min_x, c.x - half_width)
        bounds.max_x = max(bounds.max_x, c.x + half_width)
        bounds.min_y = min(bounds.min_y, c.y - hex_size)
        bounds.max_y = max(bounds.max_y, c.y + hex_size)
    if not all(math.isfinite(v) for v in (bounds.min_x, bounds.min_y, bounds.max_x, bounds.max_y)):
        raise ValueError("Layout bounds are not finite")
    return bounds


# ---------------------------------------------------------------------------
# Size fitting
# ---------------------------------------------------------------------------

def fit_hex_size(
    coords: Sequence[AxialCoord],
    viewport_width: float,
    viewport_height: float,
    padding: float = LAYOUT_PADDING,
    size_range: SizeRange = DEFAULT_SIZE_RANGE,
    gap_fraction: float = GAP_FRACTION,
) -> float:
    """
    Pick the largest hex size whose full layout fits the viewport.

    Candidates run from ``size_range.maximum`` down in ``size_range.step``
    decrements; the first one whose padded bounds fit both axes wins.  When
    none fits, ``size_range.minimum`` is returned and the layout overflows.
    """
    if not coords:
        raise ValueError("Cannot fit an empty layout")

    for size in size_range.candidates():
        centers = [project(c, size, gap_fraction) for c in coords]
        bounds = layout_bounds(centers, size)
        if (bounds.width + 2 * padding <= viewport_width
                and bounds.height + 2 * padding <= viewport_height):
            return size
    return size_range.minimum


# ---------------------------------------------------------------------------
# Popup placement
# ---------------------------------------------------------------------------

def place_popup(
    anchor: PixelPoint,
    hex_size: float,
    viewport_width: float,
    viewport_height: float,
    popup_width: float = POPUP_WIDTH,
    popup_height: float = POPUP_HEIGHT,
) -> PixelPoint:
    """Top-left corner of a popup anchored beside a node.

    The popup opens to the right of the node, flips to the left when it
    would cross the right edge, and is clamped to the margin on the left
    and vertically.  A viewport smaller than the popup still overflows.
    """
    left = anchor.x + hex_size + POPUP_OFFSET_X
    top = anchor.y - POPUP_OFFSET_Y

    if left + popup_width > viewport_width:
        left = anchor.x - hex_size - popup_width
    # Keeps the popup inside any viewport at least popup_width + 2 * margin wide
    if left < POPUP_MARGIN:
        left = POPUP_MARGIN

    if top < POPUP_MARGIN:
        top = POPUP_MARGIN
    if top + popup_height > viewport_height:
        top = max(POPUP_MARGIN, viewport_height - popup_height - POPUP_MARGIN)

    return PixelPoint(x=left, y=top)


# ---------------------------------------------------------------------------
# Hit testing
# ---------------------------------------------------------------------------

def point_in_hex(point: PixelPoint, center: PixelPoint, hex_size: float) -> bool:
    """True when ``point`` lies inside (or on) the hexagon around ``center``."""
    dx = abs(point.x - center.x)
    dy = abs(point.y - center.y)
    if dx > SQRT3 * hex_size / 2 or dy > hex_size:
        return False
    # Slanted edges run from (sqrt(3)/2 R, R/2) to (0, R).
    return dy <= hex_size - dx / SQRT3


def hit_test(point: PixelPoint, nodes: Iterable[LayoutNode], hex_size: float) -> Optional[LayoutNode]:
    """Return the node whose hexagon contains ``point``, if any."""
    for node in nodes:
        if point_in_hex(point, node.center, hex_size):
            return node
    return None
