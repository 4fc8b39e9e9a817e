"""Pure layout pass: modules + viewport -> LayoutState."""

from __future__ import annotations

import logging
from typing import Sequence

from .hexgrid import (
    DEFAULT_SIZE_RANGE,
    GAP_FRACTION,
    LAYOUT_PADDING,
    SizeRange,
    fit_hex_size,
    generate_positions,
    layout_bounds,
    project,
)
from .models import LayoutNode, LayoutState, Module, PixelPoint, PopupClosed, Viewport

logger = logging.getLogger(__name__)


def build_layout(
    modules: Sequence[Module],
    viewport: Viewport,
    padding: float = LAYOUT_PADDING,
    size_range: SizeRange = DEFAULT_SIZE_RANGE,
    gap_fraction: float = GAP_FRACTION,
) -> LayoutState:
    """Lay out ``modules`` on a hex map centred in ``viewport``.

    Module order is kept: ``modules[0]`` lands on the origin hexagon.  The
    returned state always has its popup closed.
    """
    if not modules:
        raise ValueError("Cannot lay out an empty module list")

    names = [m.name for m in modules]
    if len(set(names)) != len(names):
        raise ValueError(f"Module names must be unique: {names}")

    coords = generate_positions(len(modules))
    hex_size = fit_hex_size(
        coords, viewport.width, viewport.height,
        padding=padding, size_range=size_range, gap_fraction=gap_fraction,
    )

    projected = [project(c, hex_size, gap_fraction) for c in coords]
    bounds = layout_bounds(projected, hex_size)

    # Shift so the bounding box centre sits on the viewport centre
    center = bounds.center
    dx = viewport.width / 2 - center.x
    dy = viewport.height / 2 - center.y

    nodes = tuple(
        LayoutNode(module=module, coord=coord, center=point.offset(dx, dy))
        for module, coord, point in zip(modules, coords, projected)
    )
    logger.debug(
        "Laid out %d modules at R=%s in %.0fx%.0f",
        len(nodes), hex_size, viewport.width, viewport.height,
    )
    return LayoutState(
        nodes=nodes,
        hex_size=hex_size,
        viewport=viewport,
        offset=PixelPoint(x=dx, y=dy),
        popup=PopupClosed(),
    )
