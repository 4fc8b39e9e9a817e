"""Drawing surfaces the layout controller presents frames to.

A surface reports its current size, accepts complete frames, and provides
the "next render opportunity" the controller waits on while the surface is
still too small to draw on.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .models import RenderFrame, Viewport
from .renderer import LayoutRenderer

logger = logging.getLogger(__name__)


class Surface:
    """Base drawing surface."""

    def viewport(self) -> Viewport:
        raise NotImplementedError

    def present(self, frame: RenderFrame) -> None:
        raise NotImplementedError

    async def next_frame(self) -> None:
        """Yield to the event loop until the next render opportunity."""
        await asyncio.sleep(0)


class BufferedSurface(Surface):
    """A surface whose size is set by the host and which keeps every frame.

    ``frame_interval`` is the delay between render opportunities; 0 just
    yields to the event loop once.
    """

    def __init__(self, width: float = 0, height: float = 0, frame_interval: float = 0.0):
        self.width = width
        self.height = height
        self.frame_interval = frame_interval
        self.frames: list[RenderFrame] = []

    def viewport(self) -> Viewport:
        return Viewport(width=self.width, height=self.height)

    def resize(self, width: float, height: float) -> None:
        self.width = width
        self.height = height

    def present(self, frame: RenderFrame) -> None:
        self.frames.append(frame)

    async def next_frame(self) -> None:
        await asyncio.sleep(self.frame_interval)

    @property
    def latest(self) -> Optional[RenderFrame]:
        return self.frames[-1] if self.frames else None


class ImageSurface(BufferedSurface):
    """A buffered surface that also writes each frame to a PNG file."""

    def __init__(
        self,
        output_path: Path,
        width: float,
        height: float,
        renderer: Optional[LayoutRenderer] = None,
    ):
        super().__init__(width, height)
        self.output_path = Path(output_path)
        self.renderer = renderer or LayoutRenderer()
        self.png: bytes = b""

    def present(self, frame: RenderFrame) -> None:
        super().present(frame)
        self.png = self.renderer.render(frame, output_path=str(self.output_path))
        logger.debug(f"Wrote {frame.kind} frame to {self.output_path}")
