"""
Layout controller for Hexmap-MCP.

The controller owns the one mutable piece of the system: the current
``LayoutState``.  Everything it draws is rebuilt from scratch by
``build_layout`` whenever the module list is refetched, the surface is
resized while the map is active, or the map becomes active again.

Popup handling is a two-state machine:

    Idle ──click_node(a)──▶ PopupOpen(a)
    PopupOpen(a) ──click_node(a)──▶ Idle
    PopupOpen(a) ──click_node(b)──▶ PopupOpen(b)
    any ──click_outside() / recompute()──▶ Idle

Recomputes run on a single asyncio loop.  The only suspension point inside
one is the wait for the surface to report a usable size; each recompute is
tagged with a generation number and a wait that wakes up behind a newer
recompute is dropped without presenting anything.  A refresh takes its
generation before fetching, so an older fetch that returns late is dropped
too.  Clicks that arrive while either is in flight are ignored.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional, Sequence

from .client import AdminAPIError, AdminClient
from .hexgrid import (
    DEFAULT_SIZE_RANGE,
    LAYOUT_PADDING,
    POPUP_HEIGHT,
    POPUP_WIDTH,
    SizeRange,
    hit_test,
    place_popup,
)
from .layout import build_layout
from .models import (
    LayoutState,
    Module,
    PixelPoint,
    PopupClosed,
    PopupOpen,
    PopupState,
    RenderFrame,
    Viewport,
)
from .surface import Surface

logger = logging.getLogger(__name__)

VIEWPORT_READY_MIN = 50
VIEWPORT_MAX_ATTEMPTS = 20

_INT_RE = re.compile(r"\d+", re.ASCII)
_FLOAT_RE = re.compile(r"\d+\.\d+", re.ASCII)


def coerce_field_value(text: str) -> Any:
    """Turn edited field text into a bool, int, float, or leave it a string."""
    if text == "true":
        return True
    if text == "false":
        return False
    if _INT_RE.fullmatch(text):
        return int(text)
    if _FLOAT_RE.fullmatch(text):
        return float(text)
    return text


def coerce_fields(fields: Mapping[str, str]) -> dict[str, Any]:
    return {key: coerce_field_value(value) for key, value in fields.items()}


class LayoutController:
    """Builds, holds and presents the hex map for one surface."""

    def __init__(
        self,
        surface: Surface,
        client: Optional[AdminClient] = None,
        padding: float = LAYOUT_PADDING,
        size_range: SizeRange = DEFAULT_SIZE_RANGE,
        popup_width: float = POPUP_WIDTH,
        popup_height: float = POPUP_HEIGHT,
        ready_threshold: float = VIEWPORT_READY_MIN,
        max_attempts: int = VIEWPORT_MAX_ATTEMPTS,
    ):
        self.surface = surface
        self.client = client
        self.padding = padding
        self.size_range = size_range
        self.popup_width = popup_width
        self.popup_height = popup_height
        self.ready_threshold = ready_threshold
        self.max_attempts = max_attempts

        self.modules: list[Module] = []
        self.state: Optional[LayoutState] = None
        self.frame: Optional[RenderFrame] = None
        self.active = True
        self._generation = 0
        # Generation of the refresh or recompute still in flight, if any
        self._pending: Optional[int] = None

    # --- Introspection ---

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        """True while a refresh or recompute has not presented its frame yet."""
        return self._pending is not None

    @property
    def popup(self) -> PopupState:
        return self.state.popup if self.state is not None else PopupClosed()

    @property
    def open_module(self) -> Optional[str]:
        popup = self.popup
        return popup.module_name if isinstance(popup, PopupOpen) else None

    def describe(self) -> dict:
        """JSON-friendly description of what was last presented."""
        frame = self.frame
        result: dict = {
            "kind": frame.kind if frame else None,
            "message": frame.message if frame else None,
            "generation": self._generation,
            "active": self.active,
            "pending": self.pending,
        }
        state = self.state
        if state is None:
            return result
        result["hex_size"] = state.hex_size
        result["viewport"] = {"width": state.viewport.width, "height": state.viewport.height}
        result["nodes"] = [
            {
                "name": node.name,
                "q": node.coord.q,
                "r": node.coord.r,
                "x": round(node.center.x, 1),
                "y": round(node.center.y, 1),
                "status": node.category,
            }
            for node in state.nodes
        ]
        popup = state.popup
        result["popup"] = (
            {
                "module": popup.module_name,
                "left": popup.position.x,
                "top": popup.position.y,
                "width": popup.width,
                "height": popup.height,
            }
            if isinstance(popup, PopupOpen) else None
        )
        return result

    # --- Recompute ---

    async def recompute(
        self,
        modules: Optional[Sequence[Module]] = None,
        notice: Optional[str] = None,
    ) -> Optional[RenderFrame]:
        """Rebuild the layout from the current modules and surface size.

        Returns the presented frame, or None when a newer recompute took
        over while this one was waiting for the surface.
        """
        if modules is not None:
            self.modules = list(modules)
        generation = self._begin()
        logger.debug(f"Recompute #{generation} for {len(self.modules)} modules")

        # Any open popup is invalidated straight away
        if self.state is not None and self.state.popup.is_open:
            self.state = self.state.with_popup(PopupClosed())

        try:
            return await self._recompute(generation, notice)
        finally:
            self._finish(generation)

    async def _recompute(self, generation: int, notice: Optional[str]) -> Optional[RenderFrame]:
        if not self.modules:
            self.state = None
            return self._present(RenderFrame(
                kind="empty", viewport=self.surface.viewport(),
                message=notice, generation=generation,
            ))

        viewport = await self._wait_for_viewport(generation)
        if generation != self._generation:
            logger.debug(f"Dropping stale recompute #{generation}")
            return None

        if viewport is None:
            logger.warning(
                f"Surface not ready after {self.max_attempts} attempts, giving up"
            )
            self.state = None
            return self._present(RenderFrame(
                kind="unavailable", viewport=self.surface.viewport(),
                message=notice, generation=generation,
            ))

        try:
            state = build_layout(
                self.modules, viewport,
                padding=self.padding, size_range=self.size_range,
            )
        except Exception as e:
            logger.error(f"Hex grid error: {e}")
            message = f"Hex grid error: {e}"
            if self.state is not None:
                return self._present(RenderFrame(
                    kind="layout", viewport=self.state.viewport, state=self.state,
                    message=message, generation=generation,
                ))
            return self._present(RenderFrame(
                kind="error", viewport=viewport, message=message, generation=generation,
            ))

        self.state = state
        return self._present(RenderFrame(
            kind="layout", viewport=viewport, state=state,
            message=notice, generation=generation,
        ))

    async def _wait_for_viewport(self, generation: int) -> Optional[Viewport]:
        """Poll the surface until it is big enough, at most ``max_attempts`` retries."""
        for attempt in range(self.max_attempts + 1):
            if generation != self._generation:
                return None
            viewport = self.surface.viewport()
            if viewport.is_ready(self.ready_threshold):
                return viewport
            if attempt == self.max_attempts:
                break
            if attempt == 0:
                self._present(RenderFrame(
                    kind="loading", viewport=viewport, generation=generation,
                ))
            logger.debug(
                f"Surface {viewport.width:.0f}x{viewport.height:.0f} not ready "
                f"(attempt {attempt + 1}/{self.max_attempts})"
            )
            await self.surface.next_frame()
        return None

    def _begin(self) -> int:
        """Start a new generation; everything older becomes stale."""
        self._generation += 1
        self._pending = self._generation
        return self._generation

    def _finish(self, generation: int) -> None:
        if self._pending == generation:
            self._pending = None

    def _present(self, frame: RenderFrame) -> RenderFrame:
        self.frame = frame
        self.surface.present(frame)
        return frame

    # --- Visibility and resize ---

    async def activate(self) -> Optional[RenderFrame]:
        self.active = True
        return await self.recompute()

    def deactivate(self) -> None:
        """Hide the map; pending surface waits are abandoned."""
        self.active = False
        self._generation += 1
        self._pending = None

    async def resize(self) -> Optional[RenderFrame]:
        """Surface size changed; only an active map is rebuilt."""
        if not self.active:
            return None
        return await self.recompute()

    # --- Popup state machine ---

    def click_node(self, name: str) -> PopupState:
        if self._ignore_click():
            return self.popup
        state = self._require_state()
        node = state.get_node(name)
        if node is None:
            raise ValueError(f"Module '{name}' is not on the map")

        if self.open_module == name:
            popup: PopupState = PopupClosed()
        else:
            position = place_popup(
                node.center, state.hex_size,
                state.viewport.width, state.viewport.height,
                self.popup_width, self.popup_height,
            )
            popup = PopupOpen(
                module_name=name, anchor=node.center, position=position,
                width=self.popup_width, height=self.popup_height,
            )
        self._set_popup(popup)
        return popup

    def click_outside(self) -> PopupState:
        if self._ignore_click():
            return self.popup
        if self.state is not None and self.state.popup.is_open:
            self._set_popup(PopupClosed())
        return self.popup

    def click_at(self, x: float, y: float) -> PopupState:
        """Route a click at surface coordinates to a node or the background."""
        if self.state is None:
            return PopupClosed()
        if self._ignore_click():
            return self.popup
        point = PixelPoint(x=x, y=y)
        popup = self.state.popup
        if isinstance(popup, PopupOpen) and popup.contains(point):
            return popup
        node = hit_test(point, self.state.nodes, self.state.hex_size)
        if node is None:
            return self.click_outside()
        return self.click_node(node.name)

    def _ignore_click(self) -> bool:
        """True while a rebuild is in flight."""
        if self._pending is None:
            return False
        logger.debug(f"Ignoring click while #{self._pending} is pending")
        return True

    def _set_popup(self, popup: PopupState) -> None:
        self.state = self._require_state().with_popup(popup)
        message = self.frame.message if self.frame is not None and self.frame.kind == "layout" else None
        self._present(RenderFrame(
            kind="layout", viewport=self.state.viewport, state=self.state,
            message=message, generation=self._generation,
        ))

    def _require_state(self) -> LayoutState:
        if self.state is None:
            raise ValueError("No layout has been computed yet")
        return self.state

    # --- External edits ---

    async def refresh(self, notice: Optional[str] = None) -> Optional[RenderFrame]:
        """Refetch modules from the config API and rebuild the map."""
        client = self._require_client()
        generation = self._begin()
        modules: Optional[list[Module]] = None
        try:
            modules = await client.fetch_modules()
        except AdminAPIError as e:
            logger.warning(f"Fetching modules failed: {e}")
            notice = f"Config fetch failed: {e}"
        finally:
            self._finish(generation)

        if generation != self._generation:
            logger.debug(f"Dropping stale fetch #{generation}")
            return None
        return await self.recompute(modules, notice=notice)

    async def toggle(self, name: str) -> Optional[RenderFrame]:
        """Flip a module on the server, then show whatever the server reports."""
        client = self._require_client()
        notice = None
        try:
            await client.toggle_module(name)
        except (AdminAPIError, ValueError) as e:
            logger.warning(f"Toggle of {name} failed: {e}")
            notice = f"Toggle failed: {e}"
        return await self.refresh(notice=notice)

    async def save(self, name: str, fields: Mapping[str, str]) -> Optional[RenderFrame]:
        """Coerce edited field text, send it, then refetch."""
        client = self._require_client()
        notice = None
        try:
            await client.update_module(name, coerce_fields(fields))
        except (AdminAPIError, ValueError) as e:
            logger.warning(f"Update of {name} failed: {e}")
            notice = f"Save failed: {e}"
        return await self.refresh(notice=notice)

    def _require_client(self) -> AdminClient:
        if self.client is None:
            raise ValueError("No config API client configured")
        return self.client
