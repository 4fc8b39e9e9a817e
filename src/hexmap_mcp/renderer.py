"""Hex map renderer using Pillow — draws a RenderFrame as a PNG."""

from __future__ import annotations

import math
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from .hexgrid import hex_corners
from .models import LayoutNode, LayoutState, PopupOpen, RenderFrame
from .themes import ThemePalette, get_theme


# --- Font handling ---

def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font, falling back to default if none available."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return ImageFont.load_default()


def _load_bold_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold font, falling back to regular."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return _load_font(size)


# --- Color helpers ---

def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert hex color to RGB tuple. Supports both 3-char and 6-char hex."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = hex_color[0]*2 + hex_color[1]*2 + hex_color[2]*2
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def _hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Convert hex color to RGBA tuple."""
    r, g, b = _hex_to_rgb(hex_color)
    return (r, g, b, alpha)


# --- Drawing primitives ---

def _text_size(font, text: str) -> tuple[float, float]:
    bbox = font.getbbox(text)
    return (bbox[2] - bbox[0], bbox[3] - bbox[1])


def _fit_text(text: str, font, max_width: float) -> str:
    """Trim ``text`` with an ellipsis until it fits ``max_width`` pixels."""
    if _text_size(font, text)[0] <= max_width:
        return text
    while len(text) > 1 and _text_size(font, text + "…")[0] > max_width:
        text = text[:-1]
    return text + "…"


def _draw_dashed_line(
    draw: ImageDraw.ImageDraw,
    start: tuple[float, float],
    end: tuple[float, float],
    fill,
    width: int = 1,
    dash: tuple[float, float] = (4, 3),
):
    """Draw a dashed straight line (``dash`` = on length, off length)."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.sqrt(dx * dx + dy * dy)
    if length == 0:
        return
    ux = dx / length
    uy = dy / length

    on, off = dash
    pos = 0.0
    while pos < length:
        seg_end = min(pos + on, length)
        draw.line(
            [(start[0] + ux * pos, start[1] + uy * pos),
             (start[0] + ux * seg_end, start[1] + uy * seg_end)],
            fill=fill,
            width=width,
        )
        pos += on + off


# --- Main renderer ---

class LayoutRenderer:
    """Renders a RenderFrame to a PNG image.

    The image always matches the frame's viewport (times ``scale``); every
    call is a full redraw.
    """

    # Fallback image size when the viewport is not usable yet
    FALLBACK_WIDTH = 400
    FALLBACK_HEIGHT = 300

    # Node text
    LABEL_SIZE = 11
    STATUS_SIZE = 8

    # Connectors
    LINE_WIDTH = 1.5
    LINE_DASH = (4, 3)

    # Popup panel
    POPUP_PADDING = 20
    POPUP_RADIUS = 12
    POPUP_TITLE_SIZE = 14
    POPUP_TEXT_SIZE = 13
    POPUP_FIELD_LABEL_SIZE = 11
    POPUP_SECTION_GAP = 14
    TOGGLE_WIDTH = 40
    TOGGLE_HEIGHT = 22
    FIELD_LABEL_HEIGHT = 14
    FIELD_INPUT_HEIGHT = 26
    FIELD_GAP = 8
    BUTTON_HEIGHT = 28
    BUTTON_WIDTH = 72

    def __init__(self, scale: float = 1.0, theme: str = "light"):
        self.scale = scale
        self.theme: ThemePalette = get_theme(theme)
        self.font_label = _load_bold_font(int(self.LABEL_SIZE * scale))
        self.font_status = _load_bold_font(int(self.STATUS_SIZE * scale))
        self.font_title = _load_bold_font(int(self.POPUP_TITLE_SIZE * scale))
        self.font_body = _load_font(int(self.POPUP_TEXT_SIZE * scale))
        self.font_small = _load_font(int(self.POPUP_FIELD_LABEL_SIZE * scale))

    def render(self, frame: RenderFrame, output_path: Optional[str] = None) -> bytes:
        """Render the frame to PNG bytes. Optionally save to file."""
        width, height = frame.viewport.width, frame.viewport.height
        if width < 1 or height < 1:
            width, height = self.FALLBACK_WIDTH, self.FALLBACK_HEIGHT
        img_width = max(1, int(width * self.scale))
        img_height = max(1, int(height * self.scale))

        img = Image.new("RGBA", (img_width, img_height), _hex_to_rgba(self.theme.background))

        if frame.kind == "layout" and frame.state is not None:
            img = self._draw_layout(img, frame.state)
            if frame.message:
                self._draw_banner(ImageDraw.Draw(img), frame.message, img_width)
        else:
            self._draw_placeholder(ImageDraw.Draw(img), frame, img_width, img_height)

        buf = BytesIO()
        img.save(buf, format="PNG", optimize=True)
        png_bytes = buf.getvalue()

        if output_path:
            Path(output_path).write_bytes(png_bytes)

        return png_bytes

    # --- Layout ---

    def _draw_layout(self, img: Image.Image, state: LayoutState) -> Image.Image:
        # Connectors go on their own layer so their opacity blends correctly
        lines = Image.new("RGBA", img.size, (0, 0, 0, 0))
        self._draw_connections(ImageDraw.Draw(lines), state)
        img = Image.alpha_composite(img, lines)

        draw = ImageDraw.Draw(img)
        for node in state.nodes:
            self._draw_node(draw, node, state.hex_size)

        if isinstance(state.popup, PopupOpen):
            node = state.get_node(state.popup.module_name)
            if node is not None:
                self._draw_popup(draw, node, state.popup)
        return img

    def _draw_connections(self, draw: ImageDraw.ImageDraw, state: LayoutState):
        """Dashed line from the origin node to every other node."""
        s = self.scale
        origin = state.nodes[0].center
        start = (origin.x * s, origin.y * s)
        width = max(1, round(self.LINE_WIDTH * s))
        dash = (self.LINE_DASH[0] * s, self.LINE_DASH[1] * s)
        for node in state.nodes[1:]:
            style = self.theme.node_style("on" if node.module.enabled else "off")
            end = (node.center.x * s, node.center.y * s)
            _draw_dashed_line(
                draw, start, end,
                fill=_hex_to_rgba(style.line_color, self.theme.line_alpha),
                width=width, dash=dash,
            )

    def _draw_node(self, draw: ImageDraw.ImageDraw, node: LayoutNode, hex_size: float):
        s = self.scale
        style = self.theme.node_style(node.category)
        corners = [(x * s, y * s) for x, y in hex_corners(node.center, hex_size)]
        draw.polygon(corners, fill=style.fill_color)

        cx = node.center.x * s
        cy = node.center.y * s
        max_width = math.sqrt(3) * hex_size * s * 0.85

        label = _fit_text(node.module.get_label(), self.font_label, max_width)
        lw, lh = _text_size(self.font_label, label)
        draw.text((cx - lw / 2, cy - lh * 0.55 - lh / 2), label,
                  fill=style.label_color, font=self.font_label)

        status = node.category.upper()
        sw, sh = _text_size(self.font_status, status)
        draw.text((cx - sw / 2, cy + hex_size * s * 0.64 - sh), status,
                  fill=style.label_color, font=self.font_status)

    # --- Popup ---

    def _draw_popup(self, draw: ImageDraw.ImageDraw, node: LayoutNode, popup: PopupOpen):
        """Edit panel: title, enable toggle, one input per setting, Save/Cancel."""
        s = self.scale
        t = self.theme
        module = node.module
        pad = self.POPUP_PADDING * s
        gap = self.POPUP_SECTION_GAP * s

        x1 = popup.position.x * s
        y1 = popup.position.y * s
        x2 = x1 + popup.width * s
        y2 = y1 + popup.height * s
        draw.rounded_rectangle(
            [x1, y1, x2, y2], radius=int(self.POPUP_RADIUS * s),
            fill=t.popup_fill, outline=t.popup_border, width=max(1, int(s)),
        )

        inner_w = x2 - x1 - 2 * pad
        y = y1 + pad
        title = _fit_text(module.name, self.font_title, inner_w)
        draw.text((x1 + pad, y), title, fill=t.text_color, font=self.font_title)
        y += _text_size(self.font_title, title)[1] + gap

        if not module.is_core:
            draw.text((x1 + pad, y + 3 * s), "Enabled", fill=t.muted_text_color, font=self.font_body)
            self._draw_toggle(draw, x2 - pad - self.TOGGLE_WIDTH * s, y, module.enabled)
            y += self.TOGGLE_HEIGHT * s + gap
            draw.line([(x1 + pad, y), (x2 - pad, y)], fill=t.popup_border, width=1)
            y += gap

        keys = sorted(module.settings)
        row_h = (self.FIELD_LABEL_HEIGHT + self.FIELD_INPUT_HEIGHT + self.FIELD_GAP) * s
        buttons_top = y2 - pad - self.BUTTON_HEIGHT * s
        room = max(0, int((buttons_top - gap - y) // row_h)) if row_h > 0 else 0
        shown = keys if len(keys) <= room else keys[:max(0, room - 1)]

        for key in shown:
            draw.text((x1 + pad, y), key.upper(), fill=t.muted_text_color, font=self.font_small)
            y += self.FIELD_LABEL_HEIGHT * s
            draw.rounded_rectangle(
                [x1 + pad, y, x2 - pad, y + self.FIELD_INPUT_HEIGHT * s],
                radius=int(6 * s), fill=t.input_fill, outline=t.input_border, width=1,
            )
            value = _fit_text(str(module.settings[key]), self.font_body, inner_w - 20 * s)
            draw.text((x1 + pad + 10 * s, y + 6 * s), value, fill=t.text_color, font=self.font_body)
            y += (self.FIELD_INPUT_HEIGHT + self.FIELD_GAP) * s

        hidden = len(keys) - len(shown)
        if hidden:
            draw.text((x1 + pad, y), f"+{hidden} more", fill=t.muted_text_color, font=self.font_small)

        bx = x1 + pad
        if keys:
            self._draw_button(draw, bx, buttons_top, "Save", primary=True)
            bx += (self.BUTTON_WIDTH + 10) * s
        self._draw_button(draw, bx, buttons_top, "Cancel", primary=False)

    def _draw_toggle(self, draw: ImageDraw.ImageDraw, x: float, y: float, on: bool):
        s = self.scale
        t = self.theme
        w = self.TOGGLE_WIDTH * s
        h = self.TOGGLE_HEIGHT * s
        draw.rounded_rectangle([x, y, x + w, y + h], radius=int(h / 2),
                               fill=t.toggle_on if on else t.toggle_off)
        knob = 16 * s
        kx = x + (20 * s if on else 2 * s)
        ky = y + 3 * s
        draw.ellipse([kx, ky, kx + knob, ky + knob], fill="#ffffff")

    def _draw_button(self, draw: ImageDraw.ImageDraw, x: float, y: float, text: str, primary: bool):
        s = self.scale
        t = self.theme
        w = self.BUTTON_WIDTH * s
        h = self.BUTTON_HEIGHT * s
        draw.rounded_rectangle(
            [x, y, x + w, y + h], radius=int(8 * s),
            fill=t.accent if primary else t.popup_fill,
            outline=t.accent if primary else t.popup_border, width=1,
        )
        tw, th = _text_size(self.font_body, text)
        draw.text((x + (w - tw) / 2, y + (h - th) / 2 - 2 * s), text,
                  fill=t.accent_text if primary else t.text_color, font=self.font_body)

    # --- Placeholders and errors ---

    def _draw_placeholder(self, draw: ImageDraw.ImageDraw, frame: RenderFrame, img_width: int, img_height: int):
        viewport = frame.viewport
        if frame.kind == "empty":
            text, color = "No config loaded", self.theme.muted_text_color
        elif frame.kind == "loading":
            text = f"Loading grid (canvas: {viewport.width:.0f}x{viewport.height:.0f})..."
            color = self.theme.muted_text_color
        elif frame.kind == "unavailable":
            text, color = "Hex grid unavailable: canvas has no usable size", self.theme.muted_text_color
        else:
            text, color = frame.message or "Hex grid error", self.theme.error_color

        text = _fit_text(text, self.font_body, img_width - 40 * self.scale)
        tw, th = _text_size(self.font_body, text)
        draw.text(((img_width - tw) / 2, (img_height - th) / 2), text, fill=color, font=self.font_body)

        if frame.message and frame.kind != "error":
            self._draw_banner(draw, frame.message, img_width)

    def _draw_banner(self, draw: ImageDraw.ImageDraw, message: str, img_width: int):
        """Inline error text across the top of the map."""
        s = self.scale
        text = _fit_text(message, self.font_body, img_width - 40 * s)
        draw.text((20 * s, 20 * s), text, fill=self.theme.error_color, font=self.font_body)
