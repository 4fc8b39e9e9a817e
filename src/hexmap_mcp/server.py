"""Hexmap-MCP server — MCP tools for viewing and editing a proxy's module map."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from . import config
from .client import AdminClient
from .controller import LayoutController
from .parser import parse_yaml
from .renderer import LayoutRenderer
from .surface import ImageSurface
from .themes import get_theme

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 960
DEFAULT_HEIGHT = 640

server = Server("hexmap-mcp")

_controller: Optional[LayoutController] = None


def _get_controller(theme: str = config.THEME, scale: float = 1.0) -> LayoutController:
    """The controller shared by all tool calls, rebuilt when the look changes."""
    global _controller
    renderer_changed = (
        _controller is not None
        and (_controller.surface.renderer.theme is not get_theme(theme)
             or _controller.surface.renderer.scale != scale)
    )
    if _controller is None or renderer_changed:
        surface = ImageSurface(
            config.OUTPUT_DIR / "hexmap.png",
            DEFAULT_WIDTH, DEFAULT_HEIGHT,
            renderer=LayoutRenderer(scale=scale, theme=theme),
        )
        previous = _controller
        _controller = LayoutController(
            surface, client=previous.client if previous is not None else AdminClient(),
        )
        if previous is not None:
            _controller.modules = previous.modules
    return _controller


def _summarize(controller: LayoutController) -> dict:
    """What was last drawn, plus where the PNG went."""
    result = {"status": "success", "path": str(controller.surface.output_path)}
    result.update(controller.describe())
    return result


def _text(data: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data))]


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="render_layout",
            description=(
                "Lay out the proxy's modules on a hexagonal map and render it to PNG. "
                "Uses a YAML module snapshot when given, otherwise fetches the live "
                "module list from the config API. Returns the PNG path and node positions."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "yaml_modules": {
                        "type": "string",
                        "description": (
                            "Optional YAML snapshot. Example:\n"
                            "modules:\n"
                            "  - name: server\n"
                            "    core: true\n"
                            "  - name: cache\n"
                            "    enabled: true\n"
                            "    settings: {ttl_secs: 60}\n"
                        ),
                    },
                    "width": {"type": "number", "description": "Surface width in px", "default": DEFAULT_WIDTH},
                    "height": {"type": "number", "description": "Surface height in px", "default": DEFAULT_HEIGHT},
                    "theme": {"type": "string", "enum": ["light", "dark"], "default": config.THEME},
                    "scale": {"type": "number", "description": "Render scale factor", "default": 1.0},
                    "filename": {
                        "type": "string",
                        "description": "Output filename (without extension). Default: auto-generated.",
                    },
                },
            },
        ),
        Tool(
            name="describe_layout",
            description="Return the current map: hex size, node positions and the open popup.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="click_node",
            description=(
                "Click a module on the map. Opens its edit popup, or closes it when "
                "it is already open. Re-renders the PNG."
            ),
            inputSchema={
                "type": "object",
                "properties": {"name": {"type": "string", "description": "Module name"}},
                "required": ["name"],
            },
        ),
        Tool(
            name="toggle_module",
            description="Enable or disable a module through the config API, then refresh the map.",
            inputSchema={
                "type": "object",
                "properties": {"name": {"type": "string", "description": "Module name"}},
                "required": ["name"],
            },
        ),
        Tool(
            name="update_module",
            description=(
                "Save edited settings for a module. Values are given as text and "
                "coerced: 'true'/'false' to booleans, digits to integers, "
                "digits.digits to floats, anything else stays a string."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Module name"},
                    "fields": {
                        "type": "object",
                        "additionalProperties": {"type": "string"},
                        "description": "Setting key -> edited text",
                    },
                },
                "required": ["name", "fields"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    if name == "render_layout":
        return await _render_layout(arguments)
    elif name == "describe_layout":
        return await _describe_layout(arguments)
    elif name == "click_node":
        return await _click_node(arguments)
    elif name == "toggle_module":
        return await _toggle_module(arguments)
    elif name == "update_module":
        return await _update_module(arguments)
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


async def _render_layout(args: dict) -> list[TextContent]:
    """Render a YAML snapshot or the live module list to PNG."""
    config.ensure_output_dir()

    try:
        controller = _get_controller(args.get("theme", config.THEME), args.get("scale", 1.0))
    except ValueError as e:
        return [TextContent(type="text", text=f"Invalid render options: {e}")]

    filename = args.get("filename", "hexmap-" + str(uuid.uuid4())[:8])
    controller.surface.output_path = config.OUTPUT_DIR / f"{filename}.png"
    controller.surface.resize(args.get("width", DEFAULT_WIDTH), args.get("height", DEFAULT_HEIGHT))

    yaml_str = args.get("yaml_modules")
    try:
        if yaml_str:
            modules = parse_yaml(yaml_str)
            await controller.recompute(modules)
        else:
            await controller.refresh()
    except ValueError as e:
        return [TextContent(type="text", text=f"Failed to load modules: {e}")]
    except Exception as e:
        logger.exception("Rendering failed")
        return [TextContent(type="text", text=f"Rendering failed: {e}")]

    return _text(_summarize(controller))


async def _describe_layout(args: dict) -> list[TextContent]:
    if _controller is None or _controller.frame is None:
        return [TextContent(type="text", text="No layout rendered yet. Call render_layout first.")]
    return _text(_summarize(_controller))


async def _click_node(args: dict) -> list[TextContent]:
    if _controller is None:
        return [TextContent(type="text", text="No layout rendered yet. Call render_layout first.")]
    try:
        _controller.click_node(args["name"])
    except ValueError as e:
        return [TextContent(type="text", text=str(e))]
    return _text(_summarize(_controller))


async def _toggle_module(args: dict) -> list[TextContent]:
    config.ensure_output_dir()
    controller = _controller or _get_controller()
    try:
        await controller.toggle(args["name"])
    except Exception as e:
        logger.exception("Toggle failed")
        return [TextContent(type="text", text=f"Toggle failed: {e}")]
    return _text(_summarize(controller))


async def _update_module(args: dict) -> list[TextContent]:
    config.ensure_output_dir()
    controller = _controller or _get_controller()
    fields = {str(k): str(v) for k, v in (args.get("fields") or {}).items()}
    try:
        await controller.save(args["name"], fields)
    except Exception as e:
        logger.exception("Update failed")
        return [TextContent(type="text", text=f"Update failed: {e}")]
    return _text(_summarize(controller))


def main():
    """Entry point for the MCP server."""
    import asyncio
    config.setup_logging()
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        try:
            await server.run(read_stream, write_stream, server.create_initialization_options())
        finally:
            if _controller is not None and _controller.client is not None:
                await _controller.client.close()


if __name__ == "__main__":
    main()
