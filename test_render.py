"""Rendering, YAML snapshot and MCP tool tests."""

import io
import json

import pytest
from PIL import Image

from hexmap_mcp import config, server
from hexmap_mcp.controller import LayoutController
from hexmap_mcp.hexgrid import place_popup
from hexmap_mcp.layout import build_layout
from hexmap_mcp.models import Module, PopupOpen, RenderFrame, Viewport
from hexmap_mcp.parser import modules_to_yaml, parse_file, parse_yaml
from hexmap_mcp.renderer import LayoutRenderer
from hexmap_mcp.surface import BufferedSurface, ImageSurface
from hexmap_mcp.themes import THEMES, get_theme


SNAPSHOT_YAML = """
title: Edge proxy
modules:
  - name: rate_limiter
    enabled: false
    settings:
      rps: 100
      burst: 20
  - name: cache
    enabled: true
    settings:
      max_entries: 1000
      ttl_secs: 60
  - name: server
    core: true
    settings:
      listen: "0.0.0.0:8080"
  - name: compression
    enabled: true
"""


def png_size(data):
    with Image.open(io.BytesIO(data)) as img:
        return img.size


@pytest.fixture
def modules():
    return parse_yaml(SNAPSHOT_YAML)


class TestParser:

    def test_orders_core_first_then_by_name(self, modules):
        assert [m.name for m in modules] == ["server", "cache", "compression", "rate_limiter"]

    def test_core_defaults_to_enabled(self, modules):
        server_module = modules[0]
        assert server_module.is_core
        assert server_module.enabled
        assert server_module.category == "core"

    def test_settings_kept(self, modules):
        cache = modules[1]
        assert cache.settings == {"max_entries": 1000, "ttl_secs": 60}
        assert modules[2].settings == {}

    def test_bare_list(self):
        modules = parse_yaml("- name: b\n- name: a\n  is_server: true\n")
        assert [m.name for m in modules] == ["a", "b"]
        assert modules[0].is_core

    def test_invalid_input(self):
        with pytest.raises(ValueError):
            parse_yaml("")
        with pytest.raises(ValueError):
            parse_yaml("title: nothing here\n")
        with pytest.raises(ValueError):
            parse_yaml("modules:\n  - enabled: true\n")

    def test_settings_must_be_a_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            parse_yaml("modules:\n  - name: cache\n    settings: [1, 2]\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            parse_yaml("modules:\n  - name: cache\n    settings: ttl\n")

    def test_round_trip_through_file(self, modules, tmp_path):
        path = tmp_path / "snapshot.yaml"
        path.write_text(modules_to_yaml(modules, title="Edge proxy"))
        assert parse_file(str(path)) == modules

    def test_label(self, modules):
        assert modules[3].get_label() == "rate limiter"


class TestRenderer:

    def test_layout_frame_matches_viewport(self, modules):
        state = build_layout(modules, Viewport(width=640, height=480))
        frame = RenderFrame(kind="layout", viewport=state.viewport, state=state)
        assert png_size(LayoutRenderer().render(frame)) == (640, 480)

    def test_scale(self, modules):
        state = build_layout(modules, Viewport(width=320, height=240))
        frame = RenderFrame(kind="layout", viewport=state.viewport, state=state)
        assert png_size(LayoutRenderer(scale=2.0).render(frame)) == (640, 480)

    @pytest.mark.parametrize("kind", ["empty", "loading", "unavailable", "error"])
    def test_placeholders(self, kind):
        frame = RenderFrame(kind=kind, viewport=Viewport(width=500, height=300), message="boom")
        assert png_size(LayoutRenderer().render(frame)) == (500, 300)

    def test_zero_viewport_uses_fallback_size(self):
        frame = RenderFrame(kind="loading", viewport=Viewport(width=0, height=0))
        renderer = LayoutRenderer()
        assert png_size(renderer.render(frame)) == (renderer.FALLBACK_WIDTH, renderer.FALLBACK_HEIGHT)

    @pytest.mark.parametrize("theme", sorted(THEMES))
    @pytest.mark.asyncio
    async def test_popup_and_banner_in_every_theme(self, modules, theme):
        controller = LayoutController(BufferedSurface(800, 600))
        await controller.recompute(modules, notice="Toggle failed: not found")
        controller.click_node("rate_limiter")
        png = LayoutRenderer(theme=theme).render(controller.frame)
        assert png_size(png) == (800, 600)

    @pytest.mark.asyncio
    async def test_open_popup_changes_image(self, modules):
        surface = BufferedSurface(800, 600)
        controller = LayoutController(surface)
        await controller.recompute(modules)

        renderer = LayoutRenderer()
        closed = renderer.render(surface.latest)
        controller.click_node("cache")
        opened = renderer.render(surface.latest)
        assert closed != opened

    def test_many_settings_are_clipped(self):
        big = Module(name="big", enabled=True, settings={f"key_{i:02d}": i for i in range(30)})
        state = build_layout([big], Viewport(width=800, height=600))
        node = state.nodes[0]
        popup = PopupOpen(
            module_name="big", anchor=node.center,
            position=place_popup(node.center, state.hex_size, 800, 600),
            width=280, height=300,
        )
        frame = RenderFrame(kind="layout", viewport=state.viewport, state=state.with_popup(popup))
        assert png_size(LayoutRenderer().render(frame)) == (800, 600)

    def test_unknown_theme(self):
        with pytest.raises(ValueError):
            get_theme("neon")
        with pytest.raises(ValueError):
            LayoutRenderer(theme="neon")


class TestImageSurface:

    def test_present_writes_png(self, modules, tmp_path):
        path = tmp_path / "map.png"
        surface = ImageSurface(path, 600, 400)
        state = build_layout(modules, surface.viewport())
        surface.present(RenderFrame(kind="layout", viewport=state.viewport, state=state))
        assert path.read_bytes() == surface.png
        assert png_size(surface.png) == (600, 400)


class TestTools:

    @pytest.fixture(autouse=True)
    def isolated_server(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config, "OUTPUT_DIR", tmp_path)
        monkeypatch.setattr(server, "_controller", None)

    @pytest.mark.asyncio
    async def test_render_layout_from_yaml(self, tmp_path):
        result = await server.call_tool("render_layout", {
            "yaml_modules": SNAPSHOT_YAML, "width": 700, "height": 500, "filename": "edge",
        })
        data = json.loads(result[0].text)
        assert data["status"] == "success"
        assert data["kind"] == "layout"
        assert [n["name"] for n in data["nodes"]] == ["server", "cache", "compression", "rate_limiter"]
        assert png_size((tmp_path / "edge.png").read_bytes()) == (700, 500)

    @pytest.mark.asyncio
    async def test_click_node_tool(self):
        await server.call_tool("render_layout", {"yaml_modules": SNAPSHOT_YAML, "filename": "edge"})
        result = await server.call_tool("click_node", {"name": "cache"})
        data = json.loads(result[0].text)
        assert data["popup"]["module"] == "cache"

        result = await server.call_tool("click_node", {"name": "missing"})
        assert "not on the map" in result[0].text

    @pytest.mark.asyncio
    async def test_describe_before_render(self):
        result = await server.call_tool("describe_layout", {})
        assert "render_layout first" in result[0].text

    @pytest.mark.asyncio
    async def test_bad_yaml(self):
        result = await server.call_tool("render_layout", {"yaml_modules": "title: x\n"})
        assert result[0].text.startswith("Failed to load modules")

        result = await server.call_tool("render_layout", {
            "yaml_modules": "modules:\n  - name: cache\n    settings: [ttl]\n",
        })
        assert result[0].text.startswith("Failed to load modules")
