"""Tests for hex position generation, projection, size fitting and popup placement."""

import math

import pytest

from hexmap_mcp.hexgrid import (
    HEX_SIZE_MAX,
    HEX_SIZE_MIN,
    POPUP_HEIGHT,
    POPUP_WIDTH,
    SizeRange,
    fit_hex_size,
    generate_positions,
    hex_corners,
    hex_ring,
    hit_test,
    layout_bounds,
    place_popup,
    point_in_hex,
    project,
)
from hexmap_mcp.layout import build_layout
from hexmap_mcp.models import AxialCoord, LayoutNode, Module, PixelPoint, Viewport


def ax(q, r):
    return AxialCoord(q=q, r=r)


def pairs(coords):
    return [(c.q, c.r) for c in coords]


class TestPositions:

    def test_single_position_is_origin(self):
        assert pairs(generate_positions(1)) == [(0, 0)]

    def test_rejects_non_positive_count(self):
        with pytest.raises(ValueError):
            generate_positions(0)

    @pytest.mark.parametrize("count", [1, 2, 6, 7, 8, 19, 20, 37, 100])
    def test_count_distinct_and_origin_first(self, count):
        positions = generate_positions(count)
        assert len(positions) == count
        assert len(set(positions)) == count
        assert positions[0] == ax(0, 0)

    @pytest.mark.parametrize("radius", [1, 2, 3, 4, 7])
    def test_ring_has_six_times_radius_coords(self, radius):
        ring = hex_ring(radius)
        assert len(ring) == 6 * radius
        assert len(set(ring)) == 6 * radius
        assert all(c.ring == radius for c in ring)

    def test_rings_fill_in_order(self):
        rings = [c.ring for c in generate_positions(61)]
        assert rings == sorted(rings)
        assert rings.count(1) == 6
        assert rings.count(2) == 12
        assert rings.count(3) == 18
        assert rings.count(4) == 24

    def test_seven_modules_use_exactly_ring_one(self):
        positions = generate_positions(7)
        assert pairs(positions) == [
            (0, 0), (1, 0), (1, -1), (0, 1), (0, -1), (-1, 0), (-1, 1),
        ]
        assert not any(c.ring == 2 for c in positions)

    def test_partial_ring_takes_highest_q_first(self):
        positions = generate_positions(10)
        assert pairs(positions[7:]) == [(2, 0), (2, -1), (2, -2)]

    def test_ring_two_order(self):
        positions = generate_positions(19)
        assert pairs(positions[7:]) == [
            (2, 0), (2, -1), (2, -2),
            (1, 1), (1, -2),
            (0, 2), (0, -2),
            (-1, -1), (-1, 2),
            (-2, 0), (-2, 1), (-2, 2),
        ]

    def test_deterministic(self):
        assert generate_positions(25) == generate_positions(25)
        assert generate_positions(25)[:13] == generate_positions(13)


class TestProjection:

    def test_origin_projects_to_zero(self):
        p = project(ax(0, 0), 30)
        assert (p.x, p.y) == (0, 0)

    def test_neighbour_spacing_includes_gap(self):
        p = project(ax(1, 0), 10)
        assert p.x == pytest.approx(11.8 * math.sqrt(3))
        assert p.y == pytest.approx(0)

        p = project(ax(0, 1), 10)
        assert p.x == pytest.approx(11.8 * math.sqrt(3) / 2)
        assert p.y == pytest.approx(17.7)

    def test_injective(self):
        coords = generate_positions(91)
        points = {(round(p.x, 6), round(p.y, 6)) for p in (project(c, 20) for c in coords)}
        assert len(points) == len(coords)

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            project(ax(1, 1), 0)

    def test_corners_sit_on_circumradius(self):
        center = PixelPoint(x=50, y=60)
        for x, y in hex_corners(center, 20):
            assert math.hypot(x - 50, y - 60) == pytest.approx(20)


class TestSizeFitter:

    def test_single_node_gets_largest_size(self):
        assert fit_hex_size([ax(0, 0)], 1000, 1000, padding=80) == HEX_SIZE_MAX

    def test_nothing_fits_falls_back_to_minimum(self):
        assert fit_hex_size(generate_positions(50), 100, 100, padding=80) == HEX_SIZE_MIN

    def test_first_fit_decreasing(self):
        coords = generate_positions(7)
        size = fit_hex_size(coords, 400, 400, padding=80)
        assert size == 40

        bounds = layout_bounds([project(c, size) for c in coords], size)
        assert bounds.width + 160 <= 400
        assert bounds.height + 160 <= 400

        bigger = size + 2
        bounds = layout_bounds([project(c, bigger) for c in coords], bigger)
        assert bounds.width + 160 > 400 or bounds.height + 160 > 400

    @pytest.mark.parametrize("count", [1, 3, 7, 12, 19, 40])
    @pytest.mark.parametrize("viewport", [(60, 60), (320, 240), (800, 600), (1920, 1080)])
    def test_always_in_range(self, count, viewport):
        size = fit_hex_size(generate_positions(count), *viewport)
        assert HEX_SIZE_MIN <= size <= HEX_SIZE_MAX

    def test_custom_range(self):
        size_range = SizeRange(minimum=10, maximum=20, step=5)
        assert size_range.candidates() == [20, 15, 10]
        assert fit_hex_size([ax(0, 0)], 2000, 2000, size_range=size_range) == 20
        assert fit_hex_size([ax(0, 0)], 10, 10, size_range=size_range) == 10

    def test_range_must_be_ordered(self):
        with pytest.raises(ValueError):
            SizeRange(minimum=30, maximum=30)
        with pytest.raises(ValueError):
            SizeRange(minimum=0, maximum=30)
        with pytest.raises(ValueError):
            SizeRange(minimum=10, maximum=30, step=0)


class TestPopupPlacer:

    def test_default_opens_right_of_node(self):
        pos = place_popup(PixelPoint(x=200, y=300), 40, 1000, 800)
        assert (pos.x, pos.y) == (264, 250)

    def test_flips_left_near_right_edge(self):
        anchor = PixelPoint(x=700, y=300)
        pos = place_popup(anchor, 40, 800, 600)
        assert pos.x == 700 - 40 - POPUP_WIDTH
        assert pos.x + POPUP_WIDTH <= anchor.x

    def test_flip_past_left_edge_pins_to_margin(self):
        pos = place_popup(PixelPoint(x=150, y=200), 20, 300, 400, 280, 300)
        assert pos.x == 10
        assert pos.x + POPUP_WIDTH <= 300

    def test_clamps_top(self):
        pos = place_popup(PixelPoint(x=100, y=20), 30, 1000, 800)
        assert pos.y == 10

    def test_clamps_bottom(self):
        pos = place_popup(PixelPoint(x=100, y=590), 30, 1000, 600)
        assert pos.y == 600 - POPUP_HEIGHT - 10

    def test_viewport_smaller_than_popup_pins_to_margin(self):
        pos = place_popup(PixelPoint(x=50, y=50), 20, 200, 200)
        assert pos.y == 10

    @pytest.mark.parametrize("viewport", [
        (POPUP_WIDTH + 20, POPUP_HEIGHT + 20),
        (640, 480),
        (1280, 720),
    ])
    def test_stays_inside_viewport(self, viewport):
        vw, vh = viewport
        for size in (18, 30, 56):
            for i in range(11):
                for j in range(11):
                    anchor = PixelPoint(x=vw * i / 10, y=vh * j / 10)
                    pos = place_popup(anchor, size, vw, vh)
                    assert 0 <= pos.x and pos.x + POPUP_WIDTH <= vw, (anchor, size)
                    assert 0 <= pos.y and pos.y + POPUP_HEIGHT <= vh, (anchor, size)


class TestHitTest:

    def test_point_in_hex(self):
        center = PixelPoint(x=100, y=100)
        assert point_in_hex(PixelPoint(x=100, y=100), center, 20)
        assert point_in_hex(PixelPoint(x=117, y=100), center, 20)
        assert not point_in_hex(PixelPoint(x=117.5, y=100), center, 20)
        assert point_in_hex(PixelPoint(x=100, y=119), center, 20)
        assert not point_in_hex(PixelPoint(x=110, y=115), center, 20)

    def test_hit_test_finds_node(self):
        nodes = [
            LayoutNode(module=Module(name="a"), coord=ax(0, 0), center=PixelPoint(x=100, y=100)),
            LayoutNode(module=Module(name="b"), coord=ax(1, 0), center=PixelPoint(x=150, y=100)),
        ]
        assert hit_test(PixelPoint(x=152, y=98), nodes, 20).name == "b"
        assert hit_test(PixelPoint(x=125, y=140), nodes, 20) is None


class TestBuildLayout:

    def modules(self, n):
        return [Module(name="server", is_core=True, enabled=True)] + [
            Module(name=f"mod_{i:02d}", enabled=i % 2 == 0) for i in range(n - 1)
        ]

    def test_invariants(self):
        modules = self.modules(12)
        state = build_layout(modules, Viewport(width=900, height=700))
        assert len(state.nodes) == len(modules)
        assert state.nodes[0].coord == ax(0, 0)
        assert state.nodes[0].name == "server"
        assert HEX_SIZE_MIN <= state.hex_size <= HEX_SIZE_MAX
        assert not state.popup.is_open
        assert [n.name for n in state.nodes] == [m.name for m in modules]

    def test_layout_is_centred(self):
        state = build_layout(self.modules(7), Viewport(width=900, height=700))
        bounds = layout_bounds([n.center for n in state.nodes], state.hex_size)
        assert bounds.center.x == pytest.approx(450)
        assert bounds.center.y == pytest.approx(350)

    def test_categories(self):
        state = build_layout(self.modules(3), Viewport(width=900, height=700))
        assert [n.category for n in state.nodes] == ["core", "on", "off"]

    def test_rejects_empty_and_duplicates(self):
        with pytest.raises(ValueError):
            build_layout([], Viewport(width=900, height=700))
        with pytest.raises(ValueError):
            build_layout([Module(name="a"), Module(name="a")], Viewport(width=900, height=700))
