"""Tests for edge geometry: boundary offsets, routing, curvature and hit-testing."""
from __future__ import annotations

import math

import pytest

from ideamesh.geometry import (
    boundary_offset,
    control_point,
    has_reciprocal,
    node_contains,
    reciprocal_curvature,
    route_edge,
    route_path_data,
)
from ideamesh.types import Edge, Node, Point


def make_node(**overrides) -> Node:
    """Helper to build a node at the origin."""
    defaults = dict(id="A", title="A", content="", x=0, y=0)
    defaults.update(overrides)
    return Node(**defaults)


def make_edge(**overrides) -> Edge:
    defaults = dict(id="e1", source="A", target="B", label="related to")
    defaults.update(overrides)
    return Edge(**defaults)


# ============================================================================
# Boundary offsets
# ============================================================================


class TestBoundaryOffset:
    def test_circle_horizontal_is_half_width(self):
        assert boundary_offset("circle", 1, 0) == pytest.approx(90)

    def test_circle_vertical_is_half_height(self):
        assert boundary_offset("circle", 0, -1) == pytest.approx(60)

    def test_circle_diagonal_lies_on_ellipse(self):
        u = 1 / math.sqrt(2)
        t = boundary_offset("circle", u, u)
        x, y = u * t, u * t
        assert (x / 90) ** 2 + (y / 60) ** 2 == pytest.approx(1)

    def test_circle_zero_direction_is_zero(self):
        assert boundary_offset("circle", 0, 0) == 0

    def test_square_axis_aligned(self):
        assert boundary_offset("square", -1, 0) == pytest.approx(90)
        assert boundary_offset("square", 0, 1) == pytest.approx(60)

    def test_square_diagonal_hits_the_nearer_side(self):
        u = 1 / math.sqrt(2)
        assert boundary_offset("square", u, u) == pytest.approx(60 / u)

    def test_square_zero_direction_is_zero(self):
        assert boundary_offset("square", 0, 0) == 0

    def test_custom_box_size(self):
        assert boundary_offset("square", 1, 0, width=100, height=50) == pytest.approx(50)


# ============================================================================
# Routing
# ============================================================================


class TestRouteEdge:
    def test_circles_on_a_line_trim_to_boundaries(self):
        a = make_node(id="A", x=0, y=0)
        b = make_node(id="B", x=300, y=0)
        route = route_edge(a, b, curvature=0)
        assert route is not None
        assert (route.start.x, route.start.y) == pytest.approx((90, 0))
        assert (route.end.x, route.end.y) == pytest.approx((210, 0))
        assert (route.label.x, route.label.y) == pytest.approx((150, 0))
        assert not route.is_curved

    def test_default_route_bows_by_default_curvature(self):
        a = make_node(id="A", x=0, y=0)
        b = make_node(id="B", x=300, y=0)
        route = route_edge(a, b)
        assert route.is_curved
        assert (route.control.x, route.control.y) == pytest.approx((150, 15))
        # label = 0.25*start + 0.5*control + 0.25*end
        assert (route.label.x, route.label.y) == pytest.approx((150, 7.5))

    def test_suggestion_route_is_straight_with_midpoint_label(self):
        a = make_node(id="A", x=0, y=0)
        b = make_node(id="B", x=0, y=400, shape="square")
        route = route_edge(a, b, suggestion=True)
        assert route.control is None
        assert (route.start.x, route.start.y) == pytest.approx((0, 60))
        assert (route.end.x, route.end.y) == pytest.approx((0, 340))
        assert (route.label.x, route.label.y) == pytest.approx((0, 200))

    def test_coincident_centers_route_to_nothing(self):
        assert route_edge(make_node(id="A"), make_node(id="B")) is None

    def test_overlapping_boxes_route_to_nothing(self):
        a = make_node(id="A", x=0, y=0)
        b = make_node(id="B", x=100, y=0)
        assert route_edge(a, b) is None

    def test_never_produces_nan(self):
        a = make_node(id="A", x=0, y=0)
        b = make_node(id="B", x=1e-12, y=0)
        route = route_edge(a, b)
        assert route is None

    def test_reciprocal_pair_bows_to_opposite_sides(self):
        a = make_node(id="A", x=0, y=0)
        b = make_node(id="B", x=300, y=0)
        forward = route_edge(a, b, reciprocal=True)
        backward = route_edge(b, a, reciprocal=True)
        assert forward.control.y == pytest.approx(-35)
        assert backward.control.y == pytest.approx(35)

    def test_reciprocal_sign_follows_id_order(self):
        assert reciprocal_curvature("B", "A") == 35
        assert reciprocal_curvature("A", "B") == -35
        assert reciprocal_curvature("x", "y", magnitude=10) == -10

    def test_explicit_curvature_overrides_defaults(self):
        a = make_node(id="A", x=0, y=0)
        b = make_node(id="B", x=300, y=0)
        route = route_edge(a, b, curvature=40)
        assert route.control.y == pytest.approx(40)


class TestControlPoint:
    def test_uses_left_hand_perpendicular(self):
        c = control_point(Point(x=0, y=0), Point(x=0, y=100), 10)
        assert (c.x, c.y) == pytest.approx((-10, 50))


class TestHasReciprocal:
    def test_detects_opposite_edge(self):
        edge = make_edge()
        others = [edge, make_edge(id="e2", source="B", target="A")]
        assert has_reciprocal(edge, others)

    def test_same_direction_is_not_reciprocal(self):
        edge = make_edge()
        others = [edge, make_edge(id="e2")]
        assert not has_reciprocal(edge, others)


class TestPathData:
    def test_straight_path_uses_line_command(self):
        route = route_edge(make_node(id="A"), make_node(id="B", x=300), curvature=0)
        d = route_path_data(route)
        assert d.startswith("M ")
        assert " L " in d
        assert " Q " not in d

    def test_curved_path_uses_quadratic_command(self):
        route = route_edge(make_node(id="A"), make_node(id="B", x=300))
        assert " Q " in route_path_data(route)


# ============================================================================
# Hit-testing
# ============================================================================


class TestNodeContains:
    def test_circle_corner_of_box_is_outside(self):
        node = make_node()
        assert node_contains(node, Point(x=0, y=0))
        assert not node_contains(node, Point(x=85, y=55))

    def test_square_corner_of_box_is_inside(self):
        node = make_node(shape="square")
        assert node_contains(node, Point(x=85, y=55))
        assert not node_contains(node, Point(x=95, y=0))
