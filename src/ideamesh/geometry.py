from __future__ import annotations

import math
from collections.abc import Iterable

from .types import Edge, EdgeRoute, Node, NodeShape, Point
from .styles import AXIS_EPSILON, CURVATURE, NODE_SIZE

# ============================================================================
# Edge geometry: trims connectors to node boundaries and bends them
# ============================================================================


def boundary_offset(
    shape: NodeShape,
    ux: float,
    uy: float,
    width: float = NODE_SIZE["width"],
    height: float = NODE_SIZE["height"],
) -> float:
    """Distance from a node's center to its boundary along unit vector (ux, uy).

    Circles are drawn as the ellipse inscribed in the node box, squares as the
    box itself.
    """
    a = width / 2
    b = height / 2

    if shape == "circle":
        denom = math.sqrt(b * b * ux * ux + a * a * uy * uy)
        return 0.0 if denom == 0 else (a * b) / denom

    abs_x = abs(ux)
    abs_y = abs(uy)
    if abs_x < AXIS_EPSILON and abs_y < AXIS_EPSILON:
        return 0.0
    if abs_x < AXIS_EPSILON:
        return b / abs_y
    if abs_y < AXIS_EPSILON:
        return a / abs_x
    return min(a / abs_x, b / abs_y)


def boundary_point(
    node: Node,
    ux: float,
    uy: float,
    width: float = NODE_SIZE["width"],
    height: float = NODE_SIZE["height"],
) -> Point:
    """Point where a ray from the node's center along (ux, uy) leaves the node."""
    t = boundary_offset(node.shape, ux, uy, width, height)
    return Point(x=node.x + ux * t, y=node.y + uy * t)


def has_reciprocal(edge: Edge, edges: Iterable[Edge]) -> bool:
    """True when another edge runs in the opposite direction between the same nodes."""
    return any(
        e.source == edge.target and e.target == edge.source for e in edges
    )


def reciprocal_curvature(
    source_id: str,
    target_id: str,
    magnitude: float = CURVATURE["reciprocal"],
) -> float:
    """Signed bend of a reciprocal edge, measured along the id-ordered normal.

    The normal is the left-hand perpendicular of the direction from the
    lexicographically smaller id to the larger one, so A->B and B->A get
    opposite signs and land on opposite sides of the chord.
    """
    return magnitude if source_id > target_id else -magnitude


def route_edge(
    source: Node,
    target: Node,
    *,
    reciprocal: bool = False,
    suggestion: bool = False,
    curvature: float | None = None,
    width: float = NODE_SIZE["width"],
    height: float = NODE_SIZE["height"],
    default_curvature: float = CURVATURE["default"],
    reciprocal_magnitude: float = CURVATURE["reciprocal"],
) -> EdgeRoute | None:
    """Route a connector from ``source`` to ``target``.

    Returns None when there is nothing sensible to draw: coincident centers,
    or nodes so close their boxes overlap along the connecting line.

    Suggestion routes are straight. Committed edges bow gently by
    ``default_curvature``; reciprocal pairs bow further and apart. An
    explicit ``curvature`` (in the edge's own left-hand normal) overrides
    both, with 0 meaning straight.
    """
    dx = target.x - source.x
    dy = target.y - source.y
    distance = math.sqrt(dx * dx + dy * dy)
    if distance == 0:
        return None

    ux = dx / distance
    uy = dy / distance

    t_source = boundary_offset(source.shape, ux, uy, width, height)
    t_target = boundary_offset(target.shape, -ux, -uy, width, height)
    if distance < t_source + t_target:
        return None

    start = Point(x=source.x + ux * t_source, y=source.y + uy * t_source)
    end = Point(x=target.x - ux * t_target, y=target.y - uy * t_target)

    # Sign relating the edge's own normal to the id-ordered normal
    orientation = 1.0 if source.id < target.id else -1.0

    if curvature is not None:
        bend = curvature
        signed = curvature * orientation
    elif suggestion:
        bend = 0.0
        signed = 0.0
    elif reciprocal:
        signed = reciprocal_curvature(source.id, target.id, reciprocal_magnitude)
        bend = signed * orientation
    else:
        bend = default_curvature
        signed = default_curvature * orientation

    if bend == 0:
        return EdgeRoute(start=start, end=end, label=midpoint(start, end))

    control = control_point(start, end, bend)
    return EdgeRoute(
        start=start,
        end=end,
        label=quadratic_point(start, control, end, 0.5),
        control=control,
        curvature=signed,
    )


def control_point(start: Point, end: Point, bend: float) -> Point:
    """Chord midpoint pushed ``bend`` px along the chord's left-hand normal."""
    line_dx = end.x - start.x
    line_dy = end.y - start.y
    length = math.sqrt(line_dx * line_dx + line_dy * line_dy) or 1
    perp_x = -line_dy / length
    perp_y = line_dx / length
    mid = midpoint(start, end)
    return Point(x=mid.x + perp_x * bend, y=mid.y + perp_y * bend)


def midpoint(a: Point, b: Point) -> Point:
    return Point(x=(a.x + b.x) / 2, y=(a.y + b.y) / 2)


def quadratic_point(start: Point, control: Point, end: Point, t: float) -> Point:
    """Point at parameter ``t`` on a quadratic Bezier."""
    mt = 1 - t
    return Point(
        x=mt * mt * start.x + 2 * mt * t * control.x + t * t * end.x,
        y=mt * mt * start.y + 2 * mt * t * control.y + t * t * end.y,
    )


def route_path_data(route: EdgeRoute) -> str:
    """SVG path ``d`` attribute for a route."""
    s, e = route.start, route.end
    if route.control is None:
        return f"M {s.x} {s.y} L {e.x} {e.y}"
    c = route.control
    return f"M {s.x} {s.y} Q {c.x} {c.y} {e.x} {e.y}"


def node_contains(
    node: Node,
    point: Point,
    width: float = NODE_SIZE["width"],
    height: float = NODE_SIZE["height"],
) -> bool:
    """Hit-test a world point against the node's visual shape."""
    a = width / 2
    b = height / 2
    dx = point.x - node.x
    dy = point.y - node.y
    if node.shape == "circle":
        return (dx * dx) / (a * a) + (dy * dy) / (b * b) <= 1
    return abs(dx) <= a and abs(dy) <= b
