from __future__ import annotations

import logging
from collections.abc import Sequence

from grandalf.graphs import Edge as GEdge, Graph, Vertex
from grandalf.layouts import SugiyamaLayout

from .styles import NODE_SIZE
from .types import Edge, LayoutPosition, Node

logger = logging.getLogger(__name__)

# Layout defaults
LAYOUT_DEFAULTS = {
    "margin": 60,
    "node_spacing": 60,
    "layer_spacing": 80,
    "component_gap": 120,
}

# Below this scale neighbouring 180x120 boxes in a layer would overlap, so
# larger graphs spill past the canvas and the viewport zooms out instead
MIN_SCALE = max(
    NODE_SIZE["width"] / (NODE_SIZE["width"] + LAYOUT_DEFAULTS["node_spacing"]),
    NODE_SIZE["height"] / (NODE_SIZE["height"] + LAYOUT_DEFAULTS["layer_spacing"]),
)


# ============================================================================
# Vertex view for grandalf: the node box used for spacing
# ============================================================================


class _VertexView:
    """Minimal view object required by grandalf's SugiyamaLayout."""

    def __init__(self, w: float = NODE_SIZE["width"], h: float = NODE_SIZE["height"]) -> None:
        self.w = w
        self.h = h
        # xy is set by the layout engine (center coordinates)
        self.xy = (0.0, 0.0)


def layered_positions(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    canvas_width: float,
    canvas_height: float,
    center_node_id: str | None = None,
) -> list[LayoutPosition]:
    """Deterministic layered layout of the graph, fitted to the canvas.

    Each connected component gets its own Sugiyama layout; components sit side
    by side. The result is scaled down (never up, and never below MIN_SCALE)
    to fit inside the canvas margin and centered, or translated so
    ``center_node_id`` lands on the canvas center.
    """
    if not nodes:
        return []

    vertices: dict[str, Vertex] = {}
    for n in nodes:
        v = Vertex(n.id)
        v.view = _VertexView()
        vertices[n.id] = v

    seen: set[frozenset[str]] = set()
    g_edges: list[GEdge] = []
    for e in edges:
        pair = frozenset((e.source, e.target))
        if e.source == e.target or pair in seen:
            continue
        if e.source not in vertices or e.target not in vertices:
            continue
        seen.add(pair)
        g_edges.append(GEdge(vertices[e.source], vertices[e.target]))

    g = Graph(list(vertices.values()), g_edges)

    # Phase 1: lay out each component around its own origin
    centers: dict[str, tuple[float, float]] = {}
    offset_x = 0.0
    for component in g.C:
        comp_vertices = list(component.sV)
        if len(comp_vertices) > 1:
            sug = SugiyamaLayout(component)
            sug.xspace = LAYOUT_DEFAULTS["node_spacing"]
            sug.yspace = LAYOUT_DEFAULTS["layer_spacing"]
            # A pure cycle has no source vertex; break it at the first node
            roots = [v for v in comp_vertices if not v.e_in()] or comp_vertices[:1]
            sug.init_all(roots=roots)
            sug.draw()

        min_x = min(v.view.xy[0] - v.view.w / 2 for v in comp_vertices)
        max_x = max(v.view.xy[0] + v.view.w / 2 for v in comp_vertices)
        min_y = min(v.view.xy[1] - v.view.h / 2 for v in comp_vertices)
        for v in comp_vertices:
            centers[v.data] = (
                v.view.xy[0] - min_x + offset_x,
                v.view.xy[1] - min_y,
            )
        offset_x += (max_x - min_x) + LAYOUT_DEFAULTS["component_gap"]

    # Phase 2: fit into the canvas
    half_w = NODE_SIZE["width"] / 2
    half_h = NODE_SIZE["height"] / 2
    xs = [c[0] for c in centers.values()]
    ys = [c[1] for c in centers.values()]
    span_x = max(xs) - min(xs)
    span_y = max(ys) - min(ys)
    avail_x = max(canvas_width - 2 * LAYOUT_DEFAULTS["margin"] - 2 * half_w, 1.0)
    avail_y = max(canvas_height - 2 * LAYOUT_DEFAULTS["margin"] - 2 * half_h, 1.0)

    scale = 1.0
    if span_x > avail_x:
        scale = min(scale, avail_x / span_x)
    if span_y > avail_y:
        scale = min(scale, avail_y / span_y)
    scale = max(scale, MIN_SCALE)

    mid_x = (max(xs) + min(xs)) / 2
    mid_y = (max(ys) + min(ys)) / 2
    if center_node_id is not None and center_node_id in centers:
        mid_x, mid_y = centers[center_node_id]
    elif center_node_id is not None:
        logger.warning("Layout center node %s not in graph", center_node_id)

    cx, cy = canvas_width / 2, canvas_height / 2
    positions = []
    for n in nodes:
        x, y = centers[n.id]
        positions.append(LayoutPosition(
            node_id=n.id,
            x=round(cx + (x - mid_x) * scale, 2),
            y=round(cy + (y - mid_y) * scale, 2),
        ))

    logger.debug(
        "Layered layout: %d node(s), %d component(s), scale %.3f",
        len(nodes), len(g.C), scale,
    )
    return positions
