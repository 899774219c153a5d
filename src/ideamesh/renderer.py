from __future__ import annotations

from dataclasses import dataclass, field

from .types import CanvasOptions, ConnectionDrag, Edge, Node, Point, SuggestedLink
from .theme import CanvasColors, svg_open_tag, build_style_block
from .viewport import Transform
from .geometry import has_reciprocal, route_edge, route_path_data
from .styles import (
    ARROW_HEAD,
    CONTENT_PREVIEW_CHARS,
    FONT_SIZES,
    FONT_WEIGHTS,
    HANDLE_OFFSET,
    HANDLE_RADIUS,
    OPACITY,
    SQUARE_CORNER_RADIUS,
    STROKE_WIDTHS,
    TEXT_BASELINE_SHIFT,
    estimate_text_width,
    merge_options,
)

# ============================================================================
# SVG renderer: draws the canvas scene produced by GraphCanvas
# ============================================================================


@dataclass(slots=True)
class CanvasScene:
    width: float
    height: float
    transform: Transform
    nodes: list[Node]
    edges: list[Edge]
    suggestions: list[SuggestedLink] = field(default_factory=list)
    selected_node_id: str | None = None
    connection: ConnectionDrag | None = None
    highlighted: set[str] = field(default_factory=set)
    dimmed_nodes: set[str] = field(default_factory=set)
    dimmed_edges: set[str] = field(default_factory=set)


def render_canvas(
    scene: CanvasScene,
    colors: CanvasColors,
    options: CanvasOptions | None = None,
) -> str:
    """Render a canvas scene as an SVG string."""
    opts = merge_options(options)
    w, h = opts["node_width"], opts["node_height"]
    by_id = {n.id: n for n in scene.nodes}
    parts: list[str] = []

    parts.append(svg_open_tag(scene.width, scene.height, colors))
    parts.append(build_style_block(opts["font"]))
    parts.append("<defs>")
    parts.append(_arrow_marker_defs())
    parts.append("</defs>")
    parts.append(f'<g class="scene" transform="{scene.transform.svg_attr()}">')

    # 1. Committed edges
    for edge in scene.edges:
        parts.append(render_edge(
            edge,
            by_id,
            scene.edges,
            dimmed=edge.id in scene.dimmed_edges,
            options=opts,
        ))

    # 2. Suggested edges
    for link in scene.suggestions:
        parts.append(render_suggestion(link, by_id, options=opts))

    # 3. Connection preview
    if scene.connection:
        source = by_id.get(scene.connection.source_node_id)
        if source:
            parts.append(_render_connection_preview(source, scene.connection))

    # 4. Nodes
    for node in scene.nodes:
        parts.append(render_node(
            node,
            selected=node.id == scene.selected_node_id,
            connection_source=(
                scene.connection is not None
                and scene.connection.source_node_id == node.id
            ),
            dimmed=node.id in scene.dimmed_nodes,
            highlighted=node.id in scene.highlighted,
            width=w,
            height=h,
        ))

    parts.append("</g>")
    parts.append("</svg>")
    return "\n".join(p for p in parts if p)


# ============================================================================
# Arrow marker definitions
# ============================================================================


def _arrow_marker_defs() -> str:
    w = ARROW_HEAD["width"]
    h = ARROW_HEAD["height"]
    markers = []
    for marker_id, fill in (
        ("arrow-default", "var(--_muted)"),
        ("arrow-suggestion", "var(--_accent)"),
    ):
        markers.append(
            f'  <marker id="{marker_id}" viewBox="0 0 10 10" refX="10" refY="5" '
            f'markerWidth="{w}" markerHeight="{h}" orient="auto-start-reverse">\n'
            f'    <path d="M 0 0 L 10 5 L 0 10 z" fill="{fill}" />\n'
            f"  </marker>"
        )
    return "\n".join(markers)


# ============================================================================
# Edge rendering
# ============================================================================


def render_edge(
    edge: Edge,
    nodes: dict[str, Node],
    edges: list[Edge],
    dimmed: bool = False,
    options: dict | None = None,
) -> str:
    """Draw one committed edge; empty string when it has no geometry."""
    opts = options or merge_options(None)
    source = nodes.get(edge.source)
    target = nodes.get(edge.target)
    if not source or not target:
        return ""

    route = route_edge(
        source,
        target,
        reciprocal=has_reciprocal(edge, edges),
        width=opts["node_width"],
        height=opts["node_height"],
        default_curvature=opts["default_curvature"],
        reciprocal_magnitude=opts["reciprocal_curvature"],
    )
    if route is None:
        return ""

    opacity = OPACITY["dimmed_edge"] if dimmed else 1
    return (
        f'<g class="edge" data-edge-id="{escape_xml(edge.id)}" opacity="{opacity}">\n'
        f'<path d="{route_path_data(route)}" fill="none" stroke="var(--_muted)" '
        f'stroke-width="{STROKE_WIDTHS["connector"]}" marker-end="url(#arrow-default)" />\n'
        f"{_render_edge_label(edge.label, route.label)}\n"
        f"</g>"
    )


def render_suggestion(
    link: SuggestedLink,
    nodes: dict[str, Node],
    options: dict | None = None,
) -> str:
    """Draw a proposed edge as a dashed straight line with accept/reject controls."""
    opts = options or merge_options(None)
    source = nodes.get(link.source)
    target = nodes.get(link.target)
    if not source or not target:
        return ""

    route = route_edge(
        source,
        target,
        suggestion=True,
        width=opts["node_width"],
        height=opts["node_height"],
    )
    if route is None:
        return ""

    sid = escape_xml(link.id)
    mid = route.label
    return (
        f'<g class="suggestion" data-suggestion-id="{sid}">\n'
        f'<path d="{route_path_data(route)}" fill="none" stroke="var(--_accent)" '
        f'stroke-width="{STROKE_WIDTHS["connector"]}" stroke-dasharray="5,5" '
        f'marker-end="url(#arrow-suggestion)" />\n'
        f"{_render_suggestion_controls(sid, mid)}\n"
        f"{_render_edge_label(link.reason, Point(x=mid.x, y=mid.y + 18))}\n"
        f"</g>"
    )


def _render_suggestion_controls(sid: str, mid: Point) -> str:
    r = 10
    confirm = Point(x=mid.x - 14, y=mid.y - 8)
    dismiss = Point(x=mid.x + 14, y=mid.y - 8)
    return (
        f'<circle class="suggestion-confirm" data-action="confirm" data-suggestion-id="{sid}" '
        f'cx="{confirm.x}" cy="{confirm.y}" r="{r}" fill="var(--_label-bg)" stroke="#22C55E" />\n'
        f'<path d="M {confirm.x - 4} {confirm.y} L {confirm.x - 1} {confirm.y + 3} '
        f'L {confirm.x + 4} {confirm.y - 3}" fill="none" stroke="#22C55E" stroke-width="2" />\n'
        f'<circle class="suggestion-dismiss" data-action="dismiss" data-suggestion-id="{sid}" '
        f'cx="{dismiss.x}" cy="{dismiss.y}" r="{r}" fill="var(--_label-bg)" stroke="#EF4444" />\n'
        f'<path d="M {dismiss.x - 3} {dismiss.y - 3} L {dismiss.x + 3} {dismiss.y + 3} '
        f'M {dismiss.x + 3} {dismiss.y - 3} L {dismiss.x - 3} {dismiss.y + 3}" '
        f'fill="none" stroke="#EF4444" stroke-width="2" />'
    )


def _render_edge_label(label: str, anchor: Point) -> str:
    if not label:
        return ""
    text_width = estimate_text_width(
        label, FONT_SIZES["edge_label"], FONT_WEIGHTS["edge_label"]
    )
    padding = 8
    bg_width = text_width + padding * 2
    bg_height = FONT_SIZES["edge_label"] + 4
    return (
        f'<rect x="{anchor.x - bg_width / 2}" y="{anchor.y - bg_height / 2}" '
        f'width="{bg_width}" height="{bg_height}" rx="6" ry="6" fill="var(--_label-bg)" />\n'
        f'<text x="{anchor.x}" y="{anchor.y}" text-anchor="middle" dy="{TEXT_BASELINE_SHIFT}" '
        f'font-size="{FONT_SIZES["edge_label"]}" font-weight="{FONT_WEIGHTS["edge_label"]}" '
        f'fill="var(--_muted)">{escape_xml(label)}</text>'
    )


def _render_connection_preview(source: Node, drag: ConnectionDrag) -> str:
    return (
        f'<line class="connection-preview" x1="{source.x}" y1="{source.y}" '
        f'x2="{drag.end_x}" y2="{drag.end_y}" stroke="var(--_accent)" '
        f'stroke-width="{STROKE_WIDTHS["connector"]}" stroke-dasharray="5,5" />'
    )


# ============================================================================
# Node rendering
# ============================================================================


def render_node(
    node: Node,
    selected: bool = False,
    connection_source: bool = False,
    dimmed: bool = False,
    highlighted: bool = False,
    width: float = 180,
    height: float = 120,
) -> str:
    """Draw one node box centered on (node.x, node.y) with its labels and handle."""
    opacity = OPACITY["dimmed_node"] if dimmed else 1
    fill = escape_xml(node.color)

    if highlighted:
        stroke, sw = "var(--_highlight)", STROKE_WIDTHS["ring"]
    elif selected or connection_source:
        stroke, sw = "var(--_accent)", STROKE_WIDTHS["ring"]
    else:
        stroke, sw = "none", 0

    parts = [
        f'<g class="node" data-node-id="{escape_xml(node.id)}" opacity="{opacity}">',
        _render_node_shape(node, width, height, fill, stroke, sw),
    ]

    title_y = node.y - 10
    if node.image_url:
        parts.append(
            f'<image href="{escape_xml(node.image_url)}" x="{node.x - 20}" '
            f'y="{node.y - height / 2 + 12}" width="40" height="40" />'
        )
        title_y = node.y + 14

    parts.append(
        f'<text class="node-title" x="{node.x}" y="{title_y}" text-anchor="middle" '
        f'dy="{TEXT_BASELINE_SHIFT}" font-size="{FONT_SIZES["node_title"]}" '
        f'font-weight="{FONT_WEIGHTS["node_title"]}">{escape_xml(node.title)}</text>'
    )
    preview = truncate(node.content, CONTENT_PREVIEW_CHARS)
    if preview:
        parts.append(
            f'<text class="node-content" x="{node.x}" y="{title_y + 20}" text-anchor="middle" '
            f'dy="{TEXT_BASELINE_SHIFT}" font-size="{FONT_SIZES["node_content"]}" '
            f'font-weight="{FONT_WEIGHTS["node_content"]}">{escape_xml(preview)}</text>'
        )

    handle = handle_center(node, width, height)
    parts.append(
        f'<circle class="connect-handle" data-node-id="{escape_xml(node.id)}" '
        f'cx="{handle.x}" cy="{handle.y}" r="{HANDLE_RADIUS}" '
        f'fill="var(--bg)" stroke="var(--_border)" />'
    )
    parts.append("</g>")
    return "\n".join(parts)


def _render_node_shape(
    node: Node, width: float, height: float, fill: str, stroke: str, sw: float
) -> str:
    if node.shape == "circle":
        return (
            f'<ellipse cx="{node.x}" cy="{node.y}" rx="{width / 2}" ry="{height / 2}" '
            f'fill="{fill}" stroke="{stroke}" stroke-width="{sw}" />'
        )
    r = SQUARE_CORNER_RADIUS
    return (
        f'<rect x="{node.x - width / 2}" y="{node.y - height / 2}" '
        f'width="{width}" height="{height}" rx="{r}" ry="{r}" '
        f'fill="{fill}" stroke="{stroke}" stroke-width="{sw}" />'
    )


def handle_center(node: Node, width: float = 180, height: float = 120) -> Point:
    """Center of the connection handle at the node box's top-right corner."""
    return Point(
        x=node.x + width / 2 + HANDLE_OFFSET - HANDLE_RADIUS,
        y=node.y - height / 2 - HANDLE_OFFSET + HANDLE_RADIUS,
    )


# ============================================================================
# Utilities
# ============================================================================


def truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def escape_xml(text: str) -> str:
    """Escape special XML characters in text content."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )
