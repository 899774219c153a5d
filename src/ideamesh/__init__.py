"""ideamesh: idea graph engine with an interactive canvas and AI assistance."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .types import (
    CanvasOptions,
    ChatMessage,
    Edge,
    GraphMetadata,
    LayoutPosition,
    Node,
    Notice,
    Point,
    SuggestedLink,
    ToolCall,
)
from .errors import (
    AccessDeniedError,
    AIServiceError,
    AssistantBusyError,
    IdeaMeshError,
    NotFoundError,
    PersistenceError,
    StoreError,
    ValidationError,
)
from .theme import CanvasColors, THEMES, DEFAULTS, resolve_theme
from .geometry import route_edge
from .viewport import Transform, Viewport
from .canvas import CanvasListener, GraphCanvas
from .store import MemoryStore, Store
from .session import GraphSession
from .binding import SessionCanvasListener, bind_canvas
from .directory import GraphDirectory
from .reconciler import ReconcileResult, ToolCallReconciler
from .assistant import GraphAssistant
from .layout import layered_positions
from .export import export_graph, to_json, to_markdown

__all__ = [
    "render_graph",
    "route_edge",
    "layered_positions",
    "export_graph",
    "to_json",
    "to_markdown",
    "resolve_theme",
    "THEMES",
    "DEFAULTS",
    "CanvasOptions",
    "CanvasColors",
    "ChatMessage",
    "Edge",
    "GraphMetadata",
    "LayoutPosition",
    "Node",
    "Notice",
    "Point",
    "SuggestedLink",
    "ToolCall",
    "Transform",
    "Viewport",
    "CanvasListener",
    "GraphCanvas",
    "Store",
    "MemoryStore",
    "GraphSession",
    "GraphDirectory",
    "SessionCanvasListener",
    "bind_canvas",
    "ReconcileResult",
    "ToolCallReconciler",
    "GraphAssistant",
    "IdeaMeshError",
    "ValidationError",
    "NotFoundError",
    "AccessDeniedError",
    "PersistenceError",
    "AIServiceError",
    "AssistantBusyError",
    "StoreError",
]


@dataclass(slots=True)
class _StaticGraph:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    suggestions: list[SuggestedLink] = field(default_factory=list)


def render_graph(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    width: float = 1280,
    height: float = 800,
    theme: str | None = None,
    options: CanvasOptions | None = None,
) -> str:
    """Render a graph to SVG at the identity viewport, with nothing selected.

    Args:
        nodes: Nodes to draw, later nodes on top.
        edges: Edges to draw; edges with a missing endpoint are skipped.
        width: SVG width in px.
        height: SVG height in px.
        theme: Name of a built-in theme; None draws with the plain
            DEFAULTS background and foreground and no accent.
        options: Overrides for node size, curvatures and font.

    Returns:
        SVG markup string.
    """
    graph = _StaticGraph(nodes=list(nodes), edges=list(edges))
    canvas = GraphCanvas(graph, options=options)
    return canvas.render(width, height, resolve_theme(theme))
