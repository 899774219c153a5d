from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

# ============================================================================
# Graph model: what the user authors and the store persists
# ============================================================================

NodeShape = Literal["circle", "square"]

ChatRole = Literal["user", "model"]

NoticeLevel = Literal["info", "error"]


@dataclass(slots=True)
class Node:
    """An idea on the canvas. ``x``/``y`` is the world-space center."""

    id: str
    title: str
    content: str
    x: float
    y: float
    color: str = "#A08ABF"
    shape: NodeShape = "circle"
    tags: list[str] = field(default_factory=list)
    image_url: str | None = None


@dataclass(slots=True)
class Edge:
    id: str
    source: str
    target: str
    label: str


@dataclass(slots=True)
class GraphMetadata:
    id: str
    name: str
    owner_id: str
    is_public: bool = False
    last_edited: datetime | None = None
    node_count: int = 0


@dataclass(slots=True)
class SuggestedLink:
    """Candidate edge proposed by the AI; never persisted."""

    id: str
    source: str
    target: str
    reason: str


# ============================================================================
# Geometry primitives
# ============================================================================


@dataclass(slots=True)
class Point:
    x: float
    y: float


@dataclass(slots=True)
class EdgeRoute:
    """Trimmed connector between two node boundaries.

    ``control`` is the quadratic Bezier control point, or None for a
    straight segment.
    """

    start: Point
    end: Point
    label: Point
    control: Point | None = None
    curvature: float = 0.0

    @property
    def is_curved(self) -> bool:
        return self.control is not None


@dataclass(slots=True)
class ConnectionDrag:
    """Live link preview between a handle press and its release (world space)."""

    source_node_id: str
    end_x: float
    end_y: float


# ============================================================================
# AI records
# ============================================================================


@dataclass(slots=True)
class ToolCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(slots=True)
class ChatMessage:
    id: str
    role: ChatRole
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    is_error: bool = False


@dataclass(slots=True)
class LayoutPosition:
    node_id: str
    x: float
    y: float


@dataclass(slots=True)
class Notice:
    """User-visible message (toast, dialog or status line)."""

    level: NoticeLevel
    title: str
    description: str = ""


# ============================================================================
# Canvas options: user-facing overrides of the defaults in styles.py
# ============================================================================


@dataclass(slots=True)
class CanvasOptions:
    node_width: float | None = None
    node_height: float | None = None
    min_scale: float | None = None
    max_scale: float | None = None
    zoom_sensitivity: float | None = None
    drag_threshold: float | None = None
    default_curvature: float | None = None
    reciprocal_curvature: float | None = None
    canvas_width: float | None = None
    canvas_height: float | None = None
    font: str | None = None
