from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Literal, Protocol, Sequence

from .types import CanvasOptions, ConnectionDrag, Edge, Node, Point, SuggestedLink
from .geometry import node_contains
from .renderer import CanvasScene, handle_center, render_canvas
from .styles import HANDLE_RADIUS, merge_options
from .theme import CanvasColors, resolve_theme
from .viewport import Viewport

# ============================================================================
# Canvas orchestrator: pointer/touch gesture state machine
# ============================================================================

GestureMode = Literal[
    "idle",
    "potential_drag",
    "dragging",
    "panning",
    "pinching",
    "connecting",
]


class GraphSource(Protocol):
    """Read-only view of the graph the canvas draws (GraphSession satisfies it)."""

    @property
    def nodes(self) -> Sequence[Node]: ...

    @property
    def edges(self) -> Sequence[Edge]: ...

    @property
    def suggestions(self) -> Sequence[SuggestedLink]: ...


class CanvasListener:
    """Receives the high-level intents emitted by GraphCanvas.

    Subclass and override what you need; the defaults do nothing.
    """

    def node_selected(self, node_id: str | None) -> None:
        pass

    def node_moved(self, node_id: str, x: float, y: float) -> None:
        pass

    def node_drag_committed(self, node_id: str, x: float, y: float) -> None:
        pass

    def link_requested(self, source_id: str, target_id: str) -> None:
        pass


@dataclass(slots=True)
class _Press:
    """Where a press started, and for node presses the grab offset (world)."""

    start: Point
    node_id: str | None = None
    offset: Point | None = None


@dataclass(slots=True)
class CanvasState:
    """Everything the canvas mutates; owned by one GraphCanvas."""

    viewport: Viewport
    mode: GestureMode = "idle"
    selected_node_id: str | None = None
    highlighted: set[str] = field(default_factory=set)
    press: _Press | None = None
    last_pointer: Point | None = None
    drag_position: Point | None = None
    connection: ConnectionDrag | None = None


class GraphCanvas:
    def __init__(
        self,
        graph: GraphSource,
        listener: CanvasListener | None = None,
        options: CanvasOptions | None = None,
    ) -> None:
        self.graph = graph
        self.listener = listener or CanvasListener()
        self.options = options
        opts = merge_options(options)
        self._node_w: float = opts["node_width"]
        self._node_h: float = opts["node_height"]
        self._threshold: float = opts["drag_threshold"]
        self.state = CanvasState(viewport=Viewport(options))

    @property
    def mode(self) -> GestureMode:
        return self.state.mode

    @property
    def viewport(self) -> Viewport:
        return self.state.viewport

    @property
    def selected_node_id(self) -> str | None:
        sid = self.state.selected_node_id
        if sid is not None and self._node(sid) is None:
            self.state.selected_node_id = None
            return None
        return sid

    # ------------------------------------------------------------------
    # Hit-testing
    # ------------------------------------------------------------------

    def node_at(self, world: Point) -> Node | None:
        """Topmost node under a world point (later nodes draw on top)."""
        for node in reversed(self.graph.nodes):
            if node_contains(node, world, self._node_w, self._node_h):
                return node
        return None

    def handle_at(self, world: Point) -> Node | None:
        for node in reversed(self.graph.nodes):
            h = handle_center(node, self._node_w, self._node_h)
            if math.hypot(world.x - h.x, world.y - h.y) <= HANDLE_RADIUS:
                return node
        return None

    # ------------------------------------------------------------------
    # Pointer gestures
    # ------------------------------------------------------------------

    def pointer_down(self, screen: Point) -> None:
        if self.state.mode == "pinching":
            return
        self._reset()
        world = self.viewport.to_world(screen)

        handle_node = self.handle_at(world)
        if handle_node is not None:
            self.connect_start(handle_node.id, screen)
            return

        node = self.node_at(world)
        self.state.last_pointer = screen
        if node is None:
            self.state.mode = "panning"
            self.state.press = _Press(start=screen)
            return

        self.state.mode = "potential_drag"
        self.state.press = _Press(
            start=screen,
            node_id=node.id,
            offset=Point(x=world.x - node.x, y=world.y - node.y),
        )

    def pointer_move(self, screen: Point) -> None:
        state = self.state
        mode = state.mode

        if mode == "potential_drag" and state.press is not None:
            if _distance(screen, state.press.start) >= self._threshold:
                state.mode = "dragging"
                self._drag_to(screen)
        elif mode == "dragging":
            self._drag_to(screen)
        elif mode == "panning" and state.last_pointer is not None:
            self.viewport.pan_by(
                screen.x - state.last_pointer.x,
                screen.y - state.last_pointer.y,
            )
        elif mode == "connecting" and state.connection is not None:
            world = self.viewport.to_world(screen)
            state.connection.end_x = world.x
            state.connection.end_y = world.y

        state.last_pointer = screen

    def pointer_up(self, screen: Point | None = None) -> None:
        """End the gesture. State always returns to idle, even if an intent raises."""
        state = self.state
        press = state.press
        try:
            if state.mode == "potential_drag" and press and press.node_id:
                self._select(press.node_id)
            elif state.mode == "dragging" and press and press.node_id:
                if screen is not None:
                    self._drag_to(screen)
                pos = state.drag_position
                if pos is not None:
                    self.listener.node_drag_committed(press.node_id, pos.x, pos.y)
            elif state.mode == "panning" and press is not None:
                end = screen or state.last_pointer or press.start
                if _distance(end, press.start) < self._threshold:
                    self.click_background()
            elif state.mode == "connecting" and state.connection is not None:
                self._finish_connection(screen)
        finally:
            self._reset()

    def pointer_leave(self) -> None:
        self.pointer_up(None)

    def connect_start(self, node_id: str, screen: Point) -> None:
        if self.state.mode == "pinching" or self._node(node_id) is None:
            return
        self._reset()
        world = self.viewport.to_world(screen)
        self.state.mode = "connecting"
        self.state.last_pointer = screen
        self.state.connection = ConnectionDrag(
            source_node_id=node_id, end_x=world.x, end_y=world.y
        )

    def click_background(self) -> None:
        self._select(None)

    def wheel(self, screen: Point, delta_y: float) -> None:
        self.viewport.zoom_at(screen, delta_y)

    # ------------------------------------------------------------------
    # Touch gestures
    # ------------------------------------------------------------------

    def touch_start(self, touches: Sequence[Point]) -> None:
        if len(touches) >= 2:
            if self.state.mode == "dragging":
                return
            self._reset()
            self.state.mode = "pinching"
            self.viewport.begin_pinch(touches[0], touches[1])
        elif len(touches) == 1:
            self.pointer_down(touches[0])

    def touch_move(self, touches: Sequence[Point]) -> None:
        if self.state.mode == "pinching":
            if len(touches) >= 2:
                self.viewport.update_pinch(touches[0], touches[1])
            return
        if touches:
            self.pointer_move(touches[0])

    def touch_end(self, touch: Point | None = None) -> None:
        if self.state.mode == "pinching":
            self._reset()
            return
        self.pointer_up(touch if touch is not None else self.state.last_pointer)

    def touch_cancel(self) -> None:
        self._reset()

    # ------------------------------------------------------------------
    # Selection & focus
    # ------------------------------------------------------------------

    def select(self, node_id: str | None) -> None:
        self.state.selected_node_id = node_id

    def set_highlights(self, node_ids: set[str]) -> None:
        self.state.highlighted = set(node_ids)

    def is_node_dimmed(self, node_id: str, edge: Edge | None = None) -> bool:
        selected = self.selected_node_id
        if selected is None:
            return False
        if self.state.highlighted:
            return node_id not in self.state.highlighted
        if node_id == selected:
            return False
        if edge is not None:
            return edge.source != selected and edge.target != selected
        return not any(
            (e.source == selected and e.target == node_id)
            or (e.target == selected and e.source == node_id)
            for e in self.graph.edges
        )

    def is_edge_dimmed(self, edge: Edge) -> bool:
        return (
            self.is_node_dimmed(edge.source, edge)
            and self.is_node_dimmed(edge.target, edge)
        )

    def connection_preview(self) -> tuple[Point, Point] | None:
        drag = self.state.connection
        if drag is None:
            return None
        source = self._node(drag.source_node_id)
        if source is None:
            return None
        return Point(x=source.x, y=source.y), Point(x=drag.end_x, y=drag.end_y)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def scene(self, width: float, height: float) -> CanvasScene:
        nodes = list(self.graph.nodes)
        edges = list(self.graph.edges)
        return CanvasScene(
            width=width,
            height=height,
            transform=self.viewport.transform,
            nodes=nodes,
            edges=edges,
            suggestions=list(self.graph.suggestions),
            selected_node_id=self.selected_node_id,
            connection=self.state.connection,
            highlighted=set(self.state.highlighted),
            dimmed_nodes={n.id for n in nodes if self.is_node_dimmed(n.id)},
            dimmed_edges={e.id for e in edges if self.is_edge_dimmed(e)},
        )

    def render(
        self,
        width: float,
        height: float,
        colors: CanvasColors | None = None,
    ) -> str:
        return render_canvas(
            self.scene(width, height),
            colors or resolve_theme("light"),
            self.options,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _node(self, node_id: str) -> Node | None:
        for node in self.graph.nodes:
            if node.id == node_id:
                return node
        return None

    def _drag_to(self, screen: Point) -> None:
        press = self.state.press
        if press is None or press.node_id is None or press.offset is None:
            return
        world = self.viewport.to_world(screen)
        pos = Point(x=world.x - press.offset.x, y=world.y - press.offset.y)
        if self.state.drag_position == pos:
            return
        self.state.drag_position = pos
        self.listener.node_moved(press.node_id, pos.x, pos.y)

    def _select(self, node_id: str | None) -> None:
        self.state.selected_node_id = node_id
        self.listener.node_selected(node_id)

    def _finish_connection(self, screen: Point | None) -> None:
        drag = self.state.connection
        if drag is None:
            return
        if screen is not None:
            world = self.viewport.to_world(screen)
        else:
            world = Point(x=drag.end_x, y=drag.end_y)
        target = self.node_at(world)
        if target is None or target.id == drag.source_node_id:
            return
        self.listener.link_requested(drag.source_node_id, target.id)

    def _reset(self) -> None:
        state = self.state
        state.mode = "idle"
        state.press = None
        state.drag_position = None
        state.connection = None
        state.last_pointer = None
        self.viewport.end_pinch()


def _distance(a: Point, b: Point) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)
