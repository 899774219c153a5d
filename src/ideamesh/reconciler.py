"""Apply a list of AI tool calls to a graph session.

One pass runs in phases: every ``addNode`` first (real ids are assigned at
once and recorded against the call's ``tempId``), then every ``addEdge``
resolved through that map, then a single atomic batch for all of them, then
the remaining calls one at a time.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .errors import IdeaMeshError
from .session import GraphSession
from .styles import BATCH_RING_RADIUS, NODE_DEFAULTS
from .types import Edge, Node, ToolCall

logger = logging.getLogger(__name__)

LayoutCallback = Callable[[str | None], Awaitable[Any]]

DEFAULT_LINK_LABEL = "related to"

# Tool argument names for updateNode, mapped to GraphSession.update_node fields
NODE_ARG_FIELDS = {
    "title": "title",
    "content": "content",
    "color": "color",
    "shape": "shape",
    "tags": "tags",
    "imageUrl": "image_url",
}

REARRANGE_NAMES = ("rearrangeGraph", "rearrange")


@dataclass(slots=True)
class DroppedEdge:
    call: ToolCall
    reason: str


@dataclass(slots=True)
class ReconcileResult:
    created_node_ids: list[str] = field(default_factory=list)
    created_edge_ids: list[str] = field(default_factory=list)
    dropped_edges: list[DroppedEdge] = field(default_factory=list)
    applied: list[ToolCall] = field(default_factory=list)
    failed: list[ToolCall] = field(default_factory=list)
    ignored: list[ToolCall] = field(default_factory=list)
    temp_ids: dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


class ToolCallReconciler:
    def __init__(
        self,
        session: GraphSession,
        layout_callback: LayoutCallback | None = None,
    ) -> None:
        self.session = session
        self.layout_callback = layout_callback

    async def reconcile(self, tool_calls: Sequence[ToolCall]) -> ReconcileResult:
        result = ReconcileResult()
        node_calls = [c for c in tool_calls if c.name == "addNode"]
        edge_calls = [c for c in tool_calls if c.name == "addEdge"]
        other_calls = [c for c in tool_calls if c.name not in ("addNode", "addEdge")]

        new_nodes, node_sources = self._plan_nodes(node_calls, result)
        new_edges, edge_sources = self._plan_edges(edge_calls, new_nodes, result)

        if new_nodes or new_edges:
            try:
                await self.session.create_nodes_and_edges(
                    new_nodes, new_edges, failure_title="Error applying AI changes"
                )
            except IdeaMeshError:
                logger.error(
                    "Batch of %d node(s) and %d edge(s) failed",
                    len(new_nodes), len(new_edges), exc_info=True,
                )
                result.failed.extend(node_sources + edge_sources)
            else:
                result.created_node_ids.extend(n.id for n in new_nodes)
                result.created_edge_ids.extend(e.id for e in new_edges)
                result.applied.extend(node_sources + edge_sources)

        for call in other_calls:
            await self._apply_one(call, result)

        logger.info(
            "Reconciled %d tool call(s): %d applied, %d failed, %d ignored, %d edge(s) dropped",
            len(tool_calls), len(result.applied), len(result.failed),
            len(result.ignored), len(result.dropped_edges),
        )
        return result

    # ------------------------------------------------------------------
    # Phase 1 and 2: plan the batch
    # ------------------------------------------------------------------

    def _plan_nodes(
        self, calls: list[ToolCall], result: ReconcileResult
    ) -> tuple[list[Node], list[ToolCall]]:
        valid = []
        for call in calls:
            title = str(call.args.get("title") or "").strip()
            if not title:
                logger.warning("addNode without a title ignored: %s", call.args)
                result.failed.append(call)
                continue
            valid.append(call)

        nodes: list[Node] = []
        for index, call in enumerate(valid):
            x, y = self._ring_position(index, len(valid))
            node = Node(
                id=self.session.allocate_node_id(),
                title=str(call.args["title"]).strip(),
                content=str(call.args.get("content") or ""),
                x=x,
                y=y,
                color=NODE_DEFAULTS["color"],
                shape=NODE_DEFAULTS["shape"],
            )
            temp_id = call.args.get("tempId")
            if temp_id:
                result.temp_ids[str(temp_id)] = node.id
            nodes.append(node)
        return nodes, valid

    def _plan_edges(
        self,
        calls: list[ToolCall],
        new_nodes: list[Node],
        result: ReconcileResult,
    ) -> tuple[list[Edge], list[ToolCall]]:
        known = {n.id for n in self.session.nodes} | {n.id for n in new_nodes}
        edges: list[Edge] = []
        sources: list[ToolCall] = []
        for call in calls:
            source = self._resolve(_first(call.args, "sourceNodeId", "source"), result)
            target = self._resolve(_first(call.args, "targetNodeId", "target"), result)
            if source not in known or target not in known:
                self._drop(call, "unknown endpoint", result)
                continue
            if source == target:
                self._drop(call, "self loop", result)
                continue
            edges.append(Edge(
                id=self.session.allocate_edge_id(),
                source=source,
                target=target,
                label=str(call.args.get("label") or DEFAULT_LINK_LABEL),
            ))
            sources.append(call)
        return edges, sources

    def _drop(self, call: ToolCall, reason: str, result: ReconcileResult) -> None:
        logger.warning("Dropping addEdge (%s): %s", reason, call.args)
        result.dropped_edges.append(DroppedEdge(call=call, reason=reason))

    def _ring_position(self, index: int, count: int) -> tuple[float, float]:
        """Spread one pass's new nodes on a ring around the default position."""
        cx, cy = self.session.default_position()
        if count <= 1:
            return cx, cy
        angle = 2 * math.pi * index / count
        return (
            cx + BATCH_RING_RADIUS * math.cos(angle),
            cy + BATCH_RING_RADIUS * math.sin(angle),
        )

    @staticmethod
    def _resolve(ref: Any, result: ReconcileResult) -> str:
        ref = "" if ref is None else str(ref)
        return result.temp_ids.get(ref, ref)

    # ------------------------------------------------------------------
    # Phase 3: everything else, one call at a time
    # ------------------------------------------------------------------

    async def _apply_one(self, call: ToolCall, result: ReconcileResult) -> None:
        args = call.args
        try:
            if call.name == "updateNode":
                node_id = self._resolve(args.get("nodeId"), result)
                fields = {
                    attr: args[key] for key, attr in NODE_ARG_FIELDS.items() if key in args
                }
                await self.session.update_node(node_id, **fields)
            elif call.name == "deleteNode":
                await self.session.delete_node(self._resolve(args.get("nodeId"), result))
            elif call.name == "updateEdge":
                label = _first(args, "newLabel", "label")
                await self.session.update_edge(str(args.get("edgeId")), str(label or ""))
            elif call.name == "deleteEdge":
                await self.session.delete_edge(str(args.get("edgeId")))
            elif call.name in REARRANGE_NAMES:
                if self.layout_callback is None:
                    logger.warning("No layout handler for %s; call ignored", call.name)
                    result.ignored.append(call)
                    return
                await self.layout_callback(args.get("centerNodeTitle"))
            else:
                logger.warning("Unknown tool call %r ignored", call.name)
                result.ignored.append(call)
                return
        except IdeaMeshError as exc:
            logger.error("Tool call %s failed: %s", call.name, exc, exc_info=True)
            result.failed.append(call)
            return
        result.applied.append(call)


def _first(args: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if args.get(key) is not None:
            return args[key]
    return None
