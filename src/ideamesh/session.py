"""Graph session controller.

Owns the working copy of one graph's nodes and edges and mirrors every change
to the store optimistically: the local collections change first, the store
write is awaited afterwards, and a failed write undoes that one change. Undo
works by id, so mutations that committed while the failed write was in flight
stay in place.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, TypeVar

from .config import settings
from .debounce import KeyedDebouncer
from .errors import (
    AccessDeniedError,
    IdeaMeshError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .export import (
    NODE_PATCH_FIELDS,
    edge_from_dict,
    edge_to_dict,
    metadata_from_dict,
    node_from_dict,
    node_patch_to_dict,
    node_to_dict,
)
from .store import Store, WriteBatch, edges_of, graphs, nodes_of
from .styles import NODE_DEFAULTS, merge_options
from .types import (
    CanvasOptions,
    Edge,
    GraphMetadata,
    LayoutPosition,
    Node,
    Notice,
    SuggestedLink,
)

logger = logging.getLogger(__name__)

Notifier = Callable[[Notice], None]
Undo = Callable[[], None]

NODE_SHAPES = ("circle", "square")

_T = TypeVar("_T", Node, Edge, SuggestedLink)


def _reinsert(items: list[_T], index: int, item: _T) -> list[_T]:
    """Put ``item`` back near ``index`` unless an item with its id is present."""
    if any(i.id == item.id for i in items):
        return items
    restored = list(items)
    restored.insert(min(index, len(restored)), item)
    return restored


class GraphSession:
    def __init__(
        self,
        store: Store,
        graph_id: str,
        *,
        notifier: Notifier | None = None,
        options: CanvasOptions | None = None,
        debounce_delay: float | None = None,
    ) -> None:
        self.store = store
        self.graph_id = graph_id
        self.metadata: GraphMetadata | None = None
        self._notifier = notifier
        self._nodes: list[Node] = []
        self._edges: list[Edge] = []
        self._suggestions: list[SuggestedLink] = []
        self._suggestion_seq = 0

        opts = merge_options(options)
        self.node_width: float = opts["node_width"]
        self.canvas_width: float = opts["canvas_width"]
        self.canvas_height: float = opts["canvas_height"]

        delay = settings.drag_debounce_seconds if debounce_delay is None else debounce_delay
        self._drag_writes: KeyedDebouncer[tuple[float, float]] = KeyedDebouncer(
            delay, self._persist_position
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges)

    @property
    def suggestions(self) -> list[SuggestedLink]:
        return list(self._suggestions)

    def node(self, node_id: str) -> Node | None:
        for n in self._nodes:
            if n.id == node_id:
                return n
        return None

    def edge(self, edge_id: str) -> Edge | None:
        for e in self._edges:
            if e.id == edge_id:
                return e
        return None

    def default_position(self) -> tuple[float, float]:
        """Where a new node lands when the caller gives no position."""
        return self.canvas_width / 2 - self.node_width / 2, self.canvas_height / 3

    def allocate_node_id(self) -> str:
        return self.store.new_id(nodes_of(self.graph_id))

    def allocate_edge_id(self) -> str:
        return self.store.new_id(edges_of(self.graph_id))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, user_id: str) -> None:
        """Fetch metadata, nodes and edges; the graph must belong to ``user_id``."""
        doc = await self.store.get(graphs(), self.graph_id)
        if doc is None:
            self._notify("error", "Error", "Graph not found or you do not have access.")
            raise NotFoundError(f"Graph {self.graph_id} not found")
        meta = metadata_from_dict(doc)
        if meta.owner_id != user_id:
            self._notify("error", "Error", "Graph not found or you do not have access.")
            raise AccessDeniedError(f"Graph {self.graph_id} is not owned by {user_id}")

        node_docs, edge_docs = await asyncio.gather(
            self.store.get_all(nodes_of(self.graph_id)),
            self.store.get_all(edges_of(self.graph_id)),
        )
        self.metadata = meta
        self._nodes = [node_from_dict(d) for d in node_docs]
        self._edges = [edge_from_dict(d) for d in edge_docs]
        self._suggestions = []
        logger.info(
            "Loaded graph %s: %d nodes, %d edges",
            self.graph_id, len(self._nodes), len(self._edges),
        )

    # ------------------------------------------------------------------
    # Optimistic mutation core
    # ------------------------------------------------------------------

    async def _optimistic(
        self,
        apply: Callable[[], Undo],
        persist: Callable[[], Awaitable[None]],
        failure_title: str,
    ) -> None:
        """Apply locally, await the write, run the change's own undo on failure."""
        undo = apply()
        try:
            await persist()
        except Exception as exc:
            undo()
            logger.error("%s (graph %s)", failure_title, self.graph_id, exc_info=True)
            self._notify("error", failure_title)
            raise PersistenceError(failure_title) from exc

    def _touch(self, node_count: int | None = None) -> dict[str, Any]:
        """Graph document fields written alongside every mutation."""
        fields: dict[str, Any] = {"lastEdited": datetime.now(timezone.utc)}
        if node_count is not None:
            fields["nodeCount"] = node_count
        return fields

    def _record_touch(self, fields: dict[str, Any]) -> None:
        # Local metadata follows the graph document only once the write landed
        if self.metadata is None:
            return
        self.metadata.last_edited = fields["lastEdited"]
        if "nodeCount" in fields:
            self.metadata.node_count = fields["nodeCount"]

    async def _commit(self, batch: WriteBatch, node_count: int | None = None) -> None:
        fields = self._touch(node_count)
        batch.update(graphs(), self.graph_id, fields)
        await batch.commit()
        self._record_touch(fields)

    def _reject(self, title: str, description: str = "") -> ValidationError:
        self._notify("error", title, description)
        return ValidationError(description or title)

    def _notify(self, level: str, title: str, description: str = "") -> None:
        if self._notifier is not None:
            self._notifier(Notice(level=level, title=title, description=description))

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def create_node(
        self,
        title: str,
        content: str = "",
        *,
        x: float | None = None,
        y: float | None = None,
        color: str | None = None,
        shape: str | None = None,
        tags: list[str] | None = None,
        image_url: str | None = None,
    ) -> Node:
        if not title or not title.strip():
            raise self._reject("Title is required")
        if shape is not None and shape not in NODE_SHAPES:
            raise self._reject("Invalid shape", f"Unknown node shape: {shape}")

        dx, dy = self.default_position()
        node = Node(
            id=self.allocate_node_id(),
            title=title,
            content=content,
            x=dx if x is None else x,
            y=dy if y is None else y,
            color=color or NODE_DEFAULTS["color"],
            shape=shape or NODE_DEFAULTS["shape"],
            tags=list(tags or []),
            image_url=image_url,
        )
        await self.create_nodes_and_edges([node], [])
        return node

    async def create_nodes_and_edges(
        self,
        new_nodes: list[Node],
        new_edges: list[Edge],
        failure_title: str = "Error creating node",
    ) -> None:
        """Add nodes and edges in one atomic batch with a single node-count update."""
        known = {n.id for n in self._nodes} | {n.id for n in new_nodes}
        for e in new_edges:
            if e.source == e.target:
                raise self._reject("Cannot create link", "A node cannot link to itself.")
            if e.source not in known or e.target not in known:
                raise self._reject("Cannot create link", "One of the nodes does not exist.")
        if not new_nodes and not new_edges:
            return

        node_ids = {n.id for n in new_nodes}
        edge_ids = {e.id for e in new_edges}

        def apply() -> Undo:
            self._nodes = self._nodes + list(new_nodes)
            self._edges = self._edges + list(new_edges)

            def undo() -> None:
                self._nodes = [n for n in self._nodes if n.id not in node_ids]
                self._edges = [e for e in self._edges if e.id not in edge_ids]

            return undo

        async def persist() -> None:
            batch = self.store.batch()
            for n in new_nodes:
                batch.set(nodes_of(self.graph_id), n.id, node_to_dict(n))
            for e in new_edges:
                batch.set(edges_of(self.graph_id), e.id, edge_to_dict(e))
            await self._commit(batch, len(self._nodes) if new_nodes else None)

        await self._optimistic(apply, persist, failure_title)
        logger.debug(
            "Created %d node(s), %d edge(s) in graph %s",
            len(new_nodes), len(new_edges), self.graph_id,
        )

    async def update_node(self, node_id: str, **fields: Any) -> Node:
        """Merge ``fields`` into a node (title, content, x, y, color, shape, tags, image_url)."""
        current = self.node(node_id)
        if current is None:
            raise self._reject("Error updating node", f"Node {node_id} does not exist.")
        unknown = set(fields) - set(NODE_PATCH_FIELDS)
        if unknown:
            raise self._reject("Error updating node", f"Unknown node fields: {sorted(unknown)}")
        if "title" in fields and not str(fields["title"]).strip():
            raise self._reject("Title is required")
        if "shape" in fields and fields["shape"] not in NODE_SHAPES:
            raise self._reject("Invalid shape", f"Unknown node shape: {fields['shape']}")
        if not fields:
            return current

        updated = replace(current, **fields)

        def apply() -> Undo:
            self._replace_node(updated)

            def undo() -> None:
                # Only fields still holding this patch's values go back
                node = self.node(node_id)
                if node is None:
                    return
                restore = {
                    name: getattr(current, name)
                    for name, value in fields.items()
                    if getattr(node, name) == value
                }
                if restore:
                    self._replace_node(replace(node, **restore))

            return undo

        async def persist() -> None:
            batch = self.store.batch()
            batch.set(
                nodes_of(self.graph_id), node_id, node_patch_to_dict(fields), merge=True
            )
            await self._commit(batch)

        await self._optimistic(apply, persist, "Error updating node")
        return updated

    async def delete_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it in one batch."""
        if self.node(node_id) is None:
            raise self._reject("Error deleting node", f"Node {node_id} does not exist.")
        self._drag_writes.cancel(node_id)
        local_edge_ids = {
            e.id for e in self._edges if e.source == node_id or e.target == node_id
        }

        def apply() -> Undo:
            removed_nodes = [(i, n) for i, n in enumerate(self._nodes) if n.id == node_id]
            removed_edges = [
                (i, e) for i, e in enumerate(self._edges) if e.id in local_edge_ids
            ]
            removed_suggestions = [
                (i, s) for i, s in enumerate(self._suggestions)
                if s.source == node_id or s.target == node_id
            ]
            self._nodes = [n for n in self._nodes if n.id != node_id]
            self._edges = [e for e in self._edges if e.id not in local_edge_ids]
            self._suggestions = [
                s for s in self._suggestions
                if s.source != node_id and s.target != node_id
            ]

            def undo() -> None:
                for i, n in removed_nodes:
                    self._nodes = _reinsert(self._nodes, i, n)
                for i, e in removed_edges:
                    self._edges = _reinsert(self._edges, i, e)
                for i, s in removed_suggestions:
                    self._suggestions = _reinsert(self._suggestions, i, s)

            return undo

        async def persist() -> None:
            collection = edges_of(self.graph_id)
            as_source, as_target = await asyncio.gather(
                self.store.query(collection, "source", node_id),
                self.store.query(collection, "target", node_id),
            )
            edge_ids = local_edge_ids | {d["id"] for d in as_source} | {d["id"] for d in as_target}
            batch = self.store.batch()
            for edge_id in sorted(edge_ids):
                batch.delete(collection, edge_id)
            batch.delete(nodes_of(self.graph_id), node_id)
            await self._commit(batch, len(self._nodes))

        await self._optimistic(apply, persist, "Error deleting node")
        logger.debug("Deleted node %s and %d edge(s)", node_id, len(local_edge_ids))

    def drag_node(self, node_id: str, x: float, y: float) -> None:
        """Move a node locally now; persist the position once the drag settles.

        Must be called from inside the running event loop.
        """
        current = self.node(node_id)
        if current is None:
            return
        self._replace_node(replace(current, x=x, y=y))
        self._drag_writes.schedule(node_id, (x, y))

    @property
    def pending_position_writes(self) -> set[str]:
        return self._drag_writes.pending_keys

    async def flush(self) -> None:
        """Write every pending dragged position now."""
        await self._drag_writes.flush()

    async def close(self, discard: bool = False) -> None:
        """Tear down: flush pending position writes, or drop them with ``discard``."""
        if discard:
            self._drag_writes.cancel_all()
            await self._drag_writes.drain()
        else:
            await self._drag_writes.flush()

    async def _persist_position(self, node_id: str, position: tuple[float, float]) -> None:
        if self.node(node_id) is None:
            return
        x, y = position
        try:
            await self.store.update(nodes_of(self.graph_id), node_id, {"x": x, "y": y})
        except Exception:
            logger.error("Error saving position of node %s", node_id, exc_info=True)
            self._notify("error", "Error saving node position")

    def _replace_node(self, node: Node) -> None:
        self._nodes = [node if n.id == node.id else n for n in self._nodes]

    async def apply_positions(self, positions: Iterable[LayoutPosition]) -> int:
        """Move nodes to layout positions through the ordinary update path.

        Unknown node ids are skipped. Returns how many nodes were moved.
        """
        moved = 0
        for pos in positions:
            if self.node(pos.node_id) is None:
                logger.warning("Layout position for unknown node %s skipped", pos.node_id)
                continue
            try:
                await self.update_node(pos.node_id, x=pos.x, y=pos.y)
            except PersistenceError:
                continue
            moved += 1
        return moved

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    async def add_edge(self, source: str, target: str, label: str) -> Edge:
        if source == target:
            raise self._reject("Cannot create link", "A node cannot link to itself.")
        edge = Edge(id=self.allocate_edge_id(), source=source, target=target, label=label)
        await self.create_nodes_and_edges([], [edge], failure_title="Error adding edge")
        return edge

    async def update_edge(self, edge_id: str, label: str) -> Edge:
        current = self.edge(edge_id)
        if current is None:
            raise self._reject("Error updating edge", f"Edge {edge_id} does not exist.")
        updated = replace(current, label=label)

        def apply() -> Undo:
            self._edges = [updated if e.id == edge_id else e for e in self._edges]

            def undo() -> None:
                self._edges = [
                    current if e.id == edge_id and e.label == label else e
                    for e in self._edges
                ]

            return undo

        async def persist() -> None:
            batch = self.store.batch()
            batch.update(edges_of(self.graph_id), edge_id, {"label": label})
            await self._commit(batch)

        await self._optimistic(apply, persist, "Error updating edge")
        return updated

    async def delete_edge(self, edge_id: str) -> None:
        if self.edge(edge_id) is None:
            raise self._reject("Error deleting edge", f"Edge {edge_id} does not exist.")

        def apply() -> Undo:
            index = next(i for i, e in enumerate(self._edges) if e.id == edge_id)
            removed = self._edges[index]
            self._edges = [e for e in self._edges if e.id != edge_id]

            def undo() -> None:
                self._edges = _reinsert(self._edges, index, removed)

            return undo

        async def persist() -> None:
            batch = self.store.batch()
            batch.delete(edges_of(self.graph_id), edge_id)
            await self._commit(batch)

        await self._optimistic(apply, persist, "Error deleting edge")

    # ------------------------------------------------------------------
    # Graph metadata
    # ------------------------------------------------------------------

    async def update_metadata(
        self,
        name: str | None = None,
        is_public: bool | None = None,
    ) -> None:
        if self.metadata is None:
            raise self._reject("Error updating graph settings", "Graph is not loaded.")
        if name is not None and not name.strip():
            raise self._reject("Graph name is required")
        fields: dict[str, Any] = {}
        if name is not None:
            fields["name"] = name
        if is_public is not None:
            fields["isPublic"] = is_public
        if not fields:
            return

        meta = self.metadata
        previous = (meta.name, meta.is_public)

        def apply() -> Undo:
            if name is not None:
                meta.name = name
            if is_public is not None:
                meta.is_public = is_public

            def undo() -> None:
                if name is not None and meta.name == name:
                    meta.name = previous[0]
                if is_public is not None and meta.is_public == is_public:
                    meta.is_public = previous[1]

            return undo

        async def persist() -> None:
            touch = self._touch()
            await self.store.update(graphs(), self.graph_id, {**fields, **touch})
            self._record_touch(touch)

        await self._optimistic(apply, persist, "Error updating graph settings")

    # ------------------------------------------------------------------
    # Link suggestions (view state only)
    # ------------------------------------------------------------------

    def set_suggestions(self, candidates: Iterable[tuple[str, str, str]]) -> list[SuggestedLink]:
        """Replace the suggestion set with ``(source, target, reason)`` candidates.

        Self loops, unknown endpoints and pairs already linked are left out.
        """
        known = {n.id for n in self._nodes}
        linked = {(e.source, e.target) for e in self._edges}
        accepted: list[SuggestedLink] = []
        for source, target, reason in candidates:
            if source == target or source not in known or target not in known:
                logger.warning("Discarding suggestion %s -> %s", source, target)
                continue
            if (source, target) in linked:
                continue
            self._suggestion_seq += 1
            accepted.append(SuggestedLink(
                id=f"sugg-{self._suggestion_seq}",
                source=source,
                target=target,
                reason=reason,
            ))
        self._suggestions = accepted
        return list(accepted)

    async def confirm_suggestion(self, suggestion_id: str) -> Edge:
        """Promote a suggestion to an edge labelled with its reason.

        The suggestion leaves the set while the edge is written, so it cannot be
        confirmed twice, and comes back if the edge is rejected or not saved.
        """
        index, link = self._take_suggestion(suggestion_id)
        try:
            return await self.add_edge(link.source, link.target, link.reason)
        except IdeaMeshError:
            if self.node(link.source) is not None and self.node(link.target) is not None:
                self._suggestions = _reinsert(self._suggestions, index, link)
            raise

    def dismiss_suggestion(self, suggestion_id: str) -> None:
        self._take_suggestion(suggestion_id)

    def _take_suggestion(self, suggestion_id: str) -> tuple[int, SuggestedLink]:
        for index, link in enumerate(self._suggestions):
            if link.id == suggestion_id:
                self._suggestions = [s for s in self._suggestions if s.id != suggestion_id]
                return index, link
        raise self._reject("Suggestion not found", f"No suggestion {suggestion_id}.")
