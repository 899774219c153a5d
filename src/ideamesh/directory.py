"""A user's graphs: listing, creating with starter content, deleting."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from .errors import AccessDeniedError, NotFoundError, PersistenceError
from .export import edge_to_dict, metadata_from_dict, node_to_dict
from .session import Notifier
from .store import Store, edges_of, graphs, nodes_of
from .types import Edge, GraphMetadata, Node, Notice

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_NAME = "My First Graph"

# (title, content, x, y, color, shape, tags)
STARTER_NODES = [
    (
        "Welcome to IdeaMesh!",
        "This is your new knowledge graph. Create nodes, connect them, and explore your ideas.",
        450, 300, "#A08ABF", "circle", ["getting-started"],
    ),
    (
        "Create Nodes",
        "Click the (+) button in the bottom right to add a new idea to your canvas.",
        750, 150, "#B4A8D3", "square", ["feature"],
    ),
    (
        "Connect Ideas",
        "To link two nodes, hover over one, then click and drag the small link icon to another node.",
        800, 450, "#B4A8D3", "square", ["feature"],
    ),
    (
        "AI Assistant",
        "Click the floating AI icon to open the chat. You can ask it to create nodes, "
        "find connections, summarize, or rearrange your graph!",
        450, 550, "#A08ABF", "circle", ["ai", "feature"],
    ),
    (
        "Edit & Customize",
        "Click on any node to open the control panel on the right. You can change its "
        "title, content, color, shape, and more.",
        150, 400, "#87CEEB", "circle", ["feature"],
    ),
]

# Starter edges as (source index, target index, label) into STARTER_NODES
STARTER_EDGES = [
    (0, 1, "shows how to"),
    (0, 2, "shows how to"),
    (0, 3, "explains the"),
    (0, 4, "explains how to"),
]


class GraphDirectory:
    def __init__(self, store: Store, *, notifier: Notifier | None = None) -> None:
        self.store = store
        self._notifier = notifier

    async def list_graphs(self, user_id: str) -> list[GraphMetadata]:
        """Graphs owned by ``user_id``, most recently edited first."""
        docs = await self.store.query(graphs(), "ownerId", user_id)
        metas = [metadata_from_dict(d) for d in docs]
        metas.sort(
            key=lambda m: m.last_edited.timestamp() if m.last_edited else float("-inf"),
            reverse=True,
        )
        return metas

    async def create_graph(
        self,
        user_id: str,
        name: str = DEFAULT_GRAPH_NAME,
        *,
        starter: bool = True,
    ) -> GraphMetadata:
        """Create a graph, seeded with the welcome nodes unless ``starter`` is False."""
        graph_id = self.store.new_id(graphs())
        nodes: list[Node] = []
        edges: list[Edge] = []
        if starter:
            for title, content, x, y, color, shape, tags in STARTER_NODES:
                nodes.append(Node(
                    id=self.store.new_id(nodes_of(graph_id)),
                    title=title, content=content, x=x, y=y,
                    color=color, shape=shape, tags=list(tags),
                ))
            for source, target, label in STARTER_EDGES:
                edges.append(Edge(
                    id=self.store.new_id(edges_of(graph_id)),
                    source=nodes[source].id,
                    target=nodes[target].id,
                    label=label,
                ))

        now = datetime.now(timezone.utc)
        batch = self.store.batch()
        batch.set(graphs(), graph_id, {
            "name": name,
            "ownerId": user_id,
            "createdAt": now,
            "lastEdited": now,
            "isPublic": False,
            "nodeCount": len(nodes),
        })
        for n in nodes:
            batch.set(nodes_of(graph_id), n.id, node_to_dict(n))
        for e in edges:
            batch.set(edges_of(graph_id), e.id, edge_to_dict(e))
        try:
            await batch.commit()
        except Exception as exc:
            logger.error("Error creating graph for %s", user_id, exc_info=True)
            self._notify(
                "error", "Graph Creation Failed",
                "Could not create a new graph. Please try again.",
            )
            raise PersistenceError("Graph creation failed") from exc

        logger.info("Created graph %s with %d starter node(s)", graph_id, len(nodes))
        return GraphMetadata(
            id=graph_id, name=name, owner_id=user_id,
            last_edited=now, node_count=len(nodes),
        )

    async def delete_graph(self, graph_id: str, user_id: str) -> None:
        """Delete a graph with every node and edge under it, in one batch."""
        doc = await self.store.get(graphs(), graph_id)
        if doc is None:
            raise NotFoundError(f"Graph {graph_id} not found")
        meta = metadata_from_dict(doc)
        if meta.owner_id != user_id:
            raise AccessDeniedError(f"Graph {graph_id} is not owned by {user_id}")

        try:
            node_docs, edge_docs = await asyncio.gather(
                self.store.get_all(nodes_of(graph_id)),
                self.store.get_all(edges_of(graph_id)),
            )
            batch = self.store.batch()
            for d in node_docs:
                batch.delete(nodes_of(graph_id), d["id"])
            for d in edge_docs:
                batch.delete(edges_of(graph_id), d["id"])
            batch.delete(graphs(), graph_id)
            await batch.commit()
        except Exception as exc:
            logger.error("Error deleting graph %s", graph_id, exc_info=True)
            self._notify("error", "Error", "Failed to delete the graph. Please try again.")
            raise PersistenceError("Graph deletion failed") from exc

        self._notify(
            "info", "Graph deleted",
            f'The graph "{meta.name}" has been permanently deleted.',
        )

    def _notify(self, level: str, title: str, description: str = "") -> None:
        if self._notifier is not None:
            self._notifier(Notice(level=level, title=title, description=description))
