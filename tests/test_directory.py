"""Tests for listing, creating and deleting a user's graphs."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ideamesh.directory import STARTER_EDGES, STARTER_NODES, GraphDirectory
from ideamesh.errors import AccessDeniedError, NotFoundError, PersistenceError
from ideamesh.session import GraphSession
from ideamesh.store import MemoryStore, edges_of, graphs, nodes_of
from ideamesh.types import Edge, Node, Notice

from conftest import GRAPH_ID, OWNER_ID, seed_store


def make_directory(store: MemoryStore | None = None):
    store = store if store is not None else MemoryStore()
    notices: list[Notice] = []
    return GraphDirectory(store, notifier=notices.append), store, notices


def at(day: int) -> datetime:
    return datetime(2024, 1, day, tzinfo=timezone.utc)


# ============================================================================
# Listing
# ============================================================================


class TestListGraphs:
    @pytest.mark.asyncio
    async def test_only_owned_graphs_newest_first(self):
        directory, store, _ = make_directory()
        store.seed(graphs(), "old", {"name": "Old", "ownerId": OWNER_ID, "lastEdited": at(1)})
        store.seed(graphs(), "new", {"name": "New", "ownerId": OWNER_ID, "lastEdited": at(5)})
        store.seed(graphs(), "never", {"name": "Never", "ownerId": OWNER_ID})
        store.seed(graphs(), "theirs", {"name": "Theirs", "ownerId": "u2", "lastEdited": at(9)})

        listed = await directory.list_graphs(OWNER_ID)
        assert [m.id for m in listed] == ["new", "old", "never"]
        assert all(m.owner_id == OWNER_ID for m in listed)

    @pytest.mark.asyncio
    async def test_no_graphs(self):
        directory, _, _ = make_directory()
        assert await directory.list_graphs(OWNER_ID) == []


# ============================================================================
# Creating
# ============================================================================


class TestCreateGraph:
    @pytest.mark.asyncio
    async def test_starter_content_in_one_commit(self):
        directory, store, _ = make_directory()
        meta = await directory.create_graph(OWNER_ID)

        assert store.commit_count == 1
        assert meta.name == "My First Graph"
        assert meta.node_count == len(STARTER_NODES)
        doc = store.peek(graphs(), meta.id)
        assert doc["ownerId"] == OWNER_ID
        assert doc["isPublic"] is False
        assert doc["nodeCount"] == 5
        assert store.count(nodes_of(meta.id)) == len(STARTER_NODES)
        assert store.count(edges_of(meta.id)) == len(STARTER_EDGES)

    @pytest.mark.asyncio
    async def test_starter_edges_link_welcome_node(self):
        directory, store, _ = make_directory()
        meta = await directory.create_graph(OWNER_ID)

        nodes = {d["id"]: d for d in await store.get_all(nodes_of(meta.id))}
        welcome = [i for i, d in nodes.items() if d["title"] == "Welcome to IdeaMesh!"]
        assert len(welcome) == 1
        edges = await store.get_all(edges_of(meta.id))
        assert {e["source"] for e in edges} == set(welcome)
        assert sorted(nodes[e["target"]]["title"] for e in edges) == [
            "AI Assistant", "Connect Ideas", "Create Nodes", "Edit & Customize",
        ]

    @pytest.mark.asyncio
    async def test_new_graph_loads_into_session(self):
        directory, store, _ = make_directory()
        meta = await directory.create_graph(OWNER_ID, "Research")

        session = GraphSession(store, meta.id)
        await session.load(OWNER_ID)
        assert session.metadata.name == "Research"
        assert len(session.nodes) == 5
        assert len(session.edges) == 4

    @pytest.mark.asyncio
    async def test_empty_graph(self):
        directory, store, _ = make_directory()
        meta = await directory.create_graph(OWNER_ID, "Blank", starter=False)
        assert meta.node_count == 0
        assert store.count(nodes_of(meta.id)) == 0
        assert [m.id for m in await directory.list_graphs(OWNER_ID)] == [meta.id]

    @pytest.mark.asyncio
    async def test_failed_commit_notifies(self):
        directory, store, notices = make_directory()
        store.fail_next()
        with pytest.raises(PersistenceError):
            await directory.create_graph(OWNER_ID)
        assert store.count(graphs()) == 0
        assert notices == [Notice(
            level="error",
            title="Graph Creation Failed",
            description="Could not create a new graph. Please try again.",
        )]


# ============================================================================
# Deleting
# ============================================================================


class TestDeleteGraph:
    def seeded(self):
        nodes = [Node(id="A", title="A", content="", x=0, y=0),
                 Node(id="B", title="B", content="", x=200, y=0)]
        edges = [Edge(id="e1", source="A", target="B", label="rel")]
        return make_directory(seed_store(nodes, edges))

    @pytest.mark.asyncio
    async def test_removes_graph_nodes_and_edges_together(self):
        directory, store, notices = self.seeded()
        await directory.delete_graph(GRAPH_ID, OWNER_ID)

        assert store.commit_count == 1
        assert store.peek(graphs(), GRAPH_ID) is None
        assert store.count(nodes_of(GRAPH_ID)) == 0
        assert store.count(edges_of(GRAPH_ID)) == 0
        assert notices[-1].title == "Graph deleted"
        assert 'The graph "Test graph"' in notices[-1].description

    @pytest.mark.asyncio
    async def test_other_owner_is_refused(self):
        directory, store, _ = self.seeded()
        with pytest.raises(AccessDeniedError):
            await directory.delete_graph(GRAPH_ID, "u2")
        assert store.peek(graphs(), GRAPH_ID) is not None
        assert store.count(nodes_of(GRAPH_ID)) == 2

    @pytest.mark.asyncio
    async def test_missing_graph(self):
        directory, _, _ = make_directory()
        with pytest.raises(NotFoundError):
            await directory.delete_graph("nope", OWNER_ID)

    @pytest.mark.asyncio
    async def test_failed_commit_leaves_everything(self):
        directory, store, notices = self.seeded()
        store.fail_next()
        with pytest.raises(PersistenceError):
            await directory.delete_graph(GRAPH_ID, OWNER_ID)
        assert store.peek(graphs(), GRAPH_ID) is not None
        assert store.count(nodes_of(GRAPH_ID)) == 2
        assert store.count(edges_of(GRAPH_ID)) == 1
        assert [(n.level, n.title) for n in notices] == [("error", "Error")]
