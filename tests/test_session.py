"""Tests for the graph session: optimistic mutations, rollback and drag persistence."""
from __future__ import annotations

import asyncio

import pytest

from ideamesh import styles
from ideamesh.config import Settings
from ideamesh.errors import (
    AccessDeniedError,
    NotFoundError,
    PersistenceError,
    StoreError,
    ValidationError,
)
from ideamesh.session import GraphSession
from ideamesh.store import MemoryStore, WriteOp, edges_of, graphs, nodes_of
from ideamesh.types import CanvasOptions, Edge, LayoutPosition, Node

from conftest import GRAPH_ID, OWNER_ID, seed_store


def make_node(**overrides) -> Node:
    defaults = dict(id="A", title="A", content="", x=0, y=0)
    defaults.update(overrides)
    return Node(**defaults)


def make_edge(**overrides) -> Edge:
    defaults = dict(id="e1", source="A", target="B", label="related to")
    defaults.update(overrides)
    return Edge(**defaults)


THREE_NODES = [
    make_node(id="A", x=0, y=0),
    make_node(id="B", title="B", x=300, y=0),
    make_node(id="C", title="C", x=600, y=0),
]

TRIANGLE = [
    make_edge(id="ab", source="A", target="B"),
    make_edge(id="bc", source="B", target="C"),
    make_edge(id="ca", source="C", target="A"),
]


class GatedStore(MemoryStore):
    """Holds back batches matching ``holds`` until released, then rejects them."""

    def __init__(self, holds) -> None:
        super().__init__()
        self.holds = holds
        self.release = asyncio.Event()

    async def commit_batch(self, ops: list[WriteOp]) -> None:
        if any(self.holds(op) for op in ops):
            await self.release.wait()
            raise StoreError("Held write rejected")
        await super().commit_batch(ops)


async def gated_session(holds, nodes=THREE_NODES, edges=()) -> tuple[GraphSession, GatedStore]:
    store = GatedStore(holds)
    seed_store(nodes, edges, store=store)
    session = GraphSession(store, GRAPH_ID, debounce_delay=0.01)
    await session.load(OWNER_ID)
    return session, store


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


# ============================================================================
# Loading
# ============================================================================


class TestLoad:
    @pytest.mark.asyncio
    async def test_loads_metadata_nodes_and_edges(self, session_factory):
        session, _, _ = await session_factory(THREE_NODES, TRIANGLE)
        assert session.metadata.name == "Test graph"
        assert [n.id for n in session.nodes] == ["A", "B", "C"]
        assert len(session.edges) == 3

    @pytest.mark.asyncio
    async def test_missing_graph(self):
        session = GraphSession(MemoryStore(), "nope")
        with pytest.raises(NotFoundError):
            await session.load("u1")

    @pytest.mark.asyncio
    async def test_foreign_graph_is_denied(self):
        notices = []
        session = GraphSession(seed_store(owner="someone-else"), GRAPH_ID, notifier=notices.append)
        with pytest.raises(AccessDeniedError):
            await session.load("u1")
        assert notices[0].level == "error"
        assert session.nodes == []


# ============================================================================
# Nodes
# ============================================================================


class TestCreateNode:
    @pytest.mark.asyncio
    async def test_blank_title_is_rejected_without_side_effects(self, session_factory):
        session, store, notices = await session_factory()
        with pytest.raises(ValidationError):
            await session.create_node("   ", "content")
        assert session.nodes == []
        assert store.write_count == 0
        assert notices[-1].title == "Title is required"

    @pytest.mark.asyncio
    async def test_creates_at_default_position_in_one_batch(self, session_factory):
        session, store, _ = await session_factory()
        node = await session.create_node("Idea", "details")
        assert (node.x, node.y) == pytest.approx((1280 / 2 - 90, 800 / 3))
        assert node.color == "#A08ABF"
        assert node.shape == "circle"
        assert store.peek(nodes_of(GRAPH_ID), node.id)["title"] == "Idea"
        graph_doc = store.peek(graphs(), GRAPH_ID)
        assert graph_doc["nodeCount"] == 1
        assert graph_doc["lastEdited"] is not None
        assert store.commit_count == 1
        assert session.metadata.node_count == 1

    @pytest.mark.asyncio
    async def test_default_position_follows_node_width(self, session_factory):
        session, _, _ = await session_factory(options=CanvasOptions(node_width=100))
        node = await session.create_node("Idea")
        assert node.x == pytest.approx(1280 / 2 - 50)

    @pytest.mark.asyncio
    async def test_canvas_size_comes_from_environment(self, session_factory, monkeypatch):
        monkeypatch.setenv("IDEAMESH_CANVAS_WIDTH", "1000")
        monkeypatch.setenv("IDEAMESH_CANVAS_HEIGHT", "600")
        monkeypatch.setattr(styles, "settings", Settings())
        session, _, _ = await session_factory()
        assert (session.canvas_width, session.canvas_height) == (1000, 600)
        assert session.default_position() == pytest.approx((500 - 90, 200))

    @pytest.mark.asyncio
    async def test_explicit_position_and_style(self, session_factory):
        session, _, _ = await session_factory()
        node = await session.create_node("Idea", x=10, y=20, shape="square", color="#000000")
        assert (node.x, node.y, node.shape, node.color) == (10, 20, "square", "#000000")

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back(self, session_factory):
        session, store, notices = await session_factory(THREE_NODES)
        store.fail_next()
        with pytest.raises(PersistenceError) as exc_info:
            await session.create_node("Idea")
        assert isinstance(exc_info.value.__cause__, StoreError)
        assert [n.id for n in session.nodes] == ["A", "B", "C"]
        assert session.metadata.node_count == 3
        assert notices[-1].title == "Error creating node"

    @pytest.mark.asyncio
    async def test_batch_with_edges_between_new_nodes(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        new = make_node(id="N", title="New")
        await session.create_nodes_and_edges(
            [new], [make_edge(id="na", source="N", target="A")]
        )
        assert store.count(nodes_of(GRAPH_ID)) == 4
        assert store.count(edges_of(GRAPH_ID)) == 1
        assert store.peek(graphs(), GRAPH_ID)["nodeCount"] == 4
        assert store.commit_count == 1


class TestUpdateNode:
    @pytest.mark.asyncio
    async def test_merges_fields(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        updated = await session.update_node("A", title="Alpha", tags=["x"])
        assert updated.title == "Alpha"
        assert session.node("A").tags == ["x"]
        doc = store.peek(nodes_of(GRAPH_ID), "A")
        assert doc["title"] == "Alpha"
        assert doc["x"] == 0
        assert store.peek(graphs(), GRAPH_ID)["lastEdited"] is not None

    @pytest.mark.asyncio
    async def test_unknown_node(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        with pytest.raises(ValidationError):
            await session.update_node("Z", title="x")
        assert store.write_count == 0

    @pytest.mark.asyncio
    async def test_unknown_field(self, session_factory):
        session, _, _ = await session_factory(THREE_NODES)
        with pytest.raises(ValidationError):
            await session.update_node("A", colour="red")

    @pytest.mark.asyncio
    async def test_failure_restores_previous_value(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        store.fail_next()
        with pytest.raises(PersistenceError):
            await session.update_node("A", title="Alpha")
        assert session.node("A").title == "A"


class TestDeleteNode:
    @pytest.mark.asyncio
    async def test_cascades_to_touching_edges(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES, TRIANGLE)
        await session.delete_node("B")
        assert [n.id for n in session.nodes] == ["A", "C"]
        assert [e.id for e in session.edges] == ["ca"]
        assert store.count(edges_of(GRAPH_ID)) == 1
        assert store.peek(nodes_of(GRAPH_ID), "B") is None
        assert store.peek(graphs(), GRAPH_ID)["nodeCount"] == 2
        assert store.commit_count == 1

    @pytest.mark.asyncio
    async def test_deletes_store_edges_missing_locally(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        store.seed(edges_of(GRAPH_ID), "stray", {"source": "C", "target": "B", "label": ""})
        await session.delete_node("B")
        assert store.peek(edges_of(GRAPH_ID), "stray") is None

    @pytest.mark.asyncio
    async def test_failure_restores_nodes_and_edges(self, session_factory):
        session, store, notices = await session_factory(THREE_NODES, TRIANGLE)
        store.fail_next()
        with pytest.raises(PersistenceError):
            await session.delete_node("B")
        assert [n.id for n in session.nodes] == ["A", "B", "C"]
        assert [e.id for e in session.edges] == ["ab", "bc", "ca"]
        assert store.count(nodes_of(GRAPH_ID)) == 3
        assert notices[-1].level == "error"

    @pytest.mark.asyncio
    async def test_unknown_node(self, session_factory):
        session, _, _ = await session_factory(THREE_NODES)
        with pytest.raises(ValidationError):
            await session.delete_node("Z")


class TestOverlappingWrites:
    @pytest.mark.asyncio
    async def test_failed_update_keeps_node_created_meanwhile(self):
        session, store = await gated_session(lambda op: op.data.get("title") == "Held")
        pending = asyncio.create_task(session.update_node("A", title="Held"))
        await settle()
        fresh = await session.create_node("Fresh")
        store.release.set()
        with pytest.raises(PersistenceError):
            await pending
        assert store.peek(nodes_of(GRAPH_ID), fresh.id) is not None
        assert session.node(fresh.id) is not None
        assert session.node("A").title == "A"

    @pytest.mark.asyncio
    async def test_failed_update_reverts_only_its_own_fields(self):
        session, store = await gated_session(lambda op: op.data.get("title") == "Held")
        pending = asyncio.create_task(session.update_node("A", title="Held"))
        await settle()
        await session.update_node("A", x=50)
        store.release.set()
        with pytest.raises(PersistenceError):
            await pending
        assert (session.node("A").title, session.node("A").x) == ("A", 50)
        assert store.peek(nodes_of(GRAPH_ID), "A")["x"] == 50

    @pytest.mark.asyncio
    async def test_failed_delete_restores_node_next_to_later_changes(self):
        session, store = await gated_session(
            lambda op: op.kind == "delete" and op.doc_id == "B",
            edges=TRIANGLE,
        )
        pending = asyncio.create_task(session.delete_node("B"))
        await settle()
        assert session.node("B") is None
        await session.update_node("A", title="Alpha")
        store.release.set()
        with pytest.raises(PersistenceError):
            await pending
        assert [n.id for n in session.nodes] == ["A", "B", "C"]
        assert [e.id for e in session.edges] == ["ab", "bc", "ca"]
        assert session.node("A").title == "Alpha"

    @pytest.mark.asyncio
    async def test_failed_edge_delete_keeps_edge_added_meanwhile(self):
        session, store = await gated_session(
            lambda op: op.kind == "delete" and op.doc_id == "ab",
            edges=TRIANGLE[:1],
        )
        pending = asyncio.create_task(session.delete_edge("ab"))
        await settle()
        added = await session.add_edge("B", "C", "next")
        store.release.set()
        with pytest.raises(PersistenceError):
            await pending
        assert [e.id for e in session.edges] == ["ab", added.id]


# ============================================================================
# Drag persistence
# ============================================================================


class TestDrag:
    @pytest.mark.asyncio
    async def test_many_moves_write_once(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        for i in range(20):
            session.drag_node("A", i, i * 2)
        assert (session.node("A").x, session.node("A").y) == (19, 38)
        assert store.write_count == 0

        await asyncio.sleep(0.05)
        await session.close()
        assert store.write_count == 1
        doc = store.peek(nodes_of(GRAPH_ID), "A")
        assert (doc["x"], doc["y"]) == (19, 38)

    @pytest.mark.asyncio
    async def test_close_with_discard_writes_nothing(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES, debounce_delay=10)
        session.drag_node("A", 50, 50)
        await session.close(discard=True)
        assert store.write_count == 0
        assert session.node("A").x == 50

    @pytest.mark.asyncio
    async def test_flush_writes_pending_positions_now(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES, debounce_delay=10)
        session.drag_node("A", 5, 6)
        session.drag_node("B", 7, 8)
        assert session.pending_position_writes == {"A", "B"}
        await session.flush()
        assert store.write_count == 2
        assert session.pending_position_writes == set()

    @pytest.mark.asyncio
    async def test_write_failure_notifies_without_rollback(self, session_factory):
        session, store, notices = await session_factory(THREE_NODES, debounce_delay=10)
        session.drag_node("A", 5, 6)
        store.fail_next()
        await session.flush()
        assert session.node("A").x == 5
        assert notices[-1].title == "Error saving node position"

    @pytest.mark.asyncio
    async def test_deleting_node_cancels_pending_write(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES, debounce_delay=10)
        session.drag_node("B", 5, 6)
        await session.delete_node("B")
        await session.flush()
        assert store.peek(nodes_of(GRAPH_ID), "B") is None

    @pytest.mark.asyncio
    async def test_unknown_node_is_ignored(self, session_factory):
        session, _, _ = await session_factory(THREE_NODES, debounce_delay=10)
        session.drag_node("Z", 1, 1)
        assert session.pending_position_writes == set()


# ============================================================================
# Edges
# ============================================================================


class TestEdges:
    @pytest.mark.asyncio
    async def test_add_edge(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        edge = await session.add_edge("A", "B", "causes")
        assert session.edges == [edge]
        assert store.peek(edges_of(GRAPH_ID), edge.id)["label"] == "causes"

    @pytest.mark.asyncio
    async def test_self_loop_rejected(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        with pytest.raises(ValidationError):
            await session.add_edge("A", "A", "self")
        assert store.write_count == 0

    @pytest.mark.asyncio
    async def test_unknown_endpoint_rejected(self, session_factory):
        session, _, _ = await session_factory(THREE_NODES)
        with pytest.raises(ValidationError):
            await session.add_edge("A", "Z", "x")
        assert session.edges == []

    @pytest.mark.asyncio
    async def test_update_and_delete_edge(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES, TRIANGLE)
        await session.update_edge("ab", "depends on")
        assert session.edge("ab").label == "depends on"
        assert store.peek(edges_of(GRAPH_ID), "ab")["label"] == "depends on"
        await session.delete_edge("ab")
        assert session.edge("ab") is None
        assert store.peek(edges_of(GRAPH_ID), "ab") is None

    @pytest.mark.asyncio
    async def test_add_edge_failure_rolls_back(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        store.fail_next()
        with pytest.raises(PersistenceError):
            await session.add_edge("A", "B", "x")
        assert session.edges == []


# ============================================================================
# Layout positions & metadata
# ============================================================================


class TestApplyPositions:
    @pytest.mark.asyncio
    async def test_skips_unknown_nodes(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        moved = await session.apply_positions([
            LayoutPosition(node_id="A", x=11, y=12),
            LayoutPosition(node_id="Z", x=0, y=0),
        ])
        assert moved == 1
        assert (session.node("A").x, session.node("A").y) == (11, 12)
        assert store.peek(nodes_of(GRAPH_ID), "A")["x"] == 11


class TestMetadata:
    @pytest.mark.asyncio
    async def test_rename(self, session_factory):
        session, store, _ = await session_factory()
        await session.update_metadata(name="Renamed", is_public=True)
        doc = store.peek(graphs(), GRAPH_ID)
        assert (doc["name"], doc["isPublic"]) == ("Renamed", True)

    @pytest.mark.asyncio
    async def test_rename_failure_rolls_back(self, session_factory):
        session, store, _ = await session_factory()
        store.fail_next()
        with pytest.raises(PersistenceError):
            await session.update_metadata(name="Renamed")
        assert session.metadata.name == "Test graph"


# ============================================================================
# Suggestions
# ============================================================================


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_filters_invalid_candidates(self, session_factory):
        session, _, _ = await session_factory(THREE_NODES, TRIANGLE[:1])
        accepted = session.set_suggestions([
            ("A", "C", "both letters"),
            ("A", "A", "self"),
            ("A", "Z", "unknown"),
            ("A", "B", "already linked"),
        ])
        assert [(s.source, s.target) for s in accepted] == [("A", "C")]
        assert accepted[0].id.startswith("sugg-")

    @pytest.mark.asyncio
    async def test_confirm_promotes_to_edge(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        [link] = session.set_suggestions([("A", "C", "similar")])
        edge = await session.confirm_suggestion(link.id)
        assert (edge.source, edge.target, edge.label) == ("A", "C", "similar")
        assert session.suggestions == []
        assert store.count(edges_of(GRAPH_ID)) == 1

    @pytest.mark.asyncio
    async def test_failed_confirm_keeps_suggestion(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        [link] = session.set_suggestions([("A", "C", "similar")])
        store.fail_next()
        with pytest.raises(PersistenceError):
            await session.confirm_suggestion(link.id)
        assert [s.id for s in session.suggestions] == [link.id]
        assert session.edges == []

        edge = await session.confirm_suggestion(link.id)
        assert edge.label == "similar"
        assert session.suggestions == []

    @pytest.mark.asyncio
    async def test_dismiss_discards(self, session_factory):
        session, store, _ = await session_factory(THREE_NODES)
        [link] = session.set_suggestions([("A", "C", "similar")])
        session.dismiss_suggestion(link.id)
        assert session.suggestions == []
        assert store.write_count == 0

    @pytest.mark.asyncio
    async def test_unknown_suggestion(self, session_factory):
        session, _, _ = await session_factory(THREE_NODES)
        with pytest.raises(ValidationError):
            session.dismiss_suggestion("sugg-404")
