"""Pytest configuration and fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ideamesh.ai.flows import ChatReply, GraphAI
from ideamesh.export import edge_to_dict, node_to_dict
from ideamesh.session import GraphSession
from ideamesh.store import MemoryStore, edges_of, graphs, nodes_of
from ideamesh.types import Edge, Node, Notice

GRAPH_ID = "g1"
OWNER_ID = "u1"


def seed_store(
    nodes: list[Node] | tuple = (),
    edges: list[Edge] | tuple = (),
    owner: str = OWNER_ID,
    store: MemoryStore | None = None,
) -> MemoryStore:
    store = store if store is not None else MemoryStore()
    store.seed(graphs(), GRAPH_ID, {
        "name": "Test graph",
        "ownerId": owner,
        "isPublic": False,
        "nodeCount": len(nodes),
    })
    for n in nodes:
        store.seed(nodes_of(GRAPH_ID), n.id, node_to_dict(n))
    for e in edges:
        store.seed(edges_of(GRAPH_ID), e.id, edge_to_dict(e))
    return store


@pytest.fixture
def session_factory():
    """Factory building a loaded session over a seeded MemoryStore.

    Returns ``(session, store, notices)``.
    """

    async def factory(nodes=(), edges=(), debounce_delay=0.01, **kwargs):
        store = seed_store(nodes, edges)
        notices: list[Notice] = []
        session = GraphSession(
            store,
            GRAPH_ID,
            notifier=notices.append,
            debounce_delay=debounce_delay,
            **kwargs,
        )
        await session.load(OWNER_ID)
        return session, store, notices

    return factory


@pytest.fixture
def mock_ai() -> GraphAI:
    """GraphAI double whose flows are AsyncMocks with harmless defaults."""
    ai = MagicMock(spec=GraphAI)
    ai.chat = AsyncMock(return_value=ChatReply(text="Sure."))
    ai.summarize = AsyncMock(return_value="A graph about ideas.")
    ai.suggest_links = AsyncMock(return_value=[])
    ai.smart_search = AsyncMock(return_value=[])
    ai.rearrange = AsyncMock(return_value=[])
    return ai
