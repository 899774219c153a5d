"""AI flows over a graph: chat, summarize, suggest links, smart search, rearrange.

Each flow builds a prompt from the graph, calls the LLM and validates the
reply with a pydantic model. Any transport or validation problem surfaces as
``AIServiceError``.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import AIServiceError
from ..export import to_json
from ..types import ChatMessage, Edge, LayoutPosition, Node, ToolCall
from .client import LLMClient
from .tools import GRAPH_TOOLS

logger = logging.getLogger(__name__)

EMPTY_HISTORY_REPLY = "Hello! How can I help you with your graph today?"
EMPTY_REPLY_FALLBACK = "I am having trouble thinking of a response. Could you try rephrasing?"


# ============================================================================
# Reply models
# ============================================================================


class SummaryReply(BaseModel):
    summary: str


class LinkSuggestionItem(BaseModel):
    source: str
    target: str
    reason: str = ""


class LinkSuggestionsReply(BaseModel):
    links: list[LinkSuggestionItem] = Field(default_factory=list)


class SearchReply(BaseModel):
    suggestions: list[str] = Field(default_factory=list)


class PositionItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_id: str = Field(alias="nodeId")
    x: float
    y: float


class RearrangeReply(BaseModel):
    positions: list[PositionItem] = Field(default_factory=list)


@dataclass(slots=True)
class ChatReply:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)


def _validate(model: type[BaseModel], data: Any, flow: str) -> Any:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.error("Malformed %s reply: %s", flow, e)
        raise AIServiceError(f"Malformed {flow} reply") from e


# ============================================================================
# Prompts
# ============================================================================

CHAT_SYSTEM = """You are IdeaMesh AI, a friendly assistant inside a knowledge graph editor.
Answer questions about the ideas in the user's graph and discuss them.

You can change the graph with the tools provided: create, update and delete
nodes, add, relabel and delete edges, and rearrange the layout. When you create
several nodes and link them in the same reply, give each new node a tempId and
use those tempIds in addEdge. Edge IDs for updates and deletions are in the
graph data.

Current graph:
{graph}"""

SUMMARIZE_PROMPT = """You are an expert in distilling complex information into concise summaries.
Analyze the idea graph below and summarize its main themes, important
connections and significant conclusions for someone unfamiliar with it.

Graph data:
{graph}

Reply with a JSON object: {{"summary": "..."}}"""

SUGGEST_LINKS_PROMPT = """You help a user discover connections between ideas in their graph.

Nodes:
{nodes}

Existing links:
{links}

Suggest new links between nodes that do not already exist, and explain the
reasoning behind each one. Reply with a JSON object:
{{"links": [{{"source": "<node id>", "target": "<node id>", "reason": "..."}}]}}"""

SMART_SEARCH_PROMPT = """You provide smart search suggestions for an idea graph.
The user is searching for: {term}

Graph context:
{context}

Suggest the titles of nodes the user might be interested in. Reply with a
JSON object: {{"suggestions": ["<node title>", ...]}}"""

REARRANGE_PROMPT = """You arrange the nodes of an idea graph so that its structure is easy to read.
Infer hierarchies and sequences from titles, content and edge labels and lay
them out top-to-bottom or left-to-right. Each node occupies about 180x120 px:
never overlap nodes, minimize edge crossings, keep related nodes close and
stay well within the canvas with a margin.{center}

Nodes: {nodes}
Edges: {edges}
Canvas size: {canvas}

Reply with a JSON object: {{"positions": [{{"nodeId": "...", "x": 0, "y": 0}}]}}"""


def _graph_context(nodes: Sequence[Node], edges: Sequence[Edge]) -> str:
    titles = {n.id: n.title for n in nodes}
    lines = [f"Node: {n.title}" for n in nodes]
    for e in edges:
        if e.source in titles and e.target in titles:
            lines.append(f"{titles[e.source]} --[{e.label}]--> {titles[e.target]}")
    return "\n".join(lines)


class GraphAI:
    """The AI operations the assistant offers, bound to one LLM client."""

    def __init__(self, client: LLMClient | None = None) -> None:
        self.client = client or LLMClient()

    async def chat(
        self,
        history: Sequence[ChatMessage],
        nodes: Sequence[Node],
        edges: Sequence[Edge],
    ) -> ChatReply:
        if not history:
            return ChatReply(text=EMPTY_HISTORY_REPLY)

        messages: list[dict[str, Any]] = [
            {"role": "system", "content": CHAT_SYSTEM.format(graph=to_json(nodes, edges))}
        ]
        for msg in history:
            role = "user" if msg.role == "user" else "assistant"
            messages.append({"role": role, "content": msg.text})

        completion = await self.client.complete(messages, tools=GRAPH_TOOLS)
        tool_calls = [
            ToolCall(name=c.name, args=c.args, id=c.id or uuid.uuid4().hex)
            for c in completion.tool_calls
        ]
        logger.info("Chat reply with %d tool call(s)", len(tool_calls))
        return ChatReply(
            text=completion.text.strip() or EMPTY_REPLY_FALLBACK,
            tool_calls=tool_calls,
        )

    async def summarize(self, nodes: Sequence[Node], edges: Sequence[Edge]) -> str:
        prompt = SUMMARIZE_PROMPT.format(graph=to_json(nodes, edges))
        data = await self.client.complete_json([{"role": "user", "content": prompt}])
        return _validate(SummaryReply, data, "summary").summary

    async def suggest_links(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
    ) -> list[tuple[str, str, str]]:
        """Candidate ``(source, target, reason)`` links between existing nodes."""
        node_lines = "\n".join(
            f"- ID: {n.id}\n  Title: {n.title}\n  Content: {n.content}" for n in nodes
        )
        link_lines = "\n".join(
            f"- Source: {e.source}, Target: {e.target}, Label: {e.label}" for e in edges
        ) or "There are no existing links."
        prompt = SUGGEST_LINKS_PROMPT.format(nodes=node_lines, links=link_lines)

        data = await self.client.complete_json([{"role": "user", "content": prompt}])
        if isinstance(data, list):
            data = {"links": data}
        reply = _validate(LinkSuggestionsReply, data, "link suggestion")
        return [(item.source, item.target, item.reason) for item in reply.links]

    async def smart_search(
        self,
        term: str,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
    ) -> list[str]:
        """Titles of nodes related to ``term``."""
        prompt = SMART_SEARCH_PROMPT.format(term=term, context=_graph_context(nodes, edges))
        data = await self.client.complete_json([{"role": "user", "content": prompt}])
        if isinstance(data, list):
            data = {"suggestions": data}
        return _validate(SearchReply, data, "search").suggestions

    async def rearrange(
        self,
        nodes: Sequence[Node],
        edges: Sequence[Edge],
        canvas_width: float,
        canvas_height: float,
        center_node_id: str | None = None,
    ) -> list[LayoutPosition]:
        center = ""
        if center_node_id is not None:
            center = f"\nPlace the node with id {center_node_id} at the center of the canvas."
        prompt = REARRANGE_PROMPT.format(
            center=center,
            nodes=json.dumps([
                {"id": n.id, "title": n.title, "content": n.content, "x": n.x, "y": n.y}
                for n in nodes
            ]),
            edges=json.dumps([
                {"source": e.source, "target": e.target, "label": e.label} for e in edges
            ]),
            canvas=json.dumps({"width": canvas_width, "height": canvas_height}),
        )
        data = await self.client.complete_json([{"role": "user", "content": prompt}])
        if isinstance(data, list):
            data = {"positions": data}
        reply = _validate(RearrangeReply, data, "layout")
        return [LayoutPosition(node_id=p.node_id, x=p.x, y=p.y) for p in reply.positions]
