"""The AI assistant attached to one graph session.

Runs chat turns (reply plus reconciled tool calls), summaries, link
suggestions, smart search and rearranging. AI failures are reported as
notices and chat error bubbles; they never leave the assistant busy.
"""

from __future__ import annotations

import logging
import uuid
from typing import Literal

from .ai.flows import GraphAI
from .canvas import GraphCanvas
from .errors import AIServiceError, AssistantBusyError, ValidationError
from .layout import layered_positions
from .reconciler import ReconcileResult, ToolCallReconciler
from .session import GraphSession, Notifier
from .types import ChatMessage, LayoutPosition, Notice, SuggestedLink, ToolCall

logger = logging.getLogger(__name__)

CHAT_ERROR_TEXT = "Sorry, I encountered an error. Please try again."
SUMMARY_PREFIX = "Here's a summary of your graph:\n\n"
NO_SUGGESTIONS_TEXT = "I couldn't find any new link suggestions right now."

SummaryTarget = Literal["dialog", "chat"]
SuggestionTarget = Literal["toast", "chat"]


def suggestions_found_text(count: int) -> str:
    plural = "" if count == 1 else "s"
    return (
        f"I've found {count} new link suggestion{plural} and displayed them "
        "on the graph for you to review."
    )


class GraphAssistant:
    def __init__(
        self,
        session: GraphSession,
        ai: GraphAI,
        *,
        canvas: GraphCanvas | None = None,
        notifier: Notifier | None = None,
        use_ai_layout: bool = True,
    ) -> None:
        self.session = session
        self.ai = ai
        self.canvas = canvas
        self.use_ai_layout = use_ai_layout
        self.last_result: ReconcileResult | None = None
        self._notifier = notifier
        self._messages: list[ChatMessage] = []
        self._busy = False
        self.reconciler = ToolCallReconciler(session, layout_callback=self._rearrange_tool)

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def chat_messages(self) -> list[ChatMessage]:
        return list(self._messages)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def send_message(self, text: str) -> ChatMessage:
        """Run one chat turn and apply the tool calls in the reply.

        Returns the model's message, or the error bubble when the AI call
        fails. Raises AssistantBusyError while another turn is running.
        """
        if self._busy:
            raise AssistantBusyError("A chat turn is already in progress")
        if not text or not text.strip():
            raise ValidationError("Message is empty")

        self._busy = True
        try:
            self._append("user", text.strip())
            try:
                history = [m for m in self._messages if not m.is_error]
                reply = await self.ai.chat(history, self.session.nodes, self.session.edges)
            except AIServiceError:
                logger.error("Chat turn failed", exc_info=True)
                self._notify("error", "AI Error", "The assistant could not respond.")
                return self._append("model", CHAT_ERROR_TEXT, is_error=True)

            message = self._append("model", reply.text, tool_calls=reply.tool_calls)
            if reply.tool_calls:
                self.last_result = await self.reconciler.reconcile(reply.tool_calls)
                if self.last_result.failed or self.last_result.dropped_edges:
                    self._notify(
                        "error",
                        "Some changes could not be applied",
                        f"{len(self.last_result.failed)} failed, "
                        f"{len(self.last_result.dropped_edges)} link(s) dropped.",
                    )
            return message
        finally:
            self._busy = False

    def clear_chat(self) -> None:
        self._messages = []

    # ------------------------------------------------------------------
    # Summary & suggestions
    # ------------------------------------------------------------------

    async def summarize(self, target: SummaryTarget = "dialog") -> str | None:
        try:
            summary = await self.ai.summarize(self.session.nodes, self.session.edges)
        except AIServiceError:
            logger.error("Summary failed", exc_info=True)
            self._notify("error", "Error", "Failed to summarize graph.")
            if target == "chat":
                self._append("model", CHAT_ERROR_TEXT, is_error=True)
            return None

        if target == "chat":
            self._append("model", SUMMARY_PREFIX + summary)
        return summary

    async def suggest_links(self, target: SuggestionTarget = "toast") -> list[SuggestedLink]:
        try:
            candidates = await self.ai.suggest_links(self.session.nodes, self.session.edges)
        except AIServiceError:
            logger.error("Link suggestion failed", exc_info=True)
            self._notify("error", "Error", "Failed to get link suggestions.")
            if target == "chat":
                self._append("model", CHAT_ERROR_TEXT, is_error=True)
            return []

        accepted = self.session.set_suggestions(candidates)
        if target == "chat":
            text = suggestions_found_text(len(accepted)) if accepted else NO_SUGGESTIONS_TEXT
            self._append("model", text)
        elif accepted:
            self._notify("info", "AI Suggestions", f"Found {len(accepted)} new link suggestions.")
        else:
            self._notify("info", "AI Suggestions", "No new link suggestions found.")
        return accepted

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def smart_search(self, term: str) -> set[str]:
        """Ids of nodes matching ``term`` directly or by AI suggestion.

        The matches become the canvas highlight set when a canvas is attached.
        """
        term = term.strip()
        if not term:
            self._highlight(set())
            return set()

        nodes = self.session.nodes
        needle = term.lower()
        matched = {
            n.id for n in nodes
            if needle in n.title.lower() or needle in n.content.lower()
        }
        try:
            titles = await self.ai.smart_search(term, nodes, self.session.edges)
        except AIServiceError:
            logger.error("Smart search failed", exc_info=True)
            self._notify("error", "Search Error", "Smart search failed; showing direct matches.")
        else:
            wanted = {t.strip().lower() for t in titles}
            matched |= {n.id for n in nodes if n.title.strip().lower() in wanted}

        self._highlight(matched)
        return matched

    def _highlight(self, node_ids: set[str]) -> None:
        if self.canvas is not None:
            self.canvas.set_highlights(node_ids)

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    async def rearrange(
        self,
        center_node_title: str | None = None,
        fallback: bool = True,
    ) -> int:
        """Move every node to a new layout; returns how many nodes moved."""
        nodes = self.session.nodes
        edges = self.session.edges
        if not nodes:
            return 0

        center_id = None
        if center_node_title:
            wanted = center_node_title.strip().lower()
            center_id = next((n.id for n in nodes if n.title.strip().lower() == wanted), None)
            if center_id is None:
                logger.warning("No node titled %r to center the layout on", center_node_title)

        width, height = self.session.canvas_width, self.session.canvas_height
        positions: list[LayoutPosition]
        if self.use_ai_layout:
            try:
                positions = await self.ai.rearrange(nodes, edges, width, height, center_id)
            except AIServiceError:
                logger.error("AI layout failed", exc_info=True)
                if not fallback:
                    self._notify("error", "Error", "Failed to rearrange graph.")
                    return 0
                logger.info("Falling back to layered layout")
                positions = layered_positions(nodes, edges, width, height, center_id)
        else:
            positions = layered_positions(nodes, edges, width, height, center_id)

        moved = await self.session.apply_positions(positions)
        self._notify("info", "Graph rearranged", f"Moved {moved} node(s).")
        return moved

    async def _rearrange_tool(self, center_node_title: str | None) -> None:
        await self.rearrange(center_node_title)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(
        self,
        role: str,
        text: str,
        tool_calls: list[ToolCall] | None = None,
        is_error: bool = False,
    ) -> ChatMessage:
        message = ChatMessage(
            id=uuid.uuid4().hex,
            role=role,
            text=text,
            tool_calls=list(tool_calls or []),
            is_error=is_error,
        )
        self._messages.append(message)
        return message

    def _notify(self, level: str, title: str, description: str = "") -> None:
        if self._notifier is not None:
            self._notifier(Notice(level=level, title=title, description=description))
