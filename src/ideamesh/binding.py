"""Wires a GraphCanvas to a GraphSession.

Canvas intents arrive as plain calls from the input handlers; the session
mutations behind them are coroutines, so the listener runs them as tasks on
the current loop and keeps the outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from .canvas import CanvasListener, GraphCanvas
from .errors import IdeaMeshError
from .reconciler import DEFAULT_LINK_LABEL
from .session import GraphSession, Notifier
from .types import CanvasOptions, Edge, Notice

logger = logging.getLogger(__name__)


class SessionCanvasListener(CanvasListener):
    """Turns canvas gestures into session mutations.

    - ``node_moved`` moves the node locally and schedules its debounced write.
    - ``node_drag_committed`` writes the final position right away.
    - ``link_requested`` persists a new edge labelled ``link_label``.

    Failures the session reports itself (validation, persistence) are kept in
    ``errors``; anything else is logged and sent to ``notifier``.
    """

    def __init__(
        self,
        session: GraphSession,
        *,
        link_label: str = DEFAULT_LINK_LABEL,
        notifier: Notifier | None = None,
        on_select: Callable[[str | None], None] | None = None,
    ) -> None:
        self.session = session
        self.link_label = link_label
        self.selected_node_id: str | None = None
        self.created_edges: list[Edge] = []
        self.errors: list[BaseException] = []
        self._notifier = notifier
        self._on_select = on_select
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def node_selected(self, node_id: str | None) -> None:
        self.selected_node_id = node_id
        if self._on_select is not None:
            self._on_select(node_id)

    def node_moved(self, node_id: str, x: float, y: float) -> None:
        self.session.drag_node(node_id, x, y)

    def node_drag_committed(self, node_id: str, x: float, y: float) -> None:
        self.session.drag_node(node_id, x, y)
        self._spawn(self.session.flush())

    def link_requested(self, source_id: str, target_id: str) -> None:
        self._spawn(self.session.add_edge(source_id, target_id, self.link_label))

    async def drain(self) -> None:
        """Wait for every mutation started by a gesture."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            result = task.result()
            if isinstance(result, Edge):
                self.created_edges.append(result)
            return
        self.errors.append(exc)
        if isinstance(exc, IdeaMeshError):
            # The session already sent its own notice
            return
        logger.error("Canvas action failed", exc_info=exc)
        if self._notifier is not None:
            self._notifier(Notice(level="error", title="Error", description=str(exc)))


def bind_canvas(
    session: GraphSession,
    *,
    options: CanvasOptions | None = None,
    link_label: str = DEFAULT_LINK_LABEL,
    notifier: Notifier | None = None,
) -> tuple[GraphCanvas, SessionCanvasListener]:
    """A canvas drawing ``session`` whose gestures mutate it."""
    listener = SessionCanvasListener(session, link_label=link_label, notifier=notifier)
    return GraphCanvas(session, listener, options), listener
