"""Document store seen by the session controller.

The real backend is a hosted document database; the engine only needs the
small surface below. ``MemoryStore`` implements it in-process and is what the
tests and local tooling run against.
"""

from __future__ import annotations

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

from .errors import StoreError

logger = logging.getLogger(__name__)

Collection = tuple[str, ...]
Document = dict[str, Any]

WriteKind = Literal["set", "update", "delete"]


@dataclass(slots=True)
class WriteOp:
    kind: WriteKind
    collection: Collection
    doc_id: str
    data: Document = field(default_factory=dict)
    merge: bool = False


def graphs() -> Collection:
    return ("graphs",)


def nodes_of(graph_id: str) -> Collection:
    return ("graphs", graph_id, "nodes")


def edges_of(graph_id: str) -> Collection:
    return ("graphs", graph_id, "edges")


class WriteBatch:
    """Collects writes and applies them all-or-nothing on ``commit``."""

    def __init__(self, store: Store) -> None:
        self._store = store
        self._ops: list[WriteOp] = []
        self._committed = False

    @property
    def ops(self) -> list[WriteOp]:
        return list(self._ops)

    def set(
        self, collection: Collection, doc_id: str, data: Document, merge: bool = False
    ) -> WriteBatch:
        self._ops.append(WriteOp("set", collection, doc_id, dict(data), merge))
        return self

    def update(self, collection: Collection, doc_id: str, fields: Document) -> WriteBatch:
        self._ops.append(WriteOp("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: Collection, doc_id: str) -> WriteBatch:
        self._ops.append(WriteOp("delete", collection, doc_id))
        return self

    async def commit(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        self._committed = True
        await self._store.commit_batch(self._ops)


class Store(ABC):
    @abstractmethod
    async def get(self, collection: Collection, doc_id: str) -> Document | None: ...

    @abstractmethod
    async def query(self, collection: Collection, field_name: str, value: Any) -> list[Document]:
        """Documents whose ``field_name`` equals ``value``; each carries its ``id``."""

    @abstractmethod
    async def get_all(self, collection: Collection) -> list[Document]: ...

    @abstractmethod
    async def set(
        self, collection: Collection, doc_id: str, data: Document, merge: bool = False
    ) -> None: ...

    @abstractmethod
    async def update(self, collection: Collection, doc_id: str, fields: Document) -> None:
        """Patch fields of an existing document; missing documents are an error."""

    @abstractmethod
    async def delete(self, collection: Collection, doc_id: str) -> None: ...

    @abstractmethod
    async def commit_batch(self, ops: list[WriteOp]) -> None:
        """Apply every op or none of them."""

    def new_id(self, collection: Collection) -> str:
        return uuid.uuid4().hex[:20]

    def batch(self) -> WriteBatch:
        return WriteBatch(self)


class MemoryStore(Store):
    """In-process store with all-or-nothing batches and fault injection."""

    def __init__(self) -> None:
        self._data: dict[Collection, dict[str, Document]] = {}
        self._failures: list[Exception] = []
        self.write_log: list[WriteOp] = []
        self.commit_count = 0

    def fail_next(self, count: int = 1, error: Exception | None = None) -> None:
        """Make the next ``count`` write calls (single or batch) raise."""
        for _ in range(count):
            self._failures.append(error or StoreError("Injected store failure"))

    @property
    def write_count(self) -> int:
        return len(self.write_log)

    def seed(self, collection: Collection, doc_id: str, data: Document) -> None:
        self._data.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def peek(self, collection: Collection, doc_id: str) -> Document | None:
        doc = self._data.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def count(self, collection: Collection) -> int:
        return len(self._data.get(collection, {}))

    async def get(self, collection: Collection, doc_id: str) -> Document | None:
        doc = self.peek(collection, doc_id)
        if doc is not None:
            doc["id"] = doc_id
        return doc

    async def query(self, collection: Collection, field_name: str, value: Any) -> list[Document]:
        return [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in self._data.get(collection, {}).items()
            if doc.get(field_name) == value
        ]

    async def get_all(self, collection: Collection) -> list[Document]:
        return [
            {**copy.deepcopy(doc), "id": doc_id}
            for doc_id, doc in self._data.get(collection, {}).items()
        ]

    async def set(
        self, collection: Collection, doc_id: str, data: Document, merge: bool = False
    ) -> None:
        await self.commit_batch([WriteOp("set", collection, doc_id, dict(data), merge)])

    async def update(self, collection: Collection, doc_id: str, fields: Document) -> None:
        await self.commit_batch([WriteOp("update", collection, doc_id, dict(fields))])

    async def delete(self, collection: Collection, doc_id: str) -> None:
        await self.commit_batch([WriteOp("delete", collection, doc_id)])

    async def commit_batch(self, ops: list[WriteOp]) -> None:
        if self._failures:
            raise self._failures.pop(0)

        staged = {name: dict(docs) for name, docs in self._data.items()}
        for op in ops:
            docs = staged.setdefault(op.collection, {})
            if op.kind == "set":
                if op.merge and op.doc_id in docs:
                    docs[op.doc_id] = {**docs[op.doc_id], **copy.deepcopy(op.data)}
                else:
                    docs[op.doc_id] = copy.deepcopy(op.data)
            elif op.kind == "update":
                if op.doc_id not in docs:
                    raise StoreError(f"No document to update: {'/'.join(op.collection)}/{op.doc_id}")
                docs[op.doc_id] = {**docs[op.doc_id], **copy.deepcopy(op.data)}
            else:
                docs.pop(op.doc_id, None)

        self._data = staged
        self.write_log.extend(ops)
        self.commit_count += 1
        logger.debug("Committed %d write(s)", len(ops))
