"""
In-memory document storage.

The engine reads documents (text for re-ranking and highlighting, metadata
for filter pushdown) but never mutates them. InMemoryDocumentStore is the
reference implementation used by tests and local runs; it also serves as
the lexical corpus and the backing data of InMemoryVectorClient.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from src.search.types import Document


def matches_filter(metadata: dict[str, Any], filter_conditions: dict[str, Any] | None) -> bool:
    """Equality match of every filter key against document metadata."""
    if not filter_conditions:
        return True
    return all(metadata.get(key) == value for key, value in filter_conditions.items())


class InMemoryDocumentStore:
    """Dictionary-backed document store.

    Based on the FakeRepository pattern: same interface as a real store,
    no infrastructure. Implements DocumentStoreProtocol and CorpusProtocol.
    """

    def __init__(self, documents: Iterable[Document] | None = None) -> None:
        self._documents: dict[str, Document] = {}
        for document in documents or []:
            self.add(document)

    def add(self, document: Document) -> None:
        self._documents[document.id] = document

    def __len__(self) -> int:
        return len(self._documents)

    async def get_documents(self, ids: list[str]) -> dict[str, Document]:
        await asyncio.sleep(0)  # Yield to event loop
        return {doc_id: self._documents[doc_id] for doc_id in ids if doc_id in self._documents}

    async def documents(
        self,
        filter_conditions: dict[str, Any] | None = None,
    ) -> list[Document]:
        await asyncio.sleep(0)  # Yield to event loop
        return [
            document
            for document in self._documents.values()
            if matches_filter(document.metadata, filter_conditions)
        ]
