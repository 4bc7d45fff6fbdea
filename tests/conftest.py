"""Shared fixtures: an in-memory ArchiveStore and a recording embedder."""

from __future__ import annotations

from typing import Any

import pytest

from archive_search.filters import Filter, FilterOp
from archive_search.models import StoreObject
from archive_search.search_config import RecordType


def matches(row: dict[str, Any], filters: Filter | None) -> bool:
    """Evaluate a Filter against a plain row the way the datastore would."""
    if filters is None:
        return True
    for p in filters.predicates:
        actual = row.get(p.field)
        if p.op is FilterOp.EQUAL and actual != p.value:
            return False
        if p.op is FilterOp.NOT_EQUAL and actual == p.value:
            return False
        if p.op is FilterOp.IN and actual not in p.value:
            return False
        if p.op is FilterOp.CONTAINS_ANY and not set(actual or []) & set(p.value):
            return False
    return True


class FakeStore:
    """In-memory store recording every call it receives."""

    def __init__(self) -> None:
        self.rows: dict[RecordType, list[dict[str, Any]]] = {
            RecordType.CHUNKS: [],
            RecordType.TESTIMONIES: [],
        }
        self.bm25_results: list[StoreObject] = []
        self.vector_results: list[StoreObject] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fetch_error: Exception | None = None

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    def bm25_query(self, record_type, term, filters, limit, offset=0, properties=None):  # type: ignore[no-untyped-def]
        self.calls.append(("bm25_query", {"term": term, "filters": filters, "limit": limit, "offset": offset}))
        return list(self.bm25_results)

    def near_vector_query(self, record_type, vector, filters, limit, offset=0, properties=None):  # type: ignore[no-untyped-def]
        self.calls.append(
            ("near_vector_query", {"vector": vector, "filters": filters, "limit": limit, "offset": offset})
        )
        return list(self.vector_results)

    def fetch_objects(self, record_type, filters, limit, offset=0, properties=None):  # type: ignore[no-untyped-def]
        self.calls.append(
            (
                "fetch_objects",
                {
                    "record_type": record_type,
                    "filters": filters,
                    "limit": limit,
                    "offset": offset,
                    "properties": properties,
                },
            )
        )
        if self.fetch_error is not None:
            raise self.fetch_error
        matching = [r for r in self.rows[record_type] if matches(r, filters)]
        return [
            StoreObject(id=r["id"], properties={k: v for k, v in r.items() if k != "id"})
            for r in matching[offset : offset + limit]
        ]

    def fetch_by_id(self, record_type, object_id):  # type: ignore[no-untyped-def]
        self.calls.append(("fetch_by_id", {"record_type": record_type, "id": object_id}))
        for r in self.rows[record_type]:
            if r["id"] == object_id:
                return StoreObject(id=r["id"], properties={k: v for k, v in r.items() if k != "id"})
        return None


class FakeEmbedder:
    """Returns a fixed vector and remembers the texts it was asked to embed."""

    def __init__(self, vector: list[float] | None = None, error: Exception | None = None) -> None:
        self.vector = vector or [0.1, 0.2, 0.3]
        self.error = error
        self.texts: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return list(self.vector)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


def chunk_obj(
    id: str,
    start_time: float | None,
    score: float | None = None,
    certainty: float | None = None,
    **props: Any,
) -> StoreObject:
    """Build a chunk-shaped StoreObject for search results."""
    properties: dict[str, Any] = {"transcription": f"text {id}", **props}
    if start_time is not None:
        properties["start_time"] = start_time
        properties.setdefault("end_time", start_time + 5.0)
    return StoreObject(id=id, properties=properties, score=score, certainty=certainty)
