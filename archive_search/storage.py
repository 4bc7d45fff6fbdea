"""Supabase-backed datastore: lexical, nearest-vector and filtered fetches.

Lexical and vector search run through two Postgres functions exposed as
Supabase RPCs:

- ``bm25_search(target_table, query_text, filters, match_count, match_offset)``
  returning rows with ``id``, the record columns and ``score``.
- ``match_chunks(target_table, query_embedding, filters, match_count, match_offset)``
  returning rows with ``id``, the record columns and ``similarity``
  (or ``certainty``/``distance``).

``filters`` is the JSON form of :class:`archive_search.filters.Filter`.
Plain fetches go through PostgREST table queries.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, cast

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from archive_search.config import settings
from archive_search.errors import DependencyUnavailable
from archive_search.filters import Filter, FilterOp
from archive_search.models import StoreObject
from archive_search.search_config import RecordType

logger = logging.getLogger(__name__)

# Columns that carry search metadata rather than record properties
_METADATA_COLUMNS = frozenset({"id", "score", "certainty", "distance", "similarity"})


class ArchiveStore(Protocol):
    """The datastore operations the retrieval core depends on."""

    def bm25_query(
        self,
        record_type: RecordType,
        term: str,
        filters: Filter | None,
        limit: int,
        offset: int = 0,
        properties: tuple[str, ...] | None = None,
    ) -> list[StoreObject]: ...

    def near_vector_query(
        self,
        record_type: RecordType,
        vector: list[float],
        filters: Filter | None,
        limit: int,
        offset: int = 0,
        properties: tuple[str, ...] | None = None,
    ) -> list[StoreObject]: ...

    def fetch_objects(
        self,
        record_type: RecordType,
        filters: Filter | None,
        limit: int,
        offset: int = 0,
        properties: tuple[str, ...] | None = None,
    ) -> list[StoreObject]: ...

    def fetch_by_id(self, record_type: RecordType, object_id: str) -> StoreObject | None: ...


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    if not settings.supabase_url or not settings.supabase_key:
        raise DependencyUnavailable("datastore", "SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(settings.supabase_url, settings.supabase_key)


def apply_filter(query: Any, filters: Filter | None) -> Any:
    """Translate a Filter into chained PostgREST predicates."""
    if filters is None:
        return query
    for p in filters.predicates:
        if p.op is FilterOp.EQUAL:
            query = query.eq(p.field, p.value)
        elif p.op is FilterOp.NOT_EQUAL:
            query = query.neq(p.field, p.value)
        elif p.op is FilterOp.IN:
            query = query.in_(p.field, list(p.value))
        else:
            query = query.overlaps(p.field, list(p.value))
    return query


def _float_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def row_to_object(row: Any, properties: tuple[str, ...] | None = None) -> StoreObject | None:
    """Convert one result row to a StoreObject; ``None`` if the row is malformed."""
    if not isinstance(row, dict) or not row.get("id"):
        return None
    props = {k: v for k, v in row.items() if k not in _METADATA_COLUMNS}
    if properties:
        props = {k: v for k, v in props.items() if k in properties}

    certainty = _float_or_none(row.get("certainty"))
    if certainty is None:
        certainty = _float_or_none(row.get("similarity"))
    distance = _float_or_none(row.get("distance"))
    if certainty is None and distance is not None:
        # cosine distance lies in [0, 2]
        certainty = 1.0 - distance / 2.0

    return StoreObject(
        id=str(row["id"]),
        properties=props,
        score=_float_or_none(row.get("score")),
        certainty=certainty,
        distance=distance,
    )


def rows_to_objects(data: Any, properties: tuple[str, ...] | None = None) -> list[StoreObject]:
    """Convert a response payload to StoreObjects, skipping malformed rows."""
    if not isinstance(data, list):
        if data is not None:
            logger.warning("Ignoring malformed datastore payload of type %s", type(data).__name__)
        return []
    objects = [row_to_object(row, properties) for row in data]
    return [o for o in objects if o is not None]


class SupabaseArchiveStore:
    """ArchiveStore implementation over Supabase (PostgREST + pgvector)."""

    dependency = "datastore"

    def __init__(self, client: Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    @staticmethod
    def table_name(record_type: RecordType) -> str:
        if record_type is RecordType.TESTIMONIES:
            return settings.recordings_table
        return settings.chunks_table

    def _execute(self, request: Any, what: str) -> Any:
        try:
            result = request.execute()
        except (APIError, httpx.HTTPError) as exc:
            logger.warning("Datastore %s failed: %s", what, exc)
            raise DependencyUnavailable(self.dependency, f"{what} failed: {exc}") from exc
        # Supabase .data is typed as JSON (broad union); narrow per call site.
        return cast(Any, result).data

    def bm25_query(
        self,
        record_type: RecordType,
        term: str,
        filters: Filter | None,
        limit: int,
        offset: int = 0,
        properties: tuple[str, ...] | None = None,
    ) -> list[StoreObject]:
        if limit <= 0:
            return []
        data = self._execute(
            self.client.rpc(
                "bm25_search",
                {
                    "target_table": self.table_name(record_type),
                    "query_text": term,
                    "filters": filters.to_json() if filters else [],
                    "match_count": limit,
                    "match_offset": offset,
                },
            ),
            "bm25 query",
        )
        return rows_to_objects(data, properties)

    def near_vector_query(
        self,
        record_type: RecordType,
        vector: list[float],
        filters: Filter | None,
        limit: int,
        offset: int = 0,
        properties: tuple[str, ...] | None = None,
    ) -> list[StoreObject]:
        if limit <= 0:
            return []
        data = self._execute(
            self.client.rpc(
                "match_chunks",
                {
                    "target_table": self.table_name(record_type),
                    "query_embedding": vector,
                    "filters": filters.to_json() if filters else [],
                    "match_count": limit,
                    "match_offset": offset,
                },
            ),
            "near-vector query",
        )
        return rows_to_objects(data, properties)

    def fetch_objects(
        self,
        record_type: RecordType,
        filters: Filter | None,
        limit: int,
        offset: int = 0,
        properties: tuple[str, ...] | None = None,
    ) -> list[StoreObject]:
        if limit <= 0:
            return []
        columns = ",".join(["id", *[p for p in properties if p != "id"]]) if properties else "*"
        query = self.client.table(self.table_name(record_type)).select(columns)
        query = apply_filter(query, filters)
        # Stable order keeps offset pagination deterministic
        query = query.order("id").range(offset, offset + limit - 1)
        return rows_to_objects(self._execute(query, "fetch"))

    def fetch_by_id(self, record_type: RecordType, object_id: str) -> StoreObject | None:
        if not object_id:
            return None
        query = (
            self.client.table(self.table_name(record_type)).select("*").eq("id", object_id).limit(1)
        )
        objects = rows_to_objects(self._execute(query, "fetch by id"))
        return objects[0] if objects else None
