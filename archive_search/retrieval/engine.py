"""Retrieval engine: lexical, vector and hybrid search over transcript chunks."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from archive_search.embeddings import EmbeddingClient, get_embedding_client
from archive_search.filters import Filter, build_filter
from archive_search.models import Chunk, RankedResultSet, StoreObject
from archive_search.retrieval.merge import dedupe_by_start_time, fuse_hybrid, hybrid_weights
from archive_search.retrieval.scoring import clamp_unit, in_range, normalize_scores
from archive_search.search_config import (
    DEFAULT_SEARCH_LIMIT,
    RecordType,
    SearchMode,
    SearchRequest,
)
from archive_search.storage import ArchiveStore, SupabaseArchiveStore

logger = logging.getLogger(__name__)


def _rank(chunks: list[Chunk]) -> list[Chunk]:
    # Stable, so equal scores keep backend order
    return sorted(chunks, key=lambda c: c.score, reverse=True)


class RetrievalEngine:
    """Runs one search request end to end.

    The engine holds no per-request state: every call builds its own filter,
    embedding and result set, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        store: ArchiveStore | None = None,
        embedder: EmbeddingClient | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder

    @property
    def store(self) -> ArchiveStore:
        if self._store is None:
            self._store = SupabaseArchiveStore()
        return self._store

    @property
    def embedder(self) -> EmbeddingClient:
        if self._embedder is None:
            self._embedder = get_embedding_client()
        return self._embedder

    def search(self, request: SearchRequest) -> RankedResultSet:
        """Run ``request`` and return a ranked, deduplicated, range-filtered page.

        A blank term or a blank story scope returns an empty result without
        touching the backend.

        Raises:
            DependencyUnavailable: if the embedding service or datastore fails.
        """
        metadata: dict[str, object] = {
            "mode": request.mode.value,
            "record_type": request.record_type.value,
            "limit": request.limit,
            "offset": request.offset,
        }
        if not request.term or not request.term.strip():
            return RankedResultSet(metadata=metadata)
        if request.story_id is not None and not request.story_id.strip():
            logger.warning("Story-scoped search requested with a blank story id; returning nothing")
            return RankedResultSet(metadata=metadata)
        if request.limit == 0:
            return RankedResultSet(metadata=metadata)

        filters = build_filter(request.ner_labels, request.collection_ids, request.story_id)

        if request.mode is SearchMode.LEXICAL:
            ranked = self._lexical(request, filters)
        elif request.mode is SearchMode.VECTOR:
            ranked = self._vector(request, filters)
        else:
            ranked, has_lexical = self._hybrid(request, filters)
            w_vec, w_lex = hybrid_weights(has_lexical)
            metadata["weights"] = {"vector": w_vec, "bm25": w_lex}

        in_bounds = [c for c in ranked if in_range(c.score, request.min_value, request.max_value)]
        chunks = dedupe_by_start_time(in_bounds)[: request.limit]
        return RankedResultSet(chunks=chunks, metadata=metadata)

    def _bm25(self, request: SearchRequest, filters: Filter | None) -> list[StoreObject]:
        return self.store.bm25_query(
            request.record_type,
            request.term,
            filters,
            limit=request.limit,
            offset=request.offset,
            properties=request.properties,
        )

    def _near_vector(self, request: SearchRequest, filters: Filter | None) -> list[StoreObject]:
        vector = self.embedder.embed(request.term)
        return self.store.near_vector_query(
            request.record_type,
            vector,
            filters,
            limit=request.limit,
            offset=request.offset,
            properties=request.properties,
        )

    def _lexical(self, request: SearchRequest, filters: Filter | None) -> list[Chunk]:
        objects = self._bm25(request, filters)
        normalized = normalize_scores([o.score or 0.0 for o in objects])
        chunks = []
        for obj, score in zip(objects, normalized, strict=True):
            chunk = Chunk.from_store_object(obj, score=score)
            chunk.bm25_score = score
            chunks.append(chunk)
        return _rank(chunks)

    def _vector(self, request: SearchRequest, filters: Filter | None) -> list[Chunk]:
        chunks = []
        for obj in self._near_vector(request, filters):
            if obj.certainty is None:
                continue
            certainty = clamp_unit(obj.certainty)
            chunk = Chunk.from_store_object(obj, score=certainty)
            chunk.vector_score = certainty
            chunks.append(chunk)
        return _rank(chunks)

    def _hybrid(self, request: SearchRequest, filters: Filter | None) -> tuple[list[Chunk], bool]:
        # The two sub-queries are independent; fusion waits for both.
        with ThreadPoolExecutor(max_workers=2) as pool:
            lexical_future = pool.submit(self._bm25, request, filters)
            vector_future = pool.submit(self._near_vector, request, filters)
            vector = vector_future.result()
            lexical = lexical_future.result()
        return fuse_hybrid(lexical, vector), bool(lexical)


def search(
    term: str,
    mode: str | SearchMode = SearchMode.HYBRID,
    record_type: str | RecordType = RecordType.CHUNKS,
    limit: int = DEFAULT_SEARCH_LIMIT,
    offset: int = 0,
    ner_labels: list[str] | None = None,
    collection_ids: list[str] | None = None,
    min_value: float | None = None,
    max_value: float | None = None,
    properties: list[str] | None = None,
    engine: RetrievalEngine | None = None,
) -> dict[str, object]:
    """Corpus-wide search taking plain parameters and returning plain data.

    Args:
        term: The raw search term. Blank terms return no results.
        mode: ``"bm25"``, ``"vector"`` or ``"hybrid"`` (string or enum).
        record_type: ``"chunks"`` or ``"testimonies"``.
        limit: Maximum number of results.
        offset: Backend offset for paging.
        ner_labels: Keep hits mentioning any of these entity labels.
        collection_ids: Keep hits from any of these collections.
        min_value: Lower bound on the final score.
        max_value: Upper bound on the final score.
        properties: Optional list of properties to return.

    Returns:
        ``{"objects": [...], "metadata": {...}}``.
    """
    request = SearchRequest(
        term=term,
        mode=SearchMode(mode),
        record_type=RecordType(record_type),
        limit=limit,
        offset=offset,
        ner_labels=tuple(ner_labels or ()),
        collection_ids=tuple(collection_ids or ()),
        min_value=min_value,
        max_value=max_value,
        properties=tuple(properties) if properties else None,
    )
    return (engine or RetrievalEngine()).search(request).to_dict()


def search_story(
    story_id: str,
    term: str,
    mode: str | SearchMode = SearchMode.HYBRID,
    limit: int = DEFAULT_SEARCH_LIMIT,
    ner_labels: list[str] | None = None,
    min_value: float | None = None,
    max_value: float | None = None,
    engine: RetrievalEngine | None = None,
) -> dict[str, object]:
    """Search within one recording. A blank ``story_id`` returns no results."""
    request = SearchRequest(
        term=term,
        mode=SearchMode(mode),
        record_type=RecordType.CHUNKS,
        limit=limit,
        ner_labels=tuple(ner_labels or ()),
        story_id=story_id or "",
        min_value=min_value,
        max_value=max_value,
    )
    return (engine or RetrievalEngine()).search(request).to_dict()
