"""Result fusion and start-time deduplication."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from archive_search.models import Chunk, StoreObject
from archive_search.retrieval.scoring import clamp_unit, normalize_scores
from archive_search.search_config import HYBRID_LEXICAL_WEIGHT, HYBRID_VECTOR_WEIGHT

logger = logging.getLogger(__name__)


def dedupe_by_start_time(chunks: Iterable[Chunk]) -> list[Chunk]:
    """Keep the first chunk seen for each start_time, preserving order.

    Must run after ranking: the first occurrence is the highest ranked one.
    Chunks without a numeric start_time are dropped.
    """
    seen: set[float] = set()
    unique: list[Chunk] = []
    for chunk in chunks:
        start = chunk.start_time
        if start is None or start in seen:
            continue
        seen.add(start)
        unique.append(chunk)
    return unique


def lexical_scores(objects: list[StoreObject]) -> dict[str, float]:
    """Normalized lexical score per object id (missing raw scores count as 0).

    Keeps the best score per id.
    """
    normalized = normalize_scores([o.score or 0.0 for o in objects])
    scores: dict[str, float] = {}
    for o, s in zip(objects, normalized, strict=True):
        if s > scores.get(o.id, -1.0):
            scores[o.id] = s
    return scores


def vector_scores(objects: list[StoreObject]) -> dict[str, float]:
    """Certainty per object id, clamped to [0, 1]. Keeps the best per id."""
    scores: dict[str, float] = {}
    for o in objects:
        certainty = clamp_unit(o.certainty or 0.0)
        if certainty > scores.get(o.id, -1.0):
            scores[o.id] = certainty
    return scores


def hybrid_weights(has_lexical: bool) -> tuple[float, float]:
    """Return ``(vector_weight, lexical_weight)``.

    Pure vector ranking when the lexical side returned nothing.
    """
    if has_lexical:
        return HYBRID_VECTOR_WEIGHT, HYBRID_LEXICAL_WEIGHT
    return 1.0, 0.0


def fuse_hybrid(lexical: list[StoreObject], vector: list[StoreObject]) -> list[Chunk]:
    """Merge lexical and vector hits by id into one list sorted by combined score.

    ``combined = w_vec * certainty + w_lex * normalized_bm25``, where a side
    that did not return the id contributes 0. If an id occurs more than once
    the occurrence with the higher combined score wins.
    """
    bm_map = lexical_scores(lexical)
    vec_map = vector_scores(vector)
    w_vec, w_lex = hybrid_weights(bool(lexical))

    merged: dict[str, Chunk] = {}
    for obj in [*lexical, *vector]:
        bm = bm_map.get(obj.id, 0.0)
        vec = vec_map.get(obj.id, 0.0)
        combined = w_vec * vec + w_lex * bm
        prev = merged.get(obj.id)
        if prev is None or prev.score < combined:
            chunk = Chunk.from_store_object(obj, score=combined)
            chunk.bm25_score = bm
            chunk.vector_score = vec
            merged[obj.id] = chunk

    # sorted() is stable, so ties keep lexical-then-vector arrival order
    ranked = sorted(merged.values(), key=lambda c: c.score, reverse=True)
    if ranked:
        logger.debug(
            "Hybrid fusion: %d lexical, %d vector, %d merged, max combined %.4f (w_vec=%.2f, w_lex=%.2f)",
            len(lexical),
            len(vector),
            len(ranked),
            ranked[0].score,
            w_vec,
            w_lex,
        )
    return ranked
