"""Tests for the retrieval engine (fake store and embedder, no live services)."""

from __future__ import annotations

import pytest
from conftest import FakeEmbedder, FakeStore, chunk_obj

from archive_search.errors import DependencyUnavailable, InvalidInput
from archive_search.filters import FilterOp
from archive_search.retrieval.engine import RetrievalEngine, search, search_story
from archive_search.search_config import SearchMode, SearchRequest


def _engine(store: FakeStore, embedder: FakeEmbedder) -> RetrievalEngine:
    return RetrievalEngine(store=store, embedder=embedder)


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------


class TestPreconditions:
    @pytest.mark.parametrize("mode", list(SearchMode))
    def test_blank_term_is_noop(self, store: FakeStore, embedder: FakeEmbedder, mode: SearchMode) -> None:
        result = _engine(store, embedder).search(SearchRequest(term="   ", mode=mode))
        assert len(result) == 0
        assert store.calls == []
        assert embedder.texts == []

    @pytest.mark.parametrize("mode", list(SearchMode))
    def test_blank_story_scope_fails_closed(
        self, store: FakeStore, embedder: FakeEmbedder, mode: SearchMode
    ) -> None:
        store.bm25_results = [chunk_obj("a", 1.0, score=1.0)]
        store.vector_results = [chunk_obj("a", 1.0, certainty=0.9)]
        result = _engine(store, embedder).search(SearchRequest(term="war", mode=mode, story_id=""))
        assert len(result) == 0
        assert store.calls == []

    def test_zero_limit(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        result = _engine(store, embedder).search(SearchRequest(term="war", limit=0))
        assert len(result) == 0
        assert store.calls == []

    def test_invalid_request_values(self) -> None:
        with pytest.raises(InvalidInput):
            SearchRequest(term="x", limit=-1)
        with pytest.raises(InvalidInput):
            SearchRequest(term="x", offset=-5)
        with pytest.raises(InvalidInput):
            SearchRequest(term="x", min_value=0.9, max_value=0.1)


# ---------------------------------------------------------------------------
# Lexical mode
# ---------------------------------------------------------------------------


class TestLexicalMode:
    def test_scores_normalized(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.bm25_results = [
            chunk_obj("a", 1.0, score=8.0),
            chunk_obj("b", 2.0, score=5.0),
            chunk_obj("c", 3.0, score=2.0),
        ]
        result = _engine(store, embedder).search(SearchRequest(term="harbor", mode=SearchMode.LEXICAL))
        assert [c.id for c in result] == ["a", "b", "c"]
        assert [c.score for c in result] == [1.0, 0.5, 0.0]
        assert embedder.texts == []

    def test_no_hits_returns_empty(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        result = _engine(store, embedder).search(
            SearchRequest(term="none-matching-xyz", mode=SearchMode.LEXICAL)
        )
        assert len(result) == 0
        assert len(store.calls_to("bm25_query")) == 1

    def test_range_applies_to_normalized_score(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.bm25_results = [
            chunk_obj("a", 1.0, score=10.0),
            chunk_obj("b", 2.0, score=6.0),
            chunk_obj("c", 3.0, score=0.0),
        ]
        result = _engine(store, embedder).search(
            SearchRequest(term="x", mode=SearchMode.LEXICAL, min_value=0.5, max_value=0.9)
        )
        assert [c.id for c in result] == ["b"]

    def test_dedupes_by_start_time_after_ranking(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.bm25_results = [
            chunk_obj("low", 5.0, score=1.0),
            chunk_obj("high", 5.0, score=9.0),
            chunk_obj("nostart", None, score=4.0),
        ]
        result = _engine(store, embedder).search(SearchRequest(term="x", mode=SearchMode.LEXICAL))
        assert [c.id for c in result] == ["high"]

    def test_passes_filters_limit_and_offset(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        _engine(store, embedder).search(
            SearchRequest(
                term="x",
                mode=SearchMode.LEXICAL,
                limit=25,
                offset=50,
                ner_labels=("PERSON",),
                collection_ids=("c1",),
            )
        )
        (call,) = store.calls_to("bm25_query")
        assert call["limit"] == 25
        assert call["offset"] == 50
        assert [p.field for p in call["filters"].predicates] == ["ner_labels", "collection_id"]


# ---------------------------------------------------------------------------
# Vector mode
# ---------------------------------------------------------------------------


class TestVectorMode:
    def test_certainty_is_final_score(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.vector_results = [chunk_obj("a", 1.0, certainty=0.91), chunk_obj("b", 2.0, certainty=0.74)]
        result = _engine(store, embedder).search(SearchRequest(term="Harbor ", mode=SearchMode.VECTOR))
        assert [c.score for c in result] == [0.91, 0.74]
        # raw term is embedded as given
        assert embedder.texts == ["Harbor "]
        assert store.calls_to("near_vector_query")[0]["vector"] == embedder.vector

    def test_missing_certainty_dropped(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.vector_results = [chunk_obj("a", 1.0, certainty=None), chunk_obj("b", 2.0, certainty=0.5)]
        result = _engine(store, embedder).search(SearchRequest(term="x", mode=SearchMode.VECTOR))
        assert [c.id for c in result] == ["b"]

    def test_range_filter(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.vector_results = [chunk_obj("a", 1.0, certainty=0.95), chunk_obj("b", 2.0, certainty=0.55)]
        result = _engine(store, embedder).search(
            SearchRequest(term="x", mode=SearchMode.VECTOR, min_value=0.6)
        )
        assert [c.id for c in result] == ["a"]

    def test_certainty_above_one_clamped(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.vector_results = [chunk_obj("a", 1.0, certainty=1.2)]
        result = _engine(store, embedder).search(
            SearchRequest(term="x", mode=SearchMode.VECTOR, max_value=1.0)
        )
        assert [c.score for c in result] == [1.0]

    def test_embedding_failure_propagates(self, store: FakeStore) -> None:
        embedder = FakeEmbedder(error=DependencyUnavailable("embedding service", "down"))
        with pytest.raises(DependencyUnavailable):
            _engine(store, embedder).search(SearchRequest(term="x", mode=SearchMode.VECTOR))
        assert store.calls_to("near_vector_query") == []


# ---------------------------------------------------------------------------
# Hybrid mode
# ---------------------------------------------------------------------------


class TestHybridMode:
    def test_fusion_and_order(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.bm25_results = [chunk_obj("a", 1.0, score=0.2), chunk_obj("b", 2.0, score=0.8)]
        store.vector_results = [chunk_obj("a", 1.0, certainty=0.6), chunk_obj("b", 2.0, certainty=0.9)]
        result = _engine(store, embedder).search(SearchRequest(term="x", mode=SearchMode.HYBRID))

        assert [c.id for c in result] == ["b", "a"]
        assert result.chunks[0].score == pytest.approx(0.55 * 0.9 + 0.45 * 1.0)
        assert result.chunks[1].score == pytest.approx(0.55 * 0.6 + 0.45 * 0.0)
        assert result.metadata["weights"] == {"vector": 0.55, "bm25": 0.45}

    def test_degrades_to_vector_when_no_lexical_hits(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.vector_results = [chunk_obj("a", 1.0, certainty=0.77), chunk_obj("b", 2.0, certainty=0.66)]
        result = _engine(store, embedder).search(SearchRequest(term="x"))
        assert [c.score for c in result] == [pytest.approx(0.77), pytest.approx(0.66)]
        assert result.metadata["weights"] == {"vector": 1.0, "bm25": 0.0}

    def test_same_filter_and_limit_for_both_sides(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        _engine(store, embedder).search(
            SearchRequest(term="x", limit=7, offset=14, ner_labels=("GPE",), story_id="s1")
        )
        (lexical,) = store.calls_to("bm25_query")
        (vector,) = store.calls_to("near_vector_query")
        assert lexical["filters"] == vector["filters"]
        assert (lexical["limit"], lexical["offset"]) == (vector["limit"], vector["offset"]) == (7, 14)

    def test_range_on_combined_score(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        # a: vec 0.9 / lex 1.0 -> 0.945; b: vec 0.9 / lex 0.0 -> 0.495
        store.bm25_results = [chunk_obj("a", 1.0, score=3.0), chunk_obj("b", 2.0, score=1.0)]
        store.vector_results = [chunk_obj("a", 1.0, certainty=0.9), chunk_obj("b", 2.0, certainty=0.9)]
        result = _engine(store, embedder).search(SearchRequest(term="x", min_value=0.5))
        assert [c.id for c in result] == ["a"]

    def test_truncates_to_limit_after_dedupe(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.vector_results = [
            chunk_obj("a", 1.0, certainty=0.9),
            chunk_obj("a2", 1.0, certainty=0.85),
            chunk_obj("b", 2.0, certainty=0.8),
            chunk_obj("c", 3.0, certainty=0.7),
        ]
        result = _engine(store, embedder).search(SearchRequest(term="x", limit=2))
        assert [c.id for c in result] == ["a", "b"]

    def test_scores_non_increasing(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.bm25_results = [chunk_obj(f"l{i}", float(i), score=float(i)) for i in range(6)]
        store.vector_results = [chunk_obj(f"v{i}", float(i + 10), certainty=i / 10) for i in range(6)]
        result = _engine(store, embedder).search(SearchRequest(term="x"))
        scores = [c.score for c in result]
        assert scores == sorted(scores, reverse=True)
        assert len({c.start_time for c in result}) == len(result)

    def test_embedding_failure_aborts(self, store: FakeStore) -> None:
        store.bm25_results = [chunk_obj("a", 1.0, score=1.0)]
        embedder = FakeEmbedder(error=DependencyUnavailable("embedding service", "timeout"))
        with pytest.raises(DependencyUnavailable):
            _engine(store, embedder).search(SearchRequest(term="x"))


# ---------------------------------------------------------------------------
# Plain-data entry points
# ---------------------------------------------------------------------------


class TestPlainEntryPoints:
    def test_search_accepts_strings(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        store.bm25_results = [chunk_obj("a", 1.0, score=2.0, theirstory_id="s1")]
        out = search("x", mode="bm25", engine=_engine(store, embedder))
        assert out["metadata"]["mode"] == "bm25"  # type: ignore[index]
        (obj,) = out["objects"]  # type: ignore[misc]
        assert obj["id"] == "a"
        assert obj["story_id"] == "s1"
        assert obj["score"] == 1.0

    def test_search_rejects_unknown_mode(self) -> None:
        with pytest.raises(ValueError):
            search("x", mode="fuzzy")

    def test_search_story_scopes_by_story_id(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        search_story("story-1", "x", mode="vector", engine=_engine(store, embedder))
        (call,) = store.calls_to("near_vector_query")
        (predicate,) = call["filters"].predicates
        assert predicate.op is FilterOp.EQUAL
        assert predicate.value == "story-1"

    def test_search_story_blank_id_returns_nothing(self, store: FakeStore, embedder: FakeEmbedder) -> None:
        out = search_story("", "x", engine=_engine(store, embedder))
        assert out["objects"] == []
        assert store.calls == []
