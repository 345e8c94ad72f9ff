"""
Tests for inspectdx.core.retriever — SemanticRetriever, RetrievalFilter and rerank().
"""

from unittest.mock import MagicMock

import pytest

from inspectdx.core.retriever import RetrievalFilter, rerank
from inspectdx.exceptions import RetrievalUnavailableError, ValidationError


# =============================================================================
# RetrievalFilter
# =============================================================================

class TestRetrievalFilter:
    """Closed vocabularies and the exact-match map."""

    def test_unset_fields_are_omitted(self):
        assert RetrievalFilter(vehicle_type="leopard2", crew_role="driver").to_dict() == {
            "vehicle_type": "leopard2",
            "crew_role": "driver",
        }

    def test_empty_filter_is_empty_map(self):
        assert RetrievalFilter().to_dict() == {}

    @pytest.mark.parametrize("kwargs", [
        {"vehicle_variant": "A8"},
        {"crew_role": "mechanic"},
        {"maintenance_level": "L5"},
        {"priority": "urgent"},
        {"data_type": "manual"},
        {"checkpoint_number": 0},
    ])
    def test_rejects_values_outside_vocabulary(self, kwargs):
        with pytest.raises(ValidationError):
            RetrievalFilter(**kwargs).validate()

    def test_accepts_known_values(self):
        RetrievalFilter(
            vehicle_variant="A7V", crew_role="gunner", maintenance_level="L2",
            priority="critical", data_type="defect", checkpoint_number=3,
        ).validate()


# =============================================================================
# SemanticRetriever
# =============================================================================

class TestSemanticRetriever:
    """Caching, thresholding, reranking and failure mapping."""

    def test_returns_items_in_index_order(self, make_retriever, stub_index, make_match):
        stub_index.matches = [make_match("a", 0.9, section="A"), make_match("b", 0.7, section="B")]
        response = make_retriever().retrieve("Öldruck", min_score=0.5)
        assert [i.source_section_id for i in response.items] == ["A", "B"]
        assert response.total_found == 2

    def test_min_score_drops_weak_matches(self, make_retriever, stub_index, make_match):
        stub_index.matches = [make_match("a", 0.9), make_match("b", 0.49), make_match("c", 0.2)]
        response = make_retriever().retrieve("Öldruck", min_score=0.5)
        assert [i.score for i in response.items] == [0.9]

    def test_defaults_come_from_config(self, make_retriever, stub_index, offline_config):
        make_retriever().retrieve("Öldruck")
        assert stub_index.queries[0]["top_k"] == offline_config.default_top_k
        assert stub_index.queries[0]["name"] == offline_config.index_name
        assert stub_index.queries[0]["filter"] is None

    def test_filters_are_passed_to_index(self, make_retriever, stub_index):
        make_retriever().retrieve("q", RetrievalFilter(vehicle_type="leopard2", data_type="defect"))
        assert stub_index.queries[0]["filter"] == {"vehicle_type": "leopard2", "data_type": "defect"}

    def test_repeat_query_makes_no_provider_calls(self, make_retriever, stub_index, embedder, make_match):
        stub_index.matches = [make_match("a", 0.9)]
        retriever = make_retriever()
        first = retriever.retrieve("Motor überhitzt", top_k=3)
        calls_before = (embedder.calls, len(stub_index.queries))

        second = retriever.retrieve("Motor überhitzt", top_k=3)
        assert second is first
        assert (embedder.calls, len(stub_index.queries)) == calls_before

    def test_equal_filters_in_any_order_share_cache(self, make_retriever, stub_index):
        retriever = make_retriever()
        retriever.retrieve("q", RetrievalFilter(vehicle_type="leopard2", crew_role="driver"))
        retriever.retrieve("q", RetrievalFilter(crew_role="driver", vehicle_type="leopard2"))
        assert len(stub_index.queries) == 1

    def test_embedding_cache_reused_across_parameters(self, make_retriever, embedder):
        retriever = make_retriever()
        retriever.retrieve("q", top_k=3)
        retriever.retrieve("q", top_k=4)
        assert embedder.calls == 1

    def test_rerank_widens_pool_and_returns_subset(self, make_retriever, stub_index, make_match):
        stub_index.matches = [
            make_match(str(i), 0.95 - i * 0.01, section=f"S{i}", text=f"Passage {i}")
            for i in range(20)
        ]
        scorer = MagicMock()
        scorer.score.side_effect = lambda q, passage: 1.0 if passage == "Passage 7" else 0.0
        response = make_retriever(scorer=scorer).retrieve("q", top_k=3, rerank_results=True)

        assert stub_index.queries[0]["top_k"] == 15
        assert len(response.items) == 3
        assert response.items[0].text == "Passage 7"
        pool = {m.metadata["text"] for m in stub_index.matches[:15]}
        assert {i.text for i in response.items} <= pool

    def test_threshold_applies_before_rerank(self, make_retriever, stub_index, make_match):
        stub_index.matches = [make_match("good", 0.8, text="weak"), make_match("bad", 0.3, text="strong")]
        scorer = MagicMock()
        scorer.score.side_effect = lambda q, passage: 1.0 if passage == "strong" else 0.0
        response = make_retriever(scorer=scorer).retrieve(
            "q", top_k=2, min_score=0.5, rerank_results=True,
        )
        assert [i.text for i in response.items] == ["weak"]

    @pytest.mark.parametrize("kwargs", [
        {"query": ""},
        {"query": "   "},
        {"query": "q", "top_k": 0},
        {"query": "q", "min_score": -0.1},
        {"query": "q", "min_score": 1.1},
        {"query": "q", "filters": RetrievalFilter(priority="urgent")},
    ])
    def test_invalid_requests_rejected(self, make_retriever, stub_index, kwargs):
        with pytest.raises(ValidationError):
            make_retriever().retrieve(**kwargs)
        assert stub_index.queries == []

    def test_index_failure_maps_to_unavailable(self, make_retriever, stub_index):
        stub_index.error = LookupError("Vector index 'inspection_chunks' does not exist")
        with pytest.raises(RetrievalUnavailableError):
            make_retriever().retrieve("q")

    def test_embedding_failure_maps_to_unavailable(self, make_retriever, embedder):
        embedder.fail = True
        with pytest.raises(RetrievalUnavailableError, match="Embedding provider failed"):
            make_retriever().retrieve("q")

    def test_failures_are_not_cached(self, make_retriever, stub_index, make_match):
        retriever = make_retriever()
        stub_index.error = ConnectionError("down")
        with pytest.raises(RetrievalUnavailableError):
            retriever.retrieve("q")
        stub_index.error = None
        stub_index.matches = [make_match("a", 0.9)]
        assert retriever.retrieve("q").total_found == 1

    @pytest.mark.asyncio
    async def test_aretrieve_matches_sync(self, make_retriever, stub_index, make_match):
        stub_index.matches = [make_match("a", 0.9)]
        retriever = make_retriever()
        response = await retriever.aretrieve("q")
        assert response.total_found == 1
        assert retriever.retrieve("q") is response


class TestGetCheckpoint:
    """Checkpoint lookup by number."""

    def test_prefers_checkpoint_chunk(self, make_retriever, stub_index, make_match):
        stub_index.matches = [
            make_match("d", 0.9, section="A", checkpoint_number=2, data_type="defect"),
            make_match("c", 0.8, section="A", checkpoint_number=2, data_type="checkpoint"),
        ]
        item = make_retriever().get_checkpoint(2)
        assert item.data_type == "checkpoint"
        assert stub_index.queries[0]["filter"] == {"vehicle_type": "leopard2", "checkpoint_number": 2}

    def test_missing_checkpoint_is_none(self, make_retriever):
        assert make_retriever().get_checkpoint(99) is None


# =============================================================================
# rerank()
# =============================================================================

class TestRerank:
    """Blended scoring."""

    def test_empty_candidates(self):
        assert rerank("q", [], MagicMock(), 5, {"semantic": 1.0}) == []

    def test_ties_keep_original_order(self, make_item):
        items = [make_item(text=str(i), score=0.5) for i in range(4)]
        scorer = MagicMock()
        scorer.score.return_value = 0.5
        result = rerank("q", items, scorer, 4, {"semantic": 1.0})
        assert result == items

    def test_items_are_unchanged(self, make_item):
        items = [make_item(text="a", score=0.9), make_item(text="b", score=0.6)]
        scorer = MagicMock()
        scorer.score.side_effect = lambda q, p: 1.0 if p == "b" else 0.0
        result = rerank("q", items, scorer, 2, {"semantic": 0.5, "vector": 0.3, "position": 0.2})
        assert result[0] is items[1]
        assert result[0].score == 0.6
