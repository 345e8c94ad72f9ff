"""
Tests for inspectdx.core.config — InspectdxConfig and the static knowledge tables.
"""

from pathlib import Path

import pytest

from inspectdx.core.config import (
    DefectTaxonomy,
    FilterVocabulary,
    InspectdxConfig,
    Prompts,
    ResolutionTables,
    SystemTaxonomy,
    vehicle_type_for,
)
from inspectdx.core.engine import DefectPriority, MaintenanceLevel, SystemTag
from inspectdx.exceptions import ConfigError


# =============================================================================
# InspectdxConfig
# =============================================================================

class TestInspectdxConfig:
    """Defaults, environment loading and validation."""

    def test_defaults(self):
        cfg = InspectdxConfig()
        assert cfg.default_top_k == 5
        assert cfg.default_min_score == 0.5
        assert cfg.max_hypotheses == 5
        assert cfg.needs_more_info_threshold == 30
        assert cfg.no_hypothesis_confidence == 20
        assert cfg.embedding_cache_ttl_seconds > cfg.query_cache_ttl_seconds

    def test_rerank_weights_sum_to_one(self):
        assert sum(InspectdxConfig().rerank_weights.values()) == pytest.approx(1.0)

    def test_instances_do_not_share_weights(self):
        a, b = InspectdxConfig(), InspectdxConfig()
        a.rerank_weights["semantic"] = 0.9
        assert b.rerank_weights["semantic"] == 0.5

    def test_from_env_reads_overrides(self, monkeypatch):
        monkeypatch.setenv("INSPECTDX_FALLBACK_ONLY", "yes")
        monkeypatch.setenv("INSPECTDX_INDEX_BACKEND", "MEMORY")
        monkeypatch.setenv("INSPECTDX_MIN_SCORE", "0.25")
        monkeypatch.setenv("INSPECTDX_REQUEST_TIMEOUT", "12.5")
        monkeypatch.setenv("INSPECTDX_LOG_LEVEL", "debug")
        cfg = InspectdxConfig.from_env()
        assert cfg.embedding_fallback_only is True
        assert cfg.index_backend == "memory"
        assert cfg.default_min_score == 0.25
        assert cfg.request_timeout_seconds == 12.5
        assert cfg.log_level == "DEBUG"

    def test_from_env_without_timeout(self, monkeypatch):
        monkeypatch.delenv("INSPECTDX_REQUEST_TIMEOUT", raising=False)
        assert InspectdxConfig.from_env().request_timeout_seconds is None

    def test_validate_offline_needs_no_key(self):
        cfg = InspectdxConfig(embedding_fallback_only=True, openai_api_key=None)
        assert cfg.validate() is True

    def test_validate_rejects_missing_key(self):
        cfg = InspectdxConfig(embedding_provider="openai", openai_api_key=None)
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            cfg.validate()

    def test_validate_succeeds_with_key_set(self):
        cfg = InspectdxConfig(embedding_provider="gemini", gemini_api_key="k")
        assert cfg.validate() is True

    @pytest.mark.parametrize("overrides, message", [
        ({"embedding_provider": "word2vec"}, "embedding provider"),
        ({"llm_provider": "llama"}, "LLM provider"),
        ({"index_backend": "faiss"}, "index backend"),
        ({"query_cache_ttl_seconds": 0}, "TTL"),
        ({"default_top_k": 0}, "default_top_k"),
        ({"default_min_score": 1.5}, "default_min_score"),
        ({"eval_min_score": -0.1}, "eval_min_score"),
        ({"rerank_weights": {"semantic": 0.5, "vector": 0.5, "position": 0.5}}, "rerank_weights"),
    ])
    def test_validate_rejects_bad_values(self, overrides, message):
        cfg = InspectdxConfig(embedding_fallback_only=True, **overrides)
        with pytest.raises(ConfigError, match=message):
            cfg.validate()

    def test_llm_accessors(self):
        cfg = InspectdxConfig(llm_provider="openai", openai_api_key="sk", openai_model="m")
        assert cfg.get_llm_api_key() == "sk"
        assert cfg.get_llm_model() == "m"

    def test_index_path(self, tmp_path):
        cfg = InspectdxConfig(index_dir="idx", index_db_name="v.db")
        assert cfg.get_index_path() == Path("idx") / "v.db"
        assert cfg.get_index_path(tmp_path) == tmp_path / "v.db"


# =============================================================================
# Static tables
# =============================================================================

class TestSystemTaxonomy:
    """Keyword tables that drive symptom analysis."""

    def test_keyword_order_matches_tag_order(self):
        assert list(SystemTaxonomy.SYSTEM_KEYWORDS) == [t.value for t in SystemTag]

    def test_every_system_has_component_entry(self):
        assert set(SystemTaxonomy.SYSTEM_TO_COMPONENTS) == set(SystemTaxonomy.SYSTEM_KEYWORDS)

    def test_keywords_are_lowercase(self):
        for keywords in SystemTaxonomy.SYSTEM_KEYWORDS.values():
            assert all(kw == kw.lower() for kw in keywords)

    @pytest.mark.parametrize("vehicle_id, expected", [
        ("leopard2", "leopard2"),
        ("M1-Abrams", "m1a2"),
        ("unknown-tank", "leopard2"),
        (None, "leopard2"),
    ])
    def test_vehicle_type_for(self, vehicle_id, expected):
        assert vehicle_type_for(vehicle_id) == expected


class TestDefectTaxonomy:
    """Priority and category tables."""

    def test_priorities_ordered_critical_to_info(self):
        assert DefectTaxonomy.levels() == [p.value for p in DefectPriority]

    def test_every_priority_has_recommendations_and_notes(self):
        for level in DefectTaxonomy.levels():
            assert DefectTaxonomy.RECOMMENDATIONS[level]
            assert "{component}" in DefectTaxonomy.COMPONENT_NOTES[level]
            assert "{checkpoint}" in DefectTaxonomy.CHECKPOINT_NOTES[level]

    def test_filter_vocabulary_matches_priorities(self):
        assert FilterVocabulary.PRIORITIES == frozenset(DefectTaxonomy.PRIORITIES)


class TestResolutionTables:
    """Priority → maintenance level → expertise chain."""

    def test_every_priority_maps_to_a_level_with_expertise(self):
        for level in DefectTaxonomy.levels():
            maintenance = ResolutionTables.MAINTENANCE_LEVEL_BY_PRIORITY[level]
            assert MaintenanceLevel(maintenance)
            assert ResolutionTables.EXPERTISE_BY_LEVEL[maintenance]
            assert ResolutionTables.ESTIMATED_TIME_BY_PRIORITY[level]

    def test_critical_goes_to_field_depot(self):
        assert ResolutionTables.MAINTENANCE_LEVEL_BY_PRIORITY["critical"] == "L3"
        assert ResolutionTables.EXPERTISE_BY_LEVEL["L3"] == "Field depot"


class TestPrompts:
    """Relevance prompt templates."""

    def test_user_prompt_renders(self):
        rendered = Prompts.RELEVANCE_USER.format(query="q", passage="p")
        assert "Query: q" in rendered
        assert "p" in rendered

    def test_system_prompt_asks_for_number_only(self):
        assert "ONLY a number" in Prompts.RELEVANCE_SYSTEM

    def test_judge_prompt_renders_json_shape(self):
        rendered = Prompts.JUDGE_USER.format(query="Motor kaputt", contents="[1] Öldruck")
        assert 'Suchanfrage: "Motor kaputt"' in rendered
        assert "[1] Öldruck" in rendered
        assert '"relevanceScore"' in rendered
