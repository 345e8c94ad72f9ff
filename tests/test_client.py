"""
Tests for the InspectDx client API (inspectdx.client.Inspectdx).

Covers the public facade end to end on an offline, in-memory index:
seed(), diagnose(), classify(), search(), lookups, stats(), health()
and the async variants.
"""

import pytest

from inspectdx import Inspectdx, InspectdxConfig, __version__, health
from inspectdx.core.engine import DefectPriority, MaintenanceLevel, SystemTag
from inspectdx.core.retriever import RetrievalFilter
from inspectdx.exceptions import (
    DiagnosisTimeoutError,
    RetrievalUnavailableError,
    ValidationError,
)

SYMPTOM = "Motor überhitzt beim Starten, Öldruck schwankt"


# =============================================================================
# Construction
# =============================================================================

class TestInspectdxConstruction:
    """Client construction from config, kwargs and env."""

    def test_construct_with_explicit_config(self, offline_config):
        client = Inspectdx(config=offline_config)
        assert client.config is offline_config

    def test_kwargs_override_env(self, monkeypatch):
        monkeypatch.setenv("INSPECTDX_INDEX_BACKEND", "sqlite")
        client = Inspectdx(index_backend="memory", embedding_fallback_only=True)
        assert client.config.index_backend == "memory"
        assert client.config.embedding_fallback_only is True

    def test_validate_on_init(self):
        from inspectdx.exceptions import ConfigError

        with pytest.raises(ConfigError):
            Inspectdx(embedding_provider="unknown", validate_on_init=True)

    def test_clients_do_not_share_caches(self, offline_config):
        a, b = Inspectdx(config=offline_config), Inspectdx(config=offline_config)
        assert a.query_cache is not b.query_cache
        assert a.embedding_cache is not b.embedding_cache

    def test_sqlite_index_under_base_dir(self, tmp_path):
        client = Inspectdx(
            config=InspectdxConfig(embedding_fallback_only=True, embedding_dimensions=64),
            base_dir=tmp_path,
        )
        client.seed(reset=True)
        assert (tmp_path / "vectors.db").exists()
        assert client.stats()["indexed_chunks"] > 0
        client.close()


# =============================================================================
# Diagnosis
# =============================================================================

class TestDiagnose:
    """Full pipeline over the seeded catalog."""

    def test_engine_overheating(self, seeded_client):
        report = seeded_client.diagnose(SYMPTOM)

        assert report.vehicle_id == "leopard2"
        assert report.symptom_description == SYMPTOM
        assert report.affected_systems == (SystemTag.ENGINE, SystemTag.HYDRAULIC, SystemTag.COOLING)
        assert report.root_cause.component_id == "mtu_mb873"
        assert report.root_cause.affected_component == "MTU MB 873 Ka-501 V12-Dieselmotor"
        assert report.root_cause.confidence == 70
        assert report.root_cause.description.startswith("Überhitzung")

        resolution = report.resolution
        assert resolution.priority is DefectPriority.HIGH
        assert resolution.maintenance_level is MaintenanceLevel.L2
        assert resolution.estimated_time == "2-4 hours"
        assert resolution.required_expertise == "Unit technician"
        assert "Oil filter" in resolution.required_parts

        assert report.diagnostic_steps[0].step_number == 1
        assert report.evidence_trail[0].startswith("Primary hypothesis: Überhitzung")
        assert report.evidence_trail[-1] == "Diagnosis auto-completed from knowledge base analysis"

    def test_repeat_diagnosis_is_stable(self, seeded_client):
        first = seeded_client.diagnose(SYMPTOM)
        second = seeded_client.diagnose(SYMPTOM)
        assert first.root_cause == second.root_cause
        assert first.resolution == second.resolution
        assert first.session_id != second.session_id

    def test_hint_widens_systems(self, seeded_client):
        report = seeded_client.diagnose("Fahrzeug zieht einseitig", component_hint="Getriebe")
        assert SystemTag.TRANSMISSION in report.affected_systems
        assert report.root_cause.component_id == "renk_hswl354"

    def test_unseeded_index_degrades_to_manual_diagnosis(self, offline_client):
        report = offline_client.diagnose("Motor überhitzt beim Starten")
        assert report.root_cause.confidence == 20
        assert report.root_cause.description == "Unable to determine root cause"
        assert report.root_cause.affected_component == "Unknown"
        assert report.resolution.priority is DefectPriority.LOW
        assert report.resolution.maintenance_level is MaintenanceLevel.L1
        assert report.resolution.required_expertise == "Crew level"
        assert report.evidence_trail == (
            "No specific hypothesis identified - manual diagnosis required",
        )

    def test_empty_symptom_rejected(self, seeded_client):
        with pytest.raises(ValidationError):
            seeded_client.diagnose("")

    def test_timeout(self, seeded_client):
        with pytest.raises(DiagnosisTimeoutError):
            seeded_client.diagnose(SYMPTOM, timeout=0)

    @pytest.mark.asyncio
    async def test_adiagnose(self, seeded_client):
        report = await seeded_client.adiagnose(SYMPTOM)
        assert report.root_cause.component_id == "mtu_mb873"


# =============================================================================
# Classification and lookups
# =============================================================================

class TestClassifyAndLookups:
    """Classification and knowledge lookups through the facade."""

    def test_classify(self, offline_client):
        result = offline_client.classify("Kettenglied gerissen", checkpoint_number=5)
        assert result.priority is DefectPriority.HIGH
        assert result.recommendations[-1] == "Prüfpunkt 5 nach Reparatur erneut prüfen"

    def test_search_with_filter(self, seeded_client):
        response = seeded_client.search(
            "Kettenspannung", filters=RetrievalFilter(data_type="checkpoint"), min_score=0.0,
        )
        assert 0 < response.total_found <= 5
        assert all(item.data_type == "checkpoint" for item in response.items)

    def test_search_on_unseeded_index(self, offline_client):
        with pytest.raises(RetrievalUnavailableError):
            offline_client.search("Kettenspannung")

    @pytest.mark.asyncio
    async def test_asearch(self, seeded_client):
        response = await seeded_client.asearch("Öldruck", min_score=0.0, rerank=True)
        assert response.total_found == seeded_client.config.default_top_k

    def test_get_checkpoint(self, seeded_client):
        item = seeded_client.get_checkpoint(1)
        assert item.checkpoint_number == 1
        assert item.data_type == "checkpoint"
        assert "Motorölstand" in item.text

    def test_get_checkpoint_missing(self, seeded_client):
        assert seeded_client.get_checkpoint(99) is None

    def test_get_component(self, seeded_client):
        record = seeded_client.get_component("turmdrehkranz")
        assert record.name == "Turmdrehkranz mit Richtantrieb"
        assert len(record.common_failures) == 3

    def test_maintenance_intervals(self, offline_client):
        result = offline_client.maintenance_intervals(level="L4")
        assert [i["id"] for i in result["intervals"]] == ["L4-6000H"]


# =============================================================================
# Seeding, stats and health
# =============================================================================

class TestSeedStatsHealth:
    """Index lifecycle and status reporting."""

    def test_stats_before_seed(self, offline_client):
        stats = offline_client.stats()
        assert stats["indexed_chunks"] == 0
        assert stats["index_backend"] == "memory"

    def test_seed_clears_caches(self, seeded_client):
        seeded_client.search("Öldruck", min_score=0.0)
        assert len(seeded_client.query_cache) == 1
        seeded_client.seed()
        assert len(seeded_client.query_cache) == 0
        assert len(seeded_client.embedding_cache) == 0

    def test_stats_after_search(self, seeded_client):
        seeded_client.search("Öldruck", min_score=0.0)
        seeded_client.search("Öldruck", min_score=0.0)
        stats = seeded_client.stats()
        assert stats["indexed_chunks"] > 0
        assert stats["query_cache"]["hits"] == 1

    @pytest.mark.asyncio
    async def test_aseed(self, offline_client):
        result = await offline_client.aseed()
        assert result.total_chunks == offline_client.stats()["indexed_chunks"]

    def test_health(self, offline_client):
        status = offline_client.health()
        assert status["version"] == __version__
        assert status["embedding_provider"] == "hashing"
        assert status["index_backend"] == "memory"
        assert status["fallback_only"] is True

    def test_module_health_without_config(self):
        assert health()["version"] == __version__

    def test_close_is_idempotent(self, offline_client):
        offline_client.close()
        offline_client.close()
