"""
Tests for inspectdx.core.knowledge — text chunks, seeding, component
lookup and maintenance intervals.
"""

import json
import time
from unittest.mock import MagicMock

import pytest

from inspectdx.core.catalog import COMPONENTS, COMPONENTS_BY_ID, INSPECTION_SECTIONS, MAINTENANCE_INTERVALS
from inspectdx.core.engine import EmbeddingProvider, InMemoryVectorIndex, QueryCache
from inspectdx.core.knowledge import (
    IndexedComponentRepository,
    KnowledgeChunk,
    KnowledgeSeeder,
    checkpoint_to_text,
    component_failures_to_text,
    maintenance_interval_to_text,
    maintenance_intervals,
    prepare_all_chunks,
    prepare_checkpoint_chunks,
    prepare_component_chunks,
    prepare_interval_chunks,
    prepare_taxonomy_chunks,
)
from inspectdx.exceptions import RetrievalUnavailableError, SeedError, ValidationError


# =============================================================================
# Text converters
# =============================================================================

class TestTextConverters:
    """German prose generated from the catalog."""

    def test_checkpoint_text(self):
        section = INSPECTION_SECTIONS[0]
        text = checkpoint_to_text(section, section["checkpoints"][0])
        assert text.startswith("Sektion A: Antrieb und Motorraum")
        assert "Prüfpunkt 1: Motorölstand prüfen" in text
        assert "Verantwortlich: Fahrer" in text
        assert "Arbeitsschritte:" in text

    def test_failure_text_lists_symptoms_and_cause(self):
        texts = component_failures_to_text(COMPONENTS_BY_ID["mtu_mb873"])
        assert texts[0].startswith("Häufiger Ausfall bei MTU MB 873")
        assert "- Motor überhitzt" in texts[0]
        assert "Ursache: Kühlmittelverlust" in texts[0]

    def test_interval_text(self):
        interval = next(i for i in MAINTENANCE_INTERVALS if i["id"] == "L2-250H")
        text = maintenance_interval_to_text(interval)
        assert "Auslöser: alle 250 Betriebsstunden" in text
        assert "Ausführung: Technischer Dienst Einheit" in text


# =============================================================================
# Chunk preparation
# =============================================================================

class TestChunkPreparation:
    """Chunk ids, data types and filterable metadata."""

    def test_checkpoint_and_defect_chunks(self):
        chunks = prepare_checkpoint_chunks()
        checkpoints = [c for c in chunks if c.data_type == "checkpoint"]
        defects = [c for c in chunks if c.data_type == "defect"]
        total_checkpoints = sum(len(s["checkpoints"]) for s in INSPECTION_SECTIONS)
        total_defects = sum(
            len(cp.get("common_defects", [])) for s in INSPECTION_SECTIONS for cp in s["checkpoints"]
        )
        assert len(checkpoints) == total_checkpoints
        assert len(defects) == total_defects
        assert all(c.metadata["priority"] in ("critical", "high", "medium", "low", "info") for c in defects)

    def test_checkpoint_metadata_is_flat_and_clean(self):
        chunk = next(c for c in prepare_checkpoint_chunks() if c.id == "checkpoint:A:1")
        assert chunk.metadata["checkpoint_number"] == 1
        assert chunk.metadata["crew_role"] == "driver"
        assert chunk.metadata["vehicle_type"] == "leopard2"
        assert chunk.metadata["text"] == chunk.text
        assert None not in chunk.metadata.values()

    def test_component_chunks_carry_payload_on_specs_only(self):
        chunks = prepare_component_chunks(COMPONENTS)
        specs = [c for c in chunks if c.metadata["chunk_kind"] == "specs"]
        assert len(specs) == len(COMPONENTS)
        assert all("payload" in c.metadata for c in specs)
        assert not any("payload" in c.metadata for c in chunks if c.metadata["chunk_kind"] != "specs")
        payload = json.loads(specs[0].metadata["payload"])
        assert payload["id"] == COMPONENTS[0].id

    def test_component_failure_chunk_ids(self):
        ids = {c.id for c in prepare_component_chunks(COMPONENTS)}
        assert "component:mtu_mb873:failure:overheating" in ids
        assert "component:turmdrehkranz:specs" in ids

    def test_taxonomy_and_interval_chunks(self):
        assert [c.id for c in prepare_taxonomy_chunks()][0] == "taxonomy:critical"
        intervals = prepare_interval_chunks()
        assert len(intervals) == len(MAINTENANCE_INTERVALS)
        assert all(c.metadata["section_id"] == "MAINTENANCE" for c in intervals)

    def test_all_chunk_ids_unique(self):
        chunks = prepare_all_chunks()
        assert len({c.id for c in chunks}) == len(chunks)

    def test_vehicle_type_propagates(self):
        assert all(c.metadata["vehicle_type"] == "m1a2" for c in prepare_all_chunks("m1a2"))


# =============================================================================
# Seeding
# =============================================================================

class TestKnowledgeSeeder:
    """Embedding, upsert and cache invalidation."""

    def _seeder(self, offline_config, embedder, index=None, caches=()):
        return KnowledgeSeeder(offline_config, embedder, index or InMemoryVectorIndex(), caches)

    def test_seed_counts_by_type(self, offline_config, embedder):
        index = InMemoryVectorIndex()
        result = self._seeder(offline_config, embedder, index).seed()
        chunks = prepare_all_chunks()
        assert result.total_chunks == len(chunks)
        assert index.count(offline_config.index_name) == len(chunks)
        assert set(result.chunks_by_type) == {"checkpoint", "defect", "component", "interval"}
        assert embedder.calls == len(chunks)
        assert result.to_dict()["total_chunks"] == len(chunks)

    def test_reseed_is_idempotent(self, offline_config, embedder):
        index = InMemoryVectorIndex()
        seeder = self._seeder(offline_config, embedder, index)
        seeder.seed()
        seeder.seed()
        assert index.count(offline_config.index_name) == len(prepare_all_chunks())

    def test_reset_drops_stale_chunks(self, offline_config, embedder):
        index = InMemoryVectorIndex()
        seeder = self._seeder(offline_config, embedder, index)
        extra = KnowledgeChunk(id="legacy:1", text="alt", metadata={"data_type": "legacy", "text": "alt"})
        seeder.seed([extra])
        seeder.seed(prepare_taxonomy_chunks(), reset=True)
        assert index.count(offline_config.index_name) == 5

    def test_no_reset_keeps_existing(self, offline_config, embedder):
        index = InMemoryVectorIndex()
        seeder = self._seeder(offline_config, embedder, index)
        extra = KnowledgeChunk(id="legacy:1", text="alt", metadata={"data_type": "legacy", "text": "alt"})
        seeder.seed([extra])
        seeder.seed(prepare_taxonomy_chunks(), reset=False)
        assert index.count(offline_config.index_name) == 6

    def test_seed_clears_caches(self, offline_config, embedder):
        cache = QueryCache(60)
        cache.set("stale", "value")
        self._seeder(offline_config, embedder, caches=[cache]).seed(prepare_taxonomy_chunks())
        assert len(cache) == 0

    def test_embedding_failure_raises_seed_error(self, offline_config, embedder):
        embedder.fail = True
        cache = QueryCache(60)
        cache.set("kept", 1)
        with pytest.raises(SeedError, match="Embedding failed"):
            self._seeder(offline_config, embedder, caches=[cache]).seed(prepare_taxonomy_chunks())
        assert len(cache) == 1

    def test_failed_reseed_leaves_index_intact(self, offline_config, embedder):
        index = InMemoryVectorIndex()
        cache = QueryCache(60)
        seeder = self._seeder(offline_config, embedder, index, caches=[cache])
        seeder.seed()
        seeded = index.count(offline_config.index_name)
        cache.set("still valid", 1)

        embedder.fail_after = embedder.calls + 9
        with pytest.raises(SeedError, match="Embedding failed"):
            seeder.seed(reset=True)

        assert index.count(offline_config.index_name) == seeded == len(prepare_all_chunks())
        assert cache.get("still valid") == 1

    def test_embedding_failure_cancels_pending_embeds(self, offline_config):
        chunks = prepare_all_chunks()
        first = chunks[0].text
        calls = []

        class SlowFailingEmbedder(EmbeddingProvider):
            dimensions = 16

            def embed(self, text):
                calls.append(text)
                if text == first:
                    raise ConnectionError("embedding service unreachable")
                time.sleep(0.05)
                return [0.0] * self.dimensions

        with pytest.raises(SeedError):
            self._seeder(offline_config, SlowFailingEmbedder()).seed(chunks)
        assert len(calls) < len(chunks)

    def test_index_failure_raises_seed_error(self, offline_config, embedder):
        index = MagicMock()
        index.create_index.side_effect = OSError("disk full")
        cache = QueryCache(60)
        cache.set("stale", 1)
        with pytest.raises(SeedError, match="Writing chunks"):
            self._seeder(offline_config, embedder, index, caches=[cache]).seed(prepare_taxonomy_chunks())
        assert len(cache) == 0


# =============================================================================
# Component lookup
# =============================================================================

class TestIndexedComponentRepository:
    """Reading full component records back from the index."""

    def test_returns_full_record(self, seeded_client):
        repo = IndexedComponentRepository(seeded_client.retriever)
        record = repo.get("renk_hswl354")
        assert record == COMPONENTS_BY_ID["renk_hswl354"]

    def test_unknown_component_is_none(self, seeded_client):
        repo = IndexedComponentRepository(seeded_client.retriever)
        assert repo.get("does_not_exist") is None

    def test_empty_id_rejected(self, seeded_client):
        with pytest.raises(ValidationError):
            IndexedComponentRepository(seeded_client.retriever).get("")

    def test_unseeded_index_is_unavailable(self, offline_client):
        repo = IndexedComponentRepository(offline_client.retriever)
        with pytest.raises(RetrievalUnavailableError):
            repo.get("mtu_mb873")


# =============================================================================
# Maintenance intervals
# =============================================================================

class TestMaintenanceIntervals:
    """Interval filtering and due computation."""

    def test_lists_all_without_filters(self):
        result = maintenance_intervals()
        assert result["summary"] == {"total_intervals": len(MAINTENANCE_INTERVALS)}
        assert all("executor_name" in i for i in result["intervals"])

    def test_filter_by_level(self):
        result = maintenance_intervals(level="L2")
        assert {i["id"] for i in result["intervals"]} == {"L2-250H", "L2-500H", "L2-ANNUAL"}

    def test_filter_by_id(self):
        result = maintenance_intervals(interval_id="L3-1000H")
        assert [i["id"] for i in result["intervals"]] == ["L3-1000H"]
        assert result["intervals"][0]["executor_name"]["en"] == "Mobile Repair Team"

    def test_due_computation(self):
        result = maintenance_intervals(operating_hours=480)
        by_id = {i["id"]: i for i in result["intervals"]}
        assert by_id["L2-250H"]["hours_until_due"] == 20
        assert by_id["L2-500H"]["hours_until_due"] == 20
        assert by_id["L3-1000H"]["hours_until_due"] == 520
        assert by_id["L2-250H"]["is_due"] is True
        assert by_id["L3-1000H"]["is_due"] is False
        assert "hours_until_due" not in by_id["L1-DAILY"]
        assert result["summary"]["due_intervals"] == 2
        assert result["summary"]["next_due_interval"] == "L2-250H"
        assert result["summary"]["hours_until_next"] == 20

    def test_in_range_drops_longer_intervals(self):
        result = maintenance_intervals(operating_hours=480, include_tasks_in_range=True)
        ids = {i["id"] for i in result["intervals"]}
        assert "L2-250H" in ids
        assert not ids & {"L2-500H", "L3-1000H", "L4-6000H"}
        assert "L1-DAILY" in ids

    def test_catalog_is_not_mutated(self):
        maintenance_intervals(operating_hours=100)
        assert all("hours_until_due" not in i for i in MAINTENANCE_INTERVALS)

    def test_invalid_level_rejected(self):
        with pytest.raises(ValidationError):
            maintenance_intervals(level="L9")

    def test_negative_hours_rejected(self):
        with pytest.raises(ValidationError):
            maintenance_intervals(operating_hours=-1)
