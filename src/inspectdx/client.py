"""
InspectDx Client Facade

Single entry point for programmatic use of InspectDx.  Wires the
providers, index, caches and pipeline stages from one
:class:`InspectdxConfig` and exposes diagnosis, classification, search
and knowledge lookups behind an instance-based API with async variants.

Usage::

    from inspectdx import Inspectdx

    # From environment variables
    client = Inspectdx()

    # Offline: hashing embeddings, lexical reranking, in-memory index
    client = Inspectdx(embedding_fallback_only=True, index_backend="memory")

    client.seed()                                          # load the catalog
    report = client.diagnose("Motor überhitzt beim Starten, Öldruck schwankt")
    print(report.root_cause.affected_component, report.resolution.priority)

    # Async variants (for FastAPI / aiohttp handlers)
    report = await client.adiagnose("Getriebe schaltet nicht", timeout=30)
    hits   = await client.asearch("Kettenspannung prüfen")
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from inspectdx.core.classifier import DefectClassifier
from inspectdx.core.config import InspectdxConfig
from inspectdx.core.diagnosis import (
    DiagnosticPipeline,
    DiagnosticSynthesizer,
    EvidenceGatherer,
    HypothesisRanker,
    SymptomAnalyzer,
)
from inspectdx.core.evals import (
    EvalReport,
    RetrievalEvaluator,
    RetrievalTestCase,
    SemanticRelevanceJudge,
)
from inspectdx.core.engine import (
    ComponentRecord,
    DefectClassification,
    DiagnosticReport,
    EvidenceItem,
    QueryCache,
    VectorIndex,
    create_embedding_provider,
    create_relevance_scorer,
    create_vector_index,
)
from inspectdx.core.knowledge import (
    IndexedComponentRepository,
    KnowledgeSeeder,
    SeedResult,
    maintenance_intervals,
)
from inspectdx.core.report import ReportAssembler
from inspectdx.core.retriever import RetrievalFilter, RetrievalResponse, SemanticRetriever

logger = logging.getLogger(__name__)


class Inspectdx:
    """
    High-level InspectDx client.

    Each instance owns its configuration, its vector index handle and
    its two caches; nothing is shared between instances.  Providers and
    the index are created lazily on first use, so :meth:`classify`,
    :meth:`maintenance_intervals` and :meth:`health` never touch the
    network or disk.

    Args:
        config: Explicit configuration object.  When *None*, a config
            is built from environment variables or keyword overrides.
        validate_on_init: If True, call :meth:`InspectdxConfig.validate`
            in __init__ so a missing API key surfaces immediately.
        base_dir: Directory the SQLite index path is resolved against
            (defaults to ``config.index_dir`` relative to the CWD).
        **kwargs: Forwarded to :class:`InspectdxConfig` when *config* is
            ``None`` (e.g. ``index_backend="memory"``).
    """

    def __init__(
        self,
        config: InspectdxConfig | None = None,
        *,
        validate_on_init: bool = False,
        base_dir: str | Path | None = None,
        **kwargs,
    ):
        if config is not None:
            self._config = config
        elif kwargs:
            # Build a config from env, then overlay keyword overrides
            base = InspectdxConfig.from_env()
            merged = {
                f.name: kwargs.get(f.name, getattr(base, f.name))
                for f in base.__dataclass_fields__.values()
            }
            self._config = InspectdxConfig(**merged)
        else:
            self._config = InspectdxConfig.from_env()

        if validate_on_init:
            self._config.validate()

        self._base_dir = Path(base_dir) if base_dir is not None else None
        self._classifier = DefectClassifier()
        self._index: Optional[VectorIndex] = None
        self._retriever: Optional[SemanticRetriever] = None
        self._pipeline: Optional[DiagnosticPipeline] = None
        self.embedding_cache: QueryCache = QueryCache(
            self._config.embedding_cache_ttl_seconds, name="embedding_cache",
        )
        self.query_cache: QueryCache = QueryCache(
            self._config.query_cache_ttl_seconds, name="query_cache",
        )

    # ── Configuration ─────────────────────────────────────────────

    @property
    def config(self) -> InspectdxConfig:
        """The active configuration for this client."""
        return self._config

    # ── Wiring ────────────────────────────────────────────────────

    @property
    def index(self) -> VectorIndex:
        if self._index is None:
            self._index = create_vector_index(self._config, self._base_dir)
        return self._index

    @property
    def retriever(self) -> SemanticRetriever:
        if self._retriever is None:
            self._retriever = SemanticRetriever(
                self._config,
                embedder=create_embedding_provider(self._config),
                index=self.index,
                embedding_cache=self.embedding_cache,
                query_cache=self.query_cache,
                scorer=create_relevance_scorer(self._config),
            )
        return self._retriever

    @property
    def pipeline(self) -> DiagnosticPipeline:
        if self._pipeline is None:
            cfg = self._config
            self._pipeline = DiagnosticPipeline(
                cfg,
                analyzer=SymptomAnalyzer(),
                gatherer=EvidenceGatherer(
                    cfg, self.retriever, IndexedComponentRepository(self.retriever),
                ),
                ranker=HypothesisRanker(cfg),
                synthesizer=DiagnosticSynthesizer(cfg),
                classifier=self._classifier,
                assembler=ReportAssembler(),
            )
        return self._pipeline

    # ── Diagnosis ─────────────────────────────────────────────────

    def diagnose(
        self,
        symptom: str,
        vehicle_id: str = "leopard2",
        component_hint: str | None = None,
        *,
        timeout: float | None = None,
    ) -> DiagnosticReport:
        """
        Run the full diagnostic pipeline for *symptom*.

        Evidence-source failures degrade to empty evidence; a run that
        finds nothing still returns a complete report with confidence 20.

        Raises:
            ValidationError: *symptom* is empty.
            DiagnosisTimeoutError: *timeout* (or the configured request
                timeout) expired.
        """
        return self.pipeline.run(symptom, vehicle_id, component_hint, timeout)

    async def adiagnose(
        self,
        symptom: str,
        vehicle_id: str = "leopard2",
        component_hint: str | None = None,
        *,
        timeout: float | None = None,
    ) -> DiagnosticReport:
        """Async variant of :meth:`diagnose`; runs on the caller's event loop."""
        return await self.pipeline.arun(symptom, vehicle_id, component_hint, timeout)

    def classify(
        self,
        description: str,
        component_id: str | None = None,
        checkpoint_number: int | None = None,
    ) -> DefectClassification:
        """Assign priority, SLA, escalation and recommendations to a defect description."""
        return self._classifier.classify(description, component_id, checkpoint_number)

    # ── Knowledge access ──────────────────────────────────────────

    def search(
        self,
        query: str,
        *,
        filters: RetrievalFilter | None = None,
        top_k: int | None = None,
        min_score: float | None = None,
        rerank: bool = False,
    ) -> RetrievalResponse:
        """Semantic search over the knowledge index (see :meth:`SemanticRetriever.retrieve`)."""
        return self.retriever.retrieve(query, filters, top_k, min_score, rerank)

    async def asearch(
        self,
        query: str,
        *,
        filters: RetrievalFilter | None = None,
        top_k: int | None = None,
        min_score: float | None = None,
        rerank: bool = False,
    ) -> RetrievalResponse:
        """Async variant of :meth:`search`. Raises same exceptions as sync."""
        return await self.retriever.aretrieve(query, filters, top_k, min_score, rerank)

    def get_checkpoint(self, number: int, vehicle_type: str = "leopard2") -> Optional[EvidenceItem]:
        return self.retriever.get_checkpoint(number, vehicle_type)

    def get_component(self, component_id: str) -> Optional[ComponentRecord]:
        return IndexedComponentRepository(self.retriever).get(component_id)

    def maintenance_intervals(
        self,
        level: str | None = None,
        operating_hours: float | None = None,
        interval_id: str | None = None,
        include_tasks_in_range: bool = False,
    ) -> dict:
        return maintenance_intervals(level, operating_hours, interval_id, include_tasks_in_range)

    def seed(self, *, reset: bool = True, show_progress: bool = False) -> SeedResult:
        """
        Load the static catalog into the vector index and clear both caches.

        Raises:
            SeedError: embedding or index writes failed.
        """
        seeder = KnowledgeSeeder(
            self._config,
            embedder=self.retriever.embedder,
            index=self.index,
            caches=(self.embedding_cache, self.query_cache),
        )
        return seeder.seed(reset=reset, show_progress=show_progress)

    async def aseed(self, *, reset: bool = True) -> SeedResult:
        """Async variant of :meth:`seed`. Raises same exceptions as sync."""
        return await asyncio.to_thread(self.seed, reset=reset)

    # ── Evaluation ────────────────────────────────────────────────

    def evaluate(
        self,
        cases: Optional[Sequence[RetrievalTestCase]] = None,
        *,
        vehicle_type: str = "leopard2",
        include_edge_cases: bool = True,
        judge: bool = False,
        show_progress: bool = False,
    ) -> EvalReport:
        """
        Score retrieval quality against the built-in German test cases.

        With *judge* the configured LLM provider also rates semantic
        relevance per case. Failed cases are recorded in the report.
        """
        evaluator = RetrievalEvaluator(
            self._config,
            self.retriever,
            vehicle_type=vehicle_type,
            judge=SemanticRelevanceJudge(self._config) if judge else None,
        )
        return evaluator.run(
            cases, include_edge_cases=include_edge_cases, show_progress=show_progress,
        )

    # ── Statistics ────────────────────────────────────────────────

    def stats(self) -> Dict[str, Any]:
        """Index size plus hit/miss statistics of both caches."""
        name = self._config.index_name
        try:
            indexed = self.index.count(name)
        except LookupError:
            indexed = 0
        return {
            "index_name": name,
            "index_backend": self._config.index_backend,
            "indexed_chunks": indexed,
            "embedding_cache": self.embedding_cache.stats(),
            "query_cache": self.query_cache.stats(),
        }

    # ── Health (for agents / status endpoints) ─────────────────────

    def health(self) -> Dict[str, object]:
        """
        Return a small status dict for agents or health checks.

        Does not require an index or network.
        """
        from inspectdx import health

        return health(self._config)

    def close(self) -> None:
        """Release the index handle. Idempotent."""
        if self._index is not None:
            self._index.close()
