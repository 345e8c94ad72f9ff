"""
InspectDx Semantic Retriever

Wraps a vector-similarity search with query-embedding caching, metadata
filters, score thresholding, optional reranking and response caching.

Two caches are involved and both are injected:

- the *embedding* cache (long TTL) maps query text to its vector;
- the *query* cache (short TTL) maps the full request tuple
  ``(query, filters, top_k, min_score, rerank)`` to the shaped response.
"""

import asyncio
import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Tuple

from inspectdx.core.config import FilterVocabulary, InspectdxConfig
from inspectdx.core.engine import (
    EmbeddingProvider,
    EvidenceItem,
    QueryCache,
    RelevanceScorer,
    VectorIndex,
)
from inspectdx.exceptions import RetrievalUnavailableError, ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Request / Response Types
# =============================================================================

@dataclass(frozen=True)
class RetrievalFilter:
    """Optional metadata restrictions; unset fields do not restrict."""
    vehicle_type: Optional[str] = None
    vehicle_variant: Optional[str] = None
    crew_role: Optional[str] = None
    maintenance_level: Optional[str] = None
    priority: Optional[str] = None
    component_id: Optional[str] = None
    data_type: Optional[str] = None
    checkpoint_number: Optional[int] = None

    _VOCABULARY = {
        "vehicle_variant": FilterVocabulary.VEHICLE_VARIANTS,
        "crew_role": FilterVocabulary.CREW_ROLES,
        "maintenance_level": FilterVocabulary.MAINTENANCE_LEVELS,
        "priority": FilterVocabulary.PRIORITIES,
        "data_type": FilterVocabulary.DATA_TYPES,
    }

    def validate(self) -> None:
        """Raise :class:`ValidationError` for values outside the closed vocabularies."""
        for name, allowed in self._VOCABULARY.items():
            value = getattr(self, name)
            if value is not None and value not in allowed:
                raise ValidationError(
                    f"Invalid {name} '{value}'. Allowed: {', '.join(sorted(allowed))}"
                )
        if self.checkpoint_number is not None and self.checkpoint_number < 1:
            raise ValidationError("checkpoint_number must be a positive integer")

    def to_dict(self) -> Dict[str, Any]:
        """Non-empty fields only; this is the exact-match map sent to the index."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) not in (None, "")
        }


@dataclass(frozen=True)
class RetrievalResponse:
    items: Tuple[EvidenceItem, ...]
    total_found: int

    def to_dict(self) -> dict:
        return {
            "results": [item.to_dict() for item in self.items],
            "total_found": self.total_found,
        }


# =============================================================================
# Reranking
# =============================================================================

def rerank(
    query: str,
    candidates: List[EvidenceItem],
    scorer: RelevanceScorer,
    top_k: int,
    weights: Dict[str, float],
) -> List[EvidenceItem]:
    """
    Reorder *candidates* by a blend of semantic relevance, vector score and
    original rank position, then truncate to *top_k*.

    Items are returned unchanged (same objects, same scores), so the
    result is always a subset of the input.
    """
    total = len(candidates)
    if total == 0:
        return []
    blended = []
    for position, item in enumerate(candidates):
        semantic = scorer.score(query, item.text)
        position_score = 1.0 - position / total
        combined = (
            weights.get("semantic", 0.0) * semantic
            + weights.get("vector", 0.0) * item.score
            + weights.get("position", 0.0) * position_score
        )
        blended.append((combined, position, item))
    blended.sort(key=lambda entry: (-entry[0], entry[1]))
    return [item for _, _, item in blended[:top_k]]


# =============================================================================
# Semantic Retriever
# =============================================================================

class SemanticRetriever:
    """
    Cached semantic search over the inspection knowledge index.

    Args:
        config: Supplies defaults (top_k, min_score, rerank weights, index name).
        embedder: Embedding provider for query text.
        index: Long-lived vector index handle (reused for every call).
        embedding_cache: TTL cache for query vectors.
        query_cache: TTL cache for full responses.
        scorer: Relevance scorer used when ``rerank=True``.
    """

    def __init__(
        self,
        config: InspectdxConfig,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        embedding_cache: QueryCache,
        query_cache: QueryCache,
        scorer: RelevanceScorer,
    ):
        self._config = config
        self.embedder = embedder
        self.index = index
        self.embedding_cache = embedding_cache
        self.query_cache = query_cache
        self.scorer = scorer

    @property
    def index_name(self) -> str:
        return self._config.index_name

    def embed_query(self, text: str) -> List[float]:
        """Return the embedding for *text*, computing it only on a cache miss."""
        key = QueryCache.generate_key(text)
        cached = self.embedding_cache.get(key)
        if cached is not None:
            return cached
        try:
            vector = self.embedder.embed(text)
        except Exception as exc:
            raise RetrievalUnavailableError(f"Embedding provider failed: {exc}") from exc
        self.embedding_cache.set(key, vector)
        return vector

    def retrieve(
        self,
        query: str,
        filters: RetrievalFilter | None = None,
        top_k: int | None = None,
        min_score: float | None = None,
        rerank_results: bool = False,
    ) -> RetrievalResponse:
        """
        Search the knowledge index for *query*.

        Candidates scoring below *min_score* are dropped before reranking.
        With *rerank_results*, ``max(top_k * 3, 15)`` candidates are pulled
        and the reranked list truncated to *top_k*.

        Raises:
            ValidationError: empty query, bad top_k / min_score, bad filter value.
            RetrievalUnavailableError: embedding provider or index unreachable.
        """
        cfg = self._config
        filters = filters or RetrievalFilter()
        top_k = cfg.default_top_k if top_k is None else top_k
        min_score = cfg.default_min_score if min_score is None else min_score

        if not query or not query.strip():
            raise ValidationError("query must be a non-empty string")
        if top_k < 1:
            raise ValidationError(f"top_k must be at least 1, got {top_k}")
        if not 0.0 <= min_score <= 1.0:
            raise ValidationError(f"min_score must be within [0, 1], got {min_score}")
        filters.validate()

        filter_map = filters.to_dict()
        cache_key = QueryCache.generate_key(query, {
            **filter_map,
            "top_k": top_k,
            "min_score": min_score,
            "rerank": rerank_results,
        })
        cached = self.query_cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Query cache hit: '{query[:60]}'")
            return cached

        vector = self.embed_query(query)
        fetch_k = (
            max(top_k * cfg.rerank_pool_multiplier, cfg.rerank_min_pool)
            if rerank_results else top_k
        )
        try:
            matches = self.index.query(
                self.index_name, vector, top_k=fetch_k, filter=filter_map or None,
            )
        except Exception as exc:
            raise RetrievalUnavailableError(f"Vector index query failed: {exc}") from exc

        candidates = [
            EvidenceItem.from_metadata(m.metadata, m.score)
            for m in matches
            if m.score >= min_score
        ]
        if rerank_results:
            candidates = rerank(query, candidates, self.scorer, top_k, cfg.rerank_weights)
        else:
            candidates = candidates[:top_k]

        response = RetrievalResponse(items=tuple(candidates), total_found=len(candidates))
        self.query_cache.set(cache_key, response)
        logger.debug(
            f"Retrieved {response.total_found} items for '{query[:60]}' "
            f"(fetched {len(matches)}, filters={filter_map})"
        )
        return response

    async def aretrieve(
        self,
        query: str,
        filters: RetrievalFilter | None = None,
        top_k: int | None = None,
        min_score: float | None = None,
        rerank_results: bool = False,
    ) -> RetrievalResponse:
        """Async variant of :meth:`retrieve` (runs in a worker thread)."""
        return await asyncio.to_thread(
            self.retrieve, query, filters, top_k, min_score, rerank_results,
        )

    def get_checkpoint(self, number: int, vehicle_type: str = "leopard2") -> Optional[EvidenceItem]:
        """Look up inspection checkpoint *number*; ``None`` if not indexed."""
        response = self.retrieve(
            f"checkpoint {number} {vehicle_type}",
            RetrievalFilter(vehicle_type=vehicle_type, checkpoint_number=number),
            top_k=5,
            min_score=0.0,
        )
        exact = [item for item in response.items if item.checkpoint_number == number]
        for item in exact:
            if item.data_type == "checkpoint":
                return item
        return exact[0] if exact else None
