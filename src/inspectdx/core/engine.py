"""
InspectDx Core Engine

Data models shared by every pipeline stage, the TTL query cache, the
embedding / LLM provider abstractions, relevance scorers used for
reranking, and the vector index backends (in-memory and SQLite).

Nothing in this module knows about the diagnostic stages themselves;
it is the leaf layer the retriever and the pipeline are built on.
"""

import hashlib
import json
import logging
import re
import sqlite3
import threading
import time
from dataclasses import dataclass, asdict, field
from difflib import SequenceMatcher
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, Set, Tuple, TypeVar

import numpy as np

from inspectdx.core.config import InspectdxConfig, Prompts, SystemTaxonomy

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Enumerations
# =============================================================================

class SystemTag(str, Enum):
    """Vehicle subsystems a symptom can implicate (declaration order is report order)."""
    ENGINE = "engine"
    TRANSMISSION = "transmission"
    HYDRAULIC = "hydraulic"
    ELECTRICAL = "electrical"
    TURRET = "turret"
    TRACKS = "tracks"
    COOLING = "cooling"
    FUEL = "fuel"
    BRAKES = "brakes"
    ELECTRONICS = "electronics"
    GENERAL = "general"


class DefectPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class MaintenanceLevel(str, Enum):
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    L4 = "L4"


class HypothesisSource(str, Enum):
    """Which generation pass produced a hypothesis (strongest first)."""
    COMPONENT_FAILURE = "component_failure"
    FAILURE_MODE = "failure_mode"
    RELATED_ISSUE = "related_issue"


class DataType(str, Enum):
    """Kinds of chunk stored in the knowledge index."""
    VEHICLE = "vehicle"
    CHECKPOINT = "checkpoint"
    COMPONENT = "component"
    DEFECT = "defect"
    INTERVAL = "interval"
    LEGACY = "legacy"


class EvidenceSource(str, Enum):
    KNOWLEDGE_BASE = "knowledge_base"
    COMPONENT_LOOKUP = "component_lookup"
    FAILURE_MODES = "failure_modes"


def _plain(value: Any) -> Any:
    """Recursively turn enums and tuples into JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


# =============================================================================
# Data Models: knowledge
# =============================================================================

@dataclass(frozen=True)
class EvidenceItem:
    """One retrieved knowledge passage with its similarity score and tags."""
    text: str
    source_section_id: str
    score: float
    component_id: Optional[str] = None
    priority: Optional[str] = None
    checkpoint_number: Optional[int] = None
    checkpoint_name: Optional[str] = None
    section_name: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_variant: Optional[str] = None
    crew_role: Optional[str] = None
    maintenance_level: Optional[str] = None
    estimated_time_min: Optional[int] = None
    data_type: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Dict[str, Any], score: float) -> "EvidenceItem":
        """Shape an index match (metadata + score) into an evidence item."""
        checkpoint = metadata.get("checkpoint_number")
        return cls(
            text=metadata.get("text", ""),
            source_section_id=str(metadata.get("section_id", "")),
            score=float(score),
            component_id=metadata.get("component_id"),
            priority=metadata.get("priority"),
            checkpoint_number=int(checkpoint) if checkpoint is not None else None,
            checkpoint_name=metadata.get("checkpoint_name"),
            section_name=metadata.get("section_name"),
            vehicle_type=metadata.get("vehicle_type"),
            vehicle_variant=metadata.get("vehicle_variant"),
            crew_role=metadata.get("crew_role"),
            maintenance_level=metadata.get("maintenance_level"),
            estimated_time_min=metadata.get("estimated_time_min"),
            data_type=metadata.get("data_type"),
        )

    def component_key(self) -> Tuple[str, str]:
        """Identity used when merging failure-mode evidence."""
        return (self.source_section_id, self.component_id or "n/a")

    def checkpoint_key(self) -> Tuple[str, str]:
        """Identity used when merging general knowledge-base evidence."""
        number = self.checkpoint_number
        return (self.source_section_id, str(number) if number is not None else "n/a")

    def to_dict(self) -> dict:
        return asdict(self)


def dedupe_evidence(
    items: List[EvidenceItem],
    key: Callable[[EvidenceItem], Tuple[str, str]],
) -> List[EvidenceItem]:
    """Drop later items whose *key* was already seen; first occurrence wins."""
    seen = set()
    unique: List[EvidenceItem] = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        unique.append(item)
    return unique


def merge_evidence(
    items: List[EvidenceItem],
    key: Callable[[EvidenceItem], Tuple[str, str]],
    limit: int,
) -> List[EvidenceItem]:
    """Dedupe in declared order, then sort by score descending and truncate."""
    unique = dedupe_evidence(items, key)
    unique.sort(key=lambda item: item.score, reverse=True)
    return unique[:limit]


@dataclass(frozen=True)
class ComponentFailure:
    """A documented failure mode of a component."""
    id: str
    name: str
    symptoms: Tuple[str, ...]
    cause: str = ""
    mtbf_hours: Optional[int] = None


@dataclass(frozen=True)
class MonitoringPoint:
    name: str
    unit: str
    normal_min: Optional[float] = None
    normal_max: Optional[float] = None
    critical_min: Optional[float] = None
    critical_max: Optional[float] = None


@dataclass(frozen=True)
class MaintenanceTask:
    task: str
    interval: str
    level: str = "L1"


@dataclass(frozen=True)
class ComponentRecord:
    """Full component knowledge: specs, schedule, monitoring, failures."""
    id: str
    name: str
    category: str
    specs: Dict[str, Any] = field(default_factory=dict)
    maintenance_schedule: Tuple[MaintenanceTask, ...] = ()
    monitoring_points: Tuple[MonitoringPoint, ...] = ()
    common_failures: Tuple[ComponentFailure, ...] = ()
    notes: str = ""

    def to_dict(self) -> dict:
        return _plain(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentRecord":
        """Rebuild a record from :meth:`to_dict` output (e.g. a stored payload)."""
        return cls(
            id=data["id"],
            name=data["name"],
            category=data.get("category", ""),
            specs=dict(data.get("specs") or {}),
            maintenance_schedule=tuple(
                MaintenanceTask(**task) for task in data.get("maintenance_schedule") or []
            ),
            monitoring_points=tuple(
                MonitoringPoint(**point) for point in data.get("monitoring_points") or []
            ),
            common_failures=tuple(
                ComponentFailure(
                    id=f["id"],
                    name=f["name"],
                    symptoms=tuple(f.get("symptoms") or ()),
                    cause=f.get("cause", ""),
                    mtbf_hours=f.get("mtbf_hours"),
                )
                for f in data.get("common_failures") or []
            ),
            notes=data.get("notes", ""),
        )


# =============================================================================
# Data Models: pipeline stage boundaries
# =============================================================================

@dataclass(frozen=True)
class SymptomContext:
    """Intent and scope extracted from one symptom report.

    ``keywords`` and ``search_queries`` are informational (logged, and
    returned by ``to_dict()``); :class:`EvidenceGatherer` builds its own
    per-source query strings from ``raw_text`` and ``affected_systems``.
    """
    raw_text: str
    vehicle_id: str
    affected_systems: Tuple[SystemTag, ...]
    keywords: Tuple[str, ...]
    search_queries: Tuple[str, ...]
    component_hint: Optional[str] = None

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass(frozen=True)
class SourceFailure:
    """A retrieval or lookup that failed and was degraded to an empty result."""
    source: EvidenceSource
    detail: str
    error_type: str

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass(frozen=True)
class EvidenceBundle:
    """Joined output of the three evidence sources."""
    related_issues: Tuple[EvidenceItem, ...] = ()
    component_evidence: Dict[str, ComponentRecord] = field(default_factory=dict)
    failure_modes: Tuple[EvidenceItem, ...] = ()
    failures: Tuple[SourceFailure, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.related_issues or self.component_evidence or self.failure_modes)

    def to_dict(self) -> dict:
        return {
            "related_issues": [i.to_dict() for i in self.related_issues],
            "component_evidence": {
                cid: record.to_dict() for cid, record in self.component_evidence.items()
            },
            "failure_modes": [i.to_dict() for i in self.failure_modes],
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass(frozen=True)
class Hypothesis:
    """A candidate root cause with likelihood (0-100) and evidence."""
    id: str
    description: str
    likelihood: int
    affected_component: str
    source: HypothesisSource
    component_id: Optional[str] = None
    source_section_id: Optional[str] = None
    diagnostic_actions: Tuple[str, ...] = ()
    supporting_evidence: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass(frozen=True)
class DiagnosticStep:
    step_number: int
    action: str
    expected_result: str
    actual_result: str
    conclusion: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DiagnosticOutcome:
    """Result of synthesizing a diagnostic trace from ranked hypotheses."""
    diagnostic_steps: Tuple[DiagnosticStep, ...]
    confidence: int
    evidence_trail: Tuple[str, ...]
    confirmed_hypothesis: Optional[Hypothesis] = None
    needs_more_info: bool = False

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass(frozen=True)
class DefectCategoryMatch:
    id: str
    name: str
    name_en: str
    matched_term: str


@dataclass(frozen=True)
class DefectClassification:
    """Priority, SLA and escalation assigned to a defect description."""
    priority: DefectPriority
    priority_name_local: str
    priority_name_en: str
    response_time: str
    vehicle_status: str
    escalation: str
    color: str
    matched_keywords: Tuple[str, ...]
    confidence: float
    recommendations: Tuple[str, ...]
    category: Optional[DefectCategoryMatch] = None

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass(frozen=True)
class RootCause:
    description: str
    confidence: int
    affected_component: str
    component_id: Optional[str] = None


@dataclass(frozen=True)
class Resolution:
    priority: DefectPriority
    maintenance_level: MaintenanceLevel
    recommended_action: str
    required_parts: Tuple[str, ...]
    estimated_time: str
    required_expertise: str


@dataclass(frozen=True)
class DiagnosticReport:
    """Terminal, immutable aggregate returned by a diagnosis run."""
    vehicle_id: str
    session_id: str
    timestamp_utc: str
    symptom_description: str
    affected_systems: Tuple[SystemTag, ...]
    diagnostic_steps: Tuple[DiagnosticStep, ...]
    root_cause: RootCause
    resolution: Resolution
    evidence_trail: Tuple[str, ...]

    def to_dict(self) -> dict:
        return _plain(asdict(self))

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# =============================================================================
# Query Cache
# =============================================================================

@dataclass
class CacheEntry(Generic[T]):
    value: T
    expires_at: float


class QueryCache(Generic[T]):
    """Thread-safe TTL key/value cache with hit/miss accounting.

    Expired entries are evicted lazily on read (an entry set at time 0
    with TTL ``T`` is a miss from ``t >= T`` on) and eagerly by
    :meth:`cleanup`.  *clock* is injectable so tests can move time.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def generate_key(query: str, filters: Optional[Dict[str, Any]] = None) -> str:
        """Build a cache key that ignores the insertion order of *filters*."""
        serialized = json.dumps(filters or {}, sort_keys=True, ensure_ascii=False, default=str)
        return f"{query}|{serialized}"

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock() + self.ttl_seconds)

    def cleanup(self) -> int:
        """Remove expired entries; return how many were evicted."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug(f"{self.name}: evicted {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        """Drop all entries and reset the statistics."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
                "hit_rate": self._hits / total if total else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# Embedding Provider Abstraction
# =============================================================================

class EmbeddingProvider:
    """
    Abstract base for text-embedding providers.

    Subclasses wrap one vendor SDK (imported lazily) and return a fixed
    dimensionality vector from :meth:`embed`.
    """

    dimensions: int = 1536

    def embed(self, text: str) -> List[float]:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings — uses the ``openai`` SDK."""

    def __init__(self, api_key: str | None, model: str = "text-embedding-3-small",
                 dimensions: int = 1536):
        try:
            import openai  # Lazy import
        except (ImportError, ModuleNotFoundError) as exc:
            raise ImportError(
                "The 'openai' SDK is not installed.\n"
                "  Install:  pip install 'inspectdx[openai]'\n"
                "  Or run offline:  export INSPECTDX_FALLBACK_ONLY=1"
            ) from exc
        self.client = openai.OpenAI(api_key=api_key)
        self.model = model
        self.dimensions = dimensions

    def embed(self, text: str) -> List[float]:
        response = self.client.embeddings.create(
            model=self.model,
            input=text,
            dimensions=self.dimensions,
        )
        return list(response.data[0].embedding)


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Google Gemini embeddings — uses the ``google-genai`` SDK."""

    def __init__(self, api_key: str | None, model: str = "text-embedding-004",
                 dimensions: int = 1536):
        try:
            from google import genai  # Lazy import
        except (ImportError, ModuleNotFoundError) as exc:
            raise ImportError(
                "The 'google-genai' SDK is not installed.\n"
                "  Install:  pip install 'inspectdx[gemini]'\n"
                "  Or switch provider:  export INSPECTDX_EMBEDDING_PROVIDER=openai"
            ) from exc
        self.client = genai.Client(api_key=api_key)
        self.model = model
        self.dimensions = dimensions

    def embed(self, text: str) -> List[float]:
        from google.genai import types

        response = self.client.models.embed_content(
            model=self.model,
            contents=text,
            config=types.EmbedContentConfig(output_dimensionality=self.dimensions),
        )
        return list(response.embeddings[0].values)


_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic local embeddings via feature hashing.

    Tokens and their character trigrams are hashed into a fixed-size
    signed vector, then L2-normalized.  Texts sharing vocabulary land
    close in cosine space, which is enough for offline use and tests.
    """

    def __init__(self, dimensions: int = 1536, trigram_weight: float = 0.5):
        self.dimensions = dimensions
        self.trigram_weight = trigram_weight

    def _bucket(self, feature: str) -> Tuple[int, float]:
        digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
        value = int.from_bytes(digest, "big")
        return value % self.dimensions, (1.0 if value >> 63 else -1.0)

    def embed(self, text: str) -> List[float]:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in _TOKEN_RE.findall(text.lower()):
            index, sign = self._bucket(f"w:{token}")
            vector[index] += sign
            padded = f"#{token}#"
            for i in range(len(padded) - 2):
                index, sign = self._bucket(f"c:{padded[i:i + 3]}")
                vector[index] += sign * self.trigram_weight
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()


def create_embedding_provider(config: InspectdxConfig) -> EmbeddingProvider:
    """Instantiate the embedding provider selected by *config*."""
    if config.embedding_fallback_only or config.embedding_provider == "hashing":
        return HashingEmbeddingProvider(dimensions=config.embedding_dimensions)
    if config.embedding_provider == "openai":
        return OpenAIEmbeddingProvider(
            api_key=config.openai_api_key,
            model=config.openai_embedding_model,
            dimensions=config.embedding_dimensions,
        )
    if config.embedding_provider == "gemini":
        return GeminiEmbeddingProvider(
            api_key=config.gemini_api_key,
            model=config.gemini_embedding_model,
            dimensions=config.embedding_dimensions,
        )
    raise ValueError(
        f"Unknown embedding provider '{config.embedding_provider}'. "
        "Supported: openai, gemini, hashing"
    )


# =============================================================================
# LLM Provider Abstraction (relevance scoring)
# =============================================================================

class LLMProvider:
    """
    Abstract base for chat-completion providers.

    Used by the reranker (a bare relevance number) and the retrieval
    evaluation judge (a JSON verdict); ``complete`` returns the stripped
    response text.
    """

    def complete(
        self,
        system: str,
        user_message: str,
        max_tokens: int = 10,
        temperature: float = 0.0,
    ) -> str:
        raise NotImplementedError


class AnthropicProvider(LLMProvider):
    """Anthropic (Claude) provider — uses the ``anthropic`` SDK."""

    def __init__(self, api_key: str | None, model: str = "claude-haiku-4-5"):
        try:
            import anthropic  # Lazy import
        except (ImportError, ModuleNotFoundError) as exc:
            raise ImportError(
                "The 'anthropic' SDK is not installed.\n"
                "  Install:  pip install 'inspectdx[anthropic]'\n"
                "  Or switch provider:  export INSPECTDX_LLM_PROVIDER=openai"
            ) from exc
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model

    def complete(self, system: str, user_message: str,
                 max_tokens: int = 10,
                 temperature: float = 0.0) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": user_message}],
        )
        return response.content[0].text.strip()


class OpenAIProvider(LLMProvider):
    """OpenAI (GPT) provider — uses the ``openai`` SDK."""

    def __init__(self, api_key: str | None, model: str = "gpt-4o-mini"):
        try:
            import openai  # Lazy import
        except (ImportError, ModuleNotFoundError) as exc:
            raise ImportError(
                "The 'openai' SDK is not installed.\n"
                "  Install:  pip install 'inspectdx[openai]'\n"
                "  Or switch provider:  export INSPECTDX_LLM_PROVIDER=anthropic"
            ) from exc
        self.client = openai.OpenAI(api_key=api_key)
        self.model = model

    def complete(self, system: str, user_message: str,
                 max_tokens: int = 10,
                 temperature: float = 0.0) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user_message},
            ],
        )
        return response.choices[0].message.content.strip()


class GeminiProvider(LLMProvider):
    """Google Gemini provider — uses the ``google-genai`` SDK."""

    def __init__(self, api_key: str | None, model: str = "gemini-2.0-flash"):
        try:
            from google import genai  # Lazy import
        except (ImportError, ModuleNotFoundError) as exc:
            raise ImportError(
                "The 'google-genai' SDK is not installed.\n"
                "  Install:  pip install 'inspectdx[gemini]'\n"
                "  Or switch provider:  export INSPECTDX_LLM_PROVIDER=anthropic"
            ) from exc
        self.client = genai.Client(api_key=api_key)
        self.model = model

    def complete(self, system: str, user_message: str,
                 max_tokens: int = 10,
                 temperature: float = 0.0) -> str:
        from google.genai import types

        response = self.client.models.generate_content(
            model=self.model,
            contents=user_message,
            config=types.GenerateContentConfig(
                system_instruction=system,
                max_output_tokens=max_tokens,
                temperature=temperature,
            ),
        )
        return response.text.strip()


# Provider registry: maps config name → class
_PROVIDER_REGISTRY: Dict[str, type] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def _create_llm_provider(config: InspectdxConfig) -> LLMProvider:
    """Instantiate the reranking :class:`LLMProvider` selected by *config*."""
    provider = config.llm_provider.lower()
    if provider not in _PROVIDER_REGISTRY:
        raise ValueError(
            f"Unknown LLM provider '{provider}'. "
            f"Supported: {', '.join(_PROVIDER_REGISTRY)}"
        )
    return _PROVIDER_REGISTRY[provider](
        api_key=config.get_llm_api_key(),
        model=config.get_llm_model(),
    )


# =============================================================================
# Relevance Scoring (reranking signal)
# =============================================================================

class RelevanceScorer:
    """Scores query/passage relevance in [0, 1]."""

    def score(self, query: str, passage: str) -> float:
        raise NotImplementedError


class LexicalRelevanceScorer(RelevanceScorer):
    """Keyword-overlap relevance with a small fuzzy-match component."""

    def __init__(self, overlap_weight: float = 0.8):
        self.overlap_weight = overlap_weight

    @staticmethod
    def _terms(text: str) -> List[str]:
        return [
            t for t in _TOKEN_RE.findall(text.lower())
            if len(t) > 2 and t not in SystemTaxonomy.STOP_WORDS
        ]

    def score(self, query: str, passage: str) -> float:
        terms = self._terms(query)
        if not terms or not passage:
            return 0.0
        haystack = passage.lower()
        overlap = sum(1 for t in terms if t in haystack) / len(terms)
        fuzzy = SequenceMatcher(None, query.lower(), haystack[:500]).ratio()
        return min(1.0, self.overlap_weight * overlap + (1 - self.overlap_weight) * fuzzy)


_NUMBER_RE = re.compile(r"\d*\.?\d+")


class LLMRelevanceScorer(RelevanceScorer):
    """
    LLM-judged relevance with retry and a lexical fallback.

    The provider is created lazily on first use.  If the SDK is missing
    or every attempt fails, the lexical score is returned instead so a
    rerank never fails the retrieval it belongs to.
    """

    def __init__(self, config: InspectdxConfig, provider: LLMProvider | None = None,
                 fallback: RelevanceScorer | None = None):
        self._config = config
        self.llm = provider
        self.fallback = fallback or LexicalRelevanceScorer()
        self._llm_unavailable = False

    def _ensure_llm(self) -> LLMProvider:
        if self.llm is None:
            self.llm = _create_llm_provider(self._config)
        return self.llm

    @staticmethod
    def _parse_score(raw: str) -> Optional[float]:
        match = _NUMBER_RE.search(raw)
        if not match:
            return None
        return max(0.0, min(1.0, float(match.group(0))))

    def score(self, query: str, passage: str) -> float:
        if self._llm_unavailable:
            return self.fallback.score(query, passage)

        cfg = self._config
        for attempt in range(1, cfg.retry_attempts + 1):
            try:
                raw = self._ensure_llm().complete(
                    system=Prompts.RELEVANCE_SYSTEM,
                    user_message=Prompts.RELEVANCE_USER.format(
                        query=query, passage=passage[:1500],
                    ),
                    max_tokens=cfg.llm_max_tokens,
                    temperature=cfg.llm_temperature,
                )
                parsed = self._parse_score(raw)
                if parsed is not None:
                    return parsed
                logger.warning(
                    f"Unparseable relevance score on attempt {attempt}/{cfg.retry_attempts}: '{raw}'"
                )
            except (ImportError, ModuleNotFoundError) as e:
                self._llm_unavailable = True
                logger.warning("LLM unavailable (%s). Using lexical relevance for reranking.", e)
                return self.fallback.score(query, passage)
            except Exception as e:
                logger.warning(
                    f"Relevance API error on attempt {attempt}/{cfg.retry_attempts}: {e}"
                )

            if attempt < cfg.retry_attempts:
                time.sleep(cfg.retry_backoff_base ** (attempt - 1))

        logger.error(
            f"All {cfg.retry_attempts} relevance attempts failed. Using lexical fallback."
        )
        return self.fallback.score(query, passage)


def create_relevance_scorer(config: InspectdxConfig) -> RelevanceScorer:
    """Lexical scorer in fallback mode, LLM-backed scorer otherwise."""
    if config.embedding_fallback_only:
        return LexicalRelevanceScorer()
    return LLMRelevanceScorer(config)


# =============================================================================
# Vector Index Backends
# =============================================================================

@dataclass(frozen=True)
class QueryMatch:
    id: str
    score: float
    metadata: Dict[str, Any]


_FILTER_KEY_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def _cosine_scores(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row in *matrix* with *vector*, clamped to [0, 1]."""
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, matrix @ vector / norms, 0.0)
    return np.clip(scores, 0.0, 1.0)


def _top_matches(ids: List[str], matrix: np.ndarray, metadata: List[dict],
                 vector: List[float], top_k: int) -> List[QueryMatch]:
    if not ids or top_k <= 0:
        return []
    scores = _cosine_scores(matrix, np.asarray(vector, dtype=np.float64))
    order = np.argsort(-scores, kind="stable")[:top_k]
    return [QueryMatch(ids[i], float(scores[i]), dict(metadata[i])) for i in order]


class VectorIndex:
    """
    Black-box nearest-neighbour store over cosine similarity.

    ``filter`` arguments are exact-match maps over metadata keys; an
    empty or missing filter means no restriction.
    """

    def create_index(self, name: str, dimension: int) -> None:
        raise NotImplementedError

    def upsert(self, name: str, vectors: List[List[float]], metadata: List[dict],
               ids: Optional[List[str]] = None) -> List[str]:
        raise NotImplementedError

    def query(self, name: str, vector: List[float], top_k: int = 10,
              filter: Optional[Dict[str, Any]] = None) -> List[QueryMatch]:
        raise NotImplementedError

    def truncate_index(self, name: str) -> None:
        raise NotImplementedError

    def count(self, name: str) -> int:
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources. Idempotent."""

    @staticmethod
    def _check_batch(vectors: List[List[float]], metadata: List[dict],
                     ids: Optional[List[str]]) -> List[str]:
        if len(vectors) != len(metadata):
            raise ValueError("vectors and metadata must have the same length")
        if ids is None:
            return [
                hashlib.sha256(json.dumps(m, sort_keys=True, default=str).encode()).hexdigest()[:32]
                for m in metadata
            ]
        if len(ids) != len(vectors):
            raise ValueError("ids and vectors must have the same length")
        return list(ids)


class InMemoryVectorIndex(VectorIndex):
    """Process-local index; suitable for tests and short-lived CLIs."""

    def __init__(self):
        self._indexes: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def _get(self, name: str) -> dict:
        try:
            return self._indexes[name]
        except KeyError:
            raise LookupError(f"Vector index '{name}' does not exist") from None

    def create_index(self, name: str, dimension: int) -> None:
        with self._lock:
            self._indexes.setdefault(name, {"dimension": dimension, "rows": {}})

    def upsert(self, name, vectors, metadata, ids=None):
        ids = self._check_batch(vectors, metadata, ids)
        with self._lock:
            index = self._get(name)
            for row_id, vec, meta in zip(ids, vectors, metadata):
                if len(vec) != index["dimension"]:
                    raise ValueError(
                        f"Vector has dimension {len(vec)}, index '{name}' expects {index['dimension']}"
                    )
                index["rows"][row_id] = (np.asarray(vec, dtype=np.float64), dict(meta))
        return ids

    def query(self, name, vector, top_k=10, filter=None):
        with self._lock:
            rows = list(self._get(name)["rows"].items())
        if filter:
            rows = [
                (row_id, row) for row_id, row in rows
                if all(row[1].get(k) == v for k, v in filter.items())
            ]
        if not rows:
            return []
        ids = [row_id for row_id, _ in rows]
        matrix = np.vstack([row[0] for _, row in rows])
        return _top_matches(ids, matrix, [row[1] for _, row in rows], vector, top_k)

    def truncate_index(self, name: str) -> None:
        with self._lock:
            self._get(name)["rows"].clear()

    def count(self, name: str) -> int:
        with self._lock:
            return len(self._get(name)["rows"])


class SQLiteVectorIndex(VectorIndex):
    """SQLite-backed vector store.

    Uses thread-local connections so each worker thread reuses one
    long-lived handle.  Vectors are stored as float32 blobs; metadata
    as JSON so equality filters can run in SQL via ``json_extract``.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: Set[sqlite3.Connection] = set()
        self._connections_lock = threading.Lock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Return a thread-local SQLite connection, creating it on first use."""
        conn = getattr(self._local, "conn", None)
        with self._connections_lock:
            if conn is None or conn not in self._connections:
                # Opened per thread, but close() may run on any thread
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                self._connections.add(conn)
                self._local.conn = conn
        return conn

    @property
    def open_connections(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    def close(self) -> None:
        """Close every connection opened by any thread. Idempotent."""
        with self._connections_lock:
            connections, self._connections = self._connections, set()
        for conn in connections:
            conn.close()
        self._local.conn = None

    def _init_db(self):
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS vector_indexes (
                name TEXT PRIMARY KEY,
                dimension INTEGER NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS vectors (
                index_name TEXT NOT NULL,
                id TEXT NOT NULL,
                embedding BLOB NOT NULL,
                metadata TEXT NOT NULL,
                PRIMARY KEY (index_name, id),
                FOREIGN KEY (index_name) REFERENCES vector_indexes (name) ON DELETE CASCADE
            )
        """)
        conn.commit()

    def _dimension(self, name: str) -> int:
        row = self._get_connection().execute(
            "SELECT dimension FROM vector_indexes WHERE name = ?", (name,)
        ).fetchone()
        if row is None:
            raise LookupError(f"Vector index '{name}' does not exist")
        return row[0]

    def create_index(self, name: str, dimension: int) -> None:
        conn = self._get_connection()
        conn.execute(
            "INSERT OR IGNORE INTO vector_indexes (name, dimension) VALUES (?, ?)",
            (name, dimension),
        )
        conn.commit()

    def upsert(self, name, vectors, metadata, ids=None):
        ids = self._check_batch(vectors, metadata, ids)
        dimension = self._dimension(name)
        rows = []
        for row_id, vec, meta in zip(ids, vectors, metadata):
            if len(vec) != dimension:
                raise ValueError(
                    f"Vector has dimension {len(vec)}, index '{name}' expects {dimension}"
                )
            rows.append((
                name,
                row_id,
                np.asarray(vec, dtype=np.float32).tobytes(),
                json.dumps(meta, ensure_ascii=False),
            ))
        conn = self._get_connection()
        conn.executemany(
            "INSERT OR REPLACE INTO vectors (index_name, id, embedding, metadata) "
            "VALUES (?, ?, ?, ?)",
            rows,
        )
        conn.commit()
        return ids

    def query(self, name, vector, top_k=10, filter=None):
        self._dimension(name)
        sql = "SELECT id, embedding, metadata FROM vectors WHERE index_name = ?"
        params: List[Any] = [name]
        for key, value in (filter or {}).items():
            if not _FILTER_KEY_RE.match(key):
                raise ValueError(f"Invalid filter key '{key}'")
            sql += f" AND json_extract(metadata, '$.{key}') = ?"
            params.append(value)
        sql += " ORDER BY rowid"
        rows = self._get_connection().execute(sql, params).fetchall()
        if not rows:
            return []
        ids = [r[0] for r in rows]
        matrix = np.vstack([np.frombuffer(r[1], dtype=np.float32) for r in rows]).astype(np.float64)
        metadata = [json.loads(r[2]) for r in rows]
        return _top_matches(ids, matrix, metadata, vector, top_k)

    def truncate_index(self, name: str) -> None:
        self._dimension(name)
        conn = self._get_connection()
        conn.execute("DELETE FROM vectors WHERE index_name = ?", (name,))
        conn.commit()

    def count(self, name: str) -> int:
        self._dimension(name)
        row = self._get_connection().execute(
            "SELECT COUNT(*) FROM vectors WHERE index_name = ?", (name,)
        ).fetchone()
        return int(row[0])


def create_vector_index(config: InspectdxConfig, base_dir: Path | None = None) -> VectorIndex:
    """Instantiate the vector index backend selected by *config*."""
    if config.index_backend == "memory":
        return InMemoryVectorIndex()
    return SQLiteVectorIndex(config.get_index_path(base_dir))
