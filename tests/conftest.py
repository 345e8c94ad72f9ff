"""
Shared fixtures for the InspectDx test suite.
"""

import os
import sys
import threading
import warnings
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Filter deprecation warnings from pytest-asyncio (Python 3.16 prep); we cannot fix the library.
warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    module="pytest_asyncio",
)

# Ensure the src/ directory is on the import path so that
# inspectdx.core.config / inspectdx.core.engine / etc. can be imported.
SRC_ROOT = Path(__file__).resolve().parent.parent / "src"
sys.path.insert(0, str(SRC_ROOT))

# Dummy API keys so validate() passes for tests that select a real provider.
# No test in this suite talks to a network service.
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key-not-real")
os.environ.setdefault("OPENAI_API_KEY", "test-key-not-real")
os.environ.setdefault("GEMINI_API_KEY", "test-key-not-real")

from inspectdx import Inspectdx, InspectdxConfig  # noqa: E402
from inspectdx.core.engine import (  # noqa: E402
    ComponentRecord,
    EmbeddingProvider,
    EvidenceItem,
    HashingEmbeddingProvider,
    LexicalRelevanceScorer,
    QueryCache,
    QueryMatch,
    VectorIndex,
)
from inspectdx.core.knowledge import ComponentRepository  # noqa: E402
from inspectdx.core.retriever import RetrievalResponse, SemanticRetriever  # noqa: E402


# =============================================================================
# Test doubles
# =============================================================================

class CountingEmbedder(EmbeddingProvider):
    """
    Hashing embedder that counts calls and can be switched to failing,
    either always (``fail``) or once ``fail_after`` calls have succeeded.
    """

    def __init__(self, dimensions: int = 64):
        self._inner = HashingEmbeddingProvider(dimensions=dimensions)
        self._lock = threading.Lock()
        self.dimensions = dimensions
        self.calls = 0
        self.fail = False
        self.fail_after: Optional[int] = None

    def embed(self, text: str) -> List[float]:
        with self._lock:
            self.calls += 1
            calls = self.calls
        if self.fail or (self.fail_after is not None and calls > self.fail_after):
            raise ConnectionError("embedding service unreachable")
        return self._inner.embed(text)


class StubIndex(VectorIndex):
    """Returns canned matches (already score-ordered) and records every query."""

    def __init__(self, matches: Optional[List[QueryMatch]] = None):
        self.matches = list(matches or [])
        self.queries: List[dict] = []
        self.error: Optional[Exception] = None

    def query(self, name, vector, top_k=10, filter=None):
        self.queries.append({"name": name, "top_k": top_k, "filter": filter})
        if self.error is not None:
            raise self.error
        return self.matches[:top_k]

    def count(self, name: str) -> int:
        return len(self.matches)


class FakeRetriever:
    """Async retriever double keyed on query substrings.

    ``responses`` maps a substring to the items returned for any query
    containing it; ``errors`` maps a substring to an exception to raise.
    """

    def __init__(self, responses: Optional[Dict[str, List[EvidenceItem]]] = None,
                 errors: Optional[Dict[str, Exception]] = None):
        self.responses = responses or {}
        self.errors = errors or {}
        self.calls: List[dict] = []

    async def aretrieve(self, query, filters=None, top_k=None, min_score=None, rerank_results=False):
        self.calls.append({"query": query, "filters": filters, "top_k": top_k, "min_score": min_score})
        for marker, exc in self.errors.items():
            if marker in query:
                raise exc
        items: List[EvidenceItem] = []
        for marker, found in self.responses.items():
            if marker in query:
                items.extend(found)
        items = items[:top_k] if top_k else items
        return RetrievalResponse(items=tuple(items), total_found=len(items))


class FakeComponents(ComponentRepository):
    """In-memory component repository; ids in ``failing`` raise."""

    def __init__(self, records: Optional[Dict[str, ComponentRecord]] = None,
                 failing: Optional[Dict[str, Exception]] = None):
        self.records = records or {}
        self.failing = failing or {}
        self.requested: List[str] = []

    def get(self, component_id: str) -> Optional[ComponentRecord]:
        self.requested.append(component_id)
        if component_id in self.failing:
            raise self.failing[component_id]
        return self.records.get(component_id)


# =============================================================================
# Fixtures: configuration and doubles
# =============================================================================

@pytest.fixture
def offline_config() -> InspectdxConfig:
    """Config that never touches the network: hashing embeddings, memory index."""
    return InspectdxConfig(
        embedding_fallback_only=True,
        index_backend="memory",
        embedding_dimensions=256,
    )


@pytest.fixture
def make_item():
    """Factory for evidence items with sensible defaults."""
    def _make(text="Befund", section="A", score=0.8, **kwargs) -> EvidenceItem:
        return EvidenceItem(text=text, source_section_id=section, score=score, **kwargs)
    return _make


@pytest.fixture
def make_match():
    """Factory for raw index matches."""
    def _make(id_, score, section="A", text=None, **metadata) -> QueryMatch:
        meta = {"text": text or f"passage {id_}", "section_id": section, **metadata}
        return QueryMatch(id=id_, score=score, metadata=meta)
    return _make


@pytest.fixture
def embedder() -> CountingEmbedder:
    return CountingEmbedder()


@pytest.fixture
def stub_index() -> StubIndex:
    return StubIndex()


@pytest.fixture
def make_retriever(offline_config, embedder, stub_index):
    """Build a SemanticRetriever over the stub index with fresh caches."""
    def _make(index: Optional[VectorIndex] = None, scorer=None, config=None) -> SemanticRetriever:
        cfg = config or offline_config
        return SemanticRetriever(
            cfg,
            embedder=embedder,
            index=index or stub_index,
            embedding_cache=QueryCache(cfg.embedding_cache_ttl_seconds, name="embedding_cache"),
            query_cache=QueryCache(cfg.query_cache_ttl_seconds, name="query_cache"),
            scorer=scorer or LexicalRelevanceScorer(),
        )
    return _make


@pytest.fixture
def fake_retriever_cls():
    return FakeRetriever


@pytest.fixture
def fake_components_cls():
    return FakeComponents


# =============================================================================
# Fixtures: clients
# =============================================================================

@pytest.fixture
def offline_client(offline_config):
    """Offline client over an empty (never seeded) in-memory index."""
    client = Inspectdx(config=offline_config)
    yield client
    client.close()


@pytest.fixture
def seeded_client(offline_config):
    """Offline client whose in-memory index holds the full catalog."""
    client = Inspectdx(config=offline_config)
    client.seed()
    yield client
    client.close()
