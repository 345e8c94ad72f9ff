"""
InspectDx — Retrieval-and-Hypothesis Diagnostics for Tracked Vehicles.

The ``inspectdx`` package turns a free-text symptom report ("Motor
überhitzt beim Starten, Öldruck schwankt") into a structured diagnostic
report: affected subsystems, ranked root-cause hypotheses, a diagnostic
trace, defect priority with escalation path, and the maintenance level
required for the repair.

Quick start (programmatic API)::

    from inspectdx import Inspectdx

    client = Inspectdx()                               # reads env vars
    client.seed()                                      # load the catalog
    report = client.diagnose("Motor überhitzt, Öldruck schwankt")

Quick start (CLI)::

    inspectdx seed
    inspectdx diagnose "Motor überhitzt beim Starten, Öldruck schwankt"

Configuration override::

    from inspectdx import Inspectdx, InspectdxConfig

    config = InspectdxConfig(embedding_fallback_only=True, index_backend="memory")
    client = Inspectdx(config=config)
"""

__version__ = "1.0.0"

# Primary public API: the Inspectdx facade
from inspectdx.client import Inspectdx

# Configuration
from inspectdx.core.config import InspectdxConfig

# Core data types that callers interact with
from inspectdx.core.engine import (
    DefectClassification,
    DiagnosticReport,
    EvidenceItem,
    Hypothesis,
    SymptomContext,
)
from inspectdx.core.retriever import RetrievalFilter, RetrievalResponse

# Exception hierarchy
from inspectdx.exceptions import (
    ConfigError,
    DiagnosisTimeoutError,
    InspectdxError,
    ProviderError,
    RetrievalUnavailableError,
    SeedError,
    UnknownPriorityLevelError,
    ValidationError,
)


def health(config: InspectdxConfig | None = None) -> dict:
    """
    Return a small status dict for agents or health checks (no index/network).

    When *config* is None, uses :meth:`InspectdxConfig.from_env()` for the snapshot.
    """
    cfg = config or InspectdxConfig.from_env()
    return {
        "version": __version__,
        "embedding_provider": "hashing" if cfg.embedding_fallback_only else cfg.embedding_provider,
        "llm_provider": cfg.llm_provider,
        "index_backend": cfg.index_backend,
        "fallback_only": cfg.embedding_fallback_only,
    }


__all__ = [
    "__version__",
    # Facade
    "Inspectdx",
    # Config
    "InspectdxConfig",
    # Data types
    "DefectClassification",
    "DiagnosticReport",
    "EvidenceItem",
    "Hypothesis",
    "SymptomContext",
    "RetrievalFilter",
    "RetrievalResponse",
    # Exceptions
    "InspectdxError",
    "ConfigError",
    "ProviderError",
    "RetrievalUnavailableError",
    "ValidationError",
    "UnknownPriorityLevelError",
    "DiagnosisTimeoutError",
    "SeedError",
    # Status
    "health",
]
