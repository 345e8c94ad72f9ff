"""
InspectDx Core — configuration, retrieval, knowledge and the diagnostic pipeline.

Re-exports the primary classes for convenience::

    from inspectdx.core import InspectdxConfig, SemanticRetriever, DiagnosticPipeline
"""

from inspectdx.core.classifier import DefectClassifier
from inspectdx.core.config import (
    DefectTaxonomy,
    InspectdxConfig,
    Prompts,
    ResolutionTables,
    SystemTaxonomy,
    vehicle_type_for,
)
from inspectdx.core.diagnosis import (
    DiagnosticPipeline,
    DiagnosticSynthesizer,
    EvidenceGatherer,
    HypothesisRanker,
    SymptomAnalyzer,
)
from inspectdx.core.engine import (
    EvidenceItem,
    Hypothesis,
    QueryCache,
    SymptomContext,
    SystemTag,
)
from inspectdx.core.evals import RetrievalEvaluator, RetrievalTestCase
from inspectdx.core.knowledge import (
    IndexedComponentRepository,
    KnowledgeSeeder,
    maintenance_intervals,
)
from inspectdx.core.report import ReportAssembler
from inspectdx.core.retriever import RetrievalFilter, SemanticRetriever

__all__ = [
    "InspectdxConfig",
    "SystemTaxonomy",
    "DefectTaxonomy",
    "ResolutionTables",
    "Prompts",
    "vehicle_type_for",
    "QueryCache",
    "EvidenceItem",
    "Hypothesis",
    "SymptomContext",
    "SystemTag",
    "RetrievalFilter",
    "SemanticRetriever",
    "KnowledgeSeeder",
    "IndexedComponentRepository",
    "maintenance_intervals",
    "SymptomAnalyzer",
    "EvidenceGatherer",
    "HypothesisRanker",
    "DiagnosticSynthesizer",
    "DefectClassifier",
    "ReportAssembler",
    "DiagnosticPipeline",
    "RetrievalEvaluator",
    "RetrievalTestCase",
]
