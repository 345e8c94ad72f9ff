"""
InspectDx Diagnostic Pipeline

The stages between a free-text symptom report and a diagnostic report:

    SymptomAnalyzer  ->  EvidenceGatherer (3 sources, concurrent)
                     ->  HypothesisRanker  ->  DiagnosticSynthesizer
                     ->  DefectClassifier  ->  ReportAssembler

Only evidence gathering suspends (retrieval and component lookups run in
worker threads); ranking, synthesis and classification are synchronous.
"""

import asyncio
import logging
import math
from typing import Dict, List, Optional, Sequence, Set

from inspectdx.core.classifier import DefectClassifier
from inspectdx.core.config import InspectdxConfig, SystemTaxonomy, vehicle_type_for
from inspectdx.core.engine import (
    ComponentRecord,
    DiagnosticOutcome,
    DiagnosticReport,
    DiagnosticStep,
    EvidenceBundle,
    EvidenceItem,
    EvidenceSource,
    Hypothesis,
    HypothesisSource,
    SourceFailure,
    SymptomContext,
    SystemTag,
    merge_evidence,
)
from inspectdx.core.knowledge import ComponentRepository
from inspectdx.core.report import ReportAssembler
from inspectdx.core.retriever import RetrievalFilter, RetrievalResponse, SemanticRetriever
from inspectdx.exceptions import DiagnosisTimeoutError, ValidationError

logger = logging.getLogger(__name__)

_EDGE_PUNCT = ".,;:!?\"'()[]{}<>«»„“”"


# =============================================================================
# Symptom Analysis
# =============================================================================

class SymptomAnalyzer:
    """Map free symptom text to subsystems, keywords and search queries."""

    def __init__(self, taxonomy: type[SystemTaxonomy] = SystemTaxonomy):
        self.taxonomy = taxonomy

    def match_systems(self, text: str) -> List[SystemTag]:
        """All systems with at least one keyword substring in *text*, in tag order."""
        lowered = text.lower()
        return [
            SystemTag(system)
            for system, keywords in self.taxonomy.SYSTEM_KEYWORDS.items()
            if any(kw in lowered for kw in keywords)
        ]

    def extract_keywords(self, text: str) -> List[str]:
        keywords: List[str] = []
        for token in text.lower().split():
            token = token.strip(_EDGE_PUNCT)
            if len(token) <= 2 or token in self.taxonomy.STOP_WORDS or token in keywords:
                continue
            keywords.append(token)
            if len(keywords) >= self.taxonomy.MAX_KEYWORDS:
                break
        return keywords

    def analyze(
        self,
        raw_text: str,
        component_hint: str | None = None,
        vehicle_id: str = "leopard2",
    ) -> SymptomContext:
        if not raw_text or not raw_text.strip():
            raise ValidationError("symptom description must be a non-empty string")

        systems = self.match_systems(raw_text)
        if component_hint:
            extra = [t for t in self.match_systems(component_hint) if t not in systems]
            if extra:
                order = list(SystemTag)
                systems = sorted(systems + extra, key=order.index)
        if not systems:
            systems = [SystemTag.GENERAL]

        queries = [raw_text]
        queries.extend(f"{tag.value} problem troubleshooting" for tag in systems)
        if component_hint:
            queries.append(f"{component_hint} failure symptoms")

        context = SymptomContext(
            raw_text=raw_text,
            vehicle_id=vehicle_id,
            affected_systems=tuple(systems),
            keywords=tuple(self.extract_keywords(raw_text)),
            search_queries=tuple(queries),
            component_hint=component_hint or None,
        )
        logger.debug(
            f"Symptom analysis: systems={[t.value for t in systems]}, "
            f"keywords={list(context.keywords)}, queries={list(context.search_queries)}"
        )
        return context


# =============================================================================
# Evidence Gathering
# =============================================================================

class EvidenceGatherer:
    """
    Run the three evidence sources concurrently and join them.

    Every individual retrieval / lookup is isolated: a failure is logged,
    recorded as a :class:`SourceFailure`, and contributes nothing.  No
    failure propagates to the caller.
    """

    def __init__(
        self,
        config: InspectdxConfig,
        retriever: SemanticRetriever,
        components: ComponentRepository,
        taxonomy: type[SystemTaxonomy] = SystemTaxonomy,
    ):
        self._config = config
        self.retriever = retriever
        self.components = components
        self.taxonomy = taxonomy

    # ── helpers ──────────────────────────────────────────────────

    async def _retrieve(
        self,
        source: EvidenceSource,
        failures: List[SourceFailure],
        semaphore: asyncio.Semaphore,
        query: str,
        filters: RetrievalFilter,
        top_k: int,
        min_score: float,
    ) -> List[EvidenceItem]:
        async with semaphore:
            try:
                response: RetrievalResponse = await self.retriever.aretrieve(
                    query, filters, top_k=top_k, min_score=min_score,
                )
            except Exception as exc:
                logger.warning(f"{source.value}: retrieval for '{query[:60]}' failed: {exc}")
                failures.append(SourceFailure(source, query, type(exc).__name__))
                return []
        return list(response.items)

    async def _lookup(
        self,
        component_id: str,
        failures: List[SourceFailure],
        semaphore: asyncio.Semaphore,
    ) -> Optional[ComponentRecord]:
        async with semaphore:
            try:
                record = await asyncio.to_thread(self.components.get, component_id)
            except Exception as exc:
                logger.warning(f"component_lookup: '{component_id}' failed: {exc}")
                failures.append(
                    SourceFailure(EvidenceSource.COMPONENT_LOOKUP, component_id, type(exc).__name__)
                )
                return None
        if record is None:
            logger.info(f"component_lookup: '{component_id}' not found in knowledge store")
        return record

    def resolve_components(self, ctx: SymptomContext) -> List[str]:
        """Systems → component ids, plus the hint match; falls back to the default."""
        resolved: List[str] = []
        for tag in ctx.affected_systems:
            for cid in self.taxonomy.SYSTEM_TO_COMPONENTS.get(tag.value, []):
                if cid not in resolved:
                    resolved.append(cid)
        if ctx.component_hint:
            hint = ctx.component_hint.lower()
            for patterns, cid in self.taxonomy.COMPONENT_HINT_PATTERNS:
                if any(p in hint for p in patterns):
                    if cid not in resolved:
                        resolved.append(cid)
                    break
        if not resolved:
            resolved.append(self.taxonomy.DEFAULT_COMPONENT_ID)
        return resolved

    # ── sources ──────────────────────────────────────────────────

    async def search_knowledge_base(
        self, ctx: SymptomContext, failures: List[SourceFailure], semaphore: asyncio.Semaphore,
    ) -> List[EvidenceItem]:
        cfg = self._config
        filters = RetrievalFilter(vehicle_type=vehicle_type_for(ctx.vehicle_id))
        lead = " ".join(ctx.raw_text.split()[:5])
        calls = [
            self._retrieve(EvidenceSource.KNOWLEDGE_BASE, failures, semaphore,
                           ctx.raw_text, filters, cfg.default_top_k, cfg.default_min_score)
        ]
        for tag in ctx.affected_systems[:cfg.knowledge_system_limit]:
            calls.append(self._retrieve(
                EvidenceSource.KNOWLEDGE_BASE, failures, semaphore,
                f"{tag.value} problem diagnosis {lead}", filters,
                cfg.knowledge_system_top_k, cfg.default_min_score,
            ))
        batches = await asyncio.gather(*calls)
        merged = [item for batch in batches for item in batch]
        return merge_evidence(merged, EvidenceItem.checkpoint_key, cfg.related_issue_limit)

    async def lookup_components(
        self, ctx: SymptomContext, failures: List[SourceFailure], semaphore: asyncio.Semaphore,
    ) -> Dict[str, ComponentRecord]:
        component_ids = self.resolve_components(ctx)
        records = await asyncio.gather(
            *(self._lookup(cid, failures, semaphore) for cid in component_ids)
        )
        return {cid: rec for cid, rec in zip(component_ids, records) if rec is not None}

    async def search_failure_modes(
        self, ctx: SymptomContext, failures: List[SourceFailure], semaphore: asyncio.Semaphore,
    ) -> List[EvidenceItem]:
        cfg = self._config
        vehicle_type = vehicle_type_for(ctx.vehicle_id)
        calls = [
            self._retrieve(
                EvidenceSource.FAILURE_MODES, failures, semaphore,
                f"failure defect problem {ctx.raw_text}",
                RetrievalFilter(vehicle_type=vehicle_type, data_type="defect"),
                cfg.default_top_k, cfg.default_min_score,
            )
        ]
        for tag in ctx.affected_systems[:cfg.failure_mode_system_limit]:
            calls.append(self._retrieve(
                EvidenceSource.FAILURE_MODES, failures, semaphore,
                f"{tag.value} failure common problems symptoms",
                RetrievalFilter(vehicle_type=vehicle_type),
                cfg.failure_mode_system_top_k, cfg.default_min_score,
            ))
        batches = await asyncio.gather(*calls)
        merged = [item for batch in batches for item in batch]
        return merge_evidence(merged, EvidenceItem.component_key, cfg.failure_mode_limit)

    async def gather(self, ctx: SymptomContext) -> EvidenceBundle:
        """Run all three sources concurrently; join before returning."""
        failures: List[SourceFailure] = []
        semaphore = asyncio.Semaphore(self._config.max_concurrent_requests)
        results = await asyncio.gather(
            self.search_knowledge_base(ctx, failures, semaphore),
            self.lookup_components(ctx, failures, semaphore),
            self.search_failure_modes(ctx, failures, semaphore),
            return_exceptions=True,
        )

        sources = (
            EvidenceSource.KNOWLEDGE_BASE,
            EvidenceSource.COMPONENT_LOOKUP,
            EvidenceSource.FAILURE_MODES,
        )
        for source, result in zip(sources, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"{source.value}: source failed: {result}")
                failures.append(SourceFailure(source, str(result), type(result).__name__))

        related, components, modes = (
            [] if isinstance(results[0], BaseException) else results[0],
            {} if isinstance(results[1], BaseException) else results[1],
            [] if isinstance(results[2], BaseException) else results[2],
        )
        bundle = EvidenceBundle(
            related_issues=tuple(related),
            component_evidence=components,
            failure_modes=tuple(modes),
            failures=tuple(failures),
        )
        logger.info(
            f"Evidence: {len(bundle.related_issues)} related, "
            f"{len(bundle.component_evidence)} components, "
            f"{len(bundle.failure_modes)} failure modes, {len(failures)} failures"
        )
        return bundle


# =============================================================================
# Hypothesis Ranking
# =============================================================================

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class HypothesisRanker:
    """
    Fuse evidence into ranked root-cause hypotheses.

    Passes run strongest first (component failures, failure-mode hits,
    related issues).  Later passes skip components or sections already
    represented.  The final sort is stable, so equal likelihoods keep
    pass order.
    """

    def __init__(self, config: InspectdxConfig, taxonomy: type[SystemTaxonomy] = SystemTaxonomy):
        self._config = config
        self.taxonomy = taxonomy

    def _symptom_matches(self, phrase: str, text: str) -> bool:
        lowered = phrase.lower()
        if lowered in text:
            return True
        return any(
            word in text
            for word in lowered.split()
            if len(word) > 2 and word not in self.taxonomy.STOP_WORDS
        )

    def from_components(
        self, components: Dict[str, ComponentRecord], text: str,
    ) -> List[Hypothesis]:
        hypotheses = []
        for cid, component in components.items():
            for failure in component.common_failures:
                matched = [s for s in failure.symptoms if self._symptom_matches(s, text)]
                if not matched:
                    continue
                hypotheses.append(Hypothesis(
                    id=f"{cid}-{failure.id}",
                    description=f"{failure.name}: {failure.cause}" if failure.cause else failure.name,
                    likelihood=min(90, 40 + 15 * len(matched)),
                    affected_component=component.name,
                    source=HypothesisSource.COMPONENT_FAILURE,
                    component_id=cid,
                    diagnostic_actions=(
                        f"Check {component.name} for signs of {failure.name.lower()}",
                        *(f"Verify: {s}" for s in failure.symptoms),
                    ),
                    supporting_evidence=tuple(f"Symptom match: {s}" for s in matched),
                ))
        return hypotheses

    def rank(
        self,
        component_evidence: Dict[str, ComponentRecord],
        failure_modes: Sequence[EvidenceItem],
        related_issues: Sequence[EvidenceItem],
        symptom_text: str,
    ) -> List[Hypothesis]:
        cfg = self._config
        text = symptom_text.lower()
        hypotheses = self.from_components(component_evidence, text)

        covered_components: Set[str] = {h.component_id for h in hypotheses if h.component_id}
        for mode in list(failure_modes)[:cfg.failure_mode_hypothesis_limit]:
            if not mode.component_id or mode.component_id in covered_components:
                continue
            hypotheses.append(Hypothesis(
                id=f"fm-{mode.source_section_id}-{len(hypotheses)}",
                description=mode.text[:200],
                likelihood=_round_half_up(mode.score * 60),
                affected_component=mode.component_id,
                source=HypothesisSource.FAILURE_MODE,
                component_id=mode.component_id,
                source_section_id=mode.source_section_id,
                diagnostic_actions=(
                    f"Inspect {mode.component_id} based on: {mode.text[:100]}",
                ),
                supporting_evidence=(f"Knowledge base match (score: {mode.score:.2f})",),
            ))
            covered_components.add(mode.component_id)

        covered_sections: Set[str] = {
            h.source_section_id for h in hypotheses if h.source_section_id
        }
        for issue in list(related_issues)[:cfg.related_issue_hypothesis_limit]:
            if issue.component_id and issue.component_id in covered_components:
                continue
            if issue.source_section_id in covered_sections:
                continue
            if issue.checkpoint_number is not None:
                action = f"Review checkpoint {issue.checkpoint_number} procedures"
            else:
                action = f"Review {issue.source_section_id} section procedures"
            hypotheses.append(Hypothesis(
                id=f"issue-{issue.source_section_id}-{issue.checkpoint_number or 'gen'}",
                description=f"Related issue from {issue.source_section_id}: {issue.text[:150]}",
                likelihood=_round_half_up(issue.score * 50),
                affected_component=issue.component_id or issue.source_section_id,
                source=HypothesisSource.RELATED_ISSUE,
                component_id=issue.component_id,
                source_section_id=issue.source_section_id,
                diagnostic_actions=(action,),
                supporting_evidence=(f"Related issue match (score: {issue.score:.2f})",),
            ))
            covered_sections.add(issue.source_section_id)
            if issue.component_id:
                covered_components.add(issue.component_id)

        hypotheses.sort(key=lambda h: h.likelihood, reverse=True)
        return hypotheses[:cfg.max_hypotheses]

    def needs_more_info(self, hypotheses: Sequence[Hypothesis]) -> bool:
        return not hypotheses or hypotheses[0].likelihood < self._config.needs_more_info_threshold


# =============================================================================
# Diagnostic Synthesis
# =============================================================================

class DiagnosticSynthesizer:
    """Turn the top hypothesis into a step-by-step diagnostic trace."""

    NO_HYPOTHESIS_NOTE = "No specific hypothesis identified - manual diagnosis required"

    def __init__(self, config: InspectdxConfig):
        self._config = config

    def _steps(self, top: Hypothesis) -> List[DiagnosticStep]:
        actions = list(top.diagnostic_actions)
        evidence = list(top.supporting_evidence)
        if not actions:
            return [DiagnosticStep(
                step_number=1,
                action=f"Inspect {top.affected_component}",
                expected_result="Verify component condition",
                actual_result=f"Analysis indicates: {top.description}",
                conclusion="Based on knowledge base data and symptom analysis",
            )]

        steps = []
        for i in range(max(len(actions), len(evidence))):
            action = actions[i] if i < len(actions) else f"Inspect {top.affected_component}"
            found = evidence[i] if i < len(evidence) else None
            steps.append(DiagnosticStep(
                step_number=i + 1,
                action=action,
                expected_result=found or "Condition matches hypothesis",
                actual_result=f"Based on analysis: {found or 'Consistent with ' + top.description}",
                conclusion=f"Supports hypothesis: {top.description[:80]}",
            ))
        return steps

    def synthesize(
        self, hypotheses: Sequence[Hypothesis], needs_more_info: bool = False,
    ) -> DiagnosticOutcome:
        if not hypotheses:
            placeholder = DiagnosticStep(
                step_number=1,
                action="Perform manual inspection of the affected systems",
                expected_result="Identify the faulty component",
                actual_result="No matching knowledge found for the reported symptom",
                conclusion="Manual diagnosis required",
            )
            return DiagnosticOutcome(
                diagnostic_steps=(placeholder,),
                confidence=self._config.no_hypothesis_confidence,
                evidence_trail=(self.NO_HYPOTHESIS_NOTE,),
                confirmed_hypothesis=None,
                needs_more_info=True,
            )

        top = hypotheses[0]
        trail = [
            f"Primary hypothesis: {top.description}",
            f"Affected component: {top.affected_component}",
            *(f"Evidence {i}: {e}" for i, e in enumerate(top.supporting_evidence, start=1)),
        ]
        if needs_more_info:
            trail.append("Low confidence - additional inspection data recommended")
        trail.append("Diagnosis auto-completed from knowledge base analysis")

        return DiagnosticOutcome(
            diagnostic_steps=tuple(self._steps(top)),
            confidence=top.likelihood,
            evidence_trail=tuple(trail),
            confirmed_hypothesis=top,
            needs_more_info=needs_more_info,
        )


# =============================================================================
# Pipeline
# =============================================================================

class DiagnosticPipeline:
    """
    End-to-end diagnosis: symptom text in, :class:`DiagnosticReport` out.

    Stages never overlap; evidence gathering is the only concurrent stage.
    A low-confidence result sets ``needs_more_info`` on the outcome but the
    run always completes.
    """

    def __init__(
        self,
        config: InspectdxConfig,
        analyzer: SymptomAnalyzer,
        gatherer: EvidenceGatherer,
        ranker: HypothesisRanker,
        synthesizer: DiagnosticSynthesizer,
        classifier: DefectClassifier,
        assembler: ReportAssembler,
    ):
        self._config = config
        self.analyzer = analyzer
        self.gatherer = gatherer
        self.ranker = ranker
        self.synthesizer = synthesizer
        self.classifier = classifier
        self.assembler = assembler

    async def _run(
        self, symptom: str, vehicle_id: str, component_hint: str | None,
    ) -> DiagnosticReport:
        ctx = self.analyzer.analyze(symptom, component_hint, vehicle_id)
        bundle = await self.gatherer.gather(ctx)
        hypotheses = self.ranker.rank(
            bundle.component_evidence, bundle.failure_modes, bundle.related_issues, ctx.raw_text,
        )
        outcome = self.synthesizer.synthesize(hypotheses, self.ranker.needs_more_info(hypotheses))

        confirmed = outcome.confirmed_hypothesis
        classification = self.classifier.classify(
            confirmed.description if confirmed else ctx.raw_text,
            component_id=confirmed.component_id if confirmed else None,
        )
        report = self.assembler.assemble(ctx, outcome, classification)
        logger.info(
            f"Diagnosis {report.session_id}: confidence={outcome.confidence}, "
            f"priority={classification.priority.value}, hypotheses={len(hypotheses)}"
        )
        return report

    async def arun(
        self,
        symptom: str,
        vehicle_id: str = "leopard2",
        component_hint: str | None = None,
        timeout: float | None = None,
    ) -> DiagnosticReport:
        """
        Run the pipeline.  *timeout* (seconds, default from config) bounds
        the whole request; on expiry in-flight retrievals are cancelled and
        :class:`DiagnosisTimeoutError` is raised.
        """
        timeout = self._config.request_timeout_seconds if timeout is None else timeout
        if timeout is None:
            return await self._run(symptom, vehicle_id, component_hint)
        try:
            return await asyncio.wait_for(
                self._run(symptom, vehicle_id, component_hint), timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise DiagnosisTimeoutError(
                f"Diagnosis did not finish within {timeout}s"
            ) from None

    def run(
        self,
        symptom: str,
        vehicle_id: str = "leopard2",
        component_hint: str | None = None,
        timeout: float | None = None,
    ) -> DiagnosticReport:
        """Synchronous entry point; must not be called from a running event loop."""
        return asyncio.run(self.arun(symptom, vehicle_id, component_hint, timeout))
