"""
InspectDx Retrieval Evaluation

A fixed set of German queries with expected tags is run through
:class:`SemanticRetriever`.  Each result list is scored by deterministic
checks (data type, component, section, crew role, priority, similarity,
results found) and, optionally, by an LLM judge for semantic relevance.

Usage::

    evaluator = RetrievalEvaluator(config, retriever)
    report = evaluator.run()
    if not report.summary.passed:
        ...
"""

import json
import logging
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tqdm import tqdm

from inspectdx.core.config import InspectdxConfig, Prompts
from inspectdx.core.engine import EvidenceItem, LLMProvider, _create_llm_provider
from inspectdx.core.retriever import RetrievalFilter, SemanticRetriever
from inspectdx.exceptions import InspectdxError, ProviderError

logger = logging.getLogger(__name__)


# =============================================================================
# Test Cases
# =============================================================================

@dataclass(frozen=True)
class RetrievalTestCase:
    """One German query and the tags a good result list should contain."""
    query: str
    description: str
    expected_data_type: Optional[str] = None
    expected_section_id: Optional[str] = None
    expected_component_id: Optional[str] = None
    expected_crew_role: Optional[str] = None
    expected_priority: Optional[str] = None


RETRIEVAL_TEST_CASES: Tuple[RetrievalTestCase, ...] = (
    # Checkpoints
    RetrievalTestCase(
        query="Wie prüfe ich den Ölstand am Motor?",
        description="Engine oil level check procedure",
        expected_data_type="checkpoint",
        expected_section_id="A",
    ),
    RetrievalTestCase(
        query="Wer ist verantwortlich für die Kettenspannung?",
        description="Track tension responsibility by crew role",
        expected_data_type="checkpoint",
        expected_crew_role="driver",
    ),
    RetrievalTestCase(
        query="Welche Werkzeuge brauche ich für die Kühlmittelprüfung?",
        description="Tools needed for coolant inspection",
        expected_data_type="checkpoint",
    ),
    # Components
    RetrievalTestCase(
        query="Technische Daten MTU Motor",
        description="MTU engine technical specifications",
        expected_data_type="component",
        expected_component_id="mtu_mb873",
    ),
    RetrievalTestCase(
        query="Getriebeübersetzung RENK Automatikgetriebe",
        description="RENK transmission gear ratios",
        expected_data_type="component",
        expected_component_id="renk_hswl354",
    ),
    RetrievalTestCase(
        query="Turmdrehgeschwindigkeit und Schwenkbereich",
        description="Turret rotation speed and traverse range",
        expected_data_type="component",
        expected_component_id="turmdrehkranz",
    ),
    # Defects and failures
    RetrievalTestCase(
        query="Kritische Mängel Hydrauliksystem",
        description="Critical hydraulic system defects",
        expected_data_type="defect",
        expected_priority="critical",
    ),
    RetrievalTestCase(
        query="Anzeichen für Motorüberhitzung Symptome",
        description="Engine overheating symptoms and indicators",
        expected_data_type="defect",
    ),
    # Maintenance intervals
    RetrievalTestCase(
        query="Wartungsintervall nach 250 Betriebsstunden",
        description="Maintenance at 250 operating hours",
        expected_data_type="interval",
    ),
    RetrievalTestCase(
        query="Welche täglichen Wartungsaufgaben macht die Besatzung?",
        description="Daily crew maintenance tasks",
        expected_data_type="interval",
    ),
)

EDGE_CASE_TEST_CASES: Tuple[RetrievalTestCase, ...] = (
    RetrievalTestCase(
        query="Motor kaputt",
        description="Very short/vague query about engine failure",
        expected_data_type="defect",
    ),
    RetrievalTestCase(
        query=(
            "Der Leopard 2 zeigt beim Starten ungewöhnliche Geräusche aus dem "
            "Motorraum und der Öldruck schwankt stark"
        ),
        description="Long detailed symptom description",
        expected_data_type="defect",
    ),
)


# =============================================================================
# Scorers
# =============================================================================

@dataclass(frozen=True)
class ScoreResult:
    scorer: str
    score: float
    reason: str
    skipped: bool = False
    """True when the case has no expectation for this metric."""


Scorer = Callable[[RetrievalTestCase, Sequence[EvidenceItem]], ScoreResult]


def _expected_tag_scorer(scorer_id: str, case_field: str, item_field: str, label: str) -> Scorer:
    """Build a scorer: 1 if any result carries the expected tag, else 0."""

    def score(case: RetrievalTestCase, items: Sequence[EvidenceItem]) -> ScoreResult:
        expected = getattr(case, case_field)
        if not expected:
            return ScoreResult(
                scorer_id, 1.0,
                f"No expected {label} specified - test case skipped for this metric.",
                skipped=True,
            )
        found = [str(getattr(i, item_field)) for i in items if getattr(i, item_field)]
        if expected in found:
            return ScoreResult(scorer_id, 1.0, f'Found expected {label} "{expected}" in results.')
        return ScoreResult(
            scorer_id, 0.0, f'Expected {label} "{expected}" not found. Got: [{", ".join(found)}]',
        )

    score.__name__ = scorer_id.replace("-", "_")
    return score


data_type_accuracy = _expected_tag_scorer("data-type-accuracy", "expected_data_type", "data_type", "data type")
component_match = _expected_tag_scorer("component-match", "expected_component_id", "component_id", "component")
section_match = _expected_tag_scorer("section-match", "expected_section_id", "source_section_id", "section")
crew_role_match = _expected_tag_scorer("crew-role-match", "expected_crew_role", "crew_role", "crew role")
priority_match = _expected_tag_scorer("priority-match", "expected_priority", "priority", "priority")


def similarity_score(case: RetrievalTestCase, items: Sequence[EvidenceItem]) -> ScoreResult:
    scores = [item.score for item in items]
    if not scores:
        return ScoreResult("similarity-score", 0.0, "No results returned.")
    avg = sum(scores) / len(scores)
    return ScoreResult(
        "similarity-score", avg,
        f"Average similarity: {avg:.3f} (range: {min(scores):.3f} - {max(scores):.3f}, "
        f"{len(scores)} results)",
    )


def results_found(case: RetrievalTestCase, items: Sequence[EvidenceItem]) -> ScoreResult:
    if items:
        return ScoreResult("results-found", 1.0, f"Found {len(items)} result(s).")
    return ScoreResult("results-found", 0.0, "No results found for this query.")


DETERMINISTIC_SCORERS: Tuple[Scorer, ...] = (
    data_type_accuracy,
    component_match,
    section_match,
    crew_role_match,
    priority_match,
    similarity_score,
    results_found,
)


_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class SemanticRelevanceJudge:
    """
    LLM-judged relevance of the top five results, in [0, 1].

    Uses the same :class:`LLMProvider` as reranking, created lazily.  An
    unreachable provider or an unparseable verdict raises
    :class:`ProviderError`.
    """

    SCORER_ID = "semantic-relevance"

    def __init__(self, config: InspectdxConfig, provider: LLMProvider | None = None):
        self._config = config
        self.llm = provider

    def _ensure_llm(self) -> LLMProvider:
        if self.llm is None:
            self.llm = _create_llm_provider(self._config)
        return self.llm

    @staticmethod
    def parse_verdict(raw: str) -> Tuple[float, str, int]:
        match = _JSON_OBJECT_RE.search(raw or "")
        if not match:
            raise ProviderError(f"Judge returned no JSON object: '{raw[:80]}'")
        try:
            data = json.loads(match.group(0))
            score = max(0.0, min(1.0, float(data["relevanceScore"])))
            relevant = int(data.get("topRelevantChunks", 0))
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderError(f"Unparseable judge verdict: {exc}") from exc
        return score, str(data.get("reasoning", "")), relevant

    def __call__(self, case: RetrievalTestCase, items: Sequence[EvidenceItem]) -> ScoreResult:
        if not items:
            return ScoreResult(self.SCORER_ID, 0.0, "No results returned.")
        contents = "\n\n".join(
            f"[{n}] {item.text[:200]}..." for n, item in enumerate(items[:5], start=1)
        )
        try:
            raw = self._ensure_llm().complete(
                system=Prompts.JUDGE_SYSTEM,
                user_message=Prompts.JUDGE_USER.format(query=case.query, contents=contents),
                max_tokens=self._config.eval_judge_max_tokens,
                temperature=0.0,
            )
        except Exception as exc:
            raise ProviderError(f"Relevance judge failed: {exc}") from exc
        score, reasoning, relevant = self.parse_verdict(raw)
        return ScoreResult(self.SCORER_ID, score, f"{reasoning} ({relevant}/5 relevante Chunks)")


# =============================================================================
# Results
# =============================================================================

@dataclass
class EvalCaseResult:
    case: RetrievalTestCase
    results_found: int = 0
    avg_score: float = 0.0
    scores: Dict[str, ScoreResult] = field(default_factory=dict)
    top_result: str = "No results"
    error: Optional[str] = None

    def match(self, scorer_id: str) -> Optional[bool]:
        """Pass/fail for a tag scorer; ``None`` when not scored or skipped."""
        result = self.scores.get(scorer_id)
        if result is None or result.skipped:
            return None
        return result.score >= 1.0

    @property
    def data_type_match(self) -> Optional[bool]:
        return self.match("data-type-accuracy")

    @property
    def component_match(self) -> Optional[bool]:
        return self.match("component-match")

    @property
    def status(self) -> str:
        if self.error:
            return "ERROR"
        if self.results_found == 0:
            return "NO RESULTS"
        if self.data_type_match is False or self.component_match is False:
            return "PARTIAL"
        return "OK"

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status
        return d


def _percent(hits: int, total: int) -> float:
    return hits / total * 100 if total else 0.0


@dataclass
class EvalSummary:
    total_cases: int
    cases_with_results: int
    result_rate: float
    avg_similarity: float
    data_type_hits: int
    data_type_cases: int
    component_hits: int
    component_cases: int
    duration_seconds: float
    passed: bool

    @property
    def data_type_accuracy(self) -> float:
        return _percent(self.data_type_hits, self.data_type_cases)

    @property
    def component_accuracy(self) -> float:
        return _percent(self.component_hits, self.component_cases)

    @classmethod
    def from_results(
        cls,
        results: Sequence[EvalCaseResult],
        duration_seconds: float,
        min_result_rate: float,
        min_avg_similarity: float,
    ) -> "EvalSummary":
        with_results = [r for r in results if r.results_found > 0]
        typed = [r for r in results if r.data_type_match is not None]
        with_component = [r for r in results if r.component_match is not None]
        result_rate = _percent(len(with_results), len(results))
        avg_similarity = (
            sum(r.avg_score for r in with_results) / len(with_results) if with_results else 0.0
        )
        return cls(
            total_cases=len(results),
            cases_with_results=len(with_results),
            result_rate=result_rate,
            avg_similarity=avg_similarity,
            data_type_hits=sum(1 for r in typed if r.data_type_match),
            data_type_cases=len(typed),
            component_hits=sum(1 for r in with_component if r.component_match),
            component_cases=len(with_component),
            duration_seconds=round(duration_seconds, 3),
            passed=result_rate >= min_result_rate and avg_similarity >= min_avg_similarity,
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["data_type_accuracy"] = self.data_type_accuracy
        d["component_accuracy"] = self.component_accuracy
        return d


@dataclass
class EvalReport:
    results: List[EvalCaseResult]
    summary: EvalSummary

    def to_dict(self) -> dict:
        return {
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# =============================================================================
# Evaluator
# =============================================================================

class RetrievalEvaluator:
    """
    Runs test cases through the retriever and scores each result list.

    Retrieval runs without reranking at ``config.eval_top_k`` /
    ``config.eval_min_score``, filtered to *vehicle_type*.  A case whose
    retrieval or judge call fails is recorded, never raised.
    """

    def __init__(
        self,
        config: InspectdxConfig,
        retriever: SemanticRetriever,
        *,
        vehicle_type: str = "leopard2",
        scorers: Sequence[Scorer] = DETERMINISTIC_SCORERS,
        judge: Optional[Scorer] = None,
    ):
        self._config = config
        self.retriever = retriever
        self.vehicle_type = vehicle_type
        self.scorers = tuple(scorers)
        self.judge = judge

    def run_case(self, case: RetrievalTestCase) -> EvalCaseResult:
        cfg = self._config
        try:
            response = self.retriever.retrieve(
                case.query,
                RetrievalFilter(vehicle_type=self.vehicle_type),
                top_k=cfg.eval_top_k,
                min_score=cfg.eval_min_score,
                rerank_results=False,
            )
        except InspectdxError as exc:
            logger.warning(f"Eval case '{case.description}' failed: {exc}")
            return EvalCaseResult(case, error=f"{type(exc).__name__}: {exc}")

        items = list(response.items)
        scores = {s.scorer: s for s in (scorer(case, items) for scorer in self.scorers)}
        if self.judge is not None:
            try:
                verdict = self.judge(case, items)
            except InspectdxError as exc:
                logger.warning(f"Judge failed for '{case.description}': {exc}")
                verdict = ScoreResult(
                    SemanticRelevanceJudge.SCORER_ID, 0.0, f"Judge failed: {exc}", skipped=True,
                )
            scores[verdict.scorer] = verdict

        return EvalCaseResult(
            case,
            results_found=response.total_found,
            avg_score=sum(i.score for i in items) / len(items) if items else 0.0,
            scores=scores,
            top_result=items[0].text[:50] if items else "No results",
        )

    def run(
        self,
        cases: Optional[Sequence[RetrievalTestCase]] = None,
        *,
        include_edge_cases: bool = True,
        show_progress: bool = False,
    ) -> EvalReport:
        if cases is None:
            cases = RETRIEVAL_TEST_CASES + (EDGE_CASE_TEST_CASES if include_edge_cases else ())
        start = time.time()
        results = [
            self.run_case(case)
            for case in tqdm(cases, desc="Evaluating", unit="case", disable=not show_progress)
        ]
        summary = EvalSummary.from_results(
            results,
            time.time() - start,
            self._config.eval_min_result_rate,
            self._config.eval_min_avg_similarity,
        )
        logger.info(
            f"Retrieval eval: {summary.cases_with_results}/{summary.total_cases} with results, "
            f"avg similarity {summary.avg_similarity:.3f}, passed={summary.passed}"
        )
        return EvalReport(results=results, summary=summary)
