"""
InspectDx Report Assembly

Pure merge of symptom context, diagnostic outcome and defect
classification into the immutable :class:`DiagnosticReport`, plus
console rendering for the CLI.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from inspectdx.core.config import ResolutionTables
from inspectdx.core.engine import (
    DefectClassification,
    DiagnosticOutcome,
    DiagnosticReport,
    EvidenceItem,
    MaintenanceLevel,
    Resolution,
    RootCause,
    SymptomContext,
)
from inspectdx.core.evals import EvalReport


def new_session_id() -> str:
    """``diag-<epoch ms>-<random hex>``; collision-free for practical purposes."""
    return f"diag-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportAssembler:
    """Build diagnostic reports; *session_ids* and *clock* are injectable for tests."""

    def __init__(
        self,
        tables: type[ResolutionTables] = ResolutionTables,
        session_ids: Callable[[], str] = new_session_id,
        clock: Callable[[], str] = _utc_now,
    ):
        self.tables = tables
        self._session_ids = session_ids
        self._clock = clock

    def resolution(
        self, classification: DefectClassification, component_id: Optional[str],
    ) -> Resolution:
        priority = classification.priority
        level = self.tables.MAINTENANCE_LEVEL_BY_PRIORITY[priority.value]
        return Resolution(
            priority=priority,
            maintenance_level=MaintenanceLevel(level),
            recommended_action=". ".join(classification.recommendations),
            required_parts=tuple(self.tables.PARTS_BY_COMPONENT.get(component_id, []))
            if component_id else (),
            estimated_time=self.tables.ESTIMATED_TIME_BY_PRIORITY[priority.value],
            required_expertise=self.tables.EXPERTISE_BY_LEVEL[level],
        )

    def assemble(
        self,
        ctx: SymptomContext,
        outcome: DiagnosticOutcome,
        classification: DefectClassification,
    ) -> DiagnosticReport:
        confirmed = outcome.confirmed_hypothesis
        if confirmed is not None:
            root_cause = RootCause(
                description=confirmed.description,
                confidence=outcome.confidence,
                affected_component=confirmed.affected_component,
                component_id=confirmed.component_id,
            )
        else:
            root_cause = RootCause(
                description="Unable to determine root cause",
                confidence=outcome.confidence,
                affected_component="Unknown",
            )

        return DiagnosticReport(
            vehicle_id=ctx.vehicle_id,
            session_id=self._session_ids(),
            timestamp_utc=self._clock(),
            symptom_description=ctx.raw_text,
            affected_systems=ctx.affected_systems,
            diagnostic_steps=outcome.diagnostic_steps,
            root_cause=root_cause,
            resolution=self.resolution(classification, root_cause.component_id),
            evidence_trail=outcome.evidence_trail,
        )


# =============================================================================
# Output Formatting
# =============================================================================

class ReportFormatter:
    """Render reports, classifications and search hits for the console."""

    @staticmethod
    def _rule() -> str:
        import shutil
        width = min(shutil.get_terminal_size().columns, 78)
        return "─" * width

    @staticmethod
    def format_report(report: DiagnosticReport, elapsed_time: float | None = None) -> str:
        thin = ReportFormatter._rule()
        header = f"  INSPECTDX — Diagnosis {report.session_id}"
        if elapsed_time is not None:
            header += f" in {elapsed_time:.3f} seconds"
        rc, res = report.root_cause, report.resolution

        out: List[str] = [f"\n{thin}", header, thin, ""]
        out.append(f"  Vehicle   : {report.vehicle_id}")
        out.append(f"  Symptom   : {report.symptom_description}")
        out.append(f"  Systems   : {', '.join(t.value for t in report.affected_systems)}")
        out.append("")
        out.append(f"  Root cause: {rc.description}")
        out.append(f"  Component : {rc.affected_component}"
                   + (f" ({rc.component_id})" if rc.component_id else ""))
        out.append(f"  Confidence: {rc.confidence}%")
        out.append("")
        out.append("  Diagnostic steps")
        for step in report.diagnostic_steps:
            out.append(f"    {step.step_number}. {step.action}")
            out.append(f"       expected : {step.expected_result}")
            out.append(f"       observed : {step.actual_result}")
            out.append(f"       => {step.conclusion}")
        out.append("")
        out.append(f"  Priority  : {res.priority.value}  |  Level {res.maintenance_level.value}"
                   f" ({res.required_expertise})  |  {res.estimated_time}")
        out.append(f"  Action    : {res.recommended_action}")
        if res.required_parts:
            out.append(f"  Parts     : {', '.join(res.required_parts)}")
        out.append("")
        out.append("  Evidence trail")
        out.extend(f"    - {line}" for line in report.evidence_trail)
        out.append(thin)
        return "\n".join(out)

    @staticmethod
    def format_classification(result: DefectClassification) -> str:
        thin = ReportFormatter._rule()
        out = [f"\n{thin}", f"  {result.priority_name_local} ({result.priority_name_en})", thin]
        out.append(f"    Response time : {result.response_time}")
        out.append(f"    Vehicle status: {result.vehicle_status}")
        out.append(f"    Escalation    : {result.escalation}")
        out.append(f"    Matched       : {', '.join(result.matched_keywords) or '-'}")
        out.append(f"    Confidence    : {result.confidence:.2f}")
        if result.category:
            out.append(f"    Category      : {result.category.name} ({result.category.matched_term})")
        out.append("")
        out.extend(f"    * {rec}" for rec in result.recommendations)
        out.append(thin)
        return "\n".join(out)

    @staticmethod
    def format_hits(items: Sequence[EvidenceItem], total_found: int) -> str:
        if not items:
            return "\n  No results found.\n"
        thin = ReportFormatter._rule()
        out = [f"\n{thin}", f"  INSPECTDX — {total_found} result{'s' if total_found != 1 else ''}", thin]
        for idx, item in enumerate(items, start=1):
            label = item.checkpoint_name or item.section_name or item.source_section_id
            out.append("")
            out.append(f"  #{idx}  [{item.source_section_id}] {label}")
            out.append(f"    Score  : {item.score:.3f}")
            if item.component_id:
                out.append(f"    Part   : {item.component_id}")
            if item.priority:
                out.append(f"    Prio   : {item.priority}")
            preview = item.text.splitlines()
            out.extend(f"    │ {line}" for line in preview[:6])
        out.append(thin)
        return "\n".join(out)

    @staticmethod
    def format_evaluation(report: EvalReport) -> str:
        thin = ReportFormatter._rule()
        s = report.summary
        out = [f"\n{thin}", "  INSPECTDX — Retrieval evaluation", thin]
        out.append(f"    Total test cases     : {s.total_cases}")
        out.append(f"    Cases with results   : {s.cases_with_results} ({s.result_rate:.1f}%)")
        out.append(f"    Average similarity   : {s.avg_similarity:.3f}")
        out.append(
            f"    Data type accuracy   : {s.data_type_hits}/{s.data_type_cases} "
            f"({s.data_type_accuracy:.1f}%)"
        )
        out.append(
            f"    Component accuracy   : {s.component_hits}/{s.component_cases} "
            f"({s.component_accuracy:.1f}%)"
        )
        out.append(f"    Duration             : {s.duration_seconds:.2f}s")
        out.append("")
        out.append("  | Description | Results | Avg Score | Type | Component |")
        out.append("  |-------------|---------|-----------|------|-----------|")

        def mark(value: Optional[bool]) -> str:
            return "-" if value is None else ("ok" if value else "x")

        for r in report.results:
            desc = r.case.description[:30]
            out.append(
                f"  | {desc} | {r.results_found} | {r.avg_score:.3f} | "
                f"{mark(r.data_type_match)} | {mark(r.component_match)} |"
            )
        errors = [r for r in report.results if r.error]
        if errors:
            out.append("")
            out.extend(f"    ! {r.case.description}: {r.error}" for r in errors)
        out.append("")
        out.append(f"  EVALUATION {'PASSED' if s.passed else 'FAILED'}")
        out.append(thin)
        return "\n".join(out)
