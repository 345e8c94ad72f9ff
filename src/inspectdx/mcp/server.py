"""
InspectDx MCP Server

Exposes diagnosis, defect classification and knowledge lookups as tools
that AI agents can invoke natively via the Model Context Protocol, plus
resources for the defect taxonomy and a prompt template for guided
troubleshooting.

Start with::

    inspectdx mcp                           # stdio transport

Or programmatically::

    from inspectdx.mcp.server import create_server
    server = create_server()
    server.run()
"""

from __future__ import annotations

import json
import logging
from typing import Annotated

# FastMCP uses pydantic for validation, so Field should be available
# If ImportError occurs, it indicates the [mcp] extra wasn't installed
from pydantic import Field  # type: ignore[import-untyped]

from inspectdx.client import Inspectdx
from inspectdx.core.config import DefectTaxonomy, InspectdxConfig
from inspectdx.core.retriever import RetrievalFilter
from inspectdx.exceptions import InspectdxError

logger = logging.getLogger(__name__)


def create_server(config: InspectdxConfig | None = None, client: Inspectdx | None = None):
    """
    Build and return a configured FastMCP server instance.

    All tool invocations share one :class:`Inspectdx` client, and with it
    one index handle and one pair of caches.

    Args:
        config: Instance-based configuration.  Defaults to
            ``InspectdxConfig.from_env()`` so that the server respects
            the same environment variables as the CLI.
        client: Pre-built client (tests inject one with a seeded
            in-memory index).

    Raises ``ImportError`` if ``fastmcp`` is not installed (install
    via ``pip install 'inspectdx[mcp]'``).
    """
    from fastmcp import FastMCP  # type: ignore[import-untyped]

    cfg = config or InspectdxConfig.from_env()
    dx = client or Inspectdx(config=cfg)

    mcp = FastMCP("InspectDx")

    def _error(exc: Exception, **empty) -> str:
        logger.warning(f"Tool call failed: {exc}")
        return json.dumps({"error": str(exc), **empty}, ensure_ascii=False)

    # ==================================================================
    # Tool: run_diagnosis
    # ==================================================================

    @mcp.tool()
    async def run_diagnosis(
        symptom_description: Annotated[
            str,
            Field(description="Free-text symptom report, German or English (e.g. 'Motor überhitzt beim Starten, Öldruck schwankt').")
        ],
        vehicle_id: Annotated[
            str,
            Field(default="leopard2", description="Vehicle identifier: 'leopard2' or 'm1-abrams'.")
        ] = "leopard2",
        component_hint: Annotated[
            str | None,
            Field(default=None, description="Optional hint about the suspected component (e.g. 'Getriebe', 'turret').")
        ] = None,
    ) -> str:
        """Run the full diagnostic pipeline for a symptom report.

        Returns:
            JSON diagnostic report: affected systems, diagnostic steps,
            root cause with confidence, resolution (priority, maintenance
            level, parts, time, expertise) and the evidence trail.
        """
        try:
            report = await dx.adiagnose(symptom_description, vehicle_id, component_hint)
        except InspectdxError as exc:
            return _error(exc)
        return report.to_json()

    # ==================================================================
    # Tool: classify_defect
    # ==================================================================

    @mcp.tool()
    def classify_defect(
        description: Annotated[
            str,
            Field(description="Defect description as found during inspection.")
        ],
        component_id: Annotated[
            str | None,
            Field(default=None, description="Affected component id (mtu_mb873, renk_hswl354, turmdrehkranz).")
        ] = None,
        checkpoint_number: Annotated[
            int | None,
            Field(default=None, description="Inspection checkpoint number where the defect was found.")
        ] = None,
    ) -> str:
        """Classify a defect into NATO priority, response time and escalation path."""
        try:
            result = dx.classify(description, component_id, checkpoint_number)
        except InspectdxError as exc:
            return _error(exc)
        return json.dumps(result.to_dict(), ensure_ascii=False)

    # ==================================================================
    # Tool: query_inspection
    # ==================================================================

    @mcp.tool()
    async def query_inspection(
        query: Annotated[
            str,
            Field(description="Natural-language question about inspection, components or defects.")
        ],
        vehicle_type: Annotated[str | None, Field(default=None, description="Filter: vehicle type, e.g. 'leopard2'.")] = None,
        vehicle_variant: Annotated[str | None, Field(default=None, description="Filter: A4, A5, A6, A6M, A7 or A7V.")] = None,
        crew_role: Annotated[str | None, Field(default=None, description="Filter: driver, commander, gunner or loader.")] = None,
        maintenance_level: Annotated[str | None, Field(default=None, description="Filter: L1-L4.")] = None,
        priority: Annotated[str | None, Field(default=None, description="Filter: critical, high, medium, low or info.")] = None,
        component_id: Annotated[str | None, Field(default=None, description="Filter: component id.")] = None,
        data_type: Annotated[str | None, Field(default=None, description="Filter: checkpoint, component, defect, interval.")] = None,
        top_k: Annotated[int, Field(default=5, description="Maximum number of results.")] = 5,
        min_score: Annotated[float, Field(default=0.5, description="Minimum similarity score (0-1).")] = 0.5,
        use_reranking: Annotated[bool, Field(default=False, description="Rerank a wider candidate pool for precision.")] = False,
    ) -> str:
        """Semantic search over the inspection knowledge base.

        Returns:
            JSON object with ``results`` (text, section, score and tags)
            and ``total_found``.
        """
        filters = RetrievalFilter(
            vehicle_type=vehicle_type,
            vehicle_variant=vehicle_variant,
            crew_role=crew_role,
            maintenance_level=maintenance_level,
            priority=priority,
            component_id=component_id,
            data_type=data_type,
        )
        try:
            response = await dx.asearch(
                query, filters=filters, top_k=top_k, min_score=min_score, rerank=use_reranking,
            )
        except InspectdxError as exc:
            return _error(exc, results=[], total_found=0)
        return json.dumps(response.to_dict(), ensure_ascii=False)

    # ==================================================================
    # Tools: checkpoint / component / intervals
    # ==================================================================

    @mcp.tool()
    def get_checkpoint(
        checkpoint_number: Annotated[int, Field(description="Inspection checkpoint number.")],
        vehicle_type: Annotated[str, Field(default="leopard2", description="Vehicle type.")] = "leopard2",
    ) -> str:
        """Return one inspection checkpoint (tasks, tools, expected values)."""
        try:
            item = dx.get_checkpoint(checkpoint_number, vehicle_type)
        except InspectdxError as exc:
            return _error(exc)
        if item is None:
            return json.dumps({"error": f"Checkpoint {checkpoint_number} not found"})
        return json.dumps(item.to_dict(), ensure_ascii=False)

    @mcp.tool()
    def get_component_details(
        component_id: Annotated[
            str,
            Field(description="Component id: mtu_mb873 (engine), renk_hswl354 (transmission), turmdrehkranz (turret ring).")
        ],
    ) -> str:
        """Return specs, maintenance schedule, monitoring points and common failures of a component."""
        try:
            record = dx.get_component(component_id)
        except InspectdxError as exc:
            return _error(exc)
        if record is None:
            return json.dumps({"error": f"Component '{component_id}' not found"})
        return json.dumps(record.to_dict(), ensure_ascii=False)

    @mcp.tool()
    def get_maintenance_interval(
        level: Annotated[str | None, Field(default=None, description="Maintenance level L1-L4.")] = None,
        operating_hours: Annotated[float | None, Field(default=None, description="Current operating hours; computes what is due.")] = None,
        interval_id: Annotated[str | None, Field(default=None, description="Single interval id, e.g. 'L2-250H'.")] = None,
        include_tasks_in_range: Annotated[bool, Field(default=False, description="Drop hour-based intervals longer than the operating hours.")] = False,
    ) -> str:
        """List maintenance intervals (tasks, executor, trigger) and which are due."""
        try:
            result = dx.maintenance_intervals(level, operating_hours, interval_id, include_tasks_in_range)
        except InspectdxError as exc:
            return _error(exc, intervals=[])
        return json.dumps(result, ensure_ascii=False)

    # ==================================================================
    # Tool: health (readiness check)
    # ==================================================================

    @mcp.tool()
    def health() -> str:
        """Check that the InspectDx MCP server is running and responsive."""
        return json.dumps({"status": "ok", **dx.health()})

    # ==================================================================
    # Resources and prompts
    # ==================================================================

    @mcp.resource("inspectdx://taxonomy/priorities")
    def taxonomy_priorities() -> str:
        """Return the defect priority levels with SLA and escalation."""
        return json.dumps(DefectTaxonomy.PRIORITIES, indent=2, ensure_ascii=False)

    @mcp.resource("inspectdx://taxonomy/categories")
    def taxonomy_categories() -> str:
        """Return the defect categories and their subcategory terms."""
        return json.dumps(DefectTaxonomy.CATEGORIES, indent=2, ensure_ascii=False)

    @mcp.prompt()
    def troubleshoot(symptom: str, vehicle_id: str = "leopard2") -> str:
        """Pre-built prompt: diagnose a symptom and explain the result to the crew."""
        return (
            f"Call run_diagnosis for vehicle '{vehicle_id}' with the symptom "
            f"'{symptom}'. Summarise the root cause, the diagnostic steps the crew "
            "should perform in order, the defect priority with its escalation path, "
            "and who may carry out the repair. If the confidence is below 30, "
            "say which additional observations would help."
        )

    return mcp
