"""
InspectDx CLI

Command-line interface for diagnosing symptom reports and querying the
inspection knowledge store.

Usage::

    inspectdx seed                                  # Load the catalog into the index
    inspectdx diagnose "Motor überhitzt, Öldruck schwankt"
    inspectdx classify "Kettenglied gerissen"       # Defect priority only
    inspectdx search "Kettenspannung prüfen"        # Semantic search
    inspectdx intervals --hours 480                 # Maintenance due
    inspectdx eval --format json                    # Retrieval quality check
    inspectdx mcp                                   # Start the MCP server
"""

import json
import logging
import time

import click

from inspectdx.client import Inspectdx
from inspectdx.core.config import FilterVocabulary, InspectdxConfig
from inspectdx.core.report import ReportFormatter
from inspectdx.core.retriever import RetrievalFilter
from inspectdx.exceptions import ConfigError, InspectdxError


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool, config: InspectdxConfig) -> None:
    """Set up logging for the CLI session."""
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format=config.log_format)
    # Suppress noisy HTTP loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _client(ctx: click.Context, verbose: bool) -> Inspectdx:
    """Build the client from the group options and validate its config."""
    config: InspectdxConfig = ctx.obj["config"]
    _configure_logging(verbose, config)
    try:
        config.validate()
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)
    return Inspectdx(config=config)


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    raise SystemExit(1)


def _dump(payload) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


_FORMAT_OPTION = click.option(
    "-f", "--format", "fmt", type=click.Choice(["console", "json"]),
    default="console", help="Output format.",
)
_VERBOSE_OPTION = click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")


# ---------------------------------------------------------------------------
# Top-level group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(package_name="inspectdx")
@click.option(
    "--offline", is_flag=True, default=False,
    help="Use local hashing embeddings and lexical reranking (no API keys).",
)
@click.option(
    "--index-dir", type=click.Path(file_okay=False), default=None,
    help="Directory holding the SQLite index (default: $INSPECTDX_INDEX_DIR or .inspectdx).",
)
@click.pass_context
def cli(ctx: click.Context, offline: bool, index_dir: str | None):
    """InspectDx — symptom-driven diagnostics for tracked vehicles."""
    ctx.ensure_object(dict)
    config = InspectdxConfig.from_env()
    if offline:
        config.embedding_fallback_only = True
    if index_dir:
        config.index_dir = index_dir
    ctx.obj["config"] = config


# ---------------------------------------------------------------------------
# inspectdx diagnose
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("symptom")
@click.option("--vehicle", "vehicle_id", default="leopard2", show_default=True,
              help="Vehicle identifier (leopard2, m1-abrams).")
@click.option("--hint", "component_hint", default=None,
              help="Optional hint about the affected component.")
@click.option("--timeout", type=float, default=None,
              help="Abort the diagnosis after this many seconds.")
@_FORMAT_OPTION
@_VERBOSE_OPTION
@click.pass_context
def diagnose(ctx: click.Context, symptom: str, vehicle_id: str,
             component_hint: str | None, timeout: float | None,
             fmt: str, verbose: bool):
    """Diagnose a free-text SYMPTOM report and print the diagnostic report."""
    client = _client(ctx, verbose)
    t0 = time.perf_counter()
    try:
        report = client.diagnose(symptom, vehicle_id, component_hint, timeout=timeout)
    except InspectdxError as exc:
        _fail(exc)
    finally:
        client.close()
    elapsed = time.perf_counter() - t0

    if fmt == "json":
        click.echo(report.to_json())
    else:
        click.echo(ReportFormatter.format_report(report, elapsed_time=elapsed))


# ---------------------------------------------------------------------------
# inspectdx classify
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("description")
@click.option("--component", "component_id", default=None, help="Affected component id.")
@click.option("--checkpoint", "checkpoint_number", type=int, default=None,
              help="Inspection checkpoint number the defect was found at.")
@_FORMAT_OPTION
@click.pass_context
def classify(ctx: click.Context, description: str, component_id: str | None,
             checkpoint_number: int | None, fmt: str):
    """Classify a defect DESCRIPTION into priority, SLA and escalation path."""
    client = Inspectdx(config=ctx.obj["config"])
    try:
        result = client.classify(description, component_id, checkpoint_number)
    except InspectdxError as exc:
        _fail(exc)

    if fmt == "json":
        _dump(result.to_dict())
    else:
        click.echo(ReportFormatter.format_classification(result))


# ---------------------------------------------------------------------------
# inspectdx search
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("query")
@click.option("-n", "--top-k", type=int, default=None, help="Maximum number of results.")
@click.option("--min-score", type=float, default=None, help="Minimum similarity score.")
@click.option("--rerank", is_flag=True, help="Rerank a wider candidate pool.")
@click.option("--vehicle-type", default=None, help="Filter by vehicle type.")
@click.option("--variant", "vehicle_variant",
              type=click.Choice(sorted(FilterVocabulary.VEHICLE_VARIANTS)), default=None)
@click.option("--role", "crew_role",
              type=click.Choice(sorted(FilterVocabulary.CREW_ROLES)), default=None)
@click.option("--level", "maintenance_level",
              type=click.Choice(sorted(FilterVocabulary.MAINTENANCE_LEVELS)), default=None)
@click.option("--priority",
              type=click.Choice(sorted(FilterVocabulary.PRIORITIES)), default=None)
@click.option("--component", "component_id", default=None)
@click.option("--type", "data_type",
              type=click.Choice(sorted(FilterVocabulary.DATA_TYPES)), default=None)
@_FORMAT_OPTION
@_VERBOSE_OPTION
@click.pass_context
def search(ctx: click.Context, query: str, top_k: int | None, min_score: float | None,
           rerank: bool, vehicle_type: str | None, vehicle_variant: str | None,
           crew_role: str | None, maintenance_level: str | None, priority: str | None,
           component_id: str | None, data_type: str | None, fmt: str, verbose: bool):
    """Semantic search over the inspection knowledge store."""
    client = _client(ctx, verbose)
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
        response = client.search(
            query, filters=filters, top_k=top_k, min_score=min_score, rerank=rerank,
        )
    except InspectdxError as exc:
        _fail(exc)
    finally:
        client.close()

    if fmt == "json":
        _dump(response.to_dict())
    else:
        click.echo(ReportFormatter.format_hits(response.items, response.total_found))


# ---------------------------------------------------------------------------
# inspectdx checkpoint / component / intervals
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("number", type=int)
@click.option("--vehicle-type", default="leopard2", show_default=True)
@_VERBOSE_OPTION
@click.pass_context
def checkpoint(ctx: click.Context, number: int, vehicle_type: str, verbose: bool):
    """Show inspection checkpoint NUMBER."""
    client = _client(ctx, verbose)
    try:
        item = client.get_checkpoint(number, vehicle_type)
    except InspectdxError as exc:
        _fail(exc)
    finally:
        client.close()
    if item is None:
        click.echo(f"Checkpoint {number} not found for {vehicle_type}.", err=True)
        raise SystemExit(1)
    click.echo(item.text)


@cli.command()
@click.argument("component_id")
@_VERBOSE_OPTION
@click.pass_context
def component(ctx: click.Context, component_id: str, verbose: bool):
    """Show the full record of COMPONENT_ID as JSON."""
    client = _client(ctx, verbose)
    try:
        record = client.get_component(component_id)
    except InspectdxError as exc:
        _fail(exc)
    finally:
        client.close()
    if record is None:
        click.echo(f"Component '{component_id}' not found. Run 'inspectdx seed' first?", err=True)
        raise SystemExit(1)
    _dump(record.to_dict())


@cli.command()
@click.option("--level", type=click.Choice(sorted(FilterVocabulary.MAINTENANCE_LEVELS)),
              default=None, help="Only intervals of this maintenance level.")
@click.option("--hours", "operating_hours", type=float, default=None,
              help="Current operating hours; computes what is due.")
@click.option("--id", "interval_id", default=None, help="A single interval id, e.g. L2-250H.")
@click.option("--in-range", is_flag=True,
              help="Drop hour-based intervals longer than the current operating hours.")
@click.pass_context
def intervals(ctx: click.Context, level: str | None, operating_hours: float | None,
              interval_id: str | None, in_range: bool):
    """List maintenance intervals and what is due."""
    client = Inspectdx(config=ctx.obj["config"])
    try:
        _dump(client.maintenance_intervals(level, operating_hours, interval_id, in_range))
    except InspectdxError as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# inspectdx seed / stats
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--no-reset", is_flag=True, help="Keep existing chunks (upsert only).")
@_VERBOSE_OPTION
@click.pass_context
def seed(ctx: click.Context, no_reset: bool, verbose: bool):
    """Embed the static catalog and load it into the vector index."""
    client = _client(ctx, verbose)
    try:
        result = client.seed(reset=not no_reset, show_progress=True)
    except InspectdxError as exc:
        _fail(exc)
    finally:
        client.close()

    click.echo("─" * 50)
    click.echo("  INSPECTDX — Seeding complete")
    click.echo("─" * 50)
    for data_type, count in sorted(result.chunks_by_type.items()):
        click.echo(f"  {data_type:<12} {count:>8,}")
    click.echo(f"  {'total':<12} {result.total_chunks:>8,}")
    click.echo(f"  Elapsed      {result.elapsed_seconds:>8.2f}s")
    click.echo("─" * 50)


@cli.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show index and cache statistics."""
    client = Inspectdx(config=ctx.obj["config"])
    try:
        s = client.stats()
    finally:
        client.close()
    click.echo("─" * 50)
    click.echo("  INSPECTDX — Index Statistics")
    click.echo("─" * 50)
    click.echo(f"  Index          : {s['index_name']} ({s['index_backend']})")
    click.echo(f"  Indexed chunks   {s['indexed_chunks']:>8,}")
    click.echo("─" * 50)


# ---------------------------------------------------------------------------
# inspectdx eval
# ---------------------------------------------------------------------------

@cli.command(name="eval")
@click.option("--vehicle-type", default="leopard2", show_default=True,
              help="Vehicle type the test queries are filtered to.")
@click.option("--no-edge-cases", is_flag=True, help="Skip the short/long edge-case queries.")
@click.option("--judge", is_flag=True,
              help="Also let the configured LLM provider rate semantic relevance.")
@_FORMAT_OPTION
@_VERBOSE_OPTION
@click.pass_context
def evaluate(ctx: click.Context, vehicle_type: str, no_edge_cases: bool, judge: bool,
             fmt: str, verbose: bool):
    """Run the retrieval test cases against the seeded index; exit 1 if below threshold."""
    client = _client(ctx, verbose)
    try:
        report = client.evaluate(
            vehicle_type=vehicle_type,
            include_edge_cases=not no_edge_cases,
            judge=judge,
            show_progress=fmt == "console",
        )
    except InspectdxError as exc:
        _fail(exc)
    finally:
        client.close()

    if fmt == "json":
        click.echo(report.to_json())
    else:
        click.echo(ReportFormatter.format_evaluation(report))
    if not report.summary.passed:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# inspectdx mcp
# ---------------------------------------------------------------------------

@cli.command()
@_VERBOSE_OPTION
@click.pass_context
def mcp(ctx: click.Context, verbose: bool):
    """Start the InspectDx MCP server (stdio) for agent integration."""
    config: InspectdxConfig = ctx.obj["config"]
    _configure_logging(verbose, config)
    try:
        from inspectdx.mcp.server import create_server  # noqa: E402
    except ImportError:
        click.echo(
            "Error: MCP dependencies not installed.\n"
            "Install with:  pip install 'inspectdx[mcp]'",
            err=True,
        )
        raise SystemExit(1)

    server = create_server(config)
    server.run(transport="stdio")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
