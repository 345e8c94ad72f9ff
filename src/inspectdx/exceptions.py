"""
InspectDx Exception Hierarchy

Structured exceptions for the diagnostic pipeline, the CLI and MCP
consumers.  Each type maps to one failure mode so callers can react
without parsing message strings.

Usage::

    from inspectdx.exceptions import InspectdxError, RetrievalUnavailableError

    try:
        response = retriever.retrieve("Öldruck schwankt")
    except RetrievalUnavailableError:
        print("Knowledge store unreachable, try again later.")
    except InspectdxError as exc:
        print(f"InspectDx error: {exc}")

"No hypothesis found" is deliberately *not* an exception: it is a
defined low-confidence terminal state of the pipeline.
"""


class InspectdxError(Exception):
    """Base exception for all InspectDx errors."""


class ConfigError(InspectdxError, ValueError):
    """Configuration is invalid or incomplete (e.g. missing API key)."""


class ProviderError(InspectdxError):
    """Embedding or LLM provider failure (API error, auth, rate limit)."""


class RetrievalUnavailableError(InspectdxError):
    """The embedding provider or the vector index could not be reached.

    Raised by the semantic retriever.  The evidence gatherer converts it
    into an empty result for the affected source.
    """


class ValidationError(InspectdxError, ValueError):
    """Malformed input to a retrieval or classification call."""


class UnknownPriorityLevelError(InspectdxError, KeyError):
    """A priority level is not present in the defect taxonomy.

    Only possible when the static taxonomy is corrupted or a caller
    passes an invalid level, so it is always raised, never recovered.
    """


class DiagnosisTimeoutError(InspectdxError, TimeoutError):
    """A diagnostic request exceeded its time budget and was cancelled."""


class SeedError(InspectdxError):
    """Fatal error while seeding the knowledge store."""
