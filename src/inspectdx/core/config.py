"""
InspectDx Configuration Module

Centralized configuration for the diagnostic retrieval pipeline, plus
the static knowledge tables (system keywords, defect taxonomy,
resolution tables) that the pipeline stages consult.

The tables are versioned with the package and loaded at import time;
nothing here performs I/O.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# =============================================================================
# Instance-Based Configuration
# =============================================================================

@dataclass
class InspectdxConfig:
    """
    Instance-based configuration for InspectDx.

    Each instance is self-contained and is passed down the call stack, so
    two clients in one process (or two tests) never share cache or index
    settings.

    Create from environment variables::

        config = InspectdxConfig.from_env()

    Or with explicit values::

        config = InspectdxConfig(embedding_fallback_only=True, index_dir="/tmp/idx")
    """

    # ── Embedding Provider ────────────────────────────────────────
    embedding_provider: str = "openai"
    openai_api_key: Optional[str] = None
    openai_embedding_model: str = "text-embedding-3-small"
    gemini_api_key: Optional[str] = None
    gemini_embedding_model: str = "text-embedding-004"
    embedding_dimensions: int = 1536

    # ── Reranking LLM ─────────────────────────────────────────────
    llm_provider: str = "anthropic"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-haiku-4-5"
    openai_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-2.0-flash"
    llm_max_tokens: int = 10
    llm_temperature: float = 0.0

    # ── Rate Limiting ─────────────────────────────────────────────
    max_concurrent_requests: int = 8
    retry_attempts: int = 3
    retry_backoff_base: float = 2.0

    # ── Local fallback (skip network) ─────────────────────────────
    embedding_fallback_only: bool = False
    """If True, use hashed local embeddings and lexical reranking; no API keys needed."""

    # ── Vector Index ──────────────────────────────────────────────
    index_backend: str = "sqlite"
    index_dir: str = ".inspectdx"
    index_db_name: str = "vectors.db"
    index_name: str = "inspection_chunks"

    # ── Caches ────────────────────────────────────────────────────
    embedding_cache_ttl_seconds: float = 60 * 60
    query_cache_ttl_seconds: float = 15 * 60

    # ── Retrieval ─────────────────────────────────────────────────
    default_top_k: int = 5
    default_min_score: float = 0.5
    rerank_pool_multiplier: int = 3
    rerank_min_pool: int = 15
    rerank_weights: dict = field(default_factory=lambda: {
        "semantic": 0.5,
        "vector": 0.3,
        "position": 0.2,
    })

    # ── Evidence Gathering ────────────────────────────────────────
    knowledge_system_limit: int = 3
    knowledge_system_top_k: int = 3
    related_issue_limit: int = 10
    failure_mode_system_limit: int = 2
    failure_mode_system_top_k: int = 3
    failure_mode_limit: int = 8

    # ── Hypotheses & Diagnosis ────────────────────────────────────
    max_hypotheses: int = 5
    failure_mode_hypothesis_limit: int = 5
    related_issue_hypothesis_limit: int = 3
    needs_more_info_threshold: int = 30
    no_hypothesis_confidence: int = 20
    request_timeout_seconds: Optional[float] = None

    # ── Retrieval Evaluation ──────────────────────────────────────
    eval_top_k: int = 5
    eval_min_score: float = 0.3
    eval_min_result_rate: float = 50.0
    """Percent of cases that must return at least one result."""
    eval_min_avg_similarity: float = 0.3
    eval_judge_max_tokens: int = 300

    # ── Logging ───────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # ── Factory ───────────────────────────────────────────────────

    @classmethod
    def from_env(cls) -> "InspectdxConfig":
        """Build a config snapshot from current environment variables.

        Reads :envvar:`INSPECTDX_FALLBACK_ONLY` (1/true/yes/on) to run
        without any API key.
        """
        fallback_raw = os.getenv("INSPECTDX_FALLBACK_ONLY", "").lower()
        timeout_raw = os.getenv("INSPECTDX_REQUEST_TIMEOUT", "").strip()
        return cls(
            embedding_provider=os.getenv("INSPECTDX_EMBEDDING_PROVIDER", "openai").lower(),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_embedding_model=os.getenv("GEMINI_EMBEDDING_MODEL", "text-embedding-004"),
            llm_provider=os.getenv("INSPECTDX_LLM_PROVIDER", "anthropic").lower(),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-haiku-4-5"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            embedding_fallback_only=fallback_raw in ("1", "true", "yes", "on"),
            index_backend=os.getenv("INSPECTDX_INDEX_BACKEND", "sqlite").lower(),
            index_dir=os.getenv("INSPECTDX_INDEX_DIR", ".inspectdx"),
            default_min_score=float(os.getenv("INSPECTDX_MIN_SCORE", "0.5")),
            request_timeout_seconds=float(timeout_raw) if timeout_raw else None,
            log_level=os.getenv("INSPECTDX_LOG_LEVEL", "INFO").upper(),
        )

    # ── Validation & Accessors ────────────────────────────────────

    def validate(self) -> bool:
        """
        Validate provider selection, API keys and numeric settings.

        API keys are not required when :attr:`embedding_fallback_only`
        is set.  Raises :class:`~inspectdx.exceptions.ConfigError`.
        """
        from inspectdx.exceptions import ConfigError

        if self.embedding_provider not in ("openai", "gemini", "hashing"):
            raise ConfigError(
                f"Unknown embedding provider '{self.embedding_provider}'. "
                "Supported: openai, gemini, hashing.\n"
                "  Set via: export INSPECTDX_EMBEDDING_PROVIDER=openai"
            )
        if self.llm_provider not in ("anthropic", "openai", "gemini"):
            raise ConfigError(
                f"Unknown LLM provider '{self.llm_provider}'. "
                "Supported: anthropic, openai, gemini.\n"
                "  Set via: export INSPECTDX_LLM_PROVIDER=anthropic"
            )
        if self.index_backend not in ("sqlite", "memory"):
            raise ConfigError(
                f"Unknown index backend '{self.index_backend}'. Supported: sqlite, memory."
            )
        if self.embedding_cache_ttl_seconds <= 0 or self.query_cache_ttl_seconds <= 0:
            raise ConfigError("Cache TTLs must be positive.")
        if self.default_top_k < 1:
            raise ConfigError("default_top_k must be at least 1.")
        if not 0.0 <= self.default_min_score <= 1.0:
            raise ConfigError(
                f"default_min_score must be within [0, 1], got {self.default_min_score}."
            )
        if not 0.0 <= self.eval_min_score <= 1.0:
            raise ConfigError(
                f"eval_min_score must be within [0, 1], got {self.eval_min_score}."
            )
        if abs(sum(self.rerank_weights.values()) - 1.0) > 1e-6:
            raise ConfigError(
                f"rerank_weights must sum to 1.0, got {self.rerank_weights}."
            )

        if self.embedding_fallback_only or self.embedding_provider == "hashing":
            return True

        env_name, value = {
            "openai": ("OPENAI_API_KEY", self.openai_api_key),
            "gemini": ("GEMINI_API_KEY", self.gemini_api_key),
        }[self.embedding_provider]
        if not value:
            raise ConfigError(
                f"{env_name} not found (required by embedding provider "
                f"'{self.embedding_provider}').\n"
                f"  Linux/Mac: export {env_name}='your-key-here'\n"
                "  Or run offline: export INSPECTDX_FALLBACK_ONLY=1"
            )
        return True

    def get_llm_api_key(self) -> Optional[str]:
        """Return the API key for the reranking LLM provider."""
        return {
            "anthropic": self.anthropic_api_key,
            "openai":    self.openai_api_key,
            "gemini":    self.gemini_api_key,
        }[self.llm_provider]

    def get_llm_model(self) -> str:
        """Return the model name for the reranking LLM provider."""
        return {
            "anthropic": self.anthropic_model,
            "openai":    self.openai_model,
            "gemini":    self.gemini_model,
        }[self.llm_provider]

    def get_index_path(self, base_dir: Path | None = None) -> Path:
        """Get the path to the SQLite vector store."""
        root = Path(base_dir) if base_dir is not None else Path(self.index_dir)
        return root / self.index_db_name


# =============================================================================
# Symptom → System → Component Tables
# =============================================================================

class SystemTaxonomy:
    """Keyword tables that join free symptom text to component knowledge."""

    # Order matters: systems are reported in this order.
    SYSTEM_KEYWORDS: Dict[str, List[str]] = {
        "engine": [
            "motor", "engine", "antrieb", "diesel", "mtu", "leistung",
            "power", "drehzahl", "rpm",
        ],
        "transmission": [
            "getriebe", "transmission", "renk", "gang", "gear", "kupplung", "clutch",
        ],
        "hydraulic": [
            "hydraulik", "hydraulic", "druck", "pressure", "öl", "oil", "leck", "leak",
        ],
        "electrical": [
            "elektrik", "electrical", "strom", "batterie", "battery", "spannung", "voltage",
        ],
        "turret": [
            "turm", "turret", "drehkranz", "rotation", "richtung", "elevation",
        ],
        "tracks": [
            "kette", "track", "fahrwerk", "suspension", "laufwerk", "rolle", "wheel",
        ],
        "cooling": [
            "kühlung", "kühlmittel", "cooling", "coolant", "temperatur", "temperature",
            "überhitz", "overheat", "heiß",
        ],
        "fuel": [
            "kraftstoff", "fuel", "diesel", "tank", "filter", "pumpe", "pump",
        ],
        "brakes": [
            "bremse", "brake", "stopp", "stop", "blockiert", "blocked",
        ],
        "electronics": [
            "elektronik", "electronic", "sensor", "steuerung", "control", "fehler", "error",
        ],
        "general": [],
    }

    SYSTEM_TO_COMPONENTS: Dict[str, List[str]] = {
        "engine": ["mtu_mb873"],
        "transmission": ["renk_hswl354"],
        "hydraulic": ["renk_hswl354"],
        "electrical": [],
        "turret": ["turmdrehkranz"],
        "tracks": [],
        "cooling": ["mtu_mb873"],
        "fuel": ["mtu_mb873"],
        "brakes": [],
        "electronics": [],
        "general": [],
    }

    COMPONENT_HINT_PATTERNS: List[Tuple[Tuple[str, ...], str]] = [
        (("mtu", "motor", "engine"), "mtu_mb873"),
        (("renk", "getriebe", "transmission"), "renk_hswl354"),
        (("turm", "turret", "drehkranz"), "turmdrehkranz"),
    ]

    DEFAULT_COMPONENT_ID = "mtu_mb873"

    STOP_WORDS: frozenset = frozenset({
        "der", "die", "das", "ein", "eine", "und", "oder", "aber", "wenn",
        "ist", "sind", "hat", "haben", "beim", "bei", "mit", "von", "vom",
        "zum", "zur", "dem", "den", "des", "aus", "auf", "über", "unter",
        "nach", "nicht", "the", "and", "but", "are", "has", "have", "when",
        "what", "how", "with", "from", "for", "not",
    })

    MAX_KEYWORDS = 10

    VEHICLE_TYPES: Dict[str, str] = {
        "leopard2": "leopard2",
        "m1-abrams": "m1a2",
    }
    DEFAULT_VEHICLE_TYPE = "leopard2"


def vehicle_type_for(vehicle_id: str | None) -> str:
    """Map a caller-facing vehicle id to the vehicle type stored in the index."""
    if not vehicle_id:
        return SystemTaxonomy.DEFAULT_VEHICLE_TYPE
    return SystemTaxonomy.VEHICLE_TYPES.get(
        vehicle_id.strip().lower(), SystemTaxonomy.DEFAULT_VEHICLE_TYPE
    )


# =============================================================================
# Retrieval Filter Vocabulary
# =============================================================================

class FilterVocabulary:
    """Closed value sets accepted by retrieval filters."""

    VEHICLE_VARIANTS = frozenset({"A4", "A5", "A6", "A6M", "A7", "A7V"})
    CREW_ROLES = frozenset({"driver", "commander", "gunner", "loader"})
    MAINTENANCE_LEVELS = frozenset({"L1", "L2", "L3", "L4"})
    PRIORITIES = frozenset({"critical", "high", "medium", "low", "info"})
    DATA_TYPES = frozenset({
        "vehicle", "checkpoint", "component", "defect", "interval", "legacy",
    })


# =============================================================================
# Defect Taxonomy
# =============================================================================

class DefectTaxonomy:
    """NATO-style defect priorities and defect categories.

    ``PRIORITIES`` is ordered critical → info; classification returns the
    first level with a keyword hit, so the order is part of the contract.
    """

    PRIORITIES: Dict[str, dict] = {
        "critical": {
            "name_de": "KRITISCH",
            "name_en": "CRITICAL",
            "response_time": "sofort",
            "vehicle_status": "nicht einsatzbereit (NMC - Not Mission Capable)",
            "escalation": "Kommandant + Schirrmeister sofort informieren -> Kompaniechef innerhalb 1h",
            "color": "#FF0000",
            "keywords": [
                "ausfall", "blockiert", "kritisch", "sofort", "gefahr", "feuer",
                "explosion", "totalausfall", "nicht funktionsfähig",
                "lebensbedrohlich", "brand", "failure", "blocked", "critical",
                "danger", "fire",
            ],
            "examples": [
                "Bremsanlage ohne Funktion",
                "Kraftstoffleckage im Motorraum",
                "Turmdrehkranz blockiert",
            ],
        },
        "high": {
            "name_de": "HOCH",
            "name_en": "HIGH",
            "response_time": "vor nächster Ausfahrt (innerhalb 24h)",
            "vehicle_status": "bedingt einsatzbereit (PMC - Partially Mission Capable)",
            "escalation": "Kommandant -> Schirrmeister am selben Tag",
            "color": "#FF8C00",
            "keywords": [
                "gerissen", "leckage", "defekt", "funktioniert nicht",
                "ausgefallen", "stark", "erheblich", "beschädigt", "versagt",
                "torn", "leakage", "defect", "broken", "damaged", "failed",
            ],
            "examples": [
                "Kettenglied gerissen",
                "Hydraulikleckage am Richtantrieb",
                "Starke Rauchentwicklung am Auspuff",
            ],
        },
        "medium": {
            "name_de": "MITTEL",
            "name_en": "MEDIUM",
            "response_time": "innerhalb 48h",
            "vehicle_status": "voll einsatzbereit mit Einschränkung (FMC-S)",
            "escalation": "Meldung an Schirrmeister, Dokumentation für nächste Wartung",
            "color": "#FFD700",
            "keywords": [
                "verschleiß", "erhöht", "grenzwert", "nachlässt",
                "beeinträchtigt", "kleinere", "teilweise", "reduziert", "wear",
                "elevated", "threshold", "reduced", "partial",
            ],
            "examples": [
                "Kettenspannung am Grenzwert",
                "Öltemperatur leicht erhöht",
            ],
        },
        "low": {
            "name_de": "NIEDRIG",
            "name_en": "LOW",
            "response_time": "bei nächster planmäßiger Wartung",
            "vehicle_status": "voll einsatzbereit (FMC - Fully Mission Capable)",
            "escalation": "keine, nur Dokumentation",
            "color": "#32CD32",
            "keywords": [
                "leicht", "minimal", "kosmetisch", "oberflächlich",
                "geringfügig", "unerheblich", "minor", "slight", "cosmetic",
                "superficial",
            ],
            "examples": [
                "Lackschaden an der Wanne",
                "Leichte Verschmutzung der Optiken",
            ],
        },
        "info": {
            "name_de": "INFO",
            "name_en": "INFO",
            "response_time": "Kenntnisnahme",
            "vehicle_status": "voll einsatzbereit (FMC - Fully Mission Capable)",
            "escalation": "keine",
            "color": "#1E90FF",
            "keywords": [
                "hinweis", "information", "beobachtung", "notiz", "vorschlag",
                "note", "observation", "suggestion",
            ],
            "examples": [
                "Hinweis auf anstehenden Filterwechsel",
            ],
        },
    }

    CATEGORIES: Dict[str, dict] = {
        "mechanical": {
            "name": "Mechanisch",
            "name_en": "Mechanical",
            "subcategories": [
                "verschleiß", "bruch", "verformung", "blockade", "lockerung", "korrosion",
            ],
        },
        "hydraulic": {
            "name": "Hydraulik",
            "name_en": "Hydraulic",
            "subcategories": [
                "leckage", "druckverlust", "verschmutzung", "schlauch_defekt", "ventil_defekt",
            ],
        },
        "electrical": {
            "name": "Elektrik",
            "name_en": "Electrical",
            "subcategories": [
                "kabelbruch", "kurzschluss", "spannungsabfall", "kontaktprobleme",
                "sicherung_defekt",
            ],
        },
        "electronic": {
            "name": "Elektronik",
            "name_en": "Electronic",
            "subcategories": [
                "sensor_ausfall", "steuergerät_fehler", "software_fehler",
                "kommunikation_gestört", "anzeige_defekt",
            ],
        },
        "structural": {
            "name": "Strukturell",
            "name_en": "Structural",
            "subcategories": [
                "riss", "delle", "schweißnaht_defekt", "materialermüdung", "perforation",
            ],
        },
    }

    RECOMMENDATIONS: Dict[str, List[str]] = {
        "critical": [
            "Fahrzeug sofort stilllegen",
            "Kommandant und Schirrmeister informieren",
            "Kompaniechef innerhalb 1 Stunde informieren",
            "Fahrzeug nicht bewegen bis Freigabe",
        ],
        "high": [
            "Fahrzeug vor nächster Ausfahrt instandsetzen",
            "Schirrmeister am selben Tag informieren",
            "Ersatzteile beschaffen falls nötig",
        ],
        "medium": [
            "In Mängelliste aufnehmen",
            "Bei nächster L2-Wartung beheben",
            "Entwicklung beobachten",
        ],
        "low": [
            "Dokumentieren für nächste planmäßige Wartung",
            "Keine sofortige Maßnahme erforderlich",
        ],
        "info": [
            "Zur Kenntnis genommen",
            "Optional: In Fahrzeugakte vermerken",
        ],
    }

    # {component} / {checkpoint} are filled from the optional classify() inputs.
    COMPONENT_NOTES: Dict[str, str] = {
        "critical": "Komponente {component} auf Austausch prüfen",
        "high": "Komponente {component} vor Freigabe prüfen",
        "medium": "Komponente {component} bei nächster Wartung prüfen",
        "low": "Komponente {component} in Wartungsnotiz aufnehmen",
        "info": "Komponente {component} vermerken",
    }
    CHECKPOINT_NOTES: Dict[str, str] = {
        "critical": "Prüfpunkt {checkpoint} nach Instandsetzung vollständig wiederholen",
        "high": "Prüfpunkt {checkpoint} nach Reparatur erneut prüfen",
        "medium": "Prüfpunkt {checkpoint} bei nächster Durchsicht erneut prüfen",
        "low": "Prüfpunkt {checkpoint} bei nächster planmäßiger Wartung prüfen",
        "info": "Prüfpunkt {checkpoint} vermerken",
    }

    NO_MATCH_PRIORITY = "low"
    NO_MATCH_CONFIDENCE = 0.1
    CONFIDENCE_PER_MATCH = 0.3

    @classmethod
    def levels(cls) -> List[str]:
        """Priority levels in classification order."""
        return list(cls.PRIORITIES)


# =============================================================================
# Resolution Tables
# =============================================================================

class ResolutionTables:
    """Fixed lookups used when assembling the resolution section of a report."""

    MAINTENANCE_LEVEL_BY_PRIORITY: Dict[str, str] = {
        "critical": "L3",
        "high": "L2",
        "medium": "L2",
        "low": "L1",
        "info": "L1",
    }

    ESTIMATED_TIME_BY_PRIORITY: Dict[str, str] = {
        "critical": "4-8 hours (emergency)",
        "high": "2-4 hours",
        "medium": "1-2 hours",
        "low": "30-60 minutes",
        "info": "15-30 minutes",
    }

    EXPERTISE_BY_LEVEL: Dict[str, str] = {
        "L1": "Crew level",
        "L2": "Unit technician",
        "L3": "Field depot",
        "L4": "Manufacturer depot",
    }

    PARTS_BY_COMPONENT: Dict[str, List[str]] = {
        "mtu_mb873": ["Oil filter", "Air filter", "Gaskets", "Seals"],
        "renk_hswl354": ["Transmission fluid", "Seals", "Filter elements"],
        "turmdrehkranz": ["Lubricant", "Bearings", "Seals"],
    }

    EXECUTOR_DESCRIPTIONS: Dict[str, Dict[str, str]] = {
        "crew": {"de": "Besatzung", "en": "Crew"},
        "unit_technician": {"de": "Technischer Dienst Einheit", "en": "Unit Technician"},
        "mobile_repair_team": {
            "de": "Feldwerft / Instandsetzungstrupp",
            "en": "Mobile Repair Team",
        },
        "depot_manufacturer": {"de": "HIL / Hersteller", "en": "Depot / Manufacturer"},
    }


# =============================================================================
# Prompt Templates
# =============================================================================

class Prompts:
    """LLM prompts for the reranking relevance scorer and the retrieval-eval judge."""

    RELEVANCE_SYSTEM = """You score how relevant a knowledge-base passage is to a maintenance query for a tracked military vehicle.

Passages are usually German inspection or component text; queries may be German or English.

Respond with ONLY a number between 0 and 1:
- 1.0: the passage directly answers the query
- 0.5: the passage is about the same subsystem but does not answer it
- 0.0: unrelated

No explanation, no units, just the number."""

    RELEVANCE_USER = """Query: {query}

Passage:
{passage}

Relevance (0-1):"""

    JUDGE_SYSTEM = """Du bist ein Experte für die Bewertung von Suchergebnissen.
Deine Aufgabe ist es zu bewerten, wie relevant die abgerufenen Inhalte für die Suchanfrage sind.
Antworte immer auf Deutsch und sei präzise in deiner Bewertung."""

    JUDGE_USER = """Bewerte die Relevanz der folgenden Suchergebnisse für die Anfrage.

Suchanfrage: "{query}"

Abgerufene Inhalte:
{contents}

Bewerte:
1. Wie gut beantworten die Ergebnisse die Anfrage? (0-1)
2. Wie viele der Top-5 Ergebnisse sind wirklich relevant?

Antworte im JSON-Format:
{{
  "relevanceScore": <0-1>,
  "reasoning": "<kurze Begründung>",
  "topRelevantChunks": <Anzahl relevanter Chunks>
}}"""
