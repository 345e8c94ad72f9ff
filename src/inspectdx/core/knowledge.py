"""
InspectDx Knowledge Store

Turns the static catalog into German text chunks, seeds them into the
vector index, and reads component records back out of it.  Also answers
maintenance-interval questions directly from the interval plan.

German prose embeds better than raw JSON for German-language symptom
reports, so every chunk carries readable text plus flat metadata for
filtering.  Component spec chunks additionally carry the full record as
a JSON payload so lookups can rebuild a :class:`ComponentRecord`.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Iterable, List, Optional

from tqdm import tqdm

from inspectdx.core.catalog import (
    COMPONENTS,
    INSPECTION_SECTIONS,
    MAINTENANCE_INTERVALS,
)
from inspectdx.core.config import DefectTaxonomy, InspectdxConfig, ResolutionTables
from inspectdx.core.engine import (
    ComponentRecord,
    EmbeddingProvider,
    QueryCache,
    VectorIndex,
)
from inspectdx.core.retriever import SemanticRetriever
from inspectdx.exceptions import RetrievalUnavailableError, SeedError, ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Text Converters
# =============================================================================

_CHECKPOINT_TYPES = {
    "visual_check": "Sichtprüfung",
    "inspection_action": "Prüfhandlung",
    "measurement": "Messung",
    "functional_test": "Funktionsprüfung",
}

_CREW_ROLES = {
    "driver": "Fahrer",
    "commander": "Kommandant",
    "gunner": "Richtschütze",
    "loader": "Ladeschütze",
}

_CATEGORIES = {
    "powertrain": "Antriebsstrang",
    "turret": "Turm",
    "hull": "Wanne",
    "electronics": "Elektronik",
    "armament": "Bewaffnung",
}

_SPEC_KEYS = {
    "type": "Typ",
    "model": "Modell",
    "displacement_l": "Hubraum (Liter)",
    "power_hp": "Leistung (PS)",
    "power_kw": "Leistung (kW)",
    "cylinders": "Zylinder",
    "cooling": "Kühlung",
    "max_rpm": "Max. Drehzahl",
    "idle_rpm": "Leerlaufdrehzahl",
    "oil_capacity_l": "Ölkapazität (Liter)",
    "weight_kg": "Gewicht (kg)",
    "gears_forward": "Vorwärtsgänge",
    "gears_reverse": "Rückwärtsgänge",
    "rotation_speed": "Drehgeschwindigkeit",
    "traverse_range": "Schwenkbereich",
    "elevation_range": "Höhenrichtbereich",
}


def _range(low: Any, high: Any) -> str:
    return f"{'-' if low is None else low} bis {'-' if high is None else high}"


def checkpoint_to_text(section: dict, checkpoint: dict) -> str:
    """Core checkpoint information as German prose."""
    expected = checkpoint["expected_value"]
    expected_text = expected if isinstance(expected, str) else expected["description"]
    lines = [
        f"Sektion {section['id']}: {section['name']}",
        f"Prüfpunkt {checkpoint['number']}: {checkpoint['name']}",
        "",
        f"Beschreibung: {checkpoint['description']}",
        f"Prüfungsart: {_CHECKPOINT_TYPES.get(checkpoint['type'], checkpoint['type'])}",
        f"Erwartetes Ergebnis: {expected_text}",
    ]
    if isinstance(expected, dict) and expected.get("unit"):
        lines.append(f"Normalbereich: {_range(expected.get('min'), expected.get('max'))} {expected['unit']}")
    lines.extend([
        f"Benötigte Werkzeuge: {', '.join(checkpoint['tools_required']) or 'Keine'}",
        f"Geschätzte Dauer: {checkpoint['estimated_time_min']} Minuten",
        f"Verantwortlich: {_CREW_ROLES.get(checkpoint['responsible_role'], checkpoint['responsible_role'])}",
    ])
    if checkpoint.get("tasks"):
        lines.extend(["", "Arbeitsschritte:"])
        lines.extend(f"{t['step']}. {t['description']}" for t in checkpoint["tasks"])
    return "\n".join(lines).strip()


def checkpoint_defects_to_text(section: dict, checkpoint: dict) -> List[str]:
    """One German text per documented defect of a checkpoint."""
    texts = []
    for defect in checkpoint.get("common_defects", []):
        priority = DefectTaxonomy.PRIORITIES[defect["priority"]]["name_de"]
        lines = [
            f"Häufiger Mangel bei Prüfpunkt {checkpoint['number']} ({checkpoint['name']}):",
            f"Sektion: {section['name']}",
            "",
            f"Mangel: {defect['description']}",
            f"Priorität: {priority}",
            "",
            "Anzeichen:",
            *[f"- {i}" for i in defect["indicators"]],
            "",
            f"Erforderliche Maßnahme: {defect['action']}",
        ]
        texts.append("\n".join(lines).strip())
    return texts


def component_specs_to_text(component: ComponentRecord) -> str:
    lines = [
        f"Komponente: {component.name}",
        f"Kategorie: {_CATEGORIES.get(component.category, component.category)}",
        "",
        "Technische Daten:",
    ]
    for key, value in component.specs.items():
        lines.append(f"{_SPEC_KEYS.get(key, key)}: {value}")
    if component.maintenance_schedule:
        lines.extend(["", "Wartungsplan:"])
        lines.extend(
            f"- {t.task} ({t.interval}, {t.level})" for t in component.maintenance_schedule
        )
    if component.notes:
        lines.extend(["", component.notes])
    return "\n".join(lines).strip()


def monitoring_points_to_text(component: ComponentRecord) -> List[str]:
    texts = []
    for point in component.monitoring_points:
        lines = [
            f"Überwachungsparameter für {component.name}: {point.name}",
            f"Einheit: {point.unit}",
            f"Normalbereich: {_range(point.normal_min, point.normal_max)} {point.unit}",
        ]
        if point.critical_min is not None or point.critical_max is not None:
            lines.append(
                f"Kritischer Grenzwert: {'-' if point.critical_min is None else point.critical_min}"
                f" / {'-' if point.critical_max is None else point.critical_max} {point.unit}"
            )
        texts.append("\n".join(lines))
    return texts


def component_failures_to_text(component: ComponentRecord) -> List[str]:
    texts = []
    for failure in component.common_failures:
        lines = [
            f"Häufiger Ausfall bei {component.name}: {failure.name}",
            f"MTBF: {failure.mtbf_hours or 'unbekannt'} Betriebsstunden",
            "",
            "Symptome:",
            *[f"- {s}" for s in failure.symptoms],
        ]
        if failure.cause:
            lines.extend(["", f"Ursache: {failure.cause}"])
        texts.append("\n".join(lines).strip())
    return texts


def defect_priority_to_text(level: str, priority: dict) -> str:
    lines = [
        f"Mangelpriorität: {priority['name_de']} ({priority['name_en']})",
        f"Level: {level}",
        "",
        f"Reaktionszeit: {priority['response_time']}",
        f"Fahrzeugstatus: {priority['vehicle_status']}",
        f"Eskalation: {priority['escalation']}",
        "",
        "Beispiele:",
        *[f"- {ex}" for ex in priority.get("examples", [])],
        "",
        f"Keywords: {', '.join(priority['keywords'])}",
    ]
    return "\n".join(lines).strip()


def _format_trigger(trigger: dict) -> str:
    if trigger["type"] == "operating_hours":
        return f"alle {trigger['value']} Betriebsstunden"
    if trigger["type"] == "calendar":
        return f"alle {trigger['value']} Tage"
    return {
        "before_after_operation": "vor und nach jedem Betrieb",
        "before_deployment": "vor jedem Einsatz",
        "after_deployment": "nach jedem Einsatz",
    }.get(trigger["value"], str(trigger["value"]))


def maintenance_interval_to_text(interval: dict) -> str:
    executor = ResolutionTables.EXECUTOR_DESCRIPTIONS.get(interval["executor"], {})
    lines = [
        f"Wartungsintervall: {interval['name']}",
        f"Level: {interval['level']}",
        f"Ausführung: {executor.get('de', interval['executor'])}",
        f"Dauer: {interval['duration']}",
        "",
        f"Auslöser: {_format_trigger(interval['trigger'])}",
        "",
        "Aufgaben:",
        *[f"- {task}" for task in interval["tasks"]],
    ]
    if interval.get("notes"):
        lines.extend(["", interval["notes"]])
    return "\n".join(lines).strip()


# =============================================================================
# Chunk Preparation
# =============================================================================

@dataclass
class KnowledgeChunk:
    """One text chunk ready for embedding, with its index metadata."""
    id: str
    text: str
    metadata: Dict[str, Any]

    @property
    def data_type(self) -> str:
        return self.metadata["data_type"]


def _clean(metadata: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in metadata.items() if v is not None}


def prepare_checkpoint_chunks(vehicle_type: str = "leopard2") -> List[KnowledgeChunk]:
    chunks = []
    for section in INSPECTION_SECTIONS:
        for checkpoint in section["checkpoints"]:
            base = {
                "vehicle_type": vehicle_type,
                "section_id": section["id"],
                "section_name": section["name"],
                "checkpoint_number": checkpoint["number"],
                "checkpoint_name": checkpoint["name"],
                "crew_role": checkpoint["responsible_role"],
                "estimated_time_min": checkpoint["estimated_time_min"],
                "maintenance_level": checkpoint.get("maintenance_level"),
                "component_id": checkpoint.get("component_id"),
            }
            text = checkpoint_to_text(section, checkpoint)
            chunks.append(KnowledgeChunk(
                id=f"checkpoint:{section['id']}:{checkpoint['number']}",
                text=text,
                metadata=_clean({**base, "text": text, "data_type": "checkpoint"}),
            ))
            defects = checkpoint.get("common_defects", [])
            for i, (defect, text) in enumerate(zip(defects, checkpoint_defects_to_text(section, checkpoint))):
                chunks.append(KnowledgeChunk(
                    id=f"defect:{section['id']}:{checkpoint['number']}:{i}",
                    text=text,
                    metadata=_clean({
                        **base, "text": text, "data_type": "defect",
                        "priority": defect["priority"],
                    }),
                ))
    return chunks


def prepare_component_chunks(components: Iterable[ComponentRecord] = COMPONENTS,
                             vehicle_type: str = "leopard2") -> List[KnowledgeChunk]:
    chunks = []
    for component in components:
        base = {
            "vehicle_type": vehicle_type,
            "section_id": component.category.upper(),
            "section_name": _CATEGORIES.get(component.category, component.category),
            "component_id": component.id,
            "data_type": "component",
        }
        text = component_specs_to_text(component)
        chunks.append(KnowledgeChunk(
            id=f"component:{component.id}:specs",
            text=text,
            metadata={
                **base, "text": text, "chunk_kind": "specs",
                "payload": json.dumps(component.to_dict(), ensure_ascii=False),
            },
        ))
        for i, text in enumerate(monitoring_points_to_text(component)):
            chunks.append(KnowledgeChunk(
                id=f"component:{component.id}:monitoring:{i}",
                text=text,
                metadata={**base, "text": text, "chunk_kind": "monitoring"},
            ))
        for failure, text in zip(component.common_failures, component_failures_to_text(component)):
            chunks.append(KnowledgeChunk(
                id=f"component:{component.id}:failure:{failure.id}",
                text=text,
                metadata={**base, "text": text, "chunk_kind": "failure"},
            ))
    return chunks


def prepare_taxonomy_chunks(vehicle_type: str = "leopard2") -> List[KnowledgeChunk]:
    chunks = []
    for level, priority in DefectTaxonomy.PRIORITIES.items():
        text = defect_priority_to_text(level, priority)
        chunks.append(KnowledgeChunk(
            id=f"taxonomy:{level}",
            text=text,
            metadata={
                "vehicle_type": vehicle_type,
                "section_id": "DEFECT",
                "section_name": "Mängelklassifizierung",
                "priority": level,
                "data_type": "defect",
                "text": text,
            },
        ))
    return chunks


def prepare_interval_chunks(vehicle_type: str = "leopard2") -> List[KnowledgeChunk]:
    chunks = []
    for interval in MAINTENANCE_INTERVALS:
        text = maintenance_interval_to_text(interval)
        chunks.append(KnowledgeChunk(
            id=f"interval:{interval['id']}",
            text=text,
            metadata={
                "vehicle_type": vehicle_type,
                "section_id": "MAINTENANCE",
                "section_name": interval["name"],
                "maintenance_level": interval["level"],
                "data_type": "interval",
                "text": text,
            },
        ))
    return chunks


def prepare_all_chunks(vehicle_type: str = "leopard2") -> List[KnowledgeChunk]:
    return (
        prepare_checkpoint_chunks(vehicle_type)
        + prepare_component_chunks(COMPONENTS, vehicle_type)
        + prepare_taxonomy_chunks(vehicle_type)
        + prepare_interval_chunks(vehicle_type)
    )


# =============================================================================
# Seeding
# =============================================================================

@dataclass
class SeedResult:
    """Outcome of a seeding run."""
    index_name: str
    chunks_by_type: Dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def total_chunks(self) -> int:
        return sum(self.chunks_by_type.values())

    def to_dict(self) -> dict:
        d = asdict(self)
        d["total_chunks"] = self.total_chunks
        return d


class KnowledgeSeeder:
    """
    Embeds catalog chunks and upserts them into the vector index.

    Embedding runs in a bounded thread pool with a progress bar.  Once the
    index has been written to (successfully or not) both retrieval caches
    are cleared, since cached results may describe the previous contents.
    """

    def __init__(
        self,
        config: InspectdxConfig,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        caches: Iterable[QueryCache] = (),
    ):
        self._config = config
        self.embedder = embedder
        self.index = index
        self.caches = list(caches)

    def _embed_all(self, chunks: List[KnowledgeChunk], show_progress: bool) -> List[List[float]]:
        """Embed every chunk; the first failure cancels the embeds not yet started."""
        vectors: List[Optional[List[float]]] = [None] * len(chunks)
        executor = ThreadPoolExecutor(max_workers=self._config.max_concurrent_requests)
        try:
            with tqdm(total=len(chunks), desc="Embedding chunks", unit="chunk",
                      disable=not show_progress) as pbar:
                futures = {
                    executor.submit(self.embedder.embed, chunk.text): i
                    for i, chunk in enumerate(chunks)
                }
                for future, i in futures.items():
                    try:
                        vectors[i] = future.result()
                    except Exception as exc:
                        executor.shutdown(wait=False, cancel_futures=True)
                        raise SeedError(
                            f"Embedding failed for chunk '{chunks[i].id}': {exc}"
                        ) from exc
                    pbar.update(1)
        finally:
            executor.shutdown(wait=True)
        return vectors

    def seed(
        self,
        chunks: Optional[List[KnowledgeChunk]] = None,
        *,
        reset: bool = True,
        show_progress: bool = False,
    ) -> SeedResult:
        """
        Embed and upsert *chunks* (default: the full catalog).

        All chunks are embedded before the index is touched, so a failed
        embedding run leaves the existing index and caches as they were.
        """
        cfg = self._config
        start = time.time()
        chunks = prepare_all_chunks() if chunks is None else chunks
        name = cfg.index_name

        vectors = self._embed_all(chunks, show_progress)

        try:
            self.index.create_index(name, self.embedder.dimensions)
            if reset:
                self.index.truncate_index(name)
            self.index.upsert(
                name,
                vectors=vectors,
                metadata=[c.metadata for c in chunks],
                ids=[c.id for c in chunks],
            )
        except Exception as exc:
            raise SeedError(f"Writing chunks into '{name}' failed: {exc}") from exc
        finally:
            # Index contents may have changed even when the write failed
            for cache in self.caches:
                cache.clear()

        result = SeedResult(index_name=name, elapsed_seconds=round(time.time() - start, 3))
        for chunk in chunks:
            result.chunks_by_type[chunk.data_type] = result.chunks_by_type.get(chunk.data_type, 0) + 1
        logger.info(
            f"Seeded {result.total_chunks} chunks into '{name}' "
            f"({result.chunks_by_type}) in {result.elapsed_seconds}s"
        )
        return result


# =============================================================================
# Component Lookup
# =============================================================================

class ComponentRepository:
    """Key-addressable access to full component records."""

    def get(self, component_id: str) -> Optional[ComponentRecord]:
        raise NotImplementedError


class IndexedComponentRepository(ComponentRepository):
    """Reads component records back from the component chunks in the vector index."""

    def __init__(self, retriever: SemanticRetriever):
        self.retriever = retriever

    def get(self, component_id: str) -> Optional[ComponentRecord]:
        """
        Return the record for *component_id*, or ``None`` if it is not indexed.

        Raises :class:`RetrievalUnavailableError` when the index or the
        embedding provider cannot be reached.
        """
        if not component_id:
            raise ValidationError("component_id must be non-empty")
        vector = self.retriever.embed_query(
            f"component {component_id} specifications maintenance monitoring"
        )
        try:
            matches = self.retriever.index.query(
                self.retriever.index_name,
                vector,
                top_k=5,
                filter={
                    "data_type": "component",
                    "component_id": component_id,
                    "chunk_kind": "specs",
                },
            )
        except Exception as exc:
            raise RetrievalUnavailableError(f"Component lookup failed: {exc}") from exc

        for match in matches:
            payload = match.metadata.get("payload")
            if not payload:
                continue
            try:
                return ComponentRecord.from_dict(json.loads(payload))
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning(f"Unreadable payload for component '{component_id}': {exc}")
        return None


# =============================================================================
# Maintenance Intervals
# =============================================================================

def maintenance_intervals(
    level: str | None = None,
    operating_hours: float | None = None,
    interval_id: str | None = None,
    include_tasks_in_range: bool = False,
    due_window_hours: float = 50,
) -> dict:
    """
    Filter the interval plan and, given *operating_hours*, compute what is due.

    For hour-based intervals ``hours_until_due = trigger - (hours % trigger)``
    and an interval is due within *due_window_hours*.  With
    *include_tasks_in_range*, hour-based intervals longer than the current
    operating hours are dropped.
    """
    if level is not None and level not in ResolutionTables.EXPERTISE_BY_LEVEL:
        raise ValidationError(f"Invalid maintenance level '{level}'")
    if operating_hours is not None and operating_hours < 0:
        raise ValidationError("operating_hours must not be negative")

    selected = [
        i for i in MAINTENANCE_INTERVALS
        if (interval_id is None or i["id"] == interval_id)
        and (level is None or i["level"] == level)
    ]

    processed = []
    for interval in selected:
        item = dict(interval)
        item["executor_name"] = ResolutionTables.EXECUTOR_DESCRIPTIONS.get(
            interval["executor"], {"de": interval["executor"], "en": interval["executor"]}
        )
        trigger = interval["trigger"]
        if operating_hours is not None and trigger["type"] == "operating_hours":
            hours_until_due = trigger["value"] - (operating_hours % trigger["value"])
            item["hours_until_due"] = hours_until_due
            item["is_due"] = hours_until_due <= due_window_hours
        processed.append(item)

    if operating_hours is not None and include_tasks_in_range:
        processed = [
            i for i in processed
            if i["trigger"]["type"] != "operating_hours" or i["trigger"]["value"] <= operating_hours
        ]

    summary: Dict[str, Any] = {"total_intervals": len(processed)}
    if operating_hours is not None:
        summary["due_intervals"] = sum(1 for i in processed if i.get("is_due"))
        hour_based = sorted(
            (i for i in processed if "hours_until_due" in i),
            key=lambda i: i["hours_until_due"],
        )
        if hour_based:
            summary["next_due_interval"] = hour_based[0]["id"]
            summary["hours_until_next"] = hour_based[0]["hours_until_due"]
    return {"intervals": processed, "summary": summary}
