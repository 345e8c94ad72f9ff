"""
InspectDx Defect Classifier

Keyword-taxonomy matcher: assigns a defect priority (with response time,
vehicle status and escalation path), an optional defect category, and a
priority-keyed list of recommended actions.
"""

import logging
from typing import List, Optional, Tuple

from inspectdx.core.config import DefectTaxonomy
from inspectdx.core.engine import DefectCategoryMatch, DefectClassification, DefectPriority
from inspectdx.exceptions import UnknownPriorityLevelError, ValidationError

logger = logging.getLogger(__name__)


class DefectClassifier:
    """
    Classify free-text defect descriptions against :class:`DefectTaxonomy`.

    Priorities are tried in taxonomy order (critical first); the first
    level with at least one case-insensitive substring hit wins.  Category
    resolution is an independent pass over the same text.
    """

    def __init__(self, taxonomy: type[DefectTaxonomy] = DefectTaxonomy):
        self.taxonomy = taxonomy

    def get_priority_details(self, level: str) -> dict:
        """Static record for *level*; raises :class:`UnknownPriorityLevelError`."""
        try:
            return self.taxonomy.PRIORITIES[level]
        except KeyError:
            raise UnknownPriorityLevelError(level) from None

    def match_priority(self, text: str) -> Tuple[str, List[str]]:
        lowered = text.lower()
        for level, details in self.taxonomy.PRIORITIES.items():
            matched = [kw for kw in details["keywords"] if kw in lowered]
            if matched:
                return level, matched
        return self.taxonomy.NO_MATCH_PRIORITY, []

    def match_category(self, text: str) -> Optional[DefectCategoryMatch]:
        lowered = text.lower()
        for cat_id, cat in self.taxonomy.CATEGORIES.items():
            candidates = [term.replace("_", " ") for term in cat["subcategories"]]
            candidates.append(cat["name"].lower())
            for term in candidates:
                if term in lowered:
                    return DefectCategoryMatch(
                        id=cat_id, name=cat["name"], name_en=cat["name_en"], matched_term=term,
                    )
        return None

    def recommendations(
        self,
        level: str,
        component_id: str | None = None,
        checkpoint_number: int | None = None,
    ) -> List[str]:
        recs = list(self.taxonomy.RECOMMENDATIONS.get(level, []))
        if component_id:
            recs.append(self.taxonomy.COMPONENT_NOTES[level].format(component=component_id))
        if checkpoint_number is not None:
            recs.append(self.taxonomy.CHECKPOINT_NOTES[level].format(checkpoint=checkpoint_number))
        return recs

    def classify(
        self,
        description: str,
        component_id: str | None = None,
        checkpoint_number: int | None = None,
    ) -> DefectClassification:
        """
        Classify *description*.

        No keyword hit defaults to ``low`` with confidence 0.1; otherwise
        confidence is ``min(1, matches * 0.3)``.

        Raises:
            ValidationError: *description* is empty.
            UnknownPriorityLevelError: the resolved level is missing from
                the taxonomy (corrupted table).
        """
        if not description or not description.strip():
            raise ValidationError("description must be a non-empty string")

        level, matched = self.match_priority(description)
        details = self.get_priority_details(level)
        if matched:
            confidence = round(min(1.0, len(matched) * self.taxonomy.CONFIDENCE_PER_MATCH), 2)
        else:
            confidence = self.taxonomy.NO_MATCH_CONFIDENCE

        result = DefectClassification(
            priority=DefectPriority(level),
            priority_name_local=details["name_de"],
            priority_name_en=details["name_en"],
            response_time=details["response_time"],
            vehicle_status=details["vehicle_status"],
            escalation=details["escalation"],
            color=details["color"],
            matched_keywords=tuple(matched),
            confidence=confidence,
            recommendations=tuple(self.recommendations(level, component_id, checkpoint_number)),
            category=self.match_category(description),
        )
        logger.debug(f"Classified as {level} (matched={matched}, confidence={confidence})")
        return result
