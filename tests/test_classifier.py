"""
Tests for inspectdx.core.classifier — DefectClassifier.
"""

import pytest

from inspectdx.core.classifier import DefectClassifier
from inspectdx.core.config import DefectTaxonomy
from inspectdx.core.engine import DefectPriority
from inspectdx.exceptions import UnknownPriorityLevelError, ValidationError


@pytest.fixture
def classifier():
    return DefectClassifier()


class TestPriorityMatching:
    """Priority is the first level (critical → info) with a keyword hit."""

    def test_critical_keywords(self, classifier):
        result = classifier.classify("ausfall motor kritisch")
        assert result.priority is DefectPriority.CRITICAL
        assert set(result.matched_keywords) == {"ausfall", "kritisch"}
        assert result.confidence == 0.6
        assert result.response_time == "sofort"
        assert result.priority_name_local == "KRITISCH"

    def test_low_keywords(self, classifier):
        result = classifier.classify("leichte kosmetische Lackabnutzung")
        assert result.priority is DefectPriority.LOW
        assert "leicht" in result.matched_keywords

    def test_no_keywords_defaults_to_low(self, classifier):
        result = classifier.classify("irrelevant text with no keywords")
        assert result.priority is DefectPriority.LOW
        assert result.matched_keywords == ()
        assert result.confidence == 0.1

    def test_higher_level_wins_over_lower(self, classifier):
        result = classifier.classify("leichte Leckage am Schlauch")
        assert result.priority is DefectPriority.HIGH
        assert result.matched_keywords == ("leckage",)

    def test_matching_is_case_insensitive(self, classifier):
        assert classifier.classify("KETTENGLIED GERISSEN").priority is DefectPriority.HIGH

    def test_confidence_is_capped(self, classifier):
        text = "ausfall blockiert kritisch sofort gefahr feuer"
        assert classifier.classify(text).confidence == 1.0

    @pytest.mark.parametrize("text", [
        "kein befund",
        "Totalausfall der Bremse",
        "Öltemperatur leicht erhöht",
        "Hinweis: Filterwechsel steht an",
    ])
    def test_confidence_within_bounds(self, classifier, text):
        assert 0.0 <= classifier.classify(text).confidence <= 1.0

    def test_empty_description_rejected(self, classifier):
        with pytest.raises(ValidationError):
            classifier.classify("  ")


class TestPriorityDetails:
    """Static priority records."""

    def test_known_level(self, classifier):
        details = classifier.get_priority_details("high")
        assert details["name_en"] == "HIGH"

    def test_unknown_level_raises(self, classifier):
        with pytest.raises(UnknownPriorityLevelError):
            classifier.get_priority_details("urgent")

    def test_unknown_level_is_a_key_error(self, classifier):
        with pytest.raises(KeyError):
            classifier.get_priority_details("urgent")


class TestCategoryAndRecommendations:
    """Category pass and recommendation lists."""

    def test_category_from_subcategory(self, classifier):
        result = classifier.classify("Kurzschluss am Batteriekabel")
        assert result.category.id == "electrical"
        assert result.category.matched_term == "kurzschluss"

    def test_first_category_in_table_order_wins(self, classifier):
        # "kabelbruch" contains the mechanical term "bruch"
        result = classifier.classify("Kabelbruch am Batteriekabel")
        assert result.category.id == "mechanical"
        assert result.category.matched_term == "bruch"

    def test_underscored_subcategory_matches_spaced_text(self, classifier):
        result = classifier.classify("Ventil defekt am Hydraulikblock")
        assert result.category.id == "hydraulic"
        assert result.category.matched_term == "ventil defekt"

    def test_no_category(self, classifier):
        assert classifier.classify("alles in Ordnung").category is None

    def test_recommendations_follow_priority(self, classifier):
        result = classifier.classify("Turmdrehkranz blockiert")
        assert result.recommendations == tuple(DefectTaxonomy.RECOMMENDATIONS["critical"])

    def test_component_and_checkpoint_notes_appended(self, classifier):
        result = classifier.classify("Kettenglied gerissen", component_id="renk_hswl354", checkpoint_number=5)
        base = DefectTaxonomy.RECOMMENDATIONS["high"]
        assert result.recommendations[:len(base)] == tuple(base)
        assert result.recommendations[-2] == "Komponente renk_hswl354 vor Freigabe prüfen"
        assert result.recommendations[-1] == "Prüfpunkt 5 nach Reparatur erneut prüfen"

    def test_to_dict_is_plain(self, classifier):
        d = classifier.classify("Kettenglied gerissen").to_dict()
        assert d["priority"] == "high"
        assert isinstance(d["recommendations"], list)
