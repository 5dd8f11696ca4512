"""
Tests for rehabtriage.classifier -- Severity Classifier Client.

The classification service is simulated with a fake chat-completions client;
no network calls are made.

Covers: JSON parsing, fenced and prose-wrapped JSON, derivation of level and
tier from the score, the regex path for non-JSON answers, every fallback
trigger, and input validation.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from openai import OpenAIError

from rehabtriage.classifier import (
    UNPARSED_RISK_FACTOR,
    ClassifierResponse,
    SeverityClassifierClient,
    extract_json_object,
    extract_severity_score,
)
from rehabtriage.config import ClassifierSettings, TriageSettings
from rehabtriage.errors import InvalidInput
from rehabtriage.models import CaregiverTier, SeverityLevel, Urgency
from rehabtriage.severity import FALLBACK_RISK_FACTOR, HEURISTIC_MODEL_NAME


class _FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _FakeClient:
    def __init__(self, content=None, error=None):
        self.completions = _FakeCompletions(content=content, error=error)
        self.chat = SimpleNamespace(completions=self.completions)


def _make_classifier(content=None, error=None) -> tuple[SeverityClassifierClient, _FakeClient]:
    client = _FakeClient(content=content, error=error)
    return SeverityClassifierClient(client=client), client


_GOOD_JSON = """{
  "severity": 6.5,
  "severityLevel": "moderate",
  "riskFactors": ["Possible ligament tear", "Limited mobility"],
  "recommendedCare": "Physiotherapy and rest",
  "urgency": "medium",
  "buddyTier": "silver"
}"""


# ---------------------------------------------------------------------------
# 1. Well-formed service answers
# ---------------------------------------------------------------------------

class TestServiceAnswer:
    def test_json_answer_is_parsed(self):
        classifier, _ = _make_classifier(_GOOD_JSON)
        result = classifier.classify("Sprained knee after a fall")

        assert result.severity_score == 6.5
        assert result.severity_level == SeverityLevel.MODERATE
        assert result.required_tier == CaregiverTier.SILVER
        assert result.urgency == Urgency.MEDIUM
        assert result.risk_factors == ["Possible ligament tear", "Limited mobility"]
        assert result.recommended_care == "Physiotherapy and rest"
        assert result.is_fallback is False
        assert result.model == "llama3-8b-8192"

    def test_fenced_json_is_parsed(self):
        classifier, _ = _make_classifier(f"Here is my assessment:\n```json\n{_GOOD_JSON}\n```")
        result = classifier.classify("Sprained knee after a fall")
        assert result.severity_score == 6.5
        assert result.is_fallback is False

    def test_level_and_tier_derived_from_score(self):
        answer = (
            '{"severity": 9, "severityLevel": "low", "urgency": "high", '
            '"buddyTier": "bronze", "riskFactors": [], "recommendedCare": ""}'
        )
        classifier, _ = _make_classifier(answer)
        result = classifier.classify("Unresponsive after a fall")
        assert result.severity_level == SeverityLevel.EXTREME
        assert result.required_tier == CaregiverTier.GOLD

    def test_invalid_urgency_is_derived(self):
        answer = '{"severity": 2, "urgency": "whenever", "buddyTier": "Bronze"}'
        classifier, _ = _make_classifier(answer)
        result = classifier.classify("Paper cut")
        assert result.urgency == Urgency.LOW

    def test_reported_urgency_is_kept(self):
        answer = '{"severity": 2, "urgency": "HIGH", "buddyTier": "bronze"}'
        classifier, _ = _make_classifier(answer)
        result = classifier.classify("Paper cut")
        assert result.urgency == Urgency.HIGH

    def test_request_shape(self):
        classifier, client = _make_classifier(_GOOD_JSON)
        classifier.classify("  Sprained knee  ")

        call = client.completions.calls[0]
        assert call["model"] == "llama3-8b-8192"
        assert call["stream"] is False
        assert call["messages"][0]["role"] == "system"
        assert call["messages"][1]["content"].endswith("Sprained knee")

    def test_description_is_trimmed_on_result(self):
        classifier, _ = _make_classifier(_GOOD_JSON)
        result = classifier.classify("  Sprained knee  ")
        assert result.description == "Sprained knee"


# ---------------------------------------------------------------------------
# 2. Non-JSON answers
# ---------------------------------------------------------------------------

class TestSeverityTokenRecovery:
    def test_severity_token_in_prose(self):
        classifier, _ = _make_classifier("I would rate the severity: 7 out of 10.")
        result = classifier.classify("Deep cut on the hand")

        assert result.severity_score == 7
        assert result.severity_level == SeverityLevel.MODERATE
        assert result.required_tier == CaregiverTier.SILVER
        assert result.risk_factors == [UNPARSED_RISK_FACTOR]
        assert result.is_fallback is False

    def test_prose_without_score_falls_back(self):
        classifier, _ = _make_classifier("I cannot assess this injury.")
        result = classifier.classify("Minor bruise")
        assert result.is_fallback is True
        assert result.model == HEURISTIC_MODEL_NAME

    def test_out_of_range_token_falls_back(self):
        classifier, _ = _make_classifier("severity: 42")
        result = classifier.classify("Minor bruise")
        assert result.is_fallback is True


# ---------------------------------------------------------------------------
# 3. Fallback triggers
# ---------------------------------------------------------------------------

class TestFallback:
    def test_service_error_uses_heuristic(self):
        classifier, _ = _make_classifier(error=OpenAIError("boom"))
        result = classifier.classify("Patient has a fracture")

        assert result.is_fallback is True
        assert result.severity_level == SeverityLevel.EXTREME
        assert result.required_tier == CaregiverTier.GOLD
        assert FALLBACK_RISK_FACTOR in result.risk_factors

    def test_timeout_uses_heuristic(self):
        classifier, _ = _make_classifier(error=TimeoutError("slow"))
        result = classifier.classify("Minor scrape")
        assert result.is_fallback is True
        assert result.required_tier == CaregiverTier.BRONZE

    def test_empty_answer_uses_heuristic(self):
        classifier, _ = _make_classifier("   ")
        assert classifier.classify("Minor scrape").is_fallback is True

    def test_missing_required_field_uses_heuristic(self):
        classifier, _ = _make_classifier('{"severityLevel": "low", "urgency": "low"}')
        assert classifier.classify("Minor scrape").is_fallback is True

    def test_out_of_range_json_score_uses_heuristic(self):
        classifier, _ = _make_classifier('{"severity": 15, "buddyTier": "gold"}')
        assert classifier.classify("Minor scrape").is_fallback is True

    def test_unknown_tier_uses_heuristic(self):
        classifier, _ = _make_classifier('{"severity": 4, "buddyTier": "platinum"}')
        assert classifier.classify("Minor scrape").is_fallback is True

    def test_no_api_key_uses_heuristic(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        classifier = SeverityClassifierClient()
        assert classifier.is_configured() is False

        result = classifier.classify("Severe pain in the lower back")
        assert result.is_fallback is True
        assert result.required_tier == CaregiverTier.GOLD


# ---------------------------------------------------------------------------
# 4. Input validation and construction
# ---------------------------------------------------------------------------

class TestInputValidation:
    @pytest.mark.parametrize("description", ["", "   ", "\n\t"])
    def test_blank_description_rejected(self, description):
        classifier, client = _make_classifier(_GOOD_JSON)
        with pytest.raises(InvalidInput):
            classifier.classify(description)
        assert client.completions.calls == []

    def test_non_string_description_rejected(self):
        classifier, _ = _make_classifier(_GOOD_JSON)
        with pytest.raises(InvalidInput):
            classifier.classify(None)  # type: ignore[arg-type]


class TestConstruction:
    def test_api_key_from_settings_builds_client(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        settings = TriageSettings(classifier=ClassifierSettings(api_key="test-key"))
        assert SeverityClassifierClient(settings).is_configured() is True

    def test_api_key_from_environment_builds_client(self, monkeypatch):
        monkeypatch.setenv("GROQ_API_KEY", "env-key")
        assert SeverityClassifierClient().is_configured() is True

    def test_model_name_from_settings(self):
        settings = TriageSettings(classifier=ClassifierSettings(model="custom-model"))
        classifier = SeverityClassifierClient(settings, client=_FakeClient(_GOOD_JSON))
        assert classifier.classify("Sprain").model == "custom-model"


# ---------------------------------------------------------------------------
# 5. Parsing helpers
# ---------------------------------------------------------------------------

class TestParsingHelpers:
    def test_extract_json_object_from_prose(self):
        assert extract_json_object('Sure! {"severity": 3} Hope this helps.') == {"severity": 3}

    def test_extract_json_object_without_braces(self):
        with pytest.raises(ValueError):
            extract_json_object("no json here")

    def test_extract_severity_score(self):
        assert extract_severity_score('"severity": 8.5') == 8.5
        assert extract_severity_score("Severity 4") == 4
        assert extract_severity_score("no score") is None

    def test_response_model_accepts_aliases(self):
        parsed = ClassifierResponse.model_validate(
            {"severity": 1, "buddyTier": " GOLD ", "riskFactors": "single factor"}
        )
        assert parsed.buddy_tier == CaregiverTier.GOLD
        assert parsed.risk_factors == ["single factor"]
