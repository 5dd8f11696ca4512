"""
Severity Classifier Client.

Wraps the external text-classification service (an OpenAI-compatible chat
completions endpoint, Groq by default) and turns its answer into a
``SeverityAssessment``.

The service is treated as untrusted and best-effort:

1. The response is first parsed as a JSON object and validated through
   ``ClassifierResponse``.
2. If the response is not JSON at all, a numeric ``severity`` token is
   extracted from the raw text and the rest of the assessment is derived
   from the score.
3. Anything else -- no API key, network error, timeout, empty answer, a
   JSON object missing required fields, an out-of-range score -- falls
   back to the local keyword heuristic (``is_fallback=True``).

Service failures never reach the caller.  The only error ``classify`` raises
is ``InvalidInput`` for an empty description.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rehabtriage.config import DEFAULT_SETTINGS, TriageSettings
from rehabtriage.errors import ExternalServiceFailure, InvalidInput
from rehabtriage.models import CaregiverTier, SeverityAssessment, Urgency
from rehabtriage.severity import (
    heuristic_assessment,
    severity_level_for_score,
    tier_for_level,
    urgency_for_level,
)

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTIONS = """You are an expert medical professional specializing in injury assessment and triage.
Your job is to assess the severity of injuries and medical emergencies based on descriptions provided.

Assessment Scale:
- 0-5: Low severity (minor injuries, stable condition, routine care needed)
- 5-8: Moderate severity (moderate injuries, some risk, specialized care recommended)
- 8-10: Extreme severity (serious injuries, high risk, immediate intensive care required)

Provide your response in this exact JSON format and output nothing else:
{
  "severity": <number 0-10>,
  "severityLevel": "<low|moderate|extreme>",
  "riskFactors": ["<risk factor 1>", "<risk factor 2>"],
  "recommendedCare": "<care recommendation>",
  "urgency": "<low|medium|high>",
  "buddyTier": "<bronze|silver|gold>"
}

Base your assessment on:
- Type and location of injury
- Pain level and symptoms
- Risk of complications
- Need for immediate intervention
- Recovery time estimates

Be thorough but objective. Consider both immediate risks and long-term implications.
"""

_SEVERITY_TOKEN = re.compile(r'severity["\s:]+(\d+(?:\.\d+)?)', re.IGNORECASE)

UNPARSED_RISK_FACTOR = "Unable to parse specific risk factors"


class ClassifierResponse(BaseModel):
    """Expected shape of the service's JSON answer.

    ``severity`` and ``buddyTier`` are required; everything else is optional
    and may be overridden during normalisation.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    severity: float = Field(..., ge=0, le=10)
    severity_level: Optional[str] = Field(default=None, alias="severityLevel")
    risk_factors: list[str] = Field(default_factory=list, alias="riskFactors")
    recommended_care: str = Field(default="", alias="recommendedCare")
    urgency: Optional[str] = None
    buddy_tier: CaregiverTier = Field(..., alias="buddyTier")

    @field_validator("buddy_tier", mode="before")
    @classmethod
    def lowercase_tier(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("risk_factors", mode="before")
    @classmethod
    def coerce_risk_factors(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(item) for item in v] if isinstance(v, list) else v


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the outermost JSON object out of a model answer.

    Models sometimes wrap the object in a code fence or a sentence of prose.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object found in classifier response.")
    data = json.loads(text[start:end + 1])
    if not isinstance(data, dict):
        raise ValueError("Classifier response JSON is not an object.")
    return data


def extract_severity_score(text: str) -> Optional[float]:
    """Find a ``severity: <number>`` token in free text, if any."""
    match = _SEVERITY_TOKEN.search(text)
    if not match:
        return None
    return float(match.group(1))


class SeverityClassifierClient:
    """Classifies injury descriptions, with a local fallback.

    Args:
        settings: Engine settings; only ``classifier`` and ``severity`` are used.
        client: An OpenAI-compatible client exposing
            ``chat.completions.create``.  Built from settings when omitted.
    """

    def __init__(
        self,
        settings: TriageSettings | None = None,
        client: Any | None = None,
    ) -> None:
        self._settings = settings or DEFAULT_SETTINGS
        self._client = client
        if self._client is None:
            api_key = self._settings.classifier.resolved_api_key()
            if api_key:
                self._client = OpenAI(
                    api_key=api_key,
                    base_url=self._settings.classifier.base_url,
                    timeout=self._settings.classifier.timeout_seconds,
                    max_retries=self._settings.classifier.max_retries,
                )
            else:
                logger.warning(
                    "No classifier API key configured; severity assessments "
                    "will use the keyword heuristic."
                )

    @property
    def model(self) -> str:
        return self._settings.classifier.model

    def is_configured(self) -> bool:
        """Whether an external service client is available."""
        return self._client is not None

    def classify(self, description: str) -> SeverityAssessment:
        """Classify an injury description.

        Args:
            description: Free-text injury description.

        Returns:
            A ``SeverityAssessment``; ``is_fallback`` is True when the local
            heuristic produced it.

        Raises:
            InvalidInput: If the description is empty after trimming.
        """
        if not isinstance(description, str) or not description.strip():
            raise InvalidInput("No injury description provided for assessment.")
        text = description.strip()

        try:
            raw = self._request_assessment(text)
            assessment = self._parse_response(raw, text)
        except ExternalServiceFailure as exc:
            logger.warning("Severity classification failed, using heuristic: %s", exc)
            return heuristic_assessment(text, self._settings.severity)

        logger.info(
            "Classified description as %s (score=%.1f, tier=%s)",
            assessment.severity_level.value,
            assessment.severity_score,
            assessment.required_tier.value,
        )
        return assessment

    # -- service call --

    def _request_assessment(self, description: str) -> str:
        """Call the service and return its raw text answer."""
        if self._client is None:
            raise ExternalServiceFailure("Classification service is not configured.")

        cfg = self._settings.classifier
        try:
            resp = self._client.chat.completions.create(
                model=cfg.model,
                messages=[
                    {"role": "system", "content": SYSTEM_INSTRUCTIONS},
                    {
                        "role": "user",
                        "content": (
                            "Please assess the severity of this injury/medical "
                            f"condition:\n\n{description}"
                        ),
                    },
                ],
                temperature=cfg.temperature,
                max_tokens=cfg.max_tokens,
                top_p=1,
                stream=False,
            )
        except (OpenAIError, TimeoutError, ConnectionError) as exc:
            raise ExternalServiceFailure(f"Classification service call failed: {exc}") from exc

        choices = getattr(resp, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ExternalServiceFailure("Classification service returned no content.")
        return content

    # -- parsing --

    def _parse_response(self, raw: str, description: str) -> SeverityAssessment:
        try:
            data = extract_json_object(raw)
        except ValueError:
            # json.JSONDecodeError is a ValueError.
            return self._parse_severity_token(raw, description)

        try:
            parsed = ClassifierResponse.model_validate(data)
        except ValidationError as exc:
            raise ExternalServiceFailure(
                f"Classifier response failed validation: {exc.error_count()} error(s)"
            ) from exc
        return self._normalise(parsed, description)

    def _parse_severity_token(self, raw: str, description: str) -> SeverityAssessment:
        score = extract_severity_score(raw)
        if score is None:
            raise ExternalServiceFailure("Classifier response contained no severity score.")
        if not 0 <= score <= 10:
            raise ExternalServiceFailure(f"Classifier severity {score} is outside 0-10.")

        level = severity_level_for_score(score, self._settings.severity)
        logger.info("Classifier answer was not JSON; recovered severity %.1f from text.", score)
        return SeverityAssessment(
            severity_score=score,
            severity_level=level,
            urgency=urgency_for_level(level),
            risk_factors=[UNPARSED_RISK_FACTOR],
            recommended_care="Standard care based on severity level",
            required_tier=tier_for_level(level),
            is_fallback=False,
            model=self.model,
            description=description,
        )

    def _normalise(self, parsed: ClassifierResponse, description: str) -> SeverityAssessment:
        level = severity_level_for_score(parsed.severity, self._settings.severity)
        tier = tier_for_level(level)

        if parsed.buddy_tier != tier or (
            parsed.severity_level and parsed.severity_level.strip().lower() != level.value
        ):
            logger.warning(
                "Classifier reported level=%s tier=%s for score %.1f; using %s/%s.",
                parsed.severity_level,
                parsed.buddy_tier.value,
                parsed.severity,
                level.value,
                tier.value,
            )

        try:
            urgency = Urgency((parsed.urgency or "").strip().lower())
        except ValueError:
            urgency = urgency_for_level(level)

        return SeverityAssessment(
            severity_score=parsed.severity,
            severity_level=level,
            urgency=urgency,
            risk_factors=parsed.risk_factors,
            recommended_care=parsed.recommended_care,
            required_tier=tier,
            is_fallback=False,
            model=self.model,
            description=description,
        )
