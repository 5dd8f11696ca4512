"""
Engine configuration.

Settings are pydantic models so that a bad configuration fails loudly at
load time rather than mid-triage.  They can be built in code or loaded from
a YAML file with a top-level ``triage`` key::

    triage:
      log_level: INFO
      classifier:
        model: "llama3-8b-8192"
        timeout_seconds: 8
      severity:
        high_severity_keywords: ["bleeding", "fracture", "unconscious"]
      assignment:
        enforce_capacity: false

The classifier API key is never required in the file; when it is absent the
``GROQ_API_KEY`` environment variable is used, and when that is absent too
the classifier runs on the local heuristic only.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator


API_KEY_ENV_VAR = "GROQ_API_KEY"


# ---------------------------------------------------------------------------
# Classifier settings
# ---------------------------------------------------------------------------

class ClassifierSettings(BaseModel):
    """Connection settings for the external classification service.

    Any OpenAI-compatible chat completions endpoint works; the default points
    at Groq.
    """

    base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        min_length=1,
        description="Base URL of the OpenAI-compatible endpoint.",
    )
    model: str = Field(
        default="llama3-8b-8192",
        min_length=1,
        description="Model used for severity classification.",
    )
    api_key: Optional[str] = Field(
        default=None,
        description=f"API key.  Falls back to the {API_KEY_ENV_VAR} environment variable.",
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound on a single classification call.  Timeouts use the heuristic.",
    )
    max_retries: int = Field(
        default=0,
        ge=0,
        description="SDK-level retries.  Kept at 0 so the timeout bound holds.",
    )
    temperature: float = Field(default=0.2, ge=0, le=2)
    max_tokens: int = Field(default=800, gt=0)

    def resolved_api_key(self) -> Optional[str]:
        return self.api_key or os.environ.get(API_KEY_ENV_VAR) or None


# ---------------------------------------------------------------------------
# Severity thresholds
# ---------------------------------------------------------------------------

class SeverityThresholds(BaseModel):
    """Score bands and heuristic keyword lists.

    ``low_max`` and ``moderate_max`` are inclusive upper bounds: a score of
    exactly 5 is low, exactly 8 is moderate.
    """

    low_max: float = Field(default=5.0, ge=0, le=10)
    moderate_max: float = Field(default=8.0, ge=0, le=10)
    high_severity_keywords: list[str] = Field(
        default_factory=lambda: [
            "bleeding",
            "fracture",
            "head injury",
            "head trauma",
            "chest pain",
            "unconscious",
            "severe pain",
        ],
        description="Terms that push the heuristic to extreme severity.",
    )
    low_severity_keywords: list[str] = Field(
        default_factory=lambda: ["minor", "scrape", "bruise", "slight", "mild"],
        description="Terms that pull the heuristic to low severity.",
    )

    @field_validator("moderate_max")
    @classmethod
    def moderate_above_low(cls, v: float, info) -> float:
        low = info.data.get("low_max")
        if low is not None and v < low:
            raise ValueError(f"moderate_max ({v}) must be >= low_max ({low})")
        return v

    @field_validator("high_severity_keywords", "low_severity_keywords")
    @classmethod
    def lowercase_keywords(cls, v: list[str]) -> list[str]:
        return [kw.strip().lower() for kw in v if kw.strip()]


# ---------------------------------------------------------------------------
# Assignment settings
# ---------------------------------------------------------------------------

class AssignmentSettings(BaseModel):
    enforce_capacity: bool = Field(
        default=False,
        description=(
            "Exclude caregivers whose active caseload has reached max_patients. "
            "Off by default: max_patients is informational."
        ),
    )
    max_attempts: int = Field(
        default=10,
        ge=1,
        description=(
            "Optimistic compare-and-set attempts before the assignment falls back "
            "to a serialized selection under the candidates' locks."
        ),
    )
    lock_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Wait for the candidates' locks before giving up with AssignmentConflict.",
    )


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class TriageSettings(BaseModel):
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    severity: SeverityThresholds = Field(default_factory=SeverityThresholds)
    assignment: AssignmentSettings = Field(default_factory=AssignmentSettings)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.upper()
        if level not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}, got '{v}'")
        return level


DEFAULT_SETTINGS = TriageSettings()
"""Built-in defaults: Groq endpoint, 10 second timeout, advisory capacity."""


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------

def load_settings_from_yaml(path: str | Path) -> TriageSettings:
    """Load engine settings from a YAML file.

    Args:
        path: Path to the YAML file.

    Returns:
        A validated ``TriageSettings`` instance.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file has no top-level ``triage`` mapping.
        pydantic.ValidationError: If any setting fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or "triage" not in raw:
        raise ValueError("YAML file must contain a top-level 'triage' key.")

    section = raw["triage"] or {}
    if not isinstance(section, dict):
        raise ValueError("'triage' must be a mapping of settings.")

    return TriageSettings.model_validate(section)
