"""Assessment Provider Protocol and verification result types.

Defines the interface that all verification providers must implement, the
immutable VerificationResult stored on an escrow, and the normalization rules
that turn a provider's raw JSON into that result.

Providers never raise to the pipeline: they return Ok(raw) or Err(error) so
fallback is an ordinary loop over data.

The domain layer has ZERO imports from LiteLLM or any external service.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from aetherlock.domain.exceptions import ProviderError

# Strictly greater than this confidence counts as a pass when a provider
# does not state `passed` itself.
CONFIDENCE_THRESHOLD = 70

SYSTEM_PROVIDER = "system"
NO_FEEDBACK = "No feedback provided"


@dataclass(frozen=True)
class VerificationRequest:
    """Input to a provider.

    Attributes:
        escrow_id: Opaque id of the escrow under review.
        requirements: Title, description and any structured acceptance criteria.
        evidence_handles: Content handles of the submitted work.
        description: The freelancer's description of the submission.
    """

    escrow_id: str
    requirements: dict
    evidence_handles: tuple[str, ...]
    description: str = ""


@dataclass(frozen=True)
class AnalysisDetails:
    quality_score: int = 0
    completeness_score: int = 0
    accuracy_score: int = 0
    suggestions: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "qualityScore": self.quality_score,
            "completenessScore": self.completeness_score,
            "accuracyScore": self.accuracy_score,
            "suggestions": list(self.suggestions),
        }


@dataclass(frozen=True)
class VerificationResult:
    """Normalized output of the verification pipeline.

    Attributes:
        passed: Whether the work meets the requirements.
        confidence: Integer in [0, 100].
        feedback: Human-readable explanation of the result.
        analysis_details: Per-dimension scores and suggestions.
        provider: Name of the provider that produced it, or "system".
    """

    passed: bool
    confidence: int
    feedback: str
    analysis_details: AnalysisDetails = field(default_factory=AnalysisDetails)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    provider: str = SYSTEM_PROVIDER

    def to_dict(self) -> dict:
        """Serialize for storage in the verification_result JSON column."""
        return {
            "passed": self.passed,
            "confidence": self.confidence,
            "feedback": self.feedback,
            "analysisDetails": self.analysis_details.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "provider": self.provider,
        }

    @classmethod
    def from_dict(cls, data: dict) -> VerificationResult:
        details = data.get("analysisDetails") or {}
        timestamp = data.get("timestamp")
        return cls(
            passed=bool(data.get("passed", False)),
            confidence=int(data.get("confidence", 0)),
            feedback=str(data.get("feedback", "")),
            analysis_details=AnalysisDetails(
                quality_score=int(details.get("qualityScore", 0)),
                completeness_score=int(details.get("completenessScore", 0)),
                accuracy_score=int(details.get("accuracyScore", 0)),
                suggestions=tuple(details.get("suggestions", ())),
            ),
            timestamp=(
                datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC)
            ),
            provider=str(data.get("provider", SYSTEM_PROVIDER)),
        )


# --- Provider outcomes ---


@dataclass(frozen=True)
class Ok:
    """A provider answered with a raw JSON object."""

    value: dict[str, Any]


@dataclass(frozen=True)
class Err:
    """A provider could not produce a usable answer."""

    error: ProviderError


ProviderOutcome = Ok | Err


@runtime_checkable
class AssessmentProvider(Protocol):
    """Protocol that all verification providers must satisfy.

    Concrete implementations:
        - providers/llm_judge.py   (LiteLLM-backed model)
        - providers/__init__.py    (MockAssessmentProvider)
    """

    name: str

    async def assess(self, request: VerificationRequest) -> ProviderOutcome:
        """Assess the submitted work.

        Returns:
            Ok with the provider's raw JSON object, or Err describing why
            the provider is unavailable.
        """
        ...


# --- Normalization ---


def clamp_score(value: Any) -> int:
    """Clamp a raw score into [0, 100]; anything non-numeric becomes 0.

    Numeric strings ("90", " 72.5 ") are coerced, since LLMs often quote scores.
    """
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
    if isinstance(value, bool) or not isinstance(value, int | float):
        return 0
    if not math.isfinite(value):
        return 0
    return int(round(min(100.0, max(0.0, float(value)))))


def _suggestions(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    if not all(isinstance(item, str) for item in value):
        return ()
    return tuple(value)


def normalize_assessment(raw: dict[str, Any], provider: str) -> VerificationResult:
    """Turn a provider's raw JSON object into a VerificationResult."""
    confidence = clamp_score(raw.get("confidence"))

    passed = raw.get("passed")
    if not isinstance(passed, bool):
        passed = confidence > CONFIDENCE_THRESHOLD

    feedback = raw.get("feedback")
    if not isinstance(feedback, str) or not feedback.strip():
        feedback = NO_FEEDBACK

    # Scores may be nested under analysisDetails or sit at the top level.
    details = raw.get("analysisDetails")
    if not isinstance(details, dict):
        details = raw

    return VerificationResult(
        passed=passed,
        confidence=confidence,
        feedback=feedback,
        analysis_details=AnalysisDetails(
            quality_score=clamp_score(details.get("qualityScore")),
            completeness_score=clamp_score(details.get("completenessScore")),
            accuracy_score=clamp_score(details.get("accuracyScore")),
            suggestions=_suggestions(details.get("suggestions")),
        ),
        provider=provider,
    )


def unavailable_result(failures: list[ProviderError]) -> VerificationResult:
    """Default result when every provider failed."""
    tried = ", ".join(f.provider for f in failures) or "none configured"
    return VerificationResult(
        passed=False,
        confidence=0,
        feedback=(
            "Automated verification is unavailable right now "
            f"(providers tried: {tried}). Manual review is required."
        ),
        analysis_details=AnalysisDetails(
            suggestions=("Retry verification later or open a dispute for manual review.",),
        ),
        provider=SYSTEM_PROVIDER,
    )
