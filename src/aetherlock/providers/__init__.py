"""Assessment provider implementations and factory.

Two providers:
    - LiteLLMAssessmentProvider:  LLM judge via LiteLLM (Gemini/Claude/GPT-4)
    - MockAssessmentProvider:     Instant configurable result for dry runs and tests

The ProviderFactory turns the configured model list into the ordered list of
providers the verification pipeline falls back through.
"""

from __future__ import annotations

import asyncio

from aetherlock.config import Settings, get_settings
from aetherlock.domain.assessment import (
    AssessmentProvider,
    Err,
    Ok,
    ProviderOutcome,
    VerificationRequest,
)
from aetherlock.domain.enums import ProviderErrorKind
from aetherlock.domain.exceptions import ProviderError
from aetherlock.providers.llm_judge import LiteLLMAssessmentProvider


class MockAssessmentProvider:
    """Instant mock provider for dry-run simulations.

    Returns a configurable assessment with zero network calls.
        - confidence: Confidence to report. Default 92.
        - passed: Explicit verdict. Default None (left to the threshold rule).
        - fail_with: If set, every call returns Err with this error kind.
        - delay: Seconds to sleep before answering (for timeout tests).
    """

    def __init__(
        self,
        confidence: float = 92,
        passed: bool | None = None,
        feedback: str = "Mock assessment (dry-run mode)",
        fail_with: ProviderErrorKind | None = None,
        name: str = "mock",
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.confidence = confidence
        self.passed = passed
        self.feedback = feedback
        self.fail_with = fail_with
        self.delay = delay
        self.calls = 0

    async def assess(self, request: VerificationRequest) -> ProviderOutcome:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            return Err(ProviderError(self.name, "mock failure", self.fail_with))

        raw: dict = {
            "confidence": self.confidence,
            "feedback": self.feedback,
            "qualityScore": self.confidence,
            "completenessScore": self.confidence,
            "accuracyScore": self.confidence,
            "suggestions": [],
        }
        if self.passed is not None:
            raw["passed"] = self.passed
        return Ok(raw)


def _api_key_for(model: str, settings: Settings) -> str | None:
    lowered = model.lower()
    if lowered.startswith("gemini"):
        return settings.gemini_api_key or None
    if lowered.startswith("anthropic") or "claude" in lowered:
        return settings.anthropic_api_key or None
    return settings.openai_api_key or None


class ProviderFactory:
    """Factory that creates assessment providers from configured names.

    Usage:
        providers = ProviderFactory.build_providers(settings.verification_model_list)

        # Dry-run mode:
        provider = ProviderFactory.create("mock")
    """

    _registry: dict[str, type] = {
        "mock": MockAssessmentProvider,
    }

    @classmethod
    def create(cls, name: str, settings: Settings | None = None) -> AssessmentProvider:
        """Create one provider.

        Args:
            name: "mock", or any LiteLLM model string (e.g. "gemini/gemini-1.5-flash").

        Raises:
            ValueError: If the name is empty.
        """
        if not name or not name.strip():
            raise ValueError(
                "Provider name must not be empty. "
                f"Use a LiteLLM model string or one of: {list(cls._registry.keys())}"
            )

        provider_class = cls._registry.get(name)
        if provider_class is not None:
            return provider_class()

        settings = settings or get_settings()
        return LiteLLMAssessmentProvider(
            model=name,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            api_key=_api_key_for(name, settings),
            timeout=settings.provider_timeout_seconds,
        )

    @classmethod
    def build_providers(
        cls,
        names: list[str],
        settings: Settings | None = None,
    ) -> list[AssessmentProvider]:
        """Create providers in priority order."""
        return [cls.create(name, settings) for name in names]

    @classmethod
    def get_supported_types(cls) -> list[str]:
        """Return the built-in provider names (LiteLLM models are open-ended)."""
        return [*cls._registry.keys(), "<litellm model string>"]


__all__ = [
    "LiteLLMAssessmentProvider",
    "MockAssessmentProvider",
    "ProviderFactory",
]
