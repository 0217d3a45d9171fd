"""Verification Pipeline — ordered fallback over assessment providers.

Coordinates between:
    - AssessmentProvider implementations (tried in fixed priority order)
    - normalize_assessment (raw JSON -> VerificationResult)

Each provider call is bounded by a timeout. A timeout, an Err outcome or any
exception escaping a provider makes that provider "unavailable" for this
attempt: it is logged and the next provider is tried. When every provider is
unavailable the pipeline returns the default failed result. It never raises.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from aetherlock.domain.assessment import (
    AssessmentProvider,
    Err,
    Ok,
    VerificationRequest,
    VerificationResult,
    normalize_assessment,
    unavailable_result,
)
from aetherlock.domain.enums import ProviderErrorKind
from aetherlock.domain.exceptions import ProviderError
from aetherlock.logging_config import get_logger

logger = get_logger(__name__)


class VerificationPipeline:
    """Runs one verification decision for a submission."""

    def __init__(
        self,
        providers: Sequence[AssessmentProvider],
        timeout_seconds: float = 30.0,
    ) -> None:
        self._providers = list(providers)
        self._timeout = timeout_seconds

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        """Run the providers in order and return the first usable result."""
        failures: list[ProviderError] = []

        for provider in self._providers:
            outcome = await self._attempt(provider, request)

            if isinstance(outcome, VerificationResult):
                logger.info(
                    "verification.provider_succeeded",
                    escrow_id=request.escrow_id,
                    provider=provider.name,
                    passed=outcome.passed,
                    confidence=outcome.confidence,
                    fallbacks=len(failures),
                )
                return outcome

            failures.append(outcome)
            logger.warning(
                "verification.provider_failed",
                escrow_id=request.escrow_id,
                provider=provider.name,
                kind=outcome.kind.value,
                error=outcome.message,
            )

        logger.error(
            "verification.all_providers_failed",
            escrow_id=request.escrow_id,
            providers=self.provider_names,
        )
        return unavailable_result(failures)

    async def _attempt(
        self,
        provider: AssessmentProvider,
        request: VerificationRequest,
    ) -> VerificationResult | ProviderError:
        """One bounded call to a provider, normalized, or the reason it failed."""
        try:
            async with asyncio.timeout(self._timeout):
                outcome = await provider.assess(request)
        except TimeoutError:
            return ProviderError(
                provider.name,
                f"timed out after {self._timeout}s",
                ProviderErrorKind.TIMEOUT,
            )
        except Exception as exc:
            logger.exception(
                "verification.provider_raised",
                escrow_id=request.escrow_id,
                provider=provider.name,
            )
            return ProviderError(provider.name, str(exc) or type(exc).__name__)

        if isinstance(outcome, Err):
            if isinstance(outcome.error, ProviderError):
                return outcome.error
            return ProviderError(provider.name, str(outcome.error))
        if not isinstance(outcome, Ok):
            return ProviderError(
                provider.name,
                f"unexpected outcome {type(outcome).__name__}",
                ProviderErrorKind.MALFORMED_RESPONSE,
            )
        if not isinstance(outcome.value, dict):
            return ProviderError(
                provider.name,
                f"expected a JSON object, got {type(outcome.value).__name__}",
                ProviderErrorKind.MALFORMED_RESPONSE,
            )

        try:
            return normalize_assessment(outcome.value, provider.name)
        except Exception as exc:
            logger.exception(
                "verification.normalization_failed",
                escrow_id=request.escrow_id,
                provider=provider.name,
            )
            return ProviderError(
                provider.name,
                f"unusable response: {exc}",
                ProviderErrorKind.MALFORMED_RESPONSE,
            )
