"""LiteLLMAssessmentProvider — uses an LLM judge to assess submitted work.

One instance per configured model string; the pipeline tries them in the
configured order (Gemini, then Claude, then GPT-4 by default).

Assessment flow:
    1. Build a judge prompt from the escrow requirements and the submission.
    2. Call the model via LiteLLM.
    3. Pull the first {...} JSON object out of the reply text.
    4. Validate it against the assessment schema.
    5. Return Ok(raw) or Err(ProviderError).

There is no retry here: a provider that fails once is skipped for the rest
of the verification attempt.
"""

from __future__ import annotations

import json
import re

import litellm

from aetherlock.domain.assessment import (
    Err,
    Ok,
    ProviderOutcome,
    VerificationRequest,
)
from aetherlock.domain.enums import ProviderErrorKind
from aetherlock.domain.exceptions import ProviderError
from aetherlock.logging_config import get_logger
from aetherlock.providers.response_schema import validate_assessment

logger = get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

# --- Judge Prompt ---
JUDGE_PROMPT_TEMPLATE = """You are an AI work verification system. Analyze if the submitted work meets the requirements.

ESCROW DETAILS:
Title: {title}
Description: {description}
Requirements: {requirements}

SUBMISSION:
Description: {submission}
Files Submitted: {file_count} files

Analyze the submission and respond in JSON format with:
{{
  "passed": boolean (true if work meets requirements),
  "confidence": number (0-100, your confidence in the assessment),
  "feedback": "string (detailed feedback for both parties)",
  "qualityScore": number (0-100, overall quality of work),
  "completenessScore": number (0-100, how complete the work is),
  "accuracyScore": number (0-100, how accurate/correct the work is),
  "suggestions": ["array", "of", "improvement", "suggestions"]
}}

Evidence:
{evidence}"""


def build_prompt(request: VerificationRequest) -> str:
    """Render the judge prompt for one verification request."""
    requirements = request.requirements
    milestones = requirements.get("milestones") or []
    if milestones:
        requirement_lines = "\n".join(
            f"- {m.get('title', '')}: {m.get('description', '')}" for m in milestones
        )
    else:
        requirement_lines = "No specific milestones"

    if request.evidence_handles:
        evidence = "\n".join(
            f"File {idx}: ipfs://{handle}"
            for idx, handle in enumerate(request.evidence_handles, start=1)
        )
    else:
        evidence = "No evidence files provided"

    return JUDGE_PROMPT_TEMPLATE.format(
        title=requirements.get("title", ""),
        description=requirements.get("description", ""),
        requirements=requirement_lines,
        submission=request.description,
        file_count=len(request.evidence_handles),
        evidence=evidence,
    )


def parse_assessment(text: str, provider: str) -> ProviderOutcome:
    """Extract and validate the JSON object embedded in a model reply."""
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        return Err(ProviderError(
            provider, "no JSON object in response", ProviderErrorKind.MALFORMED_RESPONSE,
        ))

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return Err(ProviderError(
            provider, f"invalid JSON: {exc.msg}", ProviderErrorKind.MALFORMED_RESPONSE,
        ))

    errors = validate_assessment(payload)
    if errors:
        return Err(ProviderError(
            provider,
            f"response failed schema check: {'; '.join(errors[:3])}",
            ProviderErrorKind.MALFORMED_RESPONSE,
        ))

    return Ok(payload)


def classify_error(exc: BaseException) -> ProviderErrorKind:
    """Map a LiteLLM / transport exception onto a provider error kind."""
    if isinstance(exc, TimeoutError) or "timeout" in type(exc).__name__.lower():
        return ProviderErrorKind.TIMEOUT
    status = getattr(exc, "status_code", None)
    if status in (401, 403):
        return ProviderErrorKind.AUTHENTICATION
    if status == 429:
        return ProviderErrorKind.RATE_LIMIT
    if isinstance(status, int):
        return ProviderErrorKind.HTTP_STATUS
    return ProviderErrorKind.UNAVAILABLE


class LiteLLMAssessmentProvider:
    """Assessment provider backed by one LiteLLM model."""

    def __init__(
        self,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.0,
        api_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.name = model
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._api_key = api_key
        self._timeout = timeout

    async def assess(self, request: VerificationRequest) -> ProviderOutcome:
        logger.info(
            "provider.llm.start",
            provider=self.name,
            escrow_id=request.escrow_id,
            evidence_count=len(request.evidence_handles),
        )

        kwargs: dict = {
            "model": self._model,
            "messages": [{"role": "user", "content": build_prompt(request)}],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._timeout:
            kwargs["timeout"] = self._timeout

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            kind = classify_error(exc)
            logger.warning(
                "provider.llm.call_failed",
                provider=self.name,
                escrow_id=request.escrow_id,
                kind=kind.value,
                error=str(exc),
            )
            return Err(ProviderError(self.name, str(exc) or type(exc).__name__, kind))

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError):
            content = None
        if not content:
            return Err(ProviderError(
                self.name, "empty response", ProviderErrorKind.MALFORMED_RESPONSE,
            ))

        outcome = parse_assessment(content, self.name)
        if isinstance(outcome, Err):
            logger.warning(
                "provider.llm.malformed_response",
                provider=self.name,
                escrow_id=request.escrow_id,
                error=outcome.error.message,
            )
        else:
            logger.info("provider.llm.result", provider=self.name, escrow_id=request.escrow_id)
        return outcome
