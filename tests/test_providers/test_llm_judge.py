"""Unit tests for the LiteLLMAssessmentProvider.

Uses mocked LiteLLM responses to test parsing and error classification
without hitting a real LLM API.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from aetherlock.domain.assessment import Err, Ok, VerificationRequest
from aetherlock.domain.enums import ProviderErrorKind
from aetherlock.providers.llm_judge import (
    LiteLLMAssessmentProvider,
    build_prompt,
    classify_error,
    parse_assessment,
)


def _make_request(handles: tuple[str, ...] = ("bafkA", "bafkB")) -> VerificationRequest:
    return VerificationRequest(
        escrow_id="test-escrow-002",
        requirements={
            "title": "Landing page",
            "description": "Responsive landing page",
            "milestones": [{"title": "Hero", "description": "Hero section with CTA"}],
        },
        evidence_handles=handles,
        description="Delivered the page and assets",
    )


def _mock_llm_response(content: str | None) -> MagicMock:
    """Create a mock LiteLLM completion response."""
    mock_resp = MagicMock()
    mock_resp.choices = [MagicMock()]
    mock_resp.choices[0].message.content = content
    return mock_resp


class StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class Timeout(Exception):
    pass


class TestBuildPrompt:
    def test_lists_milestones_and_evidence(self) -> None:
        prompt = build_prompt(_make_request())
        assert "- Hero: Hero section with CTA" in prompt
        assert "File 1: ipfs://bafkA" in prompt
        assert "File 2: ipfs://bafkB" in prompt
        assert "Files Submitted: 2 files" in prompt

    def test_without_milestones_or_evidence(self) -> None:
        request = VerificationRequest(
            escrow_id="e",
            requirements={"title": "T", "description": "D"},
            evidence_handles=(),
            description="S",
        )
        prompt = build_prompt(request)
        assert "No specific milestones" in prompt
        assert "No evidence files provided" in prompt


class TestParseAssessment:
    def test_json_embedded_in_prose(self) -> None:
        outcome = parse_assessment(
            'Here is my verdict:\n{"passed": true, "confidence": 91}\nThanks!', "gpt-4",
        )
        assert isinstance(outcome, Ok)
        assert outcome.value["confidence"] == 91

    def test_no_json(self) -> None:
        outcome = parse_assessment("I cannot help with that.", "gpt-4")
        assert isinstance(outcome, Err)
        assert outcome.error.kind is ProviderErrorKind.MALFORMED_RESPONSE

    def test_broken_json(self) -> None:
        outcome = parse_assessment('{"passed": true, "confidence": }', "gpt-4")
        assert isinstance(outcome, Err)
        assert "invalid JSON" in outcome.error.message

    def test_schema_violation(self) -> None:
        outcome = parse_assessment('{"passed": "definitely"}', "gpt-4")
        assert isinstance(outcome, Err)
        assert "schema" in outcome.error.message


class TestClassifyError:
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (TimeoutError(), ProviderErrorKind.TIMEOUT),
            (Timeout("read timed out"), ProviderErrorKind.TIMEOUT),
            (StatusError(401), ProviderErrorKind.AUTHENTICATION),
            (StatusError(403), ProviderErrorKind.AUTHENTICATION),
            (StatusError(429), ProviderErrorKind.RATE_LIMIT),
            (StatusError(500), ProviderErrorKind.HTTP_STATUS),
            (ConnectionError("refused"), ProviderErrorKind.UNAVAILABLE),
        ],
    )
    def test_kinds(self, exc: Exception, kind: ProviderErrorKind) -> None:
        assert classify_error(exc) is kind


class TestLiteLLMAssessmentProvider:
    async def test_ok_result(self) -> None:
        provider = LiteLLMAssessmentProvider("gpt-4", api_key="sk-test", timeout=10)
        reply = '{"passed": true, "confidence": 87, "feedback": "Solid work"}'

        with patch("aetherlock.providers.llm_judge.litellm") as mock_litellm:
            mock_litellm.acompletion = AsyncMock(return_value=_mock_llm_response(reply))
            outcome = await provider.assess(_make_request())

        assert isinstance(outcome, Ok)
        assert outcome.value["feedback"] == "Solid work"
        kwargs = mock_litellm.acompletion.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["timeout"] == 10
        assert kwargs["messages"][0]["role"] == "user"

    async def test_no_api_key_not_forwarded(self) -> None:
        provider = LiteLLMAssessmentProvider("gemini/gemini-1.5-flash")

        with patch("aetherlock.providers.llm_judge.litellm") as mock_litellm:
            mock_litellm.acompletion = AsyncMock(
                return_value=_mock_llm_response('{"confidence": 50}'),
            )
            await provider.assess(_make_request())

        assert "api_key" not in mock_litellm.acompletion.call_args.kwargs

    async def test_rate_limit_is_err(self) -> None:
        provider = LiteLLMAssessmentProvider("gpt-4")

        with patch("aetherlock.providers.llm_judge.litellm") as mock_litellm:
            mock_litellm.acompletion = AsyncMock(side_effect=StatusError(429))
            outcome = await provider.assess(_make_request())

        assert isinstance(outcome, Err)
        assert outcome.error.kind is ProviderErrorKind.RATE_LIMIT
        assert outcome.error.provider == "gpt-4"

    @pytest.mark.parametrize("content", [None, ""])
    async def test_empty_reply_is_malformed(self, content: str | None) -> None:
        provider = LiteLLMAssessmentProvider("gpt-4")

        with patch("aetherlock.providers.llm_judge.litellm") as mock_litellm:
            mock_litellm.acompletion = AsyncMock(return_value=_mock_llm_response(content))
            outcome = await provider.assess(_make_request())

        assert isinstance(outcome, Err)
        assert outcome.error.kind is ProviderErrorKind.MALFORMED_RESPONSE
