"""Tests for VerificationResult normalization and the threshold rule."""

from __future__ import annotations

import math

import pytest

from aetherlock.domain.assessment import (
    NO_FEEDBACK,
    SYSTEM_PROVIDER,
    VerificationResult,
    clamp_score,
    normalize_assessment,
    unavailable_result,
)
from aetherlock.domain.exceptions import ProviderError


class TestClampScore:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (50, 50),
            (-10, 0),
            (150, 100),
            (71.6, 72),
            ("90", 90),
            (" 72.5 ", 72),
            ("150", 100),
            ("high", 0),
            ("nan", 0),
            ("", 0),
            (None, 0),
            (True, 0),
            (math.nan, 0),
            (math.inf, 0),
        ],
    )
    def test_clamp(self, raw: object, expected: int) -> None:
        assert clamp_score(raw) == expected


class TestThreshold:
    def test_exactly_seventy_fails(self) -> None:
        result = normalize_assessment({"confidence": 70}, "mock")
        assert result.passed is False

    def test_seventy_one_passes(self) -> None:
        result = normalize_assessment({"confidence": 71}, "mock")
        assert result.passed is True

    def test_provider_verdict_wins_over_threshold(self) -> None:
        result = normalize_assessment({"confidence": 95, "passed": False}, "mock")
        assert result.passed is False

    def test_non_bool_verdict_ignored(self) -> None:
        result = normalize_assessment({"confidence": 40, "passed": "yes"}, "mock")
        assert result.passed is False


class TestNormalize:
    def test_clamps_every_score(self) -> None:
        raw = {
            "confidence": 140,
            "qualityScore": -5,
            "completenessScore": 101,
            "accuracyScore": 64.4,
        }
        result = normalize_assessment(raw, "gpt-4")

        assert result.confidence == 100
        assert result.analysis_details.quality_score == 0
        assert result.analysis_details.completeness_score == 100
        assert result.analysis_details.accuracy_score == 64
        assert result.provider == "gpt-4"

    def test_nested_analysis_details(self) -> None:
        raw = {
            "confidence": 80,
            "analysisDetails": {"qualityScore": 77, "suggestions": ["Add tests"]},
        }
        result = normalize_assessment(raw, "mock")
        assert result.analysis_details.quality_score == 77
        assert result.analysis_details.suggestions == ("Add tests",)

    def test_missing_fields_default(self) -> None:
        result = normalize_assessment({}, "mock")
        assert result.confidence == 0
        assert result.passed is False
        assert result.feedback == NO_FEEDBACK
        assert result.analysis_details.suggestions == ()

    def test_mixed_suggestions_dropped(self) -> None:
        result = normalize_assessment({"suggestions": ["ok", 3]}, "mock")
        assert result.analysis_details.suggestions == ()


class TestUnavailableResult:
    def test_names_providers_tried(self) -> None:
        result = unavailable_result([
            ProviderError("gemini/gemini-1.5-flash", "timed out"),
            ProviderError("gpt-4", "rate limited"),
        ])
        assert result.passed is False
        assert result.confidence == 0
        assert result.provider == SYSTEM_PROVIDER
        assert "gemini/gemini-1.5-flash" in result.feedback
        assert "gpt-4" in result.feedback


class TestSerialization:
    def test_dict_round_trip(self) -> None:
        original = normalize_assessment(
            {"confidence": 88, "feedback": "Solid", "qualityScore": 90, "suggestions": ["a"]},
            "mock",
        )
        restored = VerificationResult.from_dict(original.to_dict())
        assert restored == original
        assert original.to_dict()["analysisDetails"]["qualityScore"] == 90
