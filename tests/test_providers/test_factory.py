"""Unit tests for the ProviderFactory."""

from __future__ import annotations

import pytest

from aetherlock.config import Settings
from aetherlock.providers import (
    LiteLLMAssessmentProvider,
    MockAssessmentProvider,
    ProviderFactory,
)


class TestProviderFactory:
    def test_create_mock(self, settings: Settings) -> None:
        provider = ProviderFactory.create("mock", settings)
        assert isinstance(provider, MockAssessmentProvider)

    def test_create_litellm_model(self, settings: Settings) -> None:
        provider = ProviderFactory.create("gemini/gemini-1.5-flash", settings)
        assert isinstance(provider, LiteLLMAssessmentProvider)
        assert provider.name == "gemini/gemini-1.5-flash"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name_raises(self, name: str, settings: Settings) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            ProviderFactory.create(name, settings)

    def test_build_providers_keeps_order(self, settings: Settings) -> None:
        configured = settings.model_copy(update={
            "verification_models": "gemini/gemini-1.5-flash, anthropic/claude-3-5-sonnet-20241022,gpt-4",
        })
        providers = ProviderFactory.build_providers(
            configured.verification_model_list, configured,
        )
        assert [p.name for p in providers] == [
            "gemini/gemini-1.5-flash",
            "anthropic/claude-3-5-sonnet-20241022",
            "gpt-4",
        ]

    def test_api_key_picked_per_vendor(self, settings: Settings) -> None:
        keyed = settings.model_copy(update={
            "gemini_api_key": "g-key",
            "anthropic_api_key": "a-key",
            "openai_api_key": "o-key",
        })
        gemini = ProviderFactory.create("gemini/gemini-1.5-flash", keyed)
        claude = ProviderFactory.create("anthropic/claude-3-5-sonnet-20241022", keyed)
        gpt = ProviderFactory.create("gpt-4", keyed)

        assert gemini._api_key == "g-key"
        assert claude._api_key == "a-key"
        assert gpt._api_key == "o-key"

    def test_get_supported_types(self) -> None:
        types = ProviderFactory.get_supported_types()
        assert "mock" in types
        assert len(types) == 2
