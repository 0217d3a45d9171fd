"""Shared test fixtures for the AetherLock test suite.

Provides:
    - Settings wired for in-memory stores and mock verification
    - A fully built application container
    - Factory helpers that drive an escrow to a given status
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

import os

# Use litellm's bundled model cost map instead of fetching it over the network
# at import time (the offline fallback deadlocks under pytest's log capture).
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from decimal import Decimal

import pytest

from aetherlock.bootstrap import Container, build_container
from aetherlock.config import Settings
from aetherlock.domain.models import Escrow
from aetherlock.infrastructure.evidence_store import InMemoryEvidenceStore
from aetherlock.providers import MockAssessmentProvider

CLIENT = "C1ient" + "c" * 38
FREELANCER = "FreeLancer" + "f" * 34
STRANGER = "Stranger" + "s" * 36


def token_for(wallet: str) -> str:
    """Wallet token accepted by the development signature verifier."""
    return f"sig:Sign in to AetherLock:{wallet}"


def auth_header(wallet: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(wallet)}"}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="development",
        app_log_level="WARNING",
        use_database=False,
        redis_url="",
        verification_models="mock",
        use_pinata=False,
        settlement_simulate=True,
        auth_allow_unverified=True,
        auto_verify_on_submit=True,
        max_verification_attempts=0,
        mcp_enabled=False,
        typing_timeout_seconds=0.05,
    )


@pytest.fixture
def mock_provider() -> MockAssessmentProvider:
    """Passing mock provider (confidence 92)."""
    return MockAssessmentProvider(confidence=92)


@pytest.fixture
def evidence_store() -> InMemoryEvidenceStore:
    return InMemoryEvidenceStore()


@pytest.fixture
def container(
    settings: Settings,
    mock_provider: MockAssessmentProvider,
    evidence_store: InMemoryEvidenceStore,
) -> Container:
    return build_container(
        settings,
        providers=[mock_provider],
        evidence_store=evidence_store,
    )


@pytest.fixture
def manager(container: Container):
    return container.manager


@pytest.fixture
def hub(container: Container):
    return container.hub


# ---------------------------------------------------------------------------
# Escrow factories
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_escrow_data() -> dict:
    """Return valid escrow creation arguments."""
    return {
        "client_address": CLIENT,
        "amount": Decimal("2.5"),
        "title": "Landing page for a DeFi dashboard",
        "description": "Responsive landing page with wallet connect",
        "freelancer_address": FREELANCER,
    }


@pytest.fixture
async def pending_escrow(manager, sample_escrow_data: dict) -> Escrow:
    return await manager.create_escrow(**sample_escrow_data)


@pytest.fixture
async def active_escrow(manager, pending_escrow: Escrow) -> Escrow:
    return await manager.accept(pending_escrow.escrow_id, FREELANCER)


@pytest.fixture
async def reviewing_escrow(
    manager,
    active_escrow: Escrow,
    evidence_store: InMemoryEvidenceStore,
) -> Escrow:
    """An escrow in AI_REVIEWING with one submission and no verification yet."""
    handle = await evidence_store.put(b"<html>landing page</html>", name="index.html")
    return await manager.submit_work(
        active_escrow.escrow_id, FREELANCER, "Landing page delivered", [handle],
    )
