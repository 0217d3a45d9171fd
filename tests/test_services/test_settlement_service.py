"""Tests for the SettlementService simulated and misconfigured paths."""

from __future__ import annotations

import re
from decimal import Decimal

import pytest
from conftest import FREELANCER

from aetherlock.config import Settings
from aetherlock.domain.exceptions import SettlementError
from aetherlock.services.settlement_service import SettlementService


class TestSimulatedSettlement:
    async def test_returns_fake_tx_hash(self, settings: Settings) -> None:
        service = SettlementService(simulate=True, settings=settings)

        tx_hash = await service.transfer_to_freelancer("escrow-1", FREELANCER, Decimal("2.5"))

        assert re.fullmatch(r"0x[0-9a-f]{34}", tx_hash)

    async def test_hashes_are_unique(self, settings: Settings) -> None:
        service = SettlementService(simulate=True, settings=settings)
        first = await service.transfer_to_freelancer("escrow-1", FREELANCER, Decimal("1"))
        second = await service.transfer_to_freelancer("escrow-1", FREELANCER, Decimal("1"))
        assert first != second

    def test_chain_from_settings(self, settings: Settings) -> None:
        service = SettlementService(settings=settings)
        assert service.chain == settings.settlement_chain


class TestLiveSettlement:
    async def test_missing_wallet_config_raises(self, settings: Settings) -> None:
        live = settings.model_copy(update={
            "settlement_simulate": False,
            "escrow_wallet_address": "",
            "settlement_token_contract": "",
        })
        service = SettlementService(simulate=False, settings=live)

        with pytest.raises(SettlementError, match="must be configured"):
            await service.transfer_to_freelancer("escrow-1", FREELANCER, Decimal("1"))
