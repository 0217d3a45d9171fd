"""Settlement Service — pays out escrows through the chain collaborator.

Provides both a Coinbase AgentKit integration and a simulated mode for
development and tests without real blockchain transactions.

In simulation mode, generates fake transaction hashes.
In production mode, uses CdpEvmWalletProvider for an ERC-20 transfer out of
the escrow wallet.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from aetherlock.config import Settings, get_settings
from aetherlock.domain.exceptions import SettlementError
from aetherlock.logging_config import get_logger, short_wallet

logger = get_logger(__name__)


class SettlementService:
    """Releases escrowed funds to the freelancer."""

    def __init__(self, simulate: bool = True, settings: Settings | None = None) -> None:
        """Initialize settlement service.

        Args:
            simulate: If True, generate fake tx hashes instead of real on-chain txs.
        """
        self._simulate = simulate
        self._settings = settings or get_settings()

    @property
    def chain(self) -> str:
        return self._settings.settlement_chain

    async def transfer_to_freelancer(
        self,
        escrow_id: str,
        recipient: str,
        amount: Decimal,
    ) -> str:
        """Transfer the escrowed amount to the freelancer wallet.

        Returns the settlement transaction hash.

        Raises:
            SettlementError: If the chain collaborator rejects the transfer.
        """
        if self._simulate:
            tx_hash = "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:2]
            logger.info(
                "settlement.simulated",
                escrow_id=escrow_id,
                tx_hash=tx_hash,
                amount=str(amount),
                to_wallet=short_wallet(recipient),
            )
            return tx_hash

        settings = self._settings
        if not settings.escrow_wallet_address or not settings.settlement_token_contract:
            raise SettlementError(
                "escrow_wallet_address and settlement_token_contract must be configured"
            )

        try:
            from coinbase_agentkit import (
                CdpEvmWalletProvider,
                CdpEvmWalletProviderConfig,
                erc20_action_provider,
            )

            wallet_provider = CdpEvmWalletProvider(CdpEvmWalletProviderConfig(
                api_key_id=settings.cdp_api_key_id,
                api_key_secret=settings.cdp_api_key_secret,
                wallet_secret=settings.cdp_wallet_secret,
                network_id=settings.cdp_network_id,
                address=settings.escrow_wallet_address,
            ))

            result = erc20_action_provider().transfer(
                wallet_provider,
                {
                    "to": recipient,
                    "amount": str(amount),
                    "contract_address": settings.settlement_token_contract,
                },
            )
        except Exception as exc:
            logger.error("settlement.failed", escrow_id=escrow_id, error=str(exc))
            raise SettlementError(f"Settlement failed: {exc}") from exc

        logger.info("settlement.complete", escrow_id=escrow_id, result=str(result))
        return str(result)
