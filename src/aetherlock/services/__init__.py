"""Application services — use case orchestration."""

from aetherlock.services.auth_gate import AuthGate, TrustingSignatureVerifier
from aetherlock.services.escrow_manager import EscrowLifecycleManager
from aetherlock.services.settlement_service import SettlementService
from aetherlock.services.verification_pipeline import VerificationPipeline

__all__ = [
    "AuthGate",
    "EscrowLifecycleManager",
    "SettlementService",
    "TrustingSignatureVerifier",
    "VerificationPipeline",
]
