"""Tests for AuthGate token parsing and participant checks."""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import CLIENT, FREELANCER, STRANGER, token_for

from aetherlock.domain.enums import EscrowStatus, PartyRole
from aetherlock.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    EscrowNotFoundError,
)
from aetherlock.domain.models import AuditEntry, Escrow
from aetherlock.infrastructure.memory import InMemoryEscrowStore
from aetherlock.services.auth_gate import AuthGate, TrustingSignatureVerifier, parse_token


class RejectingVerifier:
    async def verify(self, signature: str, message: str, public_key: str) -> bool:
        return False


@pytest.fixture
async def store() -> InMemoryEscrowStore:
    store = InMemoryEscrowStore()
    escrow = Escrow(
        escrow_id="escrow-1",
        client_address=CLIENT,
        freelancer_address=FREELANCER,
        amount=Decimal("1"),
        title="Logo",
    )
    audit = AuditEntry(
        escrow_id="escrow-1",
        trigger="create",
        old_status=None,
        new_status=EscrowStatus.PENDING,
        actor=CLIENT,
    )
    await store.add(escrow, audit)
    return store


class TestParseToken:
    def test_bearer_prefix_stripped(self) -> None:
        assert parse_token("Bearer sig:hello:WALLET") == ("sig", "hello", "WALLET")

    def test_message_may_contain_colons(self) -> None:
        assert parse_token("sig:login at 12:30:WALLET") == ("sig", "login at 12:30", "WALLET")

    @pytest.mark.parametrize("token", [None, "", "Bearer ", "sig-only", "sig:WALLET", "::"])
    def test_malformed(self, token: str | None) -> None:
        with pytest.raises(AuthenticationError):
            parse_token(token)


class TestAuthenticate:
    async def test_returns_public_key(self, store: InMemoryEscrowStore) -> None:
        gate = AuthGate(store, TrustingSignatureVerifier())
        assert await gate.authenticate(token_for(CLIENT)) == CLIENT

    async def test_bad_signature(self, store: InMemoryEscrowStore) -> None:
        gate = AuthGate(store, RejectingVerifier())
        with pytest.raises(AuthenticationError, match="Invalid signature"):
            await gate.authenticate(token_for(CLIENT))

    async def test_no_verifier_configured(self, store: InMemoryEscrowStore) -> None:
        gate = AuthGate(store)
        with pytest.raises(AuthenticationError) as exc_info:
            await gate.authenticate(token_for(CLIENT))
        assert exc_info.value.code == "AUTH_UNAVAILABLE"


class TestParticipants:
    async def test_roles(self, store: InMemoryEscrowStore) -> None:
        gate = AuthGate(store, TrustingSignatureVerifier())

        assert await gate.is_participant("escrow-1", CLIENT) is PartyRole.CLIENT
        assert await gate.is_participant("escrow-1", FREELANCER) is PartyRole.FREELANCER
        assert await gate.is_participant("escrow-1", STRANGER) is None

    async def test_counterparty(self, store: InMemoryEscrowStore) -> None:
        parties = await AuthGate(store).parties("escrow-1")

        assert parties.counterparty(CLIENT) == FREELANCER
        assert parties.counterparty(FREELANCER) == CLIENT
        assert parties.counterparty(STRANGER) is None

    async def test_require_role_message(self, store: InMemoryEscrowStore) -> None:
        gate = AuthGate(store)
        with pytest.raises(AuthorizationError, match="Only the client can release funds from"):
            await gate.require_role("escrow-1", FREELANCER, PartyRole.CLIENT, action="release funds from")

    async def test_require_any_party(self, store: InMemoryEscrowStore) -> None:
        gate = AuthGate(store)
        assert await gate.require_role("escrow-1", FREELANCER) is PartyRole.FREELANCER
        with pytest.raises(AuthorizationError):
            await gate.require_role("escrow-1", STRANGER)

    async def test_unknown_escrow(self, store: InMemoryEscrowStore) -> None:
        with pytest.raises(EscrowNotFoundError):
            await AuthGate(store).parties("missing")

    async def test_escrow_ids_for(self, store: InMemoryEscrowStore) -> None:
        gate = AuthGate(store)
        assert await gate.escrow_ids_for(FREELANCER) == ["escrow-1"]
        assert await gate.escrow_ids_for(STRANGER) == []
