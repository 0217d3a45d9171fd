"""AuthGate — wallet authentication and escrow participant checks.

Tokens look like the Authorization header the frontend sends:

    Bearer <signature>:<message>:<publicKey>

The signature check itself is delegated to a SignatureVerifier collaborator.
The public key is the caller's wallet address once verified.
"""

from __future__ import annotations

from dataclasses import dataclass

from aetherlock.domain.enums import PartyRole
from aetherlock.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    EscrowNotFoundError,
)
from aetherlock.domain.ports import EscrowStore, SignatureVerifier
from aetherlock.logging_config import get_logger, short_wallet

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class EscrowParties:
    """Who is on each side of an escrow."""

    escrow_id: str
    client_address: str
    freelancer_address: str | None
    title: str = ""

    def role_of(self, wallet: str) -> PartyRole | None:
        if wallet == self.client_address:
            return PartyRole.CLIENT
        if self.freelancer_address is not None and wallet == self.freelancer_address:
            return PartyRole.FREELANCER
        return None

    def counterparty(self, wallet: str) -> str | None:
        role = self.role_of(wallet)
        if role is PartyRole.CLIENT:
            return self.freelancer_address
        if role is PartyRole.FREELANCER:
            return self.client_address
        return None

    @property
    def wallets(self) -> list[str]:
        return [w for w in (self.client_address, self.freelancer_address) if w]


class TrustingSignatureVerifier:
    """Accepts every well-formed token. Development and tests only."""

    async def verify(self, signature: str, message: str, public_key: str) -> bool:
        return bool(signature and message and public_key)


def parse_token(token: str | None) -> tuple[str, str, str]:
    """Split a wallet token into (signature, message, public_key).

    The message may itself contain colons; the signature is everything before
    the first colon and the public key everything after the last one.
    """
    if not token:
        raise AuthenticationError("No authorization token provided")

    raw = token.strip()
    if raw.startswith(BEARER_PREFIX):
        raw = raw[len(BEARER_PREFIX):].strip()

    signature, sep, rest = raw.partition(":")
    message, sep2, public_key = rest.rpartition(":")
    if not (sep and sep2 and signature and message and public_key):
        raise AuthenticationError("Invalid authorization token format")
    return signature, message, public_key


class AuthGate:
    """Authenticates wallets and answers "who is this to that escrow"."""

    def __init__(
        self,
        escrow_store: EscrowStore,
        verifier: SignatureVerifier | None = None,
    ) -> None:
        self._store = escrow_store
        self._verifier = verifier

    async def authenticate(self, token: str | None) -> str:
        """Return the wallet address proven by `token`.

        Raises:
            AuthenticationError: Missing/malformed token, bad signature, or no
                signature verifier configured.
        """
        signature, message, public_key = parse_token(token)

        if self._verifier is None:
            raise AuthenticationError(
                "Signature verification is not configured", code="AUTH_UNAVAILABLE",
            )

        if not await self._verifier.verify(signature, message, public_key):
            logger.warning("auth.signature_rejected", wallet=short_wallet(public_key))
            raise AuthenticationError("Invalid signature")

        return public_key

    async def parties(self, escrow_id: str) -> EscrowParties:
        escrow = await self._store.get(escrow_id)
        if escrow is None:
            raise EscrowNotFoundError(escrow_id)
        return EscrowParties(
            escrow_id=escrow.escrow_id,
            client_address=escrow.client_address,
            freelancer_address=escrow.freelancer_address,
            title=escrow.title,
        )

    async def is_participant(self, escrow_id: str, wallet: str) -> PartyRole | None:
        """Return the wallet's role in the escrow, or None if it is not a party."""
        return (await self.parties(escrow_id)).role_of(wallet)

    async def require_role(
        self,
        escrow_id: str,
        wallet: str,
        *roles: PartyRole,
        action: str | None = None,
    ) -> PartyRole:
        """Return the wallet's role if it is one of `roles`.

        Raises:
            AuthorizationError: The wallet holds none of the required roles.
        """
        role = await self.is_participant(escrow_id, wallet)
        allowed = roles or (PartyRole.CLIENT, PartyRole.FREELANCER)
        if role is None or role not in allowed:
            names = " or ".join(r.value for r in allowed)
            what = action or "perform this action on"
            logger.info(
                "auth.role_rejected",
                escrow_id=escrow_id,
                wallet=short_wallet(wallet),
                required=names,
            )
            raise AuthorizationError(f"Only the {names} can {what} this escrow")
        return role

    async def escrow_ids_for(self, wallet: str) -> list[str]:
        """Escrows in which the wallet is a party."""
        return [e.escrow_id for e in await self._store.list_for_wallet(wallet)]
