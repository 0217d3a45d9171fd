"""Application container — builds and wires every collaborator.

There is no ambient global database or socket: the HTTP app, the MCP server,
the simulation script and the tests all get their collaborators from a
Container built here.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine

from aetherlock.config import Settings, get_settings
from aetherlock.domain.assessment import AssessmentProvider
from aetherlock.domain.events import EventBus
from aetherlock.domain.ports import (
    EscrowStore,
    EvidenceStore,
    MessageStore,
    SettlementGateway,
    SignatureVerifier,
)
from aetherlock.infrastructure.database import (
    SqlEscrowStore,
    SqlMessageStore,
    build_engine,
    build_session_factory,
    close_db,
    init_db,
)
from aetherlock.infrastructure.evidence_store import (
    InMemoryEvidenceStore,
    PinataEvidenceStore,
)
from aetherlock.infrastructure.memory import InMemoryEscrowStore, InMemoryMessageStore
from aetherlock.infrastructure.redis_client import close_redis, init_redis
from aetherlock.logging_config import get_logger
from aetherlock.providers import ProviderFactory
from aetherlock.realtime.hub import RealtimeHub
from aetherlock.services.auth_gate import AuthGate, TrustingSignatureVerifier
from aetherlock.services.escrow_manager import EscrowLifecycleManager
from aetherlock.services.settlement_service import SettlementService
from aetherlock.services.verification_pipeline import VerificationPipeline

logger = get_logger(__name__)


@dataclass
class Container:
    """Everything a running AetherLock process needs."""

    settings: Settings
    escrow_store: EscrowStore
    message_store: MessageStore
    evidence_store: EvidenceStore
    auth_gate: AuthGate
    pipeline: VerificationPipeline
    settlement: SettlementGateway
    event_bus: EventBus
    manager: EscrowLifecycleManager
    hub: RealtimeHub
    engine: AsyncEngine | None = None
    redis: aioredis.Redis | None = None

    async def start(self) -> None:
        """Create tables (development/SQLite) and connect to Redis."""
        if self.engine is not None:
            create_tables = (
                self.settings.is_development
                or self.settings.database_url.startswith("sqlite")
            )
            await init_db(self.engine, create_tables=create_tables)

        if self.settings.redis_url and self.redis is None:
            try:
                self.redis = await init_redis(self.settings.redis_url)
            except Exception as exc:
                logger.warning("app.redis_unavailable", error=str(exc))

    async def close(self) -> None:
        if self.engine is not None:
            await close_db(self.engine)
        await close_redis(self.redis)
        self.redis = None
        if isinstance(self.evidence_store, PinataEvidenceStore):
            await self.evidence_store.aclose()


def build_container(
    settings: Settings | None = None,
    *,
    providers: Sequence[AssessmentProvider] | None = None,
    signature_verifier: SignatureVerifier | None = None,
    evidence_store: EvidenceStore | None = None,
    settlement: SettlementGateway | None = None,
) -> Container:
    """Build a container from settings; any collaborator can be overridden."""
    settings = settings or get_settings()

    # --- Persistence ---
    engine = None
    escrow_store: EscrowStore
    message_store: MessageStore
    if settings.use_database:
        engine = build_engine(settings)
        session_factory = build_session_factory(engine)
        escrow_store = SqlEscrowStore(session_factory)
        message_store = SqlMessageStore(session_factory)
    else:
        escrow_store = InMemoryEscrowStore()
        message_store = InMemoryMessageStore()

    # --- Evidence storage ---
    if evidence_store is None:
        if settings.use_pinata:
            evidence_store = PinataEvidenceStore(
                jwt=settings.pinata_jwt,
                api_url=settings.pinata_api_url,
                gateway=settings.pinata_gateway,
                max_attempts=settings.storage_max_attempts,
                retry_base_seconds=settings.storage_retry_base_seconds,
                timeout_seconds=settings.storage_timeout_seconds,
                max_file_bytes=settings.storage_max_file_bytes,
            )
        else:
            evidence_store = InMemoryEvidenceStore(settings.storage_max_file_bytes)

    # --- Auth ---
    if signature_verifier is None and settings.auth_allow_unverified:
        signature_verifier = TrustingSignatureVerifier()
    auth_gate = AuthGate(escrow_store, signature_verifier)

    # --- Verification ---
    if providers is None:
        providers = ProviderFactory.build_providers(settings.verification_model_list, settings)
    pipeline = VerificationPipeline(providers, timeout_seconds=settings.provider_timeout_seconds)

    settlement = settlement or SettlementService(
        simulate=settings.settlement_simulate, settings=settings,
    )

    # --- Lifecycle + realtime ---
    event_bus = EventBus()
    manager = EscrowLifecycleManager(
        store=escrow_store,
        auth_gate=auth_gate,
        evidence_store=evidence_store,
        pipeline=pipeline,
        settlement=settlement,
        event_bus=event_bus,
        max_verification_attempts=settings.max_verification_attempts,
        cancellable_statuses=settings.cancellable_status_list,
        settlement_chain=settings.settlement_chain,
    )
    hub = RealtimeHub(
        auth_gate,
        message_store,
        max_message_length=settings.chat_max_length,
        typing_timeout=settings.typing_timeout_seconds,
        history_limit=settings.chat_history_limit,
    )
    event_bus.subscribe(hub.handle_domain_event)

    logger.info(
        "container.built",
        database=settings.use_database,
        pinata=isinstance(evidence_store, PinataEvidenceStore),
        providers=pipeline.provider_names,
    )
    return Container(
        settings=settings,
        escrow_store=escrow_store,
        message_store=message_store,
        evidence_store=evidence_store,
        auth_gate=auth_gate,
        pipeline=pipeline,
        settlement=settlement,
        event_bus=event_bus,
        manager=manager,
        hub=hub,
        engine=engine,
    )
