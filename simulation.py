#!/usr/bin/env python3
"""AetherLock — End-to-End Simulation.

Simulates three scenarios with ClientBot and FreelancerBot parties:

    Scenario 1: Happy Path
        - Client creates an escrow designating the freelancer
        - Freelancer accepts, uploads evidence, submits -> VERIFIED
        - Client releases funds -> COMPLETED + settlement tx

    Scenario 2: Failed Verification, then Dispute
        - Freelancer submits weak work -> verification does not pass
        - Verification re-run still does not pass (escrow stays AI_REVIEWING)
        - Freelancer opens a dispute -> DISPUTED
        - Arbitration rules for the freelancer -> COMPLETED

    Scenario 3: Chat Exchange
        - Both parties connect to the realtime hub and join the escrow room
        - Typing indicator, chat message, read receipt, unread count

Usage:
    # Dry-run (in-memory stores, mock verifiers, no API calls):
    uv run python simulation.py --dry-run

    # SQL stores on SQLite in-memory instead of process memory:
    uv run python simulation.py --sqlite --dry-run

    # Live verification with the configured LLM models:
    uv run python simulation.py

    # Run a specific scenario:
    uv run python simulation.py --dry-run --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from aetherlock.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from aetherlock.bootstrap import Container, build_container  # noqa: E402
from aetherlock.config import Settings  # noqa: E402
from aetherlock.domain.enums import ArbitrationOutcome  # noqa: E402
from aetherlock.infrastructure.evidence_store import InMemoryEvidenceStore  # noqa: E402
from aetherlock.orchestration.review_workflow import run_review_workflow  # noqa: E402
from aetherlock.providers import MockAssessmentProvider  # noqa: E402
from aetherlock.realtime.session import Session  # noqa: E402

# Module-level options
_use_sqlite = False
_dry_run = False


def configure(use_sqlite: bool, dry_run: bool) -> None:
    """Select the store backend and whether verifiers are mocked."""
    global _use_sqlite, _dry_run
    _use_sqlite = use_sqlite
    _dry_run = dry_run


async def start_container(should_pass: bool = True) -> Container:
    """Build and start a container for one scenario.

    In dry-run mode the verification pipeline gets a single mock provider
    that passes (confidence 92) or fails (confidence 40).
    """
    settings = Settings(
        use_database=_use_sqlite,
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url="",
        use_pinata=False,
        settlement_simulate=True,
        auth_allow_unverified=True,
        max_verification_attempts=3,
    )
    providers = None
    if _dry_run:
        providers = [MockAssessmentProvider(confidence=92 if should_pass else 40)]

    container = build_container(
        settings,
        providers=providers,
        evidence_store=InMemoryEvidenceStore(),
    )
    await container.start()
    return container


def wallet_token(wallet: str) -> str:
    """A wallet token accepted by the development signature verifier."""
    return f"simulated-signature:AetherLock login:{wallet}"


# ---------------------------------------------------------------------------
# Party Bots
# ---------------------------------------------------------------------------
@dataclass
class ClientBot:
    """Simulated client that creates escrows and pays out."""

    wallet: str = "C1ientWa11et" + "c" * 32

    async def create_escrow(
        self,
        container: Container,
        freelancer: str,
        amount: Decimal,
        title: str,
        description: str,
    ) -> str:
        """Create a new escrow. Returns escrow_id."""
        wallet = await container.auth_gate.authenticate(wallet_token(self.wallet))
        escrow = await container.manager.create_escrow(
            client_address=wallet,
            amount=amount,
            title=title,
            description=description,
            freelancer_address=freelancer,
        )
        logger.info("🔵 CLIENT: Escrow created", escrow_id=escrow.escrow_id, amount=str(amount))
        return escrow.escrow_id

    async def release(self, container: Container, escrow_id: str) -> None:
        escrow = await container.manager.release(escrow_id, self.wallet)
        logger.info(
            "🔵 CLIENT: Funds released",
            escrow_id=escrow_id,
            tx_hash=(escrow.settlement_tx_hash or "")[:16] + "...",
        )

    async def check_status(self, container: Container, escrow_id: str) -> dict:
        """Check the current escrow status."""
        status = await container.manager.get_status(escrow_id)
        logger.info(
            "🔵 CLIENT: Status check",
            escrow_id=escrow_id,
            status=status["status"],
            attempts=status["verification_attempts"],
        )
        return status


@dataclass
class FreelancerBot:
    """Simulated freelancer that accepts escrows and submits work."""

    wallet: str = "FreeLancerWa11et" + "f" * 28

    async def accept(self, container: Container, escrow_id: str) -> None:
        await container.manager.accept(escrow_id, self.wallet)
        logger.info("🟢 FREELANCER: Escrow accepted", escrow_id=escrow_id)

    async def upload(self, container: Container, content: str, name: str) -> str:
        """Upload a deliverable and return its content handle."""
        handle = await container.evidence_store.put(content.encode(), name=name)
        logger.info("🟢 FREELANCER: Evidence uploaded", handle=handle[:16] + "...")
        return handle

    async def submit_work(
        self,
        container: Container,
        escrow_id: str,
        description: str,
        evidence: list[str],
    ) -> dict:
        """Submit work and run verification. Returns the workflow state."""
        logger.info("🟢 FREELANCER: Submitting work", escrow_id=escrow_id)
        result = await run_review_workflow(
            container.manager,
            escrow_id=escrow_id,
            wallet=self.wallet,
            description=description,
            evidence_handles=evidence,
        )
        if result.get("verification_passed"):
            logger.info("🟢 FREELANCER: Work VERIFIED ✅", escrow_id=escrow_id)
        else:
            logger.info(
                "🟢 FREELANCER: Work NOT VERIFIED ❌",
                escrow_id=escrow_id,
                final_status=result.get("final_status"),
                error=result.get("error", ""),
            )
        return dict(result)

    async def dispute(self, container: Container, escrow_id: str, reason: str) -> None:
        await container.manager.open_dispute(escrow_id, self.wallet, reason=reason)
        logger.info("🟢 FREELANCER: Dispute opened", escrow_id=escrow_id)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_result(result: dict) -> None:
    """Pretty-print a workflow result."""
    passed = result.get("verification_passed", False)
    status_icon = "✅" if passed else "❌"
    print(f"  {status_icon} Verification: {'PASSED' if passed else 'NOT PASSED'}")
    print(f"  Status: {result.get('final_status', 'UNKNOWN')}")
    vr = result.get("verification_result", {})
    if vr.get("confidence") is not None:
        print(f"  Confidence: {vr['confidence']} (by {vr.get('provider', '?')})")
    if vr.get("feedback"):
        feedback = vr["feedback"]
        if len(feedback) > 200:
            feedback = feedback[:200] + "..."
        print(f"  Feedback: {feedback}")
    if result.get("error"):
        print(f"  Workflow Error: {result['error']}")


def print_events(label: str, session: Session) -> None:
    for event in session.drain():
        print(f"  📨 {label} <- {event['type']}: {event['data']}")


async def print_audit_trail(container: Container, escrow_id: str) -> None:
    """Print the full audit trail for an escrow."""
    entries = await container.manager.get_audit_trail(escrow_id)
    print("\n  📜 Audit Trail:")
    for i, entry in enumerate(entries, 1):
        old = entry.old_status.value if entry.old_status else "—"
        print(f"    {i}. [{entry.trigger}] {old} → {entry.new_status.value} (by {entry.actor[:10]})")
    print()


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    """Client hires, freelancer delivers, verification passes, client pays."""
    banner("SCENARIO 1: Happy Path — Verified Delivery and Release")

    client = ClientBot()
    freelancer = FreelancerBot()
    container = await start_container(should_pass=True)

    try:
        section("Step 1: Client creates escrow")
        escrow_id = await client.create_escrow(
            container,
            freelancer=freelancer.wallet,
            amount=Decimal("2.5"),
            title="Landing page for a DeFi dashboard",
            description="Responsive landing page with wallet connect and a hero section.",
        )

        section("Step 2: Freelancer accepts")
        await freelancer.accept(container, escrow_id)

        section("Step 3: Freelancer uploads evidence and submits")
        handle = await freelancer.upload(container, "<html>...landing page...</html>", "index.html")
        result = await freelancer.submit_work(
            container, escrow_id, "Landing page delivered with wallet connect", [handle],
        )
        print_result(result)

        section("Step 4: Client releases funds")
        await client.release(container, escrow_id)
        await client.check_status(container, escrow_id)

        await print_audit_trail(container, escrow_id)
    finally:
        await container.close()


# ===========================================================================
# Scenario 2: Failed Verification, then Dispute
# ===========================================================================
async def scenario_2_dispute() -> None:
    """Verification does not pass twice; the freelancer disputes and wins."""
    banner("SCENARIO 2: Failed Verification — Dispute and Arbitration")

    client = ClientBot()
    freelancer = FreelancerBot()
    container = await start_container(should_pass=False)

    try:
        section("Step 1: Setup (Create -> Accept)")
        escrow_id = await client.create_escrow(
            container,
            freelancer=freelancer.wallet,
            amount=Decimal("4"),
            title="Smart contract audit report",
            description="Audit the staking contract and report every critical finding.",
        )
        await freelancer.accept(container, escrow_id)

        section("Step 2: Freelancer submits a thin report")
        handle = await freelancer.upload(container, "No issues found.", "report.md")
        result = await freelancer.submit_work(container, escrow_id, "Audit complete", [handle])
        print_result(result)

        status = await client.check_status(container, escrow_id)
        assert status["status"] == "AI_REVIEWING", f"Expected AI_REVIEWING, got {status['status']}"
        print("  ✅ Escrow stays in AI_REVIEWING after a failed verification")

        section("Step 3: Verification re-run")
        escrow = await container.manager.verify(escrow_id)
        print(f"  Confidence: {escrow.verification_result.confidence}, status {escrow.status.value}")

        section("Step 4: Freelancer opens a dispute")
        await freelancer.dispute(
            container, escrow_id, "The verifier missed that the contract has no findings to report.",
        )

        section("Step 5: Arbitration rules for the freelancer")
        await container.manager.resolve_dispute(
            escrow_id, ArbitrationOutcome.FREELANCER, note="Report accepted on review",
        )
        final = await client.check_status(container, escrow_id)
        print(f"\n  🛡️  Escrow final status: {final['status']}")

        await print_audit_trail(container, escrow_id)
    finally:
        await container.close()


# ===========================================================================
# Scenario 3: Chat Exchange
# ===========================================================================
async def scenario_3_chat() -> None:
    """Both parties chat in the escrow room over the realtime hub."""
    banner("SCENARIO 3: Chat Exchange — Realtime Hub")

    client = ClientBot()
    freelancer = FreelancerBot()
    container = await start_container()
    hub = container.hub

    try:
        section("Step 1: Setup and connect")
        escrow_id = await client.create_escrow(
            container,
            freelancer=freelancer.wallet,
            amount=Decimal("1"),
            title="Logo design",
            description="A minimal logo for AetherLock.",
        )
        client_session = hub.connect(client.wallet)
        freelancer_session = hub.connect(freelancer.wallet)
        await hub.join(client_session, escrow_id)
        await hub.join(freelancer_session, escrow_id)
        print_events("client", client_session)
        print_events("freelancer", freelancer_session)

        section("Step 2: Freelancer accepts (escrow_update fan-out)")
        await freelancer.accept(container, escrow_id)
        print_events("client", client_session)

        section("Step 3: Freelancer types and sends a message")
        hub.typing_start(escrow_id, freelancer_session)
        message = await hub.send_message(
            escrow_id, freelancer_session, "First drafts will be ready tomorrow.",
        )
        print_events("client", client_session)
        print(f"  Client unread: {await hub.unread_count(client.wallet)}")

        section("Step 4: Client reads the message")
        await hub.mark_read(escrow_id, message.id, client.wallet)
        print_events("freelancer", freelancer_session)
        print(f"  Client unread: {await hub.unread_count(client.wallet)}")

        history = await hub.get_history(escrow_id, client.wallet)
        print(f"\n  💬 History: {[m.content for m in history]}")

        hub.disconnect(client_session)
        hub.disconnect(freelancer_session)
        print(f"  Hub stats after disconnect: {hub.stats()}")
    finally:
        await container.close()


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS: dict[int, Any] = {
    1: scenario_1_happy_path,
    2: scenario_2_dispute,
    3: scenario_3_chat,
}


async def run_all(use_sqlite: bool = False, dry_run: bool = False) -> None:
    """Run all scenarios sequentially."""
    configure(use_sqlite, dry_run)

    print("\n" + "🔐" * 35)
    print("  AETHERLOCK — SIMULATION")
    store = "SQLite (in-memory)" if use_sqlite else "process memory"
    mode = "DRY-RUN (mock verifiers)" if dry_run else "LIVE (configured LLM models)"
    print(f"  Stores: {store}")
    print(f"  Mode: {mode}")
    print("🔐" * 35 + "\n")

    for scenario in SCENARIOS.values():
        await scenario()

    print("\n" + "=" * 70)
    print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
    print("=" * 70 + "\n")


async def run_scenario(num: int, use_sqlite: bool = False, dry_run: bool = False) -> None:
    """Run a specific scenario."""
    configure(use_sqlite, dry_run)
    if num not in SCENARIOS:
        print(f"Unknown scenario {num}. Available: 1, 2, 3")
        return
    await SCENARIOS[num]()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="AetherLock Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQL stores on SQLite in-memory instead of process memory.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use mock verification providers (no LLM calls).",
    )
    args = parser.parse_args()

    if args.scenario:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite, dry_run=args.dry_run))
    else:
        asyncio.run(run_all(use_sqlite=args.sqlite, dry_run=args.dry_run))
