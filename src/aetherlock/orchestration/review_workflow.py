"""Review Workflow — submit work, then run the verification decision.

Invoked when a freelancer submits work:

    submit_work -> verify -> [route] -> VERIFIED (passed) OR AI_REVIEWING (not passed)

Settlement is never automatic: the client releases funds (or either party
opens a dispute) once the result is in.

A failed submission is the caller's error and propagates. A verification
step that cannot run (evidence store down, another transition in flight)
leaves the escrow in AI_REVIEWING; the error is recorded in the returned
state and verification can be re-run later.

Usage:
    from aetherlock.orchestration.review_workflow import run_review_workflow

    state = await run_review_workflow(
        manager,
        escrow_id="9f1c...",
        wallet="7xKX...",
        description="Landing page delivered",
        evidence_handles=["bafk..."],
    )
"""

from __future__ import annotations

from typing import TypedDict

from aetherlock.domain.exceptions import AetherLockError
from aetherlock.logging_config import get_logger
from aetherlock.services.escrow_manager import EscrowLifecycleManager

logger = get_logger(__name__)


class ReviewWorkflowState(TypedDict, total=False):
    """State of one submit-and-verify run."""

    escrow_id: str
    evidence_handle: str
    verification_passed: bool
    verification_result: dict
    final_status: str
    error: str


async def run_review_workflow(
    manager: EscrowLifecycleManager,
    escrow_id: str,
    wallet: str,
    description: str,
    evidence_handles: list[str],
    auto_verify: bool = True,
) -> ReviewWorkflowState:
    """Run the review workflow: submit -> verify.

    Returns:
        ReviewWorkflowState with the final status and the verification result.
    """
    state: ReviewWorkflowState = {
        "escrow_id": escrow_id,
        "verification_passed": False,
        "verification_result": {},
        "final_status": "",
        "error": "",
    }

    # --- Node 1: Submit Work ---
    logger.info("workflow.submit", escrow_id=escrow_id)
    escrow = await manager.submit_work(escrow_id, wallet, description, evidence_handles)
    state["evidence_handle"] = escrow.evidence_handle or ""
    state["final_status"] = escrow.status.value

    if not auto_verify:
        return state

    # --- Node 2: Verify ---
    logger.info("workflow.verify", escrow_id=escrow_id)
    try:
        escrow = await manager.verify(escrow_id)
    except AetherLockError as exc:
        logger.warning("workflow.verify_deferred", escrow_id=escrow_id, error=exc.message)
        state["error"] = exc.message
        return state

    # --- Node 3: Route ---
    result = escrow.verification_result
    state["final_status"] = escrow.status.value
    if result is not None:
        state["verification_result"] = result.to_dict()
        state["verification_passed"] = result.passed

    logger.info(
        "workflow.completed",
        escrow_id=escrow_id,
        final_status=state["final_status"],
        passed=state["verification_passed"],
    )
    return state
