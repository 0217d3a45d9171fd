"""Tests for the submit-and-verify review workflow."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from conftest import FREELANCER, STRANGER

from aetherlock.domain.enums import EscrowStatus
from aetherlock.domain.exceptions import AuthorizationError, PreconditionError
from aetherlock.domain.models import Escrow
from aetherlock.orchestration.review_workflow import run_review_workflow
from aetherlock.providers import MockAssessmentProvider


class TestReviewWorkflow:
    async def test_passing_submission(self, manager, active_escrow: Escrow) -> None:
        state = await run_review_workflow(
            manager,
            escrow_id=active_escrow.escrow_id,
            wallet=FREELANCER,
            description="Landing page delivered",
            evidence_handles=["bafk1"],
        )

        assert state["final_status"] == "VERIFIED"
        assert state["verification_passed"] is True
        assert state["verification_result"]["confidence"] == 92
        assert state["evidence_handle"]
        assert state["error"] == ""

    async def test_failing_submission_stays_in_review(
        self, manager, active_escrow: Escrow, mock_provider: MockAssessmentProvider,
    ) -> None:
        mock_provider.confidence = 40

        state = await run_review_workflow(
            manager,
            escrow_id=active_escrow.escrow_id,
            wallet=FREELANCER,
            description="Half done",
            evidence_handles=["bafk1"],
        )

        assert state["final_status"] == "AI_REVIEWING"
        assert state["verification_passed"] is False
        assert state["verification_result"]["passed"] is False

    async def test_without_auto_verify(
        self, manager, active_escrow: Escrow, mock_provider: MockAssessmentProvider,
    ) -> None:
        state = await run_review_workflow(
            manager,
            escrow_id=active_escrow.escrow_id,
            wallet=FREELANCER,
            description="Delivered",
            evidence_handles=["bafk1"],
            auto_verify=False,
        )

        assert state["final_status"] == "AI_REVIEWING"
        assert state["verification_result"] == {}
        assert mock_provider.calls == 0

    async def test_verify_failure_is_deferred(self, manager, active_escrow: Escrow) -> None:
        blocked = PreconditionError("Another transition is in progress", code="TRANSITION_IN_PROGRESS")
        with patch.object(manager, "verify", AsyncMock(side_effect=blocked)):
            state = await run_review_workflow(
                manager,
                escrow_id=active_escrow.escrow_id,
                wallet=FREELANCER,
                description="Delivered",
                evidence_handles=["bafk1"],
            )

        assert state["final_status"] == "AI_REVIEWING"
        assert state["error"] == "Another transition is in progress"
        assert (await manager.get(active_escrow.escrow_id)).status is EscrowStatus.AI_REVIEWING

    async def test_submission_errors_propagate(self, manager, active_escrow: Escrow) -> None:
        with pytest.raises(AuthorizationError):
            await run_review_workflow(
                manager,
                escrow_id=active_escrow.escrow_id,
                wallet=STRANGER,
                description="Not mine",
                evidence_handles=["bafk1"],
            )
