"""Orchestration layer — multi-step workflows over the lifecycle manager."""

from aetherlock.orchestration.review_workflow import run_review_workflow

__all__ = ["run_review_workflow"]
