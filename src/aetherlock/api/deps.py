"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the application
container, its collaborators and the authenticated caller's wallet.
"""

from __future__ import annotations

from fastapi import Depends, Header, Request

from aetherlock.bootstrap import Container
from aetherlock.realtime.hub import RealtimeHub
from aetherlock.services.escrow_manager import EscrowLifecycleManager


def get_container(request: Request) -> Container:
    """Provide the container built by the application lifespan."""
    return request.app.state.container


def get_manager(container: Container = Depends(get_container)) -> EscrowLifecycleManager:
    return container.manager


def get_hub(container: Container = Depends(get_container)) -> RealtimeHub:
    return container.hub


async def get_caller_wallet(
    authorization: str | None = Header(default=None),
    container: Container = Depends(get_container),
) -> str:
    """Authenticate the `Authorization` wallet token and return the wallet address."""
    return await container.auth_gate.authenticate(authorization)
