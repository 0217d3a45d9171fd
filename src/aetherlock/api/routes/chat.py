"""Escrow chat REST API routes.

The HTTP path for clients without a live socket. Messages sent here are
persisted and broadcast through the realtime hub exactly like socket messages.

Routes:
    GET    /api/v1/chat/{escrow_id}/history                    — Paged history
    POST   /api/v1/chat/{escrow_id}/send                       — Send a message
    PUT    /api/v1/chat/{escrow_id}/messages/{message_id}/read — Mark read
    GET    /api/v1/chat/unread/count                           — Unread total
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from aetherlock.api.deps import get_caller_wallet, get_hub
from aetherlock.realtime.hub import MAX_HISTORY_LIMIT, RealtimeHub
from aetherlock.schemas.chat import (
    ChatHistoryResponse,
    MessageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)

router = APIRouter(prefix="/api/v1/chat", tags=["Chat"])


@router.get(
    "/unread/count",
    response_model=UnreadCountResponse,
    summary="Count unread messages across the caller's escrows",
)
async def unread_count(
    wallet: str = Depends(get_caller_wallet),
    hub: RealtimeHub = Depends(get_hub),
) -> UnreadCountResponse:
    count = await hub.unread_count(wallet)
    return UnreadCountResponse(wallet_address=wallet, unread=count)


@router.get(
    "/{escrow_id}/history",
    response_model=ChatHistoryResponse,
    summary="Get chat history",
)
async def get_history(
    escrow_id: str,
    limit: int | None = Query(default=None, ge=1, le=MAX_HISTORY_LIMIT),
    before: datetime | None = Query(default=None),
    wallet: str = Depends(get_caller_wallet),
    hub: RealtimeHub = Depends(get_hub),
) -> ChatHistoryResponse:
    """Oldest-first page of the newest `limit` messages sent before `before`."""
    messages = await hub.get_history(escrow_id, wallet, limit=limit, before=before)
    return ChatHistoryResponse(
        escrow_id=escrow_id,
        messages=[MessageResponse.model_validate(m) for m in messages],
    )


@router.post(
    "/{escrow_id}/send",
    response_model=MessageResponse,
    status_code=201,
    summary="Send a chat message",
)
async def send_message(
    escrow_id: str,
    request: SendMessageRequest,
    wallet: str = Depends(get_caller_wallet),
    hub: RealtimeHub = Depends(get_hub),
) -> MessageResponse:
    message = await hub.send_message_as(escrow_id, wallet, request.content)
    return MessageResponse.model_validate(message)


@router.put(
    "/{escrow_id}/messages/{message_id}/read",
    response_model=MessageResponse,
    summary="Mark a received message as read",
)
async def mark_read(
    escrow_id: str,
    message_id: int,
    wallet: str = Depends(get_caller_wallet),
    hub: RealtimeHub = Depends(get_hub),
) -> MessageResponse:
    message = await hub.mark_read(escrow_id, message_id, wallet)
    return MessageResponse.model_validate(message)
