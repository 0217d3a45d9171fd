"""Pydantic schemas for the escrow chat API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from aetherlock.domain.enums import PartyRole


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Message text")


class MessageResponse(BaseModel):
    """A persisted chat message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    escrow_id: str
    sender_address: str
    sender_role: PartyRole
    content: str
    read: bool
    timestamp: datetime


class ChatHistoryResponse(BaseModel):
    escrow_id: str
    messages: list[MessageResponse]


class UnreadCountResponse(BaseModel):
    wallet_address: str
    unread: int
