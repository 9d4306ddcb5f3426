from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query

from chat_relay.api.deps import CurrentPrincipal, HubDep, UoWDep
from chat_relay.api.v1.schemas.message import (
    MarkReadResponse,
    MessageResponse,
    SendMessageRequest,
)
from chat_relay.services import message_service, read_state_service

router = APIRouter(prefix="/api/v1/chats", tags=["messages"])


@router.get("/{chat_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    chat_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=200),
    before: datetime | None = Query(None),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(chat_id, principal, limit, before, uow)
    return [MessageResponse.model_validate(m, from_attributes=True) for m in messages]


@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    chat_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    hub: HubDep,
) -> MessageResponse:
    msg = await message_service.send_message(
        chat_id,
        principal,
        body.content,
        body.kind,
        body.file_url,
        uow,
        hub.rooms,
    )
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.post("/{chat_id}/read", response_model=MarkReadResponse)
async def mark_read(
    chat_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    hub: HubDep,
) -> MarkReadResponse:
    marked = await read_state_service.mark_read(chat_id, principal, uow, hub.rooms)
    return MarkReadResponse(chat_id=chat_id, marked=marked)
