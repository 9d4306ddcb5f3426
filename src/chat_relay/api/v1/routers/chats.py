from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from chat_relay.api.deps import CurrentPrincipal, HubDep, UoWDep
from chat_relay.api.v1.schemas.chat import ChatResponse, ChatSummaryResponse, CreateChatRequest
from chat_relay.api.v1.schemas.message import MessageResponse
from chat_relay.application.dto.chat import CreateChatDTO
from chat_relay.services import chat_service

router = APIRouter(prefix="/api/v1/chats", tags=["chats"])


@router.post("", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_chat(
    body: CreateChatRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    hub: HubDep,
    response: Response,
) -> ChatResponse:
    chat, created = await chat_service.create_chat(
        principal,
        CreateChatDTO(
            partner_id=body.partner_id,
            is_group=body.is_group,
            name=body.name,
            member_ids=body.member_ids,
        ),
        uow,
        hub.rooms,
        hub.registry,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return ChatResponse.model_validate(chat, from_attributes=True)


@router.get("", response_model=list[ChatSummaryResponse])
async def list_chats(
    principal: CurrentPrincipal,
    uow: UoWDep,
    limit: int = Query(50, ge=1, le=200),
) -> list[ChatSummaryResponse]:
    summaries = await chat_service.list_user_chats(principal, limit, uow)
    return [
        ChatSummaryResponse(
            **ChatResponse.model_validate(s.chat, from_attributes=True).model_dump(),
            unread_count=s.unread_count,
            latest_message=(
                MessageResponse.model_validate(s.latest_message, from_attributes=True)
                if s.latest_message
                else None
            ),
        )
        for s in summaries
    ]


@router.get("/{chat_id}", response_model=ChatResponse)
async def get_chat(
    chat_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ChatResponse:
    chat = await chat_service.get_chat(chat_id, principal, uow)
    return ChatResponse.model_validate(chat, from_attributes=True)
