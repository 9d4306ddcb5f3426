from __future__ import annotations

import logging
import uuid
from typing import Any

from chat_relay.application.dto.chat import ChatSummaryDTO, CreateChatDTO
from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import (
    AppError,
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from chat_relay.application.ports.clock import Clock, system_clock
from chat_relay.application.ports.realtime import Broadcaster, PresenceDirectory
from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.entities.chat import Chat, ChatMember
from chat_relay.domain.value_objects.enums import ChatRole
from chat_relay.domain.value_objects.groups import conversation_group

logger = logging.getLogger(__name__)


def chat_event_data(chat: Chat) -> dict[str, Any]:
    return {
        "id": str(chat.id),
        "is_group": chat.is_group,
        "name": chat.name,
        "member_ids": [str(uid) for uid in chat.member_ids],
        "created_at": chat.created_at.isoformat(),
        "updated_at": chat.updated_at.isoformat(),
    }


async def create_chat(
    principal: Principal,
    dto: CreateChatDTO,
    uow: UnitOfWork,
    rooms: Broadcaster,
    directory: PresenceDirectory,
    clock: Clock = system_clock,
) -> tuple[Chat, bool]:
    """Create a direct or group chat.

    Returns (chat, created). A direct chat between the same two users is
    reused. New chats are announced with ``new_chat`` on the other members'
    personal groups, and every live member connection joins the chat group.
    """
    if dto.is_group:
        member_ids = [uid for uid in dict.fromkeys(dto.member_ids) if uid != principal.user_id]
    else:
        if dto.partner_id is None:
            raise ValidationError("partner_id is required for a direct chat")
        if dto.partner_id == principal.user_id:
            raise ValidationError("Cannot start a chat with yourself")
        existing = await uow.chats.find_direct(principal.user_id, dto.partner_id)
        if existing is not None:
            return existing, False
        member_ids = [dto.partner_id]

    now = clock.now()
    chat_id = uuid.uuid4()
    creator_role = ChatRole.ADMIN if dto.is_group else ChatRole.MEMBER
    members = [ChatMember(chat_id=chat_id, user_id=principal.user_id, role=creator_role, joined_at=now)]
    members += [
        ChatMember(chat_id=chat_id, user_id=uid, role=ChatRole.MEMBER, joined_at=now)
        for uid in member_ids
    ]
    chat = Chat(
        id=chat_id,
        is_group=dto.is_group,
        name=(dto.name or "New Group") if dto.is_group else None,
        created_at=now,
        updated_at=now,
        members=members,
    )
    try:
        chat = await uow.chats_w.create(chat)
        await uow.commit()
    except AppError:
        raise
    except Exception as exc:
        logger.exception("Failed to create chat")
        raise PersistenceError("Server error") from exc

    group = conversation_group(chat.id)
    payload = chat_event_data(chat)
    for uid in chat.member_ids:
        for cid in directory.resolve(uid):
            rooms.join(cid, group)
        if uid != principal.user_id:
            rooms.send_to_user(uid, "new_chat", payload)
    return chat, True


async def list_user_chats(
    principal: Principal,
    limit: int,
    uow: UnitOfWork,
) -> list[ChatSummaryDTO]:
    chats = await uow.chats.list_for_user(principal.user_id, limit=limit)
    summaries: list[ChatSummaryDTO] = []
    for chat in chats:
        summaries.append(
            ChatSummaryDTO(
                chat=chat,
                unread_count=await uow.messages.count_unread(chat.id, principal.user_id),
                latest_message=await uow.messages.latest(chat.id),
            )
        )
    return summaries


async def get_chat(chat_id: uuid.UUID, principal: Principal, uow: UnitOfWork) -> Chat:
    chat = await uow.chats.get_by_id(chat_id)
    if chat is None:
        raise NotFoundError("Chat not found")
    if principal.user_id not in chat.member_ids:
        raise AuthorizationError("Not a member of this chat")
    return chat
