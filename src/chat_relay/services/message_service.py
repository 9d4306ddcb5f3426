from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import AppError, PersistenceError, ValidationError
from chat_relay.application.policies.permissions import assert_chat_member
from chat_relay.application.ports.clock import Clock, system_clock
from chat_relay.application.ports.realtime import Broadcaster
from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.entities.message import Message
from chat_relay.domain.value_objects.enums import MessageKind
from chat_relay.domain.value_objects.groups import conversation_group

logger = logging.getLogger(__name__)


def message_event_data(msg: Message) -> dict[str, Any]:
    return {
        "id": str(msg.id),
        "chat_id": str(msg.chat_id),
        "sender_id": str(msg.sender_id),
        "kind": msg.kind,
        "content": msg.content,
        "file_url": msg.file_url,
        "created_at": msg.created_at.isoformat(),
    }


async def send_message(
    chat_id: uuid.UUID,
    principal: Principal,
    content: str,
    kind: MessageKind,
    file_url: str | None,
    uow: UnitOfWork,
    rooms: Broadcaster,
    clock: Clock = system_clock,
) -> Message:
    """Persist a message and fan it out to the chat group.

    The message row is the authoritative side effect. Bumping the chat's
    activity timestamp afterwards is best-effort.
    """
    if kind is MessageKind.TEXT and not content.strip():
        raise ValidationError("Text message cannot be empty")
    if kind is not MessageKind.TEXT and not file_url:
        raise ValidationError(f"{kind.value} message requires file_url")

    await assert_chat_member(principal, chat_id, uow.chats)

    msg = Message(
        id=uuid.uuid4(),
        chat_id=chat_id,
        sender_id=principal.user_id,
        kind=kind.value,
        content=content,
        file_url=file_url,
        created_at=clock.now(),
    )
    try:
        msg = await uow.messages_w.create(msg)
        await uow.commit()
    except AppError:
        raise
    except Exception as exc:
        logger.exception("Failed to persist message in chat %s", chat_id)
        raise PersistenceError("Server error") from exc

    try:
        await uow.chats_w.touch_updated_at(chat_id, msg.created_at)
        await uow.commit()
    except Exception:
        logger.warning("Could not bump activity of chat %s", chat_id, exc_info=True)
        await uow.rollback()

    rooms.broadcast(conversation_group(chat_id), "new_message", message_event_data(msg))
    return msg


async def list_messages(
    chat_id: uuid.UUID,
    principal: Principal,
    limit: int,
    before: datetime | None,
    uow: UnitOfWork,
) -> list[Message]:
    await assert_chat_member(principal, chat_id, uow.chats)
    return await uow.messages.list_messages(chat_id, limit=limit, before=before)
