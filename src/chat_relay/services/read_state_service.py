from __future__ import annotations

import logging
import uuid

from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import AppError, PersistenceError
from chat_relay.application.policies.permissions import assert_chat_member
from chat_relay.application.ports.realtime import Broadcaster
from chat_relay.application.uow import UnitOfWork
from chat_relay.domain.value_objects.enums import ReceiptStatus
from chat_relay.domain.value_objects.groups import conversation_group

logger = logging.getLogger(__name__)


async def mark_read(
    chat_id: uuid.UUID,
    principal: Principal,
    uow: UnitOfWork,
    rooms: Broadcaster,
) -> int:
    """Advance every unread incoming message in the chat to READ.

    Emits one ``messages_read`` for the whole chat; clients reconcile their
    own lists. Returns how many receipts actually moved.
    """
    await assert_chat_member(principal, chat_id, uow.chats)

    try:
        pending = await uow.messages.list_unread_ids(chat_id, principal.user_id)
        advanced = 0
        for message_id in pending:
            if await uow.receipts_w.advance(message_id, principal.user_id, ReceiptStatus.READ):
                advanced += 1
        if advanced:
            await uow.commit()
    except AppError:
        raise
    except Exception as exc:
        logger.exception("Failed to store read receipts for chat %s", chat_id)
        raise PersistenceError("Server error") from exc

    rooms.broadcast(
        conversation_group(chat_id),
        "messages_read",
        {"chat_id": str(chat_id), "user_id": str(principal.user_id)},
    )
    return advanced
