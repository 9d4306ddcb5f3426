from __future__ import annotations

from uuid import UUID

from chat_relay.application.dto.principal import Principal
from chat_relay.application.exceptions import AuthorizationError
from chat_relay.application.repositories.chat import ChatReader


async def assert_chat_member(
    principal: Principal,
    chat_id: UUID,
    chats: ChatReader,
) -> None:
    """Raise unless the principal belongs to the chat."""
    if not await chats.is_member(chat_id, principal.user_id):
        raise AuthorizationError("Not a member of this chat")
