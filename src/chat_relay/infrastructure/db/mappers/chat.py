from __future__ import annotations

from chat_relay.domain.entities.chat import Chat, ChatMember
from chat_relay.infrastructure.db.models.chat import ChatMemberModel, ChatModel


def member_to_entity(model: ChatMemberModel) -> ChatMember:
    return ChatMember(
        chat_id=model.chat_id,
        user_id=model.user_id,
        role=model.role,
        joined_at=model.joined_at,
    )


def model_to_entity(model: ChatModel) -> Chat:
    return Chat(
        id=model.id,
        is_group=model.is_group,
        name=model.name,
        created_at=model.created_at,
        updated_at=model.updated_at,
        members=[member_to_entity(m) for m in model.members],
    )


def entity_to_model(entity: Chat) -> ChatModel:
    return ChatModel(
        id=entity.id,
        is_group=entity.is_group,
        name=entity.name,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
        members=[
            ChatMemberModel(
                chat_id=entity.id,
                user_id=m.user_id,
                role=m.role,
                joined_at=m.joined_at,
            )
            for m in entity.members
        ],
    )
