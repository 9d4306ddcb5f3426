from __future__ import annotations

from chat_relay.domain.entities.message import Message
from chat_relay.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        chat_id=model.chat_id,
        sender_id=model.sender_id,
        kind=model.kind,
        content=model.content,
        file_url=model.file_url,
        created_at=model.created_at,
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        id=entity.id,
        chat_id=entity.chat_id,
        sender_id=entity.sender_id,
        kind=entity.kind,
        content=entity.content,
        file_url=entity.file_url,
        created_at=entity.created_at,
    )
