"""Import all models so Alembic can discover them via Base.metadata."""
from chat_relay.infrastructure.db.models.chat import ChatMemberModel, ChatModel
from chat_relay.infrastructure.db.models.message import MessageModel, MessageStatusModel
from chat_relay.infrastructure.db.models.user import UserModel

__all__ = [
    "ChatMemberModel",
    "ChatModel",
    "MessageModel",
    "MessageStatusModel",
    "UserModel",
]
