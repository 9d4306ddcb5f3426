from __future__ import annotations

from typing import Protocol

from chat_relay.application.dto.principal import Principal


class TokenVerifier(Protocol):
    """Credential validation collaborator: token in, identity out."""

    async def verify(self, token: str) -> Principal: ...
