from __future__ import annotations

from typing import Any
from uuid import UUID

import jwt

from chat_relay.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Build a Principal from decoded token claims.

    Accepts the standard ``sub`` claim and the ``userId`` claim issued by
    the accounts service.
    """
    raw = payload.get("sub") or payload.get("userId")
    if not raw:
        raise jwt.InvalidTokenError("Token has no subject")
    try:
        user_id = UUID(str(raw))
    except ValueError as exc:
        raise jwt.InvalidTokenError("Token subject is not a UUID") from exc
    return Principal(user_id=user_id, username=payload.get("username"))
