from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter

from chat_relay.api.deps import CurrentPrincipal, HubDep
from chat_relay.api.v1.schemas.presence import PresenceResponse

router = APIRouter(prefix="/api/v1/presence", tags=["presence"])


@router.get("/{user_id}", response_model=PresenceResponse)
async def get_presence(
    user_id: UUID,
    _principal: CurrentPrincipal,
    hub: HubDep,
) -> PresenceResponse:
    connections = hub.registry.resolve(user_id)
    return PresenceResponse(
        user_id=user_id,
        is_online=bool(connections),
        connections=len(connections),
    )
