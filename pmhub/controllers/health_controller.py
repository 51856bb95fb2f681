from fastapi import APIRouter, Depends

from pmhub.core.deps import get_sync_hub
from pmhub.realtime.hub import SyncHub

router = APIRouter()


@router.get("")
async def health_check(hub: SyncHub = Depends(get_sync_hub)):
    return {
        "status": "healthy",
        "service": "pmhub-realtime",
        "connections": len(hub.registry),
        "rooms": len(hub.router.rooms()),
    }
