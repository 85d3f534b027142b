from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.config import Settings, get_settings
from app.dependencies import get_escalation_router, get_session_registry
from app.schemas import BroadcastRequest
from app.services.escalation_router import EscalationRouter
from app.services.session_registry import SessionRegistry


def require_debug_enabled(settings: Settings = Depends(get_settings)) -> None:
    if not settings.debug_endpoints_enabled:
        raise HTTPException(status_code=404, detail='Not Found')


router = APIRouter(prefix='/api/debug', dependencies=[Depends(require_debug_enabled)])


@router.get('/connections')
def connections(
    registry: SessionRegistry = Depends(get_session_registry),
    escalations: EscalationRouter = Depends(get_escalation_router),
) -> dict:
    snapshot = registry.snapshot()
    snapshot['threads'] = escalations.snapshot()
    snapshot['timestamp'] = datetime.utcnow().isoformat()
    return snapshot


@router.post('/broadcast')
async def broadcast(req: BroadcastRequest, registry: SessionRegistry = Depends(get_session_registry)) -> dict:
    delivered = await registry.broadcast(req.message)
    return {'delivered': delivered}
