from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.dependencies import get_session_registry
from app.services.session_registry import SessionRegistry, WebSocketConnection

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket('/ws')
async def session_socket(websocket: WebSocket, registry: SessionRegistry = Depends(get_session_registry)) -> None:
    session_id = (websocket.query_params.get('sessionId') or '').strip() or str(uuid.uuid4())
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    try:
        connection_id = await registry.register(session_id, connection)
    except Exception as exc:
        logger.warning(
            'connection lost during registration',
            extra={'event': 'register_failed', 'session_id': session_id, 'error': str(exc)},
        )
        return

    try:
        while not connection.closed:
            raw = await websocket.receive_text()
            registry.mark_alive(session_id, connection_id)
            try:
                data = json.loads(raw)
            except ValueError:
                continue
            if isinstance(data, dict) and data.get('type') == 'ping':
                await websocket.send_json({'type': 'pong', 'timestamp': datetime.utcnow().isoformat()})
    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(session_id, connection_id)
