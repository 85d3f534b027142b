from __future__ import annotations

import json
import logging
from collections import deque

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from app.config import Settings, get_settings
from app.dependencies import get_escalation_router
from app.services.escalation_router import EscalationRouter
from app.services.slack_service import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/slack')

_seen_events: set[str] = set()
_seen_order: deque[str] = deque()
_SEEN_EVENTS_MAX = 2048

# Plain messages and "also send to channel" thread replies.
HUMAN_REPLY_SUBTYPES = (None, 'thread_broadcast')


def _already_seen(event_id: str) -> bool:
    if event_id in _seen_events:
        return True
    _seen_events.add(event_id)
    _seen_order.append(event_id)
    while len(_seen_order) > _SEEN_EVENTS_MAX:
        _seen_events.discard(_seen_order.popleft())
    return False


def human_reply_from_event(event: dict) -> tuple[str, str, str | None] | None:
    """(thread_ts, text, user) for a human reply inside a thread, else None."""
    if event.get('type') != 'message':
        return None
    if event.get('bot_id') or event.get('subtype') not in HUMAN_REPLY_SUBTYPES:
        return None
    thread_ts = event.get('thread_ts')
    if not thread_ts or thread_ts == event.get('ts'):
        return None
    text = (event.get('text') or '').strip()
    if not text:
        return None
    return str(thread_ts), text, event.get('user')


@router.post('/events')
async def slack_events(
    request: Request,
    background: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    escalations: EscalationRouter = Depends(get_escalation_router),
) -> dict:
    body = await request.body()
    if settings.slack_signing_secret:
        ok = verify_signature(
            settings.slack_signing_secret,
            request.headers.get('x-slack-request-timestamp', ''),
            body,
            request.headers.get('x-slack-signature', ''),
        )
        if not ok:
            raise HTTPException(status_code=401, detail='invalid slack signature')

    try:
        payload = json.loads(body or b'{}')
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='invalid json body') from exc

    if payload.get('type') == 'url_verification':
        return {'challenge': payload.get('challenge')}
    if payload.get('type') != 'event_callback':
        return {'ok': True}

    event_id = payload.get('event_id')
    if event_id and _already_seen(str(event_id)):
        logger.info('duplicate slack event ignored', extra={'event': 'slack_event_duplicate', 'event_id': event_id})
        return {'ok': True}

    reply = human_reply_from_event(payload.get('event') or {})
    if reply is not None:
        thread_ts, text, user = reply
        background.add_task(escalations.on_human_reply, thread_ts, text, user)
    return {'ok': True}
