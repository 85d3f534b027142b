from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from app.db.models import MessageRole, SessionStatus
from app.dependencies import get_answer_arbiter, get_message_log, get_session_store
from app.schemas import ChatRequest, ChatResponse
from app.services.answer_arbiter import AnswerArbiter
from app.services.message_log import MessageLog
from app.services.order_detection import detect_intent
from app.services.session_service import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api')

SESSION_HEADER = 'X-Session-Id'


def resolve_session_id(request: Request, response: Response) -> str:
    token = (request.headers.get(SESSION_HEADER) or request.query_params.get('sessionId') or '').strip()
    if not token:
        token = str(uuid.uuid4())
        response.headers[SESSION_HEADER] = token
    return token


@router.post('/chat', response_model=ChatResponse)
async def chat(
    request: Request,
    req: ChatRequest,
    session_id: str = Depends(resolve_session_id),
    arbiter: AnswerArbiter = Depends(get_answer_arbiter),
    sessions: SessionStore = Depends(get_session_store),
    messages: MessageLog = Depends(get_message_log),
) -> ChatResponse:
    question = req.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail='question is required')

    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get('user-agent')
    try:
        status = await sessions.touch(session_id, ip_address, user_agent)
    except Exception as exc:
        logger.warning('session update failed', extra={'event': 'session_touch_failed', 'session_id': session_id, 'error': str(exc)})
        status = SessionStatus.active
    if status == SessionStatus.banned:
        raise HTTPException(status_code=403, detail='session is banned')

    await messages.append(session_id, MessageRole.user, question, {'intent': detect_intent(question)})

    started = time.perf_counter()
    outcome = await arbiter.answer(question, session_id, {'user_agent': user_agent, 'ip_address': ip_address})
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    await messages.append(
        session_id,
        MessageRole.bot,
        outcome.answer,
        {
            'source_type': outcome.source_type,
            'confidence': outcome.confidence,
            'escalation': outcome.escalation,
            'thread_ts': outcome.thread_ts,
            'reason': outcome.reason,
            'response_ms': elapsed_ms,
            'order_analysis': outcome.order_analysis,
        },
    )
    return ChatResponse(
        answer=outcome.answer,
        sources=outcome.sources,
        timestamp=datetime.utcnow(),
        session_id=session_id,
        type=outcome.source_type,
        confidence=outcome.confidence,
        escalation=outcome.escalation,
        thread_ts=outcome.thread_ts,
        order_analysis=outcome.order_analysis,
    )
