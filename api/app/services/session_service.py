from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import ChatSession, SessionStatus

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def touch(self, session_id: str, ip_address: str | None, user_agent: str | None) -> SessionStatus:
        """Create the session on first contact, otherwise bump its activity and message count."""
        now = datetime.utcnow()
        async with self.session_factory() as db:
            row = await db.scalar(select(ChatSession).where(ChatSession.session_id == session_id))
            if row is None:
                row = ChatSession(
                    session_id=session_id,
                    status=SessionStatus.active,
                    ip_address=ip_address,
                    user_agent=(user_agent or '')[:512] or None,
                    total_messages=1,
                    created_at=now,
                    last_active_at=now,
                )
                db.add(row)
                logger.info('session created', extra={'event': 'session_created', 'session_id': session_id})
            else:
                row.last_active_at = now
                row.total_messages = (row.total_messages or 0) + 1
                if row.status == SessionStatus.inactive:
                    row.status = SessionStatus.active
            status = row.status
            await db.commit()
        return status
