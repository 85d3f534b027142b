from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Message, MessageRole

logger = logging.getLogger(__name__)


class MessageLog:
    """Append-only per-session audit trail. Writes are best-effort."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def append(self, session_id: str, role: MessageRole, content: str, metadata: dict | None = None) -> None:
        try:
            async with self.session_factory() as db:
                db.add(Message(session_id=session_id, role=role, content=content, metadata_json=metadata or {}))
                await db.commit()
        except Exception as exc:
            logger.warning(
                'message log write failed',
                extra={'event': 'message_log_failed', 'session_id': session_id, 'role': role.value, 'error': str(exc)},
            )
