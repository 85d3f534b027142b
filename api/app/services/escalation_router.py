from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import ChatSession, Escalation, EscalationStatus
from app.services.session_registry import SessionRegistry
from app.services.slack_service import SlackApiError

logger = logging.getLogger(__name__)

URGENT_KEYWORDS = ('urgent', 'asap', 'critical', 'down', 'broken')


class ReplyOutcome(str, enum.Enum):
    ignored = 'ignored'
    forwarded = 'forwarded'
    learned = 'learned'


@dataclass
class ThreadCorrelation:
    thread_id: str
    session_id: str
    question: str | None
    created_at: datetime


class EscalationPoster(Protocol):
    async def post_escalation(self, question: str, session_id: str, user_context: dict | None = None) -> str: ...


class AnswerLearner(Protocol):
    async def learn(
        self, question: str, answer: str, answered_by: str | None = None, thread_ts: str | None = None
    ) -> None: ...


def determine_priority(question: str, user_context: dict | None = None) -> str:
    lowered = question.lower()
    if any(k in lowered for k in URGENT_KEYWORDS):
        return 'urgent'
    if (user_context or {}).get('is_premium'):
        return 'high'
    return 'medium'


class CorrelationStore:
    """Append-only thread id -> correlation map for the life of the process."""

    def __init__(self) -> None:
        self._threads: dict[str, ThreadCorrelation] = {}

    def record(self, correlation: ThreadCorrelation) -> None:
        self._threads[correlation.thread_id] = correlation

    def get(self, thread_id: str) -> ThreadCorrelation | None:
        return self._threads.get(thread_id)

    def evict(self, thread_id: str) -> ThreadCorrelation | None:
        return self._threads.pop(thread_id, None)

    def __len__(self) -> int:
        return len(self._threads)

    def snapshot(self) -> list[dict]:
        return [
            {
                'thread_ts': c.thread_id,
                'session_id': c.session_id,
                'question': c.question,
                'created_at': c.created_at.isoformat(),
            }
            for c in self._threads.values()
        ]


class EscalationRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        correlation: ThreadCorrelation,
        reason: str,
        priority: str,
        user_context: dict,
    ) -> None:
        async with self.session_factory() as db:
            db.add(
                Escalation(
                    thread_ts=correlation.thread_id,
                    session_id=correlation.session_id,
                    question=correlation.question,
                    reason=reason,
                    priority=priority,
                    user_context=user_context,
                    created_at=correlation.created_at,
                )
            )
            await db.execute(
                update(ChatSession)
                .where(ChatSession.session_id == correlation.session_id)
                .values(total_escalations=ChatSession.total_escalations + 1)
            )
            await db.commit()

    async def find(self, thread_id: str) -> ThreadCorrelation | None:
        async with self.session_factory() as db:
            row = await db.scalar(select(Escalation).where(Escalation.thread_ts == thread_id))
        if row is None:
            return None
        return ThreadCorrelation(
            thread_id=row.thread_ts,
            session_id=row.session_id,
            question=row.question,
            created_at=row.created_at,
        )

    async def record_reply(self, thread_id: str, answer: str, answered_by: str | None, answered_at: datetime) -> None:
        async with self.session_factory() as db:
            row = await db.scalar(select(Escalation).where(Escalation.thread_ts == thread_id))
            if row is None:
                return
            # First reply resolves the thread; later replies in it are forwarded but not re-recorded.
            if row.status == EscalationStatus.answered:
                return
            row.status = EscalationStatus.answered
            row.answer = answer
            row.answered_by = answered_by
            row.answered_at = answered_at
            row.resolution_seconds = (answered_at - row.created_at).total_seconds()
            await db.commit()


class EscalationRouter:
    def __init__(
        self,
        registry: SessionRegistry,
        poster: EscalationPoster,
        learner: AnswerLearner,
        repository: EscalationRepository | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.registry = registry
        self.poster = poster
        self.learner = learner
        self.repository = repository
        self.clock = clock
        self.correlations = CorrelationStore()
        self._thread_locks: dict[str, asyncio.Lock] = {}

    async def escalate(
        self,
        question: str,
        session_id: str,
        user_context: dict | None = None,
        reason: str = 'low_confidence',
    ) -> str | None:
        context = dict(user_context or {})
        priority = determine_priority(question, context)
        context.setdefault('priority', priority)
        context.setdefault('reason', reason)
        try:
            thread_id = await self.poster.post_escalation(question, session_id, context)
        except SlackApiError as exc:
            logger.error(
                'escalation post failed',
                extra={'event': 'escalation_post_failed', 'session_id': session_id, 'error': str(exc)},
            )
            return None

        correlation = ThreadCorrelation(
            thread_id=thread_id,
            session_id=session_id,
            question=question,
            created_at=self.clock(),
        )
        self.correlations.record(correlation)
        logger.info(
            'escalated to support channel',
            extra={'event': 'escalated', 'session_id': session_id, 'thread_ts': thread_id, 'priority': priority},
        )

        if self.repository is not None:
            try:
                await self.repository.create(correlation, reason=reason, priority=priority, user_context=context)
            except Exception as exc:
                logger.warning(
                    'failed to persist escalation',
                    extra={'event': 'escalation_persist_failed', 'thread_ts': thread_id, 'error': str(exc)},
                )
        return thread_id

    async def _lookup(self, thread_id: str) -> ThreadCorrelation | None:
        correlation = self.correlations.get(thread_id)
        if correlation is not None or self.repository is None:
            return correlation
        try:
            correlation = await self.repository.find(thread_id)
        except Exception as exc:
            logger.warning(
                'escalation lookup failed',
                extra={'event': 'escalation_lookup_failed', 'thread_ts': thread_id, 'error': str(exc)},
            )
            return None
        if correlation is not None:
            self.correlations.record(correlation)
        return correlation

    def _lock_for(self, thread_id: str) -> asyncio.Lock:
        lock = self._thread_locks.get(thread_id)
        if lock is None:
            lock = self._thread_locks[thread_id] = asyncio.Lock()
        return lock

    def evict(self, thread_id: str) -> None:
        self.correlations.evict(thread_id)
        self._thread_locks.pop(thread_id, None)

    async def on_human_reply(self, thread_id: str, reply_text: str, author_id: str | None) -> ReplyOutcome:
        # In-memory hits resolve without suspending, so locks are taken in arrival order.
        correlation = await self._lookup(thread_id)
        if correlation is None:
            logger.debug('reply for unknown thread dropped', extra={'event': 'reply_ignored', 'thread_ts': thread_id})
            return ReplyOutcome.ignored

        async with self._lock_for(thread_id):
            outcome = ReplyOutcome.forwarded
            if correlation.question:
                try:
                    await self.learner.learn(
                        correlation.question, reply_text, answered_by=author_id, thread_ts=thread_id
                    )
                    outcome = ReplyOutcome.learned
                except Exception:
                    logger.exception(
                        'learning from human reply failed',
                        extra={'event': 'learning_failed', 'thread_ts': thread_id},
                    )
            else:
                logger.warning(
                    'correlation has no question; forwarding without learning',
                    extra={'event': 'reply_degraded', 'thread_ts': thread_id},
                )

            now = self.clock()
            delivered = await self.registry.send(
                correlation.session_id,
                {
                    'type': 'human_reply',
                    'user': author_id,
                    'message': reply_text,
                    'thread_ts': thread_id,
                    'sessionId': correlation.session_id,
                    'timestamp': now.isoformat(),
                },
            )
            logger.info(
                'human reply routed',
                extra={
                    'event': 'reply_routed',
                    'thread_ts': thread_id,
                    'session_id': correlation.session_id,
                    'delivered': delivered,
                    'outcome': outcome.value,
                },
            )

            if self.repository is not None:
                try:
                    await self.repository.record_reply(thread_id, reply_text, author_id, now)
                except Exception as exc:
                    logger.warning(
                        'failed to record reply',
                        extra={'event': 'reply_persist_failed', 'thread_ts': thread_id, 'error': str(exc)},
                    )
            return outcome

    def snapshot(self) -> list[dict]:
        return self.correlations.snapshot()
