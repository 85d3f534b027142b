from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import KnowledgeCache

logger = logging.getLogger(__name__)


@dataclass
class CachedAnswer:
    id: uuid.UUID
    question: str
    answer: str
    confidence: float
    sources: list[dict] = field(default_factory=list)

    def as_payload(self) -> dict:
        return {
            'id': str(self.id),
            'question': self.question,
            'answer': self.answer,
            'confidence': self.confidence,
            'sources': self.sources,
        }


def cache_key(question: str) -> str:
    normalized = ' '.join(question.lower().split())
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


def _from_row(row: KnowledgeCache) -> CachedAnswer:
    return CachedAnswer(
        id=row.id,
        question=row.question,
        answer=row.answer,
        confidence=row.confidence,
        sources=list(row.sources_json or []),
    )


class AnswerCache:
    """Redis fast path in front of the knowledge_cache table."""

    def __init__(self, redis_client: Redis, session_factory: async_sessionmaker[AsyncSession], ttl_seconds: int):
        self.redis = redis_client
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    async def _redis_get(self, key: str) -> CachedAnswer | None:
        try:
            value = await self.redis.get(f'answer:{key}')
        except RedisError as exc:
            logger.warning('redis read failed', extra={'event': 'cache_redis_read_failed', 'error': str(exc)})
            return None
        if not value:
            return None
        data = json.loads(value)
        return CachedAnswer(
            id=uuid.UUID(data['id']),
            question=data['question'],
            answer=data['answer'],
            confidence=float(data['confidence']),
            sources=data.get('sources') or [],
        )

    async def find(self, question: str) -> CachedAnswer | None:
        key = cache_key(question)
        hit = await self._redis_get(key)
        if hit is not None:
            return hit

        now = datetime.utcnow()
        async with self.session_factory() as db:
            row = await db.scalar(
                select(KnowledgeCache).where(KnowledgeCache.cache_key == key, KnowledgeCache.expires_at > now)
            )
            if row is None:
                document = func.to_tsvector('english', KnowledgeCache.question)
                query = func.plainto_tsquery('english', question)
                row = await db.scalar(
                    select(KnowledgeCache)
                    .where(document.op('@@')(query), KnowledgeCache.expires_at > now)
                    .order_by(func.ts_rank(document, query).desc())
                    .limit(1)
                )
        return _from_row(row) if row else None

    async def record_usage(self, entry_id: uuid.UUID) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(KnowledgeCache)
                .where(KnowledgeCache.id == entry_id)
                .values(usage_count=KnowledgeCache.usage_count + 1, last_used_at=datetime.utcnow())
            )
            await db.commit()

    async def save(self, question: str, answer: str, sources: list[dict], confidence: float) -> CachedAnswer:
        key = cache_key(question)
        stored_confidence = max(0.0, min(1.0, confidence))
        expires_at = datetime.utcnow() + timedelta(seconds=self.ttl_seconds)
        async with self.session_factory() as db:
            existing = await db.scalar(select(KnowledgeCache).where(KnowledgeCache.cache_key == key))
            if existing:
                existing.answer = answer
                existing.sources_json = sources
                existing.confidence = stored_confidence
                existing.expires_at = expires_at
                row = existing
            else:
                row = KnowledgeCache(
                    cache_key=key,
                    question=question,
                    answer=answer,
                    sources_json=sources,
                    confidence=stored_confidence,
                    expires_at=expires_at,
                )
                db.add(row)
            await db.commit()
            entry = _from_row(row)

        try:
            await self.redis.setex(f'answer:{key}', self.ttl_seconds, json.dumps(entry.as_payload()))
        except RedisError as exc:
            logger.warning('redis write failed', extra={'event': 'cache_redis_write_failed', 'error': str(exc)})
        return entry

    async def clean_expired(self) -> int:
        async with self.session_factory() as db:
            result = await db.execute(delete(KnowledgeCache).where(KnowledgeCache.expires_at <= datetime.utcnow()))
            await db.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info('expired cache entries removed', extra={'event': 'cache_cleanup', 'removed': removed})
        return removed

    async def run_cleanup_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.clean_expired()
            except Exception:
                logger.exception('cache cleanup failed', extra={'event': 'cache_cleanup_failed'})
