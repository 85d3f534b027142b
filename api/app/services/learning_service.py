from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import LearnedAnswer
from app.services.embedding_service import embed_text

logger = logging.getLogger(__name__)

Embedder = Callable[[str], Awaitable[list[float] | None]]


@dataclass
class LearnedMatch:
    id: uuid.UUID
    question: str
    answer: str
    confidence: float
    similarity: float = 1.0


def _to_match(row: LearnedAnswer, similarity: float = 1.0) -> LearnedMatch:
    return LearnedMatch(
        id=row.id,
        question=row.question,
        answer=row.answer,
        confidence=row.confidence,
        similarity=similarity,
    )


class LearningStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], embedder: Embedder = embed_text):
        self.session_factory = session_factory
        self.embedder = embedder

    async def find_exact(self, question: str) -> LearnedMatch | None:
        async with self.session_factory() as db:
            row = await db.scalar(
                select(LearnedAnswer).where(
                    LearnedAnswer.question == question.strip(),
                    LearnedAnswer.is_active.is_(True),
                )
            )
        return _to_match(row) if row else None

    async def find_nearest(self, vector: list[float]) -> LearnedMatch | None:
        """Best active entry by cosine similarity; the caller applies the threshold."""
        distance = LearnedAnswer.embedding.cosine_distance(vector)
        async with self.session_factory() as db:
            result = await db.execute(
                select(LearnedAnswer, distance.label('distance'))
                .where(LearnedAnswer.is_active.is_(True), LearnedAnswer.embedding.is_not(None))
                .order_by(distance)
                .limit(1)
            )
            row = result.first()
        if row is None:
            return None
        entry, dist = row
        return _to_match(entry, similarity=1.0 - float(dist))

    async def record_usage(self, entry_id: uuid.UUID) -> None:
        async with self.session_factory() as db:
            await db.execute(
                update(LearnedAnswer)
                .where(LearnedAnswer.id == entry_id)
                .values(usage_count=LearnedAnswer.usage_count + 1, last_used_at=datetime.utcnow())
            )
            await db.commit()

    async def learn(
        self, question: str, answer: str, answered_by: str | None = None, thread_ts: str | None = None
    ) -> None:
        question = question.strip()
        embedding = await self.embedder(question)
        now = datetime.utcnow()
        async with self.session_factory() as db:
            existing = await db.scalar(select(LearnedAnswer).where(LearnedAnswer.question == question))
            if existing:
                existing.answer = answer
                existing.answered_by = answered_by
                existing.thread_ts = thread_ts
                existing.is_active = True
                existing.updated_at = now
                if embedding is not None:
                    existing.embedding = embedding
            else:
                db.add(
                    LearnedAnswer(
                        question=question,
                        answer=answer,
                        embedding=embedding,
                        answered_by=answered_by,
                        thread_ts=thread_ts,
                        created_at=now,
                        updated_at=now,
                    )
                )
            await db.commit()
        logger.info(
            'learned answer stored',
            extra={
                'event': 'answer_learned',
                'updated': existing is not None,
                'has_embedding': embedding is not None,
                'thread_ts': thread_ts,
            },
        )

    async def top_pairs(self, limit: int = 20) -> list[LearnedAnswer]:
        async with self.session_factory() as db:
            rows = await db.scalars(
                select(LearnedAnswer)
                .where(LearnedAnswer.is_active.is_(True))
                .order_by(LearnedAnswer.usage_count.desc(), LearnedAnswer.updated_at.desc())
                .limit(limit)
            )
            return list(rows)

    async def stats(self) -> dict:
        async with self.session_factory() as db:
            total, usage, with_embedding = (
                await db.execute(
                    select(
                        func.count(LearnedAnswer.id),
                        func.coalesce(func.sum(LearnedAnswer.usage_count), 0),
                        func.count(LearnedAnswer.embedding),
                    ).where(LearnedAnswer.is_active.is_(True))
                )
            ).one()
        return {
            'total_pairs': int(total),
            'total_usage': int(usage),
            'average_usage': round(int(usage) / int(total), 2) if total else 0.0,
            'with_embedding': int(with_embedding),
        }

    async def write_markdown(self, path: str) -> int:
        pairs = await self.top_pairs(limit=10_000)
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(render_markdown(pairs), encoding='utf-8')
        return len(pairs)


def render_markdown(pairs: list[LearnedAnswer]) -> str:
    lines = ['# Human-Learned Q&A', '']
    for pair in pairs:
        lines.append(f'## {pair.question.strip()}')
        lines.append('')
        lines.append(pair.answer.strip())
        lines.append('')
    return '\n'.join(lines)
