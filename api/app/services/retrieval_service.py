from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Chunk, Document, Embedding


@dataclass
class RetrievedChunk:
    chunk_id: UUID
    document_id: UUID
    title: str
    source: str
    source_type: str
    heading_path: str | None
    text: str
    score: float


def _distance_to_score(distance: float) -> float:
    score = 1.0 - (distance / 2.0)
    return max(0.0, min(1.0, score))


async def retrieve(db: AsyncSession, query_vector: list[float], top_k: int) -> list[RetrievedChunk]:
    distance = Embedding.vector.cosine_distance(query_vector)
    stmt = (
        select(
            Chunk.id.label('chunk_id'),
            Document.id.label('document_id'),
            Document.title.label('title'),
            Document.source.label('source'),
            Document.source_type.label('source_type'),
            Chunk.heading_path.label('heading_path'),
            Chunk.text.label('text'),
            distance.label('distance'),
        )
        .join(Embedding, Embedding.chunk_id == Chunk.id)
        .join(Document, Document.id == Chunk.document_id)
        .order_by(distance)
        .limit(top_k)
    )
    rows = (await db.execute(stmt)).all()
    return [
        RetrievedChunk(
            chunk_id=row.chunk_id,
            document_id=row.document_id,
            title=row.title,
            source=row.source,
            source_type=row.source_type,
            heading_path=row.heading_path,
            text=row.text,
            score=_distance_to_score(float(row.distance)),
        )
        for row in rows
    ]
